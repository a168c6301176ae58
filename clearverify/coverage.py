"""Patient cost estimation.

Order of application against the procedure cost:
1. Remaining deductible (never more than the cost)
2. Coinsurance: the patient's share (100 - coverage %) of what is left
3. Flat copay
4. Cap at the remaining out-of-pocket maximum
"""

from __future__ import annotations

import logging

from .models import CoverageDecision, EligibilityResult
from .normalizer import average_cost, default_benefit

logger = logging.getLogger(__name__)


def _money(value: float) -> float:
    return max(round(value, 2), 0.0)


def estimate_patient_cost(
    cost: float,
    coverage_percentage: float,
    copay: float = 0.0,
    deductible_remaining: float = 0.0,
    oop_remaining: float | None = None,
) -> float:
    """Estimated patient responsibility for one procedure.

    Args:
        cost: Procedure cost
        coverage_percentage: Share the plan pays after the deductible (0-100)
        copay: Flat copay added after coinsurance
        deductible_remaining: Deductible still to be met this period
        oop_remaining: Remaining out-of-pocket maximum (None = uncapped)

    Returns:
        Amount rounded to cents, never negative

    Examples:
        >>> estimate_patient_cost(500, 80, deductible_remaining=100)
        180.0
        >>> estimate_patient_cost(500, 100)
        0.0
    """
    deductible, coinsurance = _split_cost(cost, coverage_percentage, deductible_remaining)
    total = deductible + coinsurance + max(copay, 0.0)
    if oop_remaining is not None:
        total = min(total, max(oop_remaining, 0.0))
    return _money(total)


def _split_cost(
    cost: float, coverage_percentage: float, deductible_remaining: float
) -> tuple[float, float]:
    """Deductible applied and coinsurance owed."""
    cost = max(cost, 0.0)
    coverage_percentage = min(max(coverage_percentage, 0.0), 100.0)
    deductible = min(max(deductible_remaining, 0.0), cost)
    coinsurance = (cost - deductible) * (100.0 - coverage_percentage) / 100.0
    return deductible, coinsurance


class CoverageCalculator:
    """Turns a canonical eligibility result into a CoverageDecision."""

    def calculate(
        self,
        eligibility: EligibilityResult,
        procedure_code: str,
        procedure_cost: float | None = None,
    ) -> CoverageDecision:
        """Compute coverage for one procedure.

        Args:
            eligibility: Normalized eligibility result
            procedure_code: Procedure being estimated
            procedure_cost: Known fee; falls back to the benefit's allowed amount

        Returns:
            CoverageDecision. Inactive coverage or a 0% benefit is reported
            as not covered with the patient owing the full cost.
        """
        procedure_code = procedure_code.upper()
        benefit = eligibility.benefit_for(procedure_code) or default_benefit(procedure_code)

        if procedure_cost is not None:
            cost = procedure_cost
        else:
            cost = benefit.allowed_amount or average_cost(procedure_code)
        cost = _money(cost)

        if not eligibility.active or benefit.coverage_percentage <= 0:
            logger.debug(f"Procedure {procedure_code} not covered, patient owes full cost")
            return CoverageDecision(
                is_procedure_covered=False,
                coverage_percentage=0.0,
                copay=benefit.copay,
                procedure_cost=cost,
                estimated_patient_cost=cost,
            )

        deductible, coinsurance = _split_cost(
            cost, benefit.coverage_percentage, eligibility.deductible.remaining
        )
        patient_cost = estimate_patient_cost(
            cost,
            benefit.coverage_percentage,
            copay=benefit.copay,
            deductible_remaining=eligibility.deductible.remaining,
            oop_remaining=eligibility.out_of_pocket_max.remaining,
        )

        return CoverageDecision(
            is_procedure_covered=True,
            coverage_percentage=benefit.coverage_percentage,
            copay=benefit.copay,
            procedure_cost=cost,
            deductible_applied=_money(deductible),
            coinsurance_amount=_money(coinsurance),
            estimated_patient_cost=patient_cost,
        )
