"""Tests for patient cost estimation."""

import pytest

from clearverify.coverage import CoverageCalculator, estimate_patient_cost
from clearverify.models import Accumulator, Benefit, EligibilityResult


def _eligibility(
    coverage: float = 80.0,
    copay: float = 0.0,
    allowed: float = 500.0,
    deductible_remaining: float = 100.0,
    oop_remaining: float = 5000.0,
    active: bool = True,
) -> EligibilityResult:
    return EligibilityResult(
        active=active,
        benefits=[
            Benefit(
                procedure_code="D2391",
                coverage_percentage=coverage,
                copay=copay,
                allowed_amount=allowed,
            )
        ],
        deductible=Accumulator(annual=1500, remaining=deductible_remaining),
        out_of_pocket_max=Accumulator(annual=6000, remaining=oop_remaining),
    )


class TestEstimatePatientCost:
    """Tests for the cost formula."""

    def test_deductible_then_coinsurance(self) -> None:
        """$500 at 80% with $100 deductible left: 100 + 400 * 20% = 180."""
        assert estimate_patient_cost(500, 80, deductible_remaining=100) == 180.0

    def test_full_coverage(self) -> None:
        assert estimate_patient_cost(500, 100) == 0.0

    def test_copay_added(self) -> None:
        assert estimate_patient_cost(200, 80, copay=25) == 65.0

    def test_deductible_larger_than_cost(self) -> None:
        assert estimate_patient_cost(150, 80, deductible_remaining=1200) == 150.0

    def test_out_of_pocket_cap(self) -> None:
        assert estimate_patient_cost(2500, 50, deductible_remaining=500, oop_remaining=300) == 300.0

    def test_exhausted_out_of_pocket(self) -> None:
        assert estimate_patient_cost(2500, 50, oop_remaining=0) == 0.0

    def test_rounded_to_cents(self) -> None:
        assert estimate_patient_cost(99.99, 67) == 33.0

    def test_never_negative(self) -> None:
        assert estimate_patient_cost(-50, 80, copay=-10) == 0.0

    @pytest.mark.parametrize("percentage", [0, 10, 25, 50, 75, 90, 99, 100])
    def test_monotonic_in_coverage(self, percentage) -> None:
        """More coverage never costs the patient more."""
        lower = estimate_patient_cost(1000, percentage, copay=15, deductible_remaining=50)
        higher = estimate_patient_cost(
            1000, min(percentage + 5, 100), copay=15, deductible_remaining=50
        )
        assert higher <= lower


COST_SWEEP = [0, 1, 50, 99.99, 100, 100.01, 150, 400, 500, 1000, 1699.99, 1700, 2500, 10000]


class TestMonotonicInCost:
    """A more expensive procedure never lowers the patient's share."""

    @pytest.mark.parametrize(
        ("coverage", "copay", "deductible_remaining", "oop_remaining", "active"),
        [
            (80, 0, 100, 5000, True),
            (50, 25, 500, 300, True),
            (100, 0, 1200, 5000, True),
            (80, 15, 0, 0, True),
            (0, 0, 100, 5000, True),
            (80, 0, 100, 5000, False),
        ],
    )
    def test_cost_sweep(self, coverage, copay, deductible_remaining, oop_remaining, active) -> None:
        eligibility = _eligibility(
            coverage=coverage,
            copay=copay,
            deductible_remaining=deductible_remaining,
            oop_remaining=oop_remaining,
            active=active,
        )
        calculator = CoverageCalculator()

        decisions = [
            calculator.calculate(eligibility, "D2391", procedure_cost=cost) for cost in COST_SWEEP
        ]

        estimates = [d.estimated_patient_cost for d in decisions]
        assert estimates == sorted(estimates)
        for decision in decisions:
            assert decision.estimated_patient_cost >= 0
            if decision.is_procedure_covered:
                assert decision.estimated_patient_cost <= oop_remaining

    def test_formula_sweep_across_cap(self) -> None:
        estimates = [
            estimate_patient_cost(cost, 70, copay=10, deductible_remaining=200, oop_remaining=600)
            for cost in COST_SWEEP
        ]

        assert estimates == sorted(estimates)
        assert estimates[-1] == 600.0

class TestCoverageCalculator:
    """Tests for building CoverageDecisions."""

    def test_covered_procedure(self) -> None:
        decision = CoverageCalculator().calculate(_eligibility(), "D2391")

        assert decision.is_procedure_covered is True
        assert decision.coverage_percentage == 80.0
        assert decision.procedure_cost == 500.0
        assert decision.deductible_applied == 100.0
        assert decision.coinsurance_amount == 80.0
        assert decision.estimated_patient_cost == 180.0

    def test_caller_supplied_cost(self) -> None:
        decision = CoverageCalculator().calculate(_eligibility(), "D2391", procedure_cost=300)

        assert decision.procedure_cost == 300.0
        assert decision.estimated_patient_cost == 140.0

    def test_lowercase_procedure(self) -> None:
        decision = CoverageCalculator().calculate(_eligibility(), "d2391")
        assert decision.estimated_patient_cost == 180.0

    def test_copay_and_cap(self) -> None:
        decision = CoverageCalculator().calculate(
            _eligibility(copay=25, oop_remaining=150), "D2391"
        )
        assert decision.copay == 25.0
        assert decision.estimated_patient_cost == 150.0

    def test_inactive_coverage(self) -> None:
        decision = CoverageCalculator().calculate(_eligibility(active=False), "D2391")

        assert decision.is_procedure_covered is False
        assert decision.coverage_percentage == 0.0
        assert decision.estimated_patient_cost == 500.0

    def test_zero_percent_benefit(self) -> None:
        decision = CoverageCalculator().calculate(_eligibility(coverage=0), "D2391")

        assert decision.is_procedure_covered is False
        assert decision.estimated_patient_cost == 500.0

    def test_procedure_without_benefit_uses_default(self) -> None:
        """Preventive exam with no payer benefit: 100% covered, but deductible applies."""
        decision = CoverageCalculator().calculate(
            _eligibility(deductible_remaining=0), "D0120"
        )

        assert decision.is_procedure_covered is True
        assert decision.coverage_percentage == 100.0
        assert decision.procedure_cost == 95.0
        assert decision.estimated_patient_cost == 0.0

    def test_missing_allowed_amount_uses_average_cost(self) -> None:
        decision = CoverageCalculator().calculate(
            _eligibility(allowed=0, deductible_remaining=0), "D2391"
        )

        assert decision.procedure_cost == 225.0
        assert decision.estimated_patient_cost == 45.0
