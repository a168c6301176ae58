"""Response normalization: vendor payloads to the canonical EligibilityResult.

Each protocol (and each REST vendor shape) has a mapper that extracts
``PayerFacts``: only what the payer actually said, with None for anything
it left out. ``finalize`` then applies the defaulting policy in one place:

- Missing deductible: annual 1500, remaining 1200
- Missing out-of-pocket maximum: annual 6000, remaining 5000
- Only remaining missing: remaining = annual
- Only annual missing: annual = max(default annual, remaining)
- Remaining above annual: clamped to annual (logged)
- No benefit for the requested procedure: category default
  (preventive 100%/$0, basic 80%/$0, major 50%/$0, unclassified 80%/$25)
- Allowed amount missing: procedure average cost (default $500)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable

from .edi import X12EligibilityResponse, service_type_for
from .edi.edi_271 import (
    EB_COINSURANCE,
    EB_COPAY,
    EB_DEDUCTIBLE,
    EB_OUT_OF_POCKET,
)
from .errors import MalformedResponse, UnsupportedProvider
from .models import (
    Accumulator,
    Benefit,
    EligibilityResult,
    ProtocolVariant,
    RawProviderResponse,
)
from .utils import parse_flexible_date

logger = logging.getLogger(__name__)


class ProcedureCategory(str, Enum):
    PREVENTIVE = "preventive"
    BASIC = "basic"
    MAJOR = "major"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class ProcedureInfo:
    category: ProcedureCategory
    average_cost: float


# CDT procedure code -> category and average cost
PROCEDURES: dict[str, ProcedureInfo] = {
    "D0120": ProcedureInfo(ProcedureCategory.PREVENTIVE, 95.0),  # Periodic oral evaluation
    "D0210": ProcedureInfo(ProcedureCategory.PREVENTIVE, 150.0),  # Complete series X-rays
    "D2391": ProcedureInfo(ProcedureCategory.BASIC, 225.0),  # Composite filling
    "D7210": ProcedureInfo(ProcedureCategory.BASIC, 180.0),  # Simple extraction
    "D2740": ProcedureInfo(ProcedureCategory.MAJOR, 1200.0),  # Crown
    "D5110": ProcedureInfo(ProcedureCategory.MAJOR, 2500.0),  # Complete denture
    "D6010": ProcedureInfo(ProcedureCategory.MAJOR, 3500.0),  # Implant placement
    "D6065": ProcedureInfo(ProcedureCategory.MAJOR, 2200.0),  # Implant crown
}
DEFAULT_AVERAGE_COST = 500.0

# Category -> (coverage percentage, copay)
CATEGORY_DEFAULTS: dict[ProcedureCategory, tuple[float, float]] = {
    ProcedureCategory.PREVENTIVE: (100.0, 0.0),
    ProcedureCategory.BASIC: (80.0, 0.0),
    ProcedureCategory.MAJOR: (50.0, 0.0),
    ProcedureCategory.UNCLASSIFIED: (80.0, 25.0),
}

DEFAULT_DEDUCTIBLE = Accumulator(annual=1500.0, remaining=1200.0)
DEFAULT_OUT_OF_POCKET = Accumulator(annual=6000.0, remaining=5000.0)


def procedure_category(procedure_code: str) -> ProcedureCategory:
    info = PROCEDURES.get(procedure_code.upper())
    return info.category if info else ProcedureCategory.UNCLASSIFIED


def average_cost(procedure_code: str) -> float:
    info = PROCEDURES.get(procedure_code.upper())
    return info.average_cost if info else DEFAULT_AVERAGE_COST


def default_benefit(procedure_code: str) -> Benefit:
    """Category default terms for a procedure the payer did not describe."""
    coverage, copay = CATEGORY_DEFAULTS[procedure_category(procedure_code)]
    return Benefit(
        procedure_code=procedure_code,
        coverage_percentage=coverage,
        copay=copay,
        allowed_amount=average_cost(procedure_code),
        service_type_code=service_type_for(procedure_code),
        source="default",
    )


def estimated_result(procedure_code: str) -> EligibilityResult:
    """Result built entirely from defaults, used for degraded estimates."""
    return EligibilityResult(
        active=True,
        benefits=[default_benefit(procedure_code)],
        deductible=DEFAULT_DEDUCTIBLE.model_copy(),
        out_of_pocket_max=DEFAULT_OUT_OF_POCKET.model_copy(),
    )


@dataclass
class BenefitFacts:
    """Coverage terms as reported by the payer (None = not reported)."""

    procedure_code: str | None = None
    service_type: str | None = None
    coverage_percentage: float | None = None
    copay: float | None = None
    allowed_amount: float | None = None


@dataclass
class PayerFacts:
    """Everything a payer said about one member, before defaulting."""

    active: bool
    effective_date: date | None = None
    termination_date: date | None = None
    benefits: list[BenefitFacts] = field(default_factory=list)
    deductible_annual: float | None = None
    deductible_remaining: float | None = None
    oop_annual: float | None = None
    oop_remaining: float | None = None
    subscriber_name: str | None = None


# --- Value helpers ---


def _amount(value: Any) -> float | None:
    """Parse a monetary amount; negatives are clamped to zero."""
    if value is None or value == "":
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    return max(amount, 0.0)


def _percent(value: Any) -> float | None:
    """Parse a percentage clamped to 0-100."""
    percent = _amount(value)
    if percent is None:
        return None
    return min(percent, 100.0)


def _patient_share_to_coverage(value: Any) -> float | None:
    """Convert a patient coinsurance share (0.2 or 20) to plan coverage."""
    share = _amount(value)
    if share is None:
        return None
    if share <= 1:
        share *= 100
    return 100.0 - min(share, 100.0)


def _date(value: Any) -> date | None:
    return parse_flexible_date(value) if isinstance(value, str) else None


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


# --- Protocol mappers ---


def _map_fhir(payload: dict[str, Any], today: date) -> PayerFacts:
    patient = _dict(payload.get("patient"))
    coverage = _dict(payload.get("coverage"))
    period = _dict(coverage.get("period"))

    effective = _date(period.get("start"))
    termination = _date(period.get("end"))
    active = coverage.get("status") == "active" and (
        termination is None or termination >= today
    )

    subscriber_name = None
    names = _list(patient.get("name"))
    if names:
        name = _dict(names[0])
        given = " ".join(str(g) for g in _list(name.get("given")))
        subscriber_name = f"{given} {name.get('family', '')}".strip() or None

    # Coverage carries no per-procedure benefit detail
    return PayerFacts(
        active=active,
        effective_date=effective,
        termination_date=termination,
        subscriber_name=subscriber_name,
    )


def _map_x12(payload: X12EligibilityResponse, today: date) -> PayerFacts:
    facts = PayerFacts(
        active=payload.is_active(today),
        effective_date=payload.effective_date,
        termination_date=payload.termination_date,
        subscriber_name=payload.subscriber_name,
    )

    by_scope: dict[tuple[str, str], BenefitFacts] = {}

    def scoped(kind: str, key: str) -> BenefitFacts:
        if (kind, key) not in by_scope:
            by_scope[(kind, key)] = BenefitFacts(
                procedure_code=key if kind == "procedure" else None,
                service_type=key if kind == "service_type" else None,
            )
        return by_scope[(kind, key)]

    for eb in payload.benefits:
        if eb.info_code in (EB_DEDUCTIBLE, EB_OUT_OF_POCKET):
            if not eb.is_individual or eb.amount is None:
                continue
            prefix = "deductible" if eb.info_code == EB_DEDUCTIBLE else "oop"
            attr = f"{prefix}_remaining" if eb.is_remaining else f"{prefix}_annual"
            if getattr(facts, attr) is None:
                setattr(facts, attr, max(eb.amount, 0.0))
            continue

        if eb.procedure_code:
            targets = [scoped("procedure", eb.procedure_code)]
        else:
            targets = [scoped("service_type", st) for st in eb.service_types]

        for target in targets:
            if eb.info_code == EB_COINSURANCE and eb.percent is not None:
                target.coverage_percentage = _patient_share_to_coverage(eb.percent)
            elif eb.info_code == EB_COPAY and eb.amount is not None:
                target.copay = max(eb.amount, 0.0)

    facts.benefits = list(by_scope.values())
    return facts


def _map_soap(payload: dict[str, Any], today: date) -> PayerFacts:
    benefits = []
    if payload.get("ServiceType"):
        benefits.append(
            BenefitFacts(
                service_type=payload["ServiceType"],
                coverage_percentage=_percent(payload.get("CoveragePercent")),
                copay=_amount(payload.get("Copay")),
            )
        )
    return PayerFacts(
        active=str(payload.get("Status", "")).lower() == "active",
        effective_date=_date(payload.get("EffectiveDate")),
        termination_date=_date(payload.get("TerminationDate")),
        benefits=benefits,
        deductible_annual=_amount(payload.get("AnnualDeductible")),
        deductible_remaining=_amount(payload.get("RemainingDeductible")),
        oop_annual=_amount(payload.get("AnnualOOPMax")),
        oop_remaining=_amount(payload.get("RemainingOOPMax")),
    )


# --- REST/JSON vendor shapes ---


def _map_bcbs(payload: dict[str, Any], today: date) -> PayerFacts:
    coverage = _dict(payload.get("coverage"))
    deductible = _dict(payload.get("deductible"))
    oop = _dict(payload.get("oopMax"))
    return PayerFacts(
        active=payload.get("status") == "ACTIVE",
        effective_date=_date(coverage.get("startDate")),
        termination_date=_date(coverage.get("endDate")),
        benefits=[
            BenefitFacts(
                procedure_code=b.get("code"),
                coverage_percentage=_percent(b.get("coveragePercent")),
                copay=_amount(b.get("copayAmount")),
                allowed_amount=_amount(b.get("estimatedCost")),
            )
            for b in map(_dict, _list(payload.get("benefits")))
        ],
        deductible_annual=_amount(deductible.get("yearly")),
        deductible_remaining=_amount(deductible.get("remaining")),
        oop_annual=_amount(oop.get("yearly")),
        oop_remaining=_amount(oop.get("remaining")),
    )


def _map_united(payload: dict[str, Any], today: date) -> PayerFacts:
    member = _dict(payload.get("member"))
    deductible = _dict(payload.get("deductible"))
    oop = _dict(payload.get("outOfPocket"))
    name = f"{member.get('first', '')} {member.get('last', '')}".strip()
    return PayerFacts(
        active=str(payload.get("coverageStatus", "")).upper() == "ACTIVE",
        effective_date=_date(payload.get("effectiveDate")),
        termination_date=_date(payload.get("terminationDate")),
        benefits=[
            BenefitFacts(
                procedure_code=b.get("cptCode"),
                coverage_percentage=_percent(b.get("coveragePercent")),
                copay=_amount(b.get("copay")),
                allowed_amount=_amount(b.get("allowedAmount")),
            )
            for b in map(_dict, _list(payload.get("serviceBenefits")))
        ],
        deductible_annual=_amount(deductible.get("annual")),
        deductible_remaining=_amount(deductible.get("remaining")),
        oop_annual=_amount(oop.get("annual")),
        oop_remaining=_amount(oop.get("remaining")),
        subscriber_name=name or None,
    )


CH_DEDUCTIBLE = "Deductible"
CH_OUT_OF_POCKET = "Out of Pocket (Stop Loss)"
CH_OUT_OF_POCKET_NAMES = {CH_OUT_OF_POCKET, "Out of Pocket Maximum"}


def _map_change_healthcare(payload: dict[str, Any], today: date) -> PayerFacts:
    plans = _list(payload.get("planInformation"))
    plan = _dict(plans[0]) if plans else {}
    facts = PayerFacts(
        active=plan.get("status") == "Active",
        effective_date=_date(plan.get("eligibilityBeginDate")),
        termination_date=_date(plan.get("eligibilityEndDate")),
    )

    subscriber = _dict(payload.get("subscriber"))
    name = f"{subscriber.get('firstName', '')} {subscriber.get('lastName', '')}".strip()
    facts.subscriber_name = name or None

    for item in map(_dict, _list(payload.get("benefitsInformation"))):
        benefit_name = item.get("name")
        if benefit_name == CH_DEDUCTIBLE or benefit_name in CH_OUT_OF_POCKET_NAMES:
            if item.get("coverageLevelCode", "IND") != "IND":
                continue
            prefix = "deductible" if benefit_name == CH_DEDUCTIBLE else "oop"
            period = item.get("timePeriodQualifier")
            if period == "Remaining":
                attr = f"{prefix}_remaining"
            elif period in ("Annual", "Calendar Year", "Year"):
                attr = f"{prefix}_annual"
            else:
                continue
            if getattr(facts, attr) is None:
                setattr(facts, attr, _amount(item.get("benefitAmount")))
            continue

        service_types = _list(item.get("serviceTypeCodes"))
        if not item.get("procedureCode") and not service_types:
            continue
        facts.benefits.append(
            BenefitFacts(
                procedure_code=item.get("procedureCode"),
                service_type=str(service_types[0]) if service_types else None,
                coverage_percentage=_percent(item.get("coveragePercentage")),
                copay=_amount(item.get("copayAmount")),
                allowed_amount=_amount(item.get("allowedAmount")),
            )
        )

    return facts


def _map_waystar(payload: dict[str, Any], today: date) -> PayerFacts:
    eligibility = payload.get("eligibilityResponse")
    if not isinstance(eligibility, dict):
        raise MalformedResponse("Waystar response has no eligibilityResponse")
    deductible = _dict(eligibility.get("deductible"))
    oop = _dict(eligibility.get("outOfPocketMaximum"))
    return PayerFacts(
        active=eligibility.get("subscriberEligibility") == "Eligible",
        effective_date=_date(eligibility.get("coverageEffectiveDate")),
        termination_date=_date(eligibility.get("coverageTerminationDate")),
        benefits=[
            BenefitFacts(
                procedure_code=b.get("procedureCode"),
                service_type=b.get("serviceType"),
                coverage_percentage=_percent(b.get("coverageLevel")),
                copay=_amount(b.get("copaymentAmount")),
                allowed_amount=_amount(b.get("allowedAmount")),
            )
            for b in map(_dict, _list(eligibility.get("benefits")))
        ],
        deductible_annual=_amount(deductible.get("annualAmount")),
        deductible_remaining=_amount(deductible.get("remainingAmount")),
        oop_annual=_amount(oop.get("annualAmount")),
        oop_remaining=_amount(oop.get("remainingAmount")),
    )


def _eligible_coverage_percentage(benefit: dict[str, Any]) -> float | None:
    if benefit.get("insurance_type_code") == "HM":
        return 100.0
    if benefit.get("coinsurance_percent") not in (None, ""):
        return _patient_share_to_coverage(benefit["coinsurance_percent"])
    level = str(benefit.get("coverage_level") or "")
    for percent in ("100", "80", "50"):
        if percent in level:
            return float(percent)
    return None


def _map_eligible(payload: dict[str, Any], today: date) -> PayerFacts:
    coverage = _dict(payload.get("coverage"))
    subscriber = _dict(coverage.get("subscriber"))
    coverage_eligibility = _dict(coverage.get("eligibility"))
    subscriber_eligibility = _dict(subscriber.get("eligibility"))
    coverage_dates = _dict(coverage_eligibility.get("dates"))
    subscriber_dates = _dict(subscriber_eligibility.get("dates"))

    facts = PayerFacts(
        active=(
            coverage_eligibility.get("status") in ("active", "1")
            or subscriber_eligibility.get("status") == "active"
        ),
        effective_date=_date(
            coverage_dates.get("effective") or subscriber_dates.get("effective")
        ),
        termination_date=_date(
            coverage_dates.get("termination") or subscriber_dates.get("termination")
        ),
    )
    name = f"{subscriber.get('first_name', '')} {subscriber.get('last_name', '')}".strip()
    facts.subscriber_name = name or None

    for benefit in map(_dict, _list(coverage.get("benefits"))):
        deductible = benefit.get("deductible")
        if isinstance(deductible, dict) and facts.deductible_annual is None:
            facts.deductible_annual = _amount(deductible.get("amount"))
            facts.deductible_remaining = _amount(deductible.get("remaining"))
            continue

        out_of_pocket = benefit.get("out_of_pocket")
        if isinstance(out_of_pocket, dict) and facts.oop_annual is None:
            facts.oop_annual = _amount(out_of_pocket.get("amount"))
            facts.oop_remaining = _amount(out_of_pocket.get("remaining"))
            continue

        if not benefit.get("procedure_code") and not benefit.get("service_type"):
            continue

        copayment = benefit.get("copayment")
        copay = (
            _amount(copayment.get("amount")) if isinstance(copayment, dict)
            else _amount(benefit.get("copay"))
        )
        facts.benefits.append(
            BenefitFacts(
                procedure_code=benefit.get("procedure_code"),
                service_type=benefit.get("service_type"),
                coverage_percentage=_eligible_coverage_percentage(benefit),
                copay=copay,
            )
        )

    return facts


Mapper = Callable[[Any, date], PayerFacts]

REST_MAPPERS: dict[str, Mapper] = {
    "bcbs": _map_bcbs,
    "united": _map_united,
    "change_healthcare": _map_change_healthcare,
    "waystar": _map_waystar,
    "eligible": _map_eligible,
}

PROTOCOL_MAPPERS: dict[ProtocolVariant, Mapper] = {
    ProtocolVariant.FHIR: _map_fhir,
    ProtocolVariant.X12: _map_x12,
    ProtocolVariant.SOAP: _map_soap,
}


# --- Defaulting ---


def build_accumulator(
    annual: float | None,
    remaining: float | None,
    default: Accumulator,
    label: str = "accumulator",
) -> Accumulator:
    """Fill in a partially reported accumulator.

    Args:
        annual: Annual amount reported by the payer, if any
        remaining: Remaining amount reported by the payer, if any
        default: Used when the payer reported neither
        label: Name used in the clamp warning

    Returns:
        Accumulator with remaining <= annual
    """
    if annual is None and remaining is None:
        return default.model_copy()
    if remaining is None:
        remaining = annual
    if annual is None:
        annual = max(default.annual, remaining)

    annual = max(annual, 0.0)
    remaining = max(remaining, 0.0)
    if remaining > annual:
        logger.warning(
            f"Payer reported {label} remaining {remaining} above annual {annual}, clamping"
        )
        remaining = annual

    return Accumulator(annual=annual, remaining=remaining)


def _benefit_from_facts(procedure_code: str, facts: BenefitFacts) -> Benefit:
    """Complete a payer benefit with category defaults where fields are missing."""
    default_coverage, _ = CATEGORY_DEFAULTS[procedure_category(procedure_code)]
    coverage = facts.coverage_percentage
    return Benefit(
        procedure_code=procedure_code,
        coverage_percentage=default_coverage if coverage is None else coverage,
        copay=facts.copay or 0.0,
        allowed_amount=facts.allowed_amount or average_cost(procedure_code),
        service_type_code=facts.service_type,
        source="payer",
    )


def finalize(facts: PayerFacts, procedure_code: str) -> EligibilityResult:
    """Apply the defaulting policy and build the canonical result."""
    procedure_code = procedure_code.upper()
    benefits: list[Benefit] = []
    requested: Benefit | None = None

    for item in facts.benefits:
        if not item.procedure_code:
            continue
        benefit = _benefit_from_facts(item.procedure_code.upper(), item)
        benefits.append(benefit)
        if requested is None and benefit.procedure_code == procedure_code:
            requested = benefit

    if requested is None:
        service_type = service_type_for(procedure_code)
        for item in facts.benefits:
            if not item.procedure_code and item.service_type == service_type:
                requested = _benefit_from_facts(procedure_code, item)
                benefits.append(requested)
                break

    if requested is None:
        benefits.append(default_benefit(procedure_code))

    return EligibilityResult(
        active=facts.active,
        effective_date=facts.effective_date,
        termination_date=facts.termination_date,
        benefits=benefits,
        deductible=build_accumulator(
            facts.deductible_annual,
            facts.deductible_remaining,
            DEFAULT_DEDUCTIBLE,
            "deductible",
        ),
        out_of_pocket_max=build_accumulator(
            facts.oop_annual,
            facts.oop_remaining,
            DEFAULT_OUT_OF_POCKET,
            "out-of-pocket maximum",
        ),
        subscriber_name=facts.subscriber_name,
    )


def normalize(
    raw: RawProviderResponse,
    requested_procedure_code: str,
    today: date | None = None,
) -> EligibilityResult:
    """Map a vendor payload to the canonical EligibilityResult.

    Args:
        raw: Payload tagged with the protocol (and REST shape) that produced it
        requested_procedure_code: Procedure the verification is about
        today: Reference date for active-window checks

    Returns:
        Canonical eligibility result

    Raises:
        UnsupportedProvider: REST payload of an unknown vendor shape
        MalformedResponse: Payload does not have the expected structure
    """
    today = today or date.today()

    if raw.protocol == ProtocolVariant.REST_JSON:
        mapper = REST_MAPPERS.get(raw.shape or "")
        if mapper is None:
            raise UnsupportedProvider(
                f"No response mapping for REST shape '{raw.shape}'", raw.provider_id
            )
    else:
        mapper = PROTOCOL_MAPPERS[raw.protocol]

    if raw.protocol == ProtocolVariant.X12:
        if not isinstance(raw.payload, X12EligibilityResponse):
            raise MalformedResponse("X12 payload is not a parsed 271", raw.provider_id)
    elif not isinstance(raw.payload, dict):
        raise MalformedResponse(
            f"Expected a JSON object from {raw.provider_id}", raw.provider_id
        )

    try:
        facts = mapper(raw.payload, today)
        return finalize(facts, requested_procedure_code)
    except MalformedResponse as e:
        e.provider_id = e.provider_id or raw.provider_id
        raise
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise MalformedResponse(
            f"Unexpected {raw.protocol.value} payload from {raw.provider_id}: {e}",
            raw.provider_id,
        ) from e
