"""EDI 271 eligibility response parser (005010X279A1).

Segment Reference:
- NM1*IL: Subscriber name and member id (NM109 with NM108 = MI)
- NM1*PR: Payer name
- TRN: Trace number echoed from the inquiry
- DTP: Plan dates (291/346 begin, 292/347 end; D8 or RD8)
- EB: Eligibility or benefit information
- AAA: Request validation (rejections)
- MSG: Free-form message text

EB elements used:
- EB01: Information code (1 active, 6 inactive, A coinsurance, B copay,
  C deductible, G out-of-pocket maximum)
- EB02: Coverage level (IND, FAM, ...)
- EB03: Service type code(s), repetition separated
- EB06: Time period qualifier (29 = remaining, else the period total)
- EB07: Monetary amount
- EB08: Percent (patient share, decimal or whole number)
- EB12: In-network indicator
- EB13: Composite procedure identifier (e.g. AD:D2391)

The envelope is validated before any segment is interpreted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from ..errors import PatientNotFound, StructuralParseFailure, TransportUnavailable
from ..utils import mask_identifier, parse_date_range, parse_flexible_date
from .segments import EDISegment, Separators, tokenize, validate_structure

logger = logging.getLogger(__name__)

# EB01 information codes
EB_ACTIVE = "1"
EB_INACTIVE = "6"
EB_COINSURANCE = "A"
EB_COPAY = "B"
EB_DEDUCTIBLE = "C"
EB_OUT_OF_POCKET = "G"
BENEFIT_CODES = {EB_COINSURANCE, EB_COPAY, EB_DEDUCTIBLE, EB_OUT_OF_POCKET}

# EB06 time period qualifier
TIME_PERIOD_REMAINING = "29"

COVERAGE_LEVEL_INDIVIDUAL = "IND"

# DTP qualifiers
PLAN_BEGIN_QUALIFIERS = {"291", "346"}
PLAN_END_QUALIFIERS = {"292", "347"}

# AAA03 reject reasons meaning the payer could not answer right now
PAYER_UNAVAILABLE_CODES = {"42", "79", "80"}


@dataclass
class X12Benefit:
    """One EB segment with a benefit amount or percent."""

    info_code: str
    coverage_level: str = ""
    service_types: list[str] = field(default_factory=list)
    time_period: str = ""
    amount: float | None = None
    percent: float | None = None
    in_network: str = ""
    procedure_code: str | None = None

    @property
    def is_remaining(self) -> bool:
        return self.time_period == TIME_PERIOD_REMAINING

    @property
    def is_individual(self) -> bool:
        """True unless the payer scoped the benefit to another coverage level."""
        return not self.coverage_level or self.coverage_level == COVERAGE_LEVEL_INDIVIDUAL


@dataclass
class X12Rejection:
    """AAA segment."""

    segment: str
    reason_code: str
    follow_up: str = ""


@dataclass
class X12EligibilityResponse:
    """Parsed 271 transaction."""

    subscriber_first_name: str = ""
    subscriber_last_name: str = ""
    member_id: str = ""
    payer_name: str = ""
    trace_number: str = ""
    active_flag: bool | None = None
    effective_date: date | None = None
    termination_date: date | None = None
    benefits: list[X12Benefit] = field(default_factory=list)
    rejections: list[X12Rejection] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)

    @property
    def subscriber_name(self) -> str | None:
        name = f"{self.subscriber_first_name} {self.subscriber_last_name}".strip()
        return name or None

    def is_active(self, on: date | None = None) -> bool:
        """Explicit EB status wins; otherwise check the plan date window."""
        if self.active_flag is not None:
            return self.active_flag
        if self.effective_date is None:
            return False
        on = on or date.today()
        termination = self.termination_date or date.max
        return self.effective_date <= on <= termination

    def raise_for_rejections(self, provider_id: str | None = None) -> None:
        """Turn AAA rejections into verification errors.

        Raises:
            TransportUnavailable: If the payer could not respond right now
            PatientNotFound: For any other rejection (subscriber not found,
                invalid member id, name or birth date mismatch)
        """
        if not self.rejections:
            return
        codes = [r.reason_code for r in self.rejections]
        if any(code in PAYER_UNAVAILABLE_CODES for code in codes):
            raise TransportUnavailable(
                f"Payer unable to respond (AAA {', '.join(codes)})", provider_id
            )
        raise PatientNotFound(
            f"Payer rejected the subscriber (AAA {', '.join(codes)})", provider_id
        )


class EDI271Parser:
    """Parser for 271 eligibility responses."""

    def parse(self, content: str, provider_id: str | None = None) -> X12EligibilityResponse:
        """Validate and parse a 271 message.

        Args:
            content: Raw X12 message
            provider_id: Payer the message came from (for error context)

        Returns:
            Parsed response

        Raises:
            StructuralParseFailure: If the envelope is invalid
        """
        errors = validate_structure(content)
        if errors:
            logger.warning(
                f"271 failed structural validation with {len(errors)} error(s)",
                extra={"provider_id": provider_id, "errors": errors},
            )
            raise StructuralParseFailure(
                f"Invalid X12 271: {errors[0]}", errors=errors, provider_id=provider_id
            )

        separators, segments = tokenize(content)
        result = X12EligibilityResponse()
        in_benefit_loop = False

        for segment in segments:
            seg_id = segment.id

            if seg_id == "NM1":
                self._parse_nm1(segment, result)

            elif seg_id == "TRN" and not result.trace_number:
                result.trace_number = segment.get(1)

            elif seg_id == "DTP" and not in_benefit_loop:
                # 2100C plan dates; 2110C DTPs are benefit specific
                self._parse_dtp(segment, result)

            elif seg_id == "EB":
                in_benefit_loop = True
                self._parse_eb(segment, result, separators)

            elif seg_id == "AAA":
                result.rejections.append(
                    X12Rejection(
                        segment=segment.get(1),
                        reason_code=segment.get(2),
                        follow_up=segment.get(3),
                    )
                )

            elif seg_id == "MSG" and segment.get(0):
                result.messages.append(segment.get(0))

            elif seg_id == "HL":
                in_benefit_loop = False

        logger.debug(
            f"Parsed 271 for member {mask_identifier(result.member_id)}",
            extra={
                "provider_id": provider_id,
                "benefit_count": len(result.benefits),
                "rejection_count": len(result.rejections),
            },
        )
        return result

    def _parse_nm1(self, segment: EDISegment, result: X12EligibilityResponse) -> None:
        entity = segment.get(0)
        if entity == "IL":
            result.subscriber_last_name = segment.get(2)
            result.subscriber_first_name = segment.get(3)
            if segment.get(7) == "MI":
                result.member_id = segment.get(8)
        elif entity == "PR":
            result.payer_name = segment.get(2)

    def _parse_dtp(self, segment: EDISegment, result: X12EligibilityResponse) -> None:
        qualifier = segment.get(0)
        date_format = segment.get(1)
        value = segment.get(2)

        if date_format == "RD8":
            start, end = parse_date_range(value)
        else:
            start = end = parse_flexible_date(value)

        if qualifier in PLAN_BEGIN_QUALIFIERS:
            result.effective_date = start
            if date_format == "RD8" and end:
                result.termination_date = end
        elif qualifier in PLAN_END_QUALIFIERS:
            result.termination_date = end

    def _parse_eb(
        self, segment: EDISegment, result: X12EligibilityResponse, separators: Separators
    ) -> None:
        info_code = segment.get(0)

        if info_code == EB_ACTIVE:
            result.active_flag = True
            return
        if info_code == EB_INACTIVE:
            if result.active_flag is None:
                result.active_flag = False
            return
        if info_code not in BENEFIT_CODES:
            return

        service_types = segment.repetitions(2, separators.repetition)
        procedure = segment.components(12, separators.component)

        result.benefits.append(
            X12Benefit(
                info_code=info_code,
                coverage_level=segment.get(1),
                service_types=service_types,
                time_period=segment.get(5),
                amount=_to_float(segment.get(6)),
                percent=_to_float(segment.get(7)),
                in_network=segment.get(11),
                procedure_code=procedure[1].upper() if len(procedure) > 1 else None,
            )
        )


def _to_float(value: str) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
