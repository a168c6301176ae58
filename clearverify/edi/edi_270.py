"""EDI 270 eligibility inquiry builder (005010X279A1).

Loop layout:
- 2000A / 2100A: Information source (payer, NM1*PR)
- 2000B / 2100B: Information receiver (requesting provider, NM1*1P)
- 2000C / 2100C: Subscriber (TRN, NM1*IL, DMG)
- 2110C: Eligibility inquiry (EQ*30 plus a procedure-specific service type)
"""

from __future__ import annotations

import logging
import random
from datetime import datetime

from .. import config
from ..models import EligibilityQuery
from .segments import (
    DEFAULT_COMPONENT_SEPARATOR,
    DEFAULT_ELEMENT_SEPARATOR,
    DEFAULT_REPETITION_SEPARATOR,
    DEFAULT_SEGMENT_TERMINATOR,
)

logger = logging.getLogger(__name__)

IMPLEMENTATION_GUIDE = "005010X279A1"

# Health Benefit Plan Coverage
SERVICE_TYPE_PLAN_COVERAGE = "30"
# Dental Care
SERVICE_TYPE_DEFAULT = "35"

# Dental procedure -> X12 service type code
SERVICE_TYPE_BY_PROCEDURE: dict[str, str] = {
    "D0120": "23",  # Diagnostic dental
    "D0210": "23",  # Diagnostic dental
    "D2391": "25",  # Restorative
    "D6010": "26",  # Endodontics
    "D6065": "27",  # Maxillofacial prosthetics
}


def service_type_for(procedure_code: str) -> str:
    """X12 service type code to inquire about for a procedure."""
    return SERVICE_TYPE_BY_PROCEDURE.get(procedure_code.upper(), SERVICE_TYPE_DEFAULT)


def generate_control_number() -> str:
    """Nine-digit interchange control number."""
    return f"{random.randint(1, 999_999_999):09d}"


class EDI270Builder:
    """Builds 270 inquiries for a single subscriber."""

    def __init__(
        self,
        submitter_id: str = config.SUBMITTER_ID,
        submitter_npi: str = config.SUBMITTER_NPI,
        usage_indicator: str = config.USAGE_INDICATOR,
        element_separator: str = DEFAULT_ELEMENT_SEPARATOR,
        component_separator: str = DEFAULT_COMPONENT_SEPARATOR,
        segment_terminator: str = DEFAULT_SEGMENT_TERMINATOR,
        repetition_separator: str = DEFAULT_REPETITION_SEPARATOR,
    ) -> None:
        self.submitter_id = submitter_id
        self.submitter_npi = submitter_npi
        self.usage_indicator = usage_indicator
        self.element_sep = element_separator
        self.component_sep = component_separator
        self.segment_term = segment_terminator
        self.repetition_sep = repetition_separator

    def build(
        self,
        payer_id: str,
        query: EligibilityQuery,
        now: datetime | None = None,
        control_number: str | None = None,
    ) -> str:
        """Build a complete 270 interchange.

        Args:
            payer_id: Receiver id of the payer (ISA08, GS03, NM1*PR)
            query: Subscriber and procedure being verified
            now: Timestamp for the envelope (defaults to the current time)
            control_number: Interchange control number (generated if omitted)

        Returns:
            The X12 message, one interchange with one transaction set
        """
        now = now or datetime.now()
        control_number = (control_number or generate_control_number()).zfill(9)[-9:]
        group_number = str(int(control_number))
        date8 = now.strftime("%Y%m%d")
        time4 = now.strftime("%H%M")

        payer = self._clean(payer_id)
        submitter = self._clean(self.submitter_id)
        npi = self._clean(query.requesting_provider_id or self.submitter_npi)
        patient = query.patient

        transaction = [
            ["ST", "270", "0001", IMPLEMENTATION_GUIDE],
            ["BHT", "0022", "13", control_number, date8, time4],
            ["HL", "1", "", "20", "1"],
            ["NM1", "PR", "2", payer, "", "", "", "", "PI", payer],
            ["HL", "2", "1", "21", "1"],
            ["NM1", "1P", "2", submitter, "", "", "", "", "XX", npi],
            ["HL", "3", "2", "22", "0"],
            ["TRN", "1", control_number, submitter],
            [
                "NM1", "IL", "1",
                self._clean(patient.last_name),
                self._clean(patient.first_name),
                "", "", "", "MI",
                self._clean(query.member_id),
            ],
            ["DMG", "D8", patient.dob.strftime("%Y%m%d")],
            ["EQ", SERVICE_TYPE_PLAN_COVERAGE],
            ["EQ", service_type_for(query.procedure_code)],
        ]
        # SE01 counts ST through SE inclusive
        transaction.append(["SE", str(len(transaction) + 1), "0001"])

        segments = [
            self._isa(payer, now, control_number),
            self._segment(["GS", "HS", submitter, payer, date8, time4, group_number, "X", IMPLEMENTATION_GUIDE]),
            *(self._segment(elements) for elements in transaction),
            self._segment(["GE", "1", group_number]),
            self._segment(["IEA", "1", control_number]),
        ]

        logger.debug(
            f"Built 270 inquiry for payer {payer_id}",
            extra={"control_number": control_number, "segment_count": len(segments)},
        )
        return "".join(segments)

    def _isa(self, payer: str, now: datetime, control_number: str) -> str:
        """Fixed-width interchange header."""
        elements = [
            "ISA",
            "00", _fixed("", 10),
            "00", _fixed("", 10),
            "ZZ", _fixed(self._clean(self.submitter_id), 15),
            "ZZ", _fixed(payer, 15),
            now.strftime("%y%m%d"),
            now.strftime("%H%M"),
            self.repetition_sep,
            "00501",
            control_number,
            "0",
            self.usage_indicator,
            self.component_sep,
        ]
        return self.element_sep.join(elements) + self.segment_term

    def _segment(self, elements: list[str]) -> str:
        return self.element_sep.join(elements) + self.segment_term

    def _clean(self, value: str) -> str:
        """Remove delimiter characters from a data element."""
        for sep in (
            self.element_sep,
            self.component_sep,
            self.segment_term,
            self.repetition_sep,
        ):
            value = value.replace(sep, " ")
        return value.strip()


def _fixed(value: str, width: int) -> str:
    return value[:width].ljust(width)
