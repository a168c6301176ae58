"""ANSI X12 270/271 eligibility transactions."""

from .edi_270 import (
    SERVICE_TYPE_BY_PROCEDURE,
    SERVICE_TYPE_DEFAULT,
    EDI270Builder,
    service_type_for,
)
from .edi_271 import EDI271Parser, X12Benefit, X12EligibilityResponse, X12Rejection
from .segments import EDISegment, Separators, tokenize, validate_structure

__all__ = [
    "EDI270Builder",
    "EDI271Parser",
    "EDISegment",
    "Separators",
    "SERVICE_TYPE_BY_PROCEDURE",
    "SERVICE_TYPE_DEFAULT",
    "X12Benefit",
    "X12EligibilityResponse",
    "X12Rejection",
    "service_type_for",
    "tokenize",
    "validate_structure",
]
