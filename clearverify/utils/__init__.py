"""Shared utility functions for the eligibility core."""

from .date_parser import parse_date_range, parse_flexible_date
from .sanitization import mask_identifier, sanitize_log_value

__all__ = [
    "parse_flexible_date",
    "parse_date_range",
    "mask_identifier",
    "sanitize_log_value",
]
