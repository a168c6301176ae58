"""Log sanitization utilities.

Member ids, names and dates of birth are PHI and must never reach the
logs in clear text.
"""

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def sanitize_log_value(value: object, max_length: int = 200) -> str:
    """Make an arbitrary value safe to interpolate into a log line.

    Prevents:
    - Log injection (newlines, control characters)
    - Excessively long payload excerpts

    Args:
        value: Any value, typically a vendor error string
        max_length: Maximum length of the returned string

    Returns:
        A single-line string
    """
    if value is None:
        return ""
    text = _CONTROL_CHARS.sub(" ", str(value))
    if len(text) > max_length:
        text = text[: max_length - 3] + "..."
    return text


def mask_identifier(value: str | None, visible: int = 4) -> str:
    """Mask all but the last few characters of an identifier.

    Examples:
        >>> mask_identifier("W123456789")
        '******6789'
        >>> mask_identifier("12")
        '**'
    """
    if not value:
        return "unknown"
    value = sanitize_log_value(value)
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
