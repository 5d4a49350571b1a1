"""
String, contact and coordinate sanitizers.

All functions are pure and accept arbitrary raw values (str, int, float, None)
as they come out of JSON or CSV sources.
"""

import math
import re
from typing import Any

from facility_etl.core.constants import MAX_STRING_LENGTH, URL_PATTERN, ZIP_PATTERN

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_WHITESPACE = re.compile(r"\s+")
_NON_DIGITS = re.compile(r"\D")
_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
_URL = re.compile(URL_PATTERN)
_ZIP = re.compile(ZIP_PATTERN)

TRAILING_URL_PUNCTUATION = ".,;:"


def sanitize_string(value: Any, max_length: int | None = MAX_STRING_LENGTH) -> str:
    """
    Trim, strip control characters and collapse whitespace.

    Args:
        value: Raw value (None becomes "")
        max_length: Maximum length of the result (None for no cap)

    Returns:
        Clean string, at most max_length characters
    """
    if value is None:
        return ""
    text = _WHITESPACE.sub(" ", str(value))
    text = _CONTROL_CHARS.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    if max_length is None:
        return text
    return text[:max_length].rstrip()


def format_phone(value: Any) -> str:
    """
    Format US phone numbers as (NNN) NNN-NNNN.

    10 digits, or 11 digits with a leading 1, are formatted; anything else is
    returned sanitized but otherwise untouched.
    """
    text = sanitize_string(value)
    if not text:
        return ""
    digits = _NON_DIGITS.sub("", text)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return text


def is_valid_url(value: str) -> bool:
    return bool(_URL.match(value))


def sanitize_url(value: Any) -> str:
    """
    Normalize a website URL, or return "" when it cannot be made valid.

    Strips trailing punctuation, lower-cases the scheme and prepends https://
    when no scheme is present. A URL longer than MAX_STRING_LENGTH is dropped
    rather than truncated.
    """
    text = sanitize_string(value, max_length=None).rstrip(TRAILING_URL_PUNCTUATION)
    if not text:
        return ""
    scheme = _SCHEME.match(text)
    if scheme:
        text = scheme.group(0).lower() + text[scheme.end():]
    else:
        text = f"https://{text}"
    if len(text) > MAX_STRING_LENGTH:
        return ""
    return text if is_valid_url(text) else ""


def parse_coordinate(value: Any, lower: float, upper: float) -> float | None:
    """
    Parse a coordinate and check its range.

    Returns:
        The coordinate, or None when missing, non-numeric or out of range
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    if number < lower or number > upper:
        return None
    return number


def normalize_state(value: Any) -> str:
    return sanitize_string(value).upper()


def normalize_zip(value: Any) -> str:
    """Return ZIP or ZIP+4, "" when malformed. Nine bare digits become ZIP+4."""
    text = sanitize_string(value)
    if _ZIP.match(text):
        return text
    digits = _NON_DIGITS.sub("", text)
    if len(digits) == 9 and len(text) == 9:
        return f"{digits[:5]}-{digits[5:]}"
    return ""
