"""
Phone number canonicalization.

Customers type their number in many shapes: with or without the country code,
with punctuation, with or without the extra leading 9 on mobile numbers. All
of them collapse to one canonical identity: "55" + area code + 8-digit
subscriber number.
"""

import re
from typing import Optional

COUNTRY_PREFIX = "55"

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw) -> Optional[str]:
    """
    Canonicalize a raw phone string.

    Returns:
        "55" + area code + subscriber number, or None if the input does not
        have 10 or 11 digits once the country prefix is removed.
    """
    if not isinstance(raw, str):
        return None

    digits = _NON_DIGITS.sub("", raw)
    if digits.startswith(COUNTRY_PREFIX):
        digits = digits[len(COUNTRY_PREFIX):]

    if len(digits) not in (10, 11):
        return None

    area_code, number = digits[:2], digits[2:]
    # Mobile numbers gained a leading 9; store the legacy 8-digit form
    if len(number) == 9 and number.startswith("9"):
        number = number[1:]

    return f"{COUNTRY_PREFIX}{area_code}{number}"


def storage_key(canonical: str) -> str:
    """Strip the country prefix; customer rows are keyed without it."""
    if canonical.startswith(COUNTRY_PREFIX):
        return canonical[len(COUNTRY_PREFIX):]
    return canonical


def messaging_address(canonical: str, suffix: str = "@c.us") -> str:
    return f"{canonical}{suffix}"
