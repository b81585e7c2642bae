"""Phone number helpers. All stored numbers are E.164 (+15551234567)."""

import re
from typing import Optional

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: Optional[str], default_country_code: str = "1") -> Optional[str]:
    """
    Normalize a US-style phone number to E.164.

    Accepts "(555) 123-4567", "555.123.4567", "15551234567", "+1 555 123 4567".
    Returns None when the input cannot be a valid number.
    """
    if not raw:
        return None

    raw = raw.strip()
    digits = _NON_DIGITS.sub("", raw)
    if not digits:
        return None

    if raw.startswith("+"):
        # Already international, keep the caller's country code
        return f"+{digits}" if 8 <= len(digits) <= 15 else None

    if len(digits) == 10:
        return f"+{default_country_code}{digits}"
    if len(digits) == 11 and digits.startswith(default_country_code):
        return f"+{digits}"
    return None
