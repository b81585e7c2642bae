"""
Recipient targeting - age calculation, gender normalization and the
filter resolver used by blast dispatch and preview.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, List, Tuple, Union, Any, Dict
import logging
import re
import uuid

from ..core.exceptions import ValidationError
from ..models import Recipient

logger = logging.getLogger(__name__)

ALL = "all"

GENDER_MAN = "Man"
GENDER_WOMAN = "Woman"
GENDER_NON_BINARY = "Non-binary"
GENDER_OTHER = "Other"
GENDER_UNSPECIFIED = "Prefer not to say"

GENDER_CATEGORIES = (GENDER_MAN, GENDER_WOMAN, GENDER_NON_BINARY, GENDER_OTHER, GENDER_UNSPECIFIED)

_GENDER_MAP = {
    "man": GENDER_MAN,
    "male": GENDER_MAN,
    "m": GENDER_MAN,
    "woman": GENDER_WOMAN,
    "female": GENDER_WOMAN,
    "f": GENDER_WOMAN,
    "non-binary": GENDER_NON_BINARY,
    "nonbinary": GENDER_NON_BINARY,
    "nb": GENDER_NON_BINARY,
    "other": GENDER_OTHER,
    "o": GENDER_OTHER,
    "": GENDER_UNSPECIFIED,
    "prefer not to say": GENDER_UNSPECIFIED,
    "not specified": GENDER_UNSPECIFIED,
    "unspecified": GENDER_UNSPECIFIED,
}

_AGE_RANGE = re.compile(r"^\s*(\d{1,3})\s*-\s*(\d{1,3})\s*$")
_AGE_OPEN = re.compile(r"^\s*(\d{1,3})\s*\+\s*$")
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")

BirthdateInput = Union[date, datetime, str, None]


def _coerce_date(value: BirthdateInput) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        match = _US_DATE.match(text)
        if match:
            month, day, year = (int(g) for g in match.groups())
            try:
                return date(year, month, day)
            except ValueError:
                return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    return None


def calculate_age(birthdate: BirthdateInput, as_of: Optional[date] = None) -> Optional[int]:
    """
    Whole years between birthdate and as_of (defaults to today, UTC).

    Returns None when the birthdate is missing or cannot be parsed.
    """
    born = _coerce_date(birthdate)
    if born is None:
        return None
    if as_of is None:
        as_of = datetime.now(timezone.utc).date()
    elif isinstance(as_of, datetime):
        as_of = as_of.date()

    age = as_of.year - born.year
    if (as_of.month, as_of.day) < (born.month, born.day):
        age -= 1
    return age


def normalize_gender(raw: Optional[str]) -> str:
    """Map free-text gender from the signup form to a fixed category"""
    if raw is None:
        return GENDER_UNSPECIFIED
    return _GENDER_MAP.get(raw.strip().lower(), GENDER_UNSPECIFIED)


def parse_age_range(value: Optional[str]) -> Optional[Tuple[int, Optional[int]]]:
    """
    Parse "21-25", "40+" or "all".

    Returns (min, max) with max=None for open ranges, or None for no filter.
    Raises ValidationError on malformed input.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == ALL:
        return None

    match = _AGE_RANGE.match(text)
    if match:
        low, high = int(match.group(1)), int(match.group(2))
        if low > high:
            raise ValidationError(f"Invalid age range '{value}': minimum exceeds maximum")
        return low, high

    match = _AGE_OPEN.match(text)
    if match:
        return int(match.group(1)), None

    raise ValidationError(f"Invalid age range '{value}'. Use 'min-max', 'min+' or 'all'")


@dataclass
class TargetingFilter:
    """Blast audience filter. Empty genders, None age range or None membership mean no filter."""
    genders: List[str] = field(default_factory=list)
    age_range: Optional[Tuple[int, Optional[int]]] = None
    membership_status: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TargetingFilter":
        """Build from the stored/request representation, validating as it goes"""
        if not data:
            return cls()

        raw_genders = data.get("genders") or data.get("gender") or []
        if isinstance(raw_genders, str):
            raw_genders = [raw_genders]
        genders = []
        for g in raw_genders:
            if g is None or str(g).strip().lower() == ALL:
                genders = []
                break
            genders.append(normalize_gender(g))

        membership = data.get("membership_status")
        if membership is not None and str(membership).strip().lower() in ("", ALL):
            membership = None

        return cls(
            genders=sorted(set(genders)),
            age_range=parse_age_range(data.get("age_range")),
            membership_status=membership,
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.age_range is None:
            age_range = ALL
        elif self.age_range[1] is None:
            age_range = f"{self.age_range[0]}+"
        else:
            age_range = f"{self.age_range[0]}-{self.age_range[1]}"
        return {
            "genders": list(self.genders) or ALL,
            "age_range": age_range,
            "membership_status": self.membership_status or ALL,
        }


def matches(recipient: Recipient, targeting: TargetingFilter, as_of: Optional[date] = None) -> bool:
    """Pure predicate: does this recipient satisfy the filter (eligibility excluded)"""
    if targeting.genders and normalize_gender(recipient.gender) not in targeting.genders:
        return False

    if targeting.membership_status is not None:
        if (recipient.membership_status or "").lower() != targeting.membership_status.lower():
            return False

    if targeting.age_range is not None:
        age = calculate_age(recipient.birthdate, as_of)
        if age is None:
            return False
        low, high = targeting.age_range
        if age < low:
            return False
        if high is not None and age > high:
            return False

    return True


async def resolve_recipients(
    store,
    account_id: uuid.UUID,
    targeting: Optional[TargetingFilter] = None,
    as_of: Optional[date] = None,
) -> List[Recipient]:
    """Eligible recipients of an account that match the filter. Read-only."""
    targeting = targeting or TargetingFilter()
    if as_of is None:
        as_of = datetime.now(timezone.utc).date()

    eligible = await store.list_eligible_recipients(account_id)
    resolved = [r for r in eligible if r.is_eligible and matches(r, targeting, as_of)]

    logger.debug(
        f"[BLAST] Account {account_id}: {len(resolved)}/{len(eligible)} eligible recipients match {targeting.to_dict()}"
    )
    return resolved


async def count_recipients(
    store,
    account_id: uuid.UUID,
    targeting: Optional[TargetingFilter] = None,
    as_of: Optional[date] = None,
) -> int:
    return len(await resolve_recipients(store, account_id, targeting, as_of))
