"""
Tests for recipient targeting: age calculation, gender mapping, filter resolution

Run with: pytest lastcall/services/test_targeting.py -v
"""

import pytest
from datetime import date, datetime

from ..core.exceptions import ValidationError
from .targeting import (
    TargetingFilter,
    calculate_age,
    count_recipients,
    matches,
    normalize_gender,
    parse_age_range,
    resolve_recipients,
)


AS_OF = date(2025, 6, 15)


class TestCalculateAge:
    """Whole-year age with the birthday boundary"""

    def test_day_before_birthday(self):
        assert calculate_age("1990-01-31", date(2025, 1, 30)) == 34

    def test_on_birthday(self):
        assert calculate_age("1990-01-31", date(2025, 1, 31)) == 35

    def test_accepts_dates_datetimes_and_us_format(self):
        assert calculate_age(date(2000, 6, 15), AS_OF) == 25
        assert calculate_age(datetime(2000, 6, 16, 12, 0), AS_OF) == 24
        assert calculate_age("06/15/2000", AS_OF) == 25
        assert calculate_age("2000-06-15T00:00:00Z", AS_OF) == 25

    def test_leap_day_birthday(self):
        assert calculate_age(date(2004, 2, 29), date(2025, 2, 28)) == 20
        assert calculate_age(date(2004, 2, 29), date(2025, 3, 1)) == 21

    @pytest.mark.parametrize("value", [None, "", "not a date", "13/45/1990", "1990-02-30"])
    def test_unknown_age(self, value):
        assert calculate_age(value, AS_OF) is None

    def test_later_birthdate_never_older(self):
        ages = [calculate_age(date(1990, m, 1), AS_OF) for m in range(1, 13)]
        assert ages == sorted(ages, reverse=True)


class TestNormalizeGender:

    @pytest.mark.parametrize("raw,expected", [
        ("male", "Man"),
        ("Man", "Man"),
        ("M", "Man"),
        ("female", "Woman"),
        (" WOMAN ", "Woman"),
        ("non-binary", "Non-binary"),
        ("nb", "Non-binary"),
        ("other", "Other"),
        ("", "Prefer not to say"),
        (None, "Prefer not to say"),
        ("prefer not to say", "Prefer not to say"),
        ("something else", "Prefer not to say"),
    ])
    def test_mapping(self, raw, expected):
        assert normalize_gender(raw) == expected


class TestParseAgeRange:

    def test_closed_range(self):
        assert parse_age_range("21-25") == (21, 25)

    def test_open_range(self):
        assert parse_age_range("40+") == (40, None)

    @pytest.mark.parametrize("value", [None, "", "all", "ALL"])
    def test_no_filter(self, value):
        assert parse_age_range(value) is None

    @pytest.mark.parametrize("value", ["21", "25-21", "twenty-five", "21-"])
    def test_malformed(self, value):
        with pytest.raises(ValidationError):
            parse_age_range(value)


class TestTargetingFilter:

    def test_from_dict_normalizes_and_round_trips(self):
        f = TargetingFilter.from_dict({"genders": ["female", "Woman"], "age_range": "21-25"})
        assert f.genders == ["Woman"]
        assert f.age_range == (21, 25)
        assert f.to_dict() == {"genders": ["Woman"], "age_range": "21-25", "membership_status": "all"}

    def test_all_means_no_filter(self):
        f = TargetingFilter.from_dict({"genders": "all", "age_range": "all", "membership_status": "all"})
        assert f == TargetingFilter()

    def test_unknown_age_excluded_from_bounded_range(self, store, account):
        r = store.add_recipient(account, birthdate=None)
        assert matches(r, TargetingFilter(age_range=(21, 25)), AS_OF) is False
        assert matches(r, TargetingFilter(), AS_OF) is True

    def test_membership_filter(self, store, account):
        member = store.add_recipient(account, membership_status="member")
        guest = store.add_recipient(account, membership_status=None)
        f = TargetingFilter(membership_status="member")
        assert matches(member, f, AS_OF)
        assert not matches(guest, f, AS_OF)


@pytest.mark.asyncio
class TestResolveRecipients:

    async def test_age_range_scenario(self, store, account):
        """Ages 20, 23, 25, 26 and one without birthdate; only 23 and 25 land in 21-25"""
        ages = {20: date(2005, 1, 1), 23: date(2002, 1, 1), 25: date(2000, 1, 1), 26: date(1999, 1, 1)}
        expected = set()
        for age, born in ages.items():
            r = store.add_recipient(account, birthdate=born)
            if age in (23, 25):
                expected.add(r.id)
        store.add_recipient(account, birthdate=None)

        resolved = await resolve_recipients(
            store, account.id, TargetingFilter.from_dict({"age_range": "21-25"}), AS_OF
        )
        assert {r.id for r in resolved} == expected

    async def test_excludes_ineligible(self, store, account):
        ok = store.add_recipient(account)
        store.add_recipient(account, consent=False)
        store.add_recipient(account, subscribe=False)
        store.add_recipient(account, phone_number=None)

        resolved = await resolve_recipients(store, account.id, TargetingFilter(), AS_OF)
        assert [r.id for r in resolved] == [ok.id]

    async def test_scoped_to_account(self, store, account):
        other = store.add_account(name="Other", slug="other", phone_number="+15550000000")
        mine = store.add_recipient(account)
        store.add_recipient(other)

        resolved = await resolve_recipients(store, account.id, None, AS_OF)
        assert [r.id for r in resolved] == [mine.id]

    async def test_idempotent_and_read_only(self, store, account):
        store.add_recipient(account, gender="female", birthdate=date(1995, 3, 3))
        store.add_recipient(account, gender="male", birthdate=date(1995, 3, 3))
        f = TargetingFilter.from_dict({"genders": ["Woman"]})

        first = await resolve_recipients(store, account.id, f, AS_OF)
        second = await resolve_recipients(store, account.id, f, AS_OF)
        assert [r.id for r in first] == [r.id for r in second]
        assert len(first) == 1
        assert store.writes == []

    async def test_count_recipients(self, store, account):
        store.add_recipient(account)
        store.add_recipient(account)
        assert await count_recipients(store, account.id, None, AS_OF) == 2
