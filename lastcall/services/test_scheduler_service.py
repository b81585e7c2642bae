"""
Tests for time-slot bucketing and the slot sweep

Run with: pytest lastcall/services/test_scheduler_service.py -v
"""

import asyncio
import pytest
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, patch
from zoneinfo import ZoneInfo

from conftest import FakeMessenger
from ..core.redis import acquire_slot_lock, RedisKeyspace, SLOT_LOCK_TTL
from .scheduler_service import (
    local_day_window,
    next_slot_fire,
    process_time_slot,
    resolve_time_slot,
    run_slot_scheduler,
    seconds_until,
)

NY = ZoneInfo("America/New_York")
DAY = date(2025, 6, 16)


def ny(hour, minute=0, day=DAY):
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=NY)


class TestResolveTimeSlot:

    @pytest.mark.parametrize("hour,slot", [
        (0, "morning"),
        (11, "morning"),
        (12, "afternoon"),
        (16, "afternoon"),
        (17, "evening"),
        (23, "evening"),
    ])
    def test_boundaries(self, hour, slot):
        assert resolve_time_slot(ny(hour, 59 if hour in (11, 16) else 0), NY) == slot

    def test_uses_local_hour_not_utc(self):
        # 02:00 UTC is 22:00 the previous evening in New York
        assert resolve_time_slot(datetime(2025, 6, 17, 2, 0, tzinfo=timezone.utc), NY) == "evening"

    def test_naive_is_utc(self):
        assert resolve_time_slot(datetime(2025, 6, 16, 15, 0), NY) == "morning"  # 11:00 EDT


class TestNextSlotFire:

    def test_before_morning(self):
        slot, fire_at = next_slot_fire(ny(6), NY)
        assert slot == "morning"
        assert fire_at == ny(10)

    def test_exactly_on_fire_time_moves_on(self):
        slot, fire_at = next_slot_fire(ny(15), NY)
        assert slot == "evening"
        assert fire_at == ny(20)

    def test_after_evening_rolls_to_tomorrow(self):
        slot, fire_at = next_slot_fire(ny(21), NY)
        assert slot == "morning"
        assert fire_at == ny(10, day=date(2025, 6, 17))

    def test_local_day_window(self):
        start, end = local_day_window(DAY, NY)
        assert start == datetime(2025, 6, 16, 4, 0, tzinfo=timezone.utc)
        assert end == datetime(2025, 6, 17, 4, 0, tzinfo=timezone.utc)


class TestDaylightSaving:
    """Waits are measured in real seconds, not wall-clock hours"""

    def test_fall_back_night_is_an_hour_longer(self):
        now = datetime(2026, 10, 31, 20, 0, 1, tzinfo=NY)
        slot, fire_at = next_slot_fire(now, NY)

        assert (slot, fire_at) == ("morning", datetime(2026, 11, 1, 10, 0, tzinfo=NY))
        assert seconds_until(fire_at, now) == 53999.0

    def test_spring_forward_night_is_an_hour_shorter(self):
        now = datetime(2026, 3, 7, 20, 0, 1, tzinfo=NY)
        _, fire_at = next_slot_fire(now, NY)
        assert seconds_until(fire_at, now) == 46799.0

    def test_never_negative(self):
        assert seconds_until(ny(10), ny(11)) == 0.0


@pytest.mark.asyncio
class TestSchedulerLoop:

    async def test_sleeps_real_seconds_across_fall_back(self, store, messenger):
        fixed = datetime(2026, 11, 1, 0, 0, 1, tzinfo=timezone.utc)  # 20:00:01 EDT on Oct 31
        sleep = AsyncMock(side_effect=asyncio.CancelledError)

        with patch("lastcall.services.scheduler_service.asyncio.sleep", sleep):
            with pytest.raises(asyncio.CancelledError):
                await run_slot_scheduler(store, messenger, clock=lambda: fixed)

        sleep.assert_awaited_once_with(53999.0)


@pytest.mark.asyncio
class TestProcessTimeSlot:

    async def test_sends_only_due_blasts(self, store, messenger, account):
        store.add_recipient(account)
        due = store.add_blast(account, status="scheduled", time_slot="evening", scheduled_date=ny(19))
        other_slot = store.add_blast(account, status="scheduled", time_slot="morning", scheduled_date=ny(9))
        other_day = store.add_blast(
            account, status="scheduled", time_slot="evening", scheduled_date=ny(19, day=date(2025, 6, 17))
        )
        draft = store.add_blast(account, status="draft", time_slot="evening", scheduled_date=ny(19))

        summary = await process_time_slot(store, messenger, "evening", DAY)

        assert summary.blasts_found == 1
        assert summary.blasts_sent == 1
        assert store.blasts[due.id].status == "sent"
        for untouched in (other_slot, other_day):
            assert store.blasts[untouched.id].status == "scheduled"
        assert store.blasts[draft.id].status == "draft"
        assert len(messenger.sent) == 1

    async def test_empty_audience_stays_scheduled(self, store, messenger, account):
        blast = store.add_blast(account, status="scheduled", time_slot="morning", scheduled_date=ny(10))

        summary = await process_time_slot(store, messenger, "morning", DAY)

        assert summary.blasts_empty == 1
        assert store.blasts[blast.id].status == "scheduled"
        assert messenger.sent == []

    async def test_one_bad_blast_does_not_stop_the_others(self, store, account):
        store.add_recipient(account)
        second = store.add_account(name="Second Bar", slug="second-bar", phone_number="+15550000002")
        store.add_recipient(second)
        bad = store.add_blast(account, status="scheduled", time_slot="afternoon", scheduled_date=ny(13), message=" ")
        good = store.add_blast(second, status="scheduled", time_slot="afternoon", scheduled_date=ny(14))
        messenger = FakeMessenger()

        summary = await process_time_slot(store, messenger, "afternoon", DAY, max_concurrent_accounts=1)

        assert summary.accounts == 2
        assert summary.blasts_failed == 1
        assert summary.blasts_sent == 1
        assert store.blasts[bad.id].status == "scheduled"
        assert store.blasts[good.id].status == "sent"

    async def test_locked_accounts_are_skipped(self, store, messenger):
        locked = store.add_account(is_locked=True)
        store.add_recipient(locked)
        blast = store.add_blast(locked, status="scheduled", time_slot="evening", scheduled_date=ny(18))

        summary = await process_time_slot(store, messenger, "evening", DAY)

        assert summary.accounts == 0
        assert store.blasts[blast.id].status == "scheduled"

    async def test_unknown_slot(self, store, messenger):
        with pytest.raises(ValueError):
            await process_time_slot(store, messenger, "midnight", DAY)

    async def test_account_error_is_contained(self, store, messenger, account):
        store.list_due_blasts = AsyncMock(side_effect=RuntimeError("db down"))
        summary = await process_time_slot(store, messenger, "morning", DAY)
        assert summary.blasts_found == 0


@pytest.mark.asyncio
class TestSlotLock:

    async def test_lock_key_and_ttl(self):
        redis_client = AsyncMock()
        redis_client.set.return_value = True

        assert await acquire_slot_lock(redis_client, "2025-06-16", "evening") is True

        redis_client.set.assert_awaited_once_with(
            RedisKeyspace.slot_lock("2025-06-16", "evening"), "1", nx=True, ex=SLOT_LOCK_TTL
        )

    async def test_lock_already_held(self):
        redis_client = AsyncMock()
        redis_client.set.return_value = None
        assert await acquire_slot_lock(redis_client, "2025-06-16", "evening") is False
