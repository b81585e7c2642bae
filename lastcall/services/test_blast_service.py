"""
Tests for blast dispatch and blast operations

Run with: pytest lastcall/services/test_blast_service.py -v
"""

import asyncio
import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

from conftest import FakeMessenger
from ..core.exceptions import ConflictError, NoRecipientsError, NotFoundError, ValidationError
from ..core.rate_limiter import TokenBucket, create_send_limiter
from .blast_service import (
    create_blast,
    delete_blast,
    dispatch,
    list_blasts,
    list_scheduled,
    preview_recipients,
    schedule_blast,
    send_blast_now,
    unschedule_blast,
    update_blast,
    validate_message,
)

# 2025-06-15 16:00 UTC is 12:00 in New York
NOW = datetime(2025, 6, 15, 16, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
class TestDispatch:
    """Concurrent per-recipient sends"""

    async def test_partial_failure_is_recorded(self, store, account):
        ok = store.add_recipient(account)
        bad = store.add_recipient(account)
        messenger = FakeMessenger(fail_numbers={bad.phone_number})

        report = await dispatch(account, "hi", [ok, bad], messenger, max_concurrency=2)

        assert report.total_attempted == 2
        assert report.success_count == 1
        assert report.failure_count == 1
        assert report.failed_recipients[0].phone_number == bad.phone_number
        assert "carrier rejected" in report.failed_recipients[0].error
        assert report.message_ids == ["msg-1"]

    async def test_timeout_counts_as_failure(self, store, account):
        ok = store.add_recipient(account)
        slow = store.add_recipient(account)
        messenger = FakeMessenger(slow_numbers={slow.phone_number})

        report = await dispatch(account, "hi", [ok, slow], messenger, send_timeout=0.05)

        assert report.success_count == 1
        assert report.failure_count == 1
        assert "Timed out" in report.failed_recipients[0].error

    async def test_concurrency_is_bounded(self, store, account):
        recipients = [store.add_recipient(account) for _ in range(12)]
        messenger = FakeMessenger(delay=0.01)

        report = await dispatch(account, "hi", recipients, messenger, max_concurrency=3)

        assert report.success_count == 12
        assert messenger.max_in_flight <= 3

    async def test_rate_limiter_is_used(self, store, account):
        recipients = [store.add_recipient(account) for _ in range(3)]
        limiter = TokenBucket(rate=1000)
        limiter.acquire = AsyncMock()

        await dispatch(account, "hi", recipients, FakeMessenger(), rate_limiter=limiter)

        assert limiter.acquire.await_count == 3

    @pytest.mark.parametrize("kwargs", [{"max_concurrency": 0}, {"send_timeout": 0}, {"send_timeout": -1.0}])
    async def test_explicit_zero_is_rejected(self, store, account, kwargs):
        messenger = FakeMessenger()
        with pytest.raises(ValueError):
            await dispatch(account, "hi", [store.add_recipient(account)], messenger, **kwargs)
        assert messenger.sent == []

    async def test_defaults_come_from_settings(self, store, account):
        recipients = [store.add_recipient(account) for _ in range(4)]
        messenger = FakeMessenger(delay=0.01)
        with patch("lastcall.services.blast_service.settings.blast_max_concurrency", 2):
            report = await dispatch(account, "hi", recipients, messenger)
        assert report.success_count == 4
        assert messenger.max_in_flight <= 2


class TestSendLimiter:

    def test_sized_from_rate(self):
        limiter = create_send_limiter(5.0)
        assert limiter.rate == 5.0
        assert limiter.capacity == 5.0

    @pytest.mark.parametrize("rate", [0, -1])
    def test_disabled(self, rate):
        assert create_send_limiter(rate) is None


@pytest.mark.asyncio
class TestSendBlastNow:

    async def test_sends_and_records_stats(self, store, messenger, account):
        r1 = store.add_recipient(account, gender="female")
        store.add_recipient(account, gender="male")
        blast = store.add_blast(account, targeting={"genders": ["Woman"]})

        report = await send_blast_now(store, messenger, account.id, blast.id, rate_limiter=TokenBucket(rate=1000))

        assert report.success_count == 1
        assert [m["to"] for m in messenger.sent] == [r1.phone_number]
        stored = store.blasts[blast.id]
        assert stored.status == "sent"
        assert stored.sent_at is not None
        assert stored.delivery_stats["total_attempted"] == 1
        assert stored.delivery_stats["targeting"]["genders"] == ["Woman"]

    async def test_all_failures_still_sent(self, store, account):
        r = store.add_recipient(account)
        blast = store.add_blast(account)
        messenger = FakeMessenger(fail_numbers={r.phone_number})

        report = await send_blast_now(store, messenger, account.id, blast.id, rate_limiter=TokenBucket(rate=1000))

        assert report.failure_count == 1
        assert store.blasts[blast.id].status == "sent"
        assert store.blasts[blast.id].delivery_stats["failed_recipients"][0]["phone_number"] == r.phone_number

    async def test_no_recipients_leaves_blast_untouched(self, store, messenger, account):
        store.add_recipient(account, consent=False)
        blast = store.add_blast(account, status="scheduled")

        with pytest.raises(NoRecipientsError):
            await send_blast_now(store, messenger, account.id, blast.id)

        assert store.blasts[blast.id].status == "scheduled"
        assert store.blasts[blast.id].delivery_stats is None
        assert store.writes == []
        assert messenger.sent == []

    async def test_targeting_override(self, store, messenger, account):
        store.add_recipient(account, gender="female")
        man = store.add_recipient(account, gender="male")
        blast = store.add_blast(account, targeting={"genders": ["Woman"]})

        await send_blast_now(
            store, messenger, account.id, blast.id,
            targeting={"genders": ["Man"]}, rate_limiter=TokenBucket(rate=1000),
        )

        assert [m["to"] for m in messenger.sent] == [man.phone_number]

    async def test_unknown_blast(self, store, messenger, account):
        import uuid
        with pytest.raises(NotFoundError):
            await send_blast_now(store, messenger, account.id, uuid.uuid4())

    @pytest.mark.parametrize("status", ["sending", "sent", "failed"])
    async def test_rejects_non_dispatchable(self, store, messenger, account, status):
        store.add_recipient(account)
        blast = store.add_blast(account, status=status)
        with pytest.raises(ConflictError):
            await send_blast_now(store, messenger, account.id, blast.id)
        assert messenger.sent == []

    async def test_account_without_sender(self, store, messenger):
        account = store.add_account(messaging_profile_id=None)
        store.add_recipient(account)
        blast = store.add_blast(account)
        with pytest.raises(ValidationError):
            await send_blast_now(store, messenger, account.id, blast.id)

    async def test_concurrent_sends_dispatch_once(self, store, account):
        for _ in range(3):
            store.add_recipient(account)
        blast = store.add_blast(account)
        messenger = FakeMessenger(delay=0.01)

        results = await asyncio.gather(
            send_blast_now(store, messenger, account.id, blast.id, rate_limiter=TokenBucket(rate=1000)),
            send_blast_now(store, messenger, account.id, blast.id, rate_limiter=TokenBucket(rate=1000)),
            return_exceptions=True,
        )

        assert sum(isinstance(r, ConflictError) for r in results) == 1
        assert len(messenger.sent) == 3

    async def test_unexpected_error_marks_failed(self, store, messenger, account):
        store.add_recipient(account)
        blast = store.add_blast(account)

        with patch("lastcall.services.blast_service.dispatch", AsyncMock(side_effect=RuntimeError("boom"))):
            with pytest.raises(RuntimeError):
                await send_blast_now(store, messenger, account.id, blast.id)

        assert store.blasts[blast.id].status == "failed"
        assert store.blasts[blast.id].error == "boom"


class TestValidateMessage:

    def test_empty(self):
        with pytest.raises(ValidationError):
            validate_message("   ")

    def test_prohibited_word(self):
        with patch("lastcall.services.blast_service.settings.prohibited_words", "free beer,shots"):
            with pytest.raises(ValidationError):
                validate_message("Free Beer all night")
            assert validate_message("Big screenshots tonight") == "Big screenshots tonight"


@pytest.mark.asyncio
class TestBlastOperations:

    async def test_create_draft(self, store, account):
        blast = await create_blast(store, account.id, "Trivia at 8", {"age_range": "21-30"})
        assert blast.status == "draft"
        assert blast.targeting["age_range"] == "21-30"

    async def test_create_rejects_bad_filter_without_writing(self, store, account):
        with pytest.raises(ValidationError):
            await create_blast(store, account.id, "Trivia at 8", {"age_range": "thirty"})
        assert store.blasts == {}

    async def test_create_scheduled(self, store, account):
        when = datetime(2025, 6, 16, 23, 30, tzinfo=timezone.utc)  # 19:30 New York
        blast = await create_blast(store, account.id, "Karaoke", scheduled_date=when, now=NOW)
        assert blast.status == "scheduled"
        assert blast.time_slot == "evening"

    async def test_schedule_and_unschedule(self, store, account):
        blast = store.add_blast(account)
        when = datetime(2025, 6, 15, 14, 0, tzinfo=timezone.utc)  # 10:00 New York, earlier today

        scheduled = await schedule_blast(store, account.id, blast.id, when, now=NOW)
        assert scheduled.status == "scheduled"
        assert scheduled.time_slot == "morning"
        assert [b.id for b in await list_scheduled(store, account.id)] == [blast.id]

        draft = await unschedule_blast(store, account.id, blast.id)
        assert draft.status == "draft"
        assert draft.scheduled_date is None
        assert draft.time_slot is None

    async def test_schedule_rejects_past_day(self, store, account):
        blast = store.add_blast(account)
        with pytest.raises(ValidationError):
            await schedule_blast(store, account.id, blast.id, NOW - timedelta(days=1), now=NOW)

    async def test_naive_schedule_is_utc(self, store, account):
        blast = store.add_blast(account)
        scheduled = await schedule_blast(store, account.id, blast.id, datetime(2025, 6, 17, 20, 0), now=NOW)
        assert scheduled.scheduled_date.tzinfo is not None
        assert scheduled.time_slot == "afternoon"  # 16:00 New York

    async def test_unschedule_requires_scheduled(self, store, account):
        blast = store.add_blast(account)
        with pytest.raises(ConflictError):
            await unschedule_blast(store, account.id, blast.id)

    async def test_update_only_editable(self, store, account):
        blast = store.add_blast(account)
        updated = await update_blast(store, account.id, blast.id, message="New text")
        assert updated.message == "New text"

        sent = store.add_blast(account, status="sent")
        with pytest.raises(ConflictError):
            await update_blast(store, account.id, sent.id, message="Too late")

    async def test_delete(self, store, account):
        blast = store.add_blast(account)
        await delete_blast(store, account.id, blast.id)
        assert blast.id not in store.blasts

        sending = store.add_blast(account, status="sending")
        with pytest.raises(ConflictError):
            await delete_blast(store, account.id, sending.id)

    async def test_list_by_status(self, store, account):
        store.add_blast(account)
        store.add_blast(account, status="sent")
        assert len(await list_blasts(store, account.id, status="sent")) == 1
        with pytest.raises(ValidationError):
            await list_blasts(store, account.id, status="bogus")

    async def test_preview(self, store, account):
        store.add_recipient(account, birthdate=date(2001, 1, 1))
        store.add_recipient(account, birthdate=date(1980, 1, 1))
        result = await preview_recipients(store, account.id, {"age_range": "21-25"}, as_of=date(2025, 6, 15))
        assert result["count"] == 1
        assert result["targeting"]["age_range"] == "21-25"
