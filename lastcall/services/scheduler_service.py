"""
Time-slot scheduler.

Scheduled blasts are bucketed into three daily slots by the local hour of
their scheduled date. At each slot's fire time every account's due blasts
for that slot and day are handed to send_blast_now. Slots missed while the
process was down are not replayed.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple, Dict, Callable
from zoneinfo import ZoneInfo
import asyncio
import logging

from fastapi import HTTPException

from ..config import settings
from ..core.exceptions import ConflictError, NoRecipientsError
from ..core.redis import acquire_slot_lock
from ..models import Account
from .blast_service import send_blast_now

logger = logging.getLogger(__name__)

SLOT_MORNING = "morning"
SLOT_AFTERNOON = "afternoon"
SLOT_EVENING = "evening"
TIME_SLOTS = (SLOT_MORNING, SLOT_AFTERNOON, SLOT_EVENING)


def scheduler_tz(name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(name or settings.scheduler_timezone)


def resolve_time_slot(
    when: datetime,
    tz: Optional[ZoneInfo] = None,
    afternoon_start: Optional[int] = None,
    evening_start: Optional[int] = None,
) -> str:
    """
    Bucket a datetime into morning / afternoon / evening by its local hour.

    Naive datetimes are taken as UTC.
    """
    tz = tz or scheduler_tz()
    afternoon_start = settings.afternoon_start_hour if afternoon_start is None else afternoon_start
    evening_start = settings.evening_start_hour if evening_start is None else evening_start

    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    hour = when.astimezone(tz).hour

    if hour < afternoon_start:
        return SLOT_MORNING
    if hour >= evening_start:
        return SLOT_EVENING
    return SLOT_AFTERNOON


def local_today(now: Optional[datetime] = None, tz: Optional[ZoneInfo] = None) -> date:
    tz = tz or scheduler_tz()
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).date()


def _parse_clock(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def slot_fire_times() -> Dict[str, time]:
    """Local wall-clock time at which each slot fires"""
    return {
        SLOT_MORNING: _parse_clock(settings.morning_send_time),
        SLOT_AFTERNOON: _parse_clock(settings.afternoon_send_time),
        SLOT_EVENING: _parse_clock(settings.evening_send_time),
    }


def next_slot_fire(now: Optional[datetime] = None, tz: Optional[ZoneInfo] = None) -> Tuple[str, datetime]:
    """Next (slot, fire_at) strictly after now. fire_at is timezone-aware in the scheduler zone."""
    tz = tz or scheduler_tz()
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local_now = now.astimezone(tz)

    fire_times = sorted(slot_fire_times().items(), key=lambda item: item[1])
    for day_offset in (0, 1):
        day = local_now.date() + timedelta(days=day_offset)
        for slot, clock in fire_times:
            fire_at = datetime.combine(day, clock, tzinfo=tz)
            if fire_at > local_now:
                return slot, fire_at

    # Unreachable with three fire times per day
    raise RuntimeError("No slot fire time found")


def seconds_until(fire_at: datetime, now: Optional[datetime] = None) -> float:
    """
    Real seconds from now until fire_at, never negative.

    Both ends go through UTC: subtracting two datetimes that share a ZoneInfo
    compares wall clocks and loses the hour gained or lost at a DST change.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    delta = fire_at.astimezone(timezone.utc) - now.astimezone(timezone.utc)
    return max(0.0, delta.total_seconds())


def local_day_window(day: date, tz: Optional[ZoneInfo] = None) -> Tuple[datetime, datetime]:
    """UTC bounds [start, end) of a local calendar day"""
    tz = tz or scheduler_tz()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


@dataclass
class SlotRunSummary:
    """Counts from one slot sweep"""
    slot: str
    day: date
    accounts: int = 0
    blasts_found: int = 0
    blasts_sent: int = 0
    blasts_skipped: int = 0
    blasts_empty: int = 0
    blasts_failed: int = 0


async def _process_account(store, messenger, account: Account, slot: str, day: date, summary: SlotRunSummary):
    window_start, window_end = local_day_window(day)
    blasts = await store.list_due_blasts(account.id, slot, window_start, window_end)
    summary.blasts_found += len(blasts)

    for blast in blasts:
        try:
            await send_blast_now(store, messenger, account.id, blast.id)
            summary.blasts_sent += 1
        except NoRecipientsError:
            # Stays scheduled; nothing was sent
            summary.blasts_empty += 1
            logger.warning(f"[SCHEDULER] Blast {blast.id} ({account.slug}) has no matching recipients, left scheduled")
        except ConflictError as e:
            summary.blasts_skipped += 1
            logger.info(f"[SCHEDULER] Blast {blast.id} skipped: {e.detail}")
        except HTTPException as e:
            summary.blasts_failed += 1
            logger.error(f"[SCHEDULER] Blast {blast.id} rejected: {e.detail}")
        except Exception as e:
            summary.blasts_failed += 1
            logger.error(f"[SCHEDULER] Blast {blast.id} failed: {type(e).__name__}: {e}")


async def process_time_slot(
    store,
    messenger,
    slot: str,
    today: Optional[date] = None,
    max_concurrent_accounts: Optional[int] = None,
) -> SlotRunSummary:
    """Dispatch every blast scheduled for this slot on this local day, across all active accounts"""
    if slot not in TIME_SLOTS:
        raise ValueError(f"Unknown time slot '{slot}'")
    today = today or local_today()
    summary = SlotRunSummary(slot=slot, day=today)

    accounts = await store.list_accounts()
    summary.accounts = len(accounts)
    logger.info(f"[SCHEDULER] Processing {slot} slot for {today.isoformat()} across {len(accounts)} accounts")

    semaphore = asyncio.Semaphore(max_concurrent_accounts or settings.scheduler_max_concurrent_accounts)

    async def _guarded(account: Account):
        async with semaphore:
            try:
                await _process_account(store, messenger, account, slot, today, summary)
            except Exception as e:
                logger.error(f"[SCHEDULER] Account {account.slug} failed during {slot} slot: {type(e).__name__}: {e}")

    await asyncio.gather(*[_guarded(a) for a in accounts])

    logger.info(
        f"[SCHEDULER] {slot} slot done: {summary.blasts_sent}/{summary.blasts_found} sent, "
        f"{summary.blasts_empty} empty, {summary.blasts_skipped} skipped, {summary.blasts_failed} failed"
    )
    return summary


async def run_slot_scheduler(store, messenger, redis_client=None, clock: Optional[Callable[[], datetime]] = None):
    """Main loop: sleep until the next slot fires, claim it, process it."""
    clock = clock or (lambda: datetime.now(timezone.utc))
    logger.info(f"[SCHEDULER] Slot scheduler started ({settings.scheduler_timezone})")
    tz = scheduler_tz()
    last_fire: Optional[datetime] = None

    while True:
        now = clock()
        if last_fire is not None and now < last_fire:
            now = last_fire
        slot, fire_at = next_slot_fire(now, tz)
        delay = seconds_until(fire_at, clock())
        logger.info(f"[SCHEDULER] Next slot: {slot} at {fire_at.isoformat()} (in {delay / 60:.1f} min)")

        await asyncio.sleep(delay)
        last_fire = fire_at
        day = fire_at.date()

        if redis_client is not None:
            try:
                if not await acquire_slot_lock(redis_client, day.isoformat(), slot):
                    continue
            except Exception as e:
                # The per-blast claim still prevents double sends
                logger.warning(f"[SCHEDULER] Slot lock unavailable, proceeding: {e}")

        try:
            await process_time_slot(store, messenger, slot, day)
        except Exception as e:
            logger.error(f"[SCHEDULER] Error in {slot} slot: {type(e).__name__}: {e}")
