"""
Blast operations and the dispatch engine.

A blast moves draft -> scheduled -> sending -> sent|failed (or straight from
draft to sending on "send now"). The move to 'sending' is a compare-and-set
in the store, so a scheduler sweep and a manual send can never both dispatch
the same blast.
"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any
import asyncio
import logging
import re
import uuid

from ..config import settings
from ..core.exceptions import (
    ConflictError,
    NoRecipientsError,
    NotFoundError,
    ValidationError,
)
from ..core.logger import mask_phone
from ..core.rate_limiter import TokenBucket, create_send_limiter
from ..models import Account, Blast, Recipient
from ..models.blast import (
    BLAST_DRAFT,
    BLAST_FAILED,
    BLAST_SCHEDULED,
    BLAST_SENDING,
    BLAST_SENT,
    BLAST_STATUSES,
)
from .targeting import TargetingFilter, resolve_recipients

logger = logging.getLogger(__name__)


@dataclass
class FailedSend:
    recipient_id: str
    phone_number: str
    error: str


@dataclass
class DeliveryReport:
    """Aggregated outcome of one dispatch"""
    total_attempted: int = 0
    success_count: int = 0
    failure_count: int = 0
    failed_recipients: List[FailedSend] = field(default_factory=list)
    message_ids: List[str] = field(default_factory=list)

    def to_stats(self, targeting: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Shape stored in blasts.delivery_stats"""
        return {
            "total_attempted": self.total_attempted,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "failed_recipients": [asdict(f) for f in self.failed_recipients],
            "targeting": targeting or {},
        }


# ==================== VALIDATION ====================

def validate_message(message: Optional[str]) -> str:
    """Reject empty, oversized or prohibited message bodies"""
    if message is None or not message.strip():
        raise ValidationError("Message is required")
    if len(message) > settings.blast_max_length:
        raise ValidationError(f"Message exceeds {settings.blast_max_length} characters")

    lowered = message.lower()
    for word in settings.prohibited_word_list:
        if re.search(rf"\b{re.escape(word)}\b", lowered):
            raise ValidationError(f"Message contains prohibited word: '{word}'")
    return message


def _as_utc(when: datetime) -> datetime:
    """Naive datetimes are taken as UTC"""
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


async def _require_account(store, account_id: uuid.UUID) -> Account:
    account = await store.get_account(account_id)
    if account is None:
        raise NotFoundError("Account not found")
    return account


async def _require_blast(store, account_id: uuid.UUID, blast_id: uuid.UUID) -> Blast:
    blast = await store.get_blast(account_id, blast_id)
    if blast is None:
        raise NotFoundError("Blast not found")
    return blast


# ==================== DISPATCH ENGINE ====================

async def dispatch(
    account: Account,
    message: str,
    recipients: List[Recipient],
    messenger,
    *,
    max_concurrency: Optional[int] = None,
    send_timeout: Optional[float] = None,
    rate_limiter: Optional[TokenBucket] = None,
) -> DeliveryReport:
    """
    Send message to every recipient concurrently and aggregate the outcomes.

    Individual failures and timeouts are recorded, never raised.
    """
    if max_concurrency is None:
        max_concurrency = settings.blast_max_concurrency
    if send_timeout is None:
        send_timeout = settings.telnyx_timeout
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be at least 1")
    if send_timeout <= 0:
        raise ValueError("send_timeout must be positive")
    semaphore = asyncio.Semaphore(max_concurrency)

    async def _send_one(recipient: Recipient):
        async with semaphore:
            if rate_limiter is not None:
                await rate_limiter.acquire()
            try:
                result = await asyncio.wait_for(
                    messenger.send_message(
                        to=recipient.phone_number,
                        from_=account.phone_number,
                        text=message,
                        messaging_profile_id=account.messaging_profile_id,
                    ),
                    timeout=send_timeout,
                )
                return recipient, result, None
            except asyncio.TimeoutError:
                return recipient, None, f"Timed out after {send_timeout}s"
            except Exception as e:
                return recipient, None, str(e) or type(e).__name__

    outcomes = await asyncio.gather(*[_send_one(r) for r in recipients])

    report = DeliveryReport(total_attempted=len(recipients))
    for recipient, result, error in outcomes:
        if error is None:
            report.success_count += 1
            if result and result.get("id"):
                report.message_ids.append(result["id"])
        else:
            report.failure_count += 1
            report.failed_recipients.append(FailedSend(
                recipient_id=str(recipient.id),
                phone_number=recipient.phone_number,
                error=error,
            ))
            logger.warning(f"[BLAST] Send to {mask_phone(recipient.phone_number)} failed: {error}")

    return report


async def send_blast_now(
    store,
    messenger,
    account_id: uuid.UUID,
    blast_id: uuid.UUID,
    targeting: Optional[Dict[str, Any]] = None,
    *,
    as_of: Optional[date] = None,
    rate_limiter: Optional[TokenBucket] = None,
) -> DeliveryReport:
    """
    Resolve recipients and dispatch a draft or scheduled blast.

    The blast is left untouched when it is rejected (validation, empty audience,
    lost claim). Once claimed it always ends as 'sent' or 'failed'.
    """
    account = await _require_account(store, account_id)
    blast = await _require_blast(store, account_id, blast_id)

    if not blast.is_dispatchable:
        raise ConflictError(f"Cannot send blast in '{blast.status}' status")
    if not account.can_send:
        raise ValidationError("Account has no sender number or messaging profile configured")
    validate_message(blast.message)

    audience = TargetingFilter.from_dict(targeting if targeting is not None else blast.targeting)
    recipients = await resolve_recipients(store, account_id, audience, as_of)
    if not recipients:
        raise NoRecipientsError()

    if not await store.claim_blast(account_id, blast_id):
        raise ConflictError("Blast is already being sent")

    logger.info(f"[BLAST] Dispatching blast {blast_id} for {account.slug} to {len(recipients)} recipients")

    try:
        report = await dispatch(
            account,
            blast.message,
            recipients,
            messenger,
            rate_limiter=rate_limiter or create_send_limiter(),
        )
        await store.complete_blast(blast_id, BLAST_SENT, report.to_stats(audience.to_dict()))
    except Exception as e:
        logger.error(f"[BLAST] Blast {blast_id} failed after claim: {type(e).__name__}: {e}")
        try:
            await store.complete_blast(blast_id, BLAST_FAILED, None, error=str(e)[:500])
        except Exception as mark_error:
            logger.error(f"[BLAST] Could not mark blast {blast_id} as failed: {mark_error}")
        raise

    logger.info(
        f"[BLAST] Blast {blast_id} finished: {report.success_count} sent, "
        f"{report.failure_count} failed of {report.total_attempted}"
    )
    return report


# ==================== CRUD & SCHEDULING ====================

async def create_blast(
    store,
    account_id: uuid.UUID,
    message: str,
    targeting: Optional[Dict[str, Any]] = None,
    scheduled_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Blast:
    await _require_account(store, account_id)
    validate_message(message)
    audience = TargetingFilter.from_dict(targeting)

    data: Dict[str, Any] = {
        "message": message,
        "targeting": audience.to_dict(),
        "status": BLAST_DRAFT,
    }
    if scheduled_date is not None:
        scheduled_utc, slot = _resolve_schedule(scheduled_date, now)
        data.update(status=BLAST_SCHEDULED, scheduled_date=scheduled_utc, time_slot=slot)

    blast = await store.create_blast(account_id, data)
    logger.info(f"[BLAST] Created blast {blast.id} for account {account_id} ({blast.status})")
    return blast


async def get_blast(store, account_id: uuid.UUID, blast_id: uuid.UUID) -> Blast:
    return await _require_blast(store, account_id, blast_id)


async def list_blasts(store, account_id: uuid.UUID, status: Optional[str] = None) -> List[Blast]:
    if status is not None and status not in BLAST_STATUSES:
        raise ValidationError(f"Unknown blast status '{status}'")
    return await store.list_blasts(account_id, status=status)


async def update_blast(
    store,
    account_id: uuid.UUID,
    blast_id: uuid.UUID,
    message: Optional[str] = None,
    targeting: Optional[Dict[str, Any]] = None,
) -> Blast:
    blast = await _require_blast(store, account_id, blast_id)
    if not blast.is_editable:
        raise ConflictError(f"Cannot edit blast in '{blast.status}' status")

    data: Dict[str, Any] = {}
    if message is not None:
        data["message"] = validate_message(message)
    if targeting is not None:
        data["targeting"] = TargetingFilter.from_dict(targeting).to_dict()

    updated = await store.update_blast(account_id, blast_id, data)
    if updated is None:
        raise ConflictError("Blast changed state while updating")
    return updated


async def delete_blast(store, account_id: uuid.UUID, blast_id: uuid.UUID) -> None:
    blast = await _require_blast(store, account_id, blast_id)
    if blast.status == BLAST_SENDING:
        raise ConflictError("Cannot delete a blast while it is sending")
    if not await store.delete_blast(account_id, blast_id):
        raise ConflictError("Cannot delete a blast while it is sending")
    logger.info(f"[BLAST] Deleted blast {blast_id}")


def _resolve_schedule(when: datetime, now: Optional[datetime] = None):
    """Validate a schedule date and return (utc datetime, time slot)"""
    from .scheduler_service import local_today, resolve_time_slot, scheduler_tz

    when_utc = _as_utc(when)
    if when_utc.astimezone(scheduler_tz()).date() < local_today(now):
        raise ValidationError("Scheduled date cannot be in the past")
    return when_utc, resolve_time_slot(when_utc)


async def schedule_blast(
    store,
    account_id: uuid.UUID,
    blast_id: uuid.UUID,
    when: datetime,
    now: Optional[datetime] = None,
) -> Blast:
    """Assign a scheduled date and its time slot. Rescheduling a scheduled blast is allowed."""
    blast = await _require_blast(store, account_id, blast_id)
    if not blast.is_dispatchable:
        raise ConflictError(f"Cannot schedule blast in '{blast.status}' status")

    scheduled_utc, slot = _resolve_schedule(when, now)
    updated = await store.update_blast(
        account_id,
        blast_id,
        {"status": BLAST_SCHEDULED, "scheduled_date": scheduled_utc, "time_slot": slot},
    )
    if updated is None:
        raise ConflictError("Blast changed state while scheduling")

    logger.info(f"[BLAST] Scheduled blast {blast_id} for {scheduled_utc.isoformat()} ({slot})")
    return updated


async def unschedule_blast(store, account_id: uuid.UUID, blast_id: uuid.UUID) -> Blast:
    blast = await _require_blast(store, account_id, blast_id)
    if blast.status != BLAST_SCHEDULED:
        raise ConflictError(f"Cannot unschedule blast in '{blast.status}' status")

    updated = await store.update_blast(
        account_id,
        blast_id,
        {"status": BLAST_DRAFT, "scheduled_date": None, "time_slot": None},
        allowed_statuses=(BLAST_SCHEDULED,),
    )
    if updated is None:
        raise ConflictError("Blast changed state while unscheduling")
    return updated


async def list_scheduled(store, account_id: uuid.UUID) -> List[Blast]:
    await _require_account(store, account_id)
    return await store.list_blasts(account_id, status=BLAST_SCHEDULED)


async def preview_recipients(
    store,
    account_id: uuid.UUID,
    targeting: Optional[Dict[str, Any]] = None,
    as_of: Optional[date] = None,
) -> Dict[str, Any]:
    """How many recipients a filter would reach right now"""
    await _require_account(store, account_id)
    audience = TargetingFilter.from_dict(targeting)
    recipients = await resolve_recipients(store, account_id, audience, as_of)
    return {"count": len(recipients), "targeting": audience.to_dict()}
