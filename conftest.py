"""Shared pytest fixtures: in-memory store and fake SMS provider"""

import os

# Settings refuse the placeholder secret; tests never talk to real services
os.environ.setdefault("SECRET_KEY", "pytest-secret-key-0123456789abcdef")
os.environ.setdefault("LOG_FILE", "logs/test.log")

import asyncio
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Dict, Any, List
import uuid

import pytest

from lastcall.models import Account, Recipient, Blast, Coupon


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStore:
    """Dict-backed stand-in for PostgresStore with the same method surface"""

    def __init__(self):
        self.accounts: Dict[uuid.UUID, Account] = {}
        self.recipients: Dict[uuid.UUID, Recipient] = {}
        self.blasts: Dict[uuid.UUID, Blast] = {}
        self.coupons: List[Coupon] = []
        self.snapshots: Dict[tuple, Dict[str, Any]] = {}
        self.writes: List[tuple] = []
        self._coupon_lock = asyncio.Lock()

    # ---- seeding helpers ----

    def add_account(self, **kwargs) -> Account:
        data = {
            "id": uuid.uuid4(),
            "name": "The Tipsy Owl",
            "slug": "the-tipsy-owl",
            "phone_number": "+15551234567",
            "messaging_profile_id": "profile-1",
            "is_locked": False,
            "created_at": _now(),
        }
        data.update(kwargs)
        account = Account(**data)
        self.accounts[account.id] = account
        return account

    def add_recipient(self, account: Account, **kwargs) -> Recipient:
        data = {
            "id": uuid.uuid4(),
            "account_id": account.id,
            "phone_number": f"+1555{len(self.recipients):07d}",
            "consent": True,
            "subscribe": True,
            "created_at": _now(),
        }
        data.update(kwargs)
        recipient = Recipient(**data)
        self.recipients[recipient.id] = recipient
        return recipient

    def add_blast(self, account: Account, **kwargs) -> Blast:
        data = {
            "id": uuid.uuid4(),
            "account_id": account.id,
            "message": "Half-price wings tonight!",
            "created_at": _now(),
        }
        data.update(kwargs)
        blast = Blast(**data)
        self.blasts[blast.id] = blast
        return blast

    # ---- accounts ----

    async def get_account(self, account_id):
        return self.accounts.get(account_id)

    async def get_account_by_phone(self, phone_number):
        return next((a for a in self.accounts.values() if a.phone_number == phone_number), None)

    async def get_account_by_slug(self, slug):
        return next((a for a in self.accounts.values() if a.slug == slug), None)

    async def list_accounts(self, include_locked=False):
        return [a for a in self.accounts.values() if include_locked or not a.is_locked]

    async def create_account(self, data):
        account = Account(id=uuid.uuid4(), is_locked=True, created_at=_now(), **data)
        self.accounts[account.id] = account
        self.writes.append(("create_account", account.id))
        return account

    async def set_account_locked(self, account_id, locked):
        account = self.accounts.get(account_id)
        if account is None:
            return None
        account.is_locked = locked
        self.writes.append(("set_account_locked", account_id))
        return account

    # ---- recipients ----

    async def get_recipient(self, account_id, recipient_id):
        r = self.recipients.get(recipient_id)
        return r if r and r.account_id == account_id else None

    async def get_recipient_by_phone(self, account_id, phone_number):
        return next(
            (r for r in self.recipients.values()
             if r.account_id == account_id and r.phone_number == phone_number),
            None,
        )

    async def list_recipients(self, account_id, limit=None):
        result = [r for r in self.recipients.values() if r.account_id == account_id]
        return result[:limit] if limit is not None else result

    async def list_eligible_recipients(self, account_id):
        return [
            r for r in self.recipients.values()
            if r.account_id == account_id and r.consent and r.subscribe and r.phone_number
        ]

    async def upsert_recipient(self, account_id, phone_number, data):
        existing = await self.get_recipient_by_phone(account_id, phone_number)
        self.writes.append(("upsert_recipient", phone_number))
        if existing:
            for key, value in data.items():
                if key == "birthdate" and (existing.birthdate_confirmed or value is None):
                    continue
                setattr(existing, key, value)
            existing.updated_at = _now()
            return existing, False
        recipient = Recipient(
            id=uuid.uuid4(),
            account_id=account_id,
            phone_number=phone_number,
            subscribe=True,
            birthdate_confirmed=False,
            created_at=_now(),
            **data,
        )
        self.recipients[recipient.id] = recipient
        return recipient, True

    async def set_subscribe(self, recipient_id, subscribe):
        self.recipients[recipient_id].subscribe = subscribe
        self.writes.append(("set_subscribe", recipient_id))

    async def confirm_birthdate(self, recipient_id, birthdate):
        recipient = self.recipients[recipient_id]
        recipient.birthdate = birthdate
        recipient.birthdate_confirmed = True
        self.writes.append(("confirm_birthdate", recipient_id))

    async def set_all_subscribe(self, account_id, subscribe):
        changed = 0
        for r in self.recipients.values():
            if r.account_id == account_id and r.subscribe != subscribe:
                r.subscribe = subscribe
                changed += 1
        return changed

    # ---- coupons ----

    async def issue_coupon(self, account_id, recipient_id, code, coupon_type, ttl, now):
        async with self._coupon_lock:
            active = [
                c for c in self.coupons
                if c.recipient_id == recipient_id and c.is_active(now)
            ]
            if active:
                return active[-1], False
            # Yield inside the critical section so races would show up
            await asyncio.sleep(0)
            coupon = Coupon(
                id=uuid.uuid4(),
                account_id=account_id,
                recipient_id=recipient_id,
                code=code,
                coupon_type=coupon_type,
                created_at=now,
                expires_at=now + ttl,
            )
            self.coupons.append(coupon)
            self.writes.append(("issue_coupon", recipient_id))
            return coupon, True

    # ---- blasts ----

    async def create_blast(self, account_id, data):
        blast = Blast(id=uuid.uuid4(), account_id=account_id, created_at=_now(), **data)
        self.blasts[blast.id] = blast
        self.writes.append(("create_blast", blast.id))
        return blast

    async def get_blast(self, account_id, blast_id):
        b = self.blasts.get(blast_id)
        return b if b and b.account_id == account_id else None

    async def list_blasts(self, account_id, status=None, limit=100):
        result = [
            b for b in self.blasts.values()
            if b.account_id == account_id and (status is None or b.status == status)
        ]
        return result[:limit]

    async def update_blast(self, account_id, blast_id, data, allowed_statuses=("draft", "scheduled")):
        blast = await self.get_blast(account_id, blast_id)
        if blast is None or blast.status not in allowed_statuses:
            return None
        updated = replace(blast, **data, updated_at=_now())
        self.blasts[blast_id] = updated
        self.writes.append(("update_blast", blast_id))
        return updated

    async def delete_blast(self, account_id, blast_id):
        blast = await self.get_blast(account_id, blast_id)
        if blast is None or blast.status == "sending":
            return False
        del self.blasts[blast_id]
        self.writes.append(("delete_blast", blast_id))
        return True

    async def claim_blast(self, account_id, blast_id):
        blast = await self.get_blast(account_id, blast_id)
        if blast is None or blast.status not in ("draft", "scheduled"):
            return False
        blast.status = "sending"
        self.writes.append(("claim_blast", blast_id))
        return True

    async def complete_blast(self, blast_id, status, delivery_stats, error=None):
        blast = self.blasts[blast_id]
        blast.status = status
        blast.delivery_stats = delivery_stats
        blast.error = error
        if status == "sent":
            blast.sent_at = _now()
        self.writes.append(("complete_blast", blast_id))

    async def list_due_blasts(self, account_id, time_slot, window_start, window_end):
        return [
            b for b in self.blasts.values()
            if b.account_id == account_id
            and b.status == "scheduled"
            and b.time_slot == time_slot
            and b.scheduled_date is not None
            and window_start <= b.scheduled_date < window_end
        ]

    # ---- metrics ----

    async def get_metrics_snapshot(self, account_id, name):
        return self.snapshots.get((account_id, name))

    async def save_metrics_snapshot(self, account_id, name, data):
        self.snapshots[(account_id, name)] = data


class FakeMessenger:
    """Records sends; numbers in fail_numbers raise, numbers in slow_numbers hang"""

    def __init__(self, fail_numbers=(), slow_numbers=(), delay: float = 0):
        self.sent: List[Dict[str, Any]] = []
        self.fail_numbers = set(fail_numbers)
        self.slow_numbers = set(slow_numbers)
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def send_message(self, to, from_, text, messaging_profile_id=None):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if to in self.slow_numbers:
                await asyncio.sleep(3600)
            if self.delay:
                await asyncio.sleep(self.delay)
            if to in self.fail_numbers:
                raise RuntimeError(f"carrier rejected {to}")
            self.sent.append({
                "to": to,
                "from": from_,
                "text": text,
                "messaging_profile_id": messaging_profile_id,
            })
            return {"id": f"msg-{len(self.sent)}", "status": "queued"}
        finally:
            self.in_flight -= 1

    def texts_to(self, number: str) -> List[str]:
        return [m["text"] for m in self.sent if m["to"] == number]


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def account(store) -> Account:
    return store.add_account()
