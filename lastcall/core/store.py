"""
Postgres-backed store.

Every service talks to the database through this narrow interface so the
core logic can be exercised against an in-memory double. Driver and
connection failures surface as PersistenceError.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Optional, List, Tuple, Dict, Any
import json
import logging
import uuid

import asyncpg

from .exceptions import ConflictError, PersistenceError
from ..models import Account, Recipient, Blast, Coupon
from ..models.blast import parse_jsonb
from ..utils.security import (
    BLAST_UPDATE_FIELDS,
    RECIPIENT_FORM_FIELDS,
    ACCOUNT_CREATE_FIELDS,
    clamp_page_size,
    filter_fields,
)

logger = logging.getLogger(__name__)

_JSONB_FIELDS = ("targeting", "delivery_stats")


def _encode(field: str, value):
    if field in _JSONB_FIELDS and value is not None:
        return json.dumps(value)
    return value


def _recipient_update(column: str) -> str:
    """SET fragment for a signup resubmission"""
    if column == "birthdate":
        return (
            "birthdate = CASE WHEN recipients.birthdate_confirmed THEN recipients.birthdate "
            "ELSE COALESCE(EXCLUDED.birthdate, recipients.birthdate) END"
        )
    return f"{column} = EXCLUDED.{column}"


class PostgresStore:
    """Store operations over an asyncpg pool"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @asynccontextmanager
    async def _acquire(self):
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error(f"[STORE] Database error: {type(e).__name__}: {e}")
            raise PersistenceError() from e

    # ==================== ACCOUNTS ====================

    async def get_account(self, account_id: uuid.UUID) -> Optional[Account]:
        async with self._acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM accounts WHERE id = $1", account_id)
        return Account.from_row(row) if row else None

    async def get_account_by_phone(self, phone_number: str) -> Optional[Account]:
        """Exact match on the account's sending number"""
        async with self._acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM accounts WHERE phone_number = $1", phone_number
            )
        return Account.from_row(row) if row else None

    async def get_account_by_slug(self, slug: str) -> Optional[Account]:
        async with self._acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM accounts WHERE slug = $1", slug)
        return Account.from_row(row) if row else None

    async def list_accounts(self, include_locked: bool = False) -> List[Account]:
        query = "SELECT * FROM accounts"
        if not include_locked:
            query += " WHERE is_locked = FALSE"
        query += " ORDER BY created_at"
        async with self._acquire() as conn:
            rows = await conn.fetch(query)
        return [Account.from_row(r) for r in rows]

    async def create_account(self, data: Dict[str, Any]) -> Account:
        """Insert a new account (locked until activated)"""
        fields = filter_fields(data, ACCOUNT_CREATE_FIELDS)
        columns = list(fields.keys())
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        async with self._acquire() as conn:
            try:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO accounts ({", ".join(columns)}, is_locked)
                    VALUES ({placeholders}, TRUE)
                    RETURNING *
                    """,
                    *fields.values(),
                )
            except asyncpg.UniqueViolationError as e:
                if e.constraint_name and "phone" in e.constraint_name:
                    raise ConflictError("An account with this phone number already exists")
                raise ConflictError("An account with this name already exists")
        return Account.from_row(row)

    async def set_account_locked(self, account_id: uuid.UUID, locked: bool) -> Optional[Account]:
        async with self._acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE accounts SET is_locked = $2, updated_at = NOW()
                WHERE id = $1
                RETURNING *
                """,
                account_id, locked,
            )
        return Account.from_row(row) if row else None

    # ==================== RECIPIENTS ====================

    async def get_recipient(self, account_id: uuid.UUID, recipient_id: uuid.UUID) -> Optional[Recipient]:
        async with self._acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM recipients WHERE account_id = $1 AND id = $2",
                account_id, recipient_id,
            )
        return Recipient.from_row(row) if row else None

    async def get_recipient_by_phone(self, account_id: uuid.UUID, phone_number: str) -> Optional[Recipient]:
        async with self._acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM recipients WHERE account_id = $1 AND phone_number = $2",
                account_id, phone_number,
            )
        return Recipient.from_row(row) if row else None

    async def list_recipients(self, account_id: uuid.UUID, limit: Optional[int] = None) -> List[Recipient]:
        query = "SELECT * FROM recipients WHERE account_id = $1 ORDER BY created_at"
        params: list = [account_id]
        if limit is not None:
            query += " LIMIT $2"
            params.append(clamp_page_size(limit, max_size=10000))
        async with self._acquire() as conn:
            rows = await conn.fetch(query, *params)
        return [Recipient.from_row(r) for r in rows]

    async def list_eligible_recipients(self, account_id: uuid.UUID) -> List[Recipient]:
        """Recipients who consented, are subscribed and have a phone number"""
        async with self._acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM recipients
                WHERE account_id = $1
                  AND consent = TRUE
                  AND subscribe = TRUE
                  AND phone_number IS NOT NULL
                ORDER BY created_at
                """,
                account_id,
            )
        return [Recipient.from_row(r) for r in rows]

    async def upsert_recipient(
        self,
        account_id: uuid.UUID,
        phone_number: str,
        data: Dict[str, Any],
    ) -> Tuple[Recipient, bool]:
        """
        Insert or update a recipient keyed by (account_id, phone_number).

        New rows start subscribed with an unconfirmed birthdate. A birthdate
        confirmed over SMS is never replaced by the form, and a blank form
        birthdate keeps the stored one. Returns (recipient, created).
        """
        fields = filter_fields(data, RECIPIENT_FORM_FIELDS)
        columns = list(fields.keys())
        values = list(fields.values())
        insert_cols = ", ".join(["account_id", "phone_number", *columns, "subscribe", "birthdate_confirmed"])
        insert_vals = ", ".join(f"${i}" for i in range(1, len(columns) + 3))
        updates = ", ".join(_recipient_update(c) for c in columns)
        update_clause = f"{updates}, updated_at = NOW()" if updates else "updated_at = NOW()"

        async with self._acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO recipients ({insert_cols})
                VALUES ({insert_vals}, TRUE, FALSE)
                ON CONFLICT (account_id, phone_number) DO UPDATE SET {update_clause}
                RETURNING *, (xmax = 0) AS inserted
                """,
                account_id, phone_number, *values,
            )
        return Recipient.from_row(row), bool(row['inserted'])

    async def set_subscribe(self, recipient_id: uuid.UUID, subscribe: bool) -> None:
        async with self._acquire() as conn:
            await conn.execute(
                "UPDATE recipients SET subscribe = $2, updated_at = NOW() WHERE id = $1",
                recipient_id, subscribe,
            )

    async def confirm_birthdate(self, recipient_id: uuid.UUID, birthdate: date) -> None:
        async with self._acquire() as conn:
            await conn.execute(
                """
                UPDATE recipients
                SET birthdate = $2, birthdate_confirmed = TRUE, updated_at = NOW()
                WHERE id = $1
                """,
                recipient_id, birthdate,
            )

    async def set_all_subscribe(self, account_id: uuid.UUID, subscribe: bool) -> int:
        """Bulk subscribe or unsubscribe every recipient of an account. Returns rows changed."""
        async with self._acquire() as conn:
            result = await conn.execute(
                """
                UPDATE recipients SET subscribe = $2, updated_at = NOW()
                WHERE account_id = $1 AND subscribe IS DISTINCT FROM $2
                """,
                account_id, subscribe,
            )
        return int(result.split()[-1])

    # ==================== COUPONS ====================

    async def issue_coupon(
        self,
        account_id: uuid.UUID,
        recipient_id: uuid.UUID,
        code: str,
        coupon_type: str,
        ttl: timedelta,
        now: datetime,
    ) -> Tuple[Coupon, bool]:
        """
        Return the recipient's active coupon or create one.

        The recipient row is locked for the duration of the check and insert
        so concurrent requests cannot both create a coupon. Returns (coupon, created).
        """
        async with self._acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    "SELECT id FROM recipients WHERE id = $1 FOR UPDATE", recipient_id
                )
                existing = await conn.fetchrow(
                    """
                    SELECT * FROM coupons
                    WHERE recipient_id = $1 AND used = FALSE AND expires_at > $2
                    ORDER BY created_at DESC
                    LIMIT 1
                    """,
                    recipient_id, now,
                )
                if existing:
                    return Coupon.from_row(existing), False

                row = await conn.fetchrow(
                    """
                    INSERT INTO coupons (account_id, recipient_id, code, coupon_type, created_at, expires_at, used)
                    VALUES ($1, $2, $3, $4, $5, $6, FALSE)
                    RETURNING *
                    """,
                    account_id, recipient_id, code, coupon_type, now, now + ttl,
                )
        return Coupon.from_row(row), True

    # ==================== BLASTS ====================

    async def create_blast(self, account_id: uuid.UUID, data: Dict[str, Any]) -> Blast:
        fields = filter_fields(data, BLAST_UPDATE_FIELDS)
        columns = list(fields.keys())
        values = [_encode(c, v) for c, v in fields.items()]
        placeholders = ", ".join(f"${i}" for i in range(2, len(columns) + 2))
        col_sql = ", ".join(["account_id", *columns])
        val_sql = ", ".join(["$1", placeholders]) if columns else "$1"
        async with self._acquire() as conn:
            row = await conn.fetchrow(
                f"INSERT INTO blasts ({col_sql}) VALUES ({val_sql}) RETURNING *",
                account_id, *values,
            )
        return Blast.from_row(row)

    async def get_blast(self, account_id: uuid.UUID, blast_id: uuid.UUID) -> Optional[Blast]:
        async with self._acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM blasts WHERE account_id = $1 AND id = $2",
                account_id, blast_id,
            )
        return Blast.from_row(row) if row else None

    async def list_blasts(
        self,
        account_id: uuid.UUID,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[Blast]:
        conditions = ["account_id = $1"]
        params: list = [account_id]
        if status:
            params.append(status)
            conditions.append(f"status = ${len(params)}")
        params.append(clamp_page_size(limit))
        query = (
            f"SELECT * FROM blasts WHERE {' AND '.join(conditions)} "
            f"ORDER BY created_at DESC LIMIT ${len(params)}"
        )
        async with self._acquire() as conn:
            rows = await conn.fetch(query, *params)
        return [Blast.from_row(r) for r in rows]

    async def update_blast(
        self,
        account_id: uuid.UUID,
        blast_id: uuid.UUID,
        data: Dict[str, Any],
        allowed_statuses: Tuple[str, ...] = ("draft", "scheduled"),
    ) -> Optional[Blast]:
        """Update blast fields only while its status is one of allowed_statuses"""
        fields = filter_fields(data, BLAST_UPDATE_FIELDS)
        if not fields:
            return await self.get_blast(account_id, blast_id)
        sets = []
        params: list = [account_id, blast_id, list(allowed_statuses)]
        for column, value in fields.items():
            params.append(_encode(column, value))
            sets.append(f"{column} = ${len(params)}")
        async with self._acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE blasts SET {", ".join(sets)}, updated_at = NOW()
                WHERE account_id = $1 AND id = $2 AND status = ANY($3::text[])
                RETURNING *
                """,
                *params,
            )
        return Blast.from_row(row) if row else None

    async def delete_blast(self, account_id: uuid.UUID, blast_id: uuid.UUID) -> bool:
        """Delete a blast unless it is mid-dispatch"""
        async with self._acquire() as conn:
            result = await conn.execute(
                "DELETE FROM blasts WHERE account_id = $1 AND id = $2 AND status <> 'sending'",
                account_id, blast_id,
            )
        return result != "DELETE 0"

    async def claim_blast(self, account_id: uuid.UUID, blast_id: uuid.UUID) -> bool:
        """Atomically move a draft or scheduled blast to 'sending'. Only one caller wins."""
        async with self._acquire() as conn:
            claimed = await conn.fetchval(
                """
                UPDATE blasts SET status = 'sending', updated_at = NOW()
                WHERE account_id = $1 AND id = $2 AND status IN ('draft', 'scheduled')
                RETURNING id
                """,
                account_id, blast_id,
            )
        return claimed is not None

    async def complete_blast(
        self,
        blast_id: uuid.UUID,
        status: str,
        delivery_stats: Optional[Dict[str, Any]],
        error: Optional[str] = None,
    ) -> None:
        async with self._acquire() as conn:
            await conn.execute(
                """
                UPDATE blasts
                SET status = $2, delivery_stats = $3, error = $4,
                    sent_at = CASE WHEN $2 = 'sent' THEN NOW() ELSE sent_at END,
                    updated_at = NOW()
                WHERE id = $1
                """,
                blast_id, status, _encode("delivery_stats", delivery_stats), error,
            )

    async def list_due_blasts(
        self,
        account_id: uuid.UUID,
        time_slot: str,
        window_start: datetime,
        window_end: datetime,
    ) -> List[Blast]:
        """Scheduled blasts for a slot whose scheduled_date falls in [window_start, window_end)"""
        async with self._acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM blasts
                WHERE account_id = $1
                  AND status = 'scheduled'
                  AND time_slot = $2
                  AND scheduled_date >= $3
                  AND scheduled_date < $4
                ORDER BY scheduled_date
                """,
                account_id, time_slot, window_start, window_end,
            )
        return [Blast.from_row(r) for r in rows]

    # ==================== METRICS ====================

    async def get_metrics_snapshot(self, account_id: uuid.UUID, name: str) -> Optional[Dict[str, Any]]:
        async with self._acquire() as conn:
            data = await conn.fetchval(
                "SELECT data FROM metrics_snapshots WHERE account_id = $1 AND name = $2",
                account_id, name,
            )
        return parse_jsonb(data)

    async def save_metrics_snapshot(self, account_id: uuid.UUID, name: str, data: Dict[str, Any]) -> None:
        async with self._acquire() as conn:
            await conn.execute(
                """
                INSERT INTO metrics_snapshots (account_id, name, data, updated_at)
                VALUES ($1, $2, $3::jsonb, NOW())
                ON CONFLICT (account_id, name) DO UPDATE
                SET data = EXCLUDED.data, updated_at = NOW()
                """,
                account_id, name, json.dumps(data),
            )
