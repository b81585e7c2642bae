from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any
import json
import uuid


BLAST_DRAFT = "draft"
BLAST_SCHEDULED = "scheduled"
BLAST_SENDING = "sending"
BLAST_SENT = "sent"
BLAST_FAILED = "failed"

BLAST_STATUSES = (BLAST_DRAFT, BLAST_SCHEDULED, BLAST_SENDING, BLAST_SENT, BLAST_FAILED)
DISPATCHABLE_STATUSES = (BLAST_DRAFT, BLAST_SCHEDULED)
TERMINAL_STATUSES = (BLAST_SENT, BLAST_FAILED)


def parse_jsonb(val):
    """Parse asyncpg JSONB value (returned as raw string)"""
    if val is None:
        return None
    if isinstance(val, str):
        try:
            return json.loads(val)
        except (json.JSONDecodeError, ValueError):
            return None
    return val


@dataclass
class Blast:
    """Blast model - one bulk message to a filtered set of recipients"""
    id: uuid.UUID
    account_id: uuid.UUID
    message: str
    status: str = BLAST_DRAFT  # 'draft', 'scheduled', 'sending', 'sent', 'failed'
    scheduled_date: Optional[datetime] = None
    time_slot: Optional[str] = None  # 'morning', 'afternoon', 'evening'
    targeting: Dict[str, Any] = field(default_factory=dict)
    delivery_stats: Optional[Dict[str, Any]] = None
    sent_at: Optional[datetime] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row):
        """Create Blast from database row"""
        return cls(
            id=row['id'],
            account_id=row['account_id'],
            message=row['message'],
            status=row.get('status', BLAST_DRAFT),
            scheduled_date=row.get('scheduled_date'),
            time_slot=row.get('time_slot'),
            targeting=parse_jsonb(row.get('targeting')) or {},
            delivery_stats=parse_jsonb(row.get('delivery_stats')),
            sent_at=row.get('sent_at'),
            error=row.get('error'),
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at'),
        )

    @property
    def is_dispatchable(self) -> bool:
        return self.status in DISPATCHABLE_STATUSES

    @property
    def is_editable(self) -> bool:
        return self.status in DISPATCHABLE_STATUSES
