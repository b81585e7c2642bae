from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import uuid


@dataclass
class Account:
    """Account model - one venue sending SMS from its own number"""
    id: uuid.UUID
    name: str
    slug: str
    phone_number: Optional[str] = None  # E.164, also the inbound routing key
    messaging_profile_id: Optional[str] = None
    email: Optional[str] = None
    coupons_enabled: bool = False
    include_membership_question: bool = False
    signup_enabled: bool = True
    is_locked: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row):
        """Create Account from database row"""
        return cls(
            id=row['id'],
            name=row['name'],
            slug=row['slug'],
            phone_number=row.get('phone_number'),
            messaging_profile_id=row.get('messaging_profile_id'),
            email=row.get('email'),
            coupons_enabled=row.get('coupons_enabled', False),
            include_membership_question=row.get('include_membership_question', False),
            signup_enabled=row.get('signup_enabled', True),
            is_locked=row.get('is_locked', True),
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at'),
        )

    @property
    def can_send(self) -> bool:
        """Account has the sender number and messaging profile needed to send SMS"""
        return bool(self.phone_number and self.messaging_profile_id)
