from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
import uuid


@dataclass
class Recipient:
    """Recipient model - an end user subscribed to one account"""
    id: uuid.UUID
    account_id: uuid.UUID
    phone_number: Optional[str]
    name: Optional[str] = None
    email: Optional[str] = None
    gender: Optional[str] = None  # free text from the signup form
    birthdate: Optional[date] = None
    membership_status: Optional[str] = None
    consent: bool = False
    subscribe: bool = False
    birthdate_confirmed: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row):
        """Create Recipient from database row"""
        return cls(
            id=row['id'],
            account_id=row['account_id'],
            phone_number=row.get('phone_number'),
            name=row.get('name'),
            email=row.get('email'),
            gender=row.get('gender'),
            birthdate=row.get('birthdate'),
            membership_status=row.get('membership_status'),
            consent=bool(row.get('consent', False)),
            subscribe=bool(row.get('subscribe', False)),
            birthdate_confirmed=bool(row.get('birthdate_confirmed', False)),
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at'),
        )

    @property
    def is_eligible(self) -> bool:
        """Consented, subscribed and reachable"""
        return self.consent and self.subscribe and bool(self.phone_number)
