from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import uuid


@dataclass
class Coupon:
    """Coupon model - short-lived promo code issued over SMS"""
    id: uuid.UUID
    account_id: uuid.UUID
    recipient_id: uuid.UUID
    code: str
    coupon_type: str
    created_at: datetime
    expires_at: datetime
    used: bool = False

    @classmethod
    def from_row(cls, row):
        """Create Coupon from database row"""
        return cls(
            id=row['id'],
            account_id=row['account_id'],
            recipient_id=row['recipient_id'],
            code=row['code'],
            coupon_type=row.get('coupon_type', 'welcome'),
            created_at=row['created_at'],
            expires_at=row['expires_at'],
            used=row.get('used', False),
        )

    def is_active(self, now: Optional[datetime] = None) -> bool:
        if self.used:
            return False
        return now is None or self.expires_at > now
