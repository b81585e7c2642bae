"""Database models - dataclasses for representing database records"""

from .account import Account
from .recipient import Recipient
from .blast import Blast
from .coupon import Coupon

__all__ = [
    "Account",
    "Recipient",
    "Blast",
    "Coupon",
]
