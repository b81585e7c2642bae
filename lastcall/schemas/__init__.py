"""API schemas - Pydantic models for request/response validation"""

from .accounts import (
    AccountCreate,
    AccountResponse,
    PublicAccountResponse,
    SignupRequest,
    SignupResponse,
)
from .blasts import (
    TargetingSchema,
    BlastCreate,
    BlastUpdate,
    BlastScheduleRequest,
    SendBlastRequest,
    BlastResponse,
    DeliveryReportResponse,
    RecipientPreviewResponse,
)
from .webhooks import TelnyxWebhook

__all__ = [
    # Accounts
    "AccountCreate",
    "AccountResponse",
    "PublicAccountResponse",
    "SignupRequest",
    "SignupResponse",
    # Blasts
    "TargetingSchema",
    "BlastCreate",
    "BlastUpdate",
    "BlastScheduleRequest",
    "SendBlastRequest",
    "BlastResponse",
    "DeliveryReportResponse",
    "RecipientPreviewResponse",
    # Webhooks
    "TelnyxWebhook",
]
