"""Services - business logic layer"""

from .telnyx_service import (
    TelnyxService,
    TelnyxConfig,
    TelnyxError,
    TelnyxConnectionError,
    TelnyxMessageError,
    get_telnyx_service,
)
from .targeting import (
    TargetingFilter,
    calculate_age,
    normalize_gender,
    parse_age_range,
    resolve_recipients,
    count_recipients,
)
from .conversation_service import (
    InboundMessage,
    ConversationResult,
    handle_inbound_message,
)
from .blast_service import (
    DeliveryReport,
    dispatch,
    send_blast_now,
)
from .scheduler_service import (
    SlotRunSummary,
    resolve_time_slot,
    next_slot_fire,
    process_time_slot,
    run_slot_scheduler,
)

__all__ = [
    # Telnyx
    "TelnyxService",
    "TelnyxConfig",
    "TelnyxError",
    "TelnyxConnectionError",
    "TelnyxMessageError",
    "get_telnyx_service",
    # Targeting
    "TargetingFilter",
    "calculate_age",
    "normalize_gender",
    "parse_age_range",
    "resolve_recipients",
    "count_recipients",
    # Conversation
    "InboundMessage",
    "ConversationResult",
    "handle_inbound_message",
    # Blasts
    "DeliveryReport",
    "dispatch",
    "send_blast_now",
    # Scheduler
    "SlotRunSummary",
    "resolve_time_slot",
    "next_slot_fire",
    "process_time_slot",
    "run_slot_scheduler",
]
