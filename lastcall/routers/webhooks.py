"""
Webhooks router - inbound events from Telnyx

Only message.received is acted on. Once the signature checks out the
endpoint always answers 200 so Telnyx does not retry; processing errors
are logged, never returned.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from typing import Annotated, Optional
import json
import logging

from ..config import settings
from ..core.security import verify_webhook_signature
from ..core.store import PostgresStore
from ..dependencies import get_store, get_telnyx
from ..schemas.webhooks import TelnyxWebhook
from ..services.conversation_service import InboundMessage, handle_inbound_message
from ..services.telnyx_service import TelnyxService

router = APIRouter()
logger = logging.getLogger(__name__)

EVENT_MESSAGE_RECEIVED = "message.received"


def _phone_of(party) -> str:
    if isinstance(party, dict) and isinstance(party.get("phone_number"), str):
        return party["phone_number"]
    return ""


def _inbound_from_payload(payload) -> Optional[InboundMessage]:
    """None unless the payload names both a sender and our receiving number"""
    if not isinstance(payload, dict):
        return None

    to_list = payload.get("to")
    receiver = to_list[0] if isinstance(to_list, list) and to_list else None
    from_number = _phone_of(payload.get("from"))
    to_number = _phone_of(receiver)
    if not from_number or not to_number:
        return None

    text = payload.get("text")
    message_id = payload.get("id")
    return InboundMessage(
        from_number=from_number,
        to_number=to_number,
        text=text if isinstance(text, str) else "",
        message_id=message_id if isinstance(message_id, str) else None,
    )


@router.post("/telnyx")
async def telnyx_webhook(
    request: Request,
    store: Annotated[PostgresStore, Depends(get_store)],
    telnyx: Annotated[TelnyxService, Depends(get_telnyx)],
):
    body = await request.body()

    if settings.telnyx_public_key:
        valid = verify_webhook_signature(
            body,
            request.headers.get("telnyx-signature-ed25519"),
            request.headers.get("telnyx-timestamp"),
            settings.telnyx_public_key,
            tolerance_seconds=settings.webhook_tolerance_seconds,
        )
        if not valid:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        event = TelnyxWebhook.model_validate(json.loads(body))
    except ValueError as e:
        logger.warning(f"[WEBHOOK] Unparseable Telnyx payload: {e}")
        return {"status": "ok"}

    if event.event_type != EVENT_MESSAGE_RECEIVED:
        logger.debug(f"[WEBHOOK] Ignoring Telnyx event {event.event_type}")
        return {"status": "ok"}

    message = _inbound_from_payload(event.payload)
    if message is None:
        logger.warning(f"[WEBHOOK] message.received without usable from/to: {event.data.get('id')}")
        return {"status": "ok"}

    await handle_inbound_message(store, telnyx, message)
    return {"status": "ok"}
