"""
Inbound SMS conversation handler.

Each inbound message is routed to an account (by the number it was sent to)
and a recipient (by the number it came from), then interpreted as one of
STOP / START / HELP / promo keyword / MM/DD/YYYY birthdate. At most one
reply goes back; nothing here ever raises to the webhook.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional
import logging
import re
import secrets
import string

from ..config import settings
from ..core.logger import mask_phone
from ..models import Account, Recipient
from .targeting import calculate_age

logger = logging.getLogger(__name__)

_BIRTHDATE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
_CODE_ALPHABET = string.ascii_uppercase + string.digits

ACTION_IGNORED = "ignored"
ACTION_UNSUBSCRIBED = "unsubscribed"
ACTION_RESUBSCRIBED = "resubscribed"
ACTION_HELP = "help"
ACTION_COUPON_ISSUED = "coupon_issued"
ACTION_COUPON_EXISTS = "coupon_exists"
ACTION_BIRTHDATE_CONFIRMED = "birthdate_confirmed"
ACTION_UNDERAGE = "underage"
ACTION_FORMAT_HINT = "format_hint"
ACTION_UNHANDLED = "unhandled"
ACTION_ERROR = "error"


@dataclass
class InboundMessage:
    """One inbound SMS as delivered by the provider webhook"""
    from_number: str
    to_number: str
    text: str
    message_id: Optional[str] = None


@dataclass
class ConversationResult:
    """What the handler did: action taken, reply sent (if any), whether state changed"""
    action: str
    reply: Optional[str] = None
    mutated: bool = False


def generate_coupon_code(length: int = None) -> str:
    """Random uppercase alphanumeric code"""
    length = length or settings.coupon_code_length
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def parse_birthdate(text: str) -> Optional[date]:
    """Parse a strict MM/DD/YYYY reply into a real calendar date"""
    match = _BIRTHDATE.match(text)
    if not match:
        return None
    month, day, year = (int(g) for g in match.groups())
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


# ==================== REPLIES ====================

def stop_reply(account: Account) -> str:
    return (
        f"You have been unsubscribed from {account.name} messages. "
        "You will not receive any more texts. Reply START to resubscribe."
    )


def start_reply(account: Account) -> str:
    return f"You are resubscribed to {account.name} messages. Reply STOP to unsubscribe."


def coupon_reply(account: Account, code: str) -> str:
    return (
        f"Your {account.name} code is {code}. Show this text to your bartender "
        f"to redeem. Expires in {settings.coupon_ttl_minutes} minutes."
    )


def coupon_exists_reply(account: Account) -> str:
    return f"You already have an active {account.name} code. Check your previous message."


def birthdate_reply(account: Account) -> str:
    if account.coupons_enabled:
        return (
            f"Thanks, your birthday is confirmed! Text {settings.coupon_keyword} "
            f"to get your {account.name} welcome offer."
        )
    return f"Thanks, your birthday is confirmed! Welcome to {account.name} texts."


def underage_reply(account: Account) -> str:
    return (
        f"Sorry, you must be {settings.minimum_age} or older to receive "
        f"messages from {account.name}."
    )


def format_hint_reply() -> str:
    return "Please reply with your birthday as MM/DD/YYYY to confirm your subscription."


# ==================== HANDLER ====================

async def _process(
    store,
    account: Account,
    recipient: Recipient,
    text: str,
    now: datetime,
) -> ConversationResult:
    command = text.strip().upper()

    if command == "STOP":
        if not recipient.subscribe:
            # Already unsubscribed: acknowledge without writing again
            return ConversationResult(ACTION_UNSUBSCRIBED, stop_reply(account), mutated=False)
        await store.set_subscribe(recipient.id, False)
        return ConversationResult(ACTION_UNSUBSCRIBED, stop_reply(account), mutated=True)

    if command == "START":
        mutated = not recipient.subscribe
        if mutated:
            await store.set_subscribe(recipient.id, True)
        return ConversationResult(ACTION_RESUBSCRIBED, start_reply(account), mutated=mutated)

    if command == "HELP":
        return ConversationResult(ACTION_HELP, settings.help_message)

    if account.coupons_enabled and command == settings.coupon_keyword.strip().upper():
        coupon, created = await store.issue_coupon(
            account_id=account.id,
            recipient_id=recipient.id,
            code=generate_coupon_code(),
            coupon_type=settings.coupon_type,
            ttl=timedelta(minutes=settings.coupon_ttl_minutes),
            now=now,
        )
        if not created:
            return ConversationResult(ACTION_COUPON_EXISTS, coupon_exists_reply(account))
        return ConversationResult(ACTION_COUPON_ISSUED, coupon_reply(account, coupon.code), mutated=True)

    birthdate = parse_birthdate(text.strip())
    if birthdate is not None:
        if settings.enforce_minimum_age:
            age = calculate_age(birthdate, now.date())
            if age is None or age < settings.minimum_age:
                return ConversationResult(ACTION_UNDERAGE, underage_reply(account))
        await store.confirm_birthdate(recipient.id, birthdate)
        return ConversationResult(ACTION_BIRTHDATE_CONFIRMED, birthdate_reply(account), mutated=True)

    if settings.reply_on_invalid_birthdate and not recipient.birthdate_confirmed:
        return ConversationResult(ACTION_FORMAT_HINT, format_hint_reply())

    return ConversationResult(ACTION_UNHANDLED)


async def handle_inbound_message(
    store,
    messenger,
    message: InboundMessage,
    now: Optional[datetime] = None,
) -> ConversationResult:
    """
    Apply the conversation rules to one inbound SMS and send the reply.

    Store and provider failures are logged and reported as ACTION_ERROR;
    this function never raises.
    """
    now = now or datetime.now(timezone.utc)
    sender = mask_phone(message.from_number)

    try:
        account = await store.get_account_by_phone(message.to_number)
        if account is None or account.is_locked:
            logger.info(f"[SMS] No active account for {message.to_number}, ignoring message from {sender}")
            return ConversationResult(ACTION_IGNORED)

        recipient = await store.get_recipient_by_phone(account.id, message.from_number)
        if recipient is None:
            logger.info(f"[SMS] Unknown sender {sender} for account {account.slug}")
            return ConversationResult(ACTION_IGNORED)

        if not recipient.consent:
            logger.info(f"[SMS] Sender {sender} has no consent on {account.slug}, dropping")
            return ConversationResult(ACTION_IGNORED)

        result = await _process(store, account, recipient, message.text or "", now)
    except Exception as e:
        logger.error(f"[SMS] Failed to process message {message.message_id} from {sender}: {type(e).__name__}: {e}")
        return ConversationResult(ACTION_ERROR)

    logger.info(f"[SMS] {account.slug} <- {sender}: {result.action} (mutated={result.mutated})")

    if result.reply:
        try:
            await messenger.send_message(
                to=message.from_number,
                from_=account.phone_number,
                text=result.reply,
                messaging_profile_id=account.messaging_profile_id,
            )
        except Exception as e:
            logger.error(f"[SMS] Failed to send reply to {sender}: {type(e).__name__}: {e}")

    return result
