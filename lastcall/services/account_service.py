"""Accounts and public signup"""

from typing import Optional, Dict, Any, Tuple
import logging
import re
import uuid

from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.logger import mask_phone
from ..models import Account, Recipient
from ..utils.phone import normalize_phone

logger = logging.getLogger(__name__)

MEMBER = "member"
NON_MEMBER = "non-member"

_QUOTES = re.compile(r"['‘’\"]")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def create_slug(name: str) -> str:
    """ "Joe's Bar & Grill" -> "joes-bar-grill" """
    slug = _QUOTES.sub("", name.lower())
    slug = _NON_ALNUM.sub("-", slug)
    return slug.strip("-")


async def create_account(
    store,
    name: str,
    phone_number: str,
    messaging_profile_id: Optional[str] = None,
    email: Optional[str] = None,
    coupons_enabled: bool = False,
    include_membership_question: bool = False,
) -> Account:
    """Create an account, locked until an operator activates it"""
    slug = create_slug(name)
    if not slug:
        raise ValidationError("Account name must contain letters or digits")

    phone = normalize_phone(phone_number)
    if phone is None:
        raise ValidationError("Invalid phone number")

    if await store.get_account_by_slug(slug):
        raise ConflictError("An account with a similar name already exists")
    if await store.get_account_by_phone(phone):
        raise ConflictError("An account with this phone number already exists")

    account = await store.create_account({
        "name": name.strip(),
        "slug": slug,
        "phone_number": phone,
        "messaging_profile_id": messaging_profile_id,
        "email": email,
        "coupons_enabled": coupons_enabled,
        "include_membership_question": include_membership_question,
    })
    logger.info(f"Account created: {account.slug} ({account.id}), pending activation")
    return account


async def set_account_locked(store, account_id: uuid.UUID, locked: bool) -> Account:
    account = await store.set_account_locked(account_id, locked)
    if account is None:
        raise NotFoundError("Account not found")
    logger.info(f"Account {account.slug} {'locked' if locked else 'activated'}")
    return account


async def get_public_account(store, slug: str) -> Account:
    """Account behind a public signup page. Locked or closed accounts look like missing ones."""
    account = await store.get_account_by_slug(slug)
    if account is None or account.is_locked or not account.signup_enabled:
        raise NotFoundError("Account not found")
    return account


async def signup_recipient(store, account_id: uuid.UUID, form: Dict[str, Any]) -> Tuple[Recipient, bool]:
    """
    Register or update a recipient from the public signup form.

    Keyed by phone number within the account, so resubmitting updates the
    existing recipient. Returns (recipient, created).
    """
    account = await store.get_account(account_id)
    if account is None or account.is_locked or not account.signup_enabled:
        raise NotFoundError("Account not found")

    phone = normalize_phone(form.get("phone_number"))
    if phone is None:
        raise ValidationError("Invalid phone number")
    if not form.get("consent"):
        raise ValidationError("Consent is required to receive messages")

    data: Dict[str, Any] = {
        "name": form.get("name"),
        "email": form.get("email"),
        "gender": form.get("gender"),
        "birthdate": form.get("birthdate"),
        "consent": True,
    }
    if account.include_membership_question and form.get("is_member") is not None:
        data["membership_status"] = MEMBER if form["is_member"] else NON_MEMBER
    elif form.get("membership_status"):
        data["membership_status"] = form["membership_status"]

    recipient, created = await store.upsert_recipient(account.id, phone, data)
    logger.info(f"Signup {'created' if created else 'updated'} {mask_phone(phone)} on {account.slug}")
    return recipient, created
