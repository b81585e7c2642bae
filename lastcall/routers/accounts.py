"""
Accounts router - operator account management and the public signup form
"""

from fastapi import APIRouter, Depends, status
from typing import Annotated, List
from uuid import UUID
import logging

from ..core.store import PostgresStore
from ..dependencies import get_store, get_current_admin_user
from ..models import Account
from ..schemas.accounts import (
    AccountCreate,
    AccountResponse,
    PublicAccountResponse,
    SignupRequest,
    SignupResponse,
)
from ..services import account_service

router = APIRouter()
logger = logging.getLogger(__name__)


def _account_response(account: Account) -> AccountResponse:
    return AccountResponse(
        id=str(account.id),
        name=account.name,
        slug=account.slug,
        phone_number=account.phone_number,
        messaging_profile_id=account.messaging_profile_id,
        email=account.email,
        coupons_enabled=account.coupons_enabled,
        include_membership_question=account.include_membership_question,
        signup_enabled=account.signup_enabled,
        is_locked=account.is_locked,
        created_at=account.created_at,
    )


# ==================== OPERATOR ====================

@router.get("", response_model=List[AccountResponse])
async def list_accounts(
    admin: Annotated[dict, Depends(get_current_admin_user)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    accounts = await store.list_accounts(include_locked=True)
    return [_account_response(a) for a in accounts]


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    data: AccountCreate,
    admin: Annotated[dict, Depends(get_current_admin_user)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    """Create an account. It stays locked until activated."""
    account = await account_service.create_account(
        store,
        name=data.name,
        phone_number=data.phone_number,
        messaging_profile_id=data.messaging_profile_id,
        email=data.email,
        coupons_enabled=data.coupons_enabled,
        include_membership_question=data.include_membership_question,
    )
    return _account_response(account)


@router.post("/{account_id}/activate", response_model=AccountResponse)
async def activate_account(
    account_id: UUID,
    admin: Annotated[dict, Depends(get_current_admin_user)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    account = await account_service.set_account_locked(store, account_id, False)
    return _account_response(account)


@router.post("/{account_id}/lock", response_model=AccountResponse)
async def lock_account(
    account_id: UUID,
    admin: Annotated[dict, Depends(get_current_admin_user)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    account = await account_service.set_account_locked(store, account_id, True)
    return _account_response(account)


# ==================== PUBLIC ====================

@router.get("/by-slug/{slug}", response_model=PublicAccountResponse)
async def get_account_by_slug(
    slug: str,
    store: Annotated[PostgresStore, Depends(get_store)],
):
    """Signup page lookup"""
    account = await account_service.get_public_account(store, slug)
    return PublicAccountResponse(
        id=str(account.id),
        name=account.name,
        slug=account.slug,
        include_membership_question=account.include_membership_question,
    )


@router.post("/{account_id}/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    account_id: UUID,
    data: SignupRequest,
    store: Annotated[PostgresStore, Depends(get_store)],
):
    """Public signup. Resubmitting the same phone number updates the existing recipient."""
    recipient, created = await account_service.signup_recipient(
        store, account_id, data.model_dump()
    )
    return SignupResponse(
        id=str(recipient.id),
        created=created,
        subscribe=recipient.subscribe,
        birthdate_confirmed=recipient.birthdate_confirmed,
    )
