from fastapi import Depends, Header
from typing import Optional
import uuid

from .core.database import get_db_pool
from .core.security import decode_access_token, ROLE_ACCOUNT, ROLE_ADMIN
from .core.exceptions import AuthenticationError, AuthorizationError
from .core.store import PostgresStore
from .services.telnyx_service import TelnyxService, get_telnyx_service
import asyncpg


async def get_store(pool: asyncpg.Pool = Depends(get_db_pool)) -> PostgresStore:
    """Dependency for the database-backed store"""
    return PostgresStore(pool)


def get_telnyx() -> TelnyxService:
    """Dependency for the Telnyx client"""
    return get_telnyx_service()


async def get_current_user(
    authorization: Optional[str] = Header(None),
) -> dict:
    """Dependency to get the authenticated caller from the bearer token"""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Missing or invalid authorization header")

    token = authorization.replace("Bearer ", "")
    payload = decode_access_token(token)

    if not payload:
        raise AuthenticationError("Invalid or expired token")

    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or role not in (ROLE_ACCOUNT, ROLE_ADMIN):
        raise AuthenticationError("Invalid token payload")

    # Parse UUID with error handling
    try:
        account_uuid = uuid.UUID(subject)
    except (ValueError, TypeError):
        raise AuthenticationError("Invalid account ID format in token")

    return {"id": account_uuid, "role": role}


async def get_current_admin_user(
    current_user: dict = Depends(get_current_user)
) -> dict:
    """Dependency to ensure user is admin"""
    if current_user.get("role") != ROLE_ADMIN:
        raise AuthorizationError("Admin access required")
    return current_user


async def require_account_access(
    account_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
) -> uuid.UUID:
    """Path account must be the caller's own account unless the caller is an admin"""
    if current_user["role"] != ROLE_ADMIN and current_user["id"] != account_id:
        raise AuthorizationError("Not allowed to access this account")
    return account_id
