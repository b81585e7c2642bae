from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import base64
import logging
import time
import uuid

import jwt as pyjwt
from jwt.exceptions import PyJWTError as JWTError
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from ..config import settings

logger = logging.getLogger(__name__)

ROLE_ACCOUNT = "account"
ROLE_ADMIN = "admin"


def create_access_token(account_id: uuid.UUID, role: str = ROLE_ACCOUNT, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(hours=settings.access_token_expire_hours)

    payload = {
        "sub": str(account_id),
        "role": role,
        "exp": expire,
        "iat": now,
    }

    encoded_jwt = pyjwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return encoded_jwt


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and verify JWT token"""
    try:
        payload = pyjwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        return payload
    except JWTError:
        return None


def verify_webhook_signature(
    payload: bytes,
    signature: Optional[str],
    timestamp: Optional[str],
    public_key: str,
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> bool:
    """
    Verify a Telnyx Ed25519 webhook signature.

    Telnyx signs "{timestamp}|{raw body}" and sends the base64 signature
    in telnyx-signature-ed25519 with the unix timestamp in telnyx-timestamp.
    """
    if not signature or not timestamp:
        return False

    try:
        ts = int(timestamp)
    except ValueError:
        return False

    current = now if now is not None else time.time()
    if abs(current - ts) > tolerance_seconds:
        logger.warning(f"[WEBHOOK] Signature timestamp outside tolerance: {timestamp}")
        return False

    try:
        key = Ed25519PublicKey.from_public_bytes(base64.b64decode(public_key))
        key.verify(base64.b64decode(signature), f"{timestamp}|".encode() + payload)
        return True
    except (InvalidSignature, ValueError) as e:
        logger.warning(f"[WEBHOOK] Invalid signature: {type(e).__name__}")
        return False
