"""
API authentication and caller identity for FastAPI endpoints.

- Service API key (X-API-Key header or api_key query), checked by middleware
- Owner identity, resolved upstream by the portal's auth layer and forwarded
  as trusted headers
- HMAC signatures on generator webhook callbacks
"""

from fastapi import Header, HTTPException, Request, status
from typing import Optional
import os
import hashlib
import hmac
from config import settings
from video_models import OwnerRef

# API Key header name
API_KEY_HEADER = "X-API-Key"
API_KEY_QUERY = "api_key"

OWNER_ID_HEADER = "X-Owner-Id"
OWNER_EMAIL_HEADER = "X-Owner-Email"
WEBHOOK_SIGNATURE_HEADER = "X-Webhook-Signature"


def get_api_key_from_env() -> Optional[str]:
    """Get API key from environment variable"""
    return os.getenv("API_KEY", "")


def check_api_key(api_key: str) -> bool:
    """
    Verify API key against configured key

    Supports:
    - Single API key from environment variable
    - Multiple API keys (comma-separated)
    - Hashed keys ("hash:<sha256 hex>")
    """
    configured_key = get_api_key_from_env()

    if not configured_key:
        # No API key configured - allow all requests (development mode)
        return True

    valid_keys = [key.strip() for key in configured_key.split(",")]

    if api_key in valid_keys:
        return True

    for valid_key in valid_keys:
        if valid_key.startswith("hash:"):
            stored_hash = valid_key[5:]
            provided_hash = hashlib.sha256(api_key.encode()).hexdigest()
            if hmac.compare_digest(stored_hash, provided_hash):
                return True

    return False


def resolve_owner(owner_id: Optional[str], owner_email: Optional[str]) -> Optional[OwnerRef]:
    """Build the caller's OwnerRef from forwarded identity headers; user id wins over email."""
    if owner_id and owner_id.strip():
        return OwnerRef.user(owner_id)
    if owner_email and owner_email.strip():
        return OwnerRef.email(owner_email)
    return None


async def get_optional_owner(
    x_owner_id: Optional[str] = Header(None, alias=OWNER_ID_HEADER),
    x_owner_email: Optional[str] = Header(None, alias=OWNER_EMAIL_HEADER),
) -> Optional[OwnerRef]:
    """
    Caller identity if one was forwarded, else None

    Usage:
        @router.post("/store")
        async def store(owner: Optional[OwnerRef] = Depends(get_optional_owner)):
            ...
    """
    return resolve_owner(x_owner_id, x_owner_email)


async def get_current_owner(
    x_owner_id: Optional[str] = Header(None, alias=OWNER_ID_HEADER),
    x_owner_email: Optional[str] = Header(None, alias=OWNER_EMAIL_HEADER),
) -> OwnerRef:
    """Caller identity; 401 when the request carries none"""
    owner = resolve_owner(x_owner_id, x_owner_email)
    if owner is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "Unauthorized",
                "message": "Caller identity missing",
                "details": f"Provide {OWNER_ID_HEADER} or {OWNER_EMAIL_HEADER}",
            },
        )
    return owner


def sign_webhook_payload(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of a raw callback body"""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def check_webhook_signature(body: bytes, signature: Optional[str]) -> bool:
    """
    Verify a callback signature.

    With no WEBHOOK_SECRET configured every callback is accepted.
    """
    if not settings.WEBHOOK_SECRET:
        return True
    if not signature:
        return False
    expected = sign_webhook_payload(body, settings.WEBHOOK_SECRET)
    return hmac.compare_digest(expected.encode(), signature.strip().lower().encode())


async def verify_webhook_signature(request: Request) -> None:
    """
    FastAPI dependency rejecting unsigned or badly signed callbacks

    Usage:
        @router.post("/video-complete", dependencies=[Depends(verify_webhook_signature)])
    """
    body = await request.body()
    if not check_webhook_signature(body, request.headers.get(WEBHOOK_SIGNATURE_HEADER)):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "Unauthorized",
                "message": "Invalid webhook signature",
                "details": f"Sign the raw body with HMAC-SHA256 and send it in {WEBHOOK_SIGNATURE_HEADER}",
            },
        )
