import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader

from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger
from gorillionaire.services.activity import activity_service

logger = Logger("APIAuth")

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)


def _matches(given: Optional[str], expected: Optional[str]) -> bool:
    if not given or not expected:
        return False
    return hmac.compare_digest(given.encode(), expected.encode())


async def verify_indexer_key(api_key: str = Depends(api_key_header)) -> str:
    """Shared secret the on-chain indexer sends with every event."""
    if not _matches(api_key, settings.INDEXER_API_KEY):
        if api_key:
            logger.warn(f"Invalid indexer key attempt: {api_key[:4]}...")
        raise HTTPException(status_code=401, detail="Unauthorized")
    return "indexer"


async def verify_admin_key(admin_key: str = Depends(admin_key_header)) -> str:
    if not settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail={"success": False, "message": "Admin access not configured"})
    if not _matches(admin_key, settings.ADMIN_API_KEY):
        raise HTTPException(status_code=401, detail={"success": False, "message": "Unauthorized"})
    return "admin"


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization") or ""
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        return token or None
    return None


async def require_user_token(address: str, token: Optional[str]):
    """The bearer token must be one issued to ``address`` at login."""
    if not await activity_service.is_token_valid(address, token):
        raise HTTPException(status_code=400, detail="User not found")
