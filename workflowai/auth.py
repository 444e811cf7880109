"""Bearer-token authentication against Supabase auth."""
import logging
from typing import Optional, Dict, Any

from fastapi import Depends, Header, HTTPException

from .config import settings
from .dependencies import get_db
from .supabase_client import AuthError

logger = logging.getLogger(__name__)


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        return ""
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return authorization.strip()


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db=Depends(get_db)
) -> Dict[str, Any]:
    """
    Resolve the ``Authorization: Bearer <token>`` header to a Supabase user.

    Raises:
        HTTPException: 401 if the header is missing or the token is invalid
    """
    token = bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="No authorization header")
    try:
        return await db.get_user(token)
    except AuthError as e:
        logger.warning(f"🔒 Invalid authorization: {e.message}")
        raise HTTPException(status_code=401, detail="Invalid authorization")


def is_admin(user: Dict[str, Any]) -> bool:
    return (user.get("email") or "").lower() in settings.admin_emails


async def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    """Raises HTTPException 403 unless the user's email is listed in ADMIN_EMAILS."""
    if not is_admin(user):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
