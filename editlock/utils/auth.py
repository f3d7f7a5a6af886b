from fastapi import Depends, HTTPException, Header
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import hashlib
import hmac
import logging

from ..config import Settings, get_settings
from ..database import get_db
from ..models import User
from ..services.identity import IdentityService

logger = logging.getLogger(__name__)


def _signature(secret_key: str, user_id: int) -> str:
    return hmac.new(
        secret_key.encode(),
        f"session|{user_id}".encode(),
        hashlib.sha256
    ).hexdigest()


def issue_session_token(user_id: int, secret_key: str) -> str:
    """Bearer token identifying user_id, signed with the server secret"""
    return f"{user_id}.{_signature(secret_key, user_id)}"


def validate_session_token(token: str, secret_key: str) -> Optional[int]:
    """Return the user id a token was issued for, or None if it is forged"""
    user_part, _, signature = token.partition(".")
    if not user_part.isdigit() or not signature:
        return None

    user_id = int(user_part)
    if not hmac.compare_digest(_signature(secret_key, user_id), signature):
        return None
    return user_id


async def get_current_actor_id(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings)
) -> int:
    """Get the acting user's id from the bearer token"""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authentication required")

    token = authorization.replace("Bearer ", "", 1).strip()
    actor_id = validate_session_token(token, settings.secret_key)

    if actor_id is None:
        logger.info("Rejected request with invalid session token")
        raise HTTPException(status_code=401, detail="Invalid authentication")

    return actor_id


async def get_current_user(
    actor_id: int = Depends(get_current_actor_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> User:
    """Get current user record"""
    user = await IdentityService(db, settings.admin_ids).get_user(actor_id)

    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")

    return user


async def get_current_admin(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> User:
    """Check if current user is admin"""
    if not await IdentityService(db, settings.admin_ids).is_admin(current_user.id):
        raise HTTPException(status_code=403, detail="Admin access required")

    return current_user
