from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime, timezone
from typing import Optional
import time

from ..config import Settings, get_settings
from ..database import get_db
from ..services.edit_lock import (
    Clock,
    DocumentNotFound,
    EditLockError,
    EditLockService,
    LockConflict,
    Unauthorized,
)


def get_clock() -> Clock:
    return time.time


async def get_edit_lock_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock)
) -> EditLockService:
    """One service per request, so its lock cache dies with the request"""
    return EditLockService(db, settings, clock=clock)


def to_http_exception(exc: EditLockError) -> HTTPException:
    if isinstance(exc, DocumentNotFound):
        return HTTPException(status_code=404, detail="Document not found")
    if isinstance(exc, LockConflict):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, Unauthorized):
        return HTTPException(status_code=403, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def from_timestamp(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)
