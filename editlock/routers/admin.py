from fastapi import APIRouter, Depends
import logging

from ..models import User
from ..schemas import ActiveLockOut, ActiveLocksResponse, PurgeResponse
from ..services.edit_lock import EditLockService
from ..utils.auth import get_current_admin
from ..utils.deps import from_timestamp, get_edit_lock_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/locks", response_model=ActiveLocksResponse)
async def list_active_locks(
    current_admin: User = Depends(get_current_admin),
    service: EditLockService = Depends(get_edit_lock_service)
):
    """All documents currently being edited"""
    locks = []
    for lock in await service.active_locks():
        locks.append(ActiveLockOut(
            document_id=lock.document_id,
            holder_id=lock.holder_id,
            locker_name=await service.identity.display_name(lock.holder_id),
            acquired_at=from_timestamp(lock.acquired_at),
            expires_at=from_timestamp(lock.expires_at),
        ))
    return ActiveLocksResponse(locks=locks)


@router.post("/locks/purge", response_model=PurgeResponse)
async def purge_stale_locks(
    current_admin: User = Depends(get_current_admin),
    service: EditLockService = Depends(get_edit_lock_service)
):
    """Delete locks whose editors stopped sending heartbeats"""
    purged = await service.purge_stale()
    logger.info(f"Admin {current_admin.id} purged {purged} stale locks")
    return PurgeResponse(purged=purged)
