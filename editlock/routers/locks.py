from fastapi import APIRouter, Depends, HTTPException
import logging

from ..schemas import (
    HeartbeatResponse,
    LockConflictDetail,
    LockRequest,
    LockStatusOut,
    ReleaseResponse,
)
from ..services.edit_lock import (
    EditLockError,
    EditLockService,
    HeartbeatResult,
    LockConflict,
    LockState,
)
from ..utils.auth import get_current_actor_id
from ..utils.deps import from_timestamp, get_edit_lock_service, to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter()


async def build_lock_status(service: EditLockService, document_id: int,
                            actor_id: int) -> LockStatusOut:
    """Lock status plus the names and links an editing UI needs"""
    status = await service.evaluate(document_id, actor_id)

    out = LockStatusOut(
        document_id=document_id,
        state=status.state,
        holder_id=status.holder_id,
        acquired_at=from_timestamp(status.acquired_at),
        expires_at=from_timestamp(status.expires_at),
    )

    if status.state is LockState.HELD_BY_SELF:
        out.cancel_edit_link = await service.cancel_edit_link(document_id)
    elif status.state is LockState.HELD_BY_OTHER:
        out.locker_name = await service.locker_display_name(document_id, actor_id)
        if await service.identity.is_admin(actor_id):
            out.force_cancel_link = await service.force_cancel_link(document_id, actor_id)

    return out


async def conflict_exception(service: EditLockService, exc: LockConflict) -> HTTPException:
    status = exc.status
    detail = LockConflictDetail(
        message=str(exc),
        document_id=status.document_id,
        holder_id=status.holder_id,
        locker_name=await service.identity.display_name(status.display_holder_id),
        expires_at=from_timestamp(status.expires_at),
    )
    return HTTPException(status_code=409, detail=detail.model_dump(mode="json"))


def heartbeat_response(service: EditLockService, result: HeartbeatResult) -> HeartbeatResponse:
    return HeartbeatResponse(
        document_id=result.document_id,
        holder_id=result.holder_id,
        acquired_at=from_timestamp(result.acquired_at),
        expires_at=from_timestamp(result.expires_at),
        heartbeat_interval=service.settings.heartbeat_interval,
    )


@router.get("/docs/{document_id}/lock", response_model=LockStatusOut)
async def get_lock_status(
    document_id: int,
    actor_id: int = Depends(get_current_actor_id),
    service: EditLockService = Depends(get_edit_lock_service)
):
    """Who, if anyone, is editing a document"""
    try:
        return await build_lock_status(service, document_id, actor_id)
    except EditLockError as e:
        raise to_http_exception(e)


@router.post("/docs/{document_id}/edit", response_model=HeartbeatResponse)
async def start_edit_session(
    document_id: int,
    actor_id: int = Depends(get_current_actor_id),
    service: EditLockService = Depends(get_edit_lock_service)
):
    """Enter edit mode, taking the document's edit lock"""
    try:
        result = await service.start_edit(document_id, actor_id)
    except LockConflict as e:
        raise await conflict_exception(service, e)
    except EditLockError as e:
        raise to_http_exception(e)

    return heartbeat_response(service, result)


@router.post("/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(
    payload: LockRequest,
    actor_id: int = Depends(get_current_actor_id),
    service: EditLockService = Depends(get_edit_lock_service)
):
    """Periodic ping from an editing client keeping its lock alive"""
    try:
        result = await service.on_heartbeat(payload.document_id, actor_id)
    except LockConflict as e:
        raise await conflict_exception(service, e)
    except EditLockError as e:
        raise to_http_exception(e)

    return heartbeat_response(service, result)


@router.post("/remove_edit_lock", response_model=ReleaseResponse)
async def remove_edit_lock(
    payload: LockRequest,
    actor_id: int = Depends(get_current_actor_id),
    service: EditLockService = Depends(get_edit_lock_service)
):
    """Called when an editor leaves the page; only the holder's lock is dropped"""
    try:
        result = await service.release(payload.document_id, actor_id)
    except EditLockError as e:
        raise to_http_exception(e)

    return ReleaseResponse(document_id=result.document_id, released=result.released)
