from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from typing import Optional
import logging

from ..schemas import DocumentWithLock
from ..services import links
from ..services.edit_lock import EditLockError, EditLockService
from ..utils.auth import get_current_actor_id
from ..utils.deps import get_edit_lock_service, to_http_exception
from .locks import build_lock_status

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{slug}/", response_model=DocumentWithLock)
async def view_document(
    slug: str,
    bpd_action: Optional[str] = Query(None),
    nonce: Optional[str] = Query(None, alias=links.NONCE_PARAM),
    actor_id: int = Depends(get_current_actor_id),
    service: EditLockService = Depends(get_edit_lock_service)
):
    """Read-mode view of a document.

    Also handles the cancel links: ``bpd_action=cancel_edit`` drops the
    caller's own lock, ``bpd_action=cancel_edit_lock`` clears the lock for
    whoever holds it and needs a valid ``_nonce``. Both redirect back to
    the plain permalink.
    """
    document = await service.identity.get_document_by_slug(slug)
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")

    permalink = links.doc_permalink(service.settings.base_url, document)

    try:
        if bpd_action == links.CANCEL_EDIT:
            await service.release(document.id, actor_id)
            return RedirectResponse(permalink, status_code=303)

        if bpd_action == links.CANCEL_EDIT_LOCK:
            await service.force_cancel(document.id, actor_id, nonce or "")
            return RedirectResponse(permalink, status_code=303)

        if bpd_action:
            raise HTTPException(status_code=400, detail=f"Unknown action: {bpd_action}")

        lock = await build_lock_status(service, document.id, actor_id)
    except EditLockError as e:
        raise to_http_exception(e)

    return DocumentWithLock(
        id=document.id,
        title=document.title,
        slug=document.slug,
        last_editor_id=document.last_editor_id,
        lock=lock,
    )
