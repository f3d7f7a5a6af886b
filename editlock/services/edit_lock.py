"""Advisory edit locks for collaboratively edited documents.

A document is locked by whoever last started editing it or sent a
heartbeat for it. The lock lapses on its own once ``lock_window`` seconds
pass without a heartbeat, and can be released early by its holder or
cleared by an administrator through a CSRF-protected link.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..models import Document
from ..utils.cache import RequestCache
from . import links
from .identity import IdentityService
from .lock_store import LockStore
from .nonce import NonceService

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class LockState(str, Enum):
    FREE = "free"
    HELD_BY_SELF = "held_by_self"
    HELD_BY_OTHER = "held_by_other"


@dataclass(frozen=True)
class LockStatus:
    document_id: int
    state: LockState
    holder_id: Optional[int] = None
    # Who to show as the locker; may be the last editor when the holder is unknown
    display_holder_id: Optional[int] = None
    acquired_at: Optional[float] = None
    expires_at: Optional[float] = None


@dataclass(frozen=True)
class HeartbeatResult:
    document_id: int
    holder_id: int
    acquired_at: float
    expires_at: float


@dataclass(frozen=True)
class ReleaseResult:
    document_id: int
    released: bool


@dataclass(frozen=True)
class ActiveLock:
    document_id: int
    holder_id: Optional[int]
    acquired_at: float
    expires_at: float


@dataclass(frozen=True)
class _LockRecord:
    document: Document
    holder_id: Optional[int]
    acquired_at: Optional[float]


class EditLockError(Exception):
    """Base class for edit lock failures."""


class DocumentNotFound(EditLockError):
    def __init__(self, document_id: int):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id


class LockConflict(EditLockError):
    def __init__(self, status: LockStatus):
        super().__init__(f"Document {status.document_id} is being edited by another user")
        self.status = status


class Unauthorized(EditLockError):
    """Actor may not perform the requested lock operation."""


def cancel_edit_lock_action(document_id: int) -> str:
    return f"{links.CANCEL_EDIT_LOCK}_{document_id}"


class EditLockService:
    """Edit lock operations for a single request.

    Lock lookups are memoized per instance; create one per request.
    """

    def __init__(self, session: AsyncSession, settings: Settings,
                 clock: Clock = time.time,
                 identity: Optional[IdentityService] = None):
        self.settings = settings
        self.clock = clock
        self.store = LockStore(session)
        self.identity = identity or IdentityService(session, settings.admin_ids)
        self.nonces = NonceService(settings.secret_key, settings.nonce_lifetime)
        self.cache: RequestCache[_LockRecord] = RequestCache()
        self.session = session

    @property
    def lock_window(self) -> float:
        return self.settings.lock_window

    async def _load(self, document_id: int) -> _LockRecord:
        record = self.cache.get(document_id)
        if record is not None:
            return record

        document = await self.identity.get_document(document_id)
        if document is None:
            raise DocumentNotFound(document_id)

        lock = await self.store.get(document_id)
        record = _LockRecord(
            document=document,
            holder_id=lock.holder_id if lock else None,
            acquired_at=lock.acquired_at if lock else None,
        )
        self.cache.set(document_id, record)
        return record

    async def get_document(self, document_id: int) -> Document:
        return (await self._load(document_id)).document

    async def evaluate(self, document_id: int, actor_id: int) -> LockStatus:
        """Decide whether the document is free, ours, or someone else's"""
        record = await self._load(document_id)

        if record.acquired_at is None:
            return LockStatus(document_id, LockState.FREE)

        age = self.clock() - record.acquired_at
        if age >= self.lock_window:
            return LockStatus(document_id, LockState.FREE)

        expires_at = record.acquired_at + self.lock_window

        if record.holder_id is None:
            # Live lock with no recorded holder: nobody may claim it, but the
            # last editor is the best guess to show
            return LockStatus(
                document_id,
                LockState.HELD_BY_OTHER,
                holder_id=None,
                display_holder_id=record.document.last_editor_id,
                acquired_at=record.acquired_at,
                expires_at=expires_at,
            )

        state = LockState.HELD_BY_SELF if record.holder_id == actor_id else LockState.HELD_BY_OTHER
        return LockStatus(
            document_id,
            state,
            holder_id=record.holder_id,
            display_holder_id=record.holder_id,
            acquired_at=record.acquired_at,
            expires_at=expires_at,
        )

    async def is_locked(self, document_id: int, actor_id: int) -> Optional[int]:
        """Id of the user locking the document against actor_id, if any"""
        status = await self.evaluate(document_id, actor_id)
        if status.state is LockState.HELD_BY_OTHER:
            return status.display_holder_id
        return None

    async def on_heartbeat(self, document_id: int, actor_id: int) -> HeartbeatResult:
        """Refresh the lock for an actively editing actor.

        Raises LockConflict instead of overwriting a live lock held by
        someone else.
        """
        await self._load(document_id)

        now = self.clock()
        acquired = await self.store.try_acquire(document_id, actor_id, now, self.lock_window)
        self.cache.invalidate(document_id)

        if not acquired:
            status = await self.evaluate(document_id, actor_id)
            logger.warning(
                f"User {actor_id} denied lock on document {document_id}, "
                f"held by {status.holder_id}"
            )
            raise LockConflict(status)

        logger.debug(f"Lock on document {document_id} refreshed by user {actor_id}")
        return HeartbeatResult(
            document_id=document_id,
            holder_id=actor_id,
            acquired_at=now,
            expires_at=now + self.lock_window,
        )

    async def start_edit(self, document_id: int, actor_id: int) -> HeartbeatResult:
        """Open an edit session: take the lock and record the last editor"""
        result = await self.on_heartbeat(document_id, actor_id)

        document = await self.get_document(document_id)
        if document.last_editor_id != actor_id:
            document.last_editor_id = actor_id
            await self.session.commit()

        logger.info(f"User {actor_id} started editing document {document_id}")
        return result

    async def release(self, document_id: int, actor_id: int) -> ReleaseResult:
        """Drop the lock if actor_id holds it; otherwise do nothing"""
        await self._load(document_id)

        released = await self.store.delete_if_holder(document_id, actor_id)
        self.cache.invalidate(document_id)

        if released:
            logger.info(f"User {actor_id} released lock on document {document_id}")
        else:
            logger.debug(f"User {actor_id} does not hold document {document_id}, nothing released")
        return ReleaseResult(document_id=document_id, released=released)

    async def force_cancel(self, document_id: int, actor_id: int, token: str) -> ReleaseResult:
        """Clear the lock regardless of holder. Administrators only."""
        await self._load(document_id)

        if not self.nonces.verify(token, cancel_edit_lock_action(document_id), actor_id, self.clock()):
            raise Unauthorized("Invalid or expired link")

        if not await self.identity.is_admin(actor_id):
            raise Unauthorized("Only administrators can cancel another user's edit lock")

        released = await self.store.force_delete(document_id)
        self.cache.invalidate(document_id)

        logger.info(f"User {actor_id} force-cancelled edit lock on document {document_id}")
        return ReleaseResult(document_id=document_id, released=released)

    async def locker_display_name(self, document_id: int, actor_id: int) -> str:
        status = await self.evaluate(document_id, actor_id)
        if status.state is not LockState.HELD_BY_OTHER:
            return ""
        return await self.identity.display_name(status.display_holder_id)

    async def force_cancel_link(self, document_id: int, actor_id: int) -> str:
        document = await self.get_document(document_id)
        nonce = self.nonces.create(cancel_edit_lock_action(document_id), actor_id, self.clock())
        return links.force_cancel_link(self.settings.base_url, document, nonce)

    async def cancel_edit_link(self, document_id: int) -> str:
        document = await self.get_document(document_id)
        return links.cancel_edit_link(self.settings.base_url, document)

    async def active_locks(self) -> List[ActiveLock]:
        now = self.clock()
        return [
            ActiveLock(
                document_id=lock.document_id,
                holder_id=lock.holder_id,
                acquired_at=lock.acquired_at,
                expires_at=lock.acquired_at + self.lock_window,
            )
            for lock in await self.store.active_locks(now, self.lock_window)
        ]

    async def purge_stale(self) -> int:
        count = await self.store.purge_stale(self.clock(), self.lock_window)
        self.cache.clear()
        if count:
            logger.info(f"Purged {count} stale edit locks")
        return count
