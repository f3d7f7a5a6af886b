"""Persistence for document edit locks.

Every write here is a single conditional statement, so two workers racing
on the same document cannot both believe they hold it.
"""

import logging
from typing import List, Optional

from sqlalchemy import delete, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import DocumentLock

logger = logging.getLogger(__name__)


class LockStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, document_id: int) -> Optional[DocumentLock]:
        result = await self.session.execute(
            select(DocumentLock)
            .where(DocumentLock.document_id == document_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def try_acquire(self, document_id: int, actor_id: int,
                          now: float, lock_window: float) -> bool:
        """Take or refresh the lock for actor_id.

        Succeeds when the document has no lock, a stale lock, or a lock
        already held by actor_id. Returns False when someone else holds it.
        """
        cutoff = now - lock_window
        result = await self.session.execute(
            update(DocumentLock)
            .where(
                DocumentLock.document_id == document_id,
                or_(
                    DocumentLock.holder_id == actor_id,
                    DocumentLock.acquired_at <= cutoff,
                ),
            )
            .values(holder_id=actor_id, acquired_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            await self.session.commit()
            return True

        # No row matched: either there is no lock yet or another actor holds
        # a live one. The insert only wins in the first case.
        try:
            await self.session.execute(
                insert(DocumentLock).values(
                    document_id=document_id,
                    holder_id=actor_id,
                    acquired_at=now,
                )
            )
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.debug(f"Lock on document {document_id} already held, insert lost")
            return False
        return True

    async def delete_if_holder(self, document_id: int, actor_id: int) -> bool:
        result = await self.session.execute(
            delete(DocumentLock)
            .where(
                DocumentLock.document_id == document_id,
                DocumentLock.holder_id == actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return bool(result.rowcount)

    async def force_delete(self, document_id: int) -> bool:
        result = await self.session.execute(
            delete(DocumentLock)
            .where(DocumentLock.document_id == document_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return bool(result.rowcount)

    async def active_locks(self, now: float, lock_window: float) -> List[DocumentLock]:
        result = await self.session.execute(
            select(DocumentLock)
            .where(DocumentLock.acquired_at > now - lock_window)
            .order_by(DocumentLock.acquired_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def purge_stale(self, now: float, lock_window: float) -> int:
        """Delete locks nobody has renewed within the window"""
        result = await self.session.execute(
            delete(DocumentLock)
            .where(DocumentLock.acquired_at <= now - lock_window)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount or 0
