from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Iterable, Optional

from ..models import Admin, Document, User


class IdentityService:
    """Lookups for users and documents used by the edit-lock service"""

    def __init__(self, session: AsyncSession, admin_ids: Iterable[int] = ()):
        self.session = session
        self.admin_ids = set(admin_ids)

    async def get_user(self, user_id: int) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def display_name(self, user_id: Optional[int]) -> str:
        """Human-readable name of a user, empty string for unknown users"""
        if not user_id:
            return ""
        user = await self.get_user(user_id)
        if not user:
            return ""
        return user.display_name or user.username or ""

    async def is_admin(self, user_id: int) -> bool:
        if user_id in self.admin_ids:
            return True
        result = await self.session.execute(
            select(Admin).where(Admin.user_id == user_id)
        )
        return result.scalar_one_or_none() is not None

    async def get_document(self, document_id: int) -> Optional[Document]:
        result = await self.session.execute(
            select(Document).where(Document.id == document_id)
        )
        return result.scalar_one_or_none()

    async def get_document_by_slug(self, slug: str) -> Optional[Document]:
        result = await self.session.execute(
            select(Document).where(Document.slug == slug)
        )
        return result.scalar_one_or_none()
