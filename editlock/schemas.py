from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional

from .services.edit_lock import LockState


class User(BaseModel):
    id: int
    username: str
    display_name: Optional[str] = None

    class Config:
        from_attributes = True


class DocumentBase(BaseModel):
    title: str
    slug: str


class Document(DocumentBase):
    id: int
    last_editor_id: Optional[int] = None

    class Config:
        from_attributes = True


class LockStatusOut(BaseModel):
    document_id: int
    state: LockState
    holder_id: Optional[int] = None
    locker_name: str = ""
    acquired_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    cancel_edit_link: Optional[str] = None
    force_cancel_link: Optional[str] = None


class DocumentWithLock(Document):
    lock: LockStatusOut


class LockRequest(BaseModel):
    document_id: int


class HeartbeatResponse(BaseModel):
    document_id: int
    holder_id: int
    acquired_at: datetime
    expires_at: datetime
    heartbeat_interval: int


class LockConflictDetail(BaseModel):
    message: str
    document_id: int
    holder_id: Optional[int] = None
    locker_name: str = ""
    expires_at: Optional[datetime] = None


class ReleaseResponse(BaseModel):
    document_id: int
    released: bool


class ActiveLockOut(BaseModel):
    document_id: int
    holder_id: Optional[int] = None
    locker_name: str = ""
    acquired_at: datetime
    expires_at: datetime


class ActiveLocksResponse(BaseModel):
    locks: List[ActiveLockOut]


class PurgeResponse(BaseModel):
    purged: int
