from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True)
    display_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    locks = relationship("DocumentLock", back_populates="holder")


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String)
    slug = Column(String, unique=True, index=True)
    last_editor_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # display fallback only
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    lock = relationship("DocumentLock", back_populates="document", uselist=False)


class DocumentLock(Base):
    __tablename__ = "document_locks"

    # One row per document: the primary key is the at-most-one-holder invariant
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True)
    holder_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    acquired_at = Column(Float, nullable=False)  # unix seconds of last acquire/heartbeat

    document = relationship("Document", back_populates="lock")
    holder = relationship("User", back_populates="locks")
