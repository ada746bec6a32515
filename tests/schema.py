"""Tables used by the test-suite."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for test tables."""


class TimestampMixin:
    """Timestamps filled in by the database."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class UserRecord(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)


class MessageRecord(TimestampMixin, Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(String(512), nullable=False)
    sender_id: Mapped[int] = mapped_column(Integer, nullable=False)
    recipient_id: Mapped[int] = mapped_column(Integer, nullable=False)


class NoteRecord(Base):
    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    body: Mapped[str] = mapped_column(String(256), nullable=False)
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


USERS = [{"name": "Alice"}, {"name": "Bob"}]

MESSAGES = [
    {"text": "Hello", "sender_id": 1, "recipient_id": 2},
    {"text": "Hi", "sender_id": 2, "recipient_id": 1},
    {"text": "Psst", "sender_id": 2, "recipient_id": 3},
]

NOTES = [
    {"body": "first", "hidden": False},
    {"body": "second", "hidden": True},
    {"body": "third", "hidden": False},
]
