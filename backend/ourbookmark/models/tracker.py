"""
OurBookmark Backend: Reading Tracker Models
============================================

What:  Signed-in storage for the reading tracker.

Tables:
    children         one row per child, goal split into minutes/days columns
    reading_logs     one row per reading session, pointing at `books`
    family_profiles  one free-form settings blob per account
    user_documents   goals, challenges, class groups and the to-read list,
                     stored as one JSON list per (user, key)

Goals, challenges and class groups carry client-defined fields that change
with the UI, so they are kept as documents rather than columns.
"""

import uuid
from datetime import date as calendar_date, datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from ourbookmark.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Child(Base):
    __tablename__ = "children"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    grade: Mapped[str | None] = mapped_column(String(50), nullable=True)
    child_type: Mapped[str] = mapped_column(String(30), nullable=False, default="student")
    goal_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    goal_days: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    goal_is_custom: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    milestones: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (Index("idx_children_user", "user_id", "created_at"),)


class ReadingLog(Base):
    """
    One reading session.

    `book_title` keeps the text exactly as entered ("Matilda by Roald Dahl")
    while `book_id` points at the deduplicated catalog row.
    """

    __tablename__ = "reading_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("children.id", ondelete="CASCADE"), nullable=False
    )
    book_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("books.id", ondelete="SET NULL"), nullable=True
    )
    book_title: Mapped[str] = mapped_column(String(500), nullable=False)
    date: Mapped[calendar_date] = mapped_column(Date, nullable=False)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    loved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reading_type: Mapped[str] = mapped_column(String(30), nullable=False, default="independent")
    subject: Mapped[str | None] = mapped_column(String(100), nullable=True)
    genre: Mapped[str | None] = mapped_column(String(100), nullable=True)
    times_read: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_finished: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    chapter_current: Mapped[int | None] = mapped_column(Integer, nullable=True)
    chapter_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cover_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_reading_logs_user_date", "user_id", "date"),
        Index("idx_reading_logs_child", "child_id"),
        CheckConstraint("minutes > 0 AND minutes <= 1440", name="ck_reading_logs_minutes"),
    )


class FamilyProfile(Base):
    __tablename__ = "family_profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    family_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    baby_emoji: Mapped[str] = mapped_column(String(16), nullable=False, default="👶")
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class UserDocument(Base):
    __tablename__ = "user_documents"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    key: Mapped[str] = mapped_column(String(50), primary_key=True)
    data: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
