"""
OurBookmark Backend: Migration Sync Log Models
===============================================

What:  Durable bookkeeping for copying a device's local data into an account.

    migration_runs     one row per (user, device): overall status + counters
    migration_records  one row per local record: pending → done | failed

Run status values:
    running    an attempt is in progress (or died without finishing)
    completed  every record is done; later attempts are no-ops
    partial    finished with some failed records; can be retried
    abandoned  stopped by the wall-clock timeout; can be retried

A record that is `done` stores the server id it became, so a retried run
rebuilds its id maps from the table instead of inserting duplicates.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from ourbookmark.database import Base

RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_PARTIAL = "partial"
RUN_ABANDONED = "abandoned"

RECORD_PENDING = "pending"
RECORD_DONE = "done"
RECORD_FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MigrationRun(Base):
    __tablename__ = "migration_runs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    device_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RUN_RUNNING)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "device_id", name="uq_migration_runs_user_device"),
    )


class MigrationRecord(Base):
    __tablename__ = "migration_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("migration_runs.id", ondelete="CASCADE"), nullable=False
    )
    collection: Mapped[str] = mapped_column(String(30), nullable=False)
    local_key: Mapped[str] = mapped_column(String(600), nullable=False)
    state: Mapped[str] = mapped_column(String(10), nullable=False, default=RECORD_PENDING)
    remote_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("run_id", "collection", "local_key", name="uq_migration_records_key"),
    )
