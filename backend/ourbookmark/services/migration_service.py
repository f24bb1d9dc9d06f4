"""
OurBookmark Backend: Local-to-Cloud Migration Service
======================================================

What:  Copies a device's signed-out data into the account on first sign-in.
How:   A sync log (migration_runs / migration_records) tracks every local
       record as pending → done | failed together with the server id it
       became. A rerun skips done records and rebuilds its id maps from the
       log, so running twice never duplicates anything.
Who:   POST /api/sync/migrate (called by the client right after sign-in),
       GET /api/sync/status (the "sync your local data" banner).

Phases (each commits before the next starts):

    ┌──────────┐   ┌───────────────────┐   ┌──────────────┐   ┌──────────────┐
    │ children │──▶│ books (exact-title│──▶│ logs, batches│──▶│ family +     │
    │ id map   │   │ lookup-or-insert) │   │ of 50        │   │ documents    │
    └──────────┘   └───────────────────┘   └──────────────┘   └──────────────┘

Failure Semantics:
    - A record that fails is marked failed with its reason; the phase goes on.
    - A log whose child or book did not map is marked failed, not inserted.
    - A failing log batch is rolled back as a whole and its records marked
      failed; other batches are unaffected.
    - The device's migrated flag is set at the end of every attempt,
      including failed and timed-out ones. Retrying is explicit
      (retry_failed=True).
    - A wall-clock timeout abandons the attempt; phases already committed
      stay committed.
"""

import asyncio
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ourbookmark.config import settings
from ourbookmark.exceptions import FileStorageError, OurBookmarkError
from ourbookmark.models.sync import (
    RECORD_DONE,
    RECORD_FAILED,
    RUN_ABANDONED,
    RUN_COMPLETED,
    RUN_PARTIAL,
    RUN_RUNNING,
    MigrationRecord,
    MigrationRun,
)
from ourbookmark.models.tracker import Child as ChildRow
from ourbookmark.models.tracker import FamilyProfile as FamilyRow
from ourbookmark.models.tracker import ReadingLog as LogRow
from ourbookmark.models.tracker import UserDocument
from ourbookmark.schemas.sync import MigrationResult, MigrationRunSummary, SyncStatus
from ourbookmark.services import device_store as keys
from ourbookmark.services.catalog_service import catalog_service
from ourbookmark.services.device_store import DeviceStore, device_store, validate_device_id

logger = logging.getLogger(__name__)

# Collections in the sync log
CHILDREN = "children"
BOOKS = "books"
LOGS = "logs"
FAMILY = "family"
DOCUMENTS = "documents"

COPIED_DOCUMENT_KEYS = (
    keys.GOALS_KEY,
    keys.CHALLENGES_KEY,
    keys.CLASS_GROUPS_KEY,
    keys.TO_READ_KEY,
)

LOCAL_KEY_LIMIT = 600

Ledger = Dict[Tuple[str, str], Tuple[str, Optional[str]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _local_key(record: Any, index: int) -> str:
    if isinstance(record, dict) and record.get("id") not in (None, ""):
        return str(record["id"])[:LOCAL_KEY_LIMIT]
    return f"index:{index}"


def _book_key(log: dict) -> str:
    return f"{log.get('bookTitle') or ''}|{log.get('author') or ''}"[:LOCAL_KEY_LIMIT]


def _dicts(value: Any) -> List[dict]:
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


class RecordSkipped(Exception):
    """A local record that cannot be copied as it stands."""


class MigrationAttempt:
    """
    State for one attempt: the sync log ledger and the running id maps.

    The ledger mirrors migration_records in memory and is written with Core
    statements; `snapshot`/`restore` undo its in-memory side after a rollback.
    """

    def __init__(self, db: AsyncSession, run_id: uuid.UUID, user_id: uuid.UUID, ledger: Ledger):
        self.db = db
        self.run_id = run_id
        self.user_id = user_id
        self.ledger = ledger
        self.child_ids: Dict[str, uuid.UUID] = {}
        self.book_ids: Dict[str, uuid.UUID] = {}
        self.counts = {CHILDREN: 0, BOOKS: 0, LOGS: 0, DOCUMENTS: 0}

    def done_id(self, collection: str, local_key: str) -> Optional[str]:
        state, remote_id = self.ledger.get((collection, local_key), (None, None))
        return remote_id if state == RECORD_DONE else None

    def is_done(self, collection: str, local_key: str) -> bool:
        return self.ledger.get((collection, local_key), (None, None))[0] == RECORD_DONE

    async def mark(
        self,
        collection: str,
        local_key: str,
        state: str,
        remote_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        values = {"state": state, "remote_id": remote_id, "error": error, "updated_at": _utcnow()}
        if (collection, local_key) in self.ledger:
            await self.db.execute(
                update(MigrationRecord)
                .where(
                    MigrationRecord.run_id == self.run_id,
                    MigrationRecord.collection == collection,
                    MigrationRecord.local_key == local_key,
                )
                .values(**values)
            )
        else:
            await self.db.execute(
                insert(MigrationRecord).values(
                    id=uuid.uuid4(),
                    run_id=self.run_id,
                    collection=collection,
                    local_key=local_key,
                    **values,
                )
            )
        self.ledger[(collection, local_key)] = (state, remote_id)

    def snapshot(self, collection: str, local_keys: List[str]) -> Dict[Tuple[str, str], Any]:
        return {(collection, k): self.ledger.get((collection, k)) for k in local_keys}

    def restore(self, saved: Dict[Tuple[str, str], Any]) -> None:
        for marker, entry in saved.items():
            if entry is None:
                self.ledger.pop(marker, None)
            else:
                self.ledger[marker] = entry

    def failed_count(self) -> int:
        return sum(1 for state, _ in self.ledger.values() if state == RECORD_FAILED)


class MigrationService:
    """
    Args:
        store: DeviceStore to read from (tests pass one rooted in tmp_path).
    """

    def __init__(self, store: Optional[DeviceStore] = None):
        self.store = store or device_store

    # ══════════════════════════════════════════════════════════════════════
    # Status
    # ══════════════════════════════════════════════════════════════════════

    async def _get_run(
        self, db: AsyncSession, user_id: uuid.UUID, device_id: str
    ) -> Optional[MigrationRun]:
        result = await db.execute(
            select(MigrationRun)
            .where(MigrationRun.user_id == user_id, MigrationRun.device_id == device_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def sync_status(
        self, db: AsyncSession, device_id: str, user_id: Optional[uuid.UUID] = None
    ) -> SyncStatus:
        validate_device_id(device_id)
        has_local_data = await self.store.has_tracker_data(device_id)
        migrated = await self.store.is_migrated(device_id)
        run = await self._get_run(db, user_id, device_id) if user_id else None
        return SyncStatus(
            has_local_data=has_local_data,
            migrated=migrated,
            show_banner=has_local_data and not migrated,
            last_run=MigrationRunSummary.model_validate(run) if run else None,
        )

    # ══════════════════════════════════════════════════════════════════════
    # Entry Point
    # ══════════════════════════════════════════════════════════════════════

    async def migrate_device(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        device_id: str,
        retry_failed: bool = False,
    ) -> MigrationResult:
        """
        Run (or resume) the migration of one device into one account.

        Args:
            retry_failed: Re-process pending and failed records even though
                the device is already flagged as migrated.
        """
        validate_device_id(device_id)
        run = await self._get_run(db, user_id, device_id)

        if run is not None and run.status == RUN_COMPLETED:
            return MigrationResult(status="already_migrated", run_id=run.id)
        if await self.store.is_migrated(device_id) and not retry_failed:
            return MigrationResult(status="already_migrated", run_id=run.id if run else None)

        document = await self.store.load(device_id)
        children = _dicts(document.get(keys.CHILDREN_KEY))
        logs = _dicts(document.get(keys.LOGS_KEY))
        if not children and not logs:
            await self.store.set(device_id, keys.MIGRATED_KEY, True)
            return MigrationResult(status="nothing_to_migrate")

        if run is None:
            run = MigrationRun(user_id=user_id, device_id=device_id, attempts=0)
            db.add(run)
        run.attempts += 1
        run.status = RUN_RUNNING
        run.started_at = _utcnow()
        run.finished_at = None
        run.error_message = None
        await db.commit()
        run_id = run.id

        ledger = await self._load_ledger(db, run_id)
        attempt = MigrationAttempt(db, run_id, user_id, ledger)
        logger.info(
            "Migration started: device %s, %d children, %d logs, attempt %d",
            device_id, len(children), len(logs), run.attempts,
        )

        status: str
        outcome: str
        error_message: Optional[str] = None
        try:
            await asyncio.wait_for(
                self._copy(attempt, document, children, logs),
                timeout=settings.migration_timeout_seconds,
            )
            status = RUN_PARTIAL if attempt.failed_count() else RUN_COMPLETED
            outcome = status
        except asyncio.TimeoutError:
            await db.rollback()
            status = outcome = RUN_ABANDONED
            error_message = (
                f"Timed out after {settings.migration_timeout_seconds:g}s; "
                "committed phases were kept"
            )
            logger.warning("Migration abandoned for device %s: %s", device_id, error_message)
        except (SQLAlchemyError, OurBookmarkError) as e:
            await db.rollback()
            status = RUN_PARTIAL
            outcome = "failed"
            error_message = str(e)
            logger.exception("Migration error for device %s", device_id)

        await db.execute(
            update(MigrationRun)
            .where(MigrationRun.id == run_id)
            .values(status=status, finished_at=_utcnow(), error_message=error_message)
        )
        await db.commit()
        await self._set_flag(device_id)

        logger.info(
            "Migration %s: device %s, %d children, %d books, %d logs, %d failed",
            status, device_id, attempt.counts[CHILDREN], attempt.counts[BOOKS],
            attempt.counts[LOGS], attempt.failed_count(),
        )
        return MigrationResult(
            status=outcome,
            run_id=run_id,
            children_migrated=attempt.counts[CHILDREN],
            books_migrated=attempt.counts[BOOKS],
            logs_migrated=attempt.counts[LOGS],
            documents_migrated=attempt.counts[DOCUMENTS],
            failed_records=attempt.failed_count(),
        )

    async def _set_flag(self, device_id: str) -> None:
        try:
            await self.store.set(device_id, keys.MIGRATED_KEY, True)
        except FileStorageError:
            logger.error("Could not set the migrated flag for device %s", device_id)

    async def _load_ledger(self, db: AsyncSession, run_id: uuid.UUID) -> Ledger:
        result = await db.execute(
            select(
                MigrationRecord.collection,
                MigrationRecord.local_key,
                MigrationRecord.state,
                MigrationRecord.remote_id,
            ).where(MigrationRecord.run_id == run_id)
        )
        return {(c, k): (s, r) for c, k, s, r in result.all()}

    async def _copy(
        self,
        attempt: MigrationAttempt,
        document: Dict[str, Any],
        children: List[dict],
        logs: List[dict],
    ) -> None:
        await self._copy_children(attempt, children)
        await self._copy_books(attempt, logs)
        await self._copy_logs(attempt, logs)
        await self._copy_family(attempt, document.get(keys.FAMILY_KEY))
        await self._copy_documents(attempt, document)

    # ══════════════════════════════════════════════════════════════════════
    # Phases
    # ══════════════════════════════════════════════════════════════════════

    async def _copy_children(self, attempt: MigrationAttempt, children: List[dict]) -> None:
        db = attempt.db
        for index, child in enumerate(children):
            local_key = _local_key(child, index)
            existing = attempt.done_id(CHILDREN, local_key)
            if existing:
                attempt.child_ids[local_key] = uuid.UUID(existing)
                continue

            try:
                name = str(child.get("name") or "").strip()
                if not name:
                    raise RecordSkipped("child has no name")
                goal = child.get("goal") if isinstance(child.get("goal"), dict) else {}
                row_id = uuid.uuid4()
                db.add(
                    ChildRow(
                        id=row_id,
                        user_id=attempt.user_id,
                        name=name,
                        grade=child.get("grade") or None,
                        child_type=child.get("childType") or "student",
                        goal_minutes=goal.get("minutesPerDay") or 20,
                        goal_days=goal.get("daysPerWeek") or 5,
                        goal_is_custom=bool(goal.get("isCustom", False)),
                        milestones=child.get("milestones") or [],
                        archived=bool(child.get("archived", False)),
                    )
                )
                await db.flush()
                await attempt.mark(CHILDREN, local_key, RECORD_DONE, str(row_id))
                await db.commit()
                attempt.child_ids[local_key] = row_id
                attempt.counts[CHILDREN] += 1
            except RecordSkipped as e:
                await attempt.mark(CHILDREN, local_key, RECORD_FAILED, error=str(e))
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.warning("Migration: child %s failed: %s", local_key, e)
                await attempt.mark(CHILDREN, local_key, RECORD_FAILED, error=str(e)[:500])
                await db.commit()

    async def _copy_books(self, attempt: MigrationAttempt, logs: List[dict]) -> None:
        """One catalog lookup-or-insert per distinct (title, author)."""
        db = attempt.db
        unique: Dict[str, dict] = {}
        for log in logs:
            unique[_book_key(log)] = log

        for local_key, log in unique.items():
            title = log.get("bookTitle") or ""
            existing = attempt.done_id(BOOKS, local_key)
            if existing:
                attempt.book_ids[title] = uuid.UUID(existing)
                continue

            try:
                book, created = await catalog_service.get_or_create_by_title(
                    db,
                    title,
                    author=log.get("author") or None,
                    cover_url=log.get("coverUrl") or None,
                )
                await attempt.mark(BOOKS, local_key, RECORD_DONE, str(book.id))
                await db.commit()
                attempt.book_ids[title] = book.id
                if created:
                    attempt.counts[BOOKS] += 1
            except OurBookmarkError as e:
                await attempt.mark(BOOKS, local_key, RECORD_FAILED, error=e.message)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.warning("Migration: book '%s' failed: %s", title, e)
                await attempt.mark(BOOKS, local_key, RECORD_FAILED, error=str(e)[:500])
                await db.commit()

    def _log_row(self, attempt: MigrationAttempt, log: dict) -> LogRow:
        child_id = attempt.child_ids.get(str(log.get("childId")))
        if child_id is None:
            raise RecordSkipped("child was not migrated")
        title = log.get("bookTitle") or ""
        book_id = attempt.book_ids.get(title)
        if book_id is None:
            raise RecordSkipped("book was not migrated")
        try:
            read_on = date.fromisoformat(str(log.get("date"))[:10])
            minutes = int(log.get("minutes"))
        except (TypeError, ValueError):
            raise RecordSkipped("log has an unreadable date or minutes")
        if not 0 < minutes <= 1440:
            raise RecordSkipped("log minutes are outside 1-1440")

        return LogRow(
            id=uuid.uuid4(),
            user_id=attempt.user_id,
            child_id=child_id,
            book_id=book_id,
            book_title=title,
            date=read_on,
            minutes=minutes,
            notes=log.get("notes") or None,
            loved=bool(log.get("loved", False)),
            reading_type=log.get("readingType") or "independent",
            subject=log.get("subject") or None,
            genre=log.get("genre") or None,
            times_read=log.get("timesRead") or 1,
            is_finished=bool(log.get("isFinished", False)),
            chapter_current=log.get("chapterCurrent") or None,
            chapter_total=log.get("chapterTotal") or None,
            rating=log.get("rating") or None,
            cover_url=log.get("coverUrl") or None,
        )

    async def _copy_logs(self, attempt: MigrationAttempt, logs: List[dict]) -> None:
        db = attempt.db
        ready: List[Tuple[str, LogRow]] = []
        for index, log in enumerate(logs):
            local_key = _local_key(log, index)
            if attempt.is_done(LOGS, local_key):
                continue
            try:
                ready.append((local_key, self._log_row(attempt, log)))
            except RecordSkipped as e:
                await attempt.mark(LOGS, local_key, RECORD_FAILED, error=str(e))
        await db.commit()

        size = settings.migration_batch_size
        for start in range(0, len(ready), size):
            batch = ready[start:start + size]
            saved = attempt.snapshot(LOGS, [local_key for local_key, _ in batch])
            try:
                db.add_all([row for _, row in batch])
                await db.flush()
                for local_key, row in batch:
                    await attempt.mark(LOGS, local_key, RECORD_DONE, str(row.id))
                await db.commit()
                attempt.counts[LOGS] += len(batch)
            except SQLAlchemyError as e:
                await db.rollback()
                logger.warning(
                    "Migration: log batch %d-%d failed: %s", start, start + len(batch) - 1, e
                )
                attempt.restore(saved)
                for local_key, _ in batch:
                    await attempt.mark(LOGS, local_key, RECORD_FAILED, error=str(e)[:500])
                await db.commit()

    async def _copy_family(self, attempt: MigrationAttempt, family: Any) -> None:
        if not isinstance(family, dict) or attempt.is_done(FAMILY, keys.FAMILY_KEY):
            return
        db = attempt.db
        row = await db.get(FamilyRow, attempt.user_id)
        if row is None:
            row = FamilyRow(user_id=attempt.user_id)
            db.add(row)
        row.family_name = family.get("familyName") or None
        row.baby_emoji = family.get("babyEmoji") or "👶"
        row.data = family
        await db.flush()
        await attempt.mark(FAMILY, keys.FAMILY_KEY, RECORD_DONE, str(attempt.user_id))
        await db.commit()

    async def _copy_documents(self, attempt: MigrationAttempt, document: Dict[str, Any]) -> None:
        """Device lists land in user_documents only where the account has none yet."""
        db = attempt.db
        for key in COPIED_DOCUMENT_KEYS:
            items = _dicts(document.get(key))
            if not items or attempt.is_done(DOCUMENTS, key):
                continue
            exists = (
                await db.execute(
                    select(func.count())
                    .select_from(UserDocument)
                    .where(UserDocument.user_id == attempt.user_id, UserDocument.key == key)
                )
            ).scalar()
            if not exists:
                db.add(UserDocument(user_id=attempt.user_id, key=key, data=items))
                await db.flush()
                attempt.counts[DOCUMENTS] += 1
            await attempt.mark(DOCUMENTS, key, RECORD_DONE, key)
            await db.commit()


migration_service = MigrationService()
