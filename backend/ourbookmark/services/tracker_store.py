"""
OurBookmark Backend: Tracker Stores
====================================

What:  One interface over the two places a family's tracker data can live.

    TrackerStore (abstract)
    ├── DeviceTrackerStore   signed out: the device's JSON document
    └── AccountTrackerStore  signed in: children / reading_logs / books /
                             family_profiles / user_documents tables

How:   TrackerService only talks to this interface, so validation, orphan
       repair, join codes and backups are written once for both scopes.
       Records cross the boundary as the camelCase schemas in
       ourbookmark.schemas.tracker; each store converts to its own layout.

Ids:   Device records keep whatever id the client gave them. Account
       records use the database UUID rendered as a string.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ourbookmark.exceptions import NotFoundError
from ourbookmark.models.catalog import Book
from ourbookmark.models.tracker import Child as ChildRow
from ourbookmark.models.tracker import FamilyProfile as FamilyRow
from ourbookmark.models.tracker import ReadingLog as LogRow
from ourbookmark.models.tracker import UserDocument
from ourbookmark.schemas.tracker import Child, ChildGoal, ReadingLog
from ourbookmark.services import device_store as keys
from ourbookmark.services.book_text import split_title_author
from ourbookmark.services.catalog_service import catalog_service
from ourbookmark.services.device_store import DeviceStore

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

DOCUMENT_KEYS = (
    keys.GOALS_KEY,
    keys.CHALLENGES_KEY,
    keys.CLASS_GROUPS_KEY,
    keys.TO_READ_KEY,
)


def parse_records(model: Type[ModelT], items: Iterable[Any], label: str) -> List[ModelT]:
    """Validate stored dicts, dropping (and logging) the ones that no longer fit."""
    parsed: List[ModelT] = []
    for item in items or []:
        try:
            parsed.append(model.model_validate(item))
        except SchemaValidationError as e:
            logger.warning("Skipping unreadable %s record: %s", label, e.errors()[:1])
    return parsed


def as_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _importable(log: ReadingLog) -> bool:
    """Backup logs must carry a readable date and 1-1440 minutes to become rows."""
    try:
        date.fromisoformat(str(log.date)[:10])
    except ValueError:
        return False
    return 0 < log.minutes <= 1440


class TrackerStore(ABC):
    """Persistence operations TrackerService needs."""

    scope: str

    @property
    @abstractmethod
    def scope_key(self) -> str:
        """Stable identity of this data set, e.g. 'device:abc123...'."""

    # children
    @abstractmethod
    async def list_children(self) -> List[Child]: ...

    @abstractmethod
    async def add_child(self, child: Child) -> Child: ...

    @abstractmethod
    async def save_child(self, child: Child) -> None: ...

    # logs
    @abstractmethod
    async def list_logs(self) -> List[ReadingLog]: ...

    @abstractmethod
    async def add_log(self, log: ReadingLog) -> ReadingLog: ...

    @abstractmethod
    async def save_log(self, log: ReadingLog) -> None: ...

    @abstractmethod
    async def delete_log(self, log_id: str) -> bool: ...

    @abstractmethod
    async def reassign_logs(self, log_ids: Sequence[str], child_id: str) -> None: ...

    @abstractmethod
    async def replace_children_and_logs(
        self, children: List[Child], logs: List[ReadingLog]
    ) -> Tuple[int, int]: ...

    # documents
    @abstractmethod
    async def get_documents(self, key: str) -> List[dict]: ...

    @abstractmethod
    async def set_documents(self, key: str, items: List[dict]) -> None: ...

    @abstractmethod
    async def get_family(self) -> Optional[dict]: ...

    @abstractmethod
    async def set_family(self, family: dict) -> None: ...


# ══════════════════════════════════════════════════════════════════════════
# Signed Out: Device Document
# ══════════════════════════════════════════════════════════════════════════

class DeviceTrackerStore(TrackerStore):
    scope = "device"

    def __init__(self, store: DeviceStore, device_id: str):
        self.store = store
        self.device_id = device_id

    @property
    def scope_key(self) -> str:
        return f"device:{self.device_id}"

    async def _list(self, key: str) -> List[dict]:
        return list(await self.store.get(self.device_id, key, []))

    async def list_children(self) -> List[Child]:
        return parse_records(Child, await self._list(keys.CHILDREN_KEY), "child")

    async def add_child(self, child: Child) -> Child:
        children = await self._list(keys.CHILDREN_KEY)
        children.append(child.to_storage())
        await self.store.set(self.device_id, keys.CHILDREN_KEY, children)
        return child

    async def save_child(self, child: Child) -> None:
        children = await self._list(keys.CHILDREN_KEY)
        replaced = [
            child.to_storage() if str(item.get("id")) == child.id else item
            for item in children
        ]
        await self.store.set(self.device_id, keys.CHILDREN_KEY, replaced)

    async def list_logs(self) -> List[ReadingLog]:
        return parse_records(ReadingLog, await self._list(keys.LOGS_KEY), "log")

    async def add_log(self, log: ReadingLog) -> ReadingLog:
        logs = await self._list(keys.LOGS_KEY)
        logs.insert(0, log.to_storage())
        await self.store.set(self.device_id, keys.LOGS_KEY, logs)
        return log

    async def save_log(self, log: ReadingLog) -> None:
        logs = await self._list(keys.LOGS_KEY)
        replaced = [log.to_storage() if str(item.get("id")) == log.id else item for item in logs]
        await self.store.set(self.device_id, keys.LOGS_KEY, replaced)

    async def delete_log(self, log_id: str) -> bool:
        logs = await self._list(keys.LOGS_KEY)
        kept = [item for item in logs if str(item.get("id")) != log_id]
        if len(kept) == len(logs):
            return False
        await self.store.set(self.device_id, keys.LOGS_KEY, kept)
        return True

    async def reassign_logs(self, log_ids: Sequence[str], child_id: str) -> None:
        targets = set(log_ids)
        logs = await self._list(keys.LOGS_KEY)
        for item in logs:
            if str(item.get("id")) in targets:
                item["childId"] = child_id
        await self.store.set(self.device_id, keys.LOGS_KEY, logs)

    async def replace_children_and_logs(
        self, children: List[Child], logs: List[ReadingLog]
    ) -> Tuple[int, int]:
        await self.store.update(
            self.device_id,
            {
                keys.CHILDREN_KEY: [c.to_storage() for c in children],
                keys.LOGS_KEY: [entry.to_storage() for entry in logs],
            },
        )
        return len(children), len(logs)

    async def get_documents(self, key: str) -> List[dict]:
        return await self._list(key)

    async def set_documents(self, key: str, items: List[dict]) -> None:
        await self.store.set(self.device_id, key, items)

    async def get_family(self) -> Optional[dict]:
        family = await self.store.get(self.device_id, keys.FAMILY_KEY, None)
        return family if isinstance(family, dict) else None

    async def set_family(self, family: dict) -> None:
        await self.store.set(self.device_id, keys.FAMILY_KEY, family)


# ══════════════════════════════════════════════════════════════════════════
# Signed In: Relational Tables
# ══════════════════════════════════════════════════════════════════════════

def child_from_row(row: ChildRow) -> Child:
    return Child(
        id=str(row.id),
        name=row.name,
        grade=row.grade or "",
        child_type=row.child_type,
        goal=ChildGoal(
            minutes_per_day=row.goal_minutes,
            days_per_week=row.goal_days,
            is_custom=row.goal_is_custom,
        ),
        milestones=list(row.milestones or []),
        archived=row.archived,
    )


def log_from_row(row: LogRow, book: Optional[Book]) -> ReadingLog:
    return ReadingLog(
        id=str(row.id),
        child_id=str(row.child_id),
        book_title=row.book_title,
        author=book.author if book else None,
        minutes=row.minutes,
        hours=round(row.minutes / 60, 2),
        date=row.date.isoformat(),
        subject=row.subject,
        genre=row.genre,
        cover_url=row.cover_url or (book.cover_url if book else None),
        times_read=row.times_read,
        is_finished=row.is_finished,
        chapter_current=row.chapter_current,
        chapter_total=row.chapter_total,
        notes=row.notes,
        loved=row.loved,
        reading_type=row.reading_type,
        rating=row.rating,
    )


class AccountTrackerStore(TrackerStore):
    scope = "account"

    def __init__(self, db: AsyncSession, user_id: uuid.UUID):
        self.db = db
        self.user_id = user_id

    @property
    def scope_key(self) -> str:
        return f"account:{self.user_id}"

    # ── Children ──────────────────────────────────────────────────────────

    async def list_children(self) -> List[Child]:
        result = await self.db.execute(
            select(ChildRow)
            .where(ChildRow.user_id == self.user_id)
            .order_by(ChildRow.created_at, ChildRow.name)
        )
        return [child_from_row(row) for row in result.scalars().all()]

    def _child_row(self, child: Child, row_id: Optional[uuid.UUID] = None) -> ChildRow:
        return ChildRow(
            id=row_id or uuid.uuid4(),
            user_id=self.user_id,
            name=child.name,
            grade=child.grade or "",
            child_type=child.child_type or "student",
            goal_minutes=child.goal.minutes_per_day,
            goal_days=child.goal.days_per_week,
            goal_is_custom=child.goal.is_custom,
            milestones=list(child.milestones or []),
            archived=child.archived,
        )

    async def add_child(self, child: Child) -> Child:
        row = self._child_row(child)
        self.db.add(row)
        await self.db.flush()
        return child_from_row(row)

    async def _own_child(self, child_id: str) -> Optional[ChildRow]:
        row_id = as_uuid(child_id)
        if row_id is None:
            return None
        row = await self.db.get(ChildRow, row_id)
        if row is None or row.user_id != self.user_id:
            return None
        return row

    async def save_child(self, child: Child) -> None:
        row = await self._own_child(child.id)
        if row is None:
            return
        row.name = child.name
        row.grade = child.grade or ""
        row.child_type = child.child_type or "student"
        row.goal_minutes = child.goal.minutes_per_day
        row.goal_days = child.goal.days_per_week
        row.goal_is_custom = child.goal.is_custom
        row.milestones = list(child.milestones or [])
        row.archived = child.archived
        await self.db.flush()

    # ── Logs ──────────────────────────────────────────────────────────────

    async def list_logs(self) -> List[ReadingLog]:
        result = await self.db.execute(
            select(LogRow, Book)
            .outerjoin(Book, LogRow.book_id == Book.id)
            .where(LogRow.user_id == self.user_id)
            .order_by(LogRow.date.desc(), LogRow.created_at.desc())
        )
        return [log_from_row(row, book) for row, book in result.all()]

    async def add_log(self, log: ReadingLog) -> ReadingLog:
        child_id = as_uuid(log.child_id)
        if child_id is None or await self._own_child(log.child_id) is None:
            raise NotFoundError(resource="child", resource_id=log.child_id)

        title, author = split_title_author(log.book_title)
        book, _ = await catalog_service.get_or_create_by_title(
            self.db, title, author=log.author or author, cover_url=log.cover_url
        )

        row = LogRow(
            user_id=self.user_id,
            child_id=child_id,
            book_id=book.id,
            book_title=log.book_title,
            date=date.fromisoformat(log.date[:10]),
            minutes=log.minutes,
            notes=log.notes,
            loved=log.loved,
            reading_type=log.reading_type,
            subject=log.subject,
            genre=log.genre,
            times_read=log.times_read,
            is_finished=log.is_finished,
            chapter_current=log.chapter_current,
            chapter_total=log.chapter_total,
            rating=log.rating,
            cover_url=log.cover_url,
        )
        self.db.add(row)
        await self.db.flush()
        return log_from_row(row, book)

    async def _own_log(self, log_id: str) -> Optional[LogRow]:
        row_id = as_uuid(log_id)
        if row_id is None:
            return None
        row = await self.db.get(LogRow, row_id)
        if row is None or row.user_id != self.user_id:
            return None
        return row

    async def save_log(self, log: ReadingLog) -> None:
        row = await self._own_log(log.id)
        if row is None:
            return
        row.notes = log.notes
        row.loved = log.loved
        row.rating = log.rating
        row.is_finished = log.is_finished
        row.times_read = log.times_read
        row.chapter_current = log.chapter_current
        row.chapter_total = log.chapter_total
        await self.db.flush()

    async def delete_log(self, log_id: str) -> bool:
        row = await self._own_log(log_id)
        if row is None:
            return False
        await self.db.delete(row)
        await self.db.flush()
        return True

    async def reassign_logs(self, log_ids: Sequence[str], child_id: str) -> None:
        target = as_uuid(child_id)
        ids = [u for u in (as_uuid(i) for i in log_ids) if u is not None]
        if target is None or not ids:
            return
        await self.db.execute(
            update(LogRow)
            .where(LogRow.user_id == self.user_id, LogRow.id.in_(ids))
            .values(child_id=target)
        )
        await self.db.flush()

    async def replace_children_and_logs(
        self, children: List[Child], logs: List[ReadingLog]
    ) -> Tuple[int, int]:
        """
        Drop the account's children and logs and insert the given ones.

        Backup ids are not trusted as primary keys: every child gets a new
        UUID and logs follow their child through the id map. Logs for a
        child that is not in the file are skipped.
        """
        await self.db.execute(delete(LogRow).where(LogRow.user_id == self.user_id))
        await self.db.execute(delete(ChildRow).where(ChildRow.user_id == self.user_id))

        id_map: Dict[str, uuid.UUID] = {}
        for child in children:
            row = self._child_row(child)
            self.db.add(row)
            id_map[child.id] = row.id
        await self.db.flush()

        inserted = 0
        for entry in logs:
            mapped_child = id_map.get(entry.child_id)
            if mapped_child is None:
                logger.warning("Import: skipping log %s for unknown child %s", entry.id, entry.child_id)
                continue
            if not _importable(entry):
                logger.warning(
                    "Import: skipping log %s with date %r and minutes %r",
                    entry.id, entry.date, entry.minutes,
                )
                continue
            await self.add_log(entry.model_copy(update={"child_id": str(mapped_child)}))
            inserted += 1
        return len(children), inserted

    # ── Documents ─────────────────────────────────────────────────────────

    async def get_documents(self, key: str) -> List[dict]:
        doc = await self.db.get(UserDocument, (self.user_id, key))
        return list(doc.data) if doc and isinstance(doc.data, list) else []

    async def set_documents(self, key: str, items: List[dict]) -> None:
        doc = await self.db.get(UserDocument, (self.user_id, key))
        if doc is None:
            self.db.add(UserDocument(user_id=self.user_id, key=key, data=list(items)))
        else:
            doc.data = list(items)
        await self.db.flush()

    async def get_family(self) -> Optional[dict]:
        row = await self.db.get(FamilyRow, self.user_id)
        if row is None:
            return None
        family = dict(row.data or {})
        family["familyName"] = row.family_name
        family["babyEmoji"] = row.baby_emoji
        return family

    async def set_family(self, family: dict) -> None:
        data = {k: v for k, v in family.items() if k not in ("familyName", "babyEmoji")}
        row = await self.db.get(FamilyRow, self.user_id)
        if row is None:
            row = FamilyRow(user_id=self.user_id)
            self.db.add(row)
        row.family_name = family.get("familyName")
        row.baby_emoji = family.get("babyEmoji") or "👶"
        row.data = data
        await self.db.flush()
