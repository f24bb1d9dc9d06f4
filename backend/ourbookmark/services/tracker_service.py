"""
OurBookmark Backend: Tracker Service (Business Rules)
======================================================

What:  Everything a family does in the tracker: children, reading logs,
       goals, challenges, class groups, the family profile and the to-read
       list, plus the orphaned-log repair pass.
How:   Works against a TrackerStore, so the same rules apply whether the
       data lives in a device document or in the account's tables.
Who:   Tracker routes, BackupService (import), ProgressService (state).

Validation messages are the ones the forms show, word for word:

    "Child name is required"
    "Child name is too long (max 50 characters)"
    "Please select a child"
    "Book title is required"
    "Please enter a valid number of minutes (greater than 0)"
    "Minutes cannot exceed 24 hours (1440 minutes)"
    "Invalid join code. Please check and try again."
    "This child is already in this class group."

Orphan Repair:
    A log whose childId matches no current child is moved to the first
    child. The pass runs at most once per (scope, set of child ids) for the
    life of the process; adding or removing a child re-arms it.
"""

import logging
import math
import secrets
import uuid
from datetime import date, datetime, timezone
from typing import Callable, FrozenSet, List, Optional, Set, Tuple

from pydantic import ValidationError as SchemaValidationError

from ourbookmark.exceptions import ConflictError, NotFoundError, ValidationError
from ourbookmark.schemas.tracker import (
    Challenge,
    ChallengeJoin,
    ChallengeParticipant,
    Child,
    ChildCreate,
    ChildGoal,
    ChildUpdate,
    ClassGroup,
    ClassGroupJoin,
    ClassStudent,
    FamilyProfile,
    Goal,
    LogCreate,
    LogUpdate,
    ReadingLog,
    ToReadCreate,
    ToReadItem,
    TrackerState,
    VoiceEntryRequest,
    VoiceEntryResponse,
)
from ourbookmark.services import device_store as keys
from ourbookmark.services.book_text import parse_spoken_entry
from ourbookmark.services.tracker_store import TrackerStore, parse_records

logger = logging.getLogger(__name__)

MAX_CHILD_NAME = 50
MAX_MINUTES = 1440

JOIN_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
JOIN_CODE_LENGTH = 6


def now_iso() -> str:
    """UTC timestamp in the browser's toISOString() form."""
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def new_local_id() -> str:
    return uuid.uuid4().hex


def generate_join_code(taken: Optional[Set[str]] = None) -> str:
    taken = taken or set()
    while True:
        code = "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))
        if code not in taken:
            return code


# ══════════════════════════════════════════════════════════════════════════
# Orphan Repair
# ══════════════════════════════════════════════════════════════════════════

def find_orphaned_logs(logs: List[ReadingLog], children: List[Child]) -> List[str]:
    """Ids of logs whose child is not in `children`."""
    child_ids = {child.id for child in children}
    return [log.id for log in logs if log.child_id not in child_ids]


class OrphanRepairGuard:
    """Remembers which (scope, child-id set) pairs were already repaired."""

    def __init__(self):
        self._done: Set[Tuple[str, FrozenSet[str]]] = set()

    def claim(self, scope_key: str, child_ids: FrozenSet[str]) -> bool:
        """True the first time a pair is seen, False afterwards."""
        marker = (scope_key, child_ids)
        if marker in self._done:
            return False
        self._done.add(marker)
        return True

    def reset(self) -> None:
        self._done.clear()


# ══════════════════════════════════════════════════════════════════════════
# Tracker Service
# ══════════════════════════════════════════════════════════════════════════

class TrackerService:
    """
    Stateless apart from the orphan-repair guard.

    Args:
        today: Callable returning "today"; tests pass a fixed date.
        guard: Shared OrphanRepairGuard (one per process by default).
    """

    def __init__(
        self,
        today: Callable[[], date] = date.today,
        guard: Optional[OrphanRepairGuard] = None,
    ):
        self.today = today
        self.guard = guard or OrphanRepairGuard()

    # ── Aggregate State ───────────────────────────────────────────────────

    async def load_state(self, store: TrackerStore) -> TrackerState:
        children = await store.list_children()
        logs = await store.list_logs()
        repaired = await self.repair_orphans(store, children, logs)
        family = await self.get_family(store)

        return TrackerState(
            scope=store.scope,
            children=children,
            logs=logs,
            goals=parse_records(Goal, await store.get_documents(keys.GOALS_KEY), "goal"),
            challenges=parse_records(
                Challenge, await store.get_documents(keys.CHALLENGES_KEY), "challenge"
            ),
            class_groups=parse_records(
                ClassGroup, await store.get_documents(keys.CLASS_GROUPS_KEY), "class group"
            ),
            family=family,
            to_read=parse_records(ToReadItem, await store.get_documents(keys.TO_READ_KEY), "to-read"),
            orphans_reassigned=repaired,
        )

    async def repair_orphans(
        self,
        store: TrackerStore,
        children: List[Child],
        logs: List[ReadingLog],
    ) -> int:
        """
        Move orphaned logs to the first child, once per session.

        `logs` is updated in place so the caller's view matches the store.

        Returns:
            Number of logs reassigned (0 when the pass was skipped).
        """
        if not children or not logs:
            return 0
        # A clean load leaves the slot free for orphans that arrive later
        orphan_ids = find_orphaned_logs(logs, children)
        if not orphan_ids:
            return 0
        if not self.guard.claim(store.scope_key, frozenset(c.id for c in children)):
            return 0

        target = children[0].id
        await store.reassign_logs(orphan_ids, target)
        orphan_set = set(orphan_ids)
        for index, log in enumerate(logs):
            if log.id in orphan_set:
                logs[index] = log.model_copy(update={"child_id": target})

        logger.info(
            "Reassigned %d orphaned logs to child %s (%s)",
            len(orphan_ids), target, store.scope_key,
        )
        return len(orphan_ids)

    # ── Children ──────────────────────────────────────────────────────────

    def _clean_child_name(self, name: Optional[str]) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError(message="Child name is required", field="name")
        if len(cleaned) > MAX_CHILD_NAME:
            raise ValidationError(
                message="Child name is too long (max 50 characters)", field="name"
            )
        return cleaned

    async def _find_child(self, store: TrackerStore, child_id: str) -> Child:
        for child in await store.list_children():
            if child.id == child_id:
                return child
        raise NotFoundError(resource="child", resource_id=child_id)

    async def add_child(self, store: TrackerStore, payload: ChildCreate) -> Child:
        child = Child(
            id=new_local_id(),
            name=self._clean_child_name(payload.name),
            grade=payload.grade or "",
            child_type=payload.child_type or "student",
            goal=payload.goal or ChildGoal(minutes_per_day=0, days_per_week=0, is_custom=True),
            milestones=[],
            archived=False,
        )
        created = await store.add_child(child)
        logger.info("Child added (%s)", store.scope_key)
        return created

    async def update_child(self, store: TrackerStore, child_id: str, payload: ChildUpdate) -> Child:
        child = await self._find_child(store, child_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in changes:
            changes["name"] = self._clean_child_name(changes["name"])
        if payload.goal is not None:
            changes["goal"] = payload.goal
        updated = child.model_copy(update=changes)
        await store.save_child(updated)
        return updated

    async def set_archived(self, store: TrackerStore, child_id: str, archived: bool) -> Child:
        child = await self._find_child(store, child_id)
        updated = child.model_copy(update={"archived": archived})
        await store.save_child(updated)
        return updated

    # ── Reading Logs ──────────────────────────────────────────────────────

    def _clean_minutes(self, minutes: Optional[float]) -> int:
        if minutes is None or not math.isfinite(minutes):
            raise ValidationError(
                message="Please enter a valid number of minutes (greater than 0)", field="minutes"
            )
        whole = int(minutes)
        if whole <= 0:
            raise ValidationError(
                message="Please enter a valid number of minutes (greater than 0)", field="minutes"
            )
        if whole > MAX_MINUTES:
            raise ValidationError(
                message="Minutes cannot exceed 24 hours (1440 minutes)", field="minutes"
            )
        return whole

    def _clean_date(self, value: Optional[str]) -> str:
        if not value:
            return self.today().isoformat()
        try:
            return date.fromisoformat(value[:10]).isoformat()
        except ValueError:
            raise ValidationError(message="Please enter a valid date", field="date")

    def build_log(self, payload: LogCreate) -> ReadingLog:
        """
        Validate a log form and build the record (no storage).

        Checks run in the order the form reports them: child, title, minutes.
        """
        if not payload.child_id:
            raise ValidationError(message="Please select a child", field="childId")
        title = (payload.book_title or "").strip()
        if not title:
            raise ValidationError(message="Book title is required", field="bookTitle")
        minutes = self._clean_minutes(payload.minutes)

        return ReadingLog(
            id=new_local_id(),
            child_id=payload.child_id,
            book_title=title,
            author=payload.author or None,
            minutes=minutes,
            hours=round(minutes / 60, 2),
            date=self._clean_date(payload.date),
            subject=payload.subject or None,
            genre=payload.genre or None,
            cover_url=payload.cover_url or None,
            times_read=payload.times_read or 1,
            is_finished=payload.is_finished,
            chapter_current=payload.chapter_current if (payload.chapter_current or 0) > 0 else None,
            chapter_total=payload.chapter_total if (payload.chapter_total or 0) > 0 else None,
            notes=payload.notes or None,
            loved=False,
            reading_type=payload.reading_type or "independent",
        )

    async def add_log(self, store: TrackerStore, payload: LogCreate) -> ReadingLog:
        log = self.build_log(payload)
        await self._find_child(store, log.child_id)
        created = await store.add_log(log)
        logger.info("Reading log added: %d min (%s)", created.minutes, store.scope_key)
        return created

    async def _find_log(self, store: TrackerStore, log_id: str) -> ReadingLog:
        for log in await store.list_logs():
            if log.id == log_id:
                return log
        raise NotFoundError(resource="reading log", resource_id=log_id)

    async def update_log(self, store: TrackerStore, log_id: str, payload: LogUpdate) -> ReadingLog:
        log = await self._find_log(store, log_id)
        updated = log.model_copy(update=payload.model_dump(exclude_unset=True))
        await store.save_log(updated)
        return updated

    async def delete_log(self, store: TrackerStore, log_id: str) -> None:
        if not await store.delete_log(log_id):
            raise NotFoundError(resource="reading log", resource_id=log_id)
        logger.info("Reading log %s deleted (%s)", log_id, store.scope_key)

    # ── Documents: shared helpers ─────────────────────────────────────────

    async def _document_index(self, store: TrackerStore, key: str, item_id: str, label: str):
        items = await store.get_documents(key)
        for index, item in enumerate(items):
            if isinstance(item, dict) and str(item.get("id")) == item_id:
                return items, index
        raise NotFoundError(resource=label, resource_id=item_id)

    def _validate_document(self, model, item: dict, label: str):
        try:
            return model.model_validate(item)
        except SchemaValidationError as e:
            raise ValidationError(
                message=f"Stored {label} is malformed", context={"errors": e.errors()[:3]}
            )

    # ── Goals ("syncs") ───────────────────────────────────────────────────

    async def create_goal(self, store: TrackerStore, payload: dict) -> Goal:
        goal = Goal.model_validate(
            {
                **payload,
                "id": new_local_id(),
                "createdDate": now_iso(),
                "completed": False,
                "completedDate": None,
            }
        )
        items = await store.get_documents(keys.GOALS_KEY)
        items.append(goal.to_storage())
        await store.set_documents(keys.GOALS_KEY, items)
        return goal

    async def complete_goal(self, store: TrackerStore, goal_id: str) -> Goal:
        items, index = await self._document_index(store, keys.GOALS_KEY, goal_id, "goal")
        goal = self._validate_document(Goal, items[index], "goal")
        goal = goal.model_copy(update={"completed": True, "completed_date": now_iso()})
        items[index] = goal.to_storage()
        await store.set_documents(keys.GOALS_KEY, items)
        return goal

    async def delete_goal(self, store: TrackerStore, goal_id: str) -> None:
        items, index = await self._document_index(store, keys.GOALS_KEY, goal_id, "goal")
        del items[index]
        await store.set_documents(keys.GOALS_KEY, items)

    # ── Challenges ────────────────────────────────────────────────────────

    async def create_challenge(self, store: TrackerStore, payload: dict) -> Challenge:
        challenge = Challenge.model_validate(
            {**payload, "id": new_local_id(), "participants": [], "createdDate": now_iso()}
        )
        items = await store.get_documents(keys.CHALLENGES_KEY)
        items.append(challenge.to_storage())
        await store.set_documents(keys.CHALLENGES_KEY, items)
        return challenge

    async def join_challenge(
        self, store: TrackerStore, challenge_id: str, payload: ChallengeJoin
    ) -> Challenge:
        await self._find_child(store, payload.child_id)
        items, index = await self._document_index(
            store, keys.CHALLENGES_KEY, challenge_id, "challenge"
        )
        challenge = self._validate_document(Challenge, items[index], "challenge")
        if any(p.child_id == payload.child_id for p in challenge.participants):
            raise ConflictError(message="This child has already joined this challenge.")

        participants = list(challenge.participants) + [
            ChallengeParticipant(
                child_id=payload.child_id,
                joined_date=now_iso(),
                show_on_leaderboard=payload.show_on_leaderboard,
            )
        ]
        challenge = challenge.model_copy(update={"participants": participants})
        items[index] = challenge.to_storage()
        await store.set_documents(keys.CHALLENGES_KEY, items)
        return challenge

    async def leave_challenge(self, store: TrackerStore, challenge_id: str, child_id: str) -> Challenge:
        items, index = await self._document_index(
            store, keys.CHALLENGES_KEY, challenge_id, "challenge"
        )
        challenge = self._validate_document(Challenge, items[index], "challenge")
        challenge = challenge.model_copy(
            update={"participants": [p for p in challenge.participants if p.child_id != child_id]}
        )
        items[index] = challenge.to_storage()
        await store.set_documents(keys.CHALLENGES_KEY, items)
        return challenge

    # ── Class Groups ──────────────────────────────────────────────────────

    async def create_class_group(self, store: TrackerStore, payload: dict) -> ClassGroup:
        items = await store.get_documents(keys.CLASS_GROUPS_KEY)
        taken = {str(item.get("joinCode", "")).upper() for item in items if isinstance(item, dict)}
        group = ClassGroup.model_validate(
            {
                **payload,
                "id": new_local_id(),
                "joinCode": generate_join_code(taken),
                "students": [],
                "createdDate": now_iso(),
            }
        )
        items.append(group.to_storage())
        await store.set_documents(keys.CLASS_GROUPS_KEY, items)
        logger.info("Class group created with code %s (%s)", group.join_code, store.scope_key)
        return group

    async def join_class_group(self, store: TrackerStore, payload: ClassGroupJoin) -> ClassGroup:
        code = (payload.join_code or "").strip().upper()
        items = await store.get_documents(keys.CLASS_GROUPS_KEY)
        index = next(
            (
                i for i, item in enumerate(items)
                if isinstance(item, dict) and str(item.get("joinCode", "")).upper() == code
            ),
            None,
        )
        if not code or index is None:
            raise ValidationError(
                message="Invalid join code. Please check and try again.", field="joinCode"
            )

        await self._find_child(store, payload.child_id)
        group = self._validate_document(ClassGroup, items[index], "class group")
        if any(s.child_id == payload.child_id for s in group.students):
            raise ConflictError(message="This child is already in this class group.")

        students = list(group.students) + [
            ClassStudent(
                child_id=payload.child_id,
                joined_date=now_iso(),
                parent_consent=payload.parent_consent,
            )
        ]
        group = group.model_copy(update={"students": students})
        items[index] = group.to_storage()
        await store.set_documents(keys.CLASS_GROUPS_KEY, items)
        return group

    async def leave_class_group(self, store: TrackerStore, group_id: str, child_id: str) -> ClassGroup:
        items, index = await self._document_index(
            store, keys.CLASS_GROUPS_KEY, group_id, "class group"
        )
        group = self._validate_document(ClassGroup, items[index], "class group")
        group = group.model_copy(
            update={"students": [s for s in group.students if s.child_id != child_id]}
        )
        items[index] = group.to_storage()
        await store.set_documents(keys.CLASS_GROUPS_KEY, items)
        return group

    # ── Family Profile ────────────────────────────────────────────────────

    async def get_family(self, store: TrackerStore) -> Optional[FamilyProfile]:
        family = await store.get_family()
        if family is None:
            return None
        try:
            return FamilyProfile.model_validate(family)
        except SchemaValidationError:
            logger.warning("Ignoring unreadable family profile (%s)", store.scope_key)
            return None

    async def set_family(self, store: TrackerStore, payload: FamilyProfile) -> FamilyProfile:
        await store.set_family(payload.to_storage())
        return payload

    # ── To-Read List ──────────────────────────────────────────────────────

    async def add_to_read(self, store: TrackerStore, payload: ToReadCreate) -> ToReadItem:
        title = (payload.title or "").strip()
        if not title:
            raise ValidationError(message="Book title is required", field="title")
        item = ToReadItem(
            id=new_local_id(),
            title=title,
            author=payload.author or None,
            cover_url=payload.cover_url or None,
            child_id=payload.child_id or None,
            added_date=now_iso(),
        )
        items = await store.get_documents(keys.TO_READ_KEY)
        items.insert(0, item.to_storage())
        await store.set_documents(keys.TO_READ_KEY, items)
        return item

    async def remove_to_read(self, store: TrackerStore, item_id: str) -> None:
        items, index = await self._document_index(store, keys.TO_READ_KEY, item_id, "to-read item")
        del items[index]
        await store.set_documents(keys.TO_READ_KEY, items)

    # ── Voice Entry ───────────────────────────────────────────────────────

    async def parse_voice_entry(
        self, store: TrackerStore, payload: VoiceEntryRequest
    ) -> VoiceEntryResponse:
        children = [(c.id, c.name) for c in await store.list_children() if not c.archived]
        child_id, title, minutes = parse_spoken_entry(
            payload.transcript, children, payload.selected_child_id
        )
        return VoiceEntryResponse(
            child_id=child_id,
            book_title=title,
            minutes=minutes,
            understood=bool(child_id and title and minutes),
        )


tracker_service = TrackerService()
