"""
OurBookmark Backend: Tracker Service Tests
===========================================

What:  Business rules of the reading tracker against a device store:
       log validation, children, challenges, class groups, the to-read
       list and the orphaned-log repair pass.
How:   A DeviceTrackerStore backed by a DeviceStore in tmp_path, and a
       TrackerService with a fixed "today" and its own repair guard.

Test Strategy:
    ✅ Minutes: 0, negative, NaN and > 1440 rejected; 1 and 1440 accepted
    ✅ Form error order: child, then title, then minutes
    ✅ Child name required and at most 50 characters
    ✅ Join codes: unknown code rejected, second join conflicts
    ✅ Orphaned logs move to the first child once per child set
"""

from datetime import date

import pytest

from ourbookmark.exceptions import ConflictError, NotFoundError, ValidationError
from ourbookmark.schemas.tracker import (
    ChallengeJoin,
    ChildCreate,
    ChildUpdate,
    ClassGroupJoin,
    LogCreate,
    LogUpdate,
    ToReadCreate,
)
from ourbookmark.services import device_store as keys
from ourbookmark.services.backup_service import BackupService
from ourbookmark.services.tracker_service import (
    JOIN_CODE_ALPHABET,
    JOIN_CODE_LENGTH,
    OrphanRepairGuard,
    TrackerService,
    find_orphaned_logs,
    generate_join_code,
)
from ourbookmark.services.tracker_store import DeviceTrackerStore


def _log(**overrides) -> LogCreate:
    values = {"child_id": "c1", "book_title": "Matilda", "minutes": 20}
    values.update(overrides)
    return LogCreate(**values)


class TestLogValidation:
    """build_log() checks the form without touching storage."""

    def setup_method(self):
        self.service = TrackerService(today=lambda: date(2025, 3, 5), guard=OrphanRepairGuard())

    def test_valid_log(self):
        log = self.service.build_log(_log(minutes=45, author="Roald Dahl"))
        assert log.minutes == 45
        assert log.hours == 0.75
        assert log.date == "2025-03-05"
        assert log.times_read == 1
        assert log.reading_type == "independent"

    def test_zero_minutes_rejected(self):
        with pytest.raises(ValidationError, match="greater than 0"):
            self.service.build_log(_log(minutes=0))

    def test_negative_minutes_rejected(self):
        with pytest.raises(ValidationError, match="greater than 0"):
            self.service.build_log(_log(minutes=-5))

    def test_nan_minutes_rejected(self):
        with pytest.raises(ValidationError, match="greater than 0"):
            self.service.build_log(_log(minutes=float("nan")))

    def test_missing_minutes_rejected(self):
        with pytest.raises(ValidationError, match="greater than 0"):
            self.service.build_log(_log(minutes=None))

    def test_over_a_day_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self.service.build_log(_log(minutes=1441))
        assert exc_info.value.message == "Minutes cannot exceed 24 hours (1440 minutes)"
        assert exc_info.value.field == "minutes"

    def test_boundaries_accepted(self):
        assert self.service.build_log(_log(minutes=1)).minutes == 1
        assert self.service.build_log(_log(minutes=1440)).minutes == 1440

    def test_missing_child_reported_first(self):
        with pytest.raises(ValidationError, match="Please select a child"):
            self.service.build_log(_log(child_id=None, book_title="", minutes=0))

    def test_missing_title_reported_before_minutes(self):
        with pytest.raises(ValidationError, match="Book title is required"):
            self.service.build_log(_log(book_title="   ", minutes=0))

    def test_explicit_date_kept(self):
        assert self.service.build_log(_log(date="2025-01-31")).date == "2025-01-31"

    def test_bad_date_rejected(self):
        with pytest.raises(ValidationError, match="valid date"):
            self.service.build_log(_log(date="yesterday"))

    def test_zero_chapters_dropped(self):
        log = self.service.build_log(_log(chapter_current=0, chapter_total=12))
        assert log.chapter_current is None
        assert log.chapter_total == 12


class TestTrackerOperations:
    @pytest.fixture(autouse=True)
    def _store(self, device_store, device_id):
        self.store = DeviceTrackerStore(device_store, device_id)
        self.raw = device_store
        self.device_id = device_id
        self.service = TrackerService(today=lambda: date(2025, 3, 5), guard=OrphanRepairGuard())

    async def _child(self, name="Emma"):
        return await self.service.add_child(self.store, ChildCreate(name=name))

    # ── Children ──────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_add_child_trims_name(self):
        child = await self._child("  Emma  ")
        assert child.name == "Emma"
        stored = await self.raw.get(self.device_id, keys.CHILDREN_KEY)
        assert stored[0]["name"] == "Emma"
        assert stored[0]["childType"] == "student"

    @pytest.mark.asyncio
    async def test_child_name_required(self):
        with pytest.raises(ValidationError, match="Child name is required"):
            await self.service.add_child(self.store, ChildCreate(name="   "))

    @pytest.mark.asyncio
    async def test_child_name_length(self):
        await self.service.add_child(self.store, ChildCreate(name="x" * 50))
        with pytest.raises(ValidationError, match="max 50 characters"):
            await self.service.add_child(self.store, ChildCreate(name="x" * 51))

    @pytest.mark.asyncio
    async def test_update_and_archive_child(self):
        child = await self._child()
        updated = await self.service.update_child(self.store, child.id, ChildUpdate(grade="2"))
        assert updated.grade == "2"
        archived = await self.service.set_archived(self.store, child.id, True)
        assert archived.archived is True
        assert (await self.store.list_children())[0].archived is True

    @pytest.mark.asyncio
    async def test_update_unknown_child(self):
        with pytest.raises(NotFoundError):
            await self.service.update_child(self.store, "missing", ChildUpdate(grade="1"))

    # ── Logs ──────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_logs_are_stored_newest_first(self):
        child = await self._child()
        await self.service.add_log(self.store, _log(child_id=child.id, book_title="First"))
        await self.service.add_log(self.store, _log(child_id=child.id, book_title="Second"))
        titles = [log.book_title for log in await self.store.list_logs()]
        assert titles == ["Second", "First"]

    @pytest.mark.asyncio
    async def test_log_for_unknown_child(self):
        with pytest.raises(NotFoundError):
            await self.service.add_log(self.store, _log(child_id="nobody"))

    @pytest.mark.asyncio
    async def test_update_and_delete_log(self):
        child = await self._child()
        log = await self.service.add_log(self.store, _log(child_id=child.id))

        updated = await self.service.update_log(
            self.store, log.id, LogUpdate(loved=True, rating=5, notes="Loved the ending")
        )
        assert updated.loved is True
        assert updated.rating == 5

        await self.service.delete_log(self.store, log.id)
        assert await self.store.list_logs() == []
        with pytest.raises(NotFoundError):
            await self.service.delete_log(self.store, log.id)

    # ── Goals & Challenges ────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_goal_keeps_free_form_fields(self):
        goal = await self.service.create_goal(self.store, {"title": "Read 10 books", "target": 10})
        completed = await self.service.complete_goal(self.store, goal.id)
        assert completed.completed is True
        stored = (await self.store.get_documents(keys.GOALS_KEY))[0]
        assert stored["title"] == "Read 10 books"
        assert stored["completedDate"]

    @pytest.mark.asyncio
    async def test_join_challenge_twice_conflicts(self):
        child = await self._child()
        challenge = await self.service.create_challenge(self.store, {"name": "Spring Sprint"})
        joined = await self.service.join_challenge(
            self.store, challenge.id, ChallengeJoin(child_id=child.id)
        )
        assert [p.child_id for p in joined.participants] == [child.id]

        with pytest.raises(ConflictError, match="already joined"):
            await self.service.join_challenge(
                self.store, challenge.id, ChallengeJoin(child_id=child.id)
            )

        left = await self.service.leave_challenge(self.store, challenge.id, child.id)
        assert left.participants == []

    # ── Class Groups ──────────────────────────────────────────────────────

    def test_join_code_shape(self):
        code = generate_join_code()
        assert len(code) == JOIN_CODE_LENGTH
        assert all(ch in JOIN_CODE_ALPHABET for ch in code)

    @pytest.mark.asyncio
    async def test_join_class_group_by_code(self):
        child = await self._child()
        group = await self.service.create_class_group(self.store, {"name": "Room 4"})

        joined = await self.service.join_class_group(
            self.store,
            ClassGroupJoin(join_code=f" {group.join_code.lower()} ", child_id=child.id),
        )
        assert [s.child_id for s in joined.students] == [child.id]

        with pytest.raises(ConflictError, match="already in this class group"):
            await self.service.join_class_group(
                self.store, ClassGroupJoin(join_code=group.join_code, child_id=child.id)
            )

    @pytest.mark.asyncio
    async def test_unknown_join_code(self):
        child = await self._child()
        with pytest.raises(ValidationError, match="Invalid join code"):
            await self.service.join_class_group(
                self.store, ClassGroupJoin(join_code="ZZZZZZ", child_id=child.id)
            )

    # ── To-Read ───────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_to_read_newest_first(self):
        await self.service.add_to_read(self.store, ToReadCreate(title="Matilda"))
        second = await self.service.add_to_read(self.store, ToReadCreate(title="The BFG"))
        items = await self.store.get_documents(keys.TO_READ_KEY)
        assert [i["title"] for i in items] == ["The BFG", "Matilda"]

        await self.service.remove_to_read(self.store, second.id)
        assert len(await self.store.get_documents(keys.TO_READ_KEY)) == 1

    @pytest.mark.asyncio
    async def test_to_read_requires_title(self):
        with pytest.raises(ValidationError, match="Book title is required"):
            await self.service.add_to_read(self.store, ToReadCreate(title=" "))


class TestOrphanRepair:
    @pytest.fixture(autouse=True)
    def _store(self, device_store, device_id):
        self.raw = device_store
        self.device_id = device_id
        self.store = DeviceTrackerStore(device_store, device_id)
        self.service = TrackerService(today=lambda: date(2025, 3, 5), guard=OrphanRepairGuard())

    async def _seed(self, children, logs):
        await self.raw.update(
            self.device_id, {keys.CHILDREN_KEY: children, keys.LOGS_KEY: logs}
        )

    @staticmethod
    def _raw_log(log_id, child_id):
        return {
            "id": log_id,
            "childId": child_id,
            "bookTitle": "Matilda",
            "minutes": 10,
            "date": "2025-03-01",
        }

    @pytest.mark.asyncio
    async def test_orphans_move_to_first_child(self):
        await self._seed(
            [{"id": "a", "name": "Emma"}, {"id": "b", "name": "Noah"}],
            [self._raw_log("1", "a"), self._raw_log("2", "gone"), self._raw_log("3", "b")],
        )

        state = await self.service.load_state(self.store)

        assert state.orphans_reassigned == 1
        assert {log.id: log.child_id for log in state.logs} == {"1": "a", "2": "a", "3": "b"}
        stored = await self.raw.get(self.device_id, keys.LOGS_KEY)
        assert stored[1]["childId"] == "a"

    @pytest.mark.asyncio
    async def test_runs_once_per_session(self):
        await self._seed([{"id": "a", "name": "Emma"}], [self._raw_log("1", "gone")])
        first = await self.service.load_state(self.store)
        assert first.orphans_reassigned == 1

        # A new orphan appearing behind the tracker's back is not repaired
        # until the child set changes
        logs = await self.raw.get(self.device_id, keys.LOGS_KEY)
        logs.append(self._raw_log("2", "elsewhere"))
        await self.raw.set(self.device_id, keys.LOGS_KEY, logs)

        second = await self.service.load_state(self.store)
        assert second.orphans_reassigned == 0

        await self.service.add_child(self.store, ChildCreate(name="Noah"))
        third = await self.service.load_state(self.store)
        assert third.orphans_reassigned == 1

    @pytest.mark.asyncio
    async def test_clean_load_does_not_use_up_the_pass(self):
        await self._seed([{"id": "a", "name": "Emma"}], [self._raw_log("1", "a")])
        clean = await self.service.load_state(self.store)
        assert clean.orphans_reassigned == 0

        # Restoring a backup with the same children brings in an orphan
        await BackupService().import_backup(
            self.store,
            {"children": [{"id": "a", "name": "Emma"}], "logs": [self._raw_log("9", "ghost")]},
        )

        repaired = await self.service.load_state(self.store)
        assert repaired.orphans_reassigned == 1
        assert repaired.logs[0].child_id == "a"

    @pytest.mark.asyncio
    async def test_no_children_leaves_logs_alone(self):
        await self._seed([], [self._raw_log("1", "gone")])
        state = await self.service.load_state(self.store)
        assert state.orphans_reassigned == 0
        assert state.logs[0].child_id == "gone"

    def test_find_orphaned_logs(self):
        from ourbookmark.schemas.tracker import Child, ReadingLog

        children = [Child(id="a", name="Emma")]
        logs = [
            ReadingLog(id="1", child_id="a", book_title="x", minutes=5, date="2025-03-01"),
            ReadingLog(id="2", child_id="b", book_title="y", minutes=5, date="2025-03-01"),
        ]
        assert find_orphaned_logs(logs, children) == ["2"]
