"""
OurBookmark Backend: Local-to-Cloud Migration Tests
====================================================

What:  Copying a signed-out device into an account on first sign-in.
How:   A DeviceStore in tmp_path holds the local document; the account
       lives in the in-memory SQLite database from conftest. Every test
       counts rows directly to prove nothing is duplicated.

Test Strategy:
    ✅ First run copies children, books, logs, family and documents
    ✅ Second run is a no-op (already_migrated), even with retry_failed
    ✅ An empty device reports nothing_to_migrate and is flagged
    ✅ Bad logs are marked failed, the rest are copied (partial)
    ✅ A retry skips done records and re-tries only failed ones
    ✅ A timed-out attempt is abandoned and still flags the device
    ✅ sync_status drives the banner
"""

import asyncio
from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from ourbookmark.config import settings
from ourbookmark.exceptions import ValidationError
from ourbookmark.models.account import User
from ourbookmark.models.catalog import Book
from ourbookmark.models.sync import MigrationRecord
from ourbookmark.models.tracker import Child as ChildRow
from ourbookmark.models.tracker import FamilyProfile as FamilyRow
from ourbookmark.models.tracker import ReadingLog as LogRow
from ourbookmark.models.tracker import UserDocument
from ourbookmark.services import device_store as keys
from ourbookmark.services.migration_service import MigrationService

DEVICE = "device-migrate-01"


def _local_log(log_id, child_id, title, minutes=20, day="2025-03-01", **extra):
    log = {
        "id": log_id,
        "childId": child_id,
        "bookTitle": title,
        "minutes": minutes,
        "date": day,
    }
    log.update(extra)
    return log


LOCAL_DOCUMENT = {
    keys.CHILDREN_KEY: [
        {"id": "1700000000001", "name": "Emma", "grade": "2",
         "goal": {"minutesPerDay": 15, "daysPerWeek": 6, "isCustom": True}},
        {"id": "1700000000002", "name": "Noah"},
    ],
    keys.LOGS_KEY: [
        _local_log("l1", "1700000000001", "Matilda", author="Roald Dahl"),
        _local_log("l2", "1700000000001", "Matilda", day="2025-03-02", author="Roald Dahl"),
        _local_log("l3", "1700000000002", "The Gruffalo", minutes=10),
    ],
    keys.FAMILY_KEY: {"familyName": "The Reeds", "babyEmoji": "🐣"},
    keys.GOALS_KEY: [{"id": "g1", "createdDate": "2025-03-01T00:00:00.000Z"}],
    keys.TO_READ_KEY: [{"id": "t1", "title": "Holes", "addedDate": "2025-03-01T00:00:00.000Z"}],
}


@pytest_asyncio.fixture
async def user(db_session):
    account = User(email="parent@example.com", password_hash="x")
    db_session.add(account)
    await db_session.commit()
    return account


async def _count(db, model, *criteria) -> int:
    query = select(func.count()).select_from(model)
    if criteria:
        query = query.where(*criteria)
    return (await db.execute(query)).scalar()


class TestMigration:
    @pytest.fixture(autouse=True)
    def _service(self, device_store, db_session, user):
        self.store = device_store
        self.db = db_session
        self.user = user
        self.service = MigrationService(device_store)

    @pytest.mark.asyncio
    async def test_first_run_copies_everything(self):
        await self.store.update(DEVICE, dict(LOCAL_DOCUMENT))

        result = await self.service.migrate_device(self.db, self.user.id, DEVICE)

        assert result.status == "completed"
        assert result.children_migrated == 2
        assert result.books_migrated == 2
        assert result.logs_migrated == 3
        assert result.documents_migrated == 2
        assert result.failed_records == 0

        emma = (
            await self.db.execute(select(ChildRow).where(ChildRow.name == "Emma"))
        ).scalars().one()
        assert (emma.goal_minutes, emma.goal_days, emma.goal_is_custom) == (15, 6, True)
        assert await _count(self.db, LogRow, LogRow.child_id == emma.id) == 2

        family = await self.db.get(FamilyRow, self.user.id)
        assert family.family_name == "The Reeds"
        assert family.baby_emoji == "🐣"
        assert await _count(self.db, UserDocument, UserDocument.user_id == self.user.id) == 2
        assert await self.store.is_migrated(DEVICE)

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self):
        await self.store.update(DEVICE, dict(LOCAL_DOCUMENT))
        first = await self.service.migrate_device(self.db, self.user.id, DEVICE)

        second = await self.service.migrate_device(self.db, self.user.id, DEVICE)
        retried = await self.service.migrate_device(
            self.db, self.user.id, DEVICE, retry_failed=True
        )

        assert second.status == "already_migrated"
        assert retried.status == "already_migrated"
        assert second.run_id == first.run_id
        assert await _count(self.db, ChildRow) == 2
        assert await _count(self.db, LogRow) == 3
        assert await _count(self.db, Book) == 2

    @pytest.mark.asyncio
    async def test_flagged_device_is_not_copied(self):
        """A device flagged on a previous sign-in stays put without retry_failed."""
        await self.store.update(DEVICE, {**LOCAL_DOCUMENT, keys.MIGRATED_KEY: True})

        result = await self.service.migrate_device(self.db, self.user.id, DEVICE)

        assert result.status == "already_migrated"
        assert await _count(self.db, ChildRow) == 0

    @pytest.mark.asyncio
    async def test_nothing_to_migrate(self):
        await self.store.update(DEVICE, {keys.CHILDREN_KEY: [], keys.LOGS_KEY: []})

        result = await self.service.migrate_device(self.db, self.user.id, DEVICE)

        assert result.status == "nothing_to_migrate"
        assert await self.store.is_migrated(DEVICE)

    @pytest.mark.asyncio
    async def test_bad_logs_are_marked_failed(self):
        document = dict(LOCAL_DOCUMENT)
        document[keys.LOGS_KEY] = LOCAL_DOCUMENT[keys.LOGS_KEY] + [
            _local_log("bad-child", "no-such-child", "Holes"),
            _local_log("bad-minutes", "1700000000002", "Holes", minutes=2000),
            _local_log("bad-date", "1700000000002", "Holes", day="someday"),
        ]
        await self.store.update(DEVICE, document)

        result = await self.service.migrate_device(self.db, self.user.id, DEVICE)

        assert result.status == "partial"
        assert result.logs_migrated == 3
        assert result.failed_records == 3
        errors = (
            await self.db.execute(
                select(MigrationRecord.local_key, MigrationRecord.error).where(
                    MigrationRecord.collection == "logs", MigrationRecord.state == "failed"
                )
            )
        ).all()
        reasons = dict(errors)
        assert reasons["bad-child"] == "child was not migrated"
        assert reasons["bad-minutes"] == "log minutes are outside 1-1440"
        assert reasons["bad-date"] == "log has an unreadable date or minutes"

    @pytest.mark.asyncio
    async def test_retry_only_reprocesses_failed_records(self):
        document = dict(LOCAL_DOCUMENT)
        document[keys.LOGS_KEY] = LOCAL_DOCUMENT[keys.LOGS_KEY] + [
            _local_log("late", "1700000000003", "Holes"),
        ]
        await self.store.update(DEVICE, document)
        first = await self.service.migrate_device(self.db, self.user.id, DEVICE)
        assert first.status == "partial"

        # The missing child shows up before the retry
        children = await self.store.get(DEVICE, keys.CHILDREN_KEY)
        children.append({"id": "1700000000003", "name": "Ava"})
        await self.store.set(DEVICE, keys.CHILDREN_KEY, children)

        retried = await self.service.migrate_device(
            self.db, self.user.id, DEVICE, retry_failed=True
        )

        assert retried.status == "completed"
        assert retried.run_id == first.run_id
        assert retried.children_migrated == 1
        assert retried.logs_migrated == 1
        assert await _count(self.db, ChildRow) == 3
        assert await _count(self.db, LogRow) == 4

    @pytest.mark.asyncio
    async def test_timeout_abandons_attempt(self):
        await self.store.update(DEVICE, dict(LOCAL_DOCUMENT))
        # The rollback after a timeout expires the user row
        user_id = self.user.id

        async def slow_copy(*args, **kwargs):
            await asyncio.sleep(5)

        with patch.object(settings, "migration_timeout_seconds", 0.05), \
             patch.object(self.service, "_copy", side_effect=slow_copy):
            result = await self.service.migrate_device(self.db, user_id, DEVICE)

        assert result.status == "abandoned"
        assert await self.store.is_migrated(DEVICE)
        status = await self.service.sync_status(self.db, DEVICE, user_id)
        assert status.last_run.status == "abandoned"
        assert "Timed out" in status.last_run.error_message

    @pytest.mark.asyncio
    async def test_invalid_device_id(self):
        with pytest.raises(ValidationError, match="X-Device-ID"):
            await self.service.migrate_device(self.db, self.user.id, "../etc")


class TestSyncStatus:
    @pytest.fixture(autouse=True)
    def _service(self, device_store, db_session, user):
        self.store = device_store
        self.db = db_session
        self.user = user
        self.service = MigrationService(device_store)

    @pytest.mark.asyncio
    async def test_banner_until_migrated(self):
        await self.store.update(DEVICE, dict(LOCAL_DOCUMENT))

        before = await self.service.sync_status(self.db, DEVICE, self.user.id)
        assert before.has_local_data is True
        assert before.show_banner is True
        assert before.last_run is None

        await self.service.migrate_device(self.db, self.user.id, DEVICE)

        after = await self.service.sync_status(self.db, DEVICE, self.user.id)
        assert after.migrated is True
        assert after.show_banner is False
        assert after.last_run.status == "completed"
        assert after.last_run.attempts == 1

    @pytest.mark.asyncio
    async def test_empty_device_has_no_banner(self):
        status = await self.service.sync_status(self.db, "device-empty-01")
        assert status.has_local_data is False
        assert status.show_banner is False
