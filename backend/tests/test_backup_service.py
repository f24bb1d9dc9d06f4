"""
OurBookmark Backend: Backup Export / Import Tests
==================================================

What:  JSON backups for both scopes.
How:   Device scope through a tmp_path DeviceStore; account scope through
       the in-memory SQLite session from conftest.

Test Strategy:
    ✅ Export then import into an empty device reproduces the collections
    ✅ Export then import into an account reproduces the data under new ids
    ✅ A file without a `children` list is rejected and changes nothing
    ✅ Missing optional collections are replaced with empty lists
    ✅ Family profile and to-read list survive an import
"""

from datetime import date

import pytest
import pytest_asyncio

from ourbookmark.exceptions import ValidationError
from ourbookmark.models.account import User
from ourbookmark.schemas.tracker import ChildCreate, LogCreate
from ourbookmark.services import device_store as keys
from ourbookmark.services.backup_service import INVALID_BACKUP_MESSAGE, BackupService
from ourbookmark.services.tracker_service import OrphanRepairGuard, TrackerService
from ourbookmark.services.tracker_store import AccountTrackerStore, DeviceTrackerStore


async def _seed_family(service: TrackerService, store) -> None:
    emma = await service.add_child(store, ChildCreate(name="Emma", grade="2"))
    noah = await service.add_child(store, ChildCreate(name="Noah"))
    await service.add_log(
        store, LogCreate(child_id=emma.id, book_title="Matilda by Roald Dahl", minutes=20, date="2025-03-01")
    )
    await service.add_log(
        store, LogCreate(child_id=noah.id, book_title="The Gruffalo", minutes=10, date="2025-03-02")
    )
    await service.create_goal(store, {"title": "20 minutes a day", "childId": emma.id})
    await service.create_challenge(store, {"name": "Spring Sprint"})
    await service.create_class_group(store, {"name": "Room 4"})


def _log_shape(document: dict) -> list:
    return sorted((log["bookTitle"], log["minutes"], log["date"]) for log in document["logs"])


class TestDeviceBackup:
    @pytest.fixture(autouse=True)
    def _stores(self, device_store):
        self.raw = device_store
        self.source = DeviceTrackerStore(device_store, "device-source-01")
        self.target = DeviceTrackerStore(device_store, "device-target-01")
        self.tracker = TrackerService(guard=OrphanRepairGuard())
        self.backup = BackupService(today=lambda: date(2025, 3, 5))

    def test_filename(self):
        assert self.backup.filename() == "ourbookmark-backup-2025-03-05.json"

    @pytest.mark.asyncio
    async def test_round_trip(self):
        await _seed_family(self.tracker, self.source)
        exported = (await self.backup.export(self.source)).to_storage()

        summary = await self.backup.import_backup(self.target, exported)
        again = (await self.backup.export(self.target)).to_storage()

        assert summary.children == 2
        assert summary.logs == 2
        assert summary.class_groups == 1
        for field in ("children", "logs", "goals", "challenges", "classGroups"):
            assert again[field] == exported[field]
        assert again["version"] == "1.0"

    @pytest.mark.asyncio
    async def test_missing_children_rejected(self):
        await _seed_family(self.tracker, self.target)
        before = await self.raw.load("device-target-01")

        for bad in ({"logs": []}, {"children": "Emma"}, ["children"], None):
            with pytest.raises(ValidationError) as exc_info:
                await self.backup.import_backup(self.target, bad)
            assert exc_info.value.message == INVALID_BACKUP_MESSAGE

        assert await self.raw.load("device-target-01") == before

    @pytest.mark.asyncio
    async def test_only_children_required(self):
        await _seed_family(self.tracker, self.target)

        summary = await self.backup.import_backup(
            self.target, {"children": [{"id": "k1", "name": "Ava"}]}
        )

        assert summary.children == 1
        assert summary.logs == summary.goals == summary.challenges == summary.class_groups == 0
        assert [c.name for c in await self.target.list_children()] == ["Ava"]
        assert await self.target.get_documents(keys.CHALLENGES_KEY) == []

    @pytest.mark.asyncio
    async def test_family_and_to_read_untouched(self):
        await self.raw.update(
            "device-target-01",
            {keys.FAMILY_KEY: {"familyName": "The Reeds"}, keys.TO_READ_KEY: [{"id": "t", "title": "Holes"}]},
        )
        await self.backup.import_backup(self.target, {"children": []})

        assert (await self.target.get_family())["familyName"] == "The Reeds"
        assert len(await self.target.get_documents(keys.TO_READ_KEY)) == 1


@pytest_asyncio.fixture
async def account_store(db_session):
    user = User(email="parent@example.com", password_hash="x")
    db_session.add(user)
    await db_session.flush()
    return AccountTrackerStore(db_session, user.id)


class TestAccountBackup:
    @pytest.fixture(autouse=True)
    def _stores(self, account_store, device_store):
        self.account = account_store
        self.device = DeviceTrackerStore(device_store, "device-export-01")
        self.tracker = TrackerService(guard=OrphanRepairGuard())
        self.backup = BackupService()

    @pytest.mark.asyncio
    async def test_device_backup_restores_into_account(self):
        await _seed_family(self.tracker, self.device)
        exported = (await self.backup.export(self.device)).to_storage()

        summary = await self.backup.import_backup(self.account, exported)
        restored = (await self.backup.export(self.account)).to_storage()

        assert summary.children == 2 and summary.logs == 2
        assert sorted(c["name"] for c in restored["children"]) == ["Emma", "Noah"]
        assert _log_shape(restored) == _log_shape(exported)
        assert restored["goals"] == exported["goals"]
        assert restored["classGroups"] == exported["classGroups"]

        # Logs follow their child through the new ids
        names = {c["id"]: c["name"] for c in restored["children"]}
        owners = {log["bookTitle"]: names[log["childId"]] for log in restored["logs"]}
        assert owners == {"Matilda by Roald Dahl": "Emma", "The Gruffalo": "Noah"}

    @pytest.mark.asyncio
    async def test_import_replaces_existing_account_data(self):
        await _seed_family(self.tracker, self.account)
        await self.backup.import_backup(
            self.account, {"children": [{"id": "x", "name": "Ava"}], "logs": []}
        )
        assert [c.name for c in await self.account.list_children()] == ["Ava"]
        assert await self.account.list_logs() == []

    @pytest.mark.asyncio
    async def test_account_round_trip(self):
        await _seed_family(self.tracker, self.account)
        first = (await self.backup.export(self.account)).to_storage()

        await self.backup.import_backup(self.account, first)
        second = (await self.backup.export(self.account)).to_storage()

        assert sorted(c["name"] for c in second["children"]) == ["Emma", "Noah"]
        assert _log_shape(second) == _log_shape(first)

    @pytest.mark.asyncio
    async def test_timestamp_dates_are_read_as_days(self):
        summary = await self.backup.import_backup(
            self.account,
            {
                "children": [{"id": "k1", "name": "Ava"}],
                "logs": [
                    {"id": "l1", "childId": "k1", "bookTitle": "Holes",
                     "minutes": 20, "date": "2025-03-01T10:00:00.000Z"},
                ],
            },
        )

        assert summary.logs == 1
        [log] = await self.account.list_logs()
        assert log.date == "2025-03-01"

    @pytest.mark.asyncio
    async def test_unusable_logs_are_skipped(self):
        summary = await self.backup.import_backup(
            self.account,
            {
                "children": [{"id": "k1", "name": "Ava"}],
                "logs": [
                    {"id": "ok", "childId": "k1", "bookTitle": "Holes", "minutes": 20, "date": "2025-03-01"},
                    {"id": "zero", "childId": "k1", "bookTitle": "Holes", "minutes": 0, "date": "2025-03-02"},
                    {"id": "long", "childId": "k1", "bookTitle": "Holes", "minutes": 1441, "date": "2025-03-03"},
                    {"id": "when", "childId": "k1", "bookTitle": "Holes", "minutes": 20, "date": "someday"},
                ],
            },
        )

        assert summary.children == 1
        assert summary.logs == 1
        assert [(log.minutes, log.date) for log in await self.account.list_logs()] == [
            (20, "2025-03-01")
        ]
