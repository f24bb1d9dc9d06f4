"""
OurBookmark Backend: Backup Service
====================================

What:  JSON export and import of a family's tracker data.
How:   Export reads the five collections from the active TrackerStore.
       Import checks one thing only, that `children` is a list, then
       replaces all five collections; anything else missing becomes empty.
Who:   GET /api/backup/export, POST /api/backup/import.

The family profile and to-read list are not part of the file; an import
leaves them untouched.
"""

import logging
from datetime import date
from typing import Any, Callable

from ourbookmark.exceptions import ValidationError
from ourbookmark.schemas.backup import BACKUP_VERSION, BackupDocument, ImportSummary
from ourbookmark.schemas.tracker import Child, ReadingLog
from ourbookmark.services import device_store as keys
from ourbookmark.services.tracker_service import now_iso
from ourbookmark.services.tracker_store import TrackerStore, parse_records

logger = logging.getLogger(__name__)

INVALID_BACKUP_MESSAGE = (
    "Failed to import data. Please make sure you selected a valid OurBookmark backup file."
)

# backup field → document key
DOCUMENT_FIELDS = {
    "goals": keys.GOALS_KEY,
    "challenges": keys.CHALLENGES_KEY,
    "classGroups": keys.CLASS_GROUPS_KEY,
}


def _list_of_dicts(value: Any) -> list:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class BackupService:
    def __init__(self, today: Callable[[], date] = date.today):
        self.today = today

    def filename(self) -> str:
        return f"ourbookmark-backup-{self.today().isoformat()}.json"

    async def export(self, store: TrackerStore) -> BackupDocument:
        children = await store.list_children()
        logs = await store.list_logs()
        document = BackupDocument(
            version=BACKUP_VERSION,
            export_date=now_iso(),
            children=[child.to_storage() for child in children],
            logs=[log.to_storage() for log in logs],
            challenges=await store.get_documents(keys.CHALLENGES_KEY),
            goals=await store.get_documents(keys.GOALS_KEY),
            class_groups=await store.get_documents(keys.CLASS_GROUPS_KEY),
        )
        logger.info(
            "Backup exported: %d children, %d logs (%s)", len(children), len(logs), store.scope_key
        )
        return document

    async def import_backup(self, store: TrackerStore, data: Any) -> ImportSummary:
        """
        Replace the scope's collections with those in `data`.

        Raises:
            ValidationError: `data` has no `children` list
        """
        if not isinstance(data, dict) or not isinstance(data.get("children"), list):
            raise ValidationError(message=INVALID_BACKUP_MESSAGE, field="children")

        children = parse_records(Child, data["children"], "child")
        logs = parse_records(ReadingLog, _list_of_dicts(data.get("logs")), "log")
        child_count, log_count = await store.replace_children_and_logs(children, logs)

        counts = {}
        for field, key in DOCUMENT_FIELDS.items():
            items = _list_of_dicts(data.get(field))
            await store.set_documents(key, items)
            counts[field] = len(items)

        logger.info(
            "Backup imported: %d children, %d logs (%s)", child_count, log_count, store.scope_key
        )
        return ImportSummary(
            children=child_count,
            logs=log_count,
            goals=counts["goals"],
            challenges=counts["challenges"],
            class_groups=counts["classGroups"],
        )


backup_service = BackupService()
