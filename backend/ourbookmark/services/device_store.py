"""
OurBookmark Backend: Device Store
=================================

What:  Signed-out persistence. Each browser/device owns one JSON document
       holding the same keys the app keeps in local storage.
How:   `<storage_root>/devices/<device-id>.json`, read and written with
       aiofiles. Writes go to a temp file first and are swapped in with
       os.replace, so a crash never leaves half a document.
Who:   DeviceTrackerStore (signed-out tracker), MigrationService (reads a
       device once and sets its migrated flag), SyncStatus.

Failure Semantics:
    A missing or unparseable document reads as "no data": the problem is
    logged and the caller gets the default for the key. Concurrent writes
    to one device are last-write-wins.

Document Keys:
    mybookmark_children, mybookmark_logs, mybookmark_goals,
    mybookmark_challenges, mybookmark_classgroups, mybookmark_family,
    mybookmark_toread, mybookmark_onboarded, mybookmark_migrated
"""

import json
import logging
import os
import re
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles

from ourbookmark.config import settings
from ourbookmark.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

CHILDREN_KEY = "mybookmark_children"
LOGS_KEY = "mybookmark_logs"
GOALS_KEY = "mybookmark_goals"
CHALLENGES_KEY = "mybookmark_challenges"
CLASS_GROUPS_KEY = "mybookmark_classgroups"
FAMILY_KEY = "mybookmark_family"
TO_READ_KEY = "mybookmark_toread"
ONBOARDED_KEY = "mybookmark_onboarded"
MIGRATED_KEY = "mybookmark_migrated"

LIST_KEYS = (CHILDREN_KEY, LOGS_KEY, GOALS_KEY, CHALLENGES_KEY, CLASS_GROUPS_KEY, TO_READ_KEY)

DEVICE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{8,64}$")


def validate_device_id(device_id: Optional[str]) -> str:
    """Device ids become file names, so only a safe alphabet is accepted."""
    if not device_id or not DEVICE_ID_PATTERN.match(device_id):
        raise ValidationError(
            message="X-Device-ID must be 8-64 characters of letters, digits, '-' or '_'.",
            field="X-Device-ID",
        )
    return device_id


class DeviceStore:
    """Key/value JSON documents, one per device."""

    def __init__(self, storage_root: Optional[str] = None):
        self.root = Path(storage_root or settings.storage_root).resolve() / "devices"

    def _path(self, device_id: str) -> Path:
        return self.root / f"{validate_device_id(device_id)}.json"

    async def load(self, device_id: str) -> Dict[str, Any]:
        """The whole document; {} when absent or corrupt."""
        path = self._path(device_id)
        if not path.exists():
            return {}
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except OSError as e:
            logger.error("Could not read device document %s: %s", path.name, str(e))
            raise FileStorageError(
                message="Could not load your saved data. Please try again.",
                context={"device_document": path.name, "os_error": str(e)},
            )

        try:
            document = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            logger.warning("Device document %s is not valid JSON; using defaults: %s", path.name, e)
            return {}
        if not isinstance(document, dict):
            logger.warning("Device document %s is not an object; using defaults", path.name)
            return {}
        return document

    async def save(self, device_id: str, document: Dict[str, Any]) -> None:
        path = self._path(device_id)
        tmp_path = path.with_suffix(f".{uuid.uuid4().hex[:8]}.tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(document, ensure_ascii=False))
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error("Could not write device document %s: %s", path.name, str(e))
            if tmp_path.exists():
                os.remove(tmp_path)
            raise FileStorageError(
                message="Could not save your data. Please try again.",
                context={"device_document": path.name, "os_error": str(e)},
            )

    async def get(self, device_id: str, key: str, default: Any = None) -> Any:
        """
        One key, with the default substituted for a missing value or for a
        value of the wrong shape (a list key holding an object, say).
        """
        document = await self.load(device_id)
        value = document.get(key, default)
        if key in LIST_KEYS and not isinstance(value, list):
            if value is not None:
                logger.warning("Device key %s holds %s, expected a list", key, type(value).__name__)
            return default
        return value

    async def set(self, device_id: str, key: str, value: Any) -> None:
        document = await self.load(device_id)
        document[key] = value
        await self.save(device_id, document)

    async def update(self, device_id: str, values: Dict[str, Any]) -> None:
        """Several keys in one read-modify-write."""
        document = await self.load(device_id)
        document.update(values)
        await self.save(device_id, document)

    async def has_tracker_data(self, device_id: str) -> bool:
        document = await self.load(device_id)
        children = document.get(CHILDREN_KEY)
        logs = document.get(LOGS_KEY)
        return bool(isinstance(children, list) and children) or bool(isinstance(logs, list) and logs)

    async def is_migrated(self, device_id: str) -> bool:
        return bool(await self.get(device_id, MIGRATED_KEY, False))


device_store = DeviceStore()
