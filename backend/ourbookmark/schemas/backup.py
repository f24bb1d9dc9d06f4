"""
OurBookmark Backend: Backup Schemas
====================================

Export file layout (version 1.0):

    {
        "version": "1.0",
        "exportDate": "2025-03-01T18:22:05.120000+00:00",
        "children": [...],
        "logs": [...],
        "challenges": [...],
        "goals": [...],
        "classGroups": [...]
    }
"""

from typing import List

from pydantic import Field

from ourbookmark.schemas.common import CamelModel

BACKUP_VERSION = "1.0"


class BackupDocument(CamelModel):
    version: str = BACKUP_VERSION
    export_date: str
    children: List[dict] = Field(default_factory=list)
    logs: List[dict] = Field(default_factory=list)
    challenges: List[dict] = Field(default_factory=list)
    goals: List[dict] = Field(default_factory=list)
    class_groups: List[dict] = Field(default_factory=list)


class ImportSummary(CamelModel):
    children: int
    logs: int
    goals: int
    challenges: int
    class_groups: int
