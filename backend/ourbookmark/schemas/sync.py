"""OurBookmark Backend: Local-to-Cloud Migration Schemas"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class MigrationResult(BaseModel):
    """
    Outcome of one migration attempt.

    status:
        already_migrated    device flag set or run completed; nothing done
        nothing_to_migrate  device had no children and no logs
        completed           every record copied
        partial             some records failed and can be retried
        abandoned           the wall-clock timeout fired
        failed              an unexpected error stopped the attempt
    """

    status: str
    run_id: Optional[uuid.UUID] = None
    children_migrated: int = 0
    books_migrated: int = 0
    logs_migrated: int = 0
    documents_migrated: int = 0
    failed_records: int = 0


class MigrationRunSummary(BaseModel):
    id: uuid.UUID
    status: str
    attempts: int
    started_at: datetime
    finished_at: Optional[datetime] = None
    error_message: Optional[str] = None

    model_config = {"from_attributes": True}


class SyncStatus(BaseModel):
    has_local_data: bool
    migrated: bool
    show_banner: bool
    last_run: Optional[MigrationRunSummary] = None
