"""
OurBookmark Backend: Backup Routes
===================================

What:  Download and restore a JSON backup of the active scope.
How:   Export is served with a Content-Disposition attachment name of
       `ourbookmark-backup-YYYY-MM-DD.json`. Import takes the raw JSON body
       so a file that fails our own schema still reaches the one check the
       importer makes (`children` must be a list).
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from ourbookmark.dependencies import get_tracker_store
from ourbookmark.schemas.backup import ImportSummary
from ourbookmark.schemas.common import ErrorResponse
from ourbookmark.services.backup_service import backup_service
from ourbookmark.services.tracker_store import TrackerStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/backup", tags=["Backup"])


@router.get("/export", summary="Download every collection as a JSON file")
async def export_backup(store: TrackerStore = Depends(get_tracker_store)) -> JSONResponse:
    document = await backup_service.export(store)
    return JSONResponse(
        content=document.to_storage(),
        headers={
            "Content-Disposition": f'attachment; filename="{backup_service.filename()}"'
        },
    )


@router.post(
    "/import",
    response_model=ImportSummary,
    responses={400: {"description": "Not a backup file", "model": ErrorResponse}},
    summary="Replace children, logs, goals, challenges and class groups",
)
async def import_backup(
    data: Any = Body(...), store: TrackerStore = Depends(get_tracker_store)
) -> ImportSummary:
    return await backup_service.import_backup(store, data)
