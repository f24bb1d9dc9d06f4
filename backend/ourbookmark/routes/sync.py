"""
OurBookmark Backend: Sync Routes
=================================

What:  The "sync your local data" banner and the migration it triggers.
Who:   The client right after sign-in (status) and when the parent taps
       "Sync now" (migrate).

Both calls need the signed-in user and the X-Device-ID of the device whose
document is copied. Migrating twice is harmless: the second call answers
`already_migrated` without touching the account.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ourbookmark.database import get_db_session
from ourbookmark.dependencies import get_current_user, get_device_id, get_device_store
from ourbookmark.models.account import User
from ourbookmark.schemas.common import ErrorResponse
from ourbookmark.schemas.sync import MigrationResult, SyncStatus
from ourbookmark.services.device_store import DeviceStore
from ourbookmark.services.migration_service import MigrationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["Sync"])


@router.get("/status", response_model=SyncStatus, summary="Does this device hold un-synced data?")
async def sync_status(
    user: User = Depends(get_current_user),
    device_id: str = Depends(get_device_id),
    store: DeviceStore = Depends(get_device_store),
    db: AsyncSession = Depends(get_db_session),
) -> SyncStatus:
    return await MigrationService(store).sync_status(db, device_id, user.id)


@router.post(
    "/migrate",
    response_model=MigrationResult,
    responses={
        400: {"description": "Missing or malformed X-Device-ID", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
    },
    summary="Copy this device's records into the account",
)
async def migrate(
    retry_failed: bool = Query(default=False, alias="retryFailed"),
    user: User = Depends(get_current_user),
    device_id: str = Depends(get_device_id),
    store: DeviceStore = Depends(get_device_store),
    db: AsyncSession = Depends(get_db_session),
) -> MigrationResult:
    return await MigrationService(store).migrate_device(db, user.id, device_id, retry_failed)
