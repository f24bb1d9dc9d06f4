"""
OurBookmark Backend: Progress Routes
=====================================

Read-only views computed from the active scope's children and logs:
the progress report, library, bookshelf, per-child stats, monthly share
cards and the home-screen summary. Nothing here writes.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ourbookmark.dependencies import get_tracker_store
from ourbookmark.schemas.common import ErrorResponse
from ourbookmark.schemas.progress import (
    ChildStats,
    FamilyShareCard,
    HomeSummary,
    LibraryBook,
    ProgressReport,
    ShareCard,
    ShelfEntry,
)
from ourbookmark.services.progress_service import progress_service
from ourbookmark.services.tracker_store import TrackerStore

router = APIRouter(prefix="/api/progress", tags=["Progress"])

_no_child = {404: {"description": "No children yet, or unknown child", "model": ErrorResponse}}


@router.get(
    "/report",
    response_model=ProgressReport,
    responses=_no_child,
    summary="Weekly goal, streak, milestones, top authors and 4-week trend",
)
async def report(
    child_id: Optional[str] = Query(default=None, alias="childId"),
    store: TrackerStore = Depends(get_tracker_store),
) -> ProgressReport:
    return await progress_service.report(store, child_id)


@router.get("/library", response_model=List[LibraryBook])
async def library(
    child_id: Optional[str] = Query(default=None, alias="childId"),
    store: TrackerStore = Depends(get_tracker_store),
) -> List[LibraryBook]:
    return await progress_service.library(store, child_id)


@router.get("/bookshelf", response_model=List[ShelfEntry])
async def bookshelf(
    child_id: Optional[str] = Query(default=None, alias="childId"),
    store: TrackerStore = Depends(get_tracker_store),
) -> List[ShelfEntry]:
    return await progress_service.bookshelf(store, child_id)


@router.get("/children", response_model=List[ChildStats])
async def child_stats(store: TrackerStore = Depends(get_tracker_store)) -> List[ChildStats]:
    return await progress_service.child_stats(store)


@router.get("/share-card", response_model=ShareCard, responses=_no_child)
async def share_card(
    child_id: Optional[str] = Query(default=None, alias="childId"),
    store: TrackerStore = Depends(get_tracker_store),
) -> ShareCard:
    return await progress_service.share_card(store, child_id)


@router.get("/family-share-card", response_model=FamilyShareCard)
async def family_share_card(store: TrackerStore = Depends(get_tracker_store)) -> FamilyShareCard:
    return await progress_service.family_share_card(store)


@router.get("/home", response_model=HomeSummary)
async def home_summary(store: TrackerStore = Depends(get_tracker_store)) -> HomeSummary:
    return await progress_service.home_summary(store)
