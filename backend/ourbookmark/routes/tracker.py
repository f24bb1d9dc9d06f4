"""
OurBookmark Backend: Tracker Routes
====================================

What:  CRUD for the family's reading data.
How:   Every handler receives a TrackerStore from `get_tracker_store`
       (account tables when signed in, the device document otherwise)
       and delegates to TrackerService.
Who:   The home screen, log form, child editor, goals, challenges and
       class-group screens.

`GET /api/tracker/state` is the one call the client makes on load: it
returns every collection and runs the orphan-log repair pass.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, Response

from ourbookmark.dependencies import get_tracker_store
from ourbookmark.schemas.common import ErrorResponse
from ourbookmark.schemas.tracker import (
    Challenge,
    ChallengeJoin,
    Child,
    ChildCreate,
    ChildRef,
    ChildUpdate,
    ClassGroup,
    ClassGroupJoin,
    FamilyProfile,
    Goal,
    LogCreate,
    LogUpdate,
    ReadingLog,
    ToReadCreate,
    ToReadItem,
    TrackerState,
    VoiceEntryRequest,
    VoiceEntryResponse,
)
from ourbookmark.services import device_store as keys
from ourbookmark.services.tracker_service import tracker_service
from ourbookmark.services.tracker_store import TrackerStore, parse_records

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tracker", tags=["Tracker"])

_errors = {
    400: {"description": "Invalid input", "model": ErrorResponse},
    404: {"description": "Unknown child or record", "model": ErrorResponse},
}


@router.get("/state", response_model=TrackerState, summary="Every collection at once")
async def get_state(store: TrackerStore = Depends(get_tracker_store)) -> TrackerState:
    return await tracker_service.load_state(store)


# ══════════════════════════════════════════════════════════════════════════
# Children
# ══════════════════════════════════════════════════════════════════════════

@router.get("/children", response_model=List[Child])
async def list_children(store: TrackerStore = Depends(get_tracker_store)) -> List[Child]:
    return await store.list_children()


@router.post("/children", status_code=201, response_model=Child, responses=_errors)
async def add_child(
    payload: ChildCreate, store: TrackerStore = Depends(get_tracker_store)
) -> Child:
    return await tracker_service.add_child(store, payload)


@router.patch("/children/{child_id}", response_model=Child, responses=_errors)
async def update_child(
    child_id: str, payload: ChildUpdate, store: TrackerStore = Depends(get_tracker_store)
) -> Child:
    return await tracker_service.update_child(store, child_id, payload)


@router.post("/children/{child_id}/archive", response_model=Child, responses=_errors)
async def archive_child(child_id: str, store: TrackerStore = Depends(get_tracker_store)) -> Child:
    return await tracker_service.set_archived(store, child_id, True)


@router.post("/children/{child_id}/restore", response_model=Child, responses=_errors)
async def restore_child(child_id: str, store: TrackerStore = Depends(get_tracker_store)) -> Child:
    return await tracker_service.set_archived(store, child_id, False)


# ══════════════════════════════════════════════════════════════════════════
# Reading Logs
# ══════════════════════════════════════════════════════════════════════════

@router.get("/logs", response_model=List[ReadingLog])
async def list_logs(store: TrackerStore = Depends(get_tracker_store)) -> List[ReadingLog]:
    return await store.list_logs()


@router.post(
    "/logs",
    status_code=201,
    response_model=ReadingLog,
    responses=_errors,
    summary="Record a reading session",
    description="Minutes must be greater than 0 and at most 1440 (24 hours).",
)
async def add_log(
    payload: LogCreate, store: TrackerStore = Depends(get_tracker_store)
) -> ReadingLog:
    return await tracker_service.add_log(store, payload)


@router.patch("/logs/{log_id}", response_model=ReadingLog, responses=_errors)
async def update_log(
    log_id: str, payload: LogUpdate, store: TrackerStore = Depends(get_tracker_store)
) -> ReadingLog:
    return await tracker_service.update_log(store, log_id, payload)


@router.delete("/logs/{log_id}", status_code=204, responses=_errors)
async def delete_log(log_id: str, store: TrackerStore = Depends(get_tracker_store)) -> Response:
    await tracker_service.delete_log(store, log_id)
    return Response(status_code=204)


@router.post("/voice", response_model=VoiceEntryResponse, summary="Parse a spoken log entry")
async def parse_voice(
    payload: VoiceEntryRequest, store: TrackerStore = Depends(get_tracker_store)
) -> VoiceEntryResponse:
    return await tracker_service.parse_voice_entry(store, payload)


# ══════════════════════════════════════════════════════════════════════════
# Goals, Challenges, Class Groups
# ══════════════════════════════════════════════════════════════════════════

@router.get("/goals", response_model=List[Goal])
async def list_goals(store: TrackerStore = Depends(get_tracker_store)) -> List[Goal]:
    return parse_records(Goal, await store.get_documents(keys.GOALS_KEY), "goal")


@router.post("/goals", status_code=201, response_model=Goal)
async def create_goal(
    payload: Dict[str, Any] = Body(...), store: TrackerStore = Depends(get_tracker_store)
) -> Goal:
    return await tracker_service.create_goal(store, payload)


@router.post("/goals/{goal_id}/complete", response_model=Goal, responses=_errors)
async def complete_goal(goal_id: str, store: TrackerStore = Depends(get_tracker_store)) -> Goal:
    return await tracker_service.complete_goal(store, goal_id)


@router.delete("/goals/{goal_id}", status_code=204, responses=_errors)
async def delete_goal(goal_id: str, store: TrackerStore = Depends(get_tracker_store)) -> Response:
    await tracker_service.delete_goal(store, goal_id)
    return Response(status_code=204)


@router.get("/challenges", response_model=List[Challenge])
async def list_challenges(store: TrackerStore = Depends(get_tracker_store)) -> List[Challenge]:
    return parse_records(Challenge, await store.get_documents(keys.CHALLENGES_KEY), "challenge")


@router.post("/challenges", status_code=201, response_model=Challenge)
async def create_challenge(
    payload: Dict[str, Any] = Body(...), store: TrackerStore = Depends(get_tracker_store)
) -> Challenge:
    return await tracker_service.create_challenge(store, payload)


@router.post(
    "/challenges/{challenge_id}/join",
    response_model=Challenge,
    responses={**_errors, 409: {"description": "Already joined", "model": ErrorResponse}},
)
async def join_challenge(
    challenge_id: str, payload: ChallengeJoin, store: TrackerStore = Depends(get_tracker_store)
) -> Challenge:
    return await tracker_service.join_challenge(store, challenge_id, payload)


@router.post("/challenges/{challenge_id}/leave", response_model=Challenge, responses=_errors)
async def leave_challenge(
    challenge_id: str, payload: ChildRef, store: TrackerStore = Depends(get_tracker_store)
) -> Challenge:
    return await tracker_service.leave_challenge(store, challenge_id, payload.child_id)


@router.get("/class-groups", response_model=List[ClassGroup])
async def list_class_groups(store: TrackerStore = Depends(get_tracker_store)) -> List[ClassGroup]:
    return parse_records(
        ClassGroup, await store.get_documents(keys.CLASS_GROUPS_KEY), "class group"
    )


@router.post("/class-groups", status_code=201, response_model=ClassGroup)
async def create_class_group(
    payload: Dict[str, Any] = Body(...), store: TrackerStore = Depends(get_tracker_store)
) -> ClassGroup:
    return await tracker_service.create_class_group(store, payload)


@router.post(
    "/class-groups/join",
    response_model=ClassGroup,
    responses={**_errors, 409: {"description": "Already in the group", "model": ErrorResponse}},
    summary="Join a class group by its code",
)
async def join_class_group(
    payload: ClassGroupJoin, store: TrackerStore = Depends(get_tracker_store)
) -> ClassGroup:
    return await tracker_service.join_class_group(store, payload)


@router.post("/class-groups/{group_id}/leave", response_model=ClassGroup, responses=_errors)
async def leave_class_group(
    group_id: str, payload: ChildRef, store: TrackerStore = Depends(get_tracker_store)
) -> ClassGroup:
    return await tracker_service.leave_class_group(store, group_id, payload.child_id)


# ══════════════════════════════════════════════════════════════════════════
# Family Profile & To-Read List
# ══════════════════════════════════════════════════════════════════════════

@router.get("/family", response_model=FamilyProfile)
async def get_family(store: TrackerStore = Depends(get_tracker_store)) -> FamilyProfile:
    return await tracker_service.get_family(store) or FamilyProfile()


@router.put("/family", response_model=FamilyProfile)
async def set_family(
    payload: FamilyProfile, store: TrackerStore = Depends(get_tracker_store)
) -> FamilyProfile:
    return await tracker_service.set_family(store, payload)


@router.get("/to-read", response_model=List[ToReadItem])
async def list_to_read(store: TrackerStore = Depends(get_tracker_store)) -> List[ToReadItem]:
    return parse_records(ToReadItem, await store.get_documents(keys.TO_READ_KEY), "to-read")


@router.post("/to-read", status_code=201, response_model=ToReadItem, responses=_errors)
async def add_to_read(
    payload: ToReadCreate, store: TrackerStore = Depends(get_tracker_store)
) -> ToReadItem:
    return await tracker_service.add_to_read(store, payload)


@router.delete("/to-read/{item_id}", status_code=204, responses=_errors)
async def remove_to_read(item_id: str, store: TrackerStore = Depends(get_tracker_store)) -> Response:
    await tracker_service.remove_to_read(store, item_id)
    return Response(status_code=204)
