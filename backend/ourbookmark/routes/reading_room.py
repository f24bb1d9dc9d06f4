"""
OurBookmark Backend: Reading Room Routes
=========================================

What:  The public page and the owner's editing calls.

    GET  /api/rooms/@{username}                     anyone (public rooms only)
    GET  /api/rooms/me                              owner view, hidden shelves too
    ...  /api/rooms/me/{profile,username,visibility,avatar,shelves...}

Every /me route requires a bearer token; ownership of shelves and shelf
books is checked in ReadingRoomService.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ourbookmark.database import get_db_session
from ourbookmark.dependencies import get_current_user
from ourbookmark.models.account import User
from ourbookmark.schemas.common import ErrorResponse
from ourbookmark.schemas.reading_room import (
    CuratorNoteUpdate,
    ProfileResponse,
    ProfileUpdate,
    RoomResponse,
    ShelfBookCreate,
    ShelfBookResponse,
    ShelfCreate,
    ShelfMove,
    ShelfResponse,
    ShelfUpdate,
    UsernameCheck,
    UsernameRequest,
    VisibilityUpdate,
)
from ourbookmark.services.reading_room_service import reading_room_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rooms", tags=["Reading Room"])


# ══════════════════════════════════════════════════════════════════════════
# Public
# ══════════════════════════════════════════════════════════════════════════

@router.get(
    "/@{username}",
    response_model=RoomResponse,
    responses={404: {"description": "No such public room", "model": ErrorResponse}},
    summary="A public reading room",
)
async def public_room(
    username: str, response: Response, db: AsyncSession = Depends(get_db_session)
) -> RoomResponse:
    room = await reading_room_service.public_room(db, username)
    response.headers["Cache-Control"] = "public, max-age=60"
    return room


# ══════════════════════════════════════════════════════════════════════════
# Owner: Profile
# ══════════════════════════════════════════════════════════════════════════

@router.get("/me", response_model=RoomResponse, summary="The signed-in user's own room")
async def my_room(
    user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)
) -> RoomResponse:
    return await reading_room_service.owner_room(db, user)


@router.patch("/me/profile", response_model=ProfileResponse)
async def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    return await reading_room_service.update_profile(db, user, payload)


@router.get("/me/username-check", response_model=UsernameCheck)
async def check_username(
    username: str = Query(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UsernameCheck:
    return await reading_room_service.check_username(db, user, username)


@router.put(
    "/me/username",
    response_model=ProfileResponse,
    responses={409: {"description": "Username taken", "model": ErrorResponse}},
)
async def claim_username(
    payload: UsernameRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    return await reading_room_service.claim_username(db, user, payload.username)


@router.put("/me/visibility", response_model=ProfileResponse)
async def set_visibility(
    payload: VisibilityUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    return await reading_room_service.set_visibility(db, user, payload.room_is_public)


@router.post("/me/avatar", response_model=ProfileResponse, summary="Upload a profile photo")
async def upload_avatar(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    content = await file.read()
    return await reading_room_service.upload_avatar(
        db,
        user,
        filename=file.filename or "avatar",
        content=content,
        content_length=file.size,
    )


# ══════════════════════════════════════════════════════════════════════════
# Owner: Shelves
# ══════════════════════════════════════════════════════════════════════════

@router.post("/me/shelves", status_code=201, response_model=ShelfResponse)
async def create_shelf(
    payload: ShelfCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ShelfResponse:
    return await reading_room_service.create_shelf(db, user, payload.name, payload.description)


@router.patch("/me/shelves/{shelf_id}", response_model=ShelfResponse)
async def rename_shelf(
    shelf_id: uuid.UUID,
    payload: ShelfUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ShelfResponse:
    return await reading_room_service.rename_shelf(
        db, user, shelf_id, payload.name, payload.description
    )


@router.post("/me/shelves/{shelf_id}/move", status_code=204)
async def move_shelf(
    shelf_id: uuid.UUID,
    payload: ShelfMove,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await reading_room_service.move_shelf(db, user, shelf_id, payload.direction)
    return Response(status_code=204)


@router.delete("/me/shelves/{shelf_id}", status_code=204)
async def delete_shelf(
    shelf_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await reading_room_service.delete_shelf(db, user, shelf_id)
    return Response(status_code=204)


@router.post(
    "/me/shelves/{shelf_id}/books",
    status_code=201,
    response_model=ShelfBookResponse,
    responses={409: {"description": "Already on this shelf", "model": ErrorResponse}},
)
async def add_book_to_shelf(
    shelf_id: uuid.UUID,
    payload: ShelfBookCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ShelfBookResponse:
    return await reading_room_service.add_book_to_shelf(db, user, shelf_id, payload)


@router.delete("/me/shelf-books/{shelf_book_id}", status_code=204)
async def remove_shelf_book(
    shelf_book_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await reading_room_service.remove_shelf_book(db, user, shelf_book_id)
    return Response(status_code=204)


@router.put("/me/shelf-books/{shelf_book_id}/note", response_model=ShelfBookResponse)
async def set_curator_note(
    shelf_book_id: uuid.UUID,
    payload: CuratorNoteUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ShelfBookResponse:
    return await reading_room_service.set_curator_note(
        db, user, shelf_book_id, payload.curator_note
    )
