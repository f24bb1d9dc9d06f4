"""
OurBookmark Backend: Account Routes
====================================

What:  Sign-up, sign-in, sign-out and "who am I".
Who:   The sign-in page. After a successful sign-in the client asks
       /api/sync/status whether the device has data to migrate.

The per-IP limiter in middleware/rate_limit.py covers every path here.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ourbookmark.database import get_db_session
from ourbookmark.dependencies import bearer_token, get_current_user
from ourbookmark.models.account import User
from ourbookmark.schemas.auth import Credentials, SessionResponse, UserResponse
from ourbookmark.schemas.common import ErrorResponse, MessageResponse
from ourbookmark.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/signup",
    status_code=201,
    response_model=SessionResponse,
    responses={
        400: {"description": "Invalid email or short password", "model": ErrorResponse},
        409: {"description": "Email already registered", "model": ErrorResponse},
    },
    summary="Create an account and open a session",
)
async def sign_up(
    credentials: Credentials, db: AsyncSession = Depends(get_db_session)
) -> SessionResponse:
    return await auth_service.sign_up(db, credentials)


@router.post(
    "/signin",
    response_model=SessionResponse,
    responses={401: {"description": "Invalid login credentials", "model": ErrorResponse}},
    summary="Open a session",
)
async def sign_in(
    credentials: Credentials, db: AsyncSession = Depends(get_db_session)
) -> SessionResponse:
    return await auth_service.sign_in(db, credentials)


@router.post("/signout", response_model=MessageResponse, summary="Close the current session")
async def sign_out(
    token: Optional[str] = Depends(bearer_token),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    if token:
        await auth_service.sign_out(db, token)
    return MessageResponse(message="Signed out")


@router.get("/me", response_model=UserResponse, summary="The signed-in user")
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)
