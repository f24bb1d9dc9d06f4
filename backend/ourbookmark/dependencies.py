"""
OurBookmark Backend: Request Dependencies
==========================================

What:  FastAPI dependencies that turn request headers into the caller's
       identity and the tracker store they read and write.
Who:   Every route that touches family data, the sync routes and the
       admin routes.

Scope selection:

    Authorization: Bearer <token>  ──▶ AccountTrackerStore (database)
    X-Device-ID: <id>              ──▶ DeviceTrackerStore  (JSON document)
    neither                        ──▶ 400

A bearer token wins when both headers are present. A token that is unknown
or expired is a 401, never a silent fall-back to the device.
"""

import secrets
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from ourbookmark.config import settings
from ourbookmark.database import get_db_session
from ourbookmark.exceptions import AuthenticationError, PermissionDeniedError, ValidationError
from ourbookmark.models.account import User
from ourbookmark.services.auth_service import auth_service
from ourbookmark.services.device_store import DeviceStore, device_store, validate_device_id
from ourbookmark.services.tracker_store import (
    AccountTrackerStore,
    DeviceTrackerStore,
    TrackerStore,
)


def bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError(message="Authorization header must be 'Bearer <token>'")
    return token.strip()


async def get_optional_user(
    token: Optional[str] = Depends(bearer_token),
    db: AsyncSession = Depends(get_db_session),
) -> Optional[User]:
    if token is None:
        return None
    user = await auth_service.user_for_token(db, token)
    if user is None:
        raise AuthenticationError(message="Your session has expired. Please sign in again.")
    return user


async def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise AuthenticationError()
    return user


def get_device_store() -> DeviceStore:
    return device_store


def get_device_id(x_device_id: Optional[str] = Header(default=None)) -> str:
    return validate_device_id(x_device_id)


async def get_tracker_store(
    user: Optional[User] = Depends(get_optional_user),
    x_device_id: Optional[str] = Header(default=None),
    store: DeviceStore = Depends(get_device_store),
    db: AsyncSession = Depends(get_db_session),
) -> TrackerStore:
    if user is not None:
        return AccountTrackerStore(db, user.id)
    if not x_device_id:
        raise ValidationError(
            message="Sign in or send an X-Device-ID header to use the reading log.",
            field="X-Device-ID",
        )
    return DeviceTrackerStore(store, validate_device_id(x_device_id))


def require_admin(x_admin_password: Optional[str] = Header(default=None)) -> None:
    """The admin cover tools sit behind one shared password."""
    if not x_admin_password:
        raise AuthenticationError(message="Admin password required")
    if not secrets.compare_digest(x_admin_password.encode(), settings.admin_password.encode()):
        raise PermissionDeniedError(message="Wrong admin password")
