"""
OurBookmark Backend: Account Service
=====================================

What:  Email/password sign-up and sign-in with opaque bearer sessions.
How:   werkzeug password hashes; `secrets.token_urlsafe` session tokens of
       which only the SHA-256 digest is stored in `auth_sessions`.
Who:   /api/auth routes and the `get_current_user` dependency.

Token lifecycle:
    sign-in  → token returned once, digest stored with expires_at
    request  → Authorization: Bearer <token> → digest lookup → User
    sign-out → row deleted
Expired rows are deleted lazily when they are presented.
"""

import hashlib
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from werkzeug.security import check_password_hash, generate_password_hash

from ourbookmark.config import settings
from ourbookmark.exceptions import AuthenticationError, ConflictError, ValidationError
from ourbookmark.models.account import AuthSession, User
from ourbookmark.schemas.auth import Credentials, SessionResponse, UserResponse

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _as_aware(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


class AuthService:
    def _clean_email(self, email: str) -> str:
        cleaned = (email or "").strip().lower()
        if not EMAIL_PATTERN.match(cleaned):
            raise ValidationError(message="Please enter a valid email address", field="email")
        return cleaned

    async def _find_user(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def _open_session(self, db: AsyncSession, user: User) -> SessionResponse:
        token = secrets.token_urlsafe(32)
        expires_at = datetime.now(timezone.utc) + timedelta(days=settings.session_ttl_days)
        db.add(AuthSession(token_hash=hash_token(token), user_id=user.id, expires_at=expires_at))
        await db.flush()
        return SessionResponse(
            access_token=token,
            expires_at=expires_at,
            user=UserResponse.model_validate(user),
        )

    async def sign_up(self, db: AsyncSession, credentials: Credentials) -> SessionResponse:
        email = self._clean_email(credentials.email)
        if len(credentials.password) < settings.min_password_length:
            raise ValidationError(
                message=f"Password should be at least {settings.min_password_length} characters",
                field="password",
            )
        if await self._find_user(db, email) is not None:
            raise ConflictError(message="User already registered")

        user = User(email=email, password_hash=generate_password_hash(credentials.password))
        db.add(user)
        await db.flush()
        logger.info("Account created: %s", user.id)
        return await self._open_session(db, user)

    async def sign_in(self, db: AsyncSession, credentials: Credentials) -> SessionResponse:
        email = (credentials.email or "").strip().lower()
        user = await self._find_user(db, email)
        if user is None or not check_password_hash(user.password_hash, credentials.password):
            raise AuthenticationError(message="Invalid login credentials")
        logger.info("Signed in: %s", user.id)
        return await self._open_session(db, user)

    async def sign_out(self, db: AsyncSession, token: str) -> None:
        session = await db.get(AuthSession, hash_token(token))
        if session is not None:
            await db.delete(session)
            await db.flush()

    async def user_for_token(self, db: AsyncSession, token: str) -> Optional[User]:
        """The token's user, or None when unknown or expired."""
        session = await db.get(AuthSession, hash_token(token))
        if session is None:
            return None
        if _as_aware(session.expires_at) <= datetime.now(timezone.utc):
            await db.delete(session)
            await db.flush()
            return None
        return await db.get(User, session.user_id)


auth_service = AuthService()
