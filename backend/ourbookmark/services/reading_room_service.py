"""
OurBookmark Backend: Reading Room Service
==========================================

What:  The public "reading room" page and everything its owner edits:
       profile, username, avatar, visibility, shelves and shelf books.
How:   SQLAlchemy queries over profiles / shelves / shelf_books / books.
       Books are shared catalog rows (CatalogService lookup-or-insert).
Who:   /api/rooms routes.

Public page rules:
    - Only profiles with room_is_public are served to visitors.
    - Only visible shelves appear, ordered by display_order.
    - Books on a shelf are ordered by display_order; each carries its spine
      colour pair, spine height, hi-res cover and store links (Amazon with
      the owner's tag or the fallback tag, Bookshop with the owner's tag,
      Libby without one).

Ordering:
    A new shelf (or shelf book) is appended with display_order = current
    count. Moving a shelf swaps it with its neighbour and writes both their
    list positions back as display_order.
"""

import logging
import re
import uuid
from typing import Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ourbookmark.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ourbookmark.models.account import User
from ourbookmark.models.catalog import Book
from ourbookmark.models.reading_room import Profile, Shelf, ShelfBook
from ourbookmark.schemas.reading_room import (
    ProfileResponse,
    ProfileUpdate,
    RoomBook,
    RoomResponse,
    ShelfBookCreate,
    ShelfBookResponse,
    ShelfResponse,
    StoreLinks,
    UsernameCheck,
)
from ourbookmark.services.book_text import (
    amazon_link,
    bookshop_link,
    hash_color,
    hi_res_cover,
    libby_link,
    spine_height,
)
from ourbookmark.services.catalog_service import catalog_service
from ourbookmark.services.file_service import file_service

logger = logging.getLogger(__name__)

SHARE_URL_BASE = "https://ourbookmark.com/@"
MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 40
USERNAME_STRIP = re.compile(r"[^a-z0-9_]")

DEFAULT_HEADER_WIDGETS = {
    "stats": {"enabled": True},
    "currentlyReading": {"enabled": False, "title": "", "author": "", "cover_url": ""},
    "genreAgeGroup": {"enabled": False, "value": ""},
    "socialLinks": {"enabled": False, "links": [{"platform": "", "url": ""}]},
}


def clean_username(raw: str) -> str:
    """Lower-case and keep only a-z, 0-9 and underscore."""
    return USERNAME_STRIP.sub("", (raw or "").lower())[:MAX_USERNAME_LENGTH]


def header_widgets_for(stored: Optional[dict]) -> dict:
    return {**DEFAULT_HEADER_WIDGETS, **(stored or {})}


def profile_view(profile: Profile) -> ProfileResponse:
    view = ProfileResponse.model_validate(profile)
    return view.model_copy(update={"header_widgets": header_widgets_for(profile.header_widgets)})


def shelf_book_view(link: ShelfBook, book: Book, profile: Profile) -> ShelfBookResponse:
    return ShelfBookResponse(
        id=link.id,
        shelf_id=link.shelf_id,
        display_order=link.display_order,
        curator_note=link.curator_note,
        book=RoomBook.model_validate(book),
        hi_res_cover=hi_res_cover(book.cover_url),
        spine_colors=list(hash_color(book.title)),
        spine_height=spine_height(book.title),
        links=StoreLinks(
            amazon=amazon_link(book.title, book.isbn_13, book.isbn_10, profile.affiliate_amazon),
            bookshop=bookshop_link(book.title, profile.affiliate_bookshop),
            libby=libby_link(book.title),
        ),
    )


class ReadingRoomService:
    # ══════════════════════════════════════════════════════════════════════
    # Public Page
    # ══════════════════════════════════════════════════════════════════════

    async def _build_room(
        self, db: AsyncSession, profile: Profile, include_hidden: bool = False
    ) -> RoomResponse:
        query = select(Shelf).where(Shelf.user_id == profile.id)
        if not include_hidden:
            query = query.where(Shelf.is_visible.is_(True))
        shelves = (
            await db.execute(query.order_by(Shelf.display_order, Shelf.created_at))
        ).scalars().all()

        books_by_shelf: Dict[uuid.UUID, List[ShelfBookResponse]] = {s.id: [] for s in shelves}
        if shelves:
            rows = await db.execute(
                select(ShelfBook, Book)
                .join(Book, ShelfBook.book_id == Book.id)
                .where(ShelfBook.shelf_id.in_(list(books_by_shelf)))
                .order_by(ShelfBook.display_order, ShelfBook.id)
            )
            for link, book in rows.all():
                books_by_shelf[link.shelf_id].append(shelf_book_view(link, book, profile))

        shelf_views = [
            ShelfResponse(
                id=s.id,
                name=s.name,
                description=s.description,
                display_order=s.display_order,
                is_visible=s.is_visible,
                books=books_by_shelf[s.id],
            )
            for s in shelves
        ]
        return RoomResponse(
            profile=profile_view(profile),
            shelves=shelf_views,
            total_books=sum(len(v.books) for v in shelf_views),
            total_shelves=len(shelf_views),
            share_url=f"{SHARE_URL_BASE}{profile.username}" if profile.username else None,
        )

    async def public_room(self, db: AsyncSession, username: str) -> RoomResponse:
        """The page at /@username; 404 unless the room exists and is public."""
        handle = (username or "").lstrip("@").lower()
        profile = (
            await db.execute(
                select(Profile).where(Profile.username == handle, Profile.room_is_public.is_(True))
            )
        ).scalars().first()
        if profile is None:
            raise NotFoundError(resource="reading room", resource_id=handle)
        return await self._build_room(db, profile)

    async def owner_room(self, db: AsyncSession, user: User) -> RoomResponse:
        profile = await self.get_or_create_profile(db, user)
        return await self._build_room(db, profile, include_hidden=True)

    # ══════════════════════════════════════════════════════════════════════
    # Profile
    # ══════════════════════════════════════════════════════════════════════

    async def get_or_create_profile(self, db: AsyncSession, user: User) -> Profile:
        profile = await db.get(Profile, user.id)
        if profile is None:
            profile = Profile(
                id=user.id,
                username=None,
                display_name=user.email,
                header_widgets={},
                room_is_public=False,
            )
            db.add(profile)
            await db.flush()
            logger.info("Reading room profile created for %s", user.id)
        return profile

    async def update_profile(self, db: AsyncSession, user: User, payload: ProfileUpdate) -> ProfileResponse:
        """Blank affiliate tags are stored as null."""
        profile = await self.get_or_create_profile(db, user)
        changes = payload.model_dump(exclude_unset=True)
        if "display_name" in changes:
            name = (changes["display_name"] or "").strip()
            if not name:
                raise ValidationError(message="Display name is required", field="display_name")
            profile.display_name = name
        if "bio" in changes:
            profile.bio = (changes["bio"] or "").strip()
        if "header_widgets" in changes:
            profile.header_widgets = changes["header_widgets"] or {}
        if "affiliate_amazon" in changes:
            profile.affiliate_amazon = (changes["affiliate_amazon"] or "").strip() or None
        if "affiliate_bookshop" in changes:
            profile.affiliate_bookshop = (changes["affiliate_bookshop"] or "").strip() or None
        await db.flush()
        return profile_view(profile)

    async def check_username(self, db: AsyncSession, user: User, requested: str) -> UsernameCheck:
        username = clean_username(requested)
        if len(username) < MIN_USERNAME_LENGTH:
            return UsernameCheck(
                requested=requested,
                username=username,
                available=False,
                reason="Usernames need at least 3 letters, numbers or underscores",
            )
        taken = (
            await db.execute(
                select(func.count())
                .select_from(Profile)
                .where(Profile.username == username, Profile.id != user.id)
            )
        ).scalar()
        return UsernameCheck(
            requested=requested,
            username=username,
            available=not taken,
            reason="That username is taken" if taken else None,
        )

    async def claim_username(self, db: AsyncSession, user: User, requested: str) -> ProfileResponse:
        check = await self.check_username(db, user, requested)
        if not check.available:
            if check.reason == "That username is taken":
                raise ConflictError(message=check.reason)
            raise ValidationError(message=check.reason or "Invalid username", field="username")
        profile = await self.get_or_create_profile(db, user)
        profile.username = check.username
        await db.flush()
        logger.info("Username claimed: @%s", check.username)
        return profile_view(profile)

    async def set_visibility(self, db: AsyncSession, user: User, is_public: bool) -> ProfileResponse:
        profile = await self.get_or_create_profile(db, user)
        if is_public and not profile.username:
            raise ValidationError(
                message="Choose a username before making your Reading Room public",
                field="username",
            )
        profile.room_is_public = is_public
        await db.flush()
        return profile_view(profile)

    async def upload_avatar(
        self,
        db: AsyncSession,
        user: User,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> ProfileResponse:
        """Stored at avatars/<user-id>.<ext>; the URL carries a ?t= cache-buster."""
        profile = await self.get_or_create_profile(db, user)
        relative_path = await file_service.store_image(
            folder="avatars",
            key=str(profile.id),
            filename=filename,
            content=content,
            content_length=content_length,
        )
        profile.avatar_url = file_service.public_url(relative_path, cache_bust=True)
        await db.flush()
        return profile_view(profile)

    # ══════════════════════════════════════════════════════════════════════
    # Shelves
    # ══════════════════════════════════════════════════════════════════════

    async def _owned_shelves(self, db: AsyncSession, user: User) -> List[Shelf]:
        result = await db.execute(
            select(Shelf)
            .where(Shelf.user_id == user.id)
            .order_by(Shelf.display_order, Shelf.created_at)
        )
        return list(result.scalars().all())

    async def _owned_shelf(self, db: AsyncSession, user: User, shelf_id: uuid.UUID) -> Shelf:
        shelf = await db.get(Shelf, shelf_id)
        if shelf is None:
            raise NotFoundError(resource="shelf", resource_id=str(shelf_id))
        if shelf.user_id != user.id:
            raise PermissionDeniedError()
        return shelf

    async def create_shelf(
        self, db: AsyncSession, user: User, name: str, description: str = ""
    ) -> ShelfResponse:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError(message="Shelf name is required", field="name")
        await self.get_or_create_profile(db, user)
        shelves = await self._owned_shelves(db, user)
        shelf = Shelf(
            user_id=user.id,
            name=clean_name,
            description=(description or "").strip(),
            is_visible=True,
            display_order=shelves[-1].display_order + 1 if shelves else 0,
        )
        db.add(shelf)
        await db.flush()
        return ShelfResponse(
            id=shelf.id,
            name=shelf.name,
            description=shelf.description,
            display_order=shelf.display_order,
            is_visible=shelf.is_visible,
        )

    async def rename_shelf(
        self, db: AsyncSession, user: User, shelf_id: uuid.UUID, name: str, description: str = ""
    ) -> ShelfResponse:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError(message="Shelf name is required", field="name")
        shelf = await self._owned_shelf(db, user, shelf_id)
        shelf.name = clean_name
        shelf.description = (description or "").strip()
        await db.flush()
        return ShelfResponse(
            id=shelf.id,
            name=shelf.name,
            description=shelf.description,
            display_order=shelf.display_order,
            is_visible=shelf.is_visible,
        )

    async def move_shelf(self, db: AsyncSession, user: User, shelf_id: uuid.UUID, direction: str) -> None:
        """Swap with the neighbour above/below; a move past either end does nothing."""
        shelves = await self._owned_shelves(db, user)
        index = next((i for i, s in enumerate(shelves) if s.id == shelf_id), None)
        if index is None:
            raise NotFoundError(resource="shelf", resource_id=str(shelf_id))
        swap = index - 1 if direction == "up" else index + 1
        if swap < 0 or swap >= len(shelves):
            return
        shelves[index], shelves[swap] = shelves[swap], shelves[index]
        for position, shelf in enumerate(shelves):
            shelf.display_order = position
        await db.flush()

    async def delete_shelf(self, db: AsyncSession, user: User, shelf_id: uuid.UUID) -> None:
        shelf = await self._owned_shelf(db, user, shelf_id)
        await db.execute(delete(ShelfBook).where(ShelfBook.shelf_id == shelf.id))
        await db.delete(shelf)
        await db.flush()
        logger.info("Shelf %s deleted", shelf_id)

    # ── Shelf Books ───────────────────────────────────────────────────────

    async def add_book_to_shelf(
        self, db: AsyncSession, user: User, shelf_id: uuid.UUID, payload: ShelfBookCreate
    ) -> ShelfBookResponse:
        shelf = await self._owned_shelf(db, user, shelf_id)
        book, _ = await catalog_service.get_or_create_by_title(
            db,
            payload.title,
            author=payload.author,
            cover_url=payload.cover_url,
            isbn_13=payload.isbn_13,
            isbn_10=payload.isbn_10,
            google_books_id=payload.google_books_id,
        )

        on_shelf = (
            await db.execute(
                select(func.count())
                .select_from(ShelfBook)
                .where(ShelfBook.shelf_id == shelf.id, ShelfBook.book_id == book.id)
            )
        ).scalar()
        if on_shelf:
            raise ConflictError(message="Already on this shelf!")

        count = (
            await db.execute(
                select(func.count()).select_from(ShelfBook).where(ShelfBook.shelf_id == shelf.id)
            )
        ).scalar() or 0
        link = ShelfBook(
            shelf_id=shelf.id,
            book_id=book.id,
            user_id=user.id,
            display_order=count,
            curator_note=(payload.curator_note or "").strip() or None,
        )
        db.add(link)
        await db.flush()
        profile = await self.get_or_create_profile(db, user)
        return shelf_book_view(link, book, profile)

    async def _owned_link(self, db: AsyncSession, user: User, shelf_book_id: uuid.UUID) -> ShelfBook:
        link = await db.get(ShelfBook, shelf_book_id)
        if link is None:
            raise NotFoundError(resource="shelf book", resource_id=str(shelf_book_id))
        if link.user_id != user.id:
            raise PermissionDeniedError()
        return link

    async def remove_shelf_book(self, db: AsyncSession, user: User, shelf_book_id: uuid.UUID) -> None:
        link = await self._owned_link(db, user, shelf_book_id)
        await db.delete(link)
        await db.flush()

    async def set_curator_note(
        self, db: AsyncSession, user: User, shelf_book_id: uuid.UUID, note: Optional[str]
    ) -> ShelfBookResponse:
        link = await self._owned_link(db, user, shelf_book_id)
        link.curator_note = (note or "").strip() or None
        await db.flush()
        book = await db.get(Book, link.book_id)
        profile = await self.get_or_create_profile(db, user)
        return shelf_book_view(link, book, profile)


reading_room_service = ReadingRoomService()
