"""
OurBookmark Backend: Reading Room Service Tests
================================================

What:  Profiles, usernames, visibility, shelves and shelf books, and the
       public room they add up to.
How:   Real queries against the in-memory SQLite database; two users so
       ownership checks have someone to refuse.

Test Strategy:
    ✅ Usernames are cleaned, need 3 characters and must be unique
    ✅ A room cannot go public without a username
    ✅ Public page: 404 while private, hidden shelves left out
    ✅ Shelves append in order and move by swapping neighbours
    ✅ The same book cannot sit on one shelf twice
    ✅ Store links use the owner's affiliate tags
    ✅ Another user's shelf is off limits
"""

import uuid

import pytest
import pytest_asyncio

from ourbookmark.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ourbookmark.models.account import User
from ourbookmark.models.reading_room import Shelf
from ourbookmark.schemas.reading_room import ProfileUpdate, ShelfBookCreate
from ourbookmark.services.reading_room_service import (
    ReadingRoomService,
    clean_username,
    header_widgets_for,
)


@pytest_asyncio.fixture
async def owners(db_session):
    alice = User(email="alice@example.com", password_hash="x")
    bob = User(email="bob@example.com", password_hash="x")
    db_session.add_all([alice, bob])
    await db_session.flush()
    return alice, bob


class TestUsernames:
    def test_clean_username(self):
        assert clean_username("  Story_Time-Mom! ") == "story_timemom"
        assert clean_username("@@") == ""

    def test_header_widgets_merge_defaults(self):
        widgets = header_widgets_for({"stats": {"enabled": False}})
        assert widgets["stats"] == {"enabled": False}
        assert widgets["currentlyReading"]["enabled"] is False

    @pytest.mark.asyncio
    async def test_claim_and_conflict(self, db_session, owners):
        alice, bob = owners
        service = ReadingRoomService()

        claimed = await service.claim_username(db_session, alice, "BookNook")
        assert claimed.username == "booknook"

        check = await service.check_username(db_session, bob, "booknook")
        assert check.available is False
        assert check.reason == "That username is taken"
        with pytest.raises(ConflictError, match="taken"):
            await service.claim_username(db_session, bob, "BOOKNOOK")

        # Re-checking your own name is fine
        assert (await service.check_username(db_session, alice, "booknook")).available is True

    @pytest.mark.asyncio
    async def test_short_username(self, db_session, owners):
        alice, _ = owners
        service = ReadingRoomService()
        check = await service.check_username(db_session, alice, "a!")
        assert check.available is False
        with pytest.raises(ValidationError, match="at least 3"):
            await service.claim_username(db_session, alice, "a!")


class TestReadingRoom:
    @pytest.fixture(autouse=True)
    def _service(self, db_session, owners):
        self.db = db_session
        self.alice, self.bob = owners
        self.service = ReadingRoomService()

    async def _public_room(self):
        await self.service.claim_username(self.db, self.alice, "alice")
        await self.service.set_visibility(self.db, self.alice, True)

    @pytest.mark.asyncio
    async def test_profile_created_with_email(self):
        profile = await self.service.get_or_create_profile(self.db, self.alice)
        assert profile.display_name == "alice@example.com"
        assert profile.room_is_public is False

    @pytest.mark.asyncio
    async def test_update_profile(self):
        view = await self.service.update_profile(
            self.db,
            self.alice,
            ProfileUpdate(display_name=" Alice ", bio=" Mum of two ", affiliate_amazon="  "),
        )
        assert view.display_name == "Alice"
        assert view.bio == "Mum of two"
        assert view.affiliate_amazon is None
        assert view.header_widgets["stats"] == {"enabled": True}

        with pytest.raises(ValidationError, match="Display name is required"):
            await self.service.update_profile(self.db, self.alice, ProfileUpdate(display_name=" "))

    @pytest.mark.asyncio
    async def test_public_requires_username(self):
        with pytest.raises(ValidationError, match="Choose a username"):
            await self.service.set_visibility(self.db, self.alice, True)

    @pytest.mark.asyncio
    async def test_private_room_is_not_found(self):
        await self.service.claim_username(self.db, self.alice, "alice")
        with pytest.raises(NotFoundError):
            await self.service.public_room(self.db, "@alice")

    @pytest.mark.asyncio
    async def test_public_room_hides_hidden_shelves(self):
        await self._public_room()
        shown = await self.service.create_shelf(self.db, self.alice, "Favourites")
        hidden = await self.service.create_shelf(self.db, self.alice, "Drafts")
        (await self.db.get(Shelf, hidden.id)).is_visible = False
        await self.service.add_book_to_shelf(
            self.db, self.alice, shown.id, ShelfBookCreate(title="Matilda", author="Roald Dahl")
        )

        room = await self.service.public_room(self.db, "@Alice")
        assert [s.name for s in room.shelves] == ["Favourites"]
        assert room.total_books == 1
        assert room.total_shelves == 1
        assert room.share_url == "https://ourbookmark.com/@alice"

        owner_view = await self.service.owner_room(self.db, self.alice)
        assert [s.name for s in owner_view.shelves] == ["Favourites", "Drafts"]

    @pytest.mark.asyncio
    async def test_shelves_append_and_move(self):
        first = await self.service.create_shelf(self.db, self.alice, "One")
        second = await self.service.create_shelf(self.db, self.alice, "Two")
        third = await self.service.create_shelf(self.db, self.alice, "Three")
        assert [first.display_order, second.display_order, third.display_order] == [0, 1, 2]

        await self.service.move_shelf(self.db, self.alice, third.id, "up")
        room = await self.service.owner_room(self.db, self.alice)
        assert [s.name for s in room.shelves] == ["One", "Three", "Two"]

        # Past the top edge nothing changes
        await self.service.move_shelf(self.db, self.alice, first.id, "up")
        room = await self.service.owner_room(self.db, self.alice)
        assert [s.name for s in room.shelves] == ["One", "Three", "Two"]

    @pytest.mark.asyncio
    async def test_move_after_delete_keeps_neighbours(self):
        doomed = await self.service.create_shelf(self.db, self.alice, "Gone")
        first = await self.service.create_shelf(self.db, self.alice, "One")
        await self.service.create_shelf(self.db, self.alice, "Two")
        third = await self.service.create_shelf(self.db, self.alice, "Three")
        await self.service.delete_shelf(self.db, self.alice, doomed.id)

        # Orders are now 1, 2, 3; moving "Three" up swaps it with "Two" only
        await self.service.move_shelf(self.db, self.alice, third.id, "up")

        room = await self.service.owner_room(self.db, self.alice)
        assert [s.name for s in room.shelves] == ["One", "Three", "Two"]
        assert [s.display_order for s in room.shelves] == [0, 1, 2]
        assert room.shelves[0].id == first.id

    @pytest.mark.asyncio
    async def test_shelf_name_required(self):
        with pytest.raises(ValidationError, match="Shelf name is required"):
            await self.service.create_shelf(self.db, self.alice, "   ")

    @pytest.mark.asyncio
    async def test_book_on_shelf_once(self):
        shelf = await self.service.create_shelf(self.db, self.alice, "Favourites")
        added = await self.service.add_book_to_shelf(
            self.db, self.alice, shelf.id, ShelfBookCreate(title="Holes")
        )
        assert added.display_order == 0
        with pytest.raises(ConflictError, match="Already on this shelf!"):
            await self.service.add_book_to_shelf(
                self.db, self.alice, shelf.id, ShelfBookCreate(title="Holes")
            )

    @pytest.mark.asyncio
    async def test_store_links_use_owner_tags(self):
        await self.service.update_profile(
            self.db, self.alice, ProfileUpdate(affiliate_amazon="alice-20", affiliate_bookshop="777")
        )
        shelf = await self.service.create_shelf(self.db, self.alice, "Favourites")
        book = await self.service.add_book_to_shelf(
            self.db, self.alice, shelf.id, ShelfBookCreate(title="Holes", isbn_13="9780440414803")
        )

        assert book.links.amazon == "https://www.amazon.com/s?k=9780440414803&tag=alice-20"
        assert book.links.bookshop.endswith("keywords=Holes&a_aid=777")
        assert book.links.libby == "https://www.overdrive.com/search?q=Holes"
        assert len(book.spine_colors) == 2
        assert 110 <= book.spine_height <= 159

    @pytest.mark.asyncio
    async def test_curator_note_and_remove(self):
        shelf = await self.service.create_shelf(self.db, self.alice, "Favourites")
        book = await self.service.add_book_to_shelf(
            self.db, self.alice, shelf.id, ShelfBookCreate(title="Holes")
        )

        noted = await self.service.set_curator_note(self.db, self.alice, book.id, "  Read it twice ")
        assert noted.curator_note == "Read it twice"

        await self.service.remove_shelf_book(self.db, self.alice, book.id)
        room = await self.service.owner_room(self.db, self.alice)
        assert room.total_books == 0

    @pytest.mark.asyncio
    async def test_other_users_shelf_is_forbidden(self):
        shelf = await self.service.create_shelf(self.db, self.alice, "Favourites")
        with pytest.raises(PermissionDeniedError):
            await self.service.rename_shelf(self.db, self.bob, shelf.id, "Mine now")
        with pytest.raises(PermissionDeniedError):
            await self.service.delete_shelf(self.db, self.bob, shelf.id)

    @pytest.mark.asyncio
    async def test_delete_shelf_removes_books(self):
        shelf = await self.service.create_shelf(self.db, self.alice, "Favourites")
        await self.service.add_book_to_shelf(
            self.db, self.alice, shelf.id, ShelfBookCreate(title="Holes")
        )
        await self.service.delete_shelf(self.db, self.alice, shelf.id)

        room = await self.service.owner_room(self.db, self.alice)
        assert room.shelves == []
        with pytest.raises(NotFoundError):
            await self.service.delete_shelf(self.db, self.alice, uuid.uuid4())
