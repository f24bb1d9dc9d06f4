"""
OurBookmark Backend: Reading Room Schemas
==========================================

Snake_case, matching the profile/shelf column names the room pages use.
"""

import uuid
from typing import List, Optional

from pydantic import BaseModel, Field


class StoreLinks(BaseModel):
    amazon: str
    bookshop: str
    libby: str


class ProfileResponse(BaseModel):
    id: uuid.UUID
    username: Optional[str] = None
    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    header_widgets: dict = Field(default_factory=dict)
    affiliate_amazon: Optional[str] = None
    affiliate_bookshop: Optional[str] = None
    room_is_public: bool = False

    model_config = {"from_attributes": True}


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=100)
    bio: Optional[str] = Field(default=None, max_length=2000)
    header_widgets: Optional[dict] = None
    affiliate_amazon: Optional[str] = Field(default=None, max_length=64)
    affiliate_bookshop: Optional[str] = Field(default=None, max_length=64)


class UsernameRequest(BaseModel):
    username: str


class UsernameCheck(BaseModel):
    requested: str
    username: str
    available: bool
    reason: Optional[str] = None


class VisibilityUpdate(BaseModel):
    room_is_public: bool


class ShelfCreate(BaseModel):
    name: str = Field(max_length=100)
    description: str = ""


class ShelfUpdate(BaseModel):
    name: str = Field(max_length=100)
    description: str = ""


class ShelfMove(BaseModel):
    direction: str = Field(pattern="^(up|down)$")


class ShelfBookCreate(BaseModel):
    title: str
    author: Optional[str] = None
    cover_url: Optional[str] = None
    isbn_13: Optional[str] = None
    isbn_10: Optional[str] = None
    google_books_id: Optional[str] = None
    curator_note: Optional[str] = None


class CuratorNoteUpdate(BaseModel):
    curator_note: Optional[str] = Field(default=None, max_length=1000)


class RoomBook(BaseModel):
    id: uuid.UUID
    title: str
    author: Optional[str] = None
    isbn_10: Optional[str] = None
    isbn_13: Optional[str] = None
    google_books_id: Optional[str] = None
    cover_url: Optional[str] = None

    model_config = {"from_attributes": True}


class ShelfBookResponse(BaseModel):
    id: uuid.UUID
    shelf_id: uuid.UUID
    display_order: int
    curator_note: Optional[str] = None
    book: RoomBook
    hi_res_cover: Optional[str] = None
    spine_colors: List[str]
    spine_height: int
    links: StoreLinks


class ShelfResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    display_order: int
    is_visible: bool = True
    books: List[ShelfBookResponse] = Field(default_factory=list)


class RoomResponse(BaseModel):
    profile: ProfileResponse
    shelves: List[ShelfResponse]
    total_books: int
    total_shelves: int
    share_url: Optional[str] = None
