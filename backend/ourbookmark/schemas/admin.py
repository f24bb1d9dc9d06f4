"""OurBookmark Backend: Admin Cover Tool Schemas"""

import uuid
from typing import List, Optional

from pydantic import BaseModel


class AdminBook(BaseModel):
    id: uuid.UUID
    title: str
    author: Optional[str] = None
    cover_url: Optional[str] = None

    model_config = {"from_attributes": True}


class AdminBookList(BaseModel):
    books: List[AdminBook]
    total_count: int
    missing_covers: int


class CoverUpdate(BaseModel):
    cover_url: str
