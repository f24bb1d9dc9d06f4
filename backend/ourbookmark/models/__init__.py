"""
OurBookmark Backend: ORM Models
================================

Importing this package registers every table on `Base.metadata`, which is
what Alembic autogenerate and the test fixtures' `create_all` rely on.

Types are the portable SQLAlchemy ones (Uuid, JSON, DateTime(timezone=True))
so the same models run on PostgreSQL in production and SQLite in tests.
"""

from ourbookmark.models.account import AuthSession, User
from ourbookmark.models.catalog import Book
from ourbookmark.models.reading_room import Profile, Shelf, ShelfBook
from ourbookmark.models.sync import MigrationRecord, MigrationRun
from ourbookmark.models.tracker import Child, FamilyProfile, ReadingLog, UserDocument

__all__ = [
    "AuthSession",
    "Book",
    "Child",
    "FamilyProfile",
    "MigrationRecord",
    "MigrationRun",
    "Profile",
    "ReadingLog",
    "Shelf",
    "ShelfBook",
    "User",
    "UserDocument",
]
