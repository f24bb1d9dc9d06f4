"""
OurBookmark Backend: Application Package
=========================================

What: Server half of the OurBookmark family reading log.
Who:  Imported by uvicorn (`ourbookmark.main:app`), Alembic and pytest.

Layering:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← tracker, sync, proxies, rooms
    ├─────────────────────────────────────┤
    │   Models, Schemas, Device Store     │  ← SQLAlchemy ORM + Pydantic + JSON
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

Signed-out families keep their data in a per-device JSON document (the
device store); signed-in families live in the relational tables. The
migration service moves a device into an account exactly once.
"""

__version__ = "1.0.0"
