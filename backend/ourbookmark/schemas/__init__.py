"""
OurBookmark Backend: API Schemas
=================================

Pydantic models for request validation and response serialization.

Two naming conventions meet here:
    - Tracker records (children, logs, goals, ...) travel in camelCase, the
      shape the browser already keeps in local storage and in backups.
    - Reading-room, auth and sync payloads use snake_case column names.
"""
