"""
OurBookmark Backend: File Serving Route
========================================

Serves uploaded avatars and admin covers from STORAGE_ROOT. FileService
refuses anything outside the public folders (device documents live in
the same root and must never be served).
"""

from fastapi import APIRouter
from fastapi.responses import FileResponse

from ourbookmark.services.file_service import file_service

router = APIRouter(prefix="/api", tags=["Files"])


@router.get("/files/{file_path:path}", summary="Serve an uploaded image")
async def serve_file(file_path: str) -> FileResponse:
    full_path = file_service.resolve(file_path)
    return FileResponse(
        path=str(full_path),
        headers={"Cache-Control": "public, max-age=86400"},
    )
