"""
OurBookmark Backend: Image Storage Service
===========================================

What:  Validates and stores uploaded images (profile avatars, book covers)
       and resolves stored paths for the /api/files route.
How:   Extension check → size check → magic-byte MIME check → write with
       aiofiles under a deterministic key such as `avatars/<user-id>.png`.
Who:   ReadingRoomService (avatars) and CatalogService (admin covers).

Storage Layout:
    storage/
    ├── avatars/<user-id>.<ext>     one per profile, overwritten on upload
    ├── covers/<book-id>.<ext>      one per book, overwritten on upload
    └── devices/<device-id>.json    DeviceStore documents (not served)

Because keys are stable, a re-upload replaces the old file in place. Public
URLs carry a `?t=<millis>` cache-buster so browsers fetch the new image.
"""

import logging
import os
import time
from pathlib import Path
from typing import Optional

import aiofiles

from ourbookmark.config import settings
from ourbookmark.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
ALLOWED_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif"}

# Folders that may be served publicly by /api/files
PUBLIC_FOLDERS = {"avatars", "covers"}


class FileService:
    """
    Manages image validation, keyed storage and lookup.

    Lifecycle of an upload:
        1. Route reads the UploadFile into memory
        2. validate_extension / validate_size / validate_mime_type
        3. Any older file under the same key with another extension is removed
        4. Content is written to <folder>/<key><ext>
        5. The relative path is returned; public_url() turns it into a URL
    """

    def __init__(self, storage_root: Optional[str] = None):
        """
        Args:
            storage_root: Override the default storage path (used in tests).
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)

    def validate_extension(self, filename: str) -> str:
        """Return the normalized extension, or raise ValidationError."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="file",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ".jpg" if ext == ".jpeg" else ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """Reject empty files and files over MAX_FILE_SIZE."""
        max_mb = settings.max_file_size / (1024 * 1024)

        if actual_size == 0:
            raise ValidationError(message="The uploaded file is empty.", field="file")

        if content_length and content_length > settings.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB. Please upload a smaller image.",
                field="file",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )

        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"File size ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_mime_type(self, file_content: bytes) -> str:
        """
        Detect the real content type from magic bytes with python-magic.

        Raises:
            ValidationError: content is not an allowed image type
            FileStorageError: libmagic is unavailable or failed
        """
        try:
            import magic
            mime_type = magic.from_buffer(file_content, mime=True)
        except Exception as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=(
                    f"File content type '{mime_type}' is not supported. "
                    f"The file must be a PNG, JPEG, WebP or GIF image."
                ),
                field="file",
                context={"detected_mime": mime_type, "allowed": list(ALLOWED_MIME_TYPES)},
            )

        return mime_type

    async def _remove_siblings(self, folder: Path, key: str, keep: str) -> None:
        for ext in ALLOWED_MIME_TYPES.values():
            if ext == keep:
                continue
            stale = folder / f"{key}{ext}"
            if stale.exists():
                await self.cleanup_file(str(stale))

    async def store_image(
        self,
        folder: str,
        key: str,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> str:
        """
        Validate and write an image under `<folder>/<key><ext>`.

        Returns:
            The path relative to the storage root, e.g. "avatars/3f2c...9a.png".
        """
        if folder not in PUBLIC_FOLDERS:
            raise ValidationError(message=f"Unknown storage folder '{folder}'", field="folder")

        ext = self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        self.validate_mime_type(content)

        target_dir = self.storage_root / folder
        relative_path = f"{folder}/{key}{ext}"
        absolute_path = self.storage_root / relative_path

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            await self._remove_siblings(target_dir, key, keep=ext)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store image at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save the uploaded image. Please try again.",
                context={"path": relative_path, "os_error": str(e)},
            )

        logger.info("Image stored: %s (%d bytes)", relative_path, len(content))
        return relative_path

    def public_url(self, relative_path: str, cache_bust: bool = True) -> str:
        url = f"{settings.public_files_prefix}/{relative_path}"
        if cache_bust:
            url = f"{url}?t={int(time.time() * 1000)}"
        return url

    def resolve(self, relative_path: str) -> Path:
        """
        Map a requested path to a stored public file.

        Raises:
            ValidationError: the path escapes the storage root or a public folder
            NotFoundError: nothing is stored there
        """
        full_path = (self.storage_root / relative_path).resolve()
        try:
            inside = full_path.relative_to(self.storage_root)
        except ValueError:
            raise ValidationError(message="Invalid file path", field="path")

        if not inside.parts or inside.parts[0] not in PUBLIC_FOLDERS:
            raise ValidationError(message="Invalid file path", field="path")

        if not full_path.is_file():
            raise NotFoundError(resource="file", resource_id=relative_path)
        return full_path

    async def cleanup_file(self, file_path: str) -> None:
        """Best-effort delete; a failure is logged and not raised."""
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.info("Removed file: %s", path.name)
        except OSError as e:
            logger.warning("Failed to remove file %s: %s", file_path, str(e))


file_service = FileService()
