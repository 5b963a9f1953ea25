"""
RecipeShare Backend: Image Storage Service
===========================================

What:  Validates, stores and removes recipe images.
How:   Checks extension, declared content type, size and the actual bytes
       (libmagic), then writes them under a UUID filename in the storage root.
Who:   RecipeService (create/update/delete), the /uploads route.

Security Model:
    1. Extension check:     only common web image formats are accepted
    2. Content type check:  the part's declared type must be image/*
    3. Size check:          bounded by settings.max_file_size
    4. MIME sniffing:       python-magic reads the file header, so a renamed
                            text file is rejected whatever it claims to be
    5. UUID filename:       no client text ever reaches the file system path

Stored images are referenced from recipe documents by their public path
(`/uploads/<uuid>.<ext>`); `resolve_public_path` maps it back to disk.
"""

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import aiofiles
import magic

from recipe_api.config import settings
from recipe_api.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
ALLOWED_MIME_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}


@dataclass
class ImageUpload:
    """An image part read from a multipart request."""

    filename: str
    content: bytes
    content_type: str = ""


class FileService:
    """
    Manages the image upload lifecycle.

        1. validate_extension / validate_content_type / validate_size /
           validate_mime_type
        2. store_file writes <storage_root>/<uuid><ext>
        3. the public path /uploads/<uuid><ext> is saved on the recipe
        4. cleanup_file removes it again when the recipe write fails,
           the image is replaced, or the recipe is deleted
    """

    def __init__(self, storage_root: Optional[str] = None, url_prefix: Optional[str] = None):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.url_prefix = (url_prefix or settings.uploads_url_prefix).rstrip("/")
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    def validate_extension(self, filename: str) -> str:
        """Returns the normalized extension (lowercase with dot)."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message="Only image files are allowed!",
                errors=[
                    f"image: file type '{ext or filename}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ],
                field="image",
                context={"extension": ext},
            )
        return ext

    def validate_content_type(self, content_type: Optional[str]) -> None:
        if not content_type or not content_type.lower().startswith("image/"):
            raise ValidationError(
                message="Only image files are allowed!",
                errors=[f"image: content type '{content_type}' is not an image"],
                field="image",
                context={"content_type": content_type},
            )

    def validate_size(self, actual_size: int) -> None:
        max_mb = settings.max_file_size / (1024 * 1024)
        if actual_size == 0:
            raise ValidationError(
                message="Uploaded image is empty",
                errors=["image: file is empty"],
                field="image",
            )
        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB",
                errors=[f"image: {actual_size / (1024 * 1024):.1f}MB is larger than {max_mb:.0f}MB"],
                field="image",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_mime_type(self, content: bytes) -> str:
        """
        Detect the real type from the file header bytes.

        Returns the detected MIME type.
        Raises:
            ValidationError:   the bytes are not a supported image
            FileStorageError:  libmagic could not inspect the content
        """
        try:
            mime_type = magic.from_buffer(content, mime=True)
        except Exception as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message="Only image files are allowed!",
                errors=[f"image: file content is '{mime_type}', not a supported image"],
                field="image",
                context={"detected_mime": mime_type},
            )
        return mime_type

    def public_path(self, filename: str) -> str:
        return f"{self.url_prefix}/{filename}"

    def resolve_public_path(self, public_path: str) -> Optional[Path]:
        """
        Map `/uploads/<name>` back to a file under the storage root.

        Returns None for external URLs and for paths escaping the root.
        """
        prefix = self.url_prefix + "/"
        if not public_path or not public_path.startswith(prefix):
            return None
        candidate = (self.storage_root / public_path[len(prefix):]).resolve()
        if self.storage_root not in candidate.parents:
            return None
        return candidate

    async def store_file(self, content: bytes, extension: str) -> Tuple[str, str]:
        """
        Write validated bytes to disk.

        Returns: (absolute_path, public_path)
        Raises:  FileStorageError if the write fails.
        """
        filename = f"{uuid.uuid4()}{extension}"
        absolute_path = self.storage_root / filename
        try:
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": str(absolute_path), "os_error": str(e)},
            )
        logger.info("File stored: %s (%d bytes)", filename, len(content))
        return str(absolute_path), self.public_path(filename)

    async def cleanup_file(self, file_path: str) -> None:
        """
        Best-effort delete. A missing file is fine; other failures are logged
        and swallowed since no request should fail over a leftover image.
        """
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
            else:
                logger.debug("Cleanup: file already gone: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))

    async def cleanup_public_path(self, public_path: str) -> None:
        """Delete the stored file behind a recipe's `image` value, if it is ours."""
        path = self.resolve_public_path(public_path)
        if path is not None:
            await self.cleanup_file(str(path))

    async def validate_and_store(self, upload: ImageUpload) -> Tuple[str, str]:
        """
        Full pipeline, cheapest checks first.

        Returns: (absolute_path, public_path)
        """
        ext = self.validate_extension(upload.filename)
        self.validate_content_type(upload.content_type)
        self.validate_size(len(upload.content))
        self.validate_mime_type(upload.content)
        return await self.store_file(upload.content, ext)


file_service = FileService()
