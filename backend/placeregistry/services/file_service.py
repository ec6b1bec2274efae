"""
Place Registry Backend — File Storage Service
===============================================

What:  Local file store for place media: upload validation, save, move,
       list and delete, plus the mapping between stored paths and public URLs.
Why:   Centralizes all file system operations behind one path-checked API.
How:   Async file I/O with aiofiles; every relative path is resolved inside
       storage_root and rejected if it escapes it.
Who:   Called by the upload route and by the asset reconciler.

Directory Structure:
    storage/
    └── places/
        ├── cafe-de-la-place/            permanent area of a record
        │   ├── 3f0c...e1.jpg
        │   └── 9a1b...07.png
        └── temp-5e2a9c0d41f7/           staged area: files uploaded while
            └── 77d4...c2.jpg            the create form was still open

URL mapping:
    places/cafe-de-la-place/3f0c.jpg  ⇄  /uploads/places/cafe-de-la-place/3f0c.jpg
"""

import asyncio
import logging
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles
import aiofiles.os

from placeregistry.config import settings
from placeregistry.exceptions import StorageFault, ValidationError

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
ALLOWED_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
}

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}

_AREA_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")
_STAGED_TOKEN_RE = re.compile(r"^[0-9a-f]{12}$")


@dataclass(frozen=True)
class StoredFile:
    """Where a saved file ended up. cloud_url stays None for the local store."""

    url: str
    relative_path: str
    filename: str
    size: int
    cloud_url: Optional[str] = None


class FileService:
    """
    Path-checked local file store.

    All public methods take paths relative to storage_root using "/" as
    separator. Failures of the underlying file system are raised as
    StorageFault with the OS error in the context.
    """

    def __init__(self, storage_root: Optional[str] = None):
        """
        Args:
            storage_root: Override the default storage path (used in tests).
                          If None, uses settings.storage_root.
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    # ── Paths & URLs ──────────────────────────────────────────────────────

    def resolve(self, relative_path: str) -> Path:
        """Absolute path for a relative one; ValidationError if it escapes storage_root."""
        candidate = (self.storage_root / relative_path.lstrip("/")).resolve()
        if candidate != self.storage_root and self.storage_root not in candidate.parents:
            raise ValidationError(
                message="Invalid file path",
                field="path",
                context={"path": relative_path},
            )
        return candidate

    def url_for(self, relative_path: str) -> str:
        return f"{settings.uploads_url_prefix.rstrip('/')}/{relative_path.lstrip('/')}"

    def relative_path_from_url(self, url: Optional[str]) -> Optional[str]:
        """
        Inverse of url_for(). Returns None for URLs this store did not issue
        (external images, Google photos, blanks).
        """
        if not url:
            return None
        prefix = settings.uploads_url_prefix.rstrip("/") + "/"
        if not url.startswith(prefix):
            return None
        return url[len(prefix):]

    def place_area(self, slug: str) -> str:
        """Relative directory holding a record's permanent assets."""
        return f"{settings.places_dir}/{slug}"

    def is_staged_area(self, name: str) -> bool:
        """Staged areas are named <prefix><12 hex chars>, exactly as new_staged_id() mints them."""
        prefix = settings.staged_area_prefix
        return name.startswith(prefix) and bool(_STAGED_TOKEN_RE.match(name[len(prefix):]))

    def new_staged_id(self) -> str:
        return f"{settings.staged_area_prefix}{uuid.uuid4().hex[:12]}"

    # ── Upload Validation ─────────────────────────────────────────────────

    def validate_extension(self, filename: str) -> str:
        """
        Validate file extension (first line of defense).

        Returns: Normalized extension (lowercase with dot).
        Raises:  ValidationError if extension is not allowed.
        """
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="file",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """
        Validate file size against configured maximum.

        Checks the Content-Length header first, then the actual byte count
        (some clients send a wrong header).
        """
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
        Validate actual MIME type by inspecting file content bytes.

        python-magic reads the file signature (e.g. JPEG starts with FF D8 FF),
        so a renamed file is caught even when its extension is allowed.

        Returns:
            Detected MIME type string (e.g., "image/jpeg")
        """
        import magic

        try:
            mime_type = magic.from_buffer(file_content, mime=True)
        except Exception as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise StorageFault(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=(
                    f"File content type '{mime_type}' is not supported. "
                    f"The file must be a valid image (PNG, JPEG or WebP)."
                ),
                field="file",
                context={"detected_mime": mime_type, "allowed": list(ALLOWED_MIME_TYPES)},
            )
        return mime_type

    # ── Primitives ────────────────────────────────────────────────────────

    async def save(
        self,
        content: bytes,
        relative_path: str,
        mime_type: str = "image/jpeg",
    ) -> StoredFile:
        """Write bytes at relative_path, creating parent directories."""
        absolute_path = self.resolve(relative_path)
        try:
            await aiofiles.os.makedirs(absolute_path.parent, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise StorageFault(
                message="Failed to save uploaded image. Please try again.",
                context={"path": relative_path, "os_error": str(e)},
            )

        logger.info("File stored: %s (%d bytes, %s)", relative_path, len(content), mime_type)
        return StoredFile(
            url=self.url_for(relative_path),
            relative_path=relative_path,
            filename=absolute_path.name,
            size=len(content),
        )

    async def exists(self, relative_path: str) -> bool:
        return await aiofiles.os.path.exists(self.resolve(relative_path))

    async def delete(self, relative_path: str) -> None:
        """Remove one file. A file that is already gone is not an error."""
        path = self.resolve(relative_path)
        try:
            await aiofiles.os.remove(path)
            logger.info("Deleted file: %s", relative_path)
        except FileNotFoundError:
            logger.debug("Delete: file already gone: %s", relative_path)
        except OSError as e:
            raise StorageFault(
                message="Failed to delete file",
                context={"path": relative_path, "os_error": str(e)},
            )

    async def move(self, source: str, destination: str) -> None:
        """Move one file, creating the destination directory if needed."""
        src = self.resolve(source)
        dst = self.resolve(destination)
        try:
            await aiofiles.os.makedirs(dst.parent, exist_ok=True)
            await aiofiles.os.rename(src, dst)
        except OSError as e:
            raise StorageFault(
                message="Failed to move file",
                context={"source": source, "destination": destination, "os_error": str(e)},
            )

    async def list(self, directory: str) -> List[str]:
        """Names of the regular files directly inside directory (empty if it does not exist)."""
        return await self._list_entries(directory, want_dirs=False)

    async def list_directories(self, directory: str) -> List[str]:
        """Names of the sub-directories directly inside directory."""
        return await self._list_entries(directory, want_dirs=True)

    async def _list_entries(self, directory: str, want_dirs: bool) -> List[str]:
        path = self.resolve(directory)
        if not await aiofiles.os.path.isdir(path):
            return []
        try:
            names = await aiofiles.os.listdir(path)
        except OSError as e:
            raise StorageFault(
                message="Failed to list directory",
                context={"directory": directory, "os_error": str(e)},
            )
        selected = []
        for name in sorted(names):
            is_dir = await aiofiles.os.path.isdir(path / name)
            if is_dir == want_dirs:
                selected.append(name)
        return selected

    async def remove_directory(self, directory: str) -> bool:
        """
        Remove a directory and everything below it.

        Returns False when there was nothing to remove. The storage root
        itself is never removed.
        """
        path = self.resolve(directory)
        if path == self.storage_root:
            raise ValidationError(message="Refusing to remove the storage root", field="path")
        if not await aiofiles.os.path.isdir(path):
            return False
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError as e:
            raise StorageFault(
                message="Failed to remove directory",
                context={"directory": directory, "os_error": str(e)},
            )
        logger.info("Removed directory: %s", directory)
        return True

    # ── Upload Pipeline ───────────────────────────────────────────────────

    def _upload_area(self, place_slug: Optional[str], staged_id: Optional[str]) -> Tuple[str, Optional[str]]:
        if place_slug:
            if not _AREA_NAME_RE.match(place_slug) or self.is_staged_area(place_slug):
                raise ValidationError(message="Invalid place slug", field="place_slug")
            return self.place_area(place_slug), None
        if staged_id:
            if not self.is_staged_area(staged_id):
                raise ValidationError(message="Invalid staged upload id", field="staged_upload_id")
        else:
            staged_id = self.new_staged_id()
        return self.place_area(staged_id), staged_id

    async def store_upload(
        self,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
        place_slug: Optional[str] = None,
        staged_id: Optional[str] = None,
    ) -> Tuple[StoredFile, Optional[str]]:
        """
        Complete upload pipeline: validate, then store under the right area.

        Validation order (cheapest first):
            1. Extension check
            2. Size check
            3. MIME type check (magic bytes)

        Files for an existing record go to its permanent area. Files uploaded
        from the create form go to a staged area; a new staged id is minted
        when the client does not send one yet.

        Returns:
            (StoredFile, staged_id or None)
        """
        ext = self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        mime_type = self.validate_mime_type(content)
        if ext == ".jpeg":
            ext = ".jpg"

        area, staged_id = self._upload_area(place_slug, staged_id)
        relative_path = f"{area}/{uuid.uuid4().hex}{ext}"
        stored = await self.save(content, relative_path, mime_type)
        return stored, staged_id


# ── Singleton Instance ────────────────────────────────────────────────────
file_service = FileService()
