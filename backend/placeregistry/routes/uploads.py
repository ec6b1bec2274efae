"""
Place Registry Backend — Upload Route Handlers
================================================

What:  Accepts image uploads for place logos, covers and galleries, and
       serves stored images back.
Who:   Called by the place form's image pickers and by <img> tags.

Request Flow (POST /api/uploads):
    1. Client sends multipart/form-data with a 'file' field, plus either
       placeSlug (editing an existing place) or nothing / stagedUploadId
       (create form, before the place has a slug)
    2. FileService validates extension, size and magic bytes
    3. The file lands in places/<slug>/ or in a staged area places/temp-…/
    4. Return 201 with the public URL and the staged id to send back on create

Security Checks (this route):
    - Caller identity required; uploading into an existing place needs edit rights
    - File type and size: validated by FileService
    - Path traversal: FileService.resolve() rejects paths outside storage_root
"""

import logging
import mimetypes
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from placeregistry.auth import Actor, get_current_actor
from placeregistry.config import settings
from placeregistry.database import get_db_session
from placeregistry.exceptions import NotFoundError
from placeregistry.schemas.place import ErrorResponse, UploadResponse
from placeregistry.services.file_service import file_service
from placeregistry.services.place_service import place_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Uploads"])


@router.post(
    "/api/uploads",
    status_code=201,
    response_model=UploadResponse,
    responses={
        400: {"description": "Invalid file type or size", "model": ErrorResponse},
        401: {"description": "No caller identity", "model": ErrorResponse},
        403: {"description": "Caller may not edit this place", "model": ErrorResponse},
        500: {"description": "Storage failure", "model": ErrorResponse},
    },
    summary="Upload a place image",
    description="Upload a PNG, JPG or WEBP image (max 10MB) for a place logo, cover or gallery.",
)
async def upload_image(
    file: UploadFile = File(..., description="Image file (PNG, JPG, JPEG or WEBP)"),
    place_slug: Optional[str] = Form(default=None, alias="placeSlug"),
    staged_upload_id: Optional[str] = Form(default=None, alias="stagedUploadId"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db_session),
) -> UploadResponse:
    try:
        content = await file.read()
        logger.info(
            "Received upload: filename=%s size=%d place=%s staged=%s actor=%s",
            file.filename or "unknown", len(content), place_slug, staged_upload_id, actor.actor_id,
        )
        if place_slug:
            await place_service.ensure_can_upload(db, actor, place_slug)

        stored, staged_id = await file_service.store_upload(
            filename=file.filename or "upload.jpg",
            content=content,
            content_length=file.size,
            place_slug=place_slug,
            staged_id=staged_upload_id,
        )
    finally:
        await file.close()

    return UploadResponse(
        url=stored.url,
        cloud_url=stored.cloud_url,
        filename=stored.filename,
        size=stored.size,
        staged_upload_id=staged_id,
    )


@router.get(
    f"{settings.uploads_url_prefix.rstrip('/')}/{{file_path:path}}",
    summary="Serve a stored image",
    responses={
        200: {"description": "Image file"},
        404: {"description": "File not found", "model": ErrorResponse},
    },
)
async def serve_file(file_path: str) -> FileResponse:
    """
    Serve an image from storage_root.

    resolve() rejects paths escaping the root (400); anything that is not
    a regular file is a 404.
    """
    full_path = file_service.resolve(file_path)
    if not full_path.is_file():
        raise NotFoundError(resource="file", resource_id=file_path)

    media_type = mimetypes.guess_type(full_path.name)[0] or "application/octet-stream"
    return FileResponse(
        path=str(full_path),
        media_type=media_type,
        headers={"Cache-Control": "public, max-age=86400"},
    )
