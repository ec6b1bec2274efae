"""
Place Registry Backend — Place Route Handlers
===============================================

What:  CRUD and moderation endpoints for place records.
How:   Resolves the caller from the gateway headers, delegates to
       PlaceService, serializes with to_response().
Who:   Called by the directory front end (public pages, owner dashboard,
       admin moderation screens).

Endpoints:
    POST   /api/places                  create (authenticated)
    GET    /api/places                  list, filtered by caller visibility
    GET    /api/places/slug/{slug}      detail by slug
    GET    /api/places/{id}             detail by id
    PUT    /api/places/{id}             partial update (owner or admin)
    DELETE /api/places/{id}             delete (owner or admin)
    POST   /api/places/{id}/status      moderation (admin)

Caching:
    Place data changes on every edit and visibility depends on the caller,
    so detail and list responses are private and revalidated.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from placeregistry.auth import Actor, get_current_actor, get_optional_actor
from placeregistry.database import get_db_session
from placeregistry.models.place import PlaceStatus, PlaceType
from placeregistry.schemas.place import (
    DeleteResponse,
    ErrorResponse,
    PlaceCreate,
    PlaceListResponse,
    PlaceMutationResponse,
    PlaceResponse,
    PlaceUpdate,
    StatusChangeRequest,
)
from placeregistry.services.place_service import place_service, to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Places"])

_PRIVATE_CACHE = "private, no-cache"

_ERRORS = {
    400: {"description": "Invalid place data", "model": ErrorResponse},
    401: {"description": "No caller identity", "model": ErrorResponse},
    403: {"description": "Caller may not perform this action", "model": ErrorResponse},
    404: {"description": "Place not found", "model": ErrorResponse},
}


@router.post(
    "/places",
    status_code=201,
    response_model=PlaceMutationResponse,
    responses={**_ERRORS, 409: {"description": "Concurrent slug allocation; retry", "model": ErrorResponse}},
    summary="Create a place",
    description=(
        "Creates a place owned by the caller and queues it for review. Admins may "
        "set forClaim to publish an unowned place that a business claims later. "
        "Images uploaded before creation (staged area) are moved under the new slug."
    ),
)
async def create_place(
    payload: PlaceCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db_session),
) -> PlaceMutationResponse:
    result = await place_service.create_place(db=db, actor=actor, payload=payload)
    return PlaceMutationResponse(place=to_response(result.place), warnings=result.warnings)


@router.get(
    "/places",
    response_model=PlaceListResponse,
    summary="List places",
    description=(
        "Anonymous callers see ACTIVE places. Signed-in callers also see their own "
        "places in any status; admins see everything and may filter by status."
    ),
)
async def list_places(
    response: Response,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: Optional[PlaceStatus] = Query(default=None),
    place_type: Optional[PlaceType] = Query(default=None, alias="type"),
    search: Optional[str] = Query(default=None, max_length=100),
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db_session),
) -> PlaceListResponse:
    places, total, pages = await place_service.list_places(
        db=db,
        actor=actor,
        page=page,
        limit=limit,
        status=status.value if status else None,
        place_type=place_type.value if place_type else None,
        search=search,
    )
    response.headers["X-Total-Count"] = str(total)
    response.headers["Cache-Control"] = _PRIVATE_CACHE
    return PlaceListResponse(
        places=[to_response(place) for place in places],
        total=total,
        page=page,
        limit=limit,
        pages=pages,
    )


@router.get(
    "/places/slug/{slug}",
    response_model=PlaceResponse,
    responses=_ERRORS,
    summary="Get a place by slug",
)
async def get_place_by_slug(
    slug: str,
    response: Response,
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db_session),
) -> PlaceResponse:
    place = await place_service.get_place_by_slug(db=db, actor=actor, slug=slug)
    response.headers["Cache-Control"] = _PRIVATE_CACHE
    return to_response(place)


@router.get(
    "/places/{place_id}",
    response_model=PlaceResponse,
    responses=_ERRORS,
    summary="Get a place by id",
)
async def get_place(
    place_id: str,
    response: Response,
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db_session),
) -> PlaceResponse:
    place = await place_service.get_place(db=db, actor=actor, place_id=place_id)
    response.headers["Cache-Control"] = _PRIVATE_CACHE
    return to_response(place)


@router.put(
    "/places/{place_id}",
    response_model=PlaceMutationResponse,
    responses=_ERRORS,
    summary="Update a place",
    description=(
        "Fields left out keep their value. Opening hours, when sent, replace the "
        "whole schedule. An owner's edit of an ACTIVE place sends it back to review."
    ),
)
async def update_place(
    place_id: str,
    payload: PlaceUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db_session),
) -> PlaceMutationResponse:
    result = await place_service.update_place(db=db, actor=actor, place_id=place_id, payload=payload)
    return PlaceMutationResponse(place=to_response(result.place), warnings=result.warnings)


@router.delete(
    "/places/{place_id}",
    response_model=DeleteResponse,
    responses=_ERRORS,
    summary="Delete a place",
)
async def delete_place(
    place_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db_session),
) -> DeleteResponse:
    result = await place_service.delete_place(db=db, actor=actor, place_id=place_id)
    return DeleteResponse(success=True, warnings=result.warnings)


@router.post(
    "/places/{place_id}/status",
    response_model=PlaceMutationResponse,
    responses=_ERRORS,
    summary="Change a place's status (moderation)",
)
async def moderate_place(
    place_id: str,
    payload: StatusChangeRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db_session),
) -> PlaceMutationResponse:
    result = await place_service.moderate_place(db=db, actor=actor, place_id=place_id, payload=payload)
    return PlaceMutationResponse(place=to_response(result.place), warnings=result.warnings)
