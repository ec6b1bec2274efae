"""
Place Registry Backend — Pydantic Request/Response Schemas
============================================================

What:  Pydantic models defining the API contract for place records.
Why:   Strict input validation, automatic serialization, and OpenAPI doc generation.
How:   Request models accept both camelCase (what the directory front end
       sends) and snake_case keys; response models serialize snake_case.
Who:   Used by route handlers and by PlaceService when validating payloads.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from placeregistry.models.place import PlaceStatus, PlaceType


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════

class _InputModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class OpeningSlot(_InputModel):
    """One shift inside a day, e.g. 09:00-12:00 before a lunch break."""

    open_time: Optional[str] = None
    close_time: Optional[str] = None


class OpeningHoursInput(_InputModel):
    """
    Raw opening hours for one day, exactly as the form submits them.

    Three shapes are accepted: a single open/close pair, a list of slots for
    split days, or is_closed. Nothing is rejected here; malformed days and
    incomplete pairs are dropped by the schedule normalizer.
    """

    day_of_week: str = ""
    is_closed: bool = False
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    slots: Optional[List[OpeningSlot]] = None


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class _PlaceFields(_InputModel):
    """Descriptive fields shared by create and update payloads."""

    category: Optional[str] = None
    description: Optional[str] = None
    summary: Optional[str] = Field(default=None, max_length=280)

    street_number: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    website: Optional[str] = None

    facebook: Optional[str] = None
    instagram: Optional[str] = None
    twitter: Optional[str] = None
    linkedin: Optional[str] = None
    tiktok: Optional[str] = None

    google_place_id: Optional[str] = None
    google_maps_url: Optional[str] = None

    meta_title: Optional[str] = Field(default=None, max_length=60)
    meta_description: Optional[str] = Field(default=None, max_length=160)

    # ── Media & schedule ──────────────────────────────────────────────────
    logo: Optional[str] = None
    cover_image: Optional[str] = None
    images: Optional[List[str]] = None
    opening_hours: Optional[List[OpeningHoursInput]] = None

    @field_validator("email", "website", mode="before")
    @classmethod
    def empty_string_is_none(cls, v):
        """The form posts "" for cleared optional contact fields."""
        return _blank_to_none(v)

    @field_validator("website")
    @classmethod
    def validate_website(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.lower().startswith(("http://", "https://")):
            raise ValueError("Website must be an http(s) URL")
        return v

    @field_validator("images")
    @classmethod
    def drop_blank_images(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        return [url.strip() for url in v if url and url.strip()]


class PlaceCreate(_PlaceFields):
    """
    Payload for POST /api/places.

    for_claim is honoured for admin-equivalent actors only: the record is
    created ACTIVE with no owner so a business can claim it later.
    staged_upload_id names the staged asset area the form uploaded into
    before the record had a slug.
    """

    name: str = Field(min_length=1, max_length=255)
    place_type: PlaceType = Field(
        validation_alias=AliasChoices("place_type", "placeType", "type"),
    )
    street: str = Field(min_length=1, max_length=255)
    postal_code: str = Field(min_length=1, max_length=20)
    city: str = Field(min_length=1, max_length=120)

    for_claim: bool = Field(
        default=False,
        validation_alias=AliasChoices("for_claim", "forClaim", "createForClaim"),
    )
    staged_upload_id: Optional[str] = None


class PlaceUpdate(_PlaceFields):
    """
    Payload for PUT /api/places/{id}.

    Every field is optional; omitted fields keep their stored value.
    Required columns may be omitted but never cleared.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    place_type: Optional[PlaceType] = Field(
        default=None,
        validation_alias=AliasChoices("place_type", "placeType", "type"),
    )
    street: Optional[str] = Field(default=None, min_length=1, max_length=255)
    postal_code: Optional[str] = Field(default=None, min_length=1, max_length=20)
    city: Optional[str] = Field(default=None, min_length=1, max_length=120)

    @field_validator("name", "place_type", "street", "postal_code", "city", mode="before")
    @classmethod
    def required_columns_not_null(cls, v):
        if v is None:
            raise ValueError("This field cannot be cleared")
        return v


class StatusChangeRequest(_InputModel):
    """Payload for POST /api/places/{id}/status (moderation)."""

    status: PlaceStatus


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════

class ScheduleEntry(BaseModel):
    """One canonical weekly schedule row."""

    day_of_week: str
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    is_closed: bool = False

    model_config = ConfigDict(from_attributes=True, frozen=True)


class ScheduleDayLine(BaseModel):
    """Display line for one weekday, e.g. {"day": "TUESDAY", "label": "09:00 - 12:00 • 14:00 - 18:00"}."""

    day: str
    label: str


class PlaceResponse(BaseModel):
    """Full representation of a place record."""

    id: uuid.UUID
    slug: str
    status: str
    owner_id: Optional[str] = None

    name: str
    place_type: str
    category: Optional[str] = None
    description: Optional[str] = None
    summary: Optional[str] = None
    street: str
    street_number: Optional[str] = None
    postal_code: str
    city: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    facebook: Optional[str] = None
    instagram: Optional[str] = None
    twitter: Optional[str] = None
    linkedin: Optional[str] = None
    tiktok: Optional[str] = None
    google_place_id: Optional[str] = None
    google_maps_url: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None

    logo: Optional[str] = None
    cover_image: Optional[str] = None
    images: List[str] = Field(default_factory=list)

    opening_hours: List[ScheduleEntry] = Field(default_factory=list)
    weekly_schedule: List[ScheduleDayLine] = Field(default_factory=list)

    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlaceMutationResponse(BaseModel):
    """
    Result of a create/update/moderation.

    warnings lists best-effort side effects that failed (asset relocation,
    cleanup, notification); the record change itself succeeded.
    """

    place: PlaceResponse
    warnings: List[str] = Field(default_factory=list)


class PlaceListResponse(BaseModel):
    places: List[PlaceResponse]
    total: int
    page: int
    limit: int
    pages: int


class DeleteResponse(BaseModel):
    success: bool = True
    warnings: List[str] = Field(default_factory=list)


class UploadResponse(BaseModel):
    """
    Response of POST /api/uploads.

    staged_upload_id is set when the file went to a staged area; the client
    sends it back with the create payload.
    """

    url: str
    cloud_url: Optional[str] = None
    filename: str
    size: int
    staged_upload_id: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════

class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "Invalid place data: city",
            "details": {"fields": [{"field": "city", "message": "Field required"}]},
            "request_id": "1f3a9c2e"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    storage: str = Field(description="Storage root: writable, unavailable")
    uptime_seconds: float = Field(description="Seconds since service started")
