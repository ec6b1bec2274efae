"""
Place Registry Backend — Place SQLAlchemy Models
==================================================

What:  ORM models for the `places` table and its `place_opening_hours` child rows.
Why:   Maps place records and their weekly schedule to database rows.
Who:   Used by PlaceService for CRUD operations and by Alembic for schema management.

Table Design:
    places
        - UUID primary key, immutable
        - slug: unique index; allocated once at creation and never rewritten
        - status: DRAFT | PENDING | ACTIVE | INACTIVE | ARCHIVED
        - owner_id: NULL means "unclaimed" (admin-seeded, awaiting a claim)
        - images: ordered JSON list; the first entry is the primary image
        - raw_schedule_snapshot: last raw opening-hours input + gallery, kept
          apart from the canonical rows

    place_opening_hours
        - owned by exactly one place; deleted and re-inserted as a set on
          every schedule update, never patched row by row
        - closed day: one row, is_closed = true, both times NULL
        - open day: one row per shift, open_time < close_time (HH:MM)
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from placeregistry.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlaceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"


class PlaceType(str, enum.Enum):
    COMMERCE = "COMMERCE"
    SERVICE = "SERVICE"
    RESTAURANT = "RESTAURANT"
    ARTISAN = "ARTISAN"
    ADMINISTRATION = "ADMINISTRATION"
    MUSEUM = "MUSEUM"
    TOURISM = "TOURISM"
    PARK = "PARK"
    LEISURE = "LEISURE"
    ASSOCIATION = "ASSOCIATION"
    HEALTH = "HEALTH"
    EDUCATION = "EDUCATION"
    TRANSPORT = "TRANSPORT"
    ACCOMMODATION = "ACCOMMODATION"
    OTHER = "OTHER"


class DayOfWeek(str, enum.Enum):
    """Week order follows the display order of the directory (Monday first)."""

    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"


class Place(Base):
    """
    A single business, association or event listing.

    Lifecycle:
        1. Created PENDING with the creator as owner, or ACTIVE and unowned
           when an admin seeds it for a later claim
        2. Owner edits of an ACTIVE record send it back to PENDING
        3. Admin moderation moves it between the five statuses
        4. Deleted with its opening hours and asset directory
    """

    __tablename__ = "places"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PlaceStatus.PENDING.value
    )
    owner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    # ── Descriptive fields ────────────────────────────────────────────────
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    place_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=PlaceType.COMMERCE.value
    )
    category: Mapped[Optional[str]] = mapped_column(String(120))
    description: Mapped[Optional[str]] = mapped_column(Text)
    summary: Mapped[Optional[str]] = mapped_column(String(280))

    street: Mapped[str] = mapped_column(String(255), nullable=False)
    street_number: Mapped[Optional[str]] = mapped_column(String(20))
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)

    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(40))
    website: Mapped[Optional[str]] = mapped_column(String(500))

    facebook: Mapped[Optional[str]] = mapped_column(String(500))
    instagram: Mapped[Optional[str]] = mapped_column(String(500))
    twitter: Mapped[Optional[str]] = mapped_column(String(500))
    linkedin: Mapped[Optional[str]] = mapped_column(String(500))
    tiktok: Mapped[Optional[str]] = mapped_column(String(500))

    google_place_id: Mapped[Optional[str]] = mapped_column(String(255))
    google_maps_url: Mapped[Optional[str]] = mapped_column(String(500))

    meta_title: Mapped[Optional[str]] = mapped_column(String(60))
    meta_description: Mapped[Optional[str]] = mapped_column(String(160))

    # ── Media ─────────────────────────────────────────────────────────────
    logo: Mapped[Optional[str]] = mapped_column(String(500))
    cover_image: Mapped[Optional[str]] = mapped_column(String(500))
    images: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    raw_schedule_snapshot: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    opening_hours: Mapped[List["OpeningHours"]] = relationship(
        back_populates="place",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="OpeningHours.id",
    )

    __table_args__ = (
        Index("idx_places_status_updated", "status", "updated_at"),
    )

    def __repr__(self) -> str:
        return f"<Place(id={self.id}, slug='{self.slug}', status='{self.status}')>"


class OpeningHours(Base):
    """One canonical weekly schedule row (a day plus a shift, or a closure marker)."""

    __tablename__ = "place_opening_hours"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    place_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("places.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day_of_week: Mapped[str] = mapped_column(String(10), nullable=False)
    open_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    close_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    place: Mapped[Place] = relationship(back_populates="opening_hours")

    def __repr__(self) -> str:
        if self.is_closed:
            return f"<OpeningHours({self.day_of_week} closed)>"
        return f"<OpeningHours({self.day_of_week} {self.open_time}-{self.close_time})>"
