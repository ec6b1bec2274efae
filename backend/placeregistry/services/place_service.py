"""
Place Registry Backend — Place Service (Lifecycle Orchestrator)
=================================================================

What:  Creates, reads, lists, updates, deletes and moderates place records.
Why:   Keeps every rule about who may do what, and in which order the
       helpers run, in one place that does not know about HTTP.
How:   Composes SlugAllocator, the schedule normalizer, AssetReconciler and
       Notifier around one AsyncSession per call. Commit/rollback belongs to
       get_db_session(); this layer only flushes.
Who:   Called by the place route handlers.

Create:
    ┌───────────┐   ┌──────────┐   ┌───────────┐   ┌─────────┐   ┌──────────┐
    │ Validate  │──▶│ Allocate │──▶│ Reconcile │──▶│ Insert  │──▶│ Relocate │──▶ notify
    │ & check   │   │  slug    │   │ assets +  │   │ record  │   │ staged   │   (best effort)
    │ for_claim │   │          │   │ schedule  │   │ + rows  │   │ files    │
    └───────────┘   └──────────┘   └───────────┘   └─────────┘   └──────────┘

    The record is flushed before any file moves, so a slug collision
    (ConflictError) leaves the staged uploads untouched for the retry.

Status rules:
    create            PENDING, owned by the creator
    create for claim  ACTIVE, no owner (admin-equivalent actors only)
    owner edit        ACTIVE → PENDING; other statuses unchanged
    admin edit        status unchanged
    moderate          any status, admin-equivalent actors only

Failure policy:
    Validation, authorization, not-found and conflicts abort before or
    during the record change. Relocation, image cleanup, directory removal
    and notifications are best effort: logged and reported as warnings.
"""

import enum
import logging
import math
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from placeregistry.auth import Actor
from placeregistry.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PlaceRegistryError,
    UnknownFault,
    ValidationError,
    fields_from_errors,
)
from placeregistry.models.place import OpeningHours, Place, PlaceStatus
from placeregistry.schemas.place import (
    PlaceCreate,
    PlaceResponse,
    PlaceUpdate,
    StatusChangeRequest,
)
from placeregistry.services.asset_service import (
    AssetReconciler,
    RelocationReport,
    ResolvedAssets,
    asset_reconciler,
    reconcile_assets,
)
from placeregistry.services.notification_service import Notifier, notifier
from placeregistry.services.schedule_service import (
    format_weekly_schedule,
    normalize_schedule,
    raw_schedule_payload,
)
from placeregistry.services.side_effects import attempt
from placeregistry.services.slug_service import SlugAllocator, slug_allocator

logger = logging.getLogger(__name__)


REQUIRED_FIELDS = ("name", "place_type", "street", "postal_code", "city")

DESCRIPTIVE_FIELDS = REQUIRED_FIELDS + (
    "category",
    "description",
    "summary",
    "street_number",
    "latitude",
    "longitude",
    "email",
    "phone",
    "website",
    "facebook",
    "instagram",
    "twitter",
    "linkedin",
    "tiktok",
    "google_place_id",
    "google_maps_url",
    "meta_title",
    "meta_description",
)

ASSET_FIELDS = ("logo", "cover_image", "images")

MAX_PAGE_SIZE = 100


@dataclass
class PlaceMutationResult:
    """A changed (or deleted) place plus the best-effort steps that failed."""

    place: Place
    warnings: List[str] = field(default_factory=list)


def _coerce(model: type, payload: Any) -> Any:
    """Validate a raw mapping into model; already-built models pass through."""
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        fields = fields_from_errors(e.errors())
        names = ", ".join(dict.fromkeys(f["field"] for f in fields))
        raise ValidationError(message=f"Invalid place data: {names}", fields=fields)


def _column_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    return value


def _parse_id(place_id: Any) -> Optional[uuid.UUID]:
    if isinstance(place_id, uuid.UUID):
        return place_id
    try:
        return uuid.UUID(str(place_id))
    except ValueError:
        return None


@contextmanager
def _unknown_faults(operation: str, **context: Any):
    """Pass application errors through; wrap anything else in UnknownFault."""
    try:
        yield
    except PlaceRegistryError:
        raise
    except Exception as e:
        logger.error("Unexpected error in %s: %s", operation, e, exc_info=True)
        raise UnknownFault(
            context={"operation": operation, "original_error": type(e).__name__, **context},
        ) from e


def to_response(place: Place) -> PlaceResponse:
    """Serialize a place with its canonical rows and the seven display lines."""
    response = PlaceResponse.model_validate(place)
    return response.model_copy(
        update={"weekly_schedule": format_weekly_schedule(place.opening_hours)}
    )


class PlaceService:
    """
    Business logic layer for place records.

    Stateless apart from its collaborators; every call receives the session
    it works in. Tests pass their own reconciler/notifier.
    """

    def __init__(
        self,
        assets: Optional[AssetReconciler] = None,
        notifications: Optional[Notifier] = None,
        slugs: Optional[SlugAllocator] = None,
    ):
        self.assets = assets or asset_reconciler
        self.notifications = notifications or notifier
        self.slugs = slugs or slug_allocator

    # ── Lookups ───────────────────────────────────────────────────────────

    async def _slug_exists(self, db: AsyncSession, slug: str) -> bool:
        result = await db.execute(select(Place.id).where(Place.slug == slug))
        return result.scalar_one_or_none() is not None

    async def _load(self, db: AsyncSession, place_id: Any) -> Place:
        parsed = _parse_id(place_id)
        if parsed is None:
            raise NotFoundError(resource="Place", resource_id=str(place_id))
        result = await db.execute(select(Place).where(Place.id == parsed))
        place = result.scalar_one_or_none()
        if place is None:
            raise NotFoundError(resource="Place", resource_id=str(place_id))
        return place

    @staticmethod
    def _ensure_can_view(place: Place, actor: Optional[Actor]) -> None:
        if place.status == PlaceStatus.ACTIVE.value:
            return
        if actor is not None and (actor.is_admin or actor.owns(place)):
            return
        raise AuthorizationError(action="view")

    @staticmethod
    def _ensure_can_edit(place: Place, actor: Actor, action: str) -> None:
        if not (actor.is_admin or actor.owns(place)):
            raise AuthorizationError(action=action)

    # ── Writes ────────────────────────────────────────────────────────────

    async def _flush_new(self, db: AsyncSession, slug: str) -> None:
        try:
            await db.flush()
        except IntegrityError as e:
            logger.warning("Slug %s was taken concurrently: %s", slug, e.orig)
            raise ConflictError(context={"slug": slug}) from e

    async def _replace_schedule(self, db: AsyncSession, place: Place, raw_entries) -> None:
        """Delete every stored row of the place, then insert the new set."""
        rows = normalize_schedule(raw_entries)
        place.opening_hours.clear()
        await db.flush()
        place.opening_hours.extend(OpeningHours(**row.model_dump()) for row in rows)

    async def _relocate(
        self,
        slug: str,
        assets: ResolvedAssets,
        staged_id: Optional[str],
        warnings: List[str],
    ) -> RelocationReport:
        staged_ids = [staged_id] if staged_id else []
        try:
            report = await self.assets.relocate_staged(slug, assets.urls(), staged_ids)
        except Exception as e:
            logger.warning("Staged asset relocation for %s failed: %s", slug, e, exc_info=True)
            warnings.append("relocate staged assets failed")
            return RelocationReport()
        if not report.complete:
            warnings.append(f"relocate staged assets failed for {len(report.failed)} file(s)")
        return report

    @staticmethod
    def _snapshot(raw_entries, images: List[str], previous: Optional[dict] = None) -> Optional[dict]:
        """
        Raw input kept next to the canonical rows.

        A schedule left out of an update keeps the snapshot's previous
        opening_hours.
        """
        previous = previous or {}
        opening_hours = (
            raw_schedule_payload(raw_entries)
            if raw_entries is not None
            else previous.get("opening_hours", [])
        )
        if not opening_hours and not images:
            return previous or None
        return {"opening_hours": opening_hours, "images": list(images)}

    async def create_place(
        self,
        db: AsyncSession,
        actor: Actor,
        payload: Any,
    ) -> PlaceMutationResult:
        """
        Create a place record.

        Args:
            db: Async database session
            actor: Authenticated caller
            payload: PlaceCreate or its raw mapping (camelCase or snake_case)

        Raises:
            ValidationError: Payload invalid (all offending fields listed)
            AuthorizationError: for_claim requested by a non-admin
            ConflictError: Slug taken by a concurrent create; retryable
            UnknownFault: Database failure
        """
        data: PlaceCreate = _coerce(PlaceCreate, payload)
        if data.for_claim and not actor.is_admin:
            raise AuthorizationError(
                action="create_for_claim",
                message="Only administrators can create places for claim",
            )

        warnings: List[str] = []
        with _unknown_faults("create_place", name=data.name):
            slug = await self.slugs.allocate(
                data.name, lambda candidate: self._slug_exists(db, candidate)
            )
            assets = reconcile_assets(data.logo, data.cover_image, data.images)
            rows = normalize_schedule(data.opening_hours)

            if data.for_claim:
                status, owner_id = PlaceStatus.ACTIVE, None
            else:
                status, owner_id = PlaceStatus.PENDING, actor.actor_id

            place = Place(
                slug=slug,
                status=status.value,
                owner_id=owner_id,
                logo=assets.logo,
                cover_image=assets.cover_image,
                images=list(assets.images),
                opening_hours=[OpeningHours(**row.model_dump()) for row in rows],
                **{name: _column_value(getattr(data, name)) for name in DESCRIPTIVE_FIELDS},
            )
            db.add(place)
            await self._flush_new(db, slug)

            report = await self._relocate(slug, assets, data.staged_upload_id, warnings)
            if report.moved:
                place.logo = report.rewrite(place.logo)
                place.cover_image = report.rewrite(place.cover_image)
                place.images = report.rewrite_all(place.images)
            place.raw_schedule_snapshot = self._snapshot(data.opening_hours, place.images)
            await db.flush()

        logger.info(
            "Place created: %s (%s) status=%s owner=%s rows=%d",
            place.slug, place.id, place.status, place.owner_id, len(rows),
        )
        await attempt(
            "notify admins of new place",
            self.notifications.notify_new_place(place, actor.actor_id),
            warnings,
        )
        return PlaceMutationResult(place=place, warnings=warnings)

    async def update_place(
        self,
        db: AsyncSession,
        actor: Actor,
        place_id: Any,
        payload: Any,
    ) -> PlaceMutationResult:
        """
        Apply a partial update. Omitted fields keep their stored value.

        A schedule in the payload replaces the stored rows entirely; media in
        the payload are re-resolved and files no longer referenced are deleted
        after the record is saved.

        Raises:
            NotFoundError, AuthorizationError, ValidationError, UnknownFault
        """
        with _unknown_faults("update_place", place_id=str(place_id)):
            place = await self._load(db, place_id)
        self._ensure_can_edit(place, actor, "update")
        data: PlaceUpdate = _coerce(PlaceUpdate, payload)
        sent = data.model_fields_set

        warnings: List[str] = []
        with _unknown_faults("update_place", place_id=str(place.id)):
            previous_urls = ResolvedAssets(place.logo, place.cover_image, list(place.images or [])).urls()

            for name in DESCRIPTIVE_FIELDS:
                if name in sent:
                    setattr(place, name, _column_value(getattr(data, name)))

            schedule_sent = "opening_hours" in sent and data.opening_hours is not None
            if schedule_sent:
                await self._replace_schedule(db, place, data.opening_hours)

            assets_sent = any(name in sent for name in ASSET_FIELDS)
            if assets_sent:
                assets = reconcile_assets(data.logo, data.cover_image, data.images, existing=place)
                place.logo = assets.logo
                place.cover_image = assets.cover_image
                place.images = list(assets.images)

            if schedule_sent or data.images:
                place.raw_schedule_snapshot = self._snapshot(
                    data.opening_hours if schedule_sent else None,
                    place.images,
                    place.raw_schedule_snapshot,
                )

            if not actor.is_admin and place.status == PlaceStatus.ACTIVE.value:
                place.status = PlaceStatus.PENDING.value
                logger.info("Place %s edited by its owner; back to PENDING for review", place.slug)

            await db.flush()

        if assets_sent:
            current_urls = ResolvedAssets(place.logo, place.cover_image, place.images).urls()
            await self.assets.cleanup_unused_images(place.slug, previous_urls, current_urls, warnings)

        logger.info("Place updated: %s (%s) fields=%s", place.slug, place.id, sorted(sent))
        return PlaceMutationResult(place=place, warnings=warnings)

    async def delete_place(
        self,
        db: AsyncSession,
        actor: Actor,
        place_id: Any,
    ) -> PlaceMutationResult:
        """
        Delete a place, its schedule rows and its asset directory.

        The directory removal is best effort; the record is deleted even if
        it fails.
        """
        with _unknown_faults("delete_place", place_id=str(place_id)):
            place = await self._load(db, place_id)
        self._ensure_can_edit(place, actor, "delete")

        warnings: List[str] = []
        with _unknown_faults("delete_place", place_id=str(place.id)):
            place.opening_hours.clear()
            await db.flush()
            await attempt(
                f"remove asset directory of {place.slug}",
                self.assets.remove_place_area(place.slug),
                warnings,
            )
            await db.delete(place)
            await db.flush()

        logger.info("Place deleted: %s (%s) by %s", place.slug, place.id, actor.actor_id)
        return PlaceMutationResult(place=place, warnings=warnings)

    async def moderate_place(
        self,
        db: AsyncSession,
        actor: Actor,
        place_id: Any,
        payload: Any,
    ) -> PlaceMutationResult:
        """
        Set any status on a place (admin-equivalent actors only).

        Concurrent moderations are last-write-wins. The owner is e-mailed
        when the status actually changes.
        """
        with _unknown_faults("moderate_place", place_id=str(place_id)):
            place = await self._load(db, place_id)
        if not actor.is_admin:
            raise AuthorizationError(action="moderate")
        if isinstance(payload, (str, PlaceStatus)):
            payload = {"status": payload}
        data: StatusChangeRequest = _coerce(StatusChangeRequest, payload)

        warnings: List[str] = []
        previous = place.status
        with _unknown_faults("moderate_place", place_id=str(place.id)):
            place.status = data.status.value
            await db.flush()

        if previous != place.status:
            logger.info("Place %s moderated: %s → %s by %s", place.slug, previous, place.status, actor.actor_id)
            await attempt(
                "notify owner of status change",
                self.notifications.notify_status_change(place, place.email),
                warnings,
            )
        return PlaceMutationResult(place=place, warnings=warnings)

    async def ensure_can_upload(self, db: AsyncSession, actor: Actor, slug: str) -> Place:
        """Uploads into a record's permanent area need the same rights as editing it."""
        with _unknown_faults("ensure_can_upload", slug=slug):
            result = await db.execute(select(Place).where(Place.slug == slug))
            place = result.scalar_one_or_none()
        if place is None:
            raise NotFoundError(resource="Place", resource_id=slug)
        self._ensure_can_edit(place, actor, "upload images to")
        return place

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_place(
        self,
        db: AsyncSession,
        actor: Optional[Actor],
        place_id: Any,
    ) -> Place:
        """
        Fetch one place by id.

        ACTIVE places are public. Any other status is visible to the owner
        and to admin-equivalent actors; everyone else gets AuthorizationError
        (the record's existence is not hidden).
        """
        with _unknown_faults("get_place", place_id=str(place_id)):
            place = await self._load(db, place_id)
        self._ensure_can_view(place, actor)
        return place

    async def get_place_by_slug(
        self,
        db: AsyncSession,
        actor: Optional[Actor],
        slug: str,
    ) -> Place:
        """Same visibility rules as get_place()."""
        with _unknown_faults("get_place_by_slug", slug=slug):
            result = await db.execute(select(Place).where(Place.slug == slug))
            place = result.scalar_one_or_none()
        if place is None:
            raise NotFoundError(resource="Place", resource_id=slug)
        self._ensure_can_view(place, actor)
        return place

    async def list_places(
        self,
        db: AsyncSession,
        actor: Optional[Actor],
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        place_type: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Place], int, int]:
        """
        Paginated listing, newest update first.

        Visibility:
            anonymous     ACTIVE only; status filter ignored
            admin         everything; status filter applied as given
            other actors  ACTIVE plus their own records; a status filter
                          narrows to their own records in that status
                          (ACTIVE still includes everyone's)

        Returns:
            (places, total matching, pages)
        """
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        conditions = []
        if actor is None:
            conditions.append(Place.status == PlaceStatus.ACTIVE.value)
        elif actor.is_admin:
            if status:
                conditions.append(Place.status == status)
        elif status == PlaceStatus.ACTIVE.value:
            conditions.append(Place.status == status)
        elif status:
            conditions.append(Place.status == status)
            conditions.append(Place.owner_id == actor.actor_id)
        else:
            conditions.append(or_(
                Place.status == PlaceStatus.ACTIVE.value,
                Place.owner_id == actor.actor_id,
            ))

        if place_type:
            conditions.append(Place.place_type == place_type)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            conditions.append(or_(
                Place.name.ilike(pattern),
                Place.description.ilike(pattern),
                Place.city.ilike(pattern),
            ))

        with _unknown_faults("list_places"):
            count_result = await db.execute(
                select(func.count()).select_from(Place).where(*conditions)
            )
            total = count_result.scalar() or 0

            result = await db.execute(
                select(Place)
                .where(*conditions)
                .order_by(Place.updated_at.desc(), Place.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            places = list(result.scalars().all())

        pages = math.ceil(total / limit) if total else 0
        return places, total, pages


# ── Singleton Instance ────────────────────────────────────────────────────
place_service = PlaceService()
