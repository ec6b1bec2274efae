"""
Place Registry Backend — Place Service Tests
==============================================

What:  Lifecycle rules end to end against a real (in-memory) database:
       slug allocation, status transitions, permissions, schedule
       replacement, asset relocation and cleanup, best-effort side effects.
How:   PlaceService built from the conftest fixtures; the notifier is mocked.
"""

import uuid

import pytest
from sqlalchemy import func, select

from placeregistry.exceptions import AuthorizationError, NotFoundError, ValidationError
from placeregistry.models.place import OpeningHours, Place
from placeregistry.services.place_service import to_response

STAGED = "temp-0a1b2c3d4e5f"


async def _count_rows(db_session, place_id) -> int:
    result = await db_session.execute(
        select(func.count()).select_from(OpeningHours).where(OpeningHours.place_id == place_id)
    )
    return result.scalar()


async def _activate(place_service, db_session, admin, place):
    await place_service.moderate_place(db_session, admin, place.id, "ACTIVE")


class TestCreatePlace:
    @pytest.mark.asyncio
    async def test_create_defaults(self, place_service, db_session, owner, place_payload, mock_notifier):
        result = await place_service.create_place(db_session, owner, place_payload)
        place = result.place

        assert place.slug == "cafe-de-la-place"
        assert place.status == "PENDING"
        assert place.owner_id == "user-1"
        assert place.place_type == "RESTAURANT"
        assert result.warnings == []
        mock_notifier.notify_new_place.assert_awaited_once_with(place, "user-1")

    @pytest.mark.asyncio
    async def test_same_name_gets_next_suffix(self, place_service, db_session, owner, place_payload):
        slugs = []
        for name in ("Café de la Place", "Cafe de la place", "CAFE DE LA PLACE!!"):
            result = await place_service.create_place(db_session, owner, {**place_payload, "name": name})
            slugs.append(result.place.slug)
        assert slugs == ["cafe-de-la-place", "cafe-de-la-place-1", "cafe-de-la-place-2"]

    @pytest.mark.asyncio
    async def test_schedule_rows_are_canonical(self, place_service, db_session, owner, place_payload):
        payload = {
            **place_payload,
            "openingHours": place_payload["openingHours"] + [
                {"dayOfWeek": "THURSDAY", "openTime": "09:00"},
            ],
        }
        place = (await place_service.create_place(db_session, owner, payload)).place

        rows = [(r.day_of_week, r.open_time, r.close_time, r.is_closed) for r in place.opening_hours]
        assert rows == [
            ("MONDAY", None, None, True),
            ("TUESDAY", "14:00", "18:00", False),
            ("TUESDAY", "09:00", "12:00", False),
            ("WEDNESDAY", "09:00", "18:00", False),
        ]
        assert place.raw_schedule_snapshot["opening_hours"][3] == {"dayOfWeek": "THURSDAY", "isClosed": False, "openTime": "09:00"}

        weekly = to_response(place).weekly_schedule
        assert [line.label for line in weekly[:3]] == [
            "Closed",
            "09:00 - 12:00 • 14:00 - 18:00",
            "09:00 - 18:00",
        ]

    @pytest.mark.asyncio
    async def test_for_claim_by_admin(self, place_service, db_session, admin, place_payload):
        result = await place_service.create_place(db_session, admin, {**place_payload, "createForClaim": True})
        assert result.place.status == "ACTIVE"
        assert result.place.owner_id is None

    @pytest.mark.asyncio
    async def test_for_claim_by_user_is_refused(self, place_service, db_session, owner, place_payload):
        with pytest.raises(AuthorizationError):
            await place_service.create_place(db_session, owner, {**place_payload, "forClaim": True})

    @pytest.mark.asyncio
    async def test_invalid_payload_lists_every_field(self, place_service, db_session, owner, place_payload):
        payload = {**place_payload, "email": "not-an-email"}
        del payload["city"]

        with pytest.raises(ValidationError) as exc_info:
            await place_service.create_place(db_session, owner, payload)

        fields = {f["field"] for f in exc_info.value.fields}
        assert {"city", "email"} <= fields

    @pytest.mark.asyncio
    async def test_staged_uploads_move_under_the_slug(
        self, place_service, db_session, owner, place_payload, file_store, sample_image_bytes,
    ):
        await file_store.save(sample_image_bytes, f"places/{STAGED}/a.jpg")
        await file_store.save(sample_image_bytes, f"places/{STAGED}/b.jpg")
        payload = {
            **place_payload,
            "images": [f"/uploads/places/{STAGED}/a.jpg", f"/uploads/places/{STAGED}/b.jpg"],
            "stagedUploadId": STAGED,
        }

        place = (await place_service.create_place(db_session, owner, payload)).place

        assert place.images == [
            "/uploads/places/cafe-de-la-place/a.jpg",
            "/uploads/places/cafe-de-la-place/b.jpg",
        ]
        assert place.logo == "/uploads/places/cafe-de-la-place/a.jpg"
        assert place.cover_image == "/uploads/places/cafe-de-la-place/a.jpg"
        assert place.raw_schedule_snapshot["images"] == place.images
        assert await file_store.exists("places/cafe-de-la-place/b.jpg")
        assert await file_store.list_directories("places") == ["cafe-de-la-place"]

    @pytest.mark.asyncio
    async def test_notification_failure_is_only_a_warning(
        self, place_service, db_session, owner, place_payload, mock_notifier,
    ):
        mock_notifier.notify_new_place.side_effect = OSError("smtp down")

        result = await place_service.create_place(db_session, owner, place_payload)

        assert result.place.id is not None
        assert result.warnings == ["notify admins of new place failed"]

    @pytest.mark.asyncio
    async def test_other_places_files_are_not_relocated(
        self, place_service, db_session, owner, other_user, place_payload, file_store, sample_image_bytes,
    ):
        agency = (await place_service.create_place(db_session, owner, {**place_payload, "name": "Temp Agency"})).place
        assert agency.slug == "place-temp-agency"
        await file_store.save(sample_image_bytes, "places/place-temp-agency/logo.jpg")
        logo_url = "/uploads/places/place-temp-agency/logo.jpg"

        shop = (await place_service.create_place(
            db_session, other_user, {**place_payload, "name": "Other Shop", "logo": logo_url},
        )).place

        assert shop.logo == logo_url
        assert await file_store.list("places/place-temp-agency") == ["logo.jpg"]
        assert await file_store.list("places/other-shop") == []


class TestReadPlace:
    @pytest.mark.asyncio
    async def test_pending_place_visibility(self, place_service, db_session, owner, other_user, admin, place_payload):
        place = (await place_service.create_place(db_session, owner, place_payload)).place

        assert (await place_service.get_place(db_session, owner, place.id)).id == place.id
        assert (await place_service.get_place(db_session, admin, str(place.id))).id == place.id
        with pytest.raises(AuthorizationError):
            await place_service.get_place(db_session, other_user, place.id)
        with pytest.raises(AuthorizationError):
            await place_service.get_place(db_session, None, place.id)

    @pytest.mark.asyncio
    async def test_active_place_is_public(self, place_service, db_session, owner, admin, place_payload):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        await _activate(place_service, db_session, admin, place)

        found = await place_service.get_place_by_slug(db_session, None, "cafe-de-la-place")
        assert found.id == place.id

    @pytest.mark.asyncio
    async def test_missing_place(self, place_service, db_session, owner):
        with pytest.raises(NotFoundError):
            await place_service.get_place(db_session, owner, uuid.uuid4())
        with pytest.raises(NotFoundError):
            await place_service.get_place(db_session, owner, "not-a-uuid")
        with pytest.raises(NotFoundError):
            await place_service.get_place_by_slug(db_session, owner, "nowhere")


class TestUpdatePlace:
    @pytest.mark.asyncio
    async def test_owner_edit_of_active_place_goes_back_to_review(
        self, place_service, db_session, owner, admin, place_payload,
    ):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        await _activate(place_service, db_session, admin, place)

        updated = (await place_service.update_place(db_session, owner, place.id, {"summary": "Terrasse"})).place

        assert updated.status == "PENDING"
        assert updated.summary == "Terrasse"

    @pytest.mark.asyncio
    async def test_admin_edit_keeps_status(self, place_service, db_session, owner, admin, place_payload):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        await _activate(place_service, db_session, admin, place)

        updated = (await place_service.update_place(db_session, admin, place.id, {"summary": "Terrasse"})).place

        assert updated.status == "ACTIVE"

    @pytest.mark.asyncio
    async def test_owner_edit_of_pending_place_stays_pending(self, place_service, db_session, owner, place_payload):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        updated = (await place_service.update_place(db_session, owner, place.id, {"phone": "0240000000"})).place
        assert updated.status == "PENDING"

    @pytest.mark.asyncio
    async def test_omitted_fields_are_unchanged(self, place_service, db_session, owner, place_payload):
        place = (await place_service.create_place(db_session, owner, place_payload)).place

        updated = (await place_service.update_place(db_session, owner, place.id, {"city": "Rezé"})).place

        assert updated.city == "Rezé"
        assert updated.name == "Café de la Place"
        assert updated.email == "contact@cafe-de-la-place.fr"
        assert updated.slug == "cafe-de-la-place"
        assert len(updated.opening_hours) == 4

    @pytest.mark.asyncio
    async def test_required_field_cannot_be_cleared(self, place_service, db_session, owner, place_payload):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        with pytest.raises(ValidationError):
            await place_service.update_place(db_session, owner, place.id, {"name": None})

    @pytest.mark.asyncio
    async def test_schedule_is_replaced_as_a_whole(self, place_service, db_session, owner, place_payload):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        assert await _count_rows(db_session, place.id) == 4

        updated = (await place_service.update_place(
            db_session, owner, place.id,
            {"openingHours": [{"dayOfWeek": "FRIDAY", "openTime": "10:00", "closeTime": "16:00"}]},
        )).place

        assert await _count_rows(db_session, place.id) == 1
        assert [(r.day_of_week, r.open_time) for r in updated.opening_hours] == [("FRIDAY", "10:00")]

    @pytest.mark.asyncio
    async def test_empty_schedule_clears_rows(self, place_service, db_session, owner, place_payload):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        await place_service.update_place(db_session, owner, place.id, {"openingHours": []})
        assert await _count_rows(db_session, place.id) == 0

    @pytest.mark.asyncio
    async def test_unused_images_are_deleted(
        self, place_service, db_session, owner, place_payload, file_store, sample_image_bytes,
    ):
        await file_store.save(sample_image_bytes, "places/cafe-de-la-place/a.jpg")
        await file_store.save(sample_image_bytes, "places/cafe-de-la-place/b.jpg")
        a_url = "/uploads/places/cafe-de-la-place/a.jpg"
        b_url = "/uploads/places/cafe-de-la-place/b.jpg"
        place = (await place_service.create_place(db_session, owner, {**place_payload, "images": [a_url, b_url]})).place
        assert place.logo == a_url

        result = await place_service.update_place(db_session, owner, place.id, {"images": [b_url]})

        assert result.place.images == [b_url]
        assert result.place.logo == b_url
        assert result.place.cover_image == b_url
        assert await file_store.list("places/cafe-de-la-place") == ["b.jpg"]

    @pytest.mark.asyncio
    async def test_new_gallery_redefaults_unsent_logo(
        self, place_service, db_session, owner, place_payload,
    ):
        payload = {**place_payload, "logo": "https://cdn.example.com/logo.png", "images": ["https://cdn.example.com/1.jpg"]}
        place = (await place_service.create_place(db_session, owner, payload)).place

        updated = (await place_service.update_place(
            db_session, owner, place.id, {"images": ["https://cdn.example.com/2.jpg"]},
        )).place

        assert updated.logo == "https://cdn.example.com/2.jpg"
        assert updated.cover_image == "https://cdn.example.com/2.jpg"

    @pytest.mark.asyncio
    async def test_cleanup_spares_files_of_other_places(
        self, place_service, db_session, owner, other_user, place_payload, file_store, sample_image_bytes,
    ):
        await place_service.create_place(db_session, owner, place_payload)
        await file_store.save(sample_image_bytes, "places/cafe-de-la-place/hero.jpg")
        hero_url = "/uploads/places/cafe-de-la-place/hero.jpg"
        intruder = (await place_service.create_place(
            db_session, other_user, {**place_payload, "name": "Intruder", "logo": hero_url},
        )).place

        await place_service.update_place(
            db_session, other_user, intruder.id, {"logo": "https://cdn.example.com/logo.png"},
        )

        assert await file_store.list("places/cafe-de-la-place") == ["hero.jpg"]

    @pytest.mark.asyncio
    async def test_stranger_cannot_update(self, place_service, db_session, owner, other_user, place_payload):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        with pytest.raises(AuthorizationError):
            await place_service.update_place(db_session, other_user, place.id, {"summary": "mine now"})


class TestDeletePlace:
    @pytest.mark.asyncio
    async def test_delete_removes_rows_and_directory(
        self, place_service, db_session, owner, place_payload, file_store, sample_image_bytes,
    ):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        await file_store.save(sample_image_bytes, "places/cafe-de-la-place/a.jpg")
        place_id = place.id

        result = await place_service.delete_place(db_session, owner, place_id)

        assert result.warnings == []
        assert await _count_rows(db_session, place_id) == 0
        assert (await db_session.execute(select(Place).where(Place.id == place_id))).scalar_one_or_none() is None
        assert await file_store.list_directories("places") == []

    @pytest.mark.asyncio
    async def test_stranger_cannot_delete(self, place_service, db_session, owner, other_user, place_payload):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        with pytest.raises(AuthorizationError):
            await place_service.delete_place(db_session, other_user, place.id)

    @pytest.mark.asyncio
    async def test_delete_missing_place(self, place_service, db_session, admin):
        with pytest.raises(NotFoundError):
            await place_service.delete_place(db_session, admin, uuid.uuid4())


class TestModeratePlace:
    @pytest.mark.asyncio
    async def test_admin_moderation_notifies_owner(
        self, place_service, db_session, owner, admin, place_payload, mock_notifier,
    ):
        place = (await place_service.create_place(db_session, owner, place_payload)).place

        result = await place_service.moderate_place(db_session, admin, place.id, {"status": "ACTIVE"})

        assert result.place.status == "ACTIVE"
        mock_notifier.notify_status_change.assert_awaited_once_with(place, "contact@cafe-de-la-place.fr")

    @pytest.mark.asyncio
    async def test_same_status_does_not_notify(
        self, place_service, db_session, owner, admin, place_payload, mock_notifier,
    ):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        await place_service.moderate_place(db_session, admin, place.id, "PENDING")
        mock_notifier.notify_status_change.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owner_cannot_moderate(self, place_service, db_session, owner, place_payload):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        with pytest.raises(AuthorizationError):
            await place_service.moderate_place(db_session, owner, place.id, "ACTIVE")

    @pytest.mark.asyncio
    async def test_unknown_status_is_invalid(self, place_service, db_session, owner, admin, place_payload):
        place = (await place_service.create_place(db_session, owner, place_payload)).place
        with pytest.raises(ValidationError):
            await place_service.moderate_place(db_session, admin, place.id, "PUBLISHED")


class TestListPlaces:
    async def _seed(self, place_service, db_session, owner, other_user, admin, place_payload):
        mine = (await place_service.create_place(db_session, owner, {**place_payload, "name": "Mine"})).place
        theirs = (await place_service.create_place(db_session, other_user, {**place_payload, "name": "Theirs"})).place
        public = (await place_service.create_place(db_session, other_user, {**place_payload, "name": "Public"})).place
        await _activate(place_service, db_session, admin, public)
        return mine, theirs, public

    @pytest.mark.asyncio
    async def test_anonymous_sees_active_only(self, place_service, db_session, owner, other_user, admin, place_payload):
        await self._seed(place_service, db_session, owner, other_user, admin, place_payload)

        places, total, pages = await place_service.list_places(db_session, None, status="PENDING")

        assert [p.name for p in places] == ["Public"]
        assert total == 1
        assert pages == 1

    @pytest.mark.asyncio
    async def test_user_sees_active_and_own(self, place_service, db_session, owner, other_user, admin, place_payload):
        await self._seed(place_service, db_session, owner, other_user, admin, place_payload)

        places, total, _ = await place_service.list_places(db_session, owner)
        assert sorted(p.name for p in places) == ["Mine", "Public"]

        pending, _, _ = await place_service.list_places(db_session, owner, status="PENDING")
        assert [p.name for p in pending] == ["Mine"]

    @pytest.mark.asyncio
    async def test_admin_sees_everything(self, place_service, db_session, owner, other_user, admin, place_payload):
        await self._seed(place_service, db_session, owner, other_user, admin, place_payload)

        _, total, _ = await place_service.list_places(db_session, admin)
        pending, _, _ = await place_service.list_places(db_session, admin, status="PENDING")

        assert total == 3
        assert sorted(p.name for p in pending) == ["Mine", "Theirs"]

    @pytest.mark.asyncio
    async def test_search_and_pagination(self, place_service, db_session, owner, other_user, admin, place_payload):
        await self._seed(place_service, db_session, owner, other_user, admin, place_payload)

        found, _, _ = await place_service.list_places(db_session, admin, search="thei")
        assert [p.name for p in found] == ["Theirs"]

        page, total, pages = await place_service.list_places(db_session, admin, page=2, limit=2)
        assert total == 3
        assert pages == 2
        assert len(page) == 1
