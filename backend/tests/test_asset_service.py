"""
Place Registry Backend — Asset Reconciler Unit Tests
======================================================

What:  Logo/cover defaulting, staged relocation and unused-image cleanup.
How:   Real files under tmp_path through a FileService fixture.
"""

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from placeregistry.config import settings
from placeregistry.exceptions import StorageFault
from placeregistry.services.asset_service import reconcile_assets, resolve_default_image

STAGED = "temp-5e2a9c0d41f7"


class TestResolution:
    def test_explicit_value_wins(self):
        assert resolve_default_image("/uploads/a.jpg", ["/uploads/b.jpg"]) == "/uploads/a.jpg"

    def test_blank_explicit_falls_back_to_gallery(self):
        assert resolve_default_image("  ", ["/uploads/b.jpg"]) == "/uploads/b.jpg"

    def test_nothing_at_all(self):
        assert resolve_default_image(None, []) is None

    def test_create_defaults_logo_and_cover_to_first_image(self):
        assets = reconcile_assets(None, None, ["/uploads/1.jpg", "/uploads/2.jpg"])
        assert assets.logo == "/uploads/1.jpg"
        assert assets.cover_image == "/uploads/1.jpg"
        assert assets.images == ["/uploads/1.jpg", "/uploads/2.jpg"]

    def test_logo_and_cover_resolved_independently(self):
        assets = reconcile_assets("/uploads/logo.png", None, ["/uploads/1.jpg"])
        assert assets.logo == "/uploads/logo.png"
        assert assets.cover_image == "/uploads/1.jpg"

    def test_update_without_gallery_keeps_previous_values(self):
        existing = SimpleNamespace(logo="/uploads/old.jpg", cover_image=None, images=["/uploads/g.jpg"])
        assets = reconcile_assets(None, None, None, existing=existing)
        assert assets.logo == "/uploads/old.jpg"
        assert assets.cover_image == "/uploads/g.jpg"
        assert assets.images == ["/uploads/g.jpg"]

    def test_update_with_new_gallery_replaces_old_one(self):
        existing = SimpleNamespace(logo="/uploads/old.jpg", cover_image="/uploads/old.jpg", images=["/uploads/old.jpg"])
        assets = reconcile_assets(None, "/uploads/cover.jpg", ["/uploads/new.jpg", ""], existing=existing)
        assert assets.images == ["/uploads/new.jpg"]
        assert assets.logo == "/uploads/new.jpg"
        assert assets.cover_image == "/uploads/cover.jpg"


class TestRelocation:
    @pytest.mark.asyncio
    async def test_moves_referenced_staged_area(self, reconciler, file_store, sample_image_bytes):
        await file_store.save(sample_image_bytes, f"places/{STAGED}/a.jpg")
        await file_store.save(sample_image_bytes, f"places/{STAGED}/b.jpg")
        old_url = f"/uploads/places/{STAGED}/a.jpg"

        report = await reconciler.relocate_staged("cafe", [old_url])

        assert report.complete
        assert report.rewrite(old_url) == "/uploads/places/cafe/a.jpg"
        assert sorted(await file_store.list("places/cafe")) == ["a.jpg", "b.jpg"]
        assert report.removed_areas == [STAGED]
        assert await file_store.list_directories("places") == ["cafe"]

    @pytest.mark.asyncio
    async def test_staged_id_alone_selects_the_area(self, reconciler, file_store, sample_image_bytes):
        await file_store.save(sample_image_bytes, f"places/{STAGED}/a.jpg")
        report = await reconciler.relocate_staged("cafe", [], staged_ids=[STAGED])
        assert f"/uploads/places/{STAGED}/a.jpg" in report.moved

    @pytest.mark.asyncio
    async def test_unrelated_staged_areas_are_left_alone(self, reconciler, file_store, sample_image_bytes):
        await file_store.save(sample_image_bytes, "places/temp-aaaaaaaaaaaa/x.jpg")
        report = await reconciler.relocate_staged("cafe", ["https://cdn.example.com/x.jpg"])
        assert report.moved == {}
        assert await file_store.exists("places/temp-aaaaaaaaaaaa/x.jpg")

    @pytest.mark.asyncio
    async def test_sweep_all_takes_every_staged_area(self, reconciler, file_store, sample_image_bytes):
        await file_store.save(sample_image_bytes, "places/temp-aaaaaaaaaaaa/x.jpg")
        with patch.object(settings, "staged_sweep_all", True):
            report = await reconciler.relocate_staged("cafe", [])
        assert await file_store.exists("places/cafe/x.jpg")
        assert report.removed_areas == ["temp-aaaaaaaaaaaa"]

    @pytest.mark.asyncio
    async def test_failed_move_keeps_url_and_area(self, reconciler, file_store, sample_image_bytes):
        await file_store.save(sample_image_bytes, f"places/{STAGED}/a.jpg")
        await file_store.save(sample_image_bytes, f"places/{STAGED}/b.jpg")
        real_move = file_store.move

        async def flaky_move(source, destination):
            if source.endswith("b.jpg"):
                raise StorageFault(message="disk full")
            await real_move(source, destination)

        with patch.object(file_store, "move", side_effect=flaky_move):
            report = await reconciler.relocate_staged("cafe", [f"/uploads/places/{STAGED}/a.jpg"])

        assert not report.complete
        assert report.failed == [f"places/{STAGED}/b.jpg"]
        b_url = f"/uploads/places/{STAGED}/b.jpg"
        assert report.rewrite(b_url) == b_url
        assert await file_store.exists(f"places/{STAGED}/b.jpg")
        assert report.removed_areas == []

    @pytest.mark.asyncio
    async def test_existing_target_is_not_overwritten(self, reconciler, file_store, sample_image_bytes):
        await file_store.save(sample_image_bytes, f"places/{STAGED}/a.jpg")
        await file_store.save(b"already here", "places/cafe/a.jpg")

        report = await reconciler.relocate_staged("cafe", [f"/uploads/places/{STAGED}/a.jpg"])

        assert report.failed == [f"places/{STAGED}/a.jpg"]
        assert (file_store.resolve("places/cafe/a.jpg")).read_bytes() == b"already here"

    @pytest.mark.asyncio
    async def test_permanent_area_named_like_staged_is_not_relocated(
        self, reconciler, file_store, sample_image_bytes,
    ):
        await file_store.save(sample_image_bytes, "places/temp-agency/logo.jpg")

        report = await reconciler.relocate_staged("other-shop", ["/uploads/places/temp-agency/logo.jpg"])

        assert report.moved == {}
        assert await file_store.list("places/temp-agency") == ["logo.jpg"]
        assert await file_store.list("places/other-shop") == []


class TestCleanup:
    @pytest.mark.asyncio
    async def test_deletes_only_dropped_local_files(self, reconciler, file_store, sample_image_bytes):
        await file_store.save(sample_image_bytes, "places/cafe/a.jpg")
        await file_store.save(sample_image_bytes, "places/cafe/b.jpg")
        old = ["/uploads/places/cafe/a.jpg", "/uploads/places/cafe/b.jpg", "https://cdn.example.com/c.jpg"]
        new = ["/uploads/places/cafe/b.jpg"]

        deleted = await reconciler.cleanup_unused_images("cafe", old, new)

        assert deleted == 1
        assert await file_store.list("places/cafe") == ["b.jpg"]

    @pytest.mark.asyncio
    async def test_failed_delete_becomes_warning(self, reconciler, file_store):
        warnings = []
        with patch.object(file_store, "delete", side_effect=StorageFault(message="busy")):
            deleted = await reconciler.cleanup_unused_images("cafe", ["/uploads/places/cafe/a.jpg"], [], warnings)
        assert deleted == 0
        assert warnings == ["delete unused image places/cafe/a.jpg failed"]

    @pytest.mark.asyncio
    async def test_files_of_other_places_are_never_deleted(self, reconciler, file_store, sample_image_bytes):
        await file_store.save(sample_image_bytes, "places/other-shop/hero.jpg")
        old = [
            "/uploads/places/other-shop/hero.jpg",
            "/uploads/places/cafe/../other-shop/hero.jpg",
        ]

        deleted = await reconciler.cleanup_unused_images("cafe", old, [])

        assert deleted == 0
        assert await file_store.exists("places/other-shop/hero.jpg")
