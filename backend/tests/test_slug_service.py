"""
Place Registry Backend — Slug Allocator Unit Tests
====================================================

What:  slugify() folding rules and SlugAllocator suffix sequencing.
How:   The existence probe is an in-memory set; no database involved.
"""

import pytest

from placeregistry.services.slug_service import SlugAllocator, slugify


class TestSlugify:
    def test_accents_are_folded(self):
        assert slugify("Café de la Place") == "cafe-de-la-place"

    def test_runs_of_symbols_become_one_hyphen(self):
        assert slugify("L'Atelier  --  Bière & Co!!") == "l-atelier-biere-co"

    def test_leading_and_trailing_hyphens_trimmed(self):
        assert slugify("  ***Boulangerie***  ") == "boulangerie"

    def test_digits_kept(self):
        assert slugify("Le 7 Bis") == "le-7-bis"

    def test_nothing_usable(self):
        assert slugify("!!!") == ""
        assert slugify("") == ""


class TestSlugAllocator:
    def setup_method(self):
        self.allocator = SlugAllocator()
        self.taken = set()

    async def _exists(self, candidate: str) -> bool:
        return candidate in self.taken

    @pytest.mark.asyncio
    async def test_free_base_is_used_as_is(self):
        assert await self.allocator.allocate("Café de la Place", self._exists) == "cafe-de-la-place"

    @pytest.mark.asyncio
    async def test_suffixes_count_up_from_one(self):
        slugs = []
        for name in ("Café de la Place", "Cafe de la place", "CAFE DE LA PLACE!!"):
            slug = await self.allocator.allocate(name, self._exists)
            self.taken.add(slug)
            slugs.append(slug)
        assert slugs == ["cafe-de-la-place", "cafe-de-la-place-1", "cafe-de-la-place-2"]

    @pytest.mark.asyncio
    async def test_first_gap_is_reused(self):
        self.taken.update({"boulangerie", "boulangerie-2"})
        assert await self.allocator.allocate("Boulangerie", self._exists) == "boulangerie-1"

    @pytest.mark.asyncio
    async def test_name_without_slug_characters_gets_generated_base(self):
        slug = await self.allocator.allocate("東京", self._exists)
        assert slug.startswith("place-")
        assert len(slug) == len("place-") + 8

    @pytest.mark.asyncio
    async def test_staged_prefix_is_never_allocated(self):
        assert await self.allocator.allocate("Temp Agency", self._exists) == "place-temp-agency"
        self.taken.add("place-temp-agency")
        assert await self.allocator.allocate("TEMP agency", self._exists) == "place-temp-agency-1"

    @pytest.mark.asyncio
    async def test_plain_temp_is_an_ordinary_slug(self):
        assert await self.allocator.allocate("Temp", self._exists) == "temp"
