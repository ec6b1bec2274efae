"""
Place Registry Backend — Slug Allocator
=========================================

What:  Turns a place name into a unique, URL-safe slug.
How:   slugify() builds the base slug; SlugAllocator probes the store for
       base, base-1, base-2, ... and returns the first unused candidate.
Who:   Called by PlaceService.create_place, once per record.

    "Café de la Place"    → cafe-de-la-place
    "Cafe de la place"    → cafe-de-la-place-1   (base taken)
    "CAFE DE LA PLACE!!"  → cafe-de-la-place-2

Slugs never start with the staged upload prefix ("Temp Agency" becomes
place-temp-agency): permanent and staged areas share the places/ directory.

The probe and the insert are not atomic. The unique index on places.slug
is what finally guarantees uniqueness; PlaceService reports an insert that
loses the race as a ConflictError.
"""

import logging
import re
import unicodedata
import uuid
from typing import Awaitable, Callable

from placeregistry.config import settings

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

SlugProbe = Callable[[str], Awaitable[bool]]


def slugify(name: str) -> str:
    """
    Build the base slug for a name.

    Accents are folded first ("é" → "e") so French names keep their letters,
    then every run of characters outside [a-z0-9] becomes one hyphen and
    leading/trailing hyphens are trimmed. May return "".
    """
    decomposed = unicodedata.normalize("NFKD", name or "")
    ascii_name = "".join(c for c in decomposed if not unicodedata.combining(c))
    return _NON_ALNUM_RE.sub("-", ascii_name.lower()).strip("-")


class SlugAllocator:
    """
    Allocates the first free slug for a name.

    Args:
        fallback_prefix: prefix of the generated slug used when a name has no
                         usable character at all (e.g. "!!!" or "東京").
    """

    def __init__(self, fallback_prefix: str = "place"):
        self.fallback_prefix = fallback_prefix

    def base_slug(self, name: str) -> str:
        base = slugify(name)
        if not base:
            base = f"{self.fallback_prefix}-{uuid.uuid4().hex[:8]}"
            logger.info("Name %r has no slug characters; using %s", name, base)
        if base.startswith(settings.staged_area_prefix.lower()):
            reserved = base
            base = f"{self.fallback_prefix}-{base}"
            logger.info("Slug %s would look like a staged upload area; using %s", reserved, base)
        return base

    async def allocate(self, name: str, slug_exists: SlugProbe) -> str:
        """
        Return the first slug in base, base-1, base-2, ... that slug_exists() reports unused.

        Args:
            name: human-readable place name
            slug_exists: async existence probe against the store
        """
        base = self.base_slug(name)
        candidate = base
        suffix = 0
        while await slug_exists(candidate):
            suffix += 1
            candidate = f"{base}-{suffix}"
        if suffix:
            logger.debug("Slug %s taken; allocated %s", base, candidate)
        return candidate


slug_allocator = SlugAllocator()
