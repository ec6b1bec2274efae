"""
Place Registry Backend — Asset Reconciler
===========================================

What:  Decides which logo, cover image and gallery a place ends up with,
       and moves files uploaded before the place existed into its
       permanent directory.
Who:   Called by PlaceService on create, update and delete.

Resolution (pure, no I/O):
    gallery  new non-empty list replaces the old one; otherwise the old
             gallery is kept (update) or stays empty (create)
    logo     explicit value → first image of the submitted gallery →
             previously stored logo → first image of the kept gallery → None
    cover    same rule, evaluated independently of the logo

    The gallery default is a fallback. The uploader normally picks the
    cover explicitly; both may end up pointing at the same image.

Staged relocation (create only):
    places/temp-5e2a9c0d41f7/77d4.jpg  ──move──▶  places/cafe-de-la-place/77d4.jpg
    /uploads/places/temp-5e2a9c0d41f7/77d4.jpg  ──rewrite──▶  /uploads/places/cafe-de-la-place/77d4.jpg

    Each file move is independent. A file that fails to move keeps its old
    URL (still served) and the staged area is left in place for manual
    follow-up; everything is logged and reported, nothing is raised.

    Only staged areas the new record references (by URL or by its staged
    upload id) are relocated. Enumerating every staged area on disk would
    pull in other users' in-progress uploads; that behaviour stays available
    behind settings.staged_sweep_all.
"""

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

from placeregistry.config import settings
from placeregistry.exceptions import StorageFault
from placeregistry.services.file_service import FileService, file_service
from placeregistry.services.side_effects import attempt

logger = logging.getLogger(__name__)


@dataclass
class ResolvedAssets:
    logo: Optional[str]
    cover_image: Optional[str]
    images: List[str] = field(default_factory=list)

    def urls(self) -> Set[str]:
        found = set(self.images)
        if self.logo:
            found.add(self.logo)
        if self.cover_image:
            found.add(self.cover_image)
        return found


@dataclass
class RelocationReport:
    """Outcome of moving staged files into a place's permanent area."""

    moved: Dict[str, str] = field(default_factory=dict)       # old URL → new URL
    failed: List[str] = field(default_factory=list)           # staged relative paths left behind
    removed_areas: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed

    def rewrite(self, url: Optional[str]) -> Optional[str]:
        if not url:
            return url
        return self.moved.get(url, url)

    def rewrite_all(self, urls: Iterable[str]) -> List[str]:
        return [self.rewrite(url) for url in urls]


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def resolve_default_image(
    explicit: Optional[str],
    gallery: Sequence[str],
    previous: Optional[str] = None,
    fallback_gallery: Sequence[str] = (),
) -> Optional[str]:
    """
    Pick a logo or cover image.

    Args:
        explicit: value sent by the caller; blank means "not chosen"
        gallery: gallery submitted with this request
        previous: value already stored on the record (update only)
        fallback_gallery: gallery kept from the stored record (update only)
    """
    if not _is_blank(explicit):
        return explicit.strip()
    if gallery:
        return gallery[0]
    if not _is_blank(previous):
        return previous
    if fallback_gallery:
        return fallback_gallery[0]
    return None


def reconcile_assets(
    logo: Optional[str],
    cover_image: Optional[str],
    gallery: Optional[Sequence[str]],
    existing=None,
) -> ResolvedAssets:
    """
    Resolve the media of a record being created (existing=None) or updated.

    existing is anything with logo, cover_image and images attributes,
    normally the stored Place.
    """
    submitted = [url for url in (gallery or []) if not _is_blank(url)]
    previous_gallery = list(existing.images or []) if existing is not None else []
    images = submitted if submitted else previous_gallery

    return ResolvedAssets(
        logo=resolve_default_image(
            logo,
            submitted,
            existing.logo if existing is not None else None,
            previous_gallery,
        ),
        cover_image=resolve_default_image(
            cover_image,
            submitted,
            existing.cover_image if existing is not None else None,
            previous_gallery,
        ),
        images=images,
    )


class AssetReconciler:
    """File-system side of asset handling; resolution lives in the pure functions above."""

    def __init__(self, storage: Optional[FileService] = None):
        self.storage = storage or file_service

    def _area_of(self, url: Optional[str]) -> Optional[str]:
        relative = self.storage.relative_path_from_url(url)
        if not relative:
            return None
        parts = relative.split("/")
        if len(parts) < 3 or parts[0] != settings.places_dir:
            return None
        return parts[1]

    async def _staged_areas(self) -> List[str]:
        names = await self.storage.list_directories(settings.places_dir)
        return [name for name in names if self.storage.is_staged_area(name)]

    async def relocate_staged(
        self,
        slug: str,
        urls: Iterable[str],
        staged_ids: Iterable[str] = (),
    ) -> RelocationReport:
        """
        Move staged uploads into places/<slug>/ and report the URL rewrites.

        Areas considered: every staged area referenced by one of urls or
        named in staged_ids; with settings.staged_sweep_all, every staged
        area on disk. Empty areas are skipped.

        Never raises for storage problems; see RelocationReport.failed.
        """
        report = RelocationReport()
        wanted = {self._area_of(url) for url in urls} | set(staged_ids)
        wanted.discard(None)

        try:
            areas = await self._staged_areas()
        except StorageFault as e:
            logger.warning("Could not enumerate staged areas for %s: %s", slug, e.message)
            report.failed.append(settings.places_dir)
            return report

        if not settings.staged_sweep_all:
            areas = [area for area in areas if area in wanted]

        destination = self.storage.place_area(slug)
        for area in areas:
            staged_dir = self.storage.place_area(area)
            try:
                filenames = await self.storage.list(staged_dir)
            except StorageFault as e:
                logger.warning("Could not list staged area %s: %s", area, e.message)
                report.failed.append(staged_dir)
                continue
            if not filenames:
                continue

            area_failed = False
            for filename in filenames:
                source = f"{staged_dir}/{filename}"
                target = f"{destination}/{filename}"
                try:
                    if await self.storage.exists(target):
                        raise StorageFault(
                            message="Target file already exists",
                            context={"target": target},
                        )
                    await self.storage.move(source, target)
                except StorageFault as e:
                    logger.warning("Could not relocate %s → %s: %s", source, target, e.message)
                    report.failed.append(source)
                    area_failed = True
                    continue
                report.moved[self.storage.url_for(source)] = self.storage.url_for(target)

            if area_failed:
                logger.warning("Staged area %s kept for manual follow-up", staged_dir)
                continue
            if await attempt(f"remove staged area {area}", self.storage.remove_directory(staged_dir)):
                report.removed_areas.append(area)

        logger.info(
            "Relocated %d staged file(s) into %s (%d failure(s))",
            len(report.moved), destination, len(report.failed),
        )
        return report

    async def cleanup_unused_images(
        self,
        slug: str,
        old_urls: Iterable[str],
        new_urls: Iterable[str],
        warnings: Optional[List[str]] = None,
    ) -> int:
        """
        Delete stored files referenced before an update and not after it.

        Only files inside places/<slug>/ are touched. External URLs and files
        of other places that the record merely pointed at are left alone.

        Returns:
            Number of files deleted.
        """
        keep = set(new_urls)
        own_area = f"{self.storage.place_area(slug)}/"
        deleted = 0
        for url in sorted(set(old_urls) - keep):
            relative = self.storage.relative_path_from_url(url)
            if not relative or posixpath.normpath(relative) != relative or not relative.startswith(own_area):
                continue
            if await attempt(f"delete unused image {relative}", self.storage.delete(relative), warnings):
                deleted += 1
        if deleted:
            logger.info("Cleaned up %d unused image(s)", deleted)
        return deleted

    async def remove_place_area(self, slug: str) -> bool:
        """Remove places/<slug>/ and everything in it. Raises StorageFault."""
        return await self.storage.remove_directory(self.storage.place_area(slug))


asset_reconciler = AssetReconciler()
