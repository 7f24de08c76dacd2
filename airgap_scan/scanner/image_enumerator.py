"""Image enumeration with the tagged-only policy."""

import logging
from collections.abc import AsyncIterator

from pydantic import ValidationError

from airgap_scan.consts import PODMAN_NONE_SENTINEL
from airgap_scan.models.model_image import ImageReference
from airgap_scan.scanner.podman import ImageRow, PodmanClient

logger = logging.getLogger(__name__)


class ImageEnumerator:
    """Turns the engine's image list into ImageReferences to scan.

    Every call re-queries the engine; nothing is cached between calls.
    """

    def __init__(self, podman: PodmanClient):
        self.podman = podman

    @staticmethod
    def _is_untagged(row: ImageRow) -> bool:
        return row.repository == PODMAN_NONE_SENTINEL and row.tag == PODMAN_NONE_SENTINEL

    def _select(self, rows: list[ImageRow], tagged_only: bool) -> list[ImageReference]:
        """Filter, de-duplicate and sort rows.

        Tagged-only: drop <none>:<none>, de-duplicate by repository:tag.
        Otherwise: keep untagged rows, de-duplicate by (name, id).
        Rows lacking a full repository:tag (e.g. pulled by digest) are
        addressed by id in both modes.
        """
        seen: set[tuple[str | None, str | None]] = set()
        images: list[ImageReference] = []

        for row in rows:
            if tagged_only and self._is_untagged(row):
                continue
            try:
                image = ImageReference(repository=row.repository, tag=row.tag, id=row.id)
            except ValidationError:
                logger.warning(f"Skipping image row without usable name or id: {row}")
                continue

            key = (image.best_ref, None) if tagged_only else (image.name, image.id)
            if key in seen:
                continue
            seen.add(key)
            images.append(image)

        images.sort(key=lambda image: (image.best_ref, image.id or ""))
        return images

    async def list_images(self, tagged_only: bool = True) -> list[ImageReference]:
        """Enumerate locally present images.

        Args:
            tagged_only: Exclude <none>:<none> images

        Returns:
            Images in ascending order of their reference

        Raises:
            EngineQueryError: If the engine cannot be queried
        """
        rows = await self.podman.list_image_rows()
        images = self._select(rows, tagged_only)
        logger.info(
            f"Enumerated {len(images)} image(s) from {len(rows)} row(s) (tagged_only={tagged_only})"
        )
        return images

    async def iter_images(self, tagged_only: bool = True) -> AsyncIterator[ImageReference]:
        """Lazy form of list_images; each iteration starts a fresh query."""
        for image in await self.list_images(tagged_only):
            yield image
