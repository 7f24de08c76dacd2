"""Podman CLI wrapper: image listing and export."""

import logging
from dataclasses import dataclass
from pathlib import Path

from airgap_scan.consts import MAX_ERROR_LENGTH
from airgap_scan.errors import EngineQueryError
from airgap_scan.scanner.process import CommandResult, run_command

logger = logging.getLogger(__name__)

IMAGE_LIST_FORMAT = "{{.Repository}}\t{{.Tag}}\t{{.ID}}"


@dataclass(frozen=True)
class ImageRow:
    """One line of 'podman images' output (sentinels left as-is)."""

    repository: str
    tag: str
    id: str


class PodmanClient:
    """Wraps the podman CLI for the two operations a run needs."""

    def __init__(self, podman_path: str = "podman"):
        self.podman_path = podman_path

    async def list_image_rows(self) -> list[ImageRow]:
        """Query all locally stored images.

        Returns:
            Rows in engine order, duplicates included

        Raises:
            EngineQueryError: If 'podman images' fails
        """
        result = await run_command([self.podman_path, "images", "--format", IMAGE_LIST_FORMAT])
        if not result.success:
            raise EngineQueryError(
                f"'podman images' failed (code {result.returncode}): "
                f"{result.stderr.strip()[:MAX_ERROR_LENGTH]}"
            )
        return self._parse_rows(result.stdout)

    def _parse_rows(self, output: str) -> list[ImageRow]:
        rows = []
        for line in output.splitlines():
            if not line.strip():
                continue
            parts = line.split("\t")
            if len(parts) != 3:
                logger.warning(f"Skipping unparseable 'podman images' line: {line!r}")
                continue
            repository, tag, image_id = (part.strip() for part in parts)
            rows.append(ImageRow(repository=repository, tag=tag, id=image_id))
        return rows

    async def save_image(self, ref: str, archive_path: Path, timeout: float | None = None) -> CommandResult:
        """Export one image to a single-file archive.

        Args:
            ref: Image name or id
            archive_path: Destination .tar
            timeout: Wall-clock budget in seconds (None for no limit)

        Returns:
            CommandResult of 'podman save'
        """
        cmd = [self.podman_path, "save", "-o", str(archive_path), ref]
        return await run_command(cmd, timeout=timeout)
