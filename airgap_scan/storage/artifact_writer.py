"""Mirroring and archiving of finished run artifacts.

Reports are already in place when write() is called (Trivy writes them
directly); this layer only duplicates them. Failures here are collected as
warnings and never change a scan's outcome.
"""

import logging
import shutil
import tarfile
from pathlib import Path

from airgap_scan.consts import RUN_ARCHIVE_PREFIX
from airgap_scan.models.model_scanner import ImageScanResult, ScanErrorType, ScanOutcome
from airgap_scan.storage.run_directory import RunDirectory

logger = logging.getLogger(__name__)


class ArtifactWriter:
    """Copies artifacts to {dest_root}/{host_label}/{timestamp}/ and packs runs.

    Mirror layout:
        {dest_root}/{host_label}/{timestamp}/
        ├── reports/{base_name}.json
        ├── reports/run.meta.json
        └── sboms/{base_name}-sbom.json
    """

    def __init__(
        self,
        run_dir: RunDirectory,
        host_label: str,
        dest_root: Path | None = None,
        archive_run: bool = False,
    ):
        """Initialize ArtifactWriter.

        Args:
            run_dir: The run whose artifacts are written
            host_label: Host key in the mirror tree and archive name
            dest_root: Mirror destination root (None disables mirroring)
            archive_run: Pack the run into a .tar.gz on finalize
        """
        self.run_dir = run_dir
        self.host_label = host_label
        self.dest_root = Path(dest_root) if dest_root else None
        self.archive_run = archive_run
        self.errors: list[str] = []

    @property
    def mirror_dir(self) -> Path | None:
        if self.dest_root is None:
            return None
        return self.dest_root / self.host_label / self.run_dir.timestamp

    def _record_error(self, message: str) -> None:
        logger.warning(f"[{ScanErrorType.MIRROR_FAILED.value}] {message}")
        self.errors.append(message)

    def _mirror_file(self, source: Path, subdir: str, image_ref: str | None = None) -> None:
        mirror_dir = self.mirror_dir
        if mirror_dir is None:
            return
        target_dir = mirror_dir / subdir
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target_dir / source.name)
            logger.debug(f"Mirrored {source} → {target_dir}")
        except OSError as e:
            owner = f" for {image_ref}" if image_ref else ""
            self._record_error(f"Mirror copy of {source.name}{owner} failed: {e}")

    def _mirror_outcome(self, outcome: ScanOutcome | None, subdir: str) -> None:
        if outcome is None or not outcome.success or outcome.output_path is None:
            return
        self._mirror_file(outcome.output_path, subdir, outcome.image_ref)

    def write(self, result: ImageScanResult) -> None:
        """Mirror one image's successful artifacts (incremental)."""
        if self.mirror_dir is None:
            return
        self._mirror_outcome(result.vuln, "reports")
        self._mirror_outcome(result.sbom, "sboms")

    def finalize(self) -> Path | None:
        """Mirror run metadata and optionally pack the run.

        Returns:
            Path of the .tar.gz when archive_run is set and packing succeeded
        """
        if self.run_dir.metadata_path.exists():
            self._mirror_file(self.run_dir.metadata_path, "reports")

        if not self.archive_run:
            return None
        return self.pack()

    def pack(self) -> Path | None:
        """Write {root}/trivy-run-{host}-{timestamp}.tar.gz with reports and SBOMs."""
        archive_path = (
            self.run_dir.root / f"{RUN_ARCHIVE_PREFIX}{self.host_label}-{self.run_dir.timestamp}.tar.gz"
        )
        try:
            with tarfile.open(archive_path, "w:gz") as tar:
                tar.add(self.run_dir.report_dir, arcname=self.run_dir.report_dir.name)
                sbom_dir = self.run_dir.sbom_dir
                if sbom_dir is not None and sbom_dir.exists():
                    tar.add(sbom_dir, arcname=sbom_dir.name)
        except (OSError, tarfile.TarError) as e:
            self._record_error(f"Packing run into {archive_path} failed: {e}")
            archive_path.unlink(missing_ok=True)
            return None

        logger.info(f"Packed run into {archive_path}")
        if self.mirror_dir is not None:
            self._mirror_file(archive_path, ".")
        return archive_path
