"""Timestamped run directory layout.

Directory structure:
    {root}/
    ├── trivy-reports-{timestamp}/
    │   ├── {base_name}.json          # One report per successful scan
    │   └── run.meta.json             # Host, timestamp, images attempted
    └── sboms-{timestamp}/
        └── {base_name}-sbom.json     # Only when SBOMs are enabled
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from airgap_scan.consts import (
    REPORT_DIR_PREFIX,
    RUN_METADATA_FILENAME,
    RUN_TIMESTAMP_FORMAT,
    SBOM_DIR_PREFIX,
    SBOM_FILE_SUFFIX,
)
from airgap_scan.models.model_storage import RunMetadata

logger = logging.getLogger(__name__)


def make_timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime(RUN_TIMESTAMP_FORMAT)


@dataclass(frozen=True)
class RunDirectory:
    """Paths for one run's artifacts."""

    root: Path
    timestamp: str
    with_sboms: bool = True

    @property
    def report_dir(self) -> Path:
        return self.root / f"{REPORT_DIR_PREFIX}{self.timestamp}"

    @property
    def sbom_dir(self) -> Path | None:
        if not self.with_sboms:
            return None
        return self.root / f"{SBOM_DIR_PREFIX}{self.timestamp}"

    @property
    def metadata_path(self) -> Path:
        return self.report_dir / RUN_METADATA_FILENAME

    @classmethod
    def create(cls, root: Path | str, with_sboms: bool = True, timestamp: str | None = None) -> "RunDirectory":
        """Create the report (and SBOM) directories for a new run.

        Args:
            root: Parent directory
            with_sboms: Also create the SBOM directory
            timestamp: Override the run timestamp (default: now)

        Returns:
            RunDirectory with directories on disk
        """
        run_dir = cls(root=Path(root), timestamp=timestamp or make_timestamp(), with_sboms=with_sboms)
        run_dir.report_dir.mkdir(parents=True, exist_ok=True)
        if run_dir.sbom_dir is not None:
            run_dir.sbom_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Run directory: {run_dir.report_dir}")
        return run_dir

    def report_path(self, base_name: str) -> Path:
        return self.report_dir / f"{base_name}.json"

    def sbom_path(self, base_name: str) -> Path:
        if self.sbom_dir is None:
            raise ValueError("SBOMs are disabled for this run")
        return self.sbom_dir / f"{base_name}{SBOM_FILE_SUFFIX}"

    def report_files(self) -> list[Path]:
        """Vulnerability reports in the run (metadata excluded)."""
        return sorted(
            path for path in self.report_dir.glob("*.json") if path.name != RUN_METADATA_FILENAME
        )

    def write_metadata(self, metadata: RunMetadata) -> Path:
        self.metadata_path.write_text(metadata.model_dump_json(indent=2), encoding="utf-8")
        logger.debug(f"Wrote run metadata: {self.metadata_path}")
        return self.metadata_path
