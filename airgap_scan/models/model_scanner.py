"""Data models for scan dispatch and batch results."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from airgap_scan.models.model_image import ImageReference


class TransportMode(str, Enum):
    """How the scanner reaches image content."""

    API = "api"  # Live engine connection, image addressed by name
    ARCHIVE = "archive"  # Exported single-file archive, image addressed by content


class ScanState(str, Enum):
    """Per-image lifecycle. SUCCEEDED and FAILED are terminal."""

    PENDING = "pending"
    SAVING = "saving"  # Archive mode only
    SCANNING = "scanning"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ScanErrorType(Enum):
    """Per-image (non-fatal) error classification."""

    SAVE_FAILED = "save_failed"
    SCAN_FAILED = "scan_failed"
    SBOM_FAILED = "sbom_failed"
    MIRROR_FAILED = "mirror_failed"


class ScanKind(str, Enum):
    VULN = "vuln"
    SBOM = "sbom"


@dataclass(frozen=True)
class TransportSelection:
    """Transport decided once per run."""

    mode: TransportMode
    socket_path: Path | None = None

    @property
    def docker_host(self) -> str | None:
        """DOCKER_HOST value for Trivy in API mode."""
        if self.mode is TransportMode.API and self.socket_path is not None:
            return f"unix://{self.socket_path}"
        return None


@dataclass
class ScanOutcome:
    """Result of one scanner invocation (vulnerability report or SBOM)."""

    image_ref: str
    kind: ScanKind
    state: ScanState
    output_path: Path | None = None
    error: str | None = None
    error_type: ScanErrorType | None = None
    timed_out: bool = False
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.state is ScanState.SUCCEEDED

    @classmethod
    def succeeded(
        cls, image_ref: str, kind: ScanKind, output_path: Path, duration_seconds: float = 0.0
    ) -> "ScanOutcome":
        return cls(
            image_ref=image_ref,
            kind=kind,
            state=ScanState.SUCCEEDED,
            output_path=output_path,
            duration_seconds=duration_seconds,
        )

    @classmethod
    def failed(
        cls,
        image_ref: str,
        kind: ScanKind,
        error: str,
        error_type: ScanErrorType,
        timed_out: bool = False,
        duration_seconds: float = 0.0,
    ) -> "ScanOutcome":
        return cls(
            image_ref=image_ref,
            kind=kind,
            state=ScanState.FAILED,
            error=error,
            error_type=error_type,
            timed_out=timed_out,
            duration_seconds=duration_seconds,
        )


@dataclass
class ImageScanResult:
    """Vulnerability outcome plus optional SBOM outcome for one image."""

    image: ImageReference
    base_name: str
    vuln: ScanOutcome
    sbom: ScanOutcome | None = None


@dataclass
class ScanBatchResult:
    """Result of scanning every enumerated image in one run."""

    total: int
    succeeded: int
    failed: int
    sbom_succeeded: int
    sbom_failed: int
    results: list[ImageScanResult]
    failures: dict[str, str]  # image ref → error
    mode: TransportMode | None
    report_dir: Path | None = None
    sbom_dir: Path | None = None
    mirror_errors: list[str] = field(default_factory=list)
    archive_path: Path | None = None
    duration_seconds: float = 0.0
