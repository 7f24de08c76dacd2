"""Models for airgap_scan."""

from airgap_scan.models.model_image import ImageReference
from airgap_scan.models.model_run import RunContext, SbomFormat, parse_duration, parse_severity
from airgap_scan.models.model_scanner import (
    ImageScanResult,
    ScanBatchResult,
    ScanErrorType,
    ScanKind,
    ScanOutcome,
    ScanState,
    TransportMode,
    TransportSelection,
)
from airgap_scan.models.model_storage import OfflineDbMetadata, RunMetadata

__all__ = [
    # Image models
    "ImageReference",
    # Run configuration
    "RunContext",
    "SbomFormat",
    "parse_duration",
    "parse_severity",
    # Scan models
    "ImageScanResult",
    "ScanBatchResult",
    "ScanErrorType",
    "ScanKind",
    "ScanOutcome",
    "ScanState",
    "TransportMode",
    "TransportSelection",
    # Storage models
    "OfflineDbMetadata",
    "RunMetadata",
]
