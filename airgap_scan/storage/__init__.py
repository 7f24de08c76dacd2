"""Run directory layout, artifact mirroring and the offline Trivy DB."""

from airgap_scan.storage.artifact_writer import ArtifactWriter
from airgap_scan.storage.offline_db import (
    check_offline_db,
    export_bundle,
    install_bundle,
    read_db_metadata,
)
from airgap_scan.storage.run_directory import RunDirectory

__all__ = [
    "ArtifactWriter",
    "RunDirectory",
    "check_offline_db",
    "export_bundle",
    "install_bundle",
    "read_db_metadata",
]
