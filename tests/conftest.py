"""Pytest configuration and fixtures."""

import json
from pathlib import Path

import pytest

from airgap_scan.models.model_image import ImageReference
from airgap_scan.models.model_run import RunContext
from airgap_scan.scanner.capabilities import TrivyCapabilities
from airgap_scan.storage.run_directory import RunDirectory


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Trivy cache directory holding a complete offline DB."""
    cache = tmp_path / "cache"
    db = cache / "db"
    db.mkdir(parents=True)
    (db / "trivy.db").write_bytes(b"bolt")
    (db / "metadata.json").write_text(
        json.dumps(
            {
                "Version": 2,
                "NextUpdate": "2026-10-20T00:00:00.123456789Z",
                "UpdatedAt": "2026-10-19T00:00:00.123456789Z",
                "DownloadedAt": "2026-10-19T06:00:00Z",
            }
        )
    )
    return cache


@pytest.fixture
def context(tmp_path: Path, cache_dir: Path) -> RunContext:
    """Run context writing under tmp_path with archive transport."""
    return RunContext(
        cache_dir=cache_dir,
        output_root=tmp_path / "out",
        host_label="testhost",
        force_archive=True,
        generate_sbom=True,
        save_timeout=5.0,
    )


@pytest.fixture
def run_dir(tmp_path: Path) -> RunDirectory:
    """Run directory with a fixed timestamp."""
    return RunDirectory.create(tmp_path / "out", with_sboms=True, timestamp="20261019-120000")


@pytest.fixture
def capabilities() -> TrivyCapabilities:
    """Capabilities of a current Trivy release."""
    return TrivyCapabilities(version=(0, 62, 1), supports_image_input=True)


@pytest.fixture
def sample_images() -> list[ImageReference]:
    """Two tagged images."""
    return [
        ImageReference(repository="db", tag="2.0"),
        ImageReference(repository="web", tag="1.0"),
    ]
