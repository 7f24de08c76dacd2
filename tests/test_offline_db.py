"""Tests for offline DB checks and bundle handling."""

import io
import json
import tarfile
from pathlib import Path

import pytest

from airgap_scan.errors import BundleError, PrerequisiteMissingError
from airgap_scan.storage.offline_db import (
    check_offline_db,
    export_bundle,
    install_bundle,
    read_db_metadata,
)


def _add_bytes(tar: tarfile.TarFile, name: str, data: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(data)
    tar.addfile(info, io.BytesIO(data))


def _bundle(path: Path, members: dict[str, bytes]) -> Path:
    with tarfile.open(path, "w:gz") as tar:
        for name, data in members.items():
            _add_bytes(tar, name, data)
    return path


METADATA = json.dumps({"Version": 2, "UpdatedAt": "2026-10-19T00:00:00.123456789Z"}).encode()


class TestCheckOfflineDb:
    """Tests for check_offline_db() and read_db_metadata()."""

    def test_present(self, cache_dir: Path) -> None:
        """Test a complete DB passes."""
        assert check_offline_db(cache_dir) == cache_dir / "db"

    def test_missing_files_named(self, tmp_path: Path) -> None:
        """Test the error names what is missing."""
        (tmp_path / "db").mkdir()
        (tmp_path / "db" / "trivy.db").write_bytes(b"bolt")

        with pytest.raises(PrerequisiteMissingError, match="metadata.json"):
            check_offline_db(tmp_path)

    def test_read_metadata(self, cache_dir: Path) -> None:
        """Test metadata.json is parsed."""
        metadata = read_db_metadata(cache_dir)
        assert metadata.version == 2
        assert metadata.downloaded_at == "2026-10-19T06:00:00Z"

    def test_unreadable_metadata(self, cache_dir: Path) -> None:
        """Test corrupt metadata is reported as a missing prerequisite."""
        (cache_dir / "db" / "metadata.json").write_text("{not json")
        with pytest.raises(PrerequisiteMissingError, match="Unreadable"):
            read_db_metadata(cache_dir)


class TestInstallBundle:
    """Tests for install_bundle()."""

    def test_install(self, tmp_path: Path) -> None:
        """Test a valid bundle is extracted into the cache."""
        bundle = _bundle(
            tmp_path / "trivy-offline-db.tgz",
            {"db/trivy.db": b"bolt", "db/metadata.json": METADATA, "java-db/trivy-java.db": b"j"},
        )
        cache = tmp_path / "cache"

        metadata = install_bundle(bundle, cache)

        assert metadata.version == 2
        assert (cache / "db" / "trivy.db").read_bytes() == b"bolt"
        assert (cache / "java-db" / "trivy-java.db").exists()

    def test_missing_bundle(self, tmp_path: Path) -> None:
        """Test a missing file raises BundleError."""
        with pytest.raises(BundleError, match="not found"):
            install_bundle(tmp_path / "nope.tgz", tmp_path / "cache")

    def test_not_a_tarball(self, tmp_path: Path) -> None:
        """Test garbage input raises BundleError."""
        bogus = tmp_path / "bogus.tgz"
        bogus.write_bytes(b"definitely not a tarball")
        with pytest.raises(BundleError):
            install_bundle(bogus, tmp_path / "cache")

    @pytest.mark.parametrize("name", ["../evil", "/etc/passwd", "db/../../evil", "other/file"])
    def test_unsafe_paths_rejected(self, tmp_path: Path, name: str) -> None:
        """Test traversal, absolute and unexpected entries are rejected before extraction."""
        bundle = _bundle(tmp_path / "bad.tgz", {"db/trivy.db": b"bolt", name: b"x"})
        cache = tmp_path / "cache"

        with pytest.raises(BundleError):
            install_bundle(bundle, cache)

        assert not (cache / "db" / "trivy.db").exists()

    def test_symlink_rejected(self, tmp_path: Path) -> None:
        """Test link members are rejected."""
        bundle = tmp_path / "link.tgz"
        with tarfile.open(bundle, "w:gz") as tar:
            info = tarfile.TarInfo("db/trivy.db")
            info.type = tarfile.SYMTYPE
            info.linkname = "/etc/shadow"
            tar.addfile(info)

        with pytest.raises(BundleError, match="Links"):
            install_bundle(bundle, tmp_path / "cache")

    def test_incomplete_bundle(self, tmp_path: Path) -> None:
        """Test a bundle without metadata.json fails the prerequisite check."""
        bundle = _bundle(tmp_path / "partial.tgz", {"db/trivy.db": b"bolt"})
        with pytest.raises(PrerequisiteMissingError):
            install_bundle(bundle, tmp_path / "cache")


class TestExportBundle:
    """Tests for export_bundle()."""

    def test_export_then_install(self, cache_dir: Path, tmp_path: Path) -> None:
        """Test an exported bundle installs on another host."""
        output = export_bundle(cache_dir, tmp_path / "out" / "bundle.tgz")

        with tarfile.open(output) as tar:
            names = tar.getnames()
        assert "db/trivy.db" in names
        assert "db/metadata.json" in names

        metadata = install_bundle(output, tmp_path / "other-cache")
        assert metadata.version == 2

    def test_export_requires_db(self, tmp_path: Path) -> None:
        """Test exporting an empty cache fails."""
        with pytest.raises(PrerequisiteMissingError):
            export_bundle(tmp_path / "empty", tmp_path / "bundle.tgz")
