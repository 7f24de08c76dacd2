"""Offline Trivy database: prerequisite check, bundle install and export.

A bundle is a .tgz holding db/trivy.db and db/metadata.json (and
optionally java-db/), built on a connected machine and carried to the
air-gapped host.
"""

import json
import logging
import tarfile
from pathlib import Path, PurePosixPath

from pydantic import ValidationError

from airgap_scan.consts import TRIVY_DB_DIRNAME, TRIVY_DB_FILES, TRIVY_JAVA_DB_DIRNAME
from airgap_scan.errors import BundleError, PrerequisiteMissingError
from airgap_scan.models.model_storage import OfflineDbMetadata

logger = logging.getLogger(__name__)

_BUNDLE_TOP_LEVEL = {TRIVY_DB_DIRNAME, TRIVY_JAVA_DB_DIRNAME}


def db_dir(cache_dir: Path | str) -> Path:
    return Path(cache_dir) / TRIVY_DB_DIRNAME


def check_offline_db(cache_dir: Path | str) -> Path:
    """Ensure the offline DB files are present.

    Args:
        cache_dir: Trivy cache directory

    Returns:
        The db/ directory

    Raises:
        PrerequisiteMissingError: If trivy.db or metadata.json is missing
    """
    directory = db_dir(cache_dir)
    missing = [name for name in TRIVY_DB_FILES if not (directory / name).is_file()]
    if missing:
        raise PrerequisiteMissingError(
            f"Trivy offline DB not found in {directory} (missing: {', '.join(missing)})"
        )
    return directory


def read_db_metadata(cache_dir: Path | str) -> OfflineDbMetadata:
    """Parse db/metadata.json.

    Raises:
        PrerequisiteMissingError: If the DB is missing or metadata.json is unreadable
    """
    directory = check_offline_db(cache_dir)
    path = directory / "metadata.json"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return OfflineDbMetadata.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise PrerequisiteMissingError(f"Unreadable DB metadata {path}: {e}") from e


def _validate_member(member: tarfile.TarInfo) -> None:
    path = PurePosixPath(member.name)
    if path.is_absolute() or ".." in path.parts:
        raise BundleError(f"Unsafe path in bundle: {member.name}")
    if member.issym() or member.islnk() or member.isdev():
        raise BundleError(f"Links and device files are not allowed in bundle: {member.name}")
    parts = [part for part in path.parts if part != "."]
    if parts and parts[0] not in _BUNDLE_TOP_LEVEL:
        raise BundleError(f"Unexpected entry in bundle: {member.name}")


def install_bundle(bundle: Path | str, cache_dir: Path | str) -> OfflineDbMetadata:
    """Extract an offline DB bundle into the Trivy cache directory.

    Args:
        bundle: Path to the .tgz bundle
        cache_dir: Trivy cache directory (created if needed)

    Returns:
        Metadata of the installed DB

    Raises:
        BundleError: If the bundle is unreadable or contains unsafe entries
        PrerequisiteMissingError: If the bundle lacks trivy.db or metadata.json
    """
    bundle = Path(bundle)
    cache_dir = Path(cache_dir)
    if not bundle.is_file():
        raise BundleError(f"Bundle not found: {bundle}")

    try:
        with tarfile.open(bundle, "r:*") as tar:
            members = tar.getmembers()
            for member in members:
                _validate_member(member)
            cache_dir.mkdir(parents=True, exist_ok=True)
            tar.extractall(cache_dir, members=members, filter="data")
    except tarfile.TarError as e:
        raise BundleError(f"Cannot read bundle {bundle}: {e}") from e

    metadata = read_db_metadata(cache_dir)
    logger.info(f"Installed offline DB (schema v{metadata.version}) into {db_dir(cache_dir)}")
    return metadata


def export_bundle(cache_dir: Path | str, output: Path | str) -> Path:
    """Pack the cache's db/ (and java-db/ if present) into a portable .tgz.

    Raises:
        PrerequisiteMissingError: If the cache has no complete offline DB
    """
    cache_dir = Path(cache_dir)
    output = Path(output)
    check_offline_db(cache_dir)

    output.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(output, "w:gz") as tar:
        tar.add(db_dir(cache_dir), arcname=TRIVY_DB_DIRNAME)
        java_db = cache_dir / TRIVY_JAVA_DB_DIRNAME
        if java_db.is_dir():
            tar.add(java_db, arcname=TRIVY_JAVA_DB_DIRNAME)
    logger.info(f"Exported offline DB bundle: {output}")
    return output
