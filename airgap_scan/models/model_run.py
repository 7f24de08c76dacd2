"""Run configuration: defaults, overridden by environment, overridden by CLI."""

import logging
import os
import re
import socket
from collections.abc import Mapping
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from airgap_scan.consts import (
    DEFAULT_ARCHIVE_RUN,
    DEFAULT_DISAMBIGUATE_NAMES,
    DEFAULT_FORCE_ARCHIVE,
    DEFAULT_GENERATE_SBOM,
    DEFAULT_ONLY_TAGGED,
    DEFAULT_SBOM_FORMAT,
    DEFAULT_SCAN_CONCURRENCY,
    FALSE_VALUES,
    PODMAN_SAVE_TIMEOUT,
    TRIVY_DEFAULT_CACHE_DIR,
    TRIVY_DEFAULT_PKG_TYPES,
    TRIVY_DEFAULT_SCANNERS,
    TRIVY_DEFAULT_SEVERITY,
    TRIVY_DEFAULT_TIMEOUT,
    TRUE_VALUES,
)

logger = logging.getLogger(__name__)

_DURATION_SEGMENT = re.compile(r"(\d+(?:\.\d+)?)([smh]?)")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600}


class SbomFormat(str, Enum):
    """SBOM output formats supported by Trivy."""

    CYCLONEDX = "cyclonedx"
    SPDX_JSON = "spdx-json"


def parse_duration(value: str | None) -> float | None:
    """Parse a coreutils-style duration into seconds.

    Accepts plain seconds ("90") and unit segments ("120s", "10m", "1h30m").

    Args:
        value: Duration string. Empty or None means "no limit".

    Returns:
        Seconds as float, or None for no limit.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    if value is None:
        return None
    text = value.strip().lower()
    if not text:
        return None

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_SEGMENT.match(text, pos)
        if not match:
            raise ValueError(f"Invalid duration: {value!r}")
        number, unit = match.groups()
        # A unit-less number is only valid as the whole string
        if not unit and (pos != 0 or match.end() < len(text)):
            raise ValueError(f"Invalid duration: {value!r}")
        total += float(number) * _DURATION_UNITS[unit]
        pos = match.end()

    if total <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return total


def parse_severity(value: str | None) -> list[str]:
    """Split a comma separated severity list, upper-cased and de-duplicated."""
    if not value:
        return []
    severities: list[str] = []
    for item in value.split(","):
        item = item.strip().upper()
        if item and item not in severities:
            severities.append(item)
    return severities


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    lowered = raw.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    logger.warning(f"Ignoring invalid boolean {name}={raw!r}, using default {default}")
    return default


def _env_duration(env: Mapping[str, str], name: str, default: str) -> float | None:
    raw = env.get(name, default)
    try:
        return parse_duration(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid duration {name}={raw!r}, using default {default!r}")
        return parse_duration(default)


def _env_int(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid integer {name}={raw!r}, using default {default}")
        return default
    if value < minimum:
        logger.warning(f"{name}={value} is below {minimum}, using default {default}")
        return default
    return value


def _default_host_label() -> str:
    return socket.gethostname().split(".")[0] or "localhost"


class RunContext(BaseModel):
    """Configuration for one invocation. Read-only once created."""

    model_config = ConfigDict(frozen=True)

    severity: list[str] = Field(default_factory=list, description="Severity filter; empty = all")
    cache_dir: Path = Field(default=TRIVY_DEFAULT_CACHE_DIR, description="Trivy cache with offline DB")
    tagged_only: bool = Field(default=DEFAULT_ONLY_TAGGED, description="Skip <none>:<none> images")
    force_archive: bool = Field(default=DEFAULT_FORCE_ARCHIVE, description="Always scan exported archives")
    pkg_types: str = Field(default=TRIVY_DEFAULT_PKG_TYPES, description="Trivy --pkg-types")
    scanners: str = Field(default=TRIVY_DEFAULT_SCANNERS, description="Trivy --scanners")
    save_timeout: float | None = Field(
        default_factory=lambda: parse_duration(PODMAN_SAVE_TIMEOUT),
        description="Wall-clock budget for 'podman save' in seconds",
    )
    trivy_timeout: str = Field(default=TRIVY_DEFAULT_TIMEOUT, description="Trivy's internal --timeout")
    external_timeout: float | None = Field(
        default=None, description="Wall-clock budget per scanner invocation in seconds"
    )
    generate_sbom: bool = Field(default=DEFAULT_GENERATE_SBOM, description="Produce an SBOM per image")
    sbom_format: SbomFormat = Field(default=SbomFormat(DEFAULT_SBOM_FORMAT))
    output_root: Path = Field(default_factory=Path.cwd, description="Parent of the run directory")
    dest_root: Path | None = Field(default=None, description="Optional mirror destination root")
    host_label: str = Field(default_factory=_default_host_label, description="Mirror key / metadata host")
    archive_run: bool = Field(default=DEFAULT_ARCHIVE_RUN, description="Pack the run into a .tar.gz")
    concurrency: int = Field(default=DEFAULT_SCAN_CONCURRENCY, ge=1, description="Worker pool size")
    disambiguate_names: bool = Field(
        default=DEFAULT_DISAMBIGUATE_NAMES, description="Suffix colliding report names"
    )

    @field_validator("severity", mode="before")
    @classmethod
    def _split_severity(cls, value: str | list[str] | None) -> list[str]:
        if value is None or isinstance(value, str):
            return parse_severity(value)
        return parse_severity(",".join(value))

    @field_validator("host_label")
    @classmethod
    def _non_empty_host(cls, value: str) -> str:
        value = value.strip()
        return value or _default_host_label()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RunContext":
        """Build a RunContext from environment overrides.

        Absent or invalid values fall back to the documented defaults.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            RunContext
        """
        env = os.environ if environ is None else environ

        sbom_format_raw = env.get("SBOM_FORMAT", DEFAULT_SBOM_FORMAT).strip().lower()
        try:
            sbom_format = SbomFormat(sbom_format_raw)
        except ValueError:
            logger.warning(
                f"Ignoring invalid SBOM_FORMAT={sbom_format_raw!r}, using {DEFAULT_SBOM_FORMAT!r}"
            )
            sbom_format = SbomFormat(DEFAULT_SBOM_FORMAT)

        cache_dir = env.get("CACHE_DIR", "").strip()
        output_root = env.get("REPORT_ROOT", "").strip()
        dest_root = env.get("DEST_ROOT", "").strip()
        host_label = env.get("HOST_LABEL", "").strip()

        return cls(
            severity=env.get("SEVERITY", TRIVY_DEFAULT_SEVERITY),
            cache_dir=Path(cache_dir).expanduser() if cache_dir else TRIVY_DEFAULT_CACHE_DIR,
            tagged_only=_env_bool(env, "ONLY_TAGGED", DEFAULT_ONLY_TAGGED),
            force_archive=_env_bool(env, "FORCE_ARCHIVE", DEFAULT_FORCE_ARCHIVE),
            pkg_types=env.get("TRIVY_PKG_TYPES", TRIVY_DEFAULT_PKG_TYPES).strip(),
            scanners=env.get("TRIVY_SCANNERS", TRIVY_DEFAULT_SCANNERS).strip(),
            save_timeout=_env_duration(env, "SAVE_TIMEOUT", PODMAN_SAVE_TIMEOUT),
            trivy_timeout=env.get("TRIVY_TIMEOUT", "").strip() or TRIVY_DEFAULT_TIMEOUT,
            external_timeout=_env_duration(env, "EXTERNAL_TIMEOUT", ""),
            generate_sbom=_env_bool(env, "GENERATE_SBOM", DEFAULT_GENERATE_SBOM),
            sbom_format=sbom_format,
            output_root=Path(output_root).expanduser() if output_root else Path.cwd(),
            dest_root=Path(dest_root).expanduser() if dest_root else None,
            host_label=host_label or _default_host_label(),
            archive_run=_env_bool(env, "ARCHIVE_RUN", DEFAULT_ARCHIVE_RUN),
            concurrency=_env_int(env, "SCAN_CONCURRENCY", DEFAULT_SCAN_CONCURRENCY),
            disambiguate_names=_env_bool(env, "DISAMBIGUATE_NAMES", DEFAULT_DISAMBIGUATE_NAMES),
        )
