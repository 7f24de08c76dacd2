"""Trivy capability detection, probed once per run."""

import logging
import re
from dataclasses import dataclass

from airgap_scan.consts import TRIVY_SBOM_SUBCOMMAND_MIN_VERSION
from airgap_scan.scanner.process import run_command

logger = logging.getLogger(__name__)

_VERSION_LINE = re.compile(r"^\s*Version:\s*v?(\d+)\.(\d+)(?:\.(\d+))?", re.MULTILINE)
_INPUT_FLAG = re.compile(r"(^|\s)--input\b", re.MULTILINE)


@dataclass(frozen=True)
class TrivyCapabilities:
    """What the installed Trivy supports."""

    version: tuple[int, int, int] | None = None
    supports_image_input: bool = True  # 'trivy image --input' (else --file)

    @property
    def version_string(self) -> str:
        return ".".join(str(part) for part in self.version) if self.version else "unknown"

    @property
    def supports_sbom_subcommand(self) -> bool:
        """'trivy sbom' accepts image refs and --input archives (>= 0.62.0)."""
        if self.version is None:
            return False
        return self.version >= TRIVY_SBOM_SUBCOMMAND_MIN_VERSION


def parse_trivy_version(output: str) -> tuple[int, int, int] | None:
    """Extract (major, minor, patch) from 'trivy --version' output.

    Examples:
        "Version: 0.61.1" → (0, 61, 1)
        "Version: v0.62.0\\nVulnerability DB: ..." → (0, 62, 0)
    """
    match = _VERSION_LINE.search(output)
    if not match:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch or 0)


def help_mentions_input_flag(help_text: str) -> bool:
    return bool(_INPUT_FLAG.search(help_text))


async def probe_capabilities(trivy_path: str = "trivy") -> TrivyCapabilities:
    """Run the version and help probes and build TrivyCapabilities.

    Probe failures degrade to conservative defaults rather than raising.
    """
    version_result = await run_command([trivy_path, "--version"])
    version = parse_trivy_version(version_result.stdout) if version_result.success else None

    help_result = await run_command([trivy_path, "image", "--help"])
    if help_result.success:
        supports_input = help_mentions_input_flag(help_result.stdout + help_result.stderr)
    else:
        supports_input = True

    capabilities = TrivyCapabilities(version=version, supports_image_input=supports_input)
    logger.info(
        f"Trivy detected: {capabilities.version_string} "
        f"(sbom subcommand: {capabilities.supports_sbom_subcommand}, "
        f"image --input: {capabilities.supports_image_input})"
    )
    return capabilities
