"""Trivy CLI wrapper for offline image scanning and SBOM generation."""

import logging
import os
from pathlib import Path

from airgap_scan.models.model_run import RunContext
from airgap_scan.scanner.capabilities import TrivyCapabilities
from airgap_scan.scanner.process import CommandResult, run_command

logger = logging.getLogger(__name__)


class TrivyScanner:
    """Builds and runs Trivy commands against an offline database.

    Every invocation skips DB updates and runs offline; the cache directory
    is only read during a run.
    """

    def __init__(
        self,
        context: RunContext,
        capabilities: TrivyCapabilities | None = None,
        trivy_path: str = "trivy",
    ):
        """Initialize TrivyScanner.

        Args:
            context: Run configuration (filters, cache dir, timeouts, SBOM format)
            capabilities: Probed Trivy capabilities (default: assume current Trivy)
            trivy_path: Path to trivy executable (default: "trivy")
        """
        self.context = context
        self.capabilities = capabilities or TrivyCapabilities()
        self.trivy_path = trivy_path

    # === FLAG SETS ===

    def _offline_flags(self) -> list[str]:
        return [
            "--skip-db-update",
            "--offline-scan",
            "--cache-dir",
            str(self.context.cache_dir),
            "--timeout",
            self.context.trivy_timeout,
        ]

    def vuln_flags(self) -> list[str]:
        """Flags shared by every vulnerability scan.

        --severity is only passed for a non-empty filter, so an empty filter
        means every severity rather than Trivy's own default subset.
        """
        flags = self._offline_flags() + ["--format", "json"]
        if self.context.severity:
            flags += ["--severity", ",".join(self.context.severity)]
        if self.context.pkg_types:
            flags += ["--pkg-types", self.context.pkg_types]
        if self.context.scanners:
            flags += ["--scanners", self.context.scanners]
        return flags

    def sbom_flags(self) -> list[str]:
        return self._offline_flags() + ["--format", self.context.sbom_format.value]

    def _archive_flag(self) -> str:
        return "--input" if self.capabilities.supports_image_input else "--file"

    # === COMMANDS ===

    def vuln_by_name_cmd(self, ref: str, output: Path) -> list[str]:
        return [
            self.trivy_path, "image", *self.vuln_flags(),
            "--image-src", "podman", "-o", str(output), ref,
        ]

    def vuln_by_archive_cmd(self, archive: Path, output: Path) -> list[str]:
        return [
            self.trivy_path, "image", *self.vuln_flags(),
            self._archive_flag(), str(archive), "-o", str(output),
        ]

    def sbom_by_name_cmd(self, ref: str, output: Path) -> list[str]:
        if self.capabilities.supports_sbom_subcommand:
            return [
                self.trivy_path, "sbom", *self.sbom_flags(),
                "--image-src", "podman", "-o", str(output), ref,
            ]
        return [
            self.trivy_path, "image", *self.sbom_flags(),
            "--image-src", "podman", "-o", str(output), ref,
        ]

    def sbom_by_archive_cmd(self, archive: Path, output: Path) -> list[str]:
        if self.capabilities.supports_sbom_subcommand:
            return [
                self.trivy_path, "sbom", *self.sbom_flags(),
                "--input", str(archive), "-o", str(output),
            ]
        return [
            self.trivy_path, "image", *self.sbom_flags(),
            self._archive_flag(), str(archive), "-o", str(output),
        ]

    # === EXECUTION ===

    def _env(self, docker_host: str | None) -> dict[str, str]:
        env = os.environ.copy()
        if docker_host:
            env["DOCKER_HOST"] = docker_host
            logger.debug(f"Using DOCKER_HOST={docker_host}")
        return env

    async def run(self, cmd: list[str], docker_host: str | None = None) -> CommandResult:
        """Run a Trivy command under the external timeout, if configured."""
        return await run_command(
            cmd,
            timeout=self.context.external_timeout,
            env=self._env(docker_host),
        )

    async def scan_by_name(self, ref: str, output: Path, docker_host: str | None) -> CommandResult:
        return await self.run(self.vuln_by_name_cmd(ref, output), docker_host)

    async def scan_archive(self, archive: Path, output: Path) -> CommandResult:
        return await self.run(self.vuln_by_archive_cmd(archive, output))

    async def sbom_by_name(self, ref: str, output: Path, docker_host: str | None) -> CommandResult:
        return await self.run(self.sbom_by_name_cmd(ref, output), docker_host)

    async def sbom_archive(self, archive: Path, output: Path) -> CommandResult:
        return await self.run(self.sbom_by_archive_cmd(archive, output))
