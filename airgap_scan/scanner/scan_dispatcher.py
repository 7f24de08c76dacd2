"""Per-image scan dispatch for the API and archive transports."""

import logging
import time
from collections.abc import Awaitable
from pathlib import Path

from airgap_scan.consts import MAX_ERROR_LENGTH
from airgap_scan.models.model_image import ImageReference
from airgap_scan.models.model_run import RunContext
from airgap_scan.models.model_scanner import (
    ImageScanResult,
    ScanErrorType,
    ScanKind,
    ScanOutcome,
    ScanState,
    TransportMode,
    TransportSelection,
)
from airgap_scan.scanner.podman import PodmanClient
from airgap_scan.scanner.process import CommandResult
from airgap_scan.scanner.sanitizer import NameRegistry
from airgap_scan.scanner.trivy_scanner import TrivyScanner
from airgap_scan.storage.run_directory import RunDirectory

logger = logging.getLogger(__name__)

_FAILURE_TYPES = {
    ScanKind.VULN: ScanErrorType.SCAN_FAILED,
    ScanKind.SBOM: ScanErrorType.SBOM_FAILED,
}


def _describe_failure(result: CommandResult) -> str:
    if result.timed_out:
        return result.stderr
    stderr = result.stderr.strip()[:MAX_ERROR_LENGTH]
    return f"exit code {result.returncode}: {stderr}" if stderr else f"exit code {result.returncode}"


class ScanDispatcher:
    """Scans one image at a time; failures are recorded, never raised.

    Lifecycle per image: PENDING → SAVING (archive only) → SCANNING →
    SUCCEEDED | FAILED. The vulnerability scan and the SBOM have separate
    outcomes; neither blocks the other.
    """

    def __init__(
        self,
        context: RunContext,
        scanner: TrivyScanner,
        podman: PodmanClient,
        run_dir: RunDirectory,
        temp_dir: Path,
        names: NameRegistry | None = None,
    ):
        """Initialize ScanDispatcher.

        Args:
            context: Run configuration
            scanner: TrivyScanner used for every invocation
            podman: PodmanClient used for archive export
            run_dir: Destination for reports and SBOMs
            temp_dir: Process-wide directory for temporary archives
            names: Base-name registry shared across the run
        """
        self.context = context
        self.scanner = scanner
        self.podman = podman
        self.run_dir = run_dir
        self.temp_dir = temp_dir
        self.names = names or NameRegistry(disambiguate=context.disambiguate_names)

    def _transition(self, ref: str, kind: ScanKind, state: ScanState) -> None:
        logger.debug(f"{ref} [{kind.value}] → {state.value}")

    def archive_path(self, base_name: str, index: int) -> Path:
        """Temporary archive path; the index keeps parallel workers apart."""
        return self.temp_dir / f"{index:04d}-{base_name}.tar"

    async def scan(
        self,
        image: ImageReference,
        selection: TransportSelection,
        index: int = 0,
    ) -> ImageScanResult:
        """Scan one image (and optionally produce its SBOM).

        Args:
            image: Image to scan
            selection: Transport chosen for the run
            index: Position in the batch, used for unique temp names

        Returns:
            ImageScanResult with vuln and optional SBOM outcomes
        """
        ref = image.best_ref
        base_name = self.names.claim(ref)
        report_path = self.run_dir.report_path(base_name)
        sbom_path = self.run_dir.sbom_path(base_name) if self.context.generate_sbom else None

        self._transition(ref, ScanKind.VULN, ScanState.PENDING)
        if selection.mode is TransportMode.API:
            vuln, sbom = await self._scan_api(ref, report_path, sbom_path, selection.docker_host)
        else:
            vuln, sbom = await self._scan_archive(ref, report_path, sbom_path, base_name, index)

        if vuln.success:
            logger.info(f"✓ {ref} → {vuln.output_path}")
        else:
            logger.warning(f"✗ {ref}: {vuln.error}")
        if sbom is not None and not sbom.success:
            logger.warning(f"✗ SBOM {ref}: {sbom.error}")

        return ImageScanResult(image=image, base_name=base_name, vuln=vuln, sbom=sbom)

    async def _scan_api(
        self,
        ref: str,
        report_path: Path,
        sbom_path: Path | None,
        docker_host: str | None,
    ) -> tuple[ScanOutcome, ScanOutcome | None]:
        vuln = await self._invoke(
            ref, ScanKind.VULN, report_path,
            self.scanner.scan_by_name(ref, report_path, docker_host),
        )
        sbom = None
        if sbom_path is not None:
            sbom = await self._invoke(
                ref, ScanKind.SBOM, sbom_path,
                self.scanner.sbom_by_name(ref, sbom_path, docker_host),
            )
        return vuln, sbom

    async def _scan_archive(
        self,
        ref: str,
        report_path: Path,
        sbom_path: Path | None,
        base_name: str,
        index: int,
    ) -> tuple[ScanOutcome, ScanOutcome | None]:
        archive = self.archive_path(base_name, index)
        try:
            self._transition(ref, ScanKind.VULN, ScanState.SAVING)
            start_time = time.time()
            try:
                save_result = await self.podman.save_image(ref, archive, timeout=self.context.save_timeout)
            except Exception as e:
                save_result = CommandResult(returncode=-1, stdout="", stderr=f"podman save error: {e}")

            if not save_result.success:
                # No archive → no scanner invocation for either output
                error = f"Save failed for {ref}: {_describe_failure(save_result)}"
                duration = time.time() - start_time
                vuln = ScanOutcome.failed(
                    ref, ScanKind.VULN, error, ScanErrorType.SAVE_FAILED,
                    timed_out=save_result.timed_out, duration_seconds=duration,
                )
                sbom = None
                if sbom_path is not None:
                    sbom = ScanOutcome.failed(
                        ref, ScanKind.SBOM, error, ScanErrorType.SAVE_FAILED,
                        timed_out=save_result.timed_out, duration_seconds=duration,
                    )
                return vuln, sbom

            vuln = await self._invoke(
                ref, ScanKind.VULN, report_path,
                self.scanner.scan_archive(archive, report_path),
            )
            sbom = None
            if sbom_path is not None:
                sbom = await self._invoke(
                    ref, ScanKind.SBOM, sbom_path,
                    self.scanner.sbom_archive(archive, sbom_path),
                )
            return vuln, sbom
        finally:
            archive.unlink(missing_ok=True)
            logger.debug(f"Removed temporary archive {archive}")

    async def _invoke(
        self,
        ref: str,
        kind: ScanKind,
        output: Path,
        call: Awaitable[CommandResult],
    ) -> ScanOutcome:
        """Await one scanner call and convert it into a terminal outcome."""
        self._transition(ref, kind, ScanState.SCANNING)
        start_time = time.time()
        label = "Scan" if kind is ScanKind.VULN else "SBOM"

        try:
            result = await call
        except Exception as e:
            result = CommandResult(returncode=-1, stdout="", stderr=f"trivy error: {e}")
        duration = time.time() - start_time

        if result.success:
            self._transition(ref, kind, ScanState.SUCCEEDED)
            return ScanOutcome.succeeded(ref, kind, output, duration_seconds=duration)

        # Only successful scans leave a file in the run directory
        output.unlink(missing_ok=True)
        self._transition(ref, kind, ScanState.FAILED)
        return ScanOutcome.failed(
            ref,
            kind,
            f"{label} failed for {ref}: {_describe_failure(result)}",
            _FAILURE_TYPES[kind],
            timed_out=result.timed_out,
            duration_seconds=duration,
        )
