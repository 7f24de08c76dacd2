"""Orchestrates one offline scan run: checks, enumeration, dispatch, artifacts."""

import asyncio
import contextlib
import logging
import signal
import tempfile
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from airgap_scan.consts import TEMP_ARCHIVE_DIR_PREFIX
from airgap_scan.errors import ToolMissingError
from airgap_scan.models.model_image import ImageReference
from airgap_scan.models.model_run import RunContext
from airgap_scan.models.model_scanner import ImageScanResult, ScanBatchResult, TransportSelection
from airgap_scan.models.model_storage import RunMetadata
from airgap_scan.scanner.capabilities import TrivyCapabilities, probe_capabilities
from airgap_scan.scanner.image_enumerator import ImageEnumerator
from airgap_scan.scanner.podman import PodmanClient
from airgap_scan.scanner.process import find_missing_tools
from airgap_scan.scanner.scan_dispatcher import ScanDispatcher
from airgap_scan.scanner.transport import select_transport
from airgap_scan.scanner.trivy_scanner import TrivyScanner
from airgap_scan.storage.artifact_writer import ArtifactWriter
from airgap_scan.storage.offline_db import check_offline_db
from airgap_scan.storage.run_directory import RunDirectory

logger = logging.getLogger(__name__)


@dataclass
class ScanSession:
    """Run-scoped state shared by the components of one run."""

    context: RunContext
    selection: TransportSelection
    capabilities: TrivyCapabilities
    run_dir: RunDirectory
    temp_dir: Path
    attempted: list[str] = field(default_factory=list)


class ScanOrchestrator:
    """Runs a best-effort batch scan over every enumerated image."""

    def __init__(
        self,
        context: RunContext,
        podman: PodmanClient | None = None,
        enumerator: ImageEnumerator | None = None,
        trivy_path: str = "trivy",
        user_socket: Path | None = None,
        system_socket: Path | None = None,
    ):
        """Initialize ScanOrchestrator.

        Args:
            context: Run configuration
            podman: PodmanClient (default: podman on PATH)
            enumerator: ImageEnumerator (default: built on podman)
            trivy_path: Path to trivy executable
            user_socket: Override for the user-scoped podman socket
            system_socket: Override for the system-scoped podman socket
        """
        self.context = context
        self.podman = podman or PodmanClient()
        self.enumerator = enumerator or ImageEnumerator(self.podman)
        self.trivy_path = trivy_path
        self.user_socket = user_socket
        self.system_socket = system_socket

    def check_tools(self) -> None:
        """Raise ToolMissingError if podman or trivy is not on PATH."""
        missing = find_missing_tools([self.podman.podman_path, self.trivy_path])
        if missing:
            raise ToolMissingError(missing)

    def check_prerequisites(self) -> None:
        """Fatal checks performed before any work."""
        self.check_tools()
        check_offline_db(self.context.cache_dir)

    def select_transport(self) -> TransportSelection:
        return select_transport(
            self.context.force_archive,
            user_socket=self.user_socket,
            system_socket=self.system_socket,
        )

    async def plan(self) -> tuple[TransportSelection, list[ImageReference]]:
        """Transport and image list a run would use, without scanning."""
        self.check_tools()
        selection = self.select_transport()
        images = await self.enumerator.list_images(self.context.tagged_only)
        return selection, images

    @contextlib.contextmanager
    def _cancel_on_sigterm(self) -> Iterator[None]:
        """Turn SIGTERM into cancellation of the running batch.

        Cancellation unwinds through the temporary directory's context
        manager, so archives are removed on external termination too.
        """
        loop = asyncio.get_running_loop()
        task = asyncio.current_task()
        installed = False
        if task is not None:
            try:
                loop.add_signal_handler(signal.SIGTERM, task.cancel)
                installed = True
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.debug(f"SIGTERM handler not installed: {e}")
        try:
            yield
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGTERM)

    async def run(
        self,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> ScanBatchResult:
        """Scan every enumerated image.

        Per-image failures are recorded in the result; only missing tools,
        a missing offline DB or a failed engine query raise.

        Args:
            progress_callback: Optional callback(current, total) after each image

        Returns:
            ScanBatchResult with aggregated outcomes

        Raises:
            ToolMissingError: podman or trivy not installed
            PrerequisiteMissingError: offline DB missing
            EngineQueryError: image listing failed
        """
        start_time = time.time()
        context = self.context

        self.check_prerequisites()
        capabilities = await probe_capabilities(self.trivy_path)
        selection = self.select_transport()

        images = await self.enumerator.list_images(context.tagged_only)
        if not images:
            if context.tagged_only:
                logger.warning("No tagged images found. Tag images or set ONLY_TAGGED=false.")
            else:
                logger.warning("No local images found.")
            return ScanBatchResult(
                total=0,
                succeeded=0,
                failed=0,
                sbom_succeeded=0,
                sbom_failed=0,
                results=[],
                failures={},
                mode=selection.mode,
                duration_seconds=time.time() - start_time,
            )

        logger.info(f"Found {len(images)} image(s); mode: {selection.mode.value.upper()}")
        run_dir = RunDirectory.create(context.output_root, with_sboms=context.generate_sbom)
        scanner = TrivyScanner(context, capabilities, trivy_path=self.trivy_path)
        writer = ArtifactWriter(
            run_dir,
            host_label=context.host_label,
            dest_root=context.dest_root,
            archive_run=context.archive_run,
        )

        with tempfile.TemporaryDirectory(prefix=TEMP_ARCHIVE_DIR_PREFIX) as tmp, self._cancel_on_sigterm():
            session = ScanSession(
                context=context,
                selection=selection,
                capabilities=capabilities,
                run_dir=run_dir,
                temp_dir=Path(tmp),
            )
            dispatcher = ScanDispatcher(context, scanner, self.podman, run_dir, session.temp_dir)
            results = await self._dispatch_all(
                session, dispatcher, writer, images, progress_callback
            )

        succeeded = [r.vuln.image_ref for r in results if r.vuln.success]
        failures = {r.vuln.image_ref: r.vuln.error or "Unknown error" for r in results if not r.vuln.success}
        sboms = [r.sbom for r in results if r.sbom is not None]

        run_dir.write_metadata(
            RunMetadata(
                host=context.host_label,
                timestamp=run_dir.timestamp,
                images=session.attempted,
                mode=selection.mode,
                succeeded=succeeded,
                failed=list(failures),
            )
        )
        archive_path = writer.finalize()

        duration = time.time() - start_time
        logger.info(
            f"Done in {duration:.1f}s: {len(succeeded)} succeeded, {len(failures)} failed. "
            f"Reports: {run_dir.report_dir}"
        )

        return ScanBatchResult(
            total=len(images),
            succeeded=len(succeeded),
            failed=len(failures),
            sbom_succeeded=sum(1 for s in sboms if s.success),
            sbom_failed=sum(1 for s in sboms if not s.success),
            results=results,
            failures=failures,
            mode=selection.mode,
            report_dir=run_dir.report_dir,
            sbom_dir=run_dir.sbom_dir,
            mirror_errors=list(writer.errors),
            archive_path=archive_path,
            duration_seconds=duration,
        )

    async def _dispatch_all(
        self,
        session: ScanSession,
        dispatcher: ScanDispatcher,
        writer: ArtifactWriter,
        images: list[ImageReference],
        progress_callback: Callable[[int, int], None] | None,
    ) -> list[ImageScanResult]:
        """Dispatch images through a worker pool of size context.concurrency.

        With the default size of 1 images are scanned strictly in order.
        """
        semaphore = asyncio.Semaphore(session.context.concurrency)
        total = len(images)
        completed = 0

        async def scan_one(index: int, image: ImageReference) -> ImageScanResult:
            nonlocal completed

            async with semaphore:
                session.attempted.append(image.best_ref)
                logger.info(f"Scanning {image.best_ref} ({index + 1}/{total})...")
                result = await dispatcher.scan(image, session.selection, index)

                # Mirror immediately; mirror failures never fail the scan
                writer.write(result)

                completed += 1
                if progress_callback:
                    progress_callback(completed, total)
                return result

        return list(await asyncio.gather(*[scan_one(i, image) for i, image in enumerate(images)]))
