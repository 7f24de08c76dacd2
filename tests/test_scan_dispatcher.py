"""Tests for per-image scan dispatch."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from airgap_scan.models.model_image import ImageReference
from airgap_scan.models.model_run import RunContext
from airgap_scan.models.model_scanner import (
    ScanErrorType,
    ScanKind,
    TransportMode,
    TransportSelection,
)
from airgap_scan.scanner.podman import PodmanClient
from airgap_scan.scanner.process import CommandResult
from airgap_scan.scanner.scan_dispatcher import ScanDispatcher
from airgap_scan.storage.run_directory import RunDirectory

OK = CommandResult(returncode=0, stdout="", stderr="")
ARCHIVE = TransportSelection(mode=TransportMode.ARCHIVE)
API = TransportSelection(mode=TransportMode.API, socket_path=Path("/run/podman/podman.sock"))


async def _fake_save(ref: str, archive_path: Path, timeout: float | None = None) -> CommandResult:
    archive_path.write_bytes(b"tar")
    return OK


async def _fake_trivy(target, output: Path, *args) -> CommandResult:
    output.write_text("{}")
    return OK


async def _failing_trivy(target, output: Path, *args) -> CommandResult:
    output.write_text("partial")
    return CommandResult(returncode=1, stdout="", stderr="FATAL image scan error")


class TestScanDispatcher:
    """Tests for ScanDispatcher."""

    @pytest.fixture
    def temp_dir(self, tmp_path: Path) -> Path:
        path = tmp_path / "trivy-archive-test"
        path.mkdir()
        return path

    @pytest.fixture
    def podman(self) -> PodmanClient:
        client = PodmanClient()
        client.save_image = AsyncMock(side_effect=_fake_save)
        return client

    @pytest.fixture
    def scanner(self) -> MagicMock:
        scanner = MagicMock()
        scanner.scan_archive = AsyncMock(side_effect=_fake_trivy)
        scanner.sbom_archive = AsyncMock(side_effect=_fake_trivy)
        scanner.scan_by_name = AsyncMock(side_effect=_fake_trivy)
        scanner.sbom_by_name = AsyncMock(side_effect=_fake_trivy)
        return scanner

    @pytest.fixture
    def dispatcher(
        self,
        context: RunContext,
        scanner: MagicMock,
        podman: PodmanClient,
        run_dir: RunDirectory,
        temp_dir: Path,
    ) -> ScanDispatcher:
        return ScanDispatcher(context, scanner, podman, run_dir, temp_dir)

    @pytest.mark.asyncio
    async def test_archive_success(
        self,
        dispatcher: ScanDispatcher,
        scanner: MagicMock,
        podman: PodmanClient,
        run_dir: RunDirectory,
        temp_dir: Path,
    ) -> None:
        """Test one save feeds both the scan and the SBOM, then is removed."""
        image = ImageReference(repository="web", tag="1.0")
        result = await dispatcher.scan(image, ARCHIVE, index=0)

        archive = temp_dir / "0000-web_1.0.tar"
        podman.save_image.assert_awaited_once_with("web:1.0", archive, timeout=5.0)
        scanner.scan_archive.assert_awaited_once_with(archive, run_dir.report_dir / "web_1.0.json")
        scanner.sbom_archive.assert_awaited_once_with(archive, run_dir.sbom_dir / "web_1.0-sbom.json")

        assert result.base_name == "web_1.0"
        assert result.vuln.success
        assert result.sbom is not None and result.sbom.success
        assert (run_dir.report_dir / "web_1.0.json").exists()
        assert not archive.exists()
        assert list(temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_save_failure_skips_scanner(
        self,
        dispatcher: ScanDispatcher,
        scanner: MagicMock,
        podman: PodmanClient,
        run_dir: RunDirectory,
    ) -> None:
        """Test a failed export never invokes the scanner and fails both outputs."""
        podman.save_image = AsyncMock(
            return_value=CommandResult(returncode=125, stdout="", stderr="image not known")
        )
        image = ImageReference(repository="db", tag="2.0")

        result = await dispatcher.scan(image, ARCHIVE)

        scanner.scan_archive.assert_not_awaited()
        scanner.sbom_archive.assert_not_awaited()
        assert result.vuln.error_type is ScanErrorType.SAVE_FAILED
        assert result.sbom is not None and result.sbom.error_type is ScanErrorType.SAVE_FAILED
        assert "db:2.0" in result.vuln.error
        assert "image not known" in result.vuln.error
        assert run_dir.report_files() == []

    @pytest.mark.asyncio
    async def test_save_timeout(self, dispatcher: ScanDispatcher, podman: PodmanClient) -> None:
        """Test a save timeout is recorded as a timed out SAVE_FAILED."""
        podman.save_image = AsyncMock(
            return_value=CommandResult(
                returncode=-1, stdout="", stderr="Command timed out after 5s", timed_out=True
            )
        )
        result = await dispatcher.scan(ImageReference(repository="big", tag="1"), ARCHIVE)

        assert result.vuln.error_type is ScanErrorType.SAVE_FAILED
        assert result.vuln.timed_out
        assert "timed out" in result.vuln.error

    @pytest.mark.asyncio
    async def test_save_exception_is_recorded(self, dispatcher: ScanDispatcher, podman: PodmanClient) -> None:
        """Test an exception during export becomes a per-image failure."""
        podman.save_image = AsyncMock(side_effect=OSError("disk full"))
        result = await dispatcher.scan(ImageReference(repository="web", tag="1.0"), ARCHIVE)

        assert result.vuln.error_type is ScanErrorType.SAVE_FAILED
        assert "disk full" in result.vuln.error

    @pytest.mark.asyncio
    async def test_scan_failure_removes_partial_output(
        self,
        dispatcher: ScanDispatcher,
        scanner: MagicMock,
        run_dir: RunDirectory,
        temp_dir: Path,
    ) -> None:
        """Test a failed scan leaves no report and does not block the SBOM."""
        scanner.scan_archive = AsyncMock(side_effect=_failing_trivy)
        result = await dispatcher.scan(ImageReference(repository="web", tag="1.0"), ARCHIVE)

        assert not result.vuln.success
        assert result.vuln.error_type is ScanErrorType.SCAN_FAILED
        assert "exit code 1" in result.vuln.error
        assert "web:1.0" in result.vuln.error
        assert not (run_dir.report_dir / "web_1.0.json").exists()
        assert result.sbom is not None and result.sbom.success
        assert list(temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_sbom_failure_is_independent(
        self, dispatcher: ScanDispatcher, scanner: MagicMock, run_dir: RunDirectory
    ) -> None:
        """Test an SBOM failure leaves the vulnerability report in place."""
        scanner.sbom_archive = AsyncMock(side_effect=_failing_trivy)
        result = await dispatcher.scan(ImageReference(repository="web", tag="1.0"), ARCHIVE)

        assert result.vuln.success
        assert result.sbom.error_type is ScanErrorType.SBOM_FAILED
        assert result.sbom.kind is ScanKind.SBOM
        assert not (run_dir.sbom_dir / "web_1.0-sbom.json").exists()

    @pytest.mark.asyncio
    async def test_api_mode(
        self, dispatcher: ScanDispatcher, scanner: MagicMock, podman: PodmanClient, run_dir: RunDirectory
    ) -> None:
        """Test API mode scans by name with DOCKER_HOST and never exports."""
        result = await dispatcher.scan(ImageReference(repository="web", tag="1.0"), API)

        podman.save_image.assert_not_awaited()
        scanner.scan_by_name.assert_awaited_once_with(
            "web:1.0", run_dir.report_dir / "web_1.0.json", "unix:///run/podman/podman.sock"
        )
        scanner.sbom_by_name.assert_awaited_once()
        assert result.vuln.success

    @pytest.mark.asyncio
    async def test_no_sbom(
        self,
        context: RunContext,
        scanner: MagicMock,
        podman: PodmanClient,
        run_dir: RunDirectory,
        temp_dir: Path,
    ) -> None:
        """Test SBOM generation can be disabled."""
        no_sbom = context.model_copy(update={"generate_sbom": False})
        dispatcher = ScanDispatcher(no_sbom, scanner, podman, run_dir, temp_dir)

        result = await dispatcher.scan(ImageReference(repository="web", tag="1.0"), ARCHIVE)

        assert result.sbom is None
        scanner.sbom_archive.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_scanner_exception_is_recorded(self, dispatcher: ScanDispatcher, scanner: MagicMock) -> None:
        """Test an exception from the scanner becomes a per-image failure."""
        scanner.scan_archive = AsyncMock(side_effect=RuntimeError("exec format error"))
        result = await dispatcher.scan(ImageReference(repository="web", tag="1.0"), ARCHIVE)

        assert result.vuln.error_type is ScanErrorType.SCAN_FAILED
        assert "exec format error" in result.vuln.error
