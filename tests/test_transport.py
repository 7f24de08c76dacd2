"""Tests for transport selection."""

import socket
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest

from airgap_scan.models.model_scanner import TransportMode
from airgap_scan.scanner.transport import default_user_socket, select_transport


@pytest.fixture
def live_socket() -> Iterator[Path]:
    """A bound unix socket in a short path (AF_UNIX paths are length limited)."""
    with tempfile.TemporaryDirectory(prefix="pm", dir="/tmp") as tmpdir:
        path = Path(tmpdir) / "p.sock"
        server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        server.bind(str(path))
        try:
            yield path
        finally:
            server.close()


class TestSelectTransport:
    """Tests for select_transport()."""

    def test_forced_archive(self, live_socket: Path) -> None:
        """Test forcing archive mode ignores a live socket."""
        selection = select_transport(True, user_socket=live_socket, system_socket=live_socket)
        assert selection.mode is TransportMode.ARCHIVE
        assert selection.socket_path is None

    def test_user_socket_preferred(self, live_socket: Path, tmp_path: Path) -> None:
        """Test the user socket wins when present."""
        selection = select_transport(False, user_socket=live_socket, system_socket=tmp_path / "none.sock")
        assert selection.mode is TransportMode.API
        assert selection.socket_path == live_socket
        assert selection.docker_host == f"unix://{live_socket}"

    def test_system_socket_fallback(self, live_socket: Path, tmp_path: Path) -> None:
        """Test the system socket is used when the user socket is absent."""
        selection = select_transport(False, user_socket=tmp_path / "none.sock", system_socket=live_socket)
        assert selection.mode is TransportMode.API
        assert selection.socket_path == live_socket

    def test_no_socket_falls_back_to_archive(self, tmp_path: Path) -> None:
        """Test archive mode when no socket exists."""
        selection = select_transport(False, user_socket=tmp_path / "a.sock", system_socket=tmp_path / "b.sock")
        assert selection.mode is TransportMode.ARCHIVE

    def test_regular_file_is_not_a_socket(self, tmp_path: Path) -> None:
        """Test a plain file at the socket path does not count."""
        fake = tmp_path / "podman.sock"
        fake.write_text("")
        selection = select_transport(False, user_socket=fake, system_socket=tmp_path / "b.sock")
        assert selection.mode is TransportMode.ARCHIVE


class TestDefaultUserSocket:
    """Tests for default_user_socket()."""

    def test_uses_xdg_runtime_dir(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test XDG_RUNTIME_DIR determines the rootless socket path."""
        monkeypatch.setenv("XDG_RUNTIME_DIR", "/run/user/1234")
        assert default_user_socket() == Path("/run/user/1234/podman/podman.sock")

    def test_without_xdg_runtime_dir(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test fallback to /run/user/<uid>."""
        monkeypatch.delenv("XDG_RUNTIME_DIR", raising=False)
        monkeypatch.setattr("airgap_scan.scanner.transport.os.getuid", lambda: 4321)
        assert default_user_socket() == Path("/run/user/4321/podman/podman.sock")
