"""Once-per-run choice between the live API socket and archive export."""

import logging
import os
import stat
from pathlib import Path

from airgap_scan.consts import PODMAN_SYSTEM_SOCKET, PODMAN_USER_SOCKET_TEMPLATE
from airgap_scan.models.model_scanner import TransportMode, TransportSelection

logger = logging.getLogger(__name__)


def default_user_socket() -> Path:
    """Rootless podman socket under $XDG_RUNTIME_DIR (or /run/user/<uid>)."""
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR") or f"/run/user/{os.getuid()}"
    return Path(PODMAN_USER_SOCKET_TEMPLATE.format(runtime_dir=runtime_dir))


def _is_socket(path: Path) -> bool:
    try:
        return stat.S_ISSOCK(path.stat().st_mode)
    except OSError:
        return False


def select_transport(
    force_archive: bool,
    user_socket: Path | None = None,
    system_socket: Path | None = None,
) -> TransportSelection:
    """Decide how every image in this run will be scanned.

    Args:
        force_archive: Always use archive mode
        user_socket: User-scoped socket path (default: rootless podman socket)
        system_socket: System-scoped socket path (default: /run/podman/podman.sock)

    Returns:
        API bound to the first socket found, otherwise ARCHIVE
    """
    if force_archive:
        logger.info("Transport: archive (forced)")
        return TransportSelection(mode=TransportMode.ARCHIVE)

    candidates = [
        user_socket if user_socket is not None else default_user_socket(),
        system_socket if system_socket is not None else PODMAN_SYSTEM_SOCKET,
    ]
    for candidate in candidates:
        if _is_socket(candidate):
            logger.info(f"Transport: API via {candidate}")
            return TransportSelection(mode=TransportMode.API, socket_path=candidate)
        logger.debug(f"No podman socket at {candidate}")

    logger.info("Transport: archive (no podman socket found)")
    return TransportSelection(mode=TransportMode.ARCHIVE)
