"""Image discovery, transport selection and Trivy scan dispatch."""

from airgap_scan.scanner.capabilities import TrivyCapabilities, probe_capabilities
from airgap_scan.scanner.image_enumerator import ImageEnumerator
from airgap_scan.scanner.podman import PodmanClient
from airgap_scan.scanner.sanitizer import NameRegistry, sanitize
from airgap_scan.scanner.scan_dispatcher import ScanDispatcher
from airgap_scan.scanner.scan_orchestrator import ScanOrchestrator, ScanSession
from airgap_scan.scanner.transport import select_transport
from airgap_scan.scanner.trivy_scanner import TrivyScanner

__all__ = [
    "ImageEnumerator",
    "NameRegistry",
    "PodmanClient",
    "ScanDispatcher",
    "ScanOrchestrator",
    "ScanSession",
    "TrivyCapabilities",
    "TrivyScanner",
    "probe_capabilities",
    "sanitize",
    "select_transport",
]
