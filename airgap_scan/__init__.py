"""Offline Trivy scanning of local Podman images on air-gapped hosts."""

__version__ = "0.1.0"
