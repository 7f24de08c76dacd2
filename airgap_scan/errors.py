"""Fatal error types.

Per-image failures are never raised; they are recorded on ScanOutcome
(see models.model_scanner.ScanErrorType). Only the errors below abort a run.
"""


class AirgapScanError(Exception):
    """Base class for errors that abort the whole run."""


class ToolMissingError(AirgapScanError):
    """A required external binary (podman, trivy) is not on PATH."""

    def __init__(self, tools: list[str]):
        self.tools = tools
        super().__init__(f"Required tool(s) not found: {', '.join(tools)}")


class PrerequisiteMissingError(AirgapScanError):
    """The offline vulnerability database is missing or incomplete."""


class EngineQueryError(AirgapScanError):
    """The container engine could not list local images."""


class BundleError(AirgapScanError):
    """An offline database bundle is malformed or unsafe to extract."""
