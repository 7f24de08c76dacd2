from pydantic import BaseModel, ConfigDict, Field

from airgap_scan.models.model_scanner import TransportMode


class RunMetadata(BaseModel):
    """Contents of run.meta.json."""

    host: str = Field(description="Host label of the scanning machine")
    timestamp: str = Field(description="Run timestamp (directory suffix)")
    images: list[str] = Field(default_factory=list, description="Image refs attempted, in order")
    mode: TransportMode | None = Field(default=None, description="Transport used for the run")
    succeeded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


class OfflineDbMetadata(BaseModel):
    """Trivy's db/metadata.json (timestamps kept as RFC 3339 strings)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: int = Field(alias="Version", description="DB schema version")
    next_update: str | None = Field(default=None, alias="NextUpdate")
    updated_at: str | None = Field(default=None, alias="UpdatedAt")
    downloaded_at: str | None = Field(default=None, alias="DownloadedAt")
