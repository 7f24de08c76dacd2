from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from airgap_scan.consts import PODMAN_NONE_SENTINEL


class ImageReference(BaseModel):
    """A locally stored container image, addressed by name or by id."""

    model_config = ConfigDict(frozen=True)

    repository: str | None = Field(default=None, description="Repository, e.g. 'docker.io/library/nginx'")
    tag: str | None = Field(default=None, description="Tag; None means unqualified")
    id: str | None = Field(default=None, description="Opaque image id, used when no tag exists")

    @field_validator("repository", "tag", "id", mode="before")
    @classmethod
    def _normalize_sentinel(cls, value: str | None) -> str | None:
        """Map the engine's '<none>' sentinel and blank strings to None."""
        if value is None:
            return None
        value = str(value).strip()
        if not value or value == PODMAN_NONE_SENTINEL:
            return None
        return value

    @model_validator(mode="after")
    def _require_identifier(self) -> "ImageReference":
        if self.name is None and self.id is None:
            raise ValueError("ImageReference needs a repository:tag or an id")
        return self

    @property
    def name(self) -> str | None:
        """'repository:tag', or None unless both parts are present.

        A bare repository resolves to ':latest' in the engine, so it is not a name.
        """
        if self.repository is None or self.tag is None:
            return None
        return f"{self.repository}:{self.tag}"

    @property
    def best_ref(self) -> str:
        """Reference passed to podman/trivy: name when tagged, otherwise id."""
        return self.name or self.id  # type: ignore[return-value]

    def __str__(self) -> str:
        return self.best_ref
