"""Pydantic models for kroctl."""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "ANNOTATION_CREATED",
    "ANNOTATION_TITLE",
    "OCI_EMPTY_MEDIA_TYPE",
    "OCI_MANIFEST_MEDIA_TYPE",
    "ArtifactReference",
    "Descriptor",
    "InspectReport",
    "LayerDescriptor",
    "LayerRow",
    "Manifest",
    "ManifestDescriptor",
    "PushResult",
]

ANNOTATION_TITLE = "org.opencontainers.image.title"
ANNOTATION_CREATED = "org.opencontainers.image.created"
OCI_MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
OCI_EMPTY_MEDIA_TYPE = "application/vnd.oci.empty.v1+json"


_RFC3339_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})$"
)


def _parse_timestamp(value: str) -> datetime | None:
    """Parse an RFC 3339 timestamp, returning ``None`` when malformed.

    Fractional seconds of any precision are accepted and truncated to
    microseconds.
    """
    match = _RFC3339_RE.match(value)
    if match is None:
        return None
    fraction = (match["fraction"] or "")[:6].ljust(6, "0")
    offset = "+00:00" if match["offset"] in ("Z", "z") else match["offset"]
    try:
        return datetime.fromisoformat(f"{match['base']}.{fraction}{offset}")
    except ValueError:
        return None


class ArtifactReference(BaseModel):
    """A parsed ``registry/repository[:tag|@digest]`` reference."""

    model_config = ConfigDict(frozen=True)

    raw: str
    registry: str          # host[:port]
    repository: str        # namespace/name
    tag: str | None = None
    digest: str | None = None

    @property
    def host(self) -> str:
        return self.registry

    @property
    def name(self) -> str:
        """Repository with its tag, as shown by ``inspect``."""
        if self.tag:
            return f"{self.repository}:{self.tag}"
        return self.repository

    @property
    def locator(self) -> str:
        """The tag or digest addressing the manifest."""
        return self.digest or self.tag or "latest"

    @property
    def target(self) -> str:
        if self.digest:
            return f"{self.registry}/{self.repository}@{self.digest}"
        return f"{self.registry}/{self.repository}:{self.locator}"

    def __str__(self) -> str:
        return self.raw


class Descriptor(BaseModel):
    """An OCI content descriptor."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    media_type: str = Field(alias="mediaType")
    digest: str            # sha256:<hex>
    size: int              # bytes
    annotations: dict[str, str] | None = None
    data: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class LayerDescriptor(Descriptor):
    """Descriptor of one packaged RGD file."""

    @property
    def title(self) -> str | None:
        if not self.annotations:
            return None
        return self.annotations.get(ANNOTATION_TITLE)


class ManifestDescriptor(BaseModel):
    """Descriptor of a manifest blob, as resolved from a registry or store."""

    model_config = ConfigDict(frozen=True)

    media_type: str = OCI_MANIFEST_MEDIA_TYPE
    digest: str
    size: int


class Manifest(BaseModel):
    """
    OCI Image Manifest (schema version 2) carrying an artifact type.

    Follows the OCI Image Manifest Specification v1.1
    https://github.com/opencontainers/image-spec/blob/main/manifest.md
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(default=OCI_MANIFEST_MEDIA_TYPE, alias="mediaType")
    artifact_type: str | None = Field(default=None, alias="artifactType")
    config: Descriptor | None = None
    layers: list[LayerDescriptor] = Field(default_factory=list)
    annotations: dict[str, str] | None = None

    @property
    def created(self) -> datetime | None:
        """Creation time from the manifest (or config) annotations."""
        for annotations in (self.annotations, self.config and self.config.annotations):
            if annotations and ANNOTATION_CREATED in annotations:
                return _parse_timestamp(annotations[ANNOTATION_CREATED])
        return None

    def to_json(self) -> bytes:
        """Serialise to the exact bytes that are stored and uploaded."""
        document = self.model_dump(by_alias=True, exclude_none=True)
        return json.dumps(document, separators=(",", ":")).encode("utf-8")


class PushResult(BaseModel):
    """Outcome of a successful ``push``."""

    reference: str
    files: int
    digest: str
    layers: list[LayerDescriptor] = Field(default_factory=list)


class LayerRow(BaseModel):
    """One line of the ``inspect`` layer table."""

    name: str
    digest: str
    size: int


class InspectReport(BaseModel):
    """Everything ``inspect`` shows about a remote artifact."""

    artifact: str
    registry: str
    digest: str
    created: datetime | None = None
    layers: list[LayerRow] = Field(default_factory=list)

    @classmethod
    def build(
        cls,
        reference: ArtifactReference,
        descriptor: ManifestDescriptor,
        manifest: Manifest,
    ) -> InspectReport:
        return cls(
            artifact=reference.name,
            registry=reference.registry,
            digest=descriptor.digest,
            created=manifest.created,
            layers=[
                LayerRow(
                    name=layer.title or "unknown",
                    digest=layer.digest,
                    size=layer.size,
                )
                for layer in manifest.layers
            ],
        )
