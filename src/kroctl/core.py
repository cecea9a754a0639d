"""Core packing logic for kroctl: local content store and artifact packer."""

from __future__ import annotations

import base64
import hashlib
import os
import shutil
import tempfile
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType

import oras.oci
import structlog
from pydantic import BaseModel

from .errors import PackError
from .models import (
    ANNOTATION_CREATED,
    ANNOTATION_TITLE,
    OCI_EMPTY_MEDIA_TYPE,
    Descriptor,
    LayerDescriptor,
    Manifest,
    ManifestDescriptor,
)

__all__ = [
    "ARTIFACT_TYPE",
    "LAYER_MEDIA_TYPE",
    "ArtifactPacker",
    "ContentStore",
    "PackedArtifact",
]

logger = structlog.get_logger(__name__)

# Identifies the OCI artifact as a kro RGD stack
ARTIFACT_TYPE = "application/vnd.kro.rgd.stack.v1"
# Identifies individual RGD YAML files
LAYER_MEDIA_TYPE = "application/vnd.kro.rgd.content.v1.yaml"

_EMPTY_CONFIG = b"{}"
_BLOBS_DIR = "blobs/sha256"
_INGEST_DIR = "ingest"


def _sha256_bytes(data: bytes) -> str:
    """Return 'sha256:<hex>' digest for *data*."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def _timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class ContentStore:
    """
    Content-addressed blob store in a temporary directory.

    Layout::

        blobs/sha256/<hex>      # layer, config and manifest blobs
        ingest/                 # files being copied in, before hashing

    The store lives for one command and is removed on ``close()`` or on leaving
    the ``with`` block, whatever the outcome.
    """

    def __init__(self) -> None:
        self._tmp = tempfile.TemporaryDirectory(prefix="kroctl-")
        self.root = Path(self._tmp.name)
        (self.root / _BLOBS_DIR).mkdir(parents=True)
        (self.root / _INGEST_DIR).mkdir()
        self._tags: dict[str, ManifestDescriptor] = {}

    def __enter__(self) -> ContentStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._tmp.cleanup()

    # ------------------------------------------------------------------
    # Blobs
    # ------------------------------------------------------------------

    def blob_path(self, digest: str) -> Path:
        algorithm, _, hex_digest = digest.partition(":")
        if algorithm != "sha256" or not hex_digest:
            raise PackError(f"unsupported digest {digest!r}")
        return self.root / _BLOBS_DIR / hex_digest

    def exists(self, digest: str) -> bool:
        return self.blob_path(digest).is_file()

    def fetch(self, digest: str) -> bytes:
        path = self.blob_path(digest)
        if not path.is_file():
            raise PackError(f"blob {digest} not found in store")
        return path.read_bytes()

    def add(self, name: str, media_type: str, path: str | Path) -> LayerDescriptor:
        """
        Stage the file at *path* as a blob titled *name*.

        The file is copied into the store and described by
        ``oras.oci.NewLayer``, so the digest is that of the staged copy.
        Raises ``PackError`` when the file cannot be read.
        """
        fd, ingest = tempfile.mkstemp(dir=self.root / _INGEST_DIR)
        os.close(fd)
        try:
            shutil.copyfile(path, ingest)
            layer = oras.oci.NewLayer(ingest, media_type=media_type)
            os.replace(ingest, self.blob_path(layer["digest"]))
        except OSError as exc:
            raise PackError(f"failed to add {path} to store: {exc}") from exc
        finally:
            if os.path.exists(ingest):
                os.remove(ingest)

        return LayerDescriptor(
            media_type=layer["mediaType"],
            digest=layer["digest"],
            size=layer["size"],
            annotations={ANNOTATION_TITLE: name},
        )

    def push_bytes(self, media_type: str, data: bytes) -> Descriptor:
        """Stage *data* as a blob and return its descriptor."""
        digest = _sha256_bytes(data)
        blob_path = self.blob_path(digest)
        if not blob_path.exists():
            try:
                blob_path.write_bytes(data)
            except OSError as exc:
                raise PackError(f"failed to write blob {digest}: {exc}") from exc
        return Descriptor(media_type=media_type, digest=digest, size=len(data))

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def tag(self, descriptor: ManifestDescriptor, reference: str) -> None:
        """Point *reference* at a manifest already staged in the store."""
        if not self.exists(descriptor.digest):
            raise PackError(f"failed to tag manifest: {descriptor.digest} not found in store")
        self._tags[reference] = descriptor

    def resolve(self, reference: str) -> ManifestDescriptor:
        try:
            return self._tags[reference]
        except KeyError:
            raise PackError(f"reference {reference} not found in store") from None


class PackedArtifact(BaseModel):
    """A manifest staged and tagged in a ``ContentStore``."""

    reference: str
    manifest: Manifest
    descriptor: ManifestDescriptor

    @property
    def layers(self) -> list[LayerDescriptor]:
        return self.manifest.layers


class ArtifactPacker:
    """
    Packages RGD files as an OCI artifact inside a ``ContentStore``.

    Each file becomes one layer of media type ``LAYER_MEDIA_TYPE`` titled with
    its base name. The manifest carries ``ARTIFACT_TYPE`` and the OCI empty
    config, and is tagged only after every layer has been staged.
    """

    def __init__(
        self,
        artifact_type: str = ARTIFACT_TYPE,
        layer_media_type: str = LAYER_MEDIA_TYPE,
    ) -> None:
        self.artifact_type = artifact_type
        self.layer_media_type = layer_media_type

    def stage_layers(
        self, store: ContentStore, files: Sequence[str | Path]
    ) -> list[LayerDescriptor]:
        """Add every file to *store*; fails on the first unreadable file."""
        layers: list[LayerDescriptor] = []
        for file in files:
            path = Path(file)
            layer = store.add(path.name, self.layer_media_type, path)
            logger.debug("file_added", file=path.name, digest=layer.digest)
            layers.append(layer)
        return layers

    def create_manifest(
        self,
        config: Descriptor,
        layers: Sequence[LayerDescriptor],
        created: datetime | None = None,
    ) -> Manifest:
        """Build the artifact manifest from staged descriptors."""
        moment = created or datetime.now(timezone.utc)
        return Manifest(
            artifact_type=self.artifact_type,
            config=config,
            layers=list(layers),
            annotations={ANNOTATION_CREATED: _timestamp(moment)},
        )

    def pack(
        self,
        store: ContentStore,
        files: Sequence[str | Path],
        reference: str,
        created: datetime | None = None,
    ) -> PackedArtifact:
        """
        Stage *files*, pack the manifest and tag it as *reference*.

        All or nothing: if any file fails to stage, ``PackError`` is raised
        before a manifest exists.
        """
        if not files:
            raise PackError("no files to pack")

        layers = self.stage_layers(store, files)

        config = store.push_bytes(OCI_EMPTY_MEDIA_TYPE, _EMPTY_CONFIG)
        config = config.model_copy(
            update={"data": base64.b64encode(_EMPTY_CONFIG).decode("ascii")}
        )
        manifest = self.create_manifest(config, layers, created)

        manifest_bytes = manifest.to_json()
        staged = store.push_bytes(manifest.media_type, manifest_bytes)
        descriptor = ManifestDescriptor(
            media_type=staged.media_type,
            digest=staged.digest,
            size=staged.size,
        )
        store.tag(descriptor, reference)
        logger.debug("manifest_packed", digest=descriptor.digest, layers=len(layers))

        return PackedArtifact(reference=reference, manifest=manifest, descriptor=descriptor)
