"""Copies packed artifacts to a registry and fetches manifests back."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import ValidationError

from .core import ContentStore, PackedArtifact
from .errors import (
    CancellationError,
    FetchError,
    KroctlError,
    PublishError,
    ReferenceNotFoundError,
)
from .models import (
    OCI_MANIFEST_MEDIA_TYPE,
    ArtifactReference,
    Descriptor,
    Manifest,
    ManifestDescriptor,
)
from .registry import RepositoryHandle

__all__ = [
    "MANIFEST_ACCEPT",
    "FetchedManifest",
    "fetch",
    "parse_manifest",
    "publish",
]

logger = structlog.get_logger(__name__)

MANIFEST_ACCEPT = ", ".join(
    [
        OCI_MANIFEST_MEDIA_TYPE,
        "application/vnd.oci.image.index.v1+json",
        "application/vnd.docker.distribution.manifest.v2+json",
    ]
)
_DIGEST_HEADER = "Docker-Content-Digest"


def _describe(response: Any) -> str:
    reason = getattr(response, "reason", "") or ""
    return f"{response.status_code} {reason}".strip()


# ---------------------------------------------------------------------------
# Publish
# ---------------------------------------------------------------------------


def _upload_blob(store: ContentStore, handle: RepositoryHandle, blob: Descriptor) -> int:
    response = handle.client.upload_blob(
        str(store.blob_path(blob.digest)),
        handle.container,
        blob.to_dict(),
    )
    if response.status_code not in (200, 201, 202):
        raise PublishError(
            handle.reference.raw,
            f"failed to upload blob {blob.digest}: {_describe(response)}",
        )
    return response.status_code


def _put_manifest(
    store: ContentStore, handle: RepositoryHandle, descriptor: ManifestDescriptor
) -> None:
    response = handle.client.do_request(
        handle.manifest_url(),
        "PUT",
        data=store.fetch(descriptor.digest),
        headers={"Content-Type": descriptor.media_type},
    )
    if response.status_code not in (200, 201):
        raise PublishError(
            handle.reference.raw,
            f"failed to upload manifest: {_describe(response)}",
        )

    remote_digest = response.headers.get(_DIGEST_HEADER)
    if remote_digest and remote_digest != descriptor.digest:
        raise PublishError(
            handle.reference.raw,
            f"digest mismatch: registry reported {remote_digest}, expected {descriptor.digest}",
        )


def publish(
    store: ContentStore, packed: PackedArtifact, handle: RepositoryHandle
) -> ManifestDescriptor:
    """
    Copy *packed* from *store* to the remote repository behind *handle*.

    The manifest is the one *store* has tagged as ``packed.reference``.
    Blobs the registry already has are skipped by ``upload_blob``, which
    answers 200 for them without uploading. The manifest is uploaded last,
    so the remote tag only changes once every blob is present. Retries are
    left to the transport.
    """
    log = logger.bind(reference=handle.reference.raw, authenticated=handle.authenticated)
    manifest = packed.manifest
    blobs: list[Descriptor] = [*([manifest.config] if manifest.config else []), *manifest.layers]

    try:
        descriptor = store.resolve(packed.reference)
        for blob in blobs:
            status = _upload_blob(store, handle, blob)
            if status == 200:
                log.debug("blob_exists", digest=blob.digest)
            else:
                log.debug("blob_uploaded", digest=blob.digest, size=blob.size)
        _put_manifest(store, handle, descriptor)
    except KeyboardInterrupt:
        raise CancellationError("push") from None
    except KroctlError:
        raise
    except Exception as exc:
        raise PublishError(handle.reference.raw, str(exc)) from exc

    log.info("push_completed", digest=descriptor.digest, layers=len(manifest.layers))
    return descriptor


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FetchedManifest:
    """Raw manifest bytes as served by the registry, with their descriptor."""

    descriptor: ManifestDescriptor
    data: bytes

    def manifest(self) -> Manifest:
        return parse_manifest(self.data, self.descriptor.digest)


def parse_manifest(data: bytes, source: str = "manifest") -> Manifest:
    """Parse manifest JSON, raising ``FetchError`` if it is malformed."""
    try:
        return Manifest.model_validate(json.loads(data))
    except (ValueError, ValidationError) as exc:
        raise FetchError(source, f"failed to parse manifest: {exc}") from exc


def fetch(
    handle: RepositoryHandle, reference: ArtifactReference | None = None
) -> FetchedManifest:
    """
    Resolve *reference* (the handle's own by default) to its manifest.

    Raises ``ReferenceNotFoundError`` when the tag or digest does not exist
    and ``FetchError`` for any other failure.
    """
    ref = reference or handle.reference
    log = logger.bind(reference=ref.raw)

    try:
        response = handle.client.do_request(
            handle.manifest_url(ref.locator),
            "GET",
            headers={"Accept": MANIFEST_ACCEPT},
        )
    except KeyboardInterrupt:
        raise CancellationError("inspect") from None
    except Exception as exc:
        raise FetchError(ref.raw, str(exc)) from exc

    if response.status_code == 404:
        raise ReferenceNotFoundError(ref.raw)
    if response.status_code != 200:
        raise FetchError(ref.raw, _describe(response))

    data: bytes = response.content
    digest = response.headers.get(_DIGEST_HEADER) or f"sha256:{hashlib.sha256(data).hexdigest()}"
    media_type = response.headers.get("Content-Type", OCI_MANIFEST_MEDIA_TYPE).split(";")[0].strip()
    descriptor = ManifestDescriptor(media_type=media_type, digest=digest, size=len(data))

    log.debug("manifest_fetched", digest=descriptor.digest, media_type=descriptor.media_type)
    return FetchedManifest(descriptor=descriptor, data=data)
