"""Tests for kroctl.transfer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from kroctl.core import ArtifactPacker, ContentStore, _sha256_bytes
from kroctl.errors import (
    CancellationError,
    FetchError,
    PackError,
    PublishError,
    ReferenceNotFoundError,
)
from kroctl.registry import RepositoryHandle, parse_reference, setup_repository
from kroctl.transfer import fetch, parse_manifest, publish

REFERENCE = "ghcr.io/acme/stack:v1"


@pytest.fixture()
def handle(fake_registry: Any, anonymous: Any) -> RepositoryHandle:
    return setup_repository(REFERENCE, credentials=anonymous, registry_factory=fake_registry)


# ---------------------------------------------------------------------------
# publish
# ---------------------------------------------------------------------------


class TestPublish:
    def test_uploads_blobs_then_manifest(
        self,
        store: ContentStore,
        packer: ArtifactPacker,
        rgd_files: list[Path],
        handle: RepositoryHandle,
        fake_registry: Any,
    ) -> None:
        packed = packer.pack(store, rgd_files, REFERENCE)
        descriptor = publish(store, packed, handle)

        assert descriptor == packed.descriptor
        assert len(fake_registry.uploaded) == 3  # config + two layers
        assert fake_registry.manifests[("acme/stack", "v1")] == store.fetch(descriptor.digest)
        assert fake_registry.requests[-1][0] == "PUT"

    def test_existing_blobs_are_skipped(
        self,
        store: ContentStore,
        packer: ArtifactPacker,
        rgd_files: list[Path],
        handle: RepositoryHandle,
        fake_registry: Any,
    ) -> None:
        packed = packer.pack(store, rgd_files, REFERENCE)
        first = packed.layers[0]
        fake_registry.blobs[first.digest] = store.fetch(first.digest)

        publish(store, packed, handle)
        assert first.digest not in fake_registry.uploaded
        assert len(fake_registry.uploaded) == 2

    def test_no_separate_existence_check(
        self,
        store: ContentStore,
        packer: ArtifactPacker,
        rgd_files: list[Path],
        handle: RepositoryHandle,
        fake_registry: Any,
    ) -> None:
        packed = packer.pack(store, rgd_files, REFERENCE)
        publish(store, packed, handle)
        assert [method for method, _ in fake_registry.requests] == ["PUT"]

    def test_pushes_the_tagged_manifest(
        self,
        packer: ArtifactPacker,
        rgd_files: list[Path],
        handle: RepositoryHandle,
        fake_registry: Any,
    ) -> None:
        with ContentStore() as packed_in, ContentStore() as empty:
            packed = packer.pack(packed_in, rgd_files, REFERENCE)
            with pytest.raises(PackError, match="not found in store"):
                publish(empty, packed, handle)
        assert fake_registry.uploaded == []
        assert fake_registry.manifests == {}

    def test_failed_blob_upload_leaves_tag_untouched(
        self,
        store: ContentStore,
        packer: ArtifactPacker,
        rgd_files: list[Path],
        handle: RepositoryHandle,
        fake_registry: Any,
    ) -> None:
        packed = packer.pack(store, rgd_files, REFERENCE)
        fake_registry.fail_uploads = True

        with pytest.raises(PublishError, match="500"):
            publish(store, packed, handle)
        assert fake_registry.manifests == {}

    def test_transport_error_is_wrapped(
        self,
        store: ContentStore,
        packer: ArtifactPacker,
        rgd_files: list[Path],
        handle: RepositoryHandle,
        fake_registry: Any,
    ) -> None:
        packed = packer.pack(store, rgd_files, REFERENCE)
        fake_registry.raise_on_request = ConnectionError("connection refused")

        with pytest.raises(PublishError, match="connection refused") as excinfo:
            publish(store, packed, handle)
        assert isinstance(excinfo.value.__cause__, ConnectionError)

    def test_interrupt_becomes_cancellation(
        self,
        store: ContentStore,
        packer: ArtifactPacker,
        rgd_files: list[Path],
        handle: RepositoryHandle,
        fake_registry: Any,
    ) -> None:
        packed = packer.pack(store, rgd_files, REFERENCE)
        fake_registry.raise_on_request = KeyboardInterrupt()

        with pytest.raises(CancellationError, match="push cancelled"):
            publish(store, packed, handle)
        assert fake_registry.manifests == {}

    def test_digest_mismatch_raises(
        self,
        store: ContentStore,
        packer: ArtifactPacker,
        rgd_files: list[Path],
        handle: RepositoryHandle,
        fake_registry: Any,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        from conftest import FakeResponse

        packed = packer.pack(store, rgd_files, REFERENCE)
        original = fake_registry.do_request

        def lying_request(url: str, method: str = "GET", **kwargs: Any) -> Any:
            if method == "PUT":
                return FakeResponse(201, headers={"Docker-Content-Digest": "sha256:" + "f" * 64})
            return original(url, method, **kwargs)

        monkeypatch.setattr(fake_registry, "do_request", lying_request)
        with pytest.raises(PublishError, match="digest mismatch"):
            publish(store, packed, handle)


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


class TestFetch:
    def _published(
        self, packer: ArtifactPacker, rgd_files: list[Path], handle: RepositoryHandle
    ) -> str:
        with ContentStore() as store:
            packed = packer.pack(store, rgd_files, REFERENCE)
            return publish(store, packed, handle).digest

    def test_fetch_returns_bytes_and_descriptor(
        self, packer: ArtifactPacker, rgd_files: list[Path], handle: RepositoryHandle
    ) -> None:
        digest = self._published(packer, rgd_files, handle)
        fetched = fetch(handle)
        assert fetched.descriptor.digest == digest
        assert fetched.descriptor.size == len(fetched.data)
        assert _sha256_bytes(fetched.data) == digest

    def test_fetched_manifest_parses(
        self, packer: ArtifactPacker, rgd_files: list[Path], handle: RepositoryHandle
    ) -> None:
        self._published(packer, rgd_files, handle)
        manifest = fetch(handle).manifest()
        assert [layer.title for layer in manifest.layers] == ["a.yaml", "b.yaml"]
        assert manifest.created is not None

    def test_fetch_by_digest(
        self, packer: ArtifactPacker, rgd_files: list[Path], handle: RepositoryHandle
    ) -> None:
        digest = self._published(packer, rgd_files, handle)
        fetched = fetch(handle, parse_reference(f"ghcr.io/acme/stack@{digest}"))
        assert fetched.descriptor.digest == digest

    def test_missing_tag_raises_not_found(self, handle: RepositoryHandle) -> None:
        with pytest.raises(ReferenceNotFoundError, match="not found"):
            fetch(handle)

    def test_server_error_raises_fetch_error(
        self, handle: RepositoryHandle, fake_registry: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from conftest import FakeResponse

        monkeypatch.setattr(
            fake_registry,
            "do_request",
            lambda *args, **kwargs: FakeResponse(401, reason="Unauthorized"),
        )
        with pytest.raises(FetchError, match="401 Unauthorized"):
            fetch(handle)

    def test_transport_error_raises_fetch_error(
        self, handle: RepositoryHandle, fake_registry: Any
    ) -> None:
        fake_registry.raise_on_request = ConnectionError("no route to host")
        with pytest.raises(FetchError, match="no route to host"):
            fetch(handle)

    def test_interrupt_becomes_cancellation(
        self, handle: RepositoryHandle, fake_registry: Any
    ) -> None:
        fake_registry.raise_on_request = KeyboardInterrupt()
        with pytest.raises(CancellationError, match="inspect cancelled"):
            fetch(handle)

    def test_digest_computed_without_header(
        self, handle: RepositoryHandle, fake_registry: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from conftest import FakeResponse

        body = b'{"schemaVersion":2,"layers":[]}'
        monkeypatch.setattr(
            fake_registry, "do_request", lambda *args, **kwargs: FakeResponse(200, content=body)
        )
        fetched = fetch(handle)
        assert fetched.descriptor.digest == _sha256_bytes(body)


class TestParseManifest:
    def test_invalid_json_raises(self) -> None:
        with pytest.raises(FetchError, match="failed to parse manifest"):
            parse_manifest(b"not json")

    def test_wrong_shape_raises(self) -> None:
        with pytest.raises(FetchError):
            parse_manifest(json.dumps({"layers": "nope"}).encode())

    def test_missing_title_annotation(self) -> None:
        manifest = parse_manifest(
            json.dumps(
                {
                    "schemaVersion": 2,
                    "layers": [{"mediaType": "text/yaml", "digest": "sha256:ab", "size": 1}],
                }
            ).encode()
        )
        assert manifest.layers[0].title is None
