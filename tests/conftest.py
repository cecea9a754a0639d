"""Shared test fixtures for kroctl."""

from __future__ import annotations

import hashlib
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import pytest

from kroctl.cli import Runtime
from kroctl.core import ArtifactPacker, ContentStore
from kroctl.log import configure_logging
from kroctl.registry import Credential


RGD_NETWORK = """\
apiVersion: kro.run/v1alpha1
kind: ResourceGraphDefinition
metadata:
  name: network-stack
spec:
  schema:
    apiVersion: v1alpha1
    kind: NetworkStack
"""

RGD_SUBNET = """\
apiVersion: kro.run/v1alpha1
kind: ResourceGraphDefinition
metadata:
  name: subnet
spec:
  schema:
    apiVersion: v1alpha1
    kind: Subnet
"""


# ---------------------------------------------------------------------------
# Fake registry
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(
        self,
        status_code: int,
        content: bytes = b"",
        headers: dict[str, str] | None = None,
        reason: str = "",
    ) -> None:
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.reason = reason
        self.ok = status_code < 400


class FakeAuth:
    def __init__(self) -> None:
        self.basic: tuple[str, str] | None = None

    def set_basic_auth(self, username: str, password: str) -> None:
        self.basic = (username, password)


class FakeRegistry:
    """In-memory stand-in for ``oras.provider.Registry``."""

    def __init__(self) -> None:
        self.hostname: str | None = None
        self.insecure: bool | None = None
        self.auth = FakeAuth()
        self.blobs: dict[str, bytes] = {}
        self.manifests: dict[tuple[str, str], bytes] = {}
        self.requests: list[tuple[str, str]] = []
        self.uploaded: list[str] = []
        self.fail_uploads = False
        self.raise_on_request: BaseException | None = None

    def __call__(self, hostname: str | None = None, insecure: bool = False, **kwargs: Any) -> FakeRegistry:
        self.hostname = hostname
        self.insecure = insecure
        return self

    @staticmethod
    def _split(url: str) -> tuple[str, str, str]:
        path = urlparse(url).path
        prefix, _, rest = path.partition("/v2/")
        for kind in ("manifests", "blobs"):
            marker = f"/{kind}/"
            if marker in rest:
                repository, _, locator = rest.rpartition(marker)
                return repository, kind, locator
        raise AssertionError(f"unexpected url {url}")

    def do_request(
        self,
        url: str,
        method: str = "GET",
        data: Any = None,
        headers: dict[str, str] | None = None,
        json: Any = None,
        stream: bool = False,
    ) -> FakeResponse:
        self.requests.append((method, url))
        if self.raise_on_request is not None:
            raise self.raise_on_request

        repository, kind, locator = self._split(url)
        if kind == "blobs":
            return FakeResponse(200 if locator in self.blobs else 404)

        if method == "PUT":
            digest = f"sha256:{hashlib.sha256(data).hexdigest()}"
            self.manifests[(repository, locator)] = data
            self.manifests[(repository, digest)] = data
            return FakeResponse(201, headers={"Docker-Content-Digest": digest})

        content = self.manifests.get((repository, locator))
        if content is None:
            return FakeResponse(404, reason="Not Found")
        digest = f"sha256:{hashlib.sha256(content).hexdigest()}"
        return FakeResponse(
            200,
            content=content,
            headers={
                "Docker-Content-Digest": digest,
                "Content-Type": "application/vnd.oci.image.manifest.v1+json",
            },
        )

    def upload_blob(self, blob: str, container: Any, layer: dict[str, Any]) -> FakeResponse:
        if self.raise_on_request is not None:
            raise self.raise_on_request
        # oras answers 200 without uploading when the blob already exists
        if layer["digest"] in self.blobs:
            return FakeResponse(200)
        if self.fail_uploads:
            return FakeResponse(500, reason="Internal Server Error")
        data = Path(blob).read_bytes()
        digest = f"sha256:{hashlib.sha256(data).hexdigest()}"
        assert digest == layer["digest"]
        self.blobs[digest] = data
        self.uploaded.append(digest)
        return FakeResponse(201)


class StaticCredentials:
    def __init__(self, credential: Credential | None = None) -> None:
        self.credential = credential
        self.hosts: list[str] = []

    def get_credential(self, host: str) -> Credential | None:
        self.hosts.append(host)
        return self.credential


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "KROCTL_LOG",
        "KROCTL_JSON_OUTPUT",
        "KROCTL_DEBUG",
        "KROCTL_REGISTRY_USERNAME",
        "KROCTL_REGISTRY_PASSWORD",
        "NO_COLOR",
        "DOCKER_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
    configure_logging("silent")


# ---------------------------------------------------------------------------
# RGD files
# ---------------------------------------------------------------------------


@pytest.fixture()
def rgd_files(tmp_path: Path) -> list[Path]:
    """Two RGD files side by side."""
    a = tmp_path / "a.yaml"
    a.write_text(RGD_NETWORK, encoding="utf-8")
    b = tmp_path / "b.yaml"
    b.write_text(RGD_SUBNET, encoding="utf-8")
    return [a, b]


@pytest.fixture()
def rgd_dir(tmp_path: Path) -> Path:
    """A directory tree mixing RGD files with unrelated files."""
    d = tmp_path / "rgds"
    d.mkdir()
    (d / "network.yaml").write_text(RGD_NETWORK, encoding="utf-8")
    (d / "README.md").write_text("# stacks\n", encoding="utf-8")
    nested = d / "nested"
    nested.mkdir()
    (nested / "subnet.yml").write_text(RGD_SUBNET, encoding="utf-8")
    (nested / "notes.txt").write_text("ignore me\n", encoding="utf-8")
    return d


# ---------------------------------------------------------------------------
# Core objects
# ---------------------------------------------------------------------------


@pytest.fixture()
def store() -> Iterator[ContentStore]:
    with ContentStore() as s:
        yield s


@pytest.fixture()
def packer() -> ArtifactPacker:
    return ArtifactPacker()


@pytest.fixture()
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture()
def anonymous() -> StaticCredentials:
    return StaticCredentials()


@pytest.fixture()
def runtime(fake_registry: FakeRegistry, anonymous: StaticCredentials) -> Runtime:
    return Runtime(credentials=anonymous, registry_factory=fake_registry)
