"""Remote repository setup: reference parsing, transport policy, credentials."""

from __future__ import annotations

import base64
import binascii
import os
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import structlog
from oras.auth import utils as auth_utils
from oras.container import Container
from oras.provider import Registry

from .errors import CredentialStoreError, InvalidReferenceError
from .models import ArtifactReference

__all__ = [
    "ChainCredentialProvider",
    "Credential",
    "CredentialProvider",
    "DockerConfigCredentialProvider",
    "EnvironmentCredentialProvider",
    "RepositoryHandle",
    "default_credential_provider",
    "parse_reference",
    "setup_repository",
    "uses_plain_http",
]

logger = structlog.get_logger(__name__)

_LOOPBACK_PREFIXES = ("localhost:", "127.0.0.1:", "::1:", "[::1]:")
_REPOSITORY_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*(?:/[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*)*$")
_TAG_RE = re.compile(r"^\w[\w.-]{0,127}$")
_DIGEST_RE = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-zA-Z0-9=_-]+$")

ENV_USERNAME = "KROCTL_REGISTRY_USERNAME"
ENV_PASSWORD = "KROCTL_REGISTRY_PASSWORD"


# ---------------------------------------------------------------------------
# Reference parsing
# ---------------------------------------------------------------------------


def _explicit_host(reference: str) -> str | None:
    """Return the leading host component of *reference*, if it has one."""
    if "/" not in reference:
        return None
    first = reference.split("/", 1)[0]
    if "." in first or ":" in first:
        return first
    return None


def _has_tag(reference: str) -> bool:
    last = reference.split("@", 1)[0].rsplit("/", 1)[-1]
    return ":" in last


def parse_reference(reference: str) -> ArtifactReference:
    """
    Parse *reference* into registry host, repository and tag or digest.

    Raises ``InvalidReferenceError`` for anything that is not of the form
    ``host[:port]/repository[:tag][@digest]``.
    """
    if not reference or reference != reference.strip() or " " in reference:
        raise InvalidReferenceError(reference, "reference must be a non-empty string without spaces")

    host = _explicit_host(reference)
    if host is None:
        raise InvalidReferenceError(reference, "missing registry or repository")

    try:
        container = Container(reference)
    except ValueError as exc:
        raise InvalidReferenceError(reference, str(exc)) from exc

    repository = "/".join(
        part.strip("/") for part in (container.namespace, container.repository) if part
    )
    if container.registry != host or not repository:
        raise InvalidReferenceError(reference, "missing registry or repository")
    if not _REPOSITORY_RE.match(repository):
        raise InvalidReferenceError(reference, f"invalid repository {repository!r}")

    digest = container.digest or None
    tag = container.tag if _has_tag(reference) else None
    if tag is not None and not _TAG_RE.match(tag):
        raise InvalidReferenceError(reference, f"invalid tag {tag!r}")
    if digest is not None and not _DIGEST_RE.match(digest):
        raise InvalidReferenceError(reference, f"invalid digest {digest!r}")
    if tag is None and digest is None:
        tag = "latest"

    return ArtifactReference(
        raw=reference,
        registry=host,
        repository=repository,
        tag=tag,
        digest=digest,
    )


def uses_plain_http(host: str) -> bool:
    """Return True when *host* is a loopback registry served over plain HTTP.

    Loopback registries (``localhost:5001``, ``127.0.0.1:5000``, ``::1:5000``)
    are assumed to run without TLS. Every other host requires TLS.
    """
    # TODO: replace with an explicit --plain-http / TLS configuration option
    return host.startswith(_LOOPBACK_PREFIXES)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Credential:
    """Basic credentials for one registry host."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r}, password='***')"


@runtime_checkable
class CredentialProvider(Protocol):
    """Source of registry credentials."""

    def get_credential(self, host: str) -> Credential | None:
        """Return credentials for *host*, or ``None`` for anonymous access."""
        ...


class DockerConfigCredentialProvider:
    """
    Resolves credentials from the local Docker credential store.

    ``oras`` reads ``~/.docker/config.json``. ``$DOCKER_CONFIG/config.json``
    is added when set, as the docker CLI does. The store is read once, on
    first use, and only its ``auths`` section is consulted.
    """

    def __init__(self, configs: Sequence[str] | None = None) -> None:
        self._configs = list(configs) if configs else None
        self._auths: Mapping[str, Any] | None = None

    def _config_paths(self) -> list[str]:
        paths = list(self._configs or [])
        docker_config = os.environ.get("DOCKER_CONFIG")
        if docker_config:
            candidate = os.path.join(docker_config, "config.json")
            if os.path.isfile(candidate) and candidate not in paths:
                paths.append(candidate)
        return paths

    def load(self) -> Mapping[str, Any]:
        """Open the credential store, raising ``CredentialStoreError`` on failure."""
        if self._auths is None:
            try:
                loaded = auth_utils.load_configs(self._config_paths() or None)
            except (OSError, ValueError) as exc:
                raise CredentialStoreError(str(exc)) from exc
            self._auths = (loaded or {}).get("auths") or {}
        return self._auths

    def get_credential(self, host: str) -> Credential | None:
        auths = self.load()
        for key in (host, f"https://{host}", f"http://{host}"):
            entry = auths.get(key)
            if entry:
                return self._decode(host, entry)
        return None

    @staticmethod
    def _decode(host: str, entry: Mapping[str, Any]) -> Credential | None:
        username = entry.get("username")
        password = entry.get("password")
        if username and password:
            return Credential(username=username, password=password)

        encoded = entry.get("auth")
        if not encoded:
            return None
        try:
            decoded = base64.b64decode(encoded).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise CredentialStoreError(f"malformed auth entry for {host}: {exc}") from exc
        username, sep, password = decoded.partition(":")
        if not sep:
            raise CredentialStoreError(f"malformed auth entry for {host}")
        return Credential(username=username, password=password)


class EnvironmentCredentialProvider:
    """Reads credentials from ``KROCTL_REGISTRY_USERNAME``/``_PASSWORD``."""

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def get_credential(self, host: str) -> Credential | None:
        username = self._environ.get(ENV_USERNAME)
        password = self._environ.get(ENV_PASSWORD)
        if username and password:
            return Credential(username=username, password=password)
        return None


class ChainCredentialProvider:
    """Asks each provider in turn; the first credential found wins."""

    def __init__(self, *providers: CredentialProvider) -> None:
        self.providers = providers

    def get_credential(self, host: str) -> Credential | None:
        for provider in self.providers:
            credential = provider.get_credential(host)
            if credential is not None:
                return credential
        return None


def default_credential_provider() -> CredentialProvider:
    return ChainCredentialProvider(
        EnvironmentCredentialProvider(),
        DockerConfigCredentialProvider(),
    )


# ---------------------------------------------------------------------------
# Repository handle
# ---------------------------------------------------------------------------


@dataclass
class RepositoryHandle:
    """A configured connection to one remote repository."""

    reference: ArtifactReference
    plain_http: bool
    client: Any            # oras.provider.Registry
    authenticated: bool = False

    @property
    def container(self) -> Container:
        return Container(self.reference.target)

    @property
    def scheme(self) -> str:
        return "http" if self.plain_http else "https"

    def manifest_url(self, locator: str | None = None) -> str:
        ref = self.reference
        return f"{self.scheme}://{ref.registry}/v2/{ref.repository}/manifests/{locator or ref.locator}"


def setup_repository(
    reference: str,
    credentials: CredentialProvider | None = None,
    registry_factory: Callable[..., Any] = Registry,
) -> RepositoryHandle:
    """
    Create a remote repository handle for *reference*.

    Loopback hosts use plain HTTP; all others use TLS. Credentials come from
    *credentials* (environment, then Docker config by default).
    """
    ref = parse_reference(reference)
    plain_http = uses_plain_http(ref.registry)
    if plain_http:
        logger.debug("using_plain_http", host=ref.registry)

    provider = credentials if credentials is not None else default_credential_provider()
    credential = provider.get_credential(ref.registry)

    client = registry_factory(hostname=ref.registry, insecure=plain_http)
    if credential is not None:
        client.auth.set_basic_auth(credential.username, credential.password)
        logger.debug("credentials_resolved", host=ref.registry, username=credential.username)

    return RepositoryHandle(
        reference=ref,
        plain_http=plain_http,
        client=client,
        authenticated=credential is not None,
    )
