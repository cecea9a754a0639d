"""Exception hierarchy for kroctl.

Every error raised by kroctl derives from :class:`KroctlError`. The CLI
catches that base class, prints the message on a single line and exits with
the error's ``exit_code``.
"""

from __future__ import annotations

__all__ = [
    "CancellationError",
    "CredentialStoreError",
    "FetchError",
    "InvalidReferenceError",
    "KroctlError",
    "NoInputFilesError",
    "PackError",
    "PathNotFoundError",
    "PublishError",
    "ReferenceNotFoundError",
]


class KroctlError(Exception):
    """Base exception for all kroctl errors."""

    exit_code: int = 1


class InvalidReferenceError(KroctlError):
    """Raised when an artifact reference cannot be parsed."""

    def __init__(self, reference: str, reason: str) -> None:
        self.reference = reference
        self.reason = reason
        super().__init__(f"invalid reference {reference}: {reason}")


class CredentialStoreError(KroctlError):
    """Raised when the local credential store cannot be opened."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"failed to create credential store: {reason}")


class PathNotFoundError(KroctlError):
    """Raised when a path given with ``--filenames`` does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"failed to access {path}: no such file or directory")


class NoInputFilesError(KroctlError):
    """Raised when no YAML files were found in the given paths."""

    def __init__(self) -> None:
        super().__init__("no YAML files found in specified paths")


class PackError(KroctlError):
    """Raised when staging a file or packing the manifest fails."""


class PublishError(KroctlError):
    """Raised when copying the artifact to the remote repository fails."""

    def __init__(self, reference: str, reason: str) -> None:
        self.reference = reference
        self.reason = reason
        super().__init__(f"failed to push artifact {reference}: {reason}")


class ReferenceNotFoundError(KroctlError):
    """Raised when a tag or digest does not exist in the registry."""

    def __init__(self, reference: str) -> None:
        self.reference = reference
        super().__init__(f"failed to fetch manifest: {reference}: not found")


class FetchError(KroctlError):
    """Raised when fetching or parsing a remote manifest fails."""

    def __init__(self, reference: str, reason: str) -> None:
        self.reference = reference
        self.reason = reason
        super().__init__(f"failed to fetch manifest {reference}: {reason}")


class CancellationError(KroctlError):
    """Raised when an operation is interrupted by the user."""

    exit_code: int = 130

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} cancelled")
