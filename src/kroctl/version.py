"""Version and platform information."""

from __future__ import annotations

import platform
import sys
from importlib.metadata import PackageNotFoundError, version

__all__ = [
    "VERSION",
    "platform_string",
]

try:
    VERSION = version("kroctl")
except PackageNotFoundError:
    VERSION = "dev"

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
}


def platform_string() -> str:
    """Return ``<os>/<arch>``, e.g. ``linux/amd64``."""
    system = "windows" if sys.platform.startswith("win") else sys.platform
    machine = platform.machine().lower()
    return f"{system}/{_ARCH_ALIASES.get(machine, machine or 'unknown')}"
