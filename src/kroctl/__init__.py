"""kroctl: package kro ResourceGraphDefinitions as OCI artifacts."""

from .version import VERSION as __version__

__all__ = ["__version__"]
