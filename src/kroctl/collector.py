"""Expands ``--filenames`` arguments into the list of RGD files to package."""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator
from pathlib import Path

import structlog

from .errors import NoInputFilesError, PathNotFoundError

__all__ = [
    "YAML_EXTENSIONS",
    "collect_files",
    "is_yaml_file",
]

logger = structlog.get_logger(__name__)

YAML_EXTENSIONS = frozenset({".yaml", ".yml"})


def is_yaml_file(path: Path) -> bool:
    """Return True if *path* has a ``.yaml`` or ``.yml`` extension."""
    return path.suffix in YAML_EXTENSIONS


def _walk(directory: Path, sort: bool) -> Iterator[Path]:
    for root, dirs, files in os.walk(directory):
        if sort:
            dirs.sort()
            files.sort()
        for name in files:
            path = Path(root) / name
            if is_yaml_file(path):
                yield path


def collect_files(
    paths: Iterable[str | os.PathLike[str]],
    *,
    sort_directories: bool = True,
) -> list[Path]:
    """
    Flatten *paths* into a deduplicated list of files.

    Files named explicitly are kept whatever their extension. Directories are
    walked recursively and contribute only YAML files. Order follows the
    arguments, then directory traversal (sorted unless *sort_directories* is
    False).

    Raises ``PathNotFoundError`` for a missing path and ``NoInputFilesError``
    when nothing was collected.
    """
    collected: list[Path] = []
    seen: set[Path] = set()

    def _add(path: Path) -> None:
        key = path.resolve()
        if key not in seen:
            seen.add(key)
            collected.append(path)

    for arg in paths:
        path = Path(arg)
        if not path.exists():
            raise PathNotFoundError(str(arg))

        if path.is_dir():
            before = len(collected)
            for found in _walk(path, sort_directories):
                _add(found)
            logger.debug("directory_walked", path=str(path), files=len(collected) - before)
        else:
            _add(path)

    if not collected:
        raise NoInputFilesError()
    return collected
