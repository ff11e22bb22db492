"""Artifact resolution for package files.

Design assumptions:
- Package artifacts are named <name>-<version>.zip
- Artifacts live in one or more package directories, searched in order
- The first directory containing the file wins
"""

from __future__ import annotations

import io
import os
from pathlib import Path
from typing import BinaryIO, Protocol


class ArtifactResolver(Protocol):
    """Resolves an artifact filename to a readable byte stream."""

    def exists(self, filename: str) -> bool: ...

    def resolve(self, filename: str) -> BinaryIO | None: ...


class DirectoryResolver:
    """Resolves artifacts from a list of directories.

    Search order:
    1. Explicit search paths, in the order given
    2. METAPACK_PACKAGES_DIR env var (if set and not already listed)
    """

    def __init__(self, search_paths: list[Path | str] | None = None):
        """Initialize resolver.

        Args:
            search_paths: Directories to search for artifacts
        """
        self.search_paths = [Path(p) for p in (search_paths or [])]

        env_dir = os.environ.get("METAPACK_PACKAGES_DIR")
        if env_dir and Path(env_dir) not in self.search_paths:
            self.search_paths.append(Path(env_dir))

    def locate(self, filename: str) -> Path | None:
        """Return the path of the first matching artifact, or None."""
        for directory in self.search_paths:
            candidate = directory / filename
            if candidate.is_file():
                return candidate
        return None

    def exists(self, filename: str) -> bool:
        return self.locate(filename) is not None

    def resolve(self, filename: str) -> BinaryIO | None:
        path = self.locate(filename)
        if path is None:
            return None
        return open(path, "rb")


class MemoryResolver:
    """Resolves artifacts from an in-memory filename -> bytes mapping."""

    def __init__(self, artifacts: dict[str, bytes] | None = None):
        self.artifacts = dict(artifacts or {})

    def add(self, filename: str, data: bytes) -> None:
        self.artifacts[filename] = data

    def exists(self, filename: str) -> bool:
        return filename in self.artifacts

    def resolve(self, filename: str) -> BinaryIO | None:
        data = self.artifacts.get(filename)
        return io.BytesIO(data) if data is not None else None
