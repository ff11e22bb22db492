"""Configuration settings for metapack."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from metapack.packages.catalog import PACKAGES_FILENAME
from metapack.packages.store import STORE_FILENAME


def _env_path(name: str) -> Path | None:
    value = os.environ.get(name)
    return Path(value) if value else None


@dataclass
class Settings:
    """Application settings.

    Every path can be overridden with an environment variable:
    METAPACK_DATA_ROOT, METAPACK_CATALOG_PATH, METAPACK_PACKAGES_DIR.
    """

    # Installed-version manifest lives here
    data_root: Path = field(
        default_factory=lambda: _env_path("METAPACK_DATA_ROOT")
        or Path.home() / ".metapack" / "data"
    )

    # Catalog of packages to consider
    catalog_path: Path = field(
        default_factory=lambda: _env_path("METAPACK_CATALOG_PATH")
        or Path.cwd() / PACKAGES_FILENAME
    )

    # Directory holding <name>-<version>.zip artifacts
    packages_dir: Path | None = field(
        default_factory=lambda: _env_path("METAPACK_PACKAGES_DIR")
    )

    # How many levels of related items the consistency check follows
    related_depth: int | None = 1

    @property
    def store_path(self) -> Path:
        return self.data_root / STORE_FILENAME

    @property
    def package_search_paths(self) -> list[Path]:
        """Explicit packages dir first, then the catalog's directory."""
        paths = []
        if self.packages_dir is not None:
            paths.append(self.packages_dir)
        paths.append(self.catalog_path.parent)
        return paths
