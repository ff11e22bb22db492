"""Installed-version store.

Tracks, per package group, the highest version that was successfully
imported. The version gate only reads from it; importers write to it on
commit.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

STORE_FILENAME = "installed_packages.json"


class StoreError(Exception):
    """The installed-version manifest cannot be read."""

    def __init__(self, path: Path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Cannot read installed packages from {path}: {cause}")


@dataclass
class InstalledPackage:
    """Record of an installed package group."""

    group_id: str
    name: str
    version: int
    installed_at: str
    item_count: int = 0

    def to_dict(self) -> dict:
        """Serialize to dict."""
        return {
            "group_id": self.group_id,
            "name": self.name,
            "version": self.version,
            "installed_at": self.installed_at,
            "item_count": self.item_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InstalledPackage":
        """Deserialize from dict."""
        return cls(
            group_id=data["group_id"],
            name=data.get("name", ""),
            version=int(data["version"]),
            installed_at=data.get("installed_at", ""),
            item_count=data.get("item_count", 0),
        )


class InstalledVersionStore(Protocol):
    """Lookup of installed package versions, keyed by group id."""

    def get_installed_version(self, group_id: str) -> int | None: ...

    def get(self, group_id: str) -> InstalledPackage | None: ...

    def record_install(
        self, group_id: str, name: str, version: int, item_count: int = 0
    ) -> InstalledPackage: ...

    def all(self) -> list[InstalledPackage]: ...


@dataclass
class MemoryInstalledStore:
    """In-process store, used by tests and dry runs."""

    packages: dict[str, InstalledPackage] = field(default_factory=dict)

    @classmethod
    def with_versions(cls, versions: dict[str, int]) -> "MemoryInstalledStore":
        """Build a store pre-populated with group_id -> version."""
        store = cls()
        for group_id, version in versions.items():
            store.record_install(group_id, group_id, version)
        return store

    def get_installed_version(self, group_id: str) -> int | None:
        installed = self.packages.get(group_id)
        return installed.version if installed else None

    def get(self, group_id: str) -> InstalledPackage | None:
        return self.packages.get(group_id)

    def record_install(
        self, group_id: str, name: str, version: int, item_count: int = 0
    ) -> InstalledPackage:
        """Record a successful install. A lower version never replaces a higher one."""
        existing = self.packages.get(group_id)
        if existing is not None and existing.version > version:
            logger.warning(
                f"Ignoring install record for {name} version {version}: "
                f"group {group_id} already at version {existing.version}"
            )
            return existing

        installed = InstalledPackage(
            group_id=group_id,
            name=name,
            version=version,
            installed_at=datetime.now(timezone.utc).isoformat(),
            item_count=item_count,
        )
        self.packages[group_id] = installed
        return installed

    def all(self) -> list[InstalledPackage]:
        return list(self.packages.values())


class JsonInstalledStore(MemoryInstalledStore):
    """Store persisted as a JSON manifest on disk.

    The manifest is read lazily and rewritten after every recorded install.
    """

    manifest_version = "1.0"

    def __init__(self, path: Path | str):
        super().__init__()
        self.path = Path(path)
        self._loaded = False

    def _ensure_loaded(self) -> None:
        """Read the manifest once.

        A manifest that cannot be read leaves the store unloaded, so every
        later call fails the same way and nothing is saved over it.

        Raises:
            StoreError: If the manifest exists but cannot be parsed
        """
        if self._loaded:
            return
        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                packages = {
                    group_id: InstalledPackage.from_dict(package_data)
                    for group_id, package_data in data.get("packages", {}).items()
                }
            except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
                raise StoreError(self.path, e) from e
            self.packages.update(packages)
        self._loaded = True

    def get_installed_version(self, group_id: str) -> int | None:
        self._ensure_loaded()
        return super().get_installed_version(group_id)

    def get(self, group_id: str) -> InstalledPackage | None:
        self._ensure_loaded()
        return super().get(group_id)

    def record_install(
        self, group_id: str, name: str, version: int, item_count: int = 0
    ) -> InstalledPackage:
        self._ensure_loaded()
        installed = super().record_install(group_id, name, version, item_count)
        self.save()
        return installed

    def all(self) -> list[InstalledPackage]:
        self._ensure_loaded()
        return super().all()

    def to_dict(self) -> dict:
        """Serialize to dict."""
        return {
            "manifest_version": self.manifest_version,
            "last_updated": datetime.now(timezone.utc).isoformat(),
            "packages": {k: v.to_dict() for k, v in self.packages.items()},
        }

    def save(self) -> None:
        """Save to file, replacing the old manifest only once fully written."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)
