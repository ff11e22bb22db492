"""Shared fixtures for metapack tests."""

from __future__ import annotations

import pytest

from metapack.packages.catalog import ImportMode, PackageDescriptor
from metapack.packages.orchestrator import PackageOrchestrator
from metapack.packages.resolver import MemoryResolver
from metapack.packages.store import MemoryInstalledStore
from metapack.packages.zip_importer import ZipPackageImporter, build_package


def make_record(
    class_name: str,
    uuid: str,
    changed: str | None = None,
    created: str | None = "2024-01-01T00:00:00+00:00",
    related: list[dict] | None = None,
) -> dict:
    """A record dict as stored in a part file."""
    return {
        "class_name": class_name,
        "uuid": uuid,
        "date_changed": changed,
        "date_created": created,
        "related": related or [],
    }


class CountingImporterFactory:
    """Creates ZipPackageImporters and remembers each one."""

    def __init__(self, store):
        self.store = store
        self.created: list[ZipPackageImporter] = []

    def __call__(self) -> ZipPackageImporter:
        importer = ZipPackageImporter(self.store)
        self.created.append(importer)
        return importer

    @property
    def commits(self) -> int:
        return sum(1 for importer in self.created if importer.committed)


@pytest.fixture
def record():
    return make_record


@pytest.fixture
def store():
    return MemoryInstalledStore()


@pytest.fixture
def resolver():
    return MemoryResolver()


@pytest.fixture
def factory(store):
    return CountingImporterFactory(store)


@pytest.fixture
def orchestrator(store, resolver, factory):
    return PackageOrchestrator(store, resolver, factory)


@pytest.fixture
def publish(resolver):
    """Build a package artifact, register it with the resolver, return its descriptor."""

    def _publish(
        name: str,
        version: int,
        group_id: str | None = None,
        parts: list[list[dict]] | None = None,
        import_mode: ImportMode = ImportMode.MIRROR,
    ) -> PackageDescriptor:
        group_id = group_id or f"group-{name}"
        descriptor = PackageDescriptor(
            name=name,
            version=version,
            group_id=group_id,
            import_mode=import_mode,
        )
        resolver.add(
            descriptor.filename,
            build_package(name, group_id, version, parts or [[]]),
        )
        return descriptor

    return _publish
