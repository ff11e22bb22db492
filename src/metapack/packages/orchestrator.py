"""Batch orchestration over a package catalog.

Two passes share the catalog and the importer:

- install: every descriptor goes through the version gate, in catalog
  order. Per-package failures are logged and the batch carries on.
- verify: every package is loaded (never committed) and its items fed
  into one ConsistencyIndex. The first conflict aborts the run.

Any distribution that installs packages this way should run
verify_consistency over its catalog as part of its test suite, so an
order-dependent catalog is caught before release.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable

from metapack.packages.catalog import PackageCatalog
from metapack.packages.consistency import ConsistencyIndex
from metapack.packages.gate import (
    InstallOutcome,
    InstallStatus,
    MissingArtifactError,
    VersionGate,
    parse_filename_version,
)
from metapack.packages.importer import ImporterFactory
from metapack.packages.resolver import ArtifactResolver
from metapack.packages.store import InstalledVersionStore

logger = logging.getLogger(__name__)


@dataclass
class InstallReport:
    """Per-package outcomes of one install pass."""

    outcomes: list[InstallOutcome] = field(default_factory=list)

    @property
    def any_changes(self) -> bool:
        return any(outcome.changed for outcome in self.outcomes)

    @property
    def installed(self) -> list[InstallOutcome]:
        return [o for o in self.outcomes if o.status == InstallStatus.INSTALLED]

    @property
    def skipped(self) -> list[InstallOutcome]:
        return [o for o in self.outcomes if o.status == InstallStatus.SKIPPED]

    @property
    def failed(self) -> list[InstallOutcome]:
        return [o for o in self.outcomes if o.status == InstallStatus.FAILED]

    def to_dict(self) -> dict:
        """Serialize to dict."""
        return {
            "any_changes": self.any_changes,
            "packages": [
                {
                    "name": o.descriptor.name,
                    "version": o.descriptor.version,
                    "status": o.status.value,
                    "installed_version": o.installed_version,
                    "error": str(o.error) if o.error else None,
                }
                for o in self.outcomes
            ],
        }


@dataclass
class ConsistencyReport:
    """Summary of a successful consistency check."""

    total_items: int
    shared_items: dict[str, list[str]]
    packages_inspected: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize to dict."""
        return {
            "total_items": self.total_items,
            "shared_item_count": len(self.shared_items),
            "shared_items": self.shared_items,
            "packages_inspected": self.packages_inspected,
        }


class PackageOrchestrator:
    """Runs a catalog through installation or consistency checking.

    Usage:
        orchestrator = PackageOrchestrator(store, resolver, factory)
        orchestrator.verify_consistency(catalog)
        changed = orchestrator.install_all(catalog)
    """

    def __init__(
        self,
        store: InstalledVersionStore,
        resolver: ArtifactResolver,
        importer_factory: ImporterFactory,
    ):
        self.store = store
        self.resolver = resolver
        self.importer_factory = importer_factory
        self.gate = VersionGate(store, resolver, importer_factory)
        self._install_lock = threading.Lock()

    def install_report(self, catalog: PackageCatalog) -> InstallReport:
        """Install every package that needs it and report each outcome.

        Calls are serialized; a second caller waits for the running batch.
        """
        with self._install_lock:
            report = InstallReport()
            for descriptor in catalog:
                report.outcomes.append(self.gate.install_if_necessary(descriptor))

        if report.failed:
            logger.warning(
                f"{len(report.failed)} of {len(report.outcomes)} metadata "
                f"packages failed to install"
            )
        return report

    def install_all(self, catalog: PackageCatalog) -> bool:
        """Install every package that needs it.

        Returns:
            True if any package was imported
        """
        return self.install_report(catalog).any_changes

    def install_subset(
        self, catalog: PackageCatalog, names_to_keep: Iterable[str]
    ) -> bool:
        """Install only the named packages, keeping catalog order."""
        return self.install_all(catalog.filter(names_to_keep))

    def verify_consistency(
        self, catalog: PackageCatalog, max_depth: int | None = 1
    ) -> ConsistencyReport:
        """Check that no record appears with two timestamps across packages.

        Returns:
            ConsistencyReport with item counts and records shared by packages

        Raises:
            ConsistencyConflict: If two packages disagree on a record
            MissingTimestampError: If a record has no timestamp
            ItemIdentityError: If a record has no identity
            MissingArtifactError: If a package artifact cannot be found
            ConfigurationError: If a derived filename is malformed
        """
        index = ConsistencyIndex()
        inspected = []

        for descriptor in catalog:
            filename = descriptor.filename
            parse_filename_version(filename)
            logger.debug(f"Inspecting {filename}")

            importer = self.importer_factory()
            importer.configure(descriptor.import_mode)

            stream = self.resolver.resolve(filename)
            if stream is None:
                raise MissingArtifactError(filename, descriptor.group_id)
            with stream:
                importer.load(stream)

            for part in range(importer.parts_count):
                index.add_all(
                    importer.get_imported_items(part),
                    descriptor.name,
                    max_depth=max_depth,
                )

            inspected.append(descriptor.name)
            logger.debug(
                f"Finished. Running total number of distinct items: {index.size()}"
            )

        repeated = index.repeated_items()
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Items that occur in multiple metadata packages:")
            for key, owners in repeated.items():
                logger.debug(f"{key} -> {owners}")
        logger.info(f"Number of distinct items in multiple packages: {len(repeated)}")
        logger.info(f"Total number of distinct items: {index.size()}")

        return ConsistencyReport(
            total_items=index.size(),
            shared_items=repeated,
            packages_inspected=inspected,
        )
