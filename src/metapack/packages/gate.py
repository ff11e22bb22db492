"""Version gate: install a package only when its version is new.

For each catalog entry the gate derives the artifact filename, compares
the version it carries with the installed version of the package group
and, when newer, runs the importer over it. Failures are contained to
the package they happen in.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum

from metapack.packages.catalog import PackageDescriptor
from metapack.packages.importer import ImporterFactory
from metapack.packages.resolver import ArtifactResolver
from metapack.packages.store import InstalledVersionStore

logger = logging.getLogger(__name__)

FILENAME_PATTERN = re.compile(r"(?:.+/)?\w+-(\d+)\.zip", re.ASCII)


class ConfigurationError(Exception):
    """The descriptor does not yield a valid <name>-<version>.zip filename."""

    def __init__(self, message: str, filename: str):
        self.filename = filename
        super().__init__(message)


class MissingArtifactError(Exception):
    """The artifact for a descriptor cannot be found."""

    def __init__(self, filename: str, group_id: str):
        self.filename = filename
        self.group_id = group_id
        super().__init__(f"Cannot find {filename} for group {group_id}")


class VersionNotRecordedError(Exception):
    """The import finished but the store does not show the new version."""

    def __init__(
        self, filename: str, group_id: str, expected: int, recorded: int | None
    ):
        self.filename = filename
        self.group_id = group_id
        self.expected = expected
        self.recorded = recorded
        super().__init__(
            f"Imported {filename} but group {group_id} is recorded at version "
            f"{recorded}, expected {expected}"
        )


class ImportFailure(Exception):
    """The importer failed while loading or committing a package."""

    def __init__(self, filename: str, cause: Exception):
        self.filename = filename
        self.cause = cause
        super().__init__(f"Failed to import {filename}: {cause}")


def parse_filename_version(filename: str) -> int:
    """Return the version encoded in an artifact filename.

    Raises:
        ConfigurationError: If the name is not <word-chars>-<digits>.zip
    """
    match = FILENAME_PATTERN.fullmatch(filename)
    if not match:
        raise ConfigurationError(
            "Filename must match PackageNameWithNoSpaces-X.zip", filename
        )
    return int(match.group(1))


class InstallStatus(Enum):
    INSTALLED = "installed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class GateDecision:
    """Whether a descriptor needs installing, without doing it."""

    descriptor: PackageDescriptor
    filename: str
    file_version: int
    installed_version: int | None

    @property
    def needs_install(self) -> bool:
        return (
            self.installed_version is None
            or self.installed_version < self.file_version
        )


@dataclass
class InstallOutcome:
    """Result of running one descriptor through the gate."""

    descriptor: PackageDescriptor
    status: InstallStatus
    installed_version: int | None = None
    error: Exception | None = None
    duration_ms: float = 0.0

    @property
    def changed(self) -> bool:
        """True if the package was imported."""
        return self.status == InstallStatus.INSTALLED

    @property
    def message(self) -> str:
        name = self.descriptor.name
        if self.status == InstallStatus.INSTALLED:
            return f"Installed {self.descriptor.filename} in {self.duration_ms:.0f}ms"
        if self.status == InstallStatus.SKIPPED:
            return f"{name} already installed with version {self.installed_version}"
        return f"Failed to install {name}: {self.error}"


class VersionGate:
    """Installs a package when its version beats the installed one.

    Usage:
        gate = VersionGate(store, resolver, ZipPackageImporter.factory(store))
        outcome = gate.install_if_necessary(descriptor)
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

    def decide(self, descriptor: PackageDescriptor) -> GateDecision:
        """Compare the descriptor's version with the installed one.

        Raises:
            ConfigurationError: If the derived filename is malformed
        """
        filename = descriptor.filename
        file_version = parse_filename_version(filename)
        installed_version = self.store.get_installed_version(descriptor.group_id)
        return GateDecision(
            descriptor=descriptor,
            filename=filename,
            file_version=file_version,
            installed_version=installed_version,
        )

    def install_if_necessary(self, descriptor: PackageDescriptor) -> InstallOutcome:
        """Install the descriptor's package if a newer version is shipped.

        Never raises: configuration, missing artifact and import errors
        are logged and returned as a FAILED outcome.
        """
        filename = descriptor.filename
        try:
            decision = self.decide(descriptor)
            if not decision.needs_install:
                logger.info(
                    f"Metadata package {descriptor.name} is already installed "
                    f"with version {decision.installed_version}"
                )
                return InstallOutcome(
                    descriptor=descriptor,
                    status=InstallStatus.SKIPPED,
                    installed_version=decision.installed_version,
                )

            if not self.resolver.exists(filename):
                raise MissingArtifactError(filename, descriptor.group_id)

            duration_ms = self._import(descriptor, filename)

            # The importer records what the artifact says about itself.
            recorded = self.store.get_installed_version(descriptor.group_id)
            if recorded is None or recorded < decision.file_version:
                raise VersionNotRecordedError(
                    filename, descriptor.group_id, decision.file_version, recorded
                )

            return InstallOutcome(
                descriptor=descriptor,
                status=InstallStatus.INSTALLED,
                installed_version=decision.file_version,
                duration_ms=duration_ms,
            )
        except Exception as e:
            logger.exception(f"Failed to install metadata package {filename}")
            return InstallOutcome(
                descriptor=descriptor,
                status=InstallStatus.FAILED,
                error=e,
            )

    def _import(self, descriptor: PackageDescriptor, filename: str) -> float:
        """Load and commit the artifact. Returns elapsed milliseconds."""
        logger.info(f"About to import metadata package: {filename}")
        started = time.perf_counter()

        try:
            importer = self.importer_factory()
            importer.configure(descriptor.import_mode)

            stream = self.resolver.resolve(filename)
            if stream is None:
                raise MissingArtifactError(filename, descriptor.group_id)

            logger.info(f"...loading package: {filename}")
            with stream:
                importer.load(stream)

            logger.info(f"...importing package: {filename}")
            importer.commit()
        except MissingArtifactError:
            raise
        except Exception as e:
            raise ImportFailure(filename, e) from e

        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(f"Imported {filename} in {duration_ms:.0f}ms")
        return duration_ms
