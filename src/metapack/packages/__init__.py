"""Metadata package installation and consistency checking.

- catalog.py: Load packages.xml / packages.yaml into PackageDescriptors
- store.py: Installed-version store (in memory or JSON manifest)
- resolver.py: Locate <name>-<version>.zip artifacts
- importer.py: Importer protocol and ImportedItem
- zip_importer.py: Reference importer for zip packages of JSON records
- gate.py: Version gate, installs a package only when it is newer
- consistency.py: Cross-package record timestamp index
- orchestrator.py: install_all / install_subset / verify_consistency
"""

from metapack.packages.catalog import (
    PACKAGES_FILENAME,
    CatalogValidationError,
    ImportMode,
    PackageCatalog,
    PackageDescriptor,
)
from metapack.packages.consistency import (
    ConsistencyConflict,
    ConsistencyIndex,
    ItemIdentityError,
    MissingTimestampError,
)
from metapack.packages.gate import (
    ConfigurationError,
    ImportFailure,
    InstallOutcome,
    InstallStatus,
    MissingArtifactError,
    VersionGate,
    VersionNotRecordedError,
)
from metapack.packages.importer import ImportedItem, PackageImporter
from metapack.packages.orchestrator import (
    ConsistencyReport,
    InstallReport,
    PackageOrchestrator,
)
from metapack.packages.resolver import DirectoryResolver, MemoryResolver
from metapack.packages.store import (
    InstalledPackage,
    JsonInstalledStore,
    MemoryInstalledStore,
    StoreError,
)
from metapack.packages.zip_importer import PackageFormatError, ZipPackageImporter

__all__ = [
    "PACKAGES_FILENAME",
    "CatalogValidationError",
    "ImportMode",
    "PackageCatalog",
    "PackageDescriptor",
    "ConsistencyConflict",
    "ConsistencyIndex",
    "ItemIdentityError",
    "MissingTimestampError",
    "ConfigurationError",
    "ImportFailure",
    "InstallOutcome",
    "InstallStatus",
    "MissingArtifactError",
    "VersionGate",
    "VersionNotRecordedError",
    "ImportedItem",
    "PackageImporter",
    "ConsistencyReport",
    "InstallReport",
    "PackageOrchestrator",
    "DirectoryResolver",
    "MemoryResolver",
    "InstalledPackage",
    "JsonInstalledStore",
    "MemoryInstalledStore",
    "StoreError",
    "PackageFormatError",
    "ZipPackageImporter",
]
