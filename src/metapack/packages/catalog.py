"""Package catalog loading and validation.

Loads the list of metadata packages a deployment ships with. Two file
layouts are accepted:

- packages.xml (the default), in the historical layout:

      <config>
        <packages>
          <package>
            <filenameBase>Reference_Concepts</filenameBase>
            <groupUuid>3c5f...</groupUuid>
            <version>7</version>
            <importMode>MIRROR</importMode>
          </package>
        </packages>
      </config>

- packages.yaml / packages.yml:

      packages:
        - name: Reference_Concepts
          group_id: 3c5f...
          version: 7
          import_mode: mirror

Catalog order is significant: it is the order packages are installed in
and the order used to decide which package "first saw" an item when
checking consistency.
"""

from __future__ import annotations

import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import yaml

PACKAGES_FILENAME = "packages.xml"


class ImportMode(Enum):
    """Import policy handed to the importer untouched."""

    MIRROR = "MIRROR"
    PARENT = "PARENT"
    PEER = "PEER"
    CHILD = "CHILD"
    PARENT_AND_CHILD = "PARENT_AND_CHILD"

    @classmethod
    def parse(cls, value: "str | ImportMode | None") -> "ImportMode":
        """Parse a catalog value, case-insensitively. Empty means MIRROR."""
        if isinstance(value, ImportMode):
            return value
        if value is None or not str(value).strip():
            return cls.MIRROR
        normalized = str(value).strip().upper().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError:
            valid = [m.value for m in cls]
            raise ValueError(
                f"Invalid import mode '{value}'. Must be one of: {valid}"
            ) from None


class CatalogValidationError(Exception):
    """Raised when the package catalog cannot be loaded or is invalid."""

    def __init__(self, message: str, package_key: str | None = None):
        self.package_key = package_key
        full_message = f"[{package_key}] {message}" if package_key else message
        super().__init__(full_message)


@dataclass(frozen=True)
class PackageDescriptor:
    """A single package entry from the catalog.

    Fields:
        name: Package name, also the artifact filename base
        version: Positive integer version of the shipped artifact
        group_id: Stable install-history key, shared by all versions
        import_mode: Policy passed opaquely to the importer
    """

    name: str
    version: int
    group_id: str
    import_mode: ImportMode = ImportMode.MIRROR

    @property
    def filename(self) -> str:
        """Artifact filename derived from name and version."""
        return f"{self.name}-{self.version}.zip"

    @classmethod
    def from_dict(cls, key: str, data: dict) -> "PackageDescriptor":
        """Create a descriptor from a catalog entry dict.

        Accepts both the snake_case keys of YAML catalogs and the
        camelCase keys of the XML layout.
        """
        name = data.get("name", data.get("filenameBase", ""))
        group_id = data.get("group_id", data.get("groupUuid", ""))
        raw_version = data.get("version")
        raw_mode = data.get("import_mode", data.get("importMode"))

        if name is None or str(name).strip() == "":
            raise CatalogValidationError("Missing required field: name", key)
        if group_id is None or str(group_id).strip() == "":
            raise CatalogValidationError("Missing required field: group_id", key)
        if raw_version is None or str(raw_version).strip() == "":
            raise CatalogValidationError("Missing required field: version", key)

        try:
            version = int(str(raw_version).strip())
        except ValueError:
            raise CatalogValidationError(
                f"Version must be an integer, got '{raw_version}'", key
            ) from None
        if version < 1:
            raise CatalogValidationError(
                f"Version must be positive, got {version}", key
            )

        try:
            import_mode = ImportMode.parse(raw_mode)
        except ValueError as e:
            raise CatalogValidationError(str(e), key) from None

        return cls(
            name=str(name).strip(),
            version=version,
            group_id=str(group_id).strip(),
            import_mode=import_mode,
        )

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "version": self.version,
            "group_id": self.group_id,
            "import_mode": self.import_mode.value,
            "filename": self.filename,
        }


@dataclass
class PackageCatalog:
    """Ordered container of package descriptors."""

    packages: list[PackageDescriptor] = field(default_factory=list)
    path: Path | None = None

    def __iter__(self):
        return iter(self.packages)

    def __len__(self) -> int:
        return len(self.packages)

    @property
    def names(self) -> list[str]:
        return [p.name for p in self.packages]

    def get(self, name: str) -> PackageDescriptor | None:
        """Get the first descriptor with this name."""
        for package in self.packages:
            if package.name == name:
                return package
        return None

    def filter(self, names_to_keep) -> "PackageCatalog":
        """Return a new catalog keeping only the named packages, in order."""
        keep = set(names_to_keep)
        return PackageCatalog(
            packages=[p for p in self.packages if p.name in keep],
            path=self.path,
        )

    def validate(self) -> list[str]:
        """Validate catalog and return list of warnings."""
        warnings = []

        seen_names: set[str] = set()
        for package in self.packages:
            if package.name in seen_names:
                warnings.append(f"Package '{package.name}' is listed more than once")
            seen_names.add(package.name)

        groups: dict[str, str] = {}
        for package in self.packages:
            owner = groups.setdefault(package.group_id, package.name)
            if owner != package.name:
                warnings.append(
                    f"Packages '{owner}' and '{package.name}' share group "
                    f"{package.group_id}"
                )

        return warnings

    @classmethod
    def load(cls, path: Path | str | None = None) -> "PackageCatalog":
        """Load catalog from an XML or YAML file.

        Args:
            path: Catalog file. If None, uses:
                  1. METAPACK_CATALOG_PATH env var
                  2. packages.xml in the current directory

        Returns:
            Loaded PackageCatalog

        Raises:
            CatalogValidationError: If the file cannot be parsed or an entry is invalid
            FileNotFoundError: If the catalog file does not exist
        """
        if path is None:
            env_path = os.environ.get("METAPACK_CATALOG_PATH")
            path = Path(env_path) if env_path else Path.cwd() / PACKAGES_FILENAME

        if isinstance(path, str):
            path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Catalog not found: {path}")

        if path.suffix.lower() in (".yaml", ".yml"):
            entries = _read_yaml_entries(path)
        else:
            entries = _read_xml_entries(path)

        packages = [
            PackageDescriptor.from_dict(f"package[{i}]", entry)
            for i, entry in enumerate(entries)
        ]
        return cls(packages=packages, path=path)


def _read_xml_entries(path: Path) -> list[dict]:
    """Read <package> elements into plain dicts."""
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise CatalogValidationError(
            f"Cannot parse {path.name}: {e}"
        ) from e

    container = root.find("packages")
    if container is None:
        if root.tag == "packages":
            container = root
        else:
            raise CatalogValidationError(f"{path.name} has no <packages> element")

    entries = []
    for elem in container.findall("package"):
        entries.append(
            {child.tag: (child.text or "").strip() for child in elem}
        )
    return entries


def _read_yaml_entries(path: Path) -> list[dict]:
    """Read the packages list from a YAML catalog."""
    with open(path, "r", encoding="utf-8") as f:
        try:
            raw_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise CatalogValidationError(f"Cannot parse {path.name}: {e}") from e

    if isinstance(raw_data, dict):
        raw_data = raw_data.get("packages")

    if not isinstance(raw_data, list):
        raise CatalogValidationError("Catalog must contain a 'packages' list")

    for i, entry in enumerate(raw_data):
        if not isinstance(entry, dict):
            raise CatalogValidationError("Entry must be a mapping", f"package[{i}]")
    return raw_data
