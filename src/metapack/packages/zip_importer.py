"""Reference importer for zip packages of JSON records.

Package layout:

    header.json    {"name": ..., "group_id": ..., "version": 3}
    part-0.json    [{"class_name": "Concept", "uuid": ..., "date_changed": ...,
                     "date_created": ..., "related": [...]}, ...]
    part-1.json    ...

Committing records the header's group and version in the installed
store. Persisting the records themselves is left to subclasses through
persist_items().
"""

from __future__ import annotations

import io
import json
import logging
import re
import zipfile
from datetime import datetime
from typing import BinaryIO, List, Optional

from pydantic import BaseModel, Field, ValidationError

from metapack.packages.catalog import ImportMode
from metapack.packages.consistency import iter_with_related
from metapack.packages.importer import ImportedItem
from metapack.packages.store import InstalledVersionStore

logger = logging.getLogger(__name__)

HEADER_FILENAME = "header.json"
PART_PATTERN = re.compile(r"part-(\d+)\.json")


class PackageFormatError(Exception):
    """The artifact is not a valid zip package."""


class ItemRecordModel(BaseModel):
    """A record as serialized inside a part file."""

    class_name: str = Field(..., min_length=1, description="Logical record type")
    uuid: str = Field(..., min_length=1, description="Identity within the type")
    date_changed: Optional[datetime] = Field(None, description="Last change")
    date_created: Optional[datetime] = Field(None, description="Creation time")
    related: List["ItemRecordModel"] = Field(
        default_factory=list, description="Records imported alongside this one"
    )

    def to_item(self) -> ImportedItem:
        return ImportedItem(
            class_name=self.class_name,
            uuid=self.uuid,
            date_changed=self.date_changed,
            date_created=self.date_created,
            related_items=tuple(r.to_item() for r in self.related),
        )


ItemRecordModel.model_rebuild()


class PackageHeaderModel(BaseModel):
    """Package identity stored in header.json."""

    name: str = Field(..., min_length=1)
    group_id: str = Field(..., min_length=1)
    version: int = Field(..., ge=1)
    description: Optional[str] = None


class ZipPackageImporter:
    """Loads a zip package and records it in the installed store on commit.

    Usage:
        importer = ZipPackageImporter(store)
        importer.configure(ImportMode.MIRROR)
        importer.load(stream)
        importer.commit()
    """

    def __init__(self, store: InstalledVersionStore):
        self.store = store
        self.import_mode = ImportMode.MIRROR
        self.header: PackageHeaderModel | None = None
        self._parts: list[list[ImportedItem]] = []
        self.committed = False

    @classmethod
    def factory(cls, store: InstalledVersionStore):
        """Return a zero-argument callable creating importers bound to store."""
        return lambda: cls(store)

    def configure(self, import_mode: ImportMode) -> None:
        self.import_mode = import_mode

    def load(self, stream: BinaryIO) -> None:
        """Read header and parts from the zip stream.

        Raises:
            PackageFormatError: If the zip, header or any part is invalid
        """
        try:
            with zipfile.ZipFile(stream) as zf:
                names = zf.namelist()
                if HEADER_FILENAME not in names:
                    raise PackageFormatError(f"Package has no {HEADER_FILENAME}")
                self.header = PackageHeaderModel.model_validate(
                    json.loads(zf.read(HEADER_FILENAME))
                )

                part_files = sorted(
                    (int(m.group(1)), name)
                    for name in names
                    if (m := PART_PATTERN.fullmatch(name))
                )
                self._parts = []
                for _, name in part_files:
                    records = json.loads(zf.read(name))
                    if not isinstance(records, list):
                        raise PackageFormatError(f"{name} must hold a JSON list")
                    self._parts.append(
                        [ItemRecordModel.model_validate(r).to_item() for r in records]
                    )
        except zipfile.BadZipFile as e:
            raise PackageFormatError(f"Not a zip file: {e}") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PackageFormatError(f"Invalid JSON: {e}") from e
        except ValidationError as e:
            raise PackageFormatError(f"Invalid package content: {e}") from e

        logger.debug(
            f"Loaded package {self.header.name} version {self.header.version} "
            f"({len(self._parts)} parts)"
        )

    @property
    def parts_count(self) -> int:
        return len(self._parts)

    def get_imported_items(self, part: int) -> list[ImportedItem]:
        return list(self._parts[part])

    def item_count(self) -> int:
        """Number of records including related ones."""
        return sum(
            1 for part in self._parts for _ in iter_with_related(part, max_depth=None)
        )

    def persist_items(self, items: list[ImportedItem]) -> None:
        """Hook for storing records; the reference importer keeps none."""

    def commit(self) -> None:
        """Persist items and record the installed version.

        Raises:
            RuntimeError: If called before load() or twice
        """
        if self.header is None:
            raise RuntimeError("commit() called before load()")
        if self.committed:
            raise RuntimeError("Package already committed")

        for part in self._parts:
            self.persist_items(part)

        self.store.record_install(
            self.header.group_id,
            self.header.name,
            self.header.version,
            item_count=self.item_count(),
        )
        self.committed = True


def build_package(
    name: str,
    group_id: str,
    version: int,
    parts: list[list[dict]],
    description: str | None = None,
) -> bytes:
    """Build a zip package in memory from plain record dicts."""
    header = PackageHeaderModel(
        name=name, group_id=group_id, version=version, description=description
    )
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(HEADER_FILENAME, header.model_dump_json(indent=2))
        for i, records in enumerate(parts):
            zf.writestr(f"part-{i}.json", json.dumps(records, indent=2, default=str))
    return buffer.getvalue()
