"""Importer interface consumed by the version gate and consistency check.

The importer owns the package file format and whatever persists imported
records. This module only fixes the calls made against it and the shape
of the items it reports back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Callable, Protocol, Sequence

from metapack.packages.catalog import ImportMode


@dataclass(frozen=True)
class ImportedItem:
    """One record read from a package.

    related_items holds records pulled in alongside this one, e.g. the
    answers of a coded concept.
    """

    class_name: str
    uuid: str
    date_changed: datetime | None = None
    date_created: datetime | None = None
    related_items: tuple["ImportedItem", ...] = field(default_factory=tuple)

    @property
    def key(self) -> str:
        """Identity key shared by every copy of this record."""
        return f"{self.class_name}:{self.uuid}"

    @property
    def last_modified(self) -> datetime | None:
        """date_changed, falling back to date_created."""
        if self.date_changed is not None:
            return self.date_changed
        return self.date_created


class PackageImporter(Protocol):
    """A single-use importer for one package artifact."""

    def configure(self, import_mode: ImportMode) -> None: ...

    def load(self, stream: BinaryIO) -> None: ...

    def commit(self) -> None: ...

    @property
    def parts_count(self) -> int: ...

    def get_imported_items(self, part: int) -> Sequence[ImportedItem]: ...


ImporterFactory = Callable[[], PackageImporter]
