"""Cross-package consistency index.

If two packages ship different versions of the same record, the result
of installing both depends on which one goes last. The index records,
for every record identity seen across a set of packages, the first
last-modified timestamp and the packages it appeared in, and fails as
soon as a later copy disagrees.

Only timestamps are compared. Two copies with the same timestamp and
different field values are accepted.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime
from typing import Iterable, Iterator

from metapack.packages.importer import ImportedItem


class ConsistencyConflict(Exception):
    """Two packages carry different versions of the same record."""

    def __init__(
        self,
        key: str,
        packages: list[str],
        expected: datetime,
        found: datetime,
    ):
        self.key = key
        self.packages = packages
        self.expected = expected
        self.found = found
        super().__init__(f"Found inconsistent versions of {key} in {packages}")


class MissingTimestampError(Exception):
    """A record has neither a changed nor a created date."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"{key} has no date changed or date created")


class ItemIdentityError(Exception):
    """A record has no usable type name or uuid."""

    def __init__(self, item: ImportedItem):
        self.item = item
        super().__init__(f"Couldn't get identity (class name and uuid) from {item!r}")


def iter_with_related(
    items: Iterable[ImportedItem], max_depth: int | None = 1
) -> Iterator[ImportedItem]:
    """Yield each item followed by its related items, as one flat stream.

    Args:
        items: Top-level items
        max_depth: How many levels of related items to follow. 1 yields an
            item's direct related items only; None follows the whole tree.
    """
    for item in items:
        seen: set[int] = set()
        queue: deque[tuple[ImportedItem, int]] = deque([(item, 0)])
        while queue:
            current, depth = queue.popleft()
            if id(current) in seen:
                continue
            seen.add(id(current))
            yield current
            if max_depth is None or depth < max_depth:
                queue.extend((related, depth + 1) for related in current.related_items)


class ConsistencyIndex:
    """Maps record identity to first-seen timestamp and owning packages.

    Usage:
        index = ConsistencyIndex()
        for name, items in packages:
            index.add_all(items, name)
        index.repeated_items()
    """

    def __init__(self):
        self.last_modified_by_key: dict[str, datetime] = {}
        self.packages_by_key: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self.last_modified_by_key)

    def size(self) -> int:
        """Number of distinct record identities seen."""
        return len(self.last_modified_by_key)

    def add_item(self, item: ImportedItem, package_name: str) -> None:
        """Index a single item (related items are not followed).

        Raises:
            ItemIdentityError: If the item has no class name or uuid
            MissingTimestampError: If the item has no timestamp
            ConsistencyConflict: If the key was seen with another timestamp
        """
        if not item.class_name or not item.uuid:
            raise ItemIdentityError(item)

        key = item.key
        last_modified = item.last_modified
        if last_modified is None:
            raise MissingTimestampError(key)

        owners = self.packages_by_key.setdefault(key, set())
        owners.add(package_name)

        existing = self.last_modified_by_key.get(key)
        if existing is None:
            self.last_modified_by_key[key] = last_modified
        elif existing != last_modified:
            raise ConsistencyConflict(key, sorted(owners), existing, last_modified)

    def add_all(
        self,
        items: Iterable[ImportedItem],
        package_name: str,
        max_depth: int | None = 1,
    ) -> None:
        """Index items and their related items."""
        for item in iter_with_related(items, max_depth=max_depth):
            self.add_item(item, package_name)

    def packages_for(self, key: str) -> list[str]:
        """Sorted names of the packages that contain key."""
        return sorted(self.packages_by_key.get(key, ()))

    def repeated_items(self) -> dict[str, list[str]]:
        """Keys found in more than one package, sorted by key."""
        return {
            key: sorted(owners)
            for key, owners in sorted(self.packages_by_key.items())
            if len(owners) > 1
        }
