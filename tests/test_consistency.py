"""Tests for the cross-package consistency index."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from metapack.packages.consistency import (
    ConsistencyConflict,
    ConsistencyIndex,
    ItemIdentityError,
    MissingTimestampError,
    iter_with_related,
)
from metapack.packages.importer import ImportedItem

JAN = datetime(2024, 1, 1, tzinfo=timezone.utc)
FEB = datetime(2024, 2, 1, tzinfo=timezone.utc)
MAR = datetime(2024, 3, 1, tzinfo=timezone.utc)


def item(class_name="Concept", uuid="c1", changed=None, created=JAN, related=()):
    return ImportedItem(
        class_name=class_name,
        uuid=uuid,
        date_changed=changed,
        date_created=created,
        related_items=tuple(related),
    )


class TestImportedItem:
    def test_key(self):
        assert item("Location", "abc").key == "Location:abc"

    def test_last_modified_prefers_changed(self):
        assert item(changed=FEB, created=JAN).last_modified == FEB

    def test_last_modified_falls_back_to_created(self):
        assert item(changed=None, created=JAN).last_modified == JAN


class TestIterWithRelated:
    def test_one_level_by_default(self):
        grandchild = item(uuid="gc")
        child = item(uuid="child", related=[grandchild])
        top = item(uuid="top", related=[child])

        assert [i.uuid for i in iter_with_related([top])] == ["top", "child"]

    def test_unbounded_depth(self):
        grandchild = item(uuid="gc")
        child = item(uuid="child", related=[grandchild])
        top = item(uuid="top", related=[child])

        flattened = iter_with_related([top], max_depth=None)

        assert [i.uuid for i in flattened] == ["top", "child", "gc"]

    def test_depth_zero_yields_top_level_only(self):
        top = item(uuid="top", related=[item(uuid="child")])
        assert [i.uuid for i in iter_with_related([top], max_depth=0)] == ["top"]

    def test_deep_chain_does_not_recurse(self):
        current = item(uuid="leaf")
        for n in range(5000):
            current = item(uuid=f"n{n}", related=[current])

        assert sum(1 for _ in iter_with_related([current], max_depth=None)) == 5001


class TestConsistencyIndex:
    def test_distinct_items_counted(self):
        index = ConsistencyIndex()
        index.add_item(item(uuid="a"), "A")
        index.add_item(item(uuid="b"), "A")
        index.add_item(item(class_name="Form", uuid="a"), "A")

        assert index.size() == 3
        assert len(index) == 3
        assert index.repeated_items() == {}

    def test_same_timestamp_in_two_packages_is_shared(self):
        index = ConsistencyIndex()
        index.add_item(item(changed=FEB), "B")
        index.add_item(item(changed=FEB), "A")

        assert index.size() == 1
        assert index.repeated_items() == {"Concept:c1": ["A", "B"]}

    def test_repeat_within_one_package_is_not_shared(self):
        index = ConsistencyIndex()
        index.add_item(item(), "A")
        index.add_item(item(), "A")

        assert index.packages_for("Concept:c1") == ["A"]
        assert index.repeated_items() == {}

    def test_different_timestamp_is_conflict(self):
        index = ConsistencyIndex()
        index.add_item(item(changed=FEB), "A")

        with pytest.raises(ConsistencyConflict) as exc_info:
            index.add_item(item(changed=MAR), "B")

        conflict = exc_info.value
        assert conflict.key == "Concept:c1"
        assert conflict.packages == ["A", "B"]
        assert conflict.expected == FEB
        assert conflict.found == MAR
        assert str(conflict) == "Found inconsistent versions of Concept:c1 in ['A', 'B']"

    def test_conflict_within_one_package(self):
        index = ConsistencyIndex()
        index.add_item(item(changed=FEB), "A")
        with pytest.raises(ConsistencyConflict):
            index.add_item(item(changed=MAR), "A")

    def test_first_seen_timestamp_is_reference(self):
        index = ConsistencyIndex()
        index.add_item(item(changed=FEB), "A")
        index.add_item(item(changed=FEB), "B")

        with pytest.raises(ConsistencyConflict) as exc_info:
            index.add_item(item(changed=MAR), "C")

        assert exc_info.value.expected == FEB
        assert exc_info.value.packages == ["A", "B", "C"]

    def test_created_date_used_when_never_changed(self):
        index = ConsistencyIndex()
        index.add_item(item(changed=None, created=JAN), "A")
        index.add_item(item(changed=JAN, created=None), "B")

        assert index.repeated_items() == {"Concept:c1": ["A", "B"]}

    def test_missing_timestamp_fails_loudly(self):
        index = ConsistencyIndex()
        with pytest.raises(MissingTimestampError, match="Concept:c1"):
            index.add_item(item(changed=None, created=None), "A")

    def test_missing_uuid_fails_loudly(self):
        index = ConsistencyIndex()
        with pytest.raises(ItemIdentityError):
            index.add_item(item(uuid=""), "A")

    def test_same_timestamp_different_content_is_accepted(self):
        """Only timestamps are compared; field-level differences go unnoticed."""
        index = ConsistencyIndex()
        index.add_item(item(changed=FEB, related=[item(uuid="answer-1")]), "A")
        index.add_item(item(changed=FEB, related=[item(uuid="answer-2")]), "B")

        assert index.repeated_items() == {"Concept:c1": ["A", "B"]}


class TestAddAll:
    def test_related_items_indexed_as_top_level(self):
        parent = item(
            uuid="p",
            related=[item(class_name="ConceptAnswer", uuid="r1"), item(uuid="r2")],
        )
        index = ConsistencyIndex()
        index.add_all([parent], "A")

        assert index.size() == 3
        assert set(index.last_modified_by_key) == {
            "Concept:p",
            "ConceptAnswer:r1",
            "Concept:r2",
        }

    def test_related_item_conflict_detected(self):
        index = ConsistencyIndex()
        index.add_all([item(uuid="p1", related=[item(uuid="shared", changed=FEB)])], "A")

        with pytest.raises(ConsistencyConflict) as exc_info:
            index.add_all(
                [item(uuid="p2", related=[item(uuid="shared", changed=MAR)])], "B"
            )

        assert exc_info.value.key == "Concept:shared"

    def test_related_item_shared_with_top_level_item(self):
        index = ConsistencyIndex()
        index.add_all([item(uuid="shared", changed=FEB)], "A")
        index.add_all([item(uuid="p", related=[item(uuid="shared", changed=FEB)])], "B")

        assert index.repeated_items() == {"Concept:shared": ["A", "B"]}

    def test_repeated_items_sorted_by_key(self):
        index = ConsistencyIndex()
        for package in ("A", "B"):
            index.add_all([item(uuid="z"), item(uuid="a")], package)

        assert list(index.repeated_items()) == ["Concept:a", "Concept:z"]
