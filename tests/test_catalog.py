"""Tests for package catalog loading and validation."""

from __future__ import annotations

import pytest

from metapack.packages.catalog import (
    CatalogValidationError,
    ImportMode,
    PackageCatalog,
    PackageDescriptor,
)


XML_CATALOG = """<?xml version="1.0" encoding="UTF-8"?>
<config>
  <packages>
    <package>
      <filenameBase>Reference_Concepts</filenameBase>
      <groupUuid>a1b2c3</groupUuid>
      <version>7</version>
      <importMode>MIRROR</importMode>
    </package>
    <package>
      <filenameBase>Encounter_Types</filenameBase>
      <groupUuid>d4e5f6</groupUuid>
      <version>2</version>
      <importMode>parent_and_child</importMode>
    </package>
  </packages>
</config>
"""

YAML_CATALOG = """
packages:
  - name: Reference_Concepts
    group_id: a1b2c3
    version: 7
  - filenameBase: Forms
    groupUuid: 99ff
    version: "3"
    importMode: peer
"""


class TestImportMode:
    def test_parse_is_case_insensitive(self):
        assert ImportMode.parse("mirror") == ImportMode.MIRROR
        assert ImportMode.parse("Parent-And-Child") == ImportMode.PARENT_AND_CHILD

    def test_empty_defaults_to_mirror(self):
        assert ImportMode.parse(None) == ImportMode.MIRROR
        assert ImportMode.parse("  ") == ImportMode.MIRROR

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError, match="Invalid import mode"):
            ImportMode.parse("overwrite")


class TestPackageDescriptor:
    def test_filename(self):
        descriptor = PackageDescriptor(name="Core", version=2, group_id="g1")
        assert descriptor.filename == "Core-2.zip"

    def test_is_immutable(self):
        descriptor = PackageDescriptor(name="Core", version=2, group_id="g1")
        with pytest.raises(AttributeError):
            descriptor.version = 3

    def test_from_dict_missing_group(self):
        with pytest.raises(CatalogValidationError, match="group_id") as exc_info:
            PackageDescriptor.from_dict("package[0]", {"name": "Core", "version": 1})
        assert exc_info.value.package_key == "package[0]"

    def test_from_dict_accepts_zero_group_id(self):
        descriptor = PackageDescriptor.from_dict(
            "x", {"name": "Core", "group_id": 0, "version": 1}
        )
        assert descriptor.group_id == "0"

    def test_from_dict_rejects_blank_group_id(self):
        with pytest.raises(CatalogValidationError, match="group_id"):
            PackageDescriptor.from_dict(
                "x", {"name": "Core", "group_id": "  ", "version": 1}
            )

    def test_to_dict(self):
        descriptor = PackageDescriptor(name="Core", version=2, group_id="g1")
        assert descriptor.to_dict() == {
            "name": "Core",
            "version": 2,
            "group_id": "g1",
            "import_mode": "MIRROR",
            "filename": "Core-2.zip",
        }

    def test_from_dict_rejects_non_integer_version(self):
        with pytest.raises(CatalogValidationError, match="integer"):
            PackageDescriptor.from_dict(
                "x", {"name": "Core", "group_id": "g", "version": "1.2"}
            )

    def test_from_dict_rejects_zero_version(self):
        with pytest.raises(CatalogValidationError, match="positive"):
            PackageDescriptor.from_dict(
                "x", {"name": "Core", "group_id": "g", "version": 0}
            )

    def test_from_dict_rejects_bad_import_mode(self):
        with pytest.raises(CatalogValidationError, match="import mode"):
            PackageDescriptor.from_dict(
                "x",
                {"name": "Core", "group_id": "g", "version": 1, "import_mode": "x"},
            )


class TestCatalogLoading:
    def test_load_xml_preserves_order(self, tmp_path):
        path = tmp_path / "packages.xml"
        path.write_text(XML_CATALOG, encoding="utf-8")

        catalog = PackageCatalog.load(path)

        assert catalog.names == ["Reference_Concepts", "Encounter_Types"]
        first = catalog.get("Reference_Concepts")
        assert first.version == 7
        assert first.group_id == "a1b2c3"
        assert catalog.get("Encounter_Types").import_mode == ImportMode.PARENT_AND_CHILD
        assert catalog.path == path

    def test_load_yaml_accepts_both_key_styles(self, tmp_path):
        path = tmp_path / "packages.yaml"
        path.write_text(YAML_CATALOG, encoding="utf-8")

        catalog = PackageCatalog.load(path)

        assert len(catalog) == 2
        forms = catalog.get("Forms")
        assert forms.version == 3
        assert forms.group_id == "99ff"
        assert forms.import_mode == ImportMode.PEER

    def test_env_var_path(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.xml"
        path.write_text(XML_CATALOG, encoding="utf-8")
        monkeypatch.setenv("METAPACK_CATALOG_PATH", str(path))

        catalog = PackageCatalog.load()

        assert len(catalog) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PackageCatalog.load(tmp_path / "packages.xml")

    def test_malformed_xml(self, tmp_path):
        path = tmp_path / "packages.xml"
        path.write_text("<config><packages>", encoding="utf-8")
        with pytest.raises(CatalogValidationError, match="Cannot parse"):
            PackageCatalog.load(path)

    def test_xml_without_packages_element(self, tmp_path):
        path = tmp_path / "packages.xml"
        path.write_text("<config/>", encoding="utf-8")
        with pytest.raises(CatalogValidationError, match="no <packages>"):
            PackageCatalog.load(path)

    def test_yaml_without_list(self, tmp_path):
        path = tmp_path / "packages.yaml"
        path.write_text("packages: nope\n", encoding="utf-8")
        with pytest.raises(CatalogValidationError, match="packages"):
            PackageCatalog.load(path)

    def test_invalid_entry_names_its_position(self, tmp_path):
        path = tmp_path / "packages.yaml"
        path.write_text(
            "packages:\n  - name: A\n    group_id: g\n    version: 1\n  - name: B\n",
            encoding="utf-8",
        )
        with pytest.raises(CatalogValidationError, match=r"\[package\[1\]\]"):
            PackageCatalog.load(path)


class TestCatalogOperations:
    def _catalog(self) -> PackageCatalog:
        return PackageCatalog(
            packages=[
                PackageDescriptor(name="X", version=1, group_id="gx"),
                PackageDescriptor(name="Y", version=1, group_id="gy"),
                PackageDescriptor(name="Z", version=1, group_id="gz"),
            ]
        )

    def test_filter_keeps_catalog_order(self):
        filtered = self._catalog().filter(["Z", "X"])
        assert filtered.names == ["X", "Z"]

    def test_filter_ignores_unknown_names(self):
        assert self._catalog().filter(["nope"]).names == []

    def test_validate_clean_catalog(self):
        assert self._catalog().validate() == []

    def test_validate_reports_duplicates_and_shared_groups(self):
        catalog = PackageCatalog(
            packages=[
                PackageDescriptor(name="X", version=1, group_id="g"),
                PackageDescriptor(name="X", version=2, group_id="other"),
                PackageDescriptor(name="Y", version=1, group_id="g"),
            ]
        )
        warnings = catalog.validate()
        assert any("listed more than once" in w for w in warnings)
        assert any("share group g" in w for w in warnings)
