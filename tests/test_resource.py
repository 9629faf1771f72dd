"""Tests for resource construction."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import pytest

from datapack_core.exceptions import (
    AmbiguousStringDataError,
    FetchError,
    InvalidNameError,
    MalformedPathError,
    MixedPathTypesError,
    NotTabularError,
    SourceConflictError,
    UnknownProfileError,
    UnsafePathError,
    ValidationError,
)
from datapack_core.registry import Registry
from datapack_core.resource import build_resource, fill_resource_defaults


class TestDefaults:
    def test_defaults_are_filled(self, registry: Registry) -> None:
        resource = build_resource({"name": "res1", "path": "foo.csv"}, registry)
        assert resource.profile == "data-resource"
        assert resource.encoding == "utf-8"
        assert resource.path == ("foo.csv",)
        assert resource.descriptor() == {
            "name": "res1",
            "path": "foo.csv",
            "profile": "data-resource",
            "encoding": "utf-8",
        }

    def test_explicit_values_are_kept(self, registry: Registry) -> None:
        resource = build_resource({"name": "res1", "data": [1], "encoding": "latin-1"}, registry)
        assert resource.encoding == "latin-1"

    def test_dialect_defaults(self, registry: Registry) -> None:
        resource = build_resource({"name": "res1", "path": "a.csv", "dialect": {"delimiter": ";"}}, registry)
        assert resource.dialect == {"delimiter": ";", "doubleQuote": True}

    def test_filling_is_idempotent(self) -> None:
        once = fill_resource_defaults({"name": "res1", "dialect": {}})
        snapshot = json.loads(json.dumps(once))
        assert fill_resource_defaults(once) == snapshot


class TestName:
    @pytest.mark.parametrize("name", ["res1", "a/b-c_d.e", "2020.data"])
    def test_valid_names(self, registry: Registry, name: str) -> None:
        assert build_resource({"name": name, "data": []}, registry).name == name

    @pytest.mark.parametrize("descriptor", [{"data": []}, {"name": "Res1", "data": []}, {"name": 5, "data": []}, {"name": "", "data": []}])
    def test_invalid_names(self, registry: Registry, descriptor: dict[str, Any]) -> None:
        with pytest.raises(InvalidNameError) as excinfo:
            build_resource(descriptor, registry)
        assert isinstance(excinfo.value, ValidationError)
        assert excinfo.value.code == "invalid_name"


class TestSource:
    def test_both_path_and_data(self, registry: Registry) -> None:
        with pytest.raises(SourceConflictError):
            build_resource({"name": "res1", "path": "a.csv", "data": [1]}, registry)

    def test_neither_path_nor_data(self, registry: Registry) -> None:
        with pytest.raises(SourceConflictError):
            build_resource({"name": "res1"}, registry)

    def test_none_counts_as_absent(self, registry: Registry) -> None:
        resource = build_resource({"name": "res1", "path": "a.csv", "data": None}, registry)
        assert "data" not in resource.descriptor()
        assert not resource.is_inline


class TestPath:
    def test_multipart(self, registry: Registry) -> None:
        resource = build_resource({"name": "res1", "path": ["a.csv", "b.csv"]}, registry)
        assert resource.path == ("a.csv", "b.csv")

    def test_remote(self, registry: Registry) -> None:
        resource = build_resource({"name": "res1", "path": "https://example.com/x.csv"}, registry)
        assert resource.is_remote
        assert not resource.is_inline

    @pytest.mark.parametrize("path", ["/etc/passwd", "../up.csv", "ftp://example.com/a.csv", ["a.csv", "../b.csv"]])
    def test_unsafe(self, registry: Registry, path: Any) -> None:
        with pytest.raises(UnsafePathError):
            build_resource({"name": "res1", "path": path}, registry)

    def test_mixed(self, registry: Registry) -> None:
        with pytest.raises(MixedPathTypesError):
            build_resource({"name": "res1", "path": ["a.csv", "https://example.com/b.csv"]}, registry)

    @pytest.mark.parametrize("path", [[], 42, ["a.csv", 1]])
    def test_malformed(self, registry: Registry, path: Any) -> None:
        with pytest.raises(MalformedPathError):
            build_resource({"name": "res1", "path": path}, registry)


class TestData:
    @pytest.mark.parametrize("data", [[1, 2], {"a": 1}])
    def test_structured_data(self, registry: Registry, data: Any) -> None:
        resource = build_resource({"name": "res1", "data": data}, registry)
        assert resource.is_inline
        assert resource.data == data

    def test_string_data_requires_format_or_mediatype(self, registry: Registry) -> None:
        with pytest.raises(AmbiguousStringDataError):
            build_resource({"name": "res1", "data": "a,b\n1,2\n"}, registry)
        assert build_resource({"name": "res1", "data": "a,b\n", "format": "csv"}, registry).tabular
        build_resource({"name": "res1", "data": "a,b\n", "mediatype": "text/csv"}, registry)

    @pytest.mark.parametrize("data", [5, True, 1.5])
    def test_scalar_data_rejected(self, registry: Registry, data: Any) -> None:
        with pytest.raises(ValidationError):
            build_resource({"name": "res1", "data": data}, registry)


def test_profile_must_be_string(registry: Registry) -> None:
    with pytest.raises(ValidationError):
        build_resource({"name": "res1", "data": [1], "profile": 5}, registry)


def test_structural_validation(registry: Registry) -> None:
    with pytest.raises(ValidationError) as excinfo:
        build_resource({"name": "res1", "data": [1], "mediatype": "not-a-mediatype"}, registry)
    assert [v.path for v in excinfo.value.errors] == ["mediatype"]


def test_unknown_resource_profile(registry: Registry) -> None:
    with pytest.raises(UnknownProfileError):
        build_resource({"name": "res1", "data": [1], "profile": "mystery"}, registry)


class TestSchemaMaterialization:
    def test_relative_schema_is_loaded(self, registry: Registry, tmp_path: Path) -> None:
        table_schema = {"fields": [{"name": "id", "type": "integer"}]}
        (tmp_path / "schema.json").write_text(json.dumps(table_schema), encoding="utf-8")
        resource = build_resource(
            {"name": "res1", "path": "a.csv", "profile": "tabular-data-resource", "schema": "schema.json"},
            registry,
            base_path=str(tmp_path),
        )
        assert resource.get_schema() == table_schema
        assert resource.descriptor()["schema"] == table_schema

    def test_inline_schema_is_kept(self, registry: Registry, tabular_descriptor: dict[str, Any]) -> None:
        resource = build_resource(tabular_descriptor, registry)
        assert resource.get_schema() == tabular_descriptor["schema"]

    def test_unsafe_schema_path(self, registry: Registry, tmp_path: Path) -> None:
        with pytest.raises(UnsafePathError):
            build_resource({"name": "res1", "data": [], "schema": "../schema.json"}, registry, base_path=str(tmp_path))

    def test_missing_schema_file(self, registry: Registry, tmp_path: Path) -> None:
        with pytest.raises(FetchError):
            build_resource({"name": "res1", "data": [], "schema": "missing.json"}, registry, base_path=str(tmp_path))

    def test_schema_of_wrong_type(self, registry: Registry) -> None:
        with pytest.raises(ValidationError):
            build_resource({"name": "res1", "data": [], "schema": 5}, registry)


def test_caller_descriptor_is_not_aliased(registry: Registry) -> None:
    original = {"name": "res1", "data": [{"a": 1}]}
    resource = build_resource(original, registry)
    original["data"][0]["a"] = 99
    assert resource.data == [{"a": 1}]
    resource.data[0]["a"] = 42
    assert resource.descriptor()["data"] == [{"a": 1}]
    assert "profile" not in original


class TestTabular:
    @pytest.mark.parametrize(
        ("descriptor", "expected"),
        [
            ({"name": "r", "path": "x.csv"}, False),
            ({"name": "r", "path": "x.csv", "format": "csv"}, True),
            ({"name": "r", "path": "x.xlsx", "format": "XLSX"}, True),
            ({"name": "r", "path": "x.json"}, False),
            ({"name": "r", "path": "x.json", "format": "TSV"}, True),
            ({"name": "r", "path": "x.csv", "format": "json"}, False),
            ({"name": "r", "path": "x.json", "profile": "tabular-data-resource", "schema": {"fields": [{"name": "id"}]}}, True),
            ({"name": "r", "data": [[1]]}, False),
        ],
    )
    def test_tabular_flag(self, registry: Registry, descriptor: dict[str, Any], expected: bool) -> None:
        assert build_resource(descriptor, registry).tabular is expected

    def test_table_source_local(self, registry: Registry, tabular_descriptor: dict[str, Any]) -> None:
        resource = build_resource(tabular_descriptor, registry, base_path="pkg")
        source = resource.table_source()
        assert source.kind == "local"
        assert source.locations == (os.path.join("pkg", "data.csv"),)
        assert source.format == "csv"
        assert source.encoding == "utf-8"
        assert source.schema == tabular_descriptor["schema"]
        assert source.data is None

    def test_table_source_remote(self, registry: Registry) -> None:
        resource = build_resource(
            {"name": "r", "path": "https://example.com/x.csv", "format": "csv"}, registry, base_path="pkg"
        )
        source = resource.table_source()
        assert source.kind == "remote"
        assert source.locations == ("https://example.com/x.csv",)

    def test_table_source_inline(self, registry: Registry) -> None:
        resource = build_resource({"name": "r", "data": [["id"], [1]], "format": "csv"}, registry)
        source = resource.table_source()
        assert source.kind == "inline"
        assert source.data == [["id"], [1]]
        assert source.locations == ()

    def test_non_tabular_resource(self, registry: Registry) -> None:
        resource = build_resource({"name": "r", "path": "notes.txt"}, registry)
        with pytest.raises(NotTabularError):
            resource.table_source()


class TestRawRead:
    def test_multipart_is_concatenated(self, registry: Registry, tmp_path: Path) -> None:
        (tmp_path / "a.csv").write_bytes(b"id\n1\n")
        (tmp_path / "b.csv").write_bytes(b"2\n")
        resource = build_resource({"name": "r", "path": ["a.csv", "b.csv"]}, registry, base_path=str(tmp_path))
        assert resource.raw_read() == b"id\n1\n2\n"

    def test_missing_file(self, registry: Registry, tmp_path: Path) -> None:
        resource = build_resource({"name": "r", "path": "gone.csv"}, registry, base_path=str(tmp_path))
        with pytest.raises(FetchError) as excinfo:
            resource.raw_read()
        assert excinfo.value.location == os.path.join(str(tmp_path), "gone.csv")

    def test_inline_string_uses_encoding(self, registry: Registry) -> None:
        resource = build_resource({"name": "r", "data": "café", "format": "txt", "encoding": "latin-1"}, registry)
        assert resource.raw_read() == b"caf\xe9"

    def test_inline_json(self, registry: Registry) -> None:
        resource = build_resource({"name": "r", "data": {"a": [1, 2]}}, registry)
        assert json.loads(resource.raw_read()) == {"a": [1, 2]}

    def test_unknown_encoding(self, registry: Registry) -> None:
        resource = build_resource({"name": "r", "data": "x", "format": "txt", "encoding": "no-such-codec"}, registry)
        with pytest.raises(ValidationError):
            resource.raw_read()
