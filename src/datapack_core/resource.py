from __future__ import annotations

import codecs
import json
import logging
import posixpath
import re
import urllib.parse
from dataclasses import dataclass
from typing import Any

from datapack_core.clone import clone_descriptor, clone_value
from datapack_core.exceptions import (
    AmbiguousStringDataError,
    InvalidNameError,
    NotTabularError,
    SourceConflictError,
    ValidationError,
    Violation,
)
from datapack_core.paths import PathKind, classify_path, is_remote_path, join_paths, parse_path
from datapack_core.registry import Registry, default_registry
from datapack_core.utils.io import read_bytes, read_json

logger = logging.getLogger(__name__)

DEFAULT_RESOURCE_PROFILE = "data-resource"
TABULAR_RESOURCE_PROFILE = "tabular-data-resource"
DEFAULT_ENCODING = "utf-8"
DEFAULT_DIALECT = {"delimiter": ",", "doubleQuote": True}
TABULAR_FORMATS = frozenset({"csv", "tsv", "xls", "xlsx"})

NAME_PATTERN = re.compile(r"^[-a-z0-9._/]+$")


def fill_resource_defaults(descriptor: dict[str, Any]) -> dict[str, Any]:
    """Fill defaults in place; applying it twice changes nothing."""
    if descriptor.get("profile") is None:
        descriptor["profile"] = DEFAULT_RESOURCE_PROFILE
    if descriptor.get("encoding") is None:
        descriptor["encoding"] = DEFAULT_ENCODING
    dialect = descriptor.get("dialect")
    if isinstance(dialect, dict):
        for key, value in DEFAULT_DIALECT.items():
            dialect.setdefault(key, value)
    return descriptor


def _check_name(descriptor: dict[str, Any]) -> str:
    name = descriptor.get("name")
    if name is None:
        raise InvalidNameError(
            "name property is required",
            errors=[Violation("name", "'name' is a required property")],
        )
    if not isinstance(name, str) or not NAME_PATTERN.match(name):
        raise InvalidNameError(
            f"name MUST be lowercase alphanumeric with '-', '.', '_' or '/': {name!r}",
            errors=[Violation("name", f"{name!r} does not match {NAME_PATTERN.pattern!r}")],
            context={"name": repr(name)},
        )
    return name


def _check_source(descriptor: dict[str, Any], name: str) -> None:
    has_path = descriptor.get("path") is not None
    has_data = descriptor.get("data") is not None
    if has_path and has_data:
        raise SourceConflictError(
            f"resource {name!r} MUST NOT have both path and data",
            context={"resource": name},
        )
    if not has_path and not has_data:
        raise SourceConflictError(
            f"resource {name!r} MUST have either path or data",
            context={"resource": name},
        )
    for key in ("path", "data"):
        if key in descriptor and descriptor[key] is None:
            del descriptor[key]


def _parse_data(descriptor: dict[str, Any], name: str) -> Any:
    data = descriptor["data"]
    if isinstance(data, (dict, list)):
        return data
    if isinstance(data, str):
        if descriptor.get("format") is None and descriptor.get("mediatype") is None:
            raise AmbiguousStringDataError(
                f"format or mediatype properties MUST be provided for string data (resource {name!r})",
                context={"resource": name},
            )
        return data
    raise ValidationError(
        f"data MUST be a JSON array, object or string (resource {name!r})",
        errors=[Violation("data", f"{type(data).__name__} is not a supported inline data type")],
        context={"resource": name},
    )


def materialize_schema(descriptor: dict[str, Any], base_path: str | None, *, owner: str) -> None:
    """Replace a string ``schema`` reference with the parsed document it points at.

    ``owner`` names the descriptor in errors and logs, e.g. ``"resource 'res1'"``.
    """
    schema = descriptor.get("schema")
    if schema is None or isinstance(schema, dict):
        return
    if not isinstance(schema, str):
        raise ValidationError(
            f"schema MUST be an object or a path/URL string ({owner})",
            errors=[Violation("schema", f"{type(schema).__name__} is not of type 'string', 'object'")],
            context={"owner": owner},
        )
    if classify_path(schema) is PathKind.REMOTE:
        location = schema
    else:
        location = join_paths(base_path, schema)
    document = read_json(location)
    if not isinstance(document, dict):
        raise ValidationError(
            f"schema at {location} MUST be a JSON object ({owner})",
            errors=[Violation("schema", "referenced document is not an object")],
            context={"owner": owner, "location": location},
        )
    logger.debug("Materialized schema for %s from %s", owner, location)
    descriptor["schema"] = document


@dataclass(frozen=True)
class TableSource:
    """Everything an external table reader needs to open a tabular resource."""

    kind: str
    locations: tuple[str, ...]
    data: Any
    format: str | None
    encoding: str
    dialect: dict[str, Any] | None
    schema: dict[str, Any] | None


class Resource:
    """A validated data resource. Built by :func:`build_resource`; immutable afterwards."""

    def __init__(
        self,
        descriptor: dict[str, Any],
        *,
        path: list[str] | None = None,
        path_kind: PathKind | None = None,
        base_path: str | None = None,
    ) -> None:
        self._descriptor = descriptor
        self._path = tuple(path) if path is not None else ()
        self._path_kind = path_kind
        self._base_path = base_path

    def __repr__(self) -> str:
        source = list(self._path) if self._path else "<inline>"
        return f"Resource(name={self.name!r}, profile={self.profile!r}, source={source!r})"

    @property
    def name(self) -> str:
        return self._descriptor["name"]

    @property
    def profile(self) -> str:
        return self._descriptor["profile"]

    @property
    def encoding(self) -> str:
        return self._descriptor["encoding"]

    @property
    def format(self) -> str | None:
        return self._descriptor.get("format")

    @property
    def mediatype(self) -> str | None:
        return self._descriptor.get("mediatype")

    @property
    def dialect(self) -> dict[str, Any] | None:
        dialect = self._descriptor.get("dialect")
        return clone_value(dialect) if dialect is not None else None

    @property
    def path(self) -> tuple[str, ...]:
        return self._path

    @property
    def data(self) -> Any:
        return clone_value(self._descriptor.get("data"))

    @property
    def base_path(self) -> str | None:
        return self._base_path

    @property
    def is_inline(self) -> bool:
        return not self._path

    @property
    def is_remote(self) -> bool:
        return self._path_kind is PathKind.REMOTE

    @property
    def tabular(self) -> bool:
        """Tabular profile, or a declared ``format`` that is a table format."""
        if self.profile == TABULAR_RESOURCE_PROFILE:
            return True
        fmt = self.format
        return isinstance(fmt, str) and fmt.lower() in TABULAR_FORMATS

    def _effective_format(self) -> str | None:
        fmt = self.format
        if isinstance(fmt, str):
            return fmt.lower()
        if self._path:
            suffix = posixpath.splitext(urllib.parse.urlparse(self._path[0]).path)[1]
            return suffix[1:].lower() or None
        return None

    def descriptor(self) -> dict[str, Any]:
        return clone_descriptor(self._descriptor)

    def get_schema(self) -> dict[str, Any] | None:
        schema = self._descriptor.get("schema")
        return clone_value(schema) if schema is not None else None

    def resolved_paths(self) -> list[str]:
        return [join_paths(self._base_path, entry) for entry in self._path]

    def table_source(self) -> TableSource:
        if not self.tabular:
            raise NotTabularError(
                f"resource {self.name!r} is not tabular",
                context={"resource": self.name, "profile": self.profile, "format": self.format},
            )
        if self.is_inline:
            kind = "inline"
        elif self.is_remote or is_remote_path(self.resolved_paths()[0]):
            kind = "remote"
        else:
            kind = "local"
        return TableSource(
            kind=kind,
            locations=tuple(self.resolved_paths()),
            data=self.data if self.is_inline else None,
            format=self._effective_format(),
            encoding=self.encoding,
            dialect=self.dialect,
            schema=self.get_schema(),
        )

    def raw_read(self) -> bytes:
        """Resource contents; multipart paths are concatenated in order."""
        if self._path:
            return b"".join(read_bytes(location) for location in self.resolved_paths())
        data = self._descriptor["data"]
        if isinstance(data, str):
            try:
                codecs.lookup(self.encoding)
            except LookupError as exc:
                raise ValidationError(
                    f"unknown encoding {self.encoding!r} (resource {self.name!r})",
                    errors=[Violation("encoding", str(exc))],
                ) from exc
            return data.encode(self.encoding)
        return json.dumps(data, ensure_ascii=False).encode("utf-8")


def build_resource(
    descriptor: dict[str, Any],
    registry: Registry | None = None,
    *,
    base_path: str | None = None,
) -> Resource:
    """Clone, default-fill and validate ``descriptor`` into a :class:`Resource`.

    Path and data shape are checked before the profile schema runs, so a bad
    ``path`` always surfaces as a :class:`PathError`.
    """
    cpy = fill_resource_defaults(clone_descriptor(descriptor))
    name = _check_name(cpy)
    _check_source(cpy, name)
    entries: list[str] | None = None
    kind: PathKind | None = None
    if "path" in cpy:
        entries, kind = parse_path(cpy["path"])
    else:
        _parse_data(cpy, name)
    profile = cpy["profile"]
    if not isinstance(profile, str):
        raise ValidationError(
            f"profile property MUST be a string (resource {name!r})",
            errors=[Violation("profile", f"{profile!r} is not of type 'string'")],
        )
    materialize_schema(cpy, base_path, owner=f"resource {name!r}")
    if registry is None:
        registry = default_registry()
    registry.validate(cpy, profile)
    return Resource(cpy, path=entries, path_kind=kind, base_path=base_path)
