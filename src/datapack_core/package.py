"""Data packages: a validated descriptor plus the resources it declares.

Usage:
    from datapack_core import package

    pkg = package.load("https://example.com/datapackage.json")
    pkg = package.load("bundle.zip")
    pkg.add_resource({"name": "extra", "path": "extra.csv"})
    pkg.zip("out.zip")
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

from datapack_core.archive import extract_package_archive, is_zip_location, zip_package
from datapack_core.clone import clone_descriptor
from datapack_core.exceptions import ValidationError, Violation
from datapack_core.logging_config import LogContext, redact_location
from datapack_core.paths import get_base_path
from datapack_core.registry import Registry, default_registry
from datapack_core.resource import Resource, build_resource, fill_resource_defaults, materialize_schema
from datapack_core.utils.io import dump_json, read_bytes, write_json

logger = logging.getLogger(__name__)

DEFAULT_PACKAGE_PROFILE = "data-package"
RESOURCES_PROPERTY = "resources"


def fill_package_defaults(descriptor: dict[str, Any]) -> dict[str, Any]:
    if descriptor.get("profile") is None:
        descriptor["profile"] = DEFAULT_PACKAGE_PROFILE
    entries = descriptor.get(RESOURCES_PROPERTY)
    if isinstance(entries, list):
        for entry in entries:
            if isinstance(entry, dict):
                fill_resource_defaults(entry)
    return descriptor


@dataclass(frozen=True)
class _PackageState:
    descriptor: dict[str, Any]
    resources: tuple[Resource, ...]


def _build_resources(
    descriptor: dict[str, Any], base_path: str | None, registry: Registry
) -> _PackageState:
    entries = descriptor.get(RESOURCES_PROPERTY)
    if not isinstance(entries, list) or not all(isinstance(entry, dict) for entry in entries):
        raise ValidationError(
            "resources property MUST be an array of objects",
            errors=[Violation(RESOURCES_PROPERTY, f"{entries!r} is not an array of objects")],
        )
    resources = tuple(build_resource(entry, registry, base_path=base_path) for entry in entries)
    descriptor[RESOURCES_PROPERTY] = [resource.descriptor() for resource in resources]
    return _PackageState(descriptor, resources)


def _build_state(descriptor: Any, base_path: str | None, registry: Registry) -> _PackageState:
    cpy = fill_package_defaults(clone_descriptor(descriptor))
    profile = cpy["profile"]
    if not isinstance(profile, str):
        raise ValidationError(
            "profile property MUST be a string",
            errors=[Violation("profile", f"{profile!r} is not of type 'string'")],
        )
    materialize_schema(cpy, base_path, owner="package")
    registry.validate(cpy, profile)
    return _build_resources(cpy, base_path, registry)


class Package:
    """A data package whose descriptor and resources always change together."""

    def __init__(
        self,
        descriptor: dict[str, Any],
        base_path: str | None = None,
        *,
        registry: Registry | None = None,
    ) -> None:
        self._registry = registry if registry is not None else default_registry()
        self._base_path = base_path
        self._state = _build_state(descriptor, base_path, self._registry)

    def __repr__(self) -> str:
        return f"Package(profile={self._state.descriptor['profile']!r}, resources={self.resource_names()!r})"

    @property
    def base_path(self) -> str | None:
        return self._base_path

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def resources(self) -> tuple[Resource, ...]:
        return self._state.resources

    def get_resource(self, name: str) -> Resource | None:
        for resource in self._state.resources:
            if resource.name == name:
                return resource
        return None

    def resource_names(self) -> list[str]:
        return [resource.name for resource in self._state.resources]

    def descriptor(self) -> dict[str, Any]:
        return clone_descriptor(self._state.descriptor)

    def add_resource(self, descriptor: dict[str, Any]) -> Resource:
        """Append a resource; on any error the package is left untouched."""
        entry = fill_resource_defaults(clone_descriptor(descriptor))
        cpy = clone_descriptor(self._state.descriptor)
        cpy[RESOURCES_PROPERTY].append(entry)
        state = _build_resources(cpy, self._base_path, self._registry)
        self._state = state
        return state.resources[-1]

    def remove_resource(self, name: str) -> None:
        """Remove the first resource called ``name``; no-op when there is none."""
        names = self.resource_names()
        if name not in names:
            return
        cpy = clone_descriptor(self._state.descriptor)
        del cpy[RESOURCES_PROPERTY][names.index(name)]
        self._state = _build_resources(cpy, self._base_path, self._registry)

    def update(self, new_descriptor: dict[str, Any], registry: Registry | None = None) -> None:
        """Replace the whole descriptor, only if ``new_descriptor`` is valid."""
        registry = registry if registry is not None else self._registry
        state = _build_state(new_descriptor, self._base_path, registry)
        self._registry = registry
        self._state = state

    def to_json(self) -> str:
        return dump_json(self._state.descriptor)

    def save_descriptor(self, path: str | os.PathLike[str]) -> None:
        write_json(Path(path), self._state.descriptor)

    def zip(self, path: str | os.PathLike[str]) -> Path:
        return zip_package(self, path)


def from_bytes(raw: bytes, base_path: str | None, registry: Registry | None = None) -> Package:
    try:
        descriptor = json.loads(raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError(f"descriptor is not valid JSON: {exc}", context={"error": str(exc)}) from exc
    if not isinstance(descriptor, dict):
        raise ValidationError(
            f"descriptor MUST be a JSON object, got {type(descriptor).__name__}",
            errors=[Violation("<root>", "descriptor is not an object")],
        )
    return Package(descriptor, base_path, registry=registry)


def from_string(text: str, base_path: str | None, registry: Registry | None = None) -> Package:
    return from_bytes(text.encode("utf-8"), base_path, registry)


def from_stream(stream: IO[Any], base_path: str | None, registry: Registry | None = None) -> Package:
    content = stream.read()
    if isinstance(content, str):
        return from_string(content, base_path, registry)
    return from_bytes(content, base_path, registry)


def load(path: str | os.PathLike[str], registry: Registry | None = None) -> Package:
    """Load a package from a descriptor or a zip archive, local or remote.

    A zip is extracted to a fresh directory which becomes the package base
    path and outlives this call.
    """
    location = os.fspath(path)
    with LogContext(descriptor=redact_location(location)):
        if is_zip_location(location):
            descriptor_path = extract_package_archive(location)
            extract_root = descriptor_path.parent.parent
            try:
                pkg = from_bytes(read_bytes(descriptor_path), str(descriptor_path.parent), registry)
            except BaseException:
                shutil.rmtree(extract_root, ignore_errors=True)
                raise
        else:
            pkg = from_bytes(read_bytes(location), get_base_path(location), registry)
        logger.info("Loaded data package %s (%d resources)", location, len(pkg.resources))
    return pkg
