"""Profile registry: profile id -> schema location, with a fallback chain of loaders.

Usage:
    from datapack_core.registry import bundled_registry_loader, new_registry

    # Default chain: bundled cache first, then the remote registry
    registry = new_registry()

    # Explicit chain, tried in order until one loader succeeds
    registry = new_registry(remote_registry_loader(url), bundled_registry_loader())
    registry.validate(descriptor, "data-resource")
"""

from __future__ import annotations

import enum
import json
import logging
import os
import threading
import urllib.parse
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from datapack_core.config import get_settings
from datapack_core.exceptions import ConfigurationError, DatapackError, UnknownProfileError
from datapack_core.paths import is_remote_path
from datapack_core.schemas import read_bundled
from datapack_core.utils.http import http_get_bytes
from datapack_core.utils.io import read_bytes
from datapack_core.validator import DescriptorValidator, compile_schema

logger = logging.getLogger(__name__)

BUNDLED_REGISTRY_NAME = "registry.json"

SCHEMA_REFERENCE_PREFIXES = ("http://", "https://", "file:")

SchemaReader = Callable[[str], bytes]


@dataclass(frozen=True)
class ProfileSpec:
    id: str
    title: str = ""
    schema: str = ""
    schema_path: str = ""
    specification: str = ""

    @classmethod
    def from_record(cls, record: Any, *, source: str) -> ProfileSpec:
        if not isinstance(record, dict) or not isinstance(record.get("id"), str) or not record["id"]:
            raise ConfigurationError(
                f"Malformed registry entry in {source}: {record!r}",
                context={"registry": source},
            )
        values: dict[str, str] = {"id": record["id"]}
        for key in ("title", "schema", "schema_path", "specification"):
            value = record.get(key, "")
            if not isinstance(value, str):
                raise ConfigurationError(
                    f"Malformed registry entry {record['id']!r} in {source}: {key} must be a string",
                    context={"registry": source, "profile": record["id"]},
                )
            values[key] = value
        if not values["schema"]:
            values["schema"] = values["schema_path"]
        return cls(**values)


def is_schema_reference(profile: str) -> bool:
    """Profiles that point at a schema document instead of a registry id."""
    return profile.startswith(SCHEMA_REFERENCE_PREFIXES)


def parse_registry(payload: bytes, *, source: str) -> dict[str, ProfileSpec]:
    try:
        records = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigurationError(
            f"error parsing schema registry {source}: {exc}",
            context={"registry": source, "error": str(exc)},
        ) from exc
    if not isinstance(records, list):
        raise ConfigurationError(
            f"schema registry {source} must be a JSON array, got {type(records).__name__}",
            context={"registry": source},
        )
    specs: dict[str, ProfileSpec] = {}
    for record in records:
        spec = ProfileSpec.from_record(record, source=source)
        specs[spec.id] = spec
    return specs


def _parse_schema_document(raw: bytes, *, location: str, profile: str) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigurationError(
            f"Schema for profile {profile!r} at {location} is not valid JSON: {exc}",
            context={"profile": profile, "location": location},
        ) from exc


class Registry:
    """Resolves profiles to compiled validators; compiled schemas are cached per profile."""

    def __init__(self, specs: Mapping[str, ProfileSpec], *, source: str, schema_reader: SchemaReader) -> None:
        self.source = source
        self._specs = dict(specs)
        self._read_schema = schema_reader
        self._lock = threading.Lock()
        self._validators: dict[str, DescriptorValidator] = {}
        self._profile_locks: dict[str, threading.Lock] = {}

    def __contains__(self, profile: object) -> bool:
        return profile in self._specs

    def __repr__(self) -> str:
        return f"Registry(source={self.source!r}, profiles={len(self._specs)})"

    def profiles(self) -> list[str]:
        return list(self._specs)

    def spec(self, profile: str) -> ProfileSpec:
        try:
            return self._specs[profile]
        except KeyError:
            raise UnknownProfileError(profile, source=self.source) from None

    def get_validator(self, profile: str) -> DescriptorValidator:
        """Compiled validator for ``profile``; concurrent first callers share one load."""
        if not isinstance(profile, str):
            raise ConfigurationError(f"profile must be a string, got {type(profile).__name__}")
        with self._lock:
            cached = self._validators.get(profile)
            if cached is not None:
                return cached
            profile_lock = self._profile_locks.setdefault(profile, threading.Lock())
        with profile_lock:
            with self._lock:
                cached = self._validators.get(profile)
            if cached is not None:
                return cached
            validator = self._load_validator(profile)
            with self._lock:
                self._validators[profile] = validator
            return validator

    def validate(self, descriptor: Any, profile: str) -> None:
        self.get_validator(profile).validate(descriptor)

    def _load_validator(self, profile: str) -> DescriptorValidator:
        if is_schema_reference(profile):
            location = profile
            raw = read_bytes(profile)
        else:
            spec = self.spec(profile)
            location = spec.schema
            if is_remote_path(location):
                raw = read_bytes(location)
            else:
                raw = self._read_schema(location)
        logger.debug("Compiling schema for profile %s from %s", profile, location)
        document = _parse_schema_document(raw, location=location, profile=profile)
        return compile_schema(document, profile=profile)


RegistryLoader = Callable[[], Registry]


def _read_bundled_schema(name: str) -> bytes:
    try:
        return read_bundled(name)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Bundled schema not found: {name}", context={"schema": name}) from exc


def bundled_registry_loader() -> RegistryLoader:
    """The registry and schemas shipped inside the package."""

    def _load() -> Registry:
        try:
            payload = read_bundled(BUNDLED_REGISTRY_NAME)
        except FileNotFoundError as exc:
            raise ConfigurationError(
                "Bundled schema registry is missing",
                context={"registry": BUNDLED_REGISTRY_NAME},
            ) from exc
        specs = parse_registry(payload, source="bundled")
        return Registry(specs, source="bundled", schema_reader=_read_bundled_schema)

    return _load


def local_registry_loader(path: str | os.PathLike[str]) -> RegistryLoader:
    """A registry file on disk; relative schema locations resolve against its directory."""
    registry_path = Path(path)

    def _load() -> Registry:
        payload = read_bytes(registry_path)
        specs = parse_registry(payload, source=str(registry_path))
        base_dir = registry_path.parent
        return Registry(
            specs,
            source=str(registry_path),
            schema_reader=lambda ref: read_bytes(base_dir / ref),
        )

    return _load


def remote_registry_loader(url: str) -> RegistryLoader:
    """A registry served over HTTP; relative schema locations resolve against its URL."""

    def _load() -> Registry:
        payload = http_get_bytes(url)
        specs = parse_registry(payload, source=url)
        return Registry(
            specs,
            source=url,
            schema_reader=lambda ref: read_bytes(urllib.parse.urljoin(url, ref)),
        )

    return _load


def fallback_registry_loader(*loaders: RegistryLoader) -> RegistryLoader:
    """Try ``loaders`` in order; the first success wins and later loaders are never called."""

    def _load() -> Registry:
        if not loaders:
            raise ConfigurationError("no registry loader was provided")
        failures: list[str] = []
        for position, loader in enumerate(loaders):
            try:
                registry = loader()
            except DatapackError as exc:
                logger.warning("Registry loader %d/%d failed: %s", position + 1, len(loaders), exc.message)
                failures.append(exc.message)
                continue
            logger.info("Loaded schema registry from %s (%d profiles)", registry.source, len(registry.profiles()))
            return registry
        raise ConfigurationError(
            f"could not load schema registry; all {len(loaders)} loaders failed",
            context={"errors": failures},
        )

    return _load


def default_loaders() -> list[RegistryLoader]:
    settings = get_settings()
    loaders = [bundled_registry_loader()]
    if not settings.offline:
        loaders.append(remote_registry_loader(settings.remote_registry_url))
    return loaders


def new_registry(*loaders: RegistryLoader) -> Registry:
    """Build a registry from ``loaders`` (default: bundled cache, then remote)."""
    return fallback_registry_loader(*(loaders or default_loaders()))()


class RegistryState(enum.Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class RegistryProvider:
    """Lazily builds one registry, exactly once under concurrent first use.

    A failed load is not remembered: the state becomes ``FAILED``, the error
    propagates, and the next ``get()`` runs the loader again.
    """

    def __init__(self, loader: RegistryLoader | None = None) -> None:
        self._loader = loader
        self._lock = threading.Lock()
        self._registry: Registry | None = None
        self._state = RegistryState.UNLOADED
        self.last_error: Exception | None = None

    @property
    def state(self) -> RegistryState:
        return self._state

    def get(self) -> Registry:
        registry = self._registry
        if registry is not None:
            return registry
        with self._lock:
            if self._registry is not None:
                return self._registry
            self._state = RegistryState.LOADING
            try:
                registry = self._loader() if self._loader is not None else new_registry()
            except Exception as exc:
                self._state = RegistryState.FAILED
                self.last_error = exc
                raise
            self._registry = registry
            self._state = RegistryState.LOADED
            self.last_error = None
            return registry

    def reset(self) -> None:
        with self._lock:
            self._registry = None
            self._state = RegistryState.UNLOADED
            self.last_error = None


_default_provider = RegistryProvider()


def default_registry() -> Registry:
    return _default_provider.get()


def default_provider() -> RegistryProvider:
    return _default_provider


def reset_default_registry() -> None:
    _default_provider.reset()
