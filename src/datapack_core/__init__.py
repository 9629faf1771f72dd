"""Load, validate, edit and bundle Frictionless-style data packages."""

from datapack_core.__version__ import __version__
from datapack_core.exceptions import (
    AmbiguousStringDataError,
    ArchiveError,
    CloneError,
    ConfigurationError,
    DatapackError,
    FetchError,
    InvalidNameError,
    MalformedPathError,
    MixedPathTypesError,
    NotTabularError,
    PathError,
    SourceConflictError,
    UnknownProfileError,
    UnsafePathError,
    ValidationError,
    Violation,
)
from datapack_core.package import Package, from_bytes, from_stream, from_string, load
from datapack_core.registry import (
    Registry,
    RegistryProvider,
    bundled_registry_loader,
    fallback_registry_loader,
    local_registry_loader,
    new_registry,
    remote_registry_loader,
)
from datapack_core.resource import Resource, TableSource, build_resource
from datapack_core.validator import is_valid, validate

__all__ = [
    "__version__",
    "Package",
    "Resource",
    "TableSource",
    "Registry",
    "RegistryProvider",
    "load",
    "from_bytes",
    "from_stream",
    "from_string",
    "build_resource",
    "validate",
    "is_valid",
    "new_registry",
    "bundled_registry_loader",
    "local_registry_loader",
    "remote_registry_loader",
    "fallback_registry_loader",
    "DatapackError",
    "CloneError",
    "ValidationError",
    "InvalidNameError",
    "ConfigurationError",
    "UnknownProfileError",
    "PathError",
    "UnsafePathError",
    "MixedPathTypesError",
    "MalformedPathError",
    "SourceConflictError",
    "AmbiguousStringDataError",
    "FetchError",
    "ArchiveError",
    "NotTabularError",
    "Violation",
]
