from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence


@dataclass
class DatapackError(Exception):
    message: str
    code: str = "datapack_error"
    context: dict[str, Any] = field(default_factory=dict)

    def __init__(self, message: str, *, code: str | None = None, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.code
        self.context = dict(context or {})

    def as_log_fields(self) -> dict[str, Any]:
        return {
            "error_code": self.code,
            "error_message": self.message,
            "error_context": self.context,
        }


@dataclass(frozen=True)
class Violation:
    """One field-level schema violation; ``path`` is dotted, ``<root>`` for the top level."""

    path: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message}


class CloneError(DatapackError):
    code = "clone_error"


class ValidationError(DatapackError):
    code = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        errors: Sequence[Violation] = (),
        profile: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        merged = dict(context or {})
        if profile is not None:
            merged["profile"] = profile
        if errors:
            merged["errors"] = [violation.as_dict() for violation in errors]
        super().__init__(message, context=merged)
        self.errors = list(errors)
        self.profile = profile


class InvalidNameError(ValidationError):
    code = "invalid_name"


class ConfigurationError(DatapackError):
    code = "configuration_error"


class UnknownProfileError(ConfigurationError):
    code = "unknown_profile"

    def __init__(self, profile: str, *, source: str | None = None) -> None:
        context = {"profile": profile}
        if source:
            context["registry"] = source
        super().__init__(f"Invalid profile: {profile!r} is not in the schema registry", context=context)
        self.profile = profile


class PathError(DatapackError):
    code = "path_error"


class UnsafePathError(PathError):
    code = "unsafe_path"


class MixedPathTypesError(PathError):
    code = "mixed_path_types"


class MalformedPathError(PathError):
    code = "malformed_path"


class SourceConflictError(DatapackError):
    code = "source_conflict"


class AmbiguousStringDataError(DatapackError):
    code = "ambiguous_string_data"


class FetchError(DatapackError):
    code = "fetch_error"

    def __init__(self, message: str, *, location: str, cause: BaseException | None = None) -> None:
        context: dict[str, Any] = {"location": location}
        if cause is not None:
            context["cause"] = repr(cause)
        super().__init__(message, context=context)
        self.location = location


class ArchiveError(DatapackError):
    code = "archive_error"


class NotTabularError(DatapackError):
    code = "not_tabular"
