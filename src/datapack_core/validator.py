from __future__ import annotations

from typing import TYPE_CHECKING, Any

from jsonschema import Draft7Validator, FormatChecker
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for

from datapack_core.exceptions import ConfigurationError, FetchError, ValidationError, Violation

if TYPE_CHECKING:
    from datapack_core.registry import Registry, RegistryLoader

MAX_REPORTED_ERRORS = 10


def _violation_path(error: Any) -> str:
    return ".".join(str(p) for p in error.absolute_path) if error.absolute_path else "<root>"


class DescriptorValidator:
    """A compiled profile schema."""

    def __init__(self, schema: dict[str, Any], *, profile: str) -> None:
        self.profile = profile
        self.schema = schema
        cls = validator_for(schema, default=Draft7Validator)
        self._validator = cls(schema, format_checker=FormatChecker())

    def check(self, descriptor: Any) -> list[Violation]:
        """All violations, ordered by field path."""
        errors = sorted(
            self._validator.iter_errors(descriptor),
            key=lambda exc: [str(p) for p in exc.absolute_path],
        )
        return [Violation(_violation_path(error), error.message) for error in errors]

    def is_valid(self, descriptor: Any) -> bool:
        return self._validator.is_valid(descriptor)

    def validate(self, descriptor: Any) -> None:
        violations = self.check(descriptor)
        if not violations:
            return
        lines = [f"There are {len(violations)} validation errors ({self.profile}):"]
        for violation in violations[:MAX_REPORTED_ERRORS]:
            lines.append(f"- {violation.path}: {violation.message}")
        if len(violations) > MAX_REPORTED_ERRORS:
            lines.append(f"... and {len(violations) - MAX_REPORTED_ERRORS} more errors.")
        raise ValidationError("\n".join(lines), errors=violations, profile=self.profile)


def compile_schema(document: Any, *, profile: str) -> DescriptorValidator:
    if not isinstance(document, dict):
        raise ConfigurationError(
            f"Schema for profile {profile!r} must be a JSON object",
            context={"profile": profile},
        )
    cls = validator_for(document, default=Draft7Validator)
    try:
        cls.check_schema(document)
    except SchemaError as exc:
        raise ConfigurationError(
            f"Schema for profile {profile!r} is not a valid JSON Schema: {exc.message}",
            context={"profile": profile, "error": exc.message},
        ) from exc
    return DescriptorValidator(document, profile=profile)


def validate(descriptor: Any, profile: str, registry: Registry | None = None) -> None:
    """Check ``descriptor`` against ``profile``; raises :class:`ValidationError`."""
    if registry is None:
        from datapack_core.registry import default_registry

        registry = default_registry()
    registry.get_validator(profile).validate(descriptor)


def is_valid(profile: str, descriptor: Any, *loaders: RegistryLoader) -> bool:
    from datapack_core.registry import default_registry, new_registry

    try:
        registry = new_registry(*loaders) if loaders else default_registry()
        validator = registry.get_validator(profile)
    except (ConfigurationError, FetchError):
        return False
    return validator.is_valid(descriptor)
