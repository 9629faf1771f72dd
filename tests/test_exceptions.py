from __future__ import annotations

import pytest

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


@pytest.mark.parametrize(
    ("cls", "code"),
    [
        (CloneError, "clone_error"),
        (ValidationError, "validation_error"),
        (InvalidNameError, "invalid_name"),
        (ConfigurationError, "configuration_error"),
        (PathError, "path_error"),
        (UnsafePathError, "unsafe_path"),
        (MixedPathTypesError, "mixed_path_types"),
        (MalformedPathError, "malformed_path"),
        (SourceConflictError, "source_conflict"),
        (AmbiguousStringDataError, "ambiguous_string_data"),
        (ArchiveError, "archive_error"),
        (NotTabularError, "not_tabular"),
    ],
)
def test_error_codes(cls: type[DatapackError], code: str) -> None:
    err = cls("something failed")
    assert err.code == code
    assert isinstance(err, DatapackError)
    assert str(err) == "something failed"


def test_as_log_fields() -> None:
    err = ArchiveError("bad archive", context={"archive": "x.zip"})
    assert err.as_log_fields() == {
        "error_code": "archive_error",
        "error_message": "bad archive",
        "error_context": {"archive": "x.zip"},
    }


def test_validation_error_carries_violations() -> None:
    violations = [Violation("name", "'name' is a required property")]
    err = ValidationError("invalid", errors=violations, profile="data-resource", context={"resource": "r"})
    assert err.errors == violations
    assert err.profile == "data-resource"
    assert err.context == {
        "resource": "r",
        "profile": "data-resource",
        "errors": [{"path": "name", "message": "'name' is a required property"}],
    }


def test_unknown_profile_error() -> None:
    err = UnknownProfileError("mystery", source="bundled")
    assert isinstance(err, ConfigurationError)
    assert err.profile == "mystery"
    assert err.context == {"profile": "mystery", "registry": "bundled"}
    assert "mystery" in err.message


def test_fetch_error_records_location_and_cause() -> None:
    cause = OSError("disk on fire")
    err = FetchError("cannot read", location="data.csv", cause=cause)
    assert err.location == "data.csv"
    assert err.context["location"] == "data.csv"
    assert "disk on fire" in err.context["cause"]


def test_explicit_code_overrides_default() -> None:
    assert DatapackError("x", code="custom").code == "custom"
    assert DatapackError("x").code == "datapack_error"
