"""Classification and resolution of resource locations.

A location is either *relative* (no scheme, not absolute, never escaping its
base with ``..``) or *remote* (a fully qualified ``http``/``https`` URL).
"""

from __future__ import annotations

import enum
import os
import posixpath
import re
import urllib.parse
from typing import Any

from datapack_core.exceptions import MalformedPathError, MixedPathTypesError, UnsafePathError

REMOTE_SCHEMES = frozenset({"http", "https"})

_REMOTE_LIKE_RE = re.compile(r"^\w+://")


class PathKind(enum.Enum):
    RELATIVE = "relative"
    REMOTE = "remote"


def is_remote_path(location: str) -> bool:
    """True for ``scheme://host...`` locations."""
    parsed = urllib.parse.urlparse(location)
    return bool(parsed.scheme) and bool(parsed.netloc) and _REMOTE_LIKE_RE.match(location) is not None


def classify_path(entry: str) -> PathKind:
    """Classify one path entry or raise :class:`UnsafePathError`."""
    parsed = urllib.parse.urlparse(entry)
    if not parsed.scheme:
        normalized = posixpath.normpath(entry.replace("\\", "/"))
        if entry.startswith(("/", "\\")) or posixpath.isabs(normalized):
            raise UnsafePathError(
                f"Absolute paths MUST NOT be used: {entry!r}",
                context={"path": entry, "reason": "absolute_path"},
            )
        if normalized == ".." or normalized.startswith("../"):
            raise UnsafePathError(
                f"Relative parent paths (../) MUST NOT be used: {entry!r}",
                context={"path": entry, "reason": "path_traversal"},
            )
        return PathKind.RELATIVE
    if parsed.scheme.lower() not in REMOTE_SCHEMES:
        raise UnsafePathError(
            f"URLs MUST use either the http or https scheme: {entry!r}",
            context={"path": entry, "reason": f"unsupported_scheme:{parsed.scheme}"},
        )
    if not parsed.netloc:
        raise UnsafePathError(
            f"URLs MUST be fully qualified: {entry!r}",
            context={"path": entry, "reason": "missing_host"},
        )
    return PathKind.REMOTE


def parse_path(value: Any) -> tuple[list[str], PathKind]:
    """Normalize a ``path`` property into a list of uniformly classified entries."""
    if isinstance(value, str):
        entries = [value]
    elif isinstance(value, list):
        entries = list(value)
    else:
        raise MalformedPathError(
            f"path MUST be a string or an array of strings, got {type(value).__name__}",
            context={"path": repr(value)},
        )
    if not entries:
        raise MalformedPathError("path MUST NOT be an empty array", context={"path": []})
    kinds: list[PathKind] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, str) or not entry:
            raise MalformedPathError(
                f"path entries MUST be non-empty strings, got {entry!r} at index {index}",
                context={"path": repr(value), "index": index},
            )
        current = classify_path(entry)
        if kinds and current is not kinds[0]:
            raise MixedPathTypesError(
                "It is NOT permitted to mix fully qualified URLs and relative paths in a single resource",
                context={"path": entries},
            )
        kinds.append(current)
    return entries, kinds[0]


def normalize_relative(entry: str) -> str:
    """``./data/x.csv`` -> ``data/x.csv`` (POSIX separators)."""
    return posixpath.normpath(entry.replace("\\", "/"))


def get_base_path(location: str) -> str:
    """Directory a descriptor's relative paths are resolved against.

    Remote locations keep URL semantics and always end with ``/``; local ones
    are filesystem directories.
    """
    if is_remote_path(location):
        parsed = urllib.parse.urlparse(location)
        if parsed.path.rstrip("/") == "":
            return urllib.parse.urlunparse(parsed._replace(path="/", params="", query="", fragment=""))
        directory = posixpath.dirname(parsed.path)
        if not directory.endswith("/"):
            directory += "/"
        return urllib.parse.urlunparse(parsed._replace(path=directory, params="", query="", fragment=""))
    return os.path.dirname(location) or "."


def join_paths(base_path: str | None, entry: str) -> str:
    if is_remote_path(entry) or not base_path:
        return entry
    if is_remote_path(base_path):
        parsed = urllib.parse.urlparse(base_path)
        joined = posixpath.join(parsed.path or "/", normalize_relative(entry))
        return urllib.parse.urlunparse(parsed._replace(path=joined))
    return os.path.join(base_path, entry)
