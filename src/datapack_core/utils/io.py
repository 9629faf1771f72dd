from __future__ import annotations

import json
import logging
import os
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Any

from datapack_core.exceptions import FetchError
from datapack_core.paths import is_remote_path
from datapack_core.utils.http import http_get_bytes

logger = logging.getLogger(__name__)


def file_url_to_path(location: str) -> Path:
    parsed = urllib.parse.urlparse(location)
    return Path(urllib.request.url2pathname(parsed.path))


def read_bytes(location: str | os.PathLike[str]) -> bytes:
    """Raw contents of a local file, ``file://`` URL or http(s) URL."""
    location = os.fspath(location)
    if is_remote_path(location):
        scheme = urllib.parse.urlparse(location).scheme.lower()
        if scheme in {"http", "https"}:
            return http_get_bytes(location)
        if scheme != "file":
            raise FetchError(f"unsupported URL scheme ({location})", location=location)
        path = file_url_to_path(location)
    elif location.startswith("file:"):
        path = file_url_to_path(location)
    else:
        path = Path(location)
    try:
        return path.read_bytes()
    except OSError as exc:
        raise FetchError(f"error reading local file contents ({location}): {exc}", location=location, cause=exc) from exc


def read_json(location: str | os.PathLike[str]) -> Any:
    raw = read_bytes(location)
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FetchError(f"invalid JSON document ({os.fspath(location)}): {exc}", location=os.fspath(location), cause=exc) from exc


def dump_json(obj: Any) -> str:
    """Pretty, stable serialization used for every descriptor written to disk."""
    return json.dumps(obj, indent=2, sort_keys=True, ensure_ascii=False)


def write_json(path: Path, obj: Any) -> None:
    """Write ``obj`` to ``path`` atomically."""
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tmp_path.open("w", encoding="utf-8") as f:
            f.write(dump_json(obj) + "\n")
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise FetchError(f"error writing {path}: {exc}", location=str(path), cause=exc) from exc


def write_bytes(path: Path, content: bytes) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    except OSError as exc:
        raise FetchError(f"error writing {path}: {exc}", location=str(path), cause=exc) from exc
