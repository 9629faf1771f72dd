from __future__ import annotations

import contextvars
import json
import logging
import re
import time
import urllib.parse
from collections.abc import Mapping
from typing import Any

REDACTED = "<REDACTED>"

_CONFIGURED = False

_log_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "datapack_log_context", default=None
)

_SENSITIVE_QUERY_KEYS = {"token", "access_token", "api_key", "apikey", "key", "signature", "sig"}
_URL_RE = re.compile(r"\b[a-zA-Z][a-zA-Z0-9+.-]*://[^\s'\"<>]+")


def redact_location(location: str) -> str:
    """Drop userinfo and credential-like query parameters from a URL."""
    parsed = urllib.parse.urlsplit(location)
    if not parsed.scheme or not parsed.netloc:
        return location
    netloc = parsed.netloc
    if "@" in netloc:
        netloc = f"{REDACTED}@{netloc.rsplit('@', 1)[1]}"
    query = parsed.query
    if query:
        pairs = urllib.parse.parse_qsl(query, keep_blank_values=True)
        query = urllib.parse.urlencode(
            [(k, REDACTED if k.lower() in _SENSITIVE_QUERY_KEYS else v) for k, v in pairs],
            safe="<>",
        )
    return urllib.parse.urlunsplit(parsed._replace(netloc=netloc, query=query))


def redact_string(text: str) -> str:
    return _URL_RE.sub(lambda match: redact_location(match.group(0)), text)


def redact_structure(value: Any) -> Any:
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, Mapping):
        return {key: redact_structure(val) for key, val in value.items()}
    if isinstance(value, tuple):
        return tuple(redact_structure(item) for item in value)
    if isinstance(value, list):
        return [redact_structure(item) for item in value]
    return value


def get_log_context() -> dict[str, Any]:
    ctx = _log_context.get()
    return ctx.copy() if ctx else {}


class LogContext:
    """Context manager adding structured fields to every record logged inside it."""

    def __init__(self, **kwargs: Any):
        self.kwargs = kwargs
        self.token: contextvars.Token | None = None

    def __enter__(self) -> LogContext:
        current = get_log_context()
        current.update(self.kwargs)
        self.token = _log_context.set(current)
        return self

    def __exit__(self, *args: Any) -> None:
        if self.token is not None:
            _log_context.reset(self.token)


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        self.converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        return redact_string(super().format(record))


class JsonFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__()
        self.converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_string(record.getMessage()),
        }
        context = get_log_context()
        if context:
            payload["context"] = redact_structure(context)
        if record.exc_info:
            payload["exc_info"] = redact_string(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    if level is None:
        return logging.INFO
    return logging._nameToLevel.get(str(level).upper(), logging.INFO)


def configure_logging(*, level: str | int | None = None, fmt: str | None = None) -> None:
    """Install one root handler; later calls are no-ops.

    ``level`` and ``fmt`` default to the ``log_level``/``log_format`` settings.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    if level is None or fmt is None:
        from datapack_core.config import get_settings

        settings = get_settings()
        level = settings.log_level if level is None else level
        fmt = settings.log_format if fmt is None else fmt

    root = logging.getLogger()
    root.setLevel(_resolve_level(level))

    if not root.handlers:
        handler = logging.StreamHandler()
        if fmt.lower() == "json":
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(TextFormatter())
        root.addHandler(handler)

    _CONFIGURED = True
