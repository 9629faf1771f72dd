from __future__ import annotations

import os
import threading
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator, FormatChecker

from datapack_core.exceptions import ConfigurationError
from datapack_core.schemas import load_bundled_json

DEFAULT_REMOTE_REGISTRY_URL = "https://specs.frictionlessdata.io/schemas/registry.json"
DEFAULT_USER_AGENT = "datapack-core"

CONFIG_ENV = "DATAPACK_CONFIG"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    remote_registry_url: str = DEFAULT_REMOTE_REGISTRY_URL
    http_timeout: float | None = None
    user_agent: str = DEFAULT_USER_AGENT
    offline: bool = False
    log_level: str = "INFO"
    log_format: str = "text"


def validate_settings(data: Any, *, config_path: Path | None = None) -> None:
    schema = load_bundled_json("settings.schema.json")
    validator = Draft7Validator(schema, format_checker=FormatChecker())
    errors = sorted(validator.iter_errors(data), key=lambda exc: list(map(str, exc.path)))
    if not errors:
        return
    location = str(config_path) if config_path else "<settings>"
    lines = [f"Settings validation failed for {location}."]
    details: list[dict[str, str]] = []
    for error in errors:
        path = ".".join(str(p) for p in error.path) if error.path else "<root>"
        lines.append(f"- {path}: {error.message}")
        details.append({"path": path, "message": error.message})
    raise ConfigurationError("\n".join(lines), context={"path": location, "errors": details})


def read_settings_file(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(
            f"Cannot read settings file {path}: {exc}",
            context={"path": str(path), "error": str(exc)},
        ) from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"YAML parse error in {path}: {exc}",
            context={"path": str(path), "error": str(exc)},
        ) from exc
    if data is None:
        data = {}
    validate_settings(data, config_path=path)
    return data


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}", context={"variable": name})


def _parse_timeout(name: str, raw: str) -> float | None:
    value = raw.strip().lower()
    if value in {"", "none"}:
        return None
    try:
        timeout = float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}", context={"variable": name}) from None
    if timeout <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}", context={"variable": name})
    return timeout


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if "DATAPACK_REGISTRY_URL" in env:
        overrides["remote_registry_url"] = env["DATAPACK_REGISTRY_URL"]
    if "DATAPACK_HTTP_TIMEOUT" in env:
        overrides["http_timeout"] = _parse_timeout("DATAPACK_HTTP_TIMEOUT", env["DATAPACK_HTTP_TIMEOUT"])
    if "DATAPACK_OFFLINE" in env:
        overrides["offline"] = _parse_bool("DATAPACK_OFFLINE", env["DATAPACK_OFFLINE"])
    if "DATAPACK_USER_AGENT" in env:
        overrides["user_agent"] = env["DATAPACK_USER_AGENT"]
    if "DATAPACK_LOG_LEVEL" in env:
        overrides["log_level"] = env["DATAPACK_LOG_LEVEL"].upper()
    if "DATAPACK_LOG_FORMAT" in env:
        overrides["log_format"] = env["DATAPACK_LOG_FORMAT"].lower()
    return overrides


def load_settings(path: str | Path | None = None, *, env: Mapping[str, str] | None = None) -> Settings:
    """Settings from an optional YAML file, then environment overrides."""
    env = os.environ if env is None else env
    settings = Settings()
    explicit = path or env.get(CONFIG_ENV)
    if explicit:
        file_values = read_settings_file(Path(explicit).expanduser())
        if "log_level" in file_values:
            file_values["log_level"] = file_values["log_level"].upper()
        settings = replace(settings, **file_values)
    overrides = _env_overrides(env)
    if overrides:
        validate_settings(overrides)
        settings = replace(settings, **overrides)
    return settings


_settings_lock = threading.Lock()
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    with _settings_lock:
        if _settings is None:
            _settings = load_settings()
        return _settings


def set_settings(settings: Settings | None) -> None:
    """Replace the process settings; ``None`` reloads them on next use."""
    global _settings
    with _settings_lock:
        _settings = settings
