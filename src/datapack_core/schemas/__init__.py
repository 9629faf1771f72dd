"""JSON documents bundled with datapack-core.

- registry.json: the profile registry (local cache of the remote registry)
- data-package.json, data-resource.json: base profiles
- tabular-data-package.json, tabular-data-resource.json, table-schema.json
- fiscal-data-package.json
- settings.schema.json: schema for the settings file
"""

from __future__ import annotations

import json
from functools import cache
from importlib import resources
from pathlib import Path
from typing import Any

_FALLBACK_SCHEMA_DIR = Path(__file__).resolve().parent


def read_bundled(name: str) -> bytes:
    """Raw bytes of a bundled document; ``FileNotFoundError`` when absent."""
    try:
        return resources.files("datapack_core.schemas").joinpath(name).read_bytes()
    except (FileNotFoundError, ModuleNotFoundError, AttributeError):
        pass
    fallback = _FALLBACK_SCHEMA_DIR / name
    if not fallback.is_file():
        raise FileNotFoundError(f"Bundled document not found: {name}")
    return fallback.read_bytes()


@cache
def load_bundled_json(name: str) -> Any:
    return json.loads(read_bundled(name).decode("utf-8"))
