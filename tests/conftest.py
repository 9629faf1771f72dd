"""
Shared pytest fixtures for datapack-core tests.

Provides:
- Offline settings and a fresh default registry for every test
- The bundled registry
- Sample package/resource descriptors
- A package directory on disk
"""

from __future__ import annotations

import json
import sys
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if SRC_ROOT.is_dir():
    sys.path.insert(0, str(SRC_ROOT))

from datapack_core.config import Settings, set_settings  # noqa: E402
from datapack_core.registry import Registry, new_registry, bundled_registry_loader, reset_default_registry  # noqa: E402

CSV_CONTENT = b"id,name\n1,alpha\n2,beta\n"


@pytest.fixture(autouse=True)
def offline_settings() -> Generator[Settings, None, None]:
    """Keep the default registry chain off the network and start from a clean provider."""
    settings = Settings(offline=True)
    set_settings(settings)
    reset_default_registry()
    yield settings
    set_settings(None)
    reset_default_registry()


@pytest.fixture
def registry() -> Registry:
    return new_registry(bundled_registry_loader())


@pytest.fixture
def resource_descriptor() -> dict[str, Any]:
    return {"name": "res1", "path": "data.csv"}


@pytest.fixture
def package_descriptor(resource_descriptor: dict[str, Any]) -> dict[str, Any]:
    return {"name": "sample", "resources": [resource_descriptor]}


@pytest.fixture
def tabular_descriptor() -> dict[str, Any]:
    return {
        "name": "people",
        "path": "data.csv",
        "profile": "tabular-data-resource",
        "schema": {"fields": [{"name": "id", "type": "integer"}, {"name": "name", "type": "string"}]},
    }


@pytest.fixture
def package_dir(tmp_path: Path, package_descriptor: dict[str, Any]) -> Path:
    """A directory holding ``datapackage.json`` and ``data.csv``."""
    root = tmp_path / "pkg"
    root.mkdir()
    (root / "data.csv").write_bytes(CSV_CONTENT)
    (root / "datapackage.json").write_text(json.dumps(package_descriptor), encoding="utf-8")
    return root
