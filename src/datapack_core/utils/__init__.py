"""Blocking I/O helpers shared by the package modules."""

from datapack_core.utils.http import build_user_agent, http_get_bytes
from datapack_core.utils.io import dump_json, read_bytes, read_json, write_bytes, write_json

__all__ = [
    "build_user_agent",
    "http_get_bytes",
    "dump_json",
    "read_bytes",
    "read_json",
    "write_bytes",
    "write_json",
]
