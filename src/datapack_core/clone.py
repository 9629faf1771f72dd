"""Deep, aliasing-free copies of JSON-shaped descriptor trees.

Only the value shapes a JSON document can hold are accepted: ``None``,
``bool``, ``int``, finite ``float``, ``str``, ``list``/``tuple`` and ``dict``
with ``str`` keys. Anything else raises :class:`CloneError`, so a clone
never carries a reference to caller-owned mutable state.
"""

from __future__ import annotations

import math
from typing import Any

from datapack_core.exceptions import CloneError

_SCALARS = (str, bool, int, type(None))


def _location(parent: str, key: str | int) -> str:
    if isinstance(key, int):
        return f"{parent}[{key}]"
    return f"{parent}.{key}"


def _clone(value: Any, where: str) -> Any:
    if isinstance(value, _SCALARS):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CloneError(
                f"Unsupported value at {where}: non-finite number {value!r}",
                context={"location": where},
            )
        return value
    if isinstance(value, dict):
        copied: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise CloneError(
                    f"Unsupported key at {where}: {key!r} ({type(key).__name__}); keys must be strings",
                    context={"location": where, "key_type": type(key).__name__},
                )
            copied[key] = _clone(item, _location(where, key))
        return copied
    if isinstance(value, (list, tuple)):
        return [_clone(item, _location(where, index)) for index, item in enumerate(value)]
    raise CloneError(
        f"Unsupported value at {where}: {type(value).__name__}",
        context={"location": where, "value_type": type(value).__name__},
    )


def clone_value(value: Any) -> Any:
    """Clone any supported descriptor value (scalar, list or mapping)."""
    return _clone(value, "$")


def clone_descriptor(descriptor: Any) -> dict[str, Any]:
    """Return an independent deep copy of a descriptor mapping."""
    if not isinstance(descriptor, dict):
        raise CloneError(
            f"Descriptor must be a JSON object, got {type(descriptor).__name__}",
            context={"location": "$", "value_type": type(descriptor).__name__},
        )
    return _clone(descriptor, "$")
