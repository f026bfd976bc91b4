# File: utils/patch_utils.py
"""Field-level document patching for Lux Libris.

Pure Python helpers with ZERO Home Assistant dependencies.

A patch is a flat mapping of dotted field paths to values, the same shape a
document store accepts for a partial update:

    {
        "family_battle.history.total_battles": 6,
        "family_battle_history": DELETE_FIELD,
        "last_repaired": "2025-05-01T12:00:00+00:00",
    }

Patches are applied to a deep copy, so the caller can validate the result
before swapping it into the live data in a single assignment.
"""

from __future__ import annotations

from collections.abc import Mapping
import copy
from typing import Any


class _DeleteField:
    """Sentinel marking a field for removal in a patch."""

    _instance: _DeleteField | None = None

    def __new__(cls) -> _DeleteField:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE_FIELD"

    def __deepcopy__(self, memo: dict[int, Any]) -> _DeleteField:
        return self


DELETE_FIELD = _DeleteField()


def split_path(path: str) -> list[str]:
    """Split a dotted field path, rejecting empty segments."""
    parts = path.split(".")
    if not all(parts):
        raise ValueError(f"Invalid field path: '{path}'")
    return parts


def get_path(document: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted field path, returning `default` when any segment is missing."""
    node: Any = document
    for part in split_path(path):
        if not isinstance(node, Mapping) or part not in node:
            return default
        node = node[part]
    return node


def apply_patch(document: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Return a deep copy of `document` with `patch` applied.

    Paths are applied in the patch's insertion order. Intermediate mappings
    are created as needed; a non-mapping intermediate is replaced by a fresh
    mapping. Deleting a missing field is a no-op.
    """
    patched = copy.deepcopy(document)
    for path, value in patch.items():
        parts = split_path(path)
        node = patched
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if value is DELETE_FIELD:
                    break
                child = {}
                node[part] = child
            node = child
        else:
            leaf = parts[-1]
            if value is DELETE_FIELD:
                node.pop(leaf, None)
            else:
                node[leaf] = copy.deepcopy(value)
    return patched


def split_patch(patch: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Separate a patch into its set operations and its deleted paths."""
    sets = {path: value for path, value in patch.items() if value is not DELETE_FIELD}
    deletes = [path for path, value in patch.items() if value is DELETE_FIELD]
    return sets, deletes
