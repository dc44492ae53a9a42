"""Structural diff between two document snapshots.

Change records follow the deep-diff convention used by downstream consumers:

- ``{"kind": "N", "path": [...], "rhs": new}``: a field was added
- ``{"kind": "D", "path": [...], "lhs": old}``: a field was removed
- ``{"kind": "E", "path": [...], "lhs": old, "rhs": new}``: a value was edited
- ``{"kind": "A", "path": [...], "index": i, "item": {...}}``: an array element changed size
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from deepdiff import DeepDiff


_EDITED = frozenset({"values_changed", "type_changes"})
_ADDED = frozenset({"dictionary_item_added", "attribute_added"})
_REMOVED = frozenset({"dictionary_item_removed", "attribute_removed"})
_ARRAY_ADDED = "iterable_item_added"
_ARRAY_REMOVED = "iterable_item_removed"


def compute_diff(before: Mapping[str, Any], after: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Return the list of field-level changes turning ``before`` into ``after``.

    An empty list means the snapshots are structurally equal.
    """
    tree = DeepDiff(dict(before), dict(after), view="tree")
    changes: list[dict[str, Any]] = []

    for report_type, levels in tree.items():
        for level in levels:
            path = list(level.path(output_format="list"))
            if report_type in _EDITED:
                changes.append({"kind": "E", "path": path, "lhs": level.t1, "rhs": level.t2})
            elif report_type in _ADDED:
                changes.append({"kind": "N", "path": path, "rhs": level.t2})
            elif report_type in _REMOVED:
                changes.append({"kind": "D", "path": path, "lhs": level.t1})
            elif report_type == _ARRAY_ADDED:
                changes.append(
                    {"kind": "A", "path": path[:-1], "index": path[-1], "item": {"kind": "N", "rhs": level.t2}}
                )
            elif report_type == _ARRAY_REMOVED:
                changes.append(
                    {"kind": "A", "path": path[:-1], "index": path[-1], "item": {"kind": "D", "lhs": level.t1}}
                )

    changes.sort(key=lambda change: [str(part) for part in change["path"]])
    return changes


def paths_changed(before: Mapping[str, Any], after: Mapping[str, Any], paths: list[str]) -> bool:
    """True when any dotted path resolves to a different value in ``after``."""
    return any(get_path(before, path) != get_path(after, path) for path in paths)


def path_changed_to(before: Mapping[str, Any], after: Mapping[str, Any], expected: Mapping[str, Any]) -> bool:
    """True when some path now equals its expected value and did not before."""
    return any(
        get_path(after, path) == value and get_path(before, path) != value for path, value in expected.items()
    )


_MISSING = object()


def get_path(document: Any, path: str, default: Any = None) -> Any:
    """Resolve a dotted path (``"profile.name"``, ``"tags.0"``) inside nested mappings and lists."""
    current = document
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return default
        if current is _MISSING:
            return default
    return current
