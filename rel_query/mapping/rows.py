"""Row reconstruction - flat aliased rows into nested objects.

Each selected column carries the path from the query root to its field,
so a row is folded into nested dicts by walking those paths:

    a_0 -> ("id",)                  {"id": 3,
    b_0 -> ("author", "id")           "author": {"id": 2,
    b_1 -> ("author", "name")                    "name": "russell"}}
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from rel_query.planning.plan import SelectedColumn


def get_path(obj: Mapping[str, Any] | None, path: Sequence[str]) -> Any:
    """Follow *path* through nested mappings, returning None if any step is missing."""
    for key in path:
        if not isinstance(obj, Mapping):
            return None
        obj = obj.get(key)
    return obj


def row_to_object(row: Mapping[str, Any], columns: Sequence[SelectedColumn]) -> dict[str, Any]:
    """Place each aliased value of *row* at its column's path.

    A nested relation object whose values are all None (an optional
    relation with no matching row) becomes None itself.
    """
    result: dict[str, Any] = {}
    relation_paths: set[tuple[str, ...]] = set()

    for column in columns:
        if not column.path:
            continue
        target = result
        for key in column.path[:-1]:
            target = target.setdefault(key, {})
        target[column.path[-1]] = row.get(column.alias)
        for depth in range(1, len(column.path)):
            relation_paths.add(column.path[:depth])

    # deepest first, so a missing nested relation counts as None for its parent
    for path in sorted(relation_paths, key=len, reverse=True):
        parent = get_path(result, path[:-1]) if len(path) > 1 else result
        if not isinstance(parent, dict):
            continue
        obj = parent.get(path[-1])
        if isinstance(obj, dict) and all(v is None for v in obj.values()):
            parent[path[-1]] = None

    return result


def rows_to_objects(
    rows: Sequence[Mapping[str, Any]], columns: Sequence[SelectedColumn]
) -> list[dict[str, Any]]:
    return [row_to_object(row, columns) for row in rows]
