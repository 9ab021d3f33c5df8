"""Field-wise merge helpers for dashboard updates."""

import re
from typing import Any

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(key: str) -> str:
    """``homeworkStatus`` -> ``homework_status``. Snake keys pass through."""
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def snake_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Convert dict keys to snake_case, recursing into nested dicts."""
    return {
        to_snake(key): snake_keys(value) if isinstance(value, dict) else value
        for key, value in data.items()
    }


def merge_fields(existing: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """Overwrite only the fields present in ``changes``.

    Nested dicts are merged key by key; every other value replaces the
    old one outright. Neither input is mutated.

    >>> merge_fields({"a": 1, "b": 2}, {"b": 3})
    {'a': 1, 'b': 3}
    """
    merged = dict(existing)
    for key, value in changes.items():
        current = merged.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            merged[key] = merge_fields(current, value)
        else:
            merged[key] = value
    return merged


def item_key(item: dict[str, Any], id_keys: tuple[str, ...] = ("id",)) -> str | None:
    for key in id_keys:
        value = item.get(key)
        if value is not None:
            return str(value)
    return None


def merge_by_id(
    items: list[dict[str, Any]],
    item_id: Any,
    changes: dict[str, Any],
    id_keys: tuple[str, ...] = ("id",),
) -> list[dict[str, Any]] | None:
    """Merge ``changes`` into the item whose id matches.

    Returns:
        A new list with the merged item in place, or None if no item matched
    """
    target = str(item_id)
    for index, item in enumerate(items):
        if item_key(item, id_keys) == target:
            updated = list(items)
            updated[index] = merge_fields(item, changes)
            return updated
    return None


def prepend_unique(
    items: list[dict[str, Any]],
    new_item: dict[str, Any],
    id_keys: tuple[str, ...] = ("id",),
) -> list[dict[str, Any]]:
    """Put ``new_item`` first; an existing item with the same id is merged instead."""
    new_id = item_key(new_item, id_keys)
    if new_id is not None:
        merged = merge_by_id(items, new_id, new_item, id_keys)
        if merged is not None:
            return merged
    return [new_item, *items]
