"""Storage-path parsing and generic read/write of image record fields.

A category's ``storage_path`` is data, not code: ``"industries"`` addresses a
top-level field while ``"tags.style"`` addresses the ``style`` key inside the
``tags`` mapping. Only these two shapes exist.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Union


class InvalidStoragePathError(ValueError):
    """Storage path is empty or deeper than two segments."""


@dataclass(frozen=True)
class DirectPath:
    field: str

    def __str__(self) -> str:
        return self.field


@dataclass(frozen=True)
class NestedPath:
    outer: str
    inner: str

    def __str__(self) -> str:
        return f"{self.outer}.{self.inner}"


StoragePath = Union[DirectPath, NestedPath]


def parse_storage_path(raw: str | StoragePath) -> StoragePath:
    if isinstance(raw, (DirectPath, NestedPath)):
        return raw
    if not isinstance(raw, str):
        raise InvalidStoragePathError(f"Storage path must be a string, got {type(raw).__name__}")
    parts = raw.strip().split(".")
    if any(not part for part in parts):
        raise InvalidStoragePathError(f"Storage path {raw!r} has an empty segment")
    if len(parts) == 1:
        return DirectPath(parts[0])
    if len(parts) == 2:
        return NestedPath(parts[0], parts[1])
    raise InvalidStoragePathError(
        f"Storage path {raw!r} has {len(parts)} segments; at most two are supported"
    )


def read_value(record: Mapping[str, Any], path: str | StoragePath) -> Any:
    """Return the value at ``path`` or None when any level is absent."""
    path = parse_storage_path(path)
    if isinstance(path, DirectPath):
        return record.get(path.field)
    outer = record.get(path.outer)
    if not isinstance(outer, Mapping):
        return None
    return outer.get(path.inner)


def write_value(record: Mapping[str, Any], path: str | StoragePath, value: Any) -> dict:
    """Return a copy of ``record`` with ``value`` stored at ``path``.

    Nested writes shallow-merge the outer mapping so sibling keys survive.
    """
    updated = dict(record)
    updated.update(build_update(record, path, value))
    return updated


def build_update(record: Mapping[str, Any], path: str | StoragePath, value: Any) -> dict:
    """Partial-field payload that stores ``value`` at ``path`` for ``record``."""
    path = parse_storage_path(path)
    if isinstance(path, DirectPath):
        return {path.field: value}
    existing = record.get(path.outer)
    merged = dict(existing) if isinstance(existing, Mapping) else {}
    merged[path.inner] = value
    return {path.outer: merged}


def build_update_object(tags_by_key: Mapping[str, Any], categories: Iterable, record: Mapping[str, Any] | None = None) -> dict:
    """Translate per-category values into one update payload for an image.

    ``tags_by_key`` is keyed by category key. Categories without a provided
    value are skipped. Nested categories sharing an outer field are grouped
    under it, on top of that field's current content in ``record``.
    """
    working: dict = dict(record or {})
    touched: list[str] = []
    for category in categories:
        value = tags_by_key.get(category.key)
        if value is None:
            continue
        update = build_update(working, category.storage_path, value)
        working.update(update)
        for key in update:
            if key not in touched:
                touched.append(key)
    return {key: working[key] for key in touched}


def merge_suggestions(existing: Mapping[str, Any], suggested: Mapping[str, Any], categories: Iterable) -> dict:
    """Fold suggested tags into manual selections.

    Sequence categories are unioned without duplicates, keeping manual order
    first. Text categories only take the suggestion when nothing was entered.
    """
    merged = dict(existing)
    for category in categories:
        suggestion = suggested.get(category.key)
        current = merged.get(category.key)
        if not category.storage_type.is_sequence:
            if not current and suggestion:
                merged[category.key] = suggestion
            continue
        if not isinstance(suggestion, list):
            continue
        combined = list(current) if isinstance(current, list) else []
        for value in suggestion:
            if value not in combined:
                combined.append(value)
        merged[category.key] = combined
    return merged
