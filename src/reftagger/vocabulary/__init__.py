"""Vocabulary configuration models."""

import re
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from reftagger.exceptions import ConfigurationInvalidError
from reftagger.metadata import IMAGE_COLUMN_FIELDS, IMAGE_SYSTEM_FIELDS
from reftagger.paths import DirectPath, NestedPath, StoragePath, parse_storage_path

TAG_VALUE_PATTERN = r"^[a-z0-9\s-]+$"


class StorageKind(str, Enum):
    """Shape of a category's value on an image record."""

    ARRAY = "array"
    JSONB_ARRAY = "jsonb_array"
    TEXT = "text"

    @property
    def is_sequence(self) -> bool:
        return self in (StorageKind.ARRAY, StorageKind.JSONB_ARRAY)


class Category(BaseModel):
    """A weighted taxonomy axis and where its values live on an image."""

    key: str = Field(min_length=1, max_length=50, pattern=r"^[a-z_]+$")
    label: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    placeholder: Optional[str] = Field(default=None, max_length=200)
    storage_path: str = Field(min_length=1, max_length=100, pattern=r"^[a-z_][a-z0-9_.]*$")
    storage_type: StorageKind
    search_weight: int = Field(ge=1, le=10)
    tags: Optional[List[str]] = Field(default=None, max_length=100)

    @field_validator("storage_path")
    @classmethod
    def _check_depth(cls, value: str) -> str:
        # Raises InvalidStoragePathError (a ValueError) for deeper paths.
        parse_storage_path(value)
        return value

    @model_validator(mode="after")
    def _check_writable(self) -> "Category":
        path = self.path
        field = path.field if isinstance(path, DirectPath) else path.outer
        # status is a review state with its own allowed values.
        if field in IMAGE_SYSTEM_FIELDS or field == "status":
            raise ValueError(f"Storage path {self.storage_path!r} names a reserved image field")
        if field in IMAGE_COLUMN_FIELDS:
            if isinstance(path, NestedPath):
                raise ValueError(f"Storage path {self.storage_path!r} nests under the scalar field {field!r}")
            if self.storage_type is not StorageKind.TEXT:
                raise ValueError(f"Storage path {self.storage_path!r} is a text field; storage_type must be text")
        return self

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, values: Optional[List[str]]) -> Optional[List[str]]:
        if values is None:
            return None
        normalized = []
        for value in values:
            tag = normalize_tag_value(value)
            if tag not in normalized:
                normalized.append(tag)
        return normalized

    @property
    def path(self) -> StoragePath:
        return parse_storage_path(self.storage_path)


class VocabularyStructure(BaseModel):
    categories: List[Category] = Field(min_length=1, max_length=20)

    @model_validator(mode="after")
    def _check_unique(self) -> "VocabularyStructure":
        keys = [c.key for c in self.categories]
        if len(keys) != len(set(keys)):
            raise ValueError("Category keys must be unique")
        paths = [c.storage_path for c in self.categories]
        if len(paths) != len(set(paths)):
            raise ValueError("Storage paths must be unique")
        outer_keys = {c.path.outer for c in self.categories if isinstance(c.path, NestedPath)}
        for category in self.categories:
            if isinstance(category.path, DirectPath) and category.path.field in outer_keys:
                raise ValueError(
                    f"Storage path {category.storage_path!r} overlaps nested paths under the same field"
                )
        return self


class VocabularyConfigPayload(BaseModel):
    """Request body for replacing the active vocabulary."""

    config_name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    structure: VocabularyStructure

    @field_validator("config_name", "description", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value


def normalize_tag_value(value: str) -> str:
    """Canonical form of a tag value: trimmed, lowercase, 1-50 chars."""
    if not isinstance(value, str):
        raise ValueError("Tag must be a string")
    tag = value.strip().lower()
    if not tag:
        raise ValueError("Tag cannot be empty")
    if len(tag) > 50:
        raise ValueError("Tag must be less than 50 characters")
    if not re.match(TAG_VALUE_PATTERN, tag):
        raise ValueError("Tag can only contain lowercase letters, numbers, hyphens, and spaces")
    return tag


def find_category(categories: List[Category], key: str) -> Optional[Category]:
    for category in categories:
        if category.key == key:
            return category
    return None


def parse_structure(raw: Any) -> List[Category]:
    """Build the ordered category list from a stored ``structure`` document."""
    if not isinstance(raw, dict):
        raise ConfigurationInvalidError("Vocabulary structure must be an object")
    entries = raw.get("categories")
    if not isinstance(entries, list):
        raise ConfigurationInvalidError("Vocabulary structure has no categories list")
    if not entries:
        return []
    try:
        return VocabularyStructure(categories=entries).categories
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()[:5]
        )
        raise ConfigurationInvalidError(f"Invalid vocabulary configuration: {details}") from exc


__all__ = [
    "StorageKind",
    "Category",
    "VocabularyStructure",
    "VocabularyConfigPayload",
    "normalize_tag_value",
    "find_category",
    "parse_structure",
]
