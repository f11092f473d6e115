"""Storage interfaces used by the vocabulary engine."""

from reftagger.stores.repository import (
    IMAGE_COLUMN_FIELDS,
    ConfigStore,
    ImageStore,
    TagStore,
)

__all__ = ["IMAGE_COLUMN_FIELDS", "ConfigStore", "ImageStore", "TagStore"]
