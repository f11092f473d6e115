"""Active vocabulary configuration lookup and replacement."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List

import yaml
from sqlalchemy.orm import Session

from reftagger.exceptions import ConfigurationMissingError, ValidationFailedError
from reftagger.metadata import VocabularyConfig
from reftagger.stores import ConfigStore, ImageStore, TagStore
from reftagger.vocabulary import Category, VocabularyConfigPayload, parse_structure

logger = logging.getLogger(__name__)

NO_ACTIVE_CONFIG_MESSAGE = "No active vocabulary configuration found"


class VocabularyConfigResolver:
    """Resolve and replace the single active vocabulary configuration."""

    def __init__(self, session: Session):
        self.session = session
        self.configs = ConfigStore(session)

    def get_active_row(self) -> VocabularyConfig:
        row = self.configs.fetch_active()
        if row is None:
            logger.warning(NO_ACTIVE_CONFIG_MESSAGE)
            raise ConfigurationMissingError()
        return row

    def get_active_config(self) -> List[Category]:
        """Return the ordered categories of the active configuration."""
        return parse_structure(self.get_active_row().structure)

    def describe_active(self) -> dict:
        """Payload for the configuration endpoint; empty structure when missing."""
        row = self.configs.fetch_active()
        if row is None:
            return {
                "structure": {"categories": []},
                "message": NO_ACTIVE_CONFIG_MESSAGE,
            }
        return {
            "id": row.id,
            "config_name": row.config_name,
            "description": row.description,
            "is_active": row.is_active,
            "structure": row.structure,
            "created_at": row.created_at.isoformat() if row.created_at else None,
            "updated_at": row.updated_at.isoformat() if row.updated_at else None,
        }

    def replace_config(self, payload: VocabularyConfigPayload, *, purge_corpus: bool = False) -> dict:
        """Make ``payload`` the active vocabulary.

        The previous configuration is kept but deactivated. Tags belonging to
        categories that no longer exist are retired. With ``purge_corpus`` all
        image and tag rows are deleted first (stored files are not touched).
        Seed tags listed on non-text categories are inserted as active tags.
        """
        images = ImageStore(self.session)
        tags = TagStore(self.session)
        categories = payload.structure.categories

        images_deleted = 0
        tags_deleted = 0
        try:
            if purge_corpus:
                logger.info("Purging image and tag rows before vocabulary replacement")
                images_deleted = images.delete_all()
                tags_deleted = tags.delete_all()

            self.configs.deactivate_all()
            tags_retired = tags.retire_categories_except(c.key for c in categories)

            structure = payload.structure.model_dump(mode="json", exclude_none=True)
            self.configs.insert(
                config_name=payload.config_name,
                description=payload.description or None,
                structure=structure,
            )

            tags_inserted = 0
            for category in categories:
                if not category.tags or not category.storage_type.is_sequence:
                    continue
                for index, value in enumerate(category.tags):
                    if tags.find_active(category.key, value):
                        continue
                    tags.insert_tag(
                        {
                            "category": category.key,
                            "tag_value": value,
                            "sort_order": index + 1,
                        },
                        commit=False,
                    )
                    tags_inserted += 1

            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            "Vocabulary replaced with %r: %d categories, %d tags inserted, %d retired",
            payload.config_name, len(categories), tags_inserted, tags_retired,
        )
        return {
            "config": self.describe_active(),
            "stats": {
                "images_deleted": images_deleted,
                "tags_deleted": tags_deleted,
                "tags_retired": tags_retired,
                "tags_inserted": tags_inserted,
            },
        }


def load_payload_file(path: Path) -> VocabularyConfigPayload:
    """Read a vocabulary definition from a YAML or JSON file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Vocabulary file not found: {path}")
    text = path.read_text()
    if path.suffix.lower() == ".json":
        raw = json.loads(text)
    else:
        raw = yaml.safe_load(text)
    if not isinstance(raw, dict):
        raise ValidationFailedError(f"Vocabulary file {path} must contain a mapping")
    if "structure" not in raw and "categories" in raw:
        raw = {
            "config_name": raw.get("config_name") or path.stem,
            "description": raw.get("description"),
            "structure": {"categories": raw["categories"]},
        }
    return VocabularyConfigPayload.model_validate(raw)
