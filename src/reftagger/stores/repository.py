"""SQLAlchemy-backed stores for configuration, images and vocabulary tags."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import logging
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from reftagger.exceptions import (
    ImageNotFoundError,
    StorageUnavailableError,
    TagNotFoundError,
    ValidationFailedError,
)
from reftagger.metadata import (
    IMAGE_COLUMN_FIELDS,
    IMAGE_STATUSES,
    IMAGE_SYSTEM_FIELDS,
    ReferenceImage,
    VocabularyConfig,
    VocabularyTag,
)

logger = logging.getLogger(__name__)

_TAG_MUTABLE_FIELDS = ("tag_value", "description", "sort_order", "is_active", "times_used", "last_used_at")


class _BaseStore:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, action: str):
        """Translate driver failures into domain errors, rolling back the session."""
        try:
            yield
        except IntegrityError as exc:
            self.db.rollback()
            raise ValidationFailedError(f"Could not {action}: conflicting record exists") from exc
        except (OperationalError, InterfaceError) as exc:
            self.db.rollback()
            logger.warning("Storage unavailable while trying to %s: %s", action, exc)
            raise StorageUnavailableError(f"Storage unavailable while trying to {action}") from exc


class ConfigStore(_BaseStore):
    """Access to the vocabulary_config table."""

    def fetch_active(self) -> Optional[VocabularyConfig]:
        with self._guard("load vocabulary configuration"):
            return self.db.query(VocabularyConfig).filter(
                VocabularyConfig.is_active.is_(True)
            ).order_by(VocabularyConfig.created_at.desc()).first()

    def deactivate_all(self) -> int:
        with self._guard("deactivate vocabulary configuration"):
            count = self.db.query(VocabularyConfig).filter(
                VocabularyConfig.is_active.is_(True)
            ).update({VocabularyConfig.is_active: False}, synchronize_session="fetch")
            self.db.flush()
            return count

    def insert(self, *, config_name: str, description: str | None, structure: dict) -> VocabularyConfig:
        with self._guard("insert vocabulary configuration"):
            row = VocabularyConfig(
                config_name=config_name,
                description=description,
                structure=structure,
                is_active=True,
            )
            self.db.add(row)
            self.db.flush()
            return row


class ImageStore(_BaseStore):
    """Image corpus access, presenting each image as a flat record."""

    @staticmethod
    def to_record(row: ReferenceImage) -> dict:
        record: dict[str, Any] = dict(row.attributes or {})
        record.update({
            "id": row.id,
            "status": row.status,
            "storage_path": row.storage_path,
            "thumbnail_path": row.thumbnail_path,
            "original_filename": row.original_filename,
            "notes": row.notes,
            "created_at": row.created_at.isoformat() if row.created_at else None,
        })
        return record

    def fetch_images(self, statuses: Optional[Iterable[str]] = None) -> list[dict]:
        with self._guard("fetch images"):
            query = self.db.query(ReferenceImage)
            if statuses is not None:
                query = query.filter(ReferenceImage.status.in_(list(statuses)))
            rows = query.order_by(ReferenceImage.created_at, ReferenceImage.id).all()
        return [self.to_record(row) for row in rows]

    def get_image(self, image_id: str) -> dict:
        return self.to_record(self._load(image_id))

    def insert_image(self, fields: Mapping[str, Any]) -> dict:
        row = ReferenceImage(attributes={})
        if fields.get("id"):
            row.id = str(fields["id"])
        self._apply(row, fields)
        with self._guard("insert image"):
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        return self.to_record(row)

    def update_image(self, image_id: str, partial: Mapping[str, Any]) -> dict:
        """Write ``partial`` to one image and commit immediately."""
        row = self._load(image_id)
        self._apply(row, partial)
        with self._guard(f"update image {image_id}"):
            self.db.commit()
            self.db.refresh(row)
        return self.to_record(row)

    def count(self) -> int:
        with self._guard("count images"):
            return self.db.query(func.count(ReferenceImage.id)).scalar() or 0

    def delete_all(self) -> int:
        with self._guard("delete images"):
            count = self.db.query(ReferenceImage).delete(synchronize_session=False)
            self.db.flush()
            return count

    def _load(self, image_id: str) -> ReferenceImage:
        with self._guard(f"load image {image_id}"):
            row = self.db.query(ReferenceImage).filter(ReferenceImage.id == str(image_id)).first()
        if not row:
            raise ImageNotFoundError(image_id)
        return row

    @staticmethod
    def _apply(row: ReferenceImage, partial: Mapping[str, Any]) -> None:
        if "status" in partial and partial["status"] not in IMAGE_STATUSES:
            raise ValidationFailedError(f"Invalid image status {partial['status']!r}")
        attributes = dict(row.attributes or {})
        for key, value in partial.items():
            if key in IMAGE_SYSTEM_FIELDS:
                continue
            if key in IMAGE_COLUMN_FIELDS:
                setattr(row, key, value)
            else:
                attributes[key] = value
        # Reassign so the JSON column registers the change.
        row.attributes = attributes


class TagStore(_BaseStore):
    """Access to the tag_vocabulary table."""

    def fetch_tags(self, category: Optional[str] = None, is_active: Optional[bool] = None) -> list[VocabularyTag]:
        with self._guard("fetch tags"):
            query = self.db.query(VocabularyTag)
            if category is not None:
                query = query.filter(VocabularyTag.category == category)
            if is_active is not None:
                query = query.filter(VocabularyTag.is_active.is_(is_active))
            return query.order_by(
                VocabularyTag.category, VocabularyTag.sort_order, VocabularyTag.tag_value
            ).all()

    def get_tag(self, tag_id: int) -> VocabularyTag:
        with self._guard(f"load tag {tag_id}"):
            tag = self.db.query(VocabularyTag).filter(VocabularyTag.id == tag_id).first()
        if not tag:
            raise TagNotFoundError(tag_id)
        return tag

    def find_active(self, category: str, tag_value: str) -> Optional[VocabularyTag]:
        with self._guard("look up tag"):
            return self.db.query(VocabularyTag).filter(
                VocabularyTag.category == category,
                VocabularyTag.tag_value == tag_value,
                VocabularyTag.is_active.is_(True),
            ).first()

    def next_sort_order(self, category: str) -> int:
        with self._guard("compute tag sort order"):
            max_sort = self.db.query(func.max(VocabularyTag.sort_order)).filter(
                VocabularyTag.category == category
            ).scalar()
        return (max_sort or 0) + 1

    def insert_tag(self, fields: Mapping[str, Any], *, commit: bool = True) -> VocabularyTag:
        tag = VocabularyTag(
            category=fields["category"],
            tag_value=fields["tag_value"],
            description=fields.get("description"),
            sort_order=fields.get("sort_order", 0),
            is_active=fields.get("is_active", True),
            times_used=fields.get("times_used", 0),
        )
        with self._guard(f"insert tag {fields['category']}:{fields['tag_value']}"):
            self.db.add(tag)
            if commit:
                self.db.commit()
                self.db.refresh(tag)
            else:
                self.db.flush()
        return tag

    def update_tag(self, tag_id: int, fields: Mapping[str, Any]) -> VocabularyTag:
        unknown = [key for key in fields if key not in _TAG_MUTABLE_FIELDS]
        if unknown:
            raise ValidationFailedError(f"Tag field {unknown[0]!r} cannot be updated")
        tag = self.get_tag(tag_id)
        for key, value in fields.items():
            setattr(tag, key, value)
        with self._guard(f"update tag {tag_id}"):
            self.db.commit()
            self.db.refresh(tag)
        return tag

    def adjust_usage(
        self,
        category: str,
        tag_value: str,
        delta: int,
        used_at: Optional[datetime] = None,
    ) -> bool:
        """Shift times_used for an active tag; never drops below zero.

        Returns False when no active tag carries the value.
        """
        tag = self.find_active(category, tag_value)
        if tag is None:
            return False
        tag.times_used = max(0, (tag.times_used or 0) + delta)
        if delta > 0:
            tag.last_used_at = used_at or datetime.now(timezone.utc)
        with self._guard(f"update usage for {category}:{tag_value}"):
            self.db.commit()
        return True

    def retire_categories_except(self, keep: Iterable[str]) -> int:
        keep = list(keep)
        with self._guard("retire tags"):
            query = self.db.query(VocabularyTag).filter(VocabularyTag.is_active.is_(True))
            if keep:
                query = query.filter(VocabularyTag.category.notin_(keep))
            count = query.update({VocabularyTag.is_active: False}, synchronize_session="fetch")
            self.db.flush()
            return count

    def delete_all(self) -> int:
        with self._guard("delete tags"):
            count = self.db.query(VocabularyTag).delete(synchronize_session=False)
            self.db.flush()
            return count
