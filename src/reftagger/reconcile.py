"""Tag lifecycle: merging one vocabulary tag into another, and renaming.

Both operations rewrite every image that carries the affected value, one
image per committed write. There is no surrounding transaction: a failure
part-way leaves the images already rewritten as they are and raises
:class:`PartialMergeError`. When the very first write fails nothing has
changed, so the store's own error is raised unchanged. The source tag is
only deactivated once every image has been rewritten, so running the same
merge again finishes the job.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
import logging
import time
from typing import Any, Callable, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from reftagger.exceptions import (
    CategoryNotFoundError,
    PartialMergeError,
    ValidationFailedError,
    VocabularyError,
)
from reftagger.metadata import VocabularyTag
from reftagger.paths import build_update, read_value
from reftagger.settings import Settings, settings as default_settings
from reftagger.stores import ImageStore, TagStore
from reftagger.vocabulary import Category, StorageKind, find_category, normalize_tag_value
from reftagger.vocabulary.resolver import VocabularyConfigResolver

logger = logging.getLogger(__name__)


@dataclass
class MergeReport:
    source_id: int
    target_id: int
    category: str
    source_value: str
    target_value: str
    images_scanned: int = 0
    images_updated: int = 0
    target_added: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RenameReport:
    tag_id: int
    category: str
    old_value: str
    new_value: str
    images_scanned: int = 0
    images_updated: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def merge_value(value: Any, source: str, target: str, storage_type: StorageKind):
    """New value after folding ``source`` into ``target``, or None if untouched.

    Returns ``(new_value, gained)`` where ``gained`` tells whether the image
    did not already carry the target.
    """
    if storage_type.is_sequence:
        if not isinstance(value, list) or source not in value:
            return None
        remaining = [item for item in value if item != source]
        gained = target not in remaining
        if gained:
            remaining.append(target)
        return remaining, gained

    if storage_type is StorageKind.TEXT and isinstance(value, str) and value == source:
        return target, True
    return None


def rename_value(value: Any, old: str, new: str, storage_type: StorageKind):
    """New value with ``old`` replaced by ``new`` in place, or None if untouched."""
    if storage_type.is_sequence:
        if not isinstance(value, list) or old not in value:
            return None
        renamed: List[Any] = []
        for item in value:
            item = new if item == old else item
            if item not in renamed:
                renamed.append(item)
        return renamed

    if storage_type is StorageKind.TEXT and isinstance(value, str) and value == old:
        return new
    return None


class TagReconciler:
    """Rewrite image records when vocabulary tags are merged or renamed."""

    def __init__(
        self,
        image_store: ImageStore,
        tag_store: TagStore,
        *,
        timeout_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.image_store = image_store
        self.tag_store = tag_store
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    def merge(
        self,
        source: VocabularyTag,
        target: VocabularyTag,
        categories: Sequence[Category],
        images: Sequence[Mapping[str, Any]],
    ) -> MergeReport:
        category = find_category(list(categories), source.category)
        if category is None:
            raise CategoryNotFoundError(source.category)
        if target.category != source.category:
            raise ValidationFailedError("Tags must be in the same category to merge")
        if source.id == target.id:
            raise ValidationFailedError("Cannot merge a tag into itself")
        if not source.is_active:
            raise ValidationFailedError(f"Tag {source.id} is inactive and cannot be merged")
        if not target.is_active:
            raise ValidationFailedError(f"Cannot merge into inactive tag {target.id}")

        report = MergeReport(
            source_id=source.id,
            target_id=target.id,
            category=category.key,
            source_value=source.tag_value,
            target_value=target.tag_value,
            images_scanned=len(images),
        )
        deadline = self.clock() + self.timeout_seconds

        for image in images:
            if self.clock() > deadline:
                logger.error(
                    "Merge of %r into %r timed out after %d of %d images",
                    report.source_value, report.target_value, report.images_updated, len(images),
                )
                raise PartialMergeError(
                    f"Merge timed out after {self.timeout_seconds:g}s; "
                    f"{report.images_updated} images updated. Run the merge again to finish.",
                    images_updated=report.images_updated,
                    images_total=len(images),
                    timed_out=True,
                )

            outcome = merge_value(
                read_value(image, category.path),
                report.source_value,
                report.target_value,
                category.storage_type,
            )
            if outcome is None:
                continue
            new_value, gained = outcome

            try:
                self.image_store.update_image(
                    image["id"], build_update(image, category.path, new_value)
                )
            except Exception as exc:
                logger.exception(
                    "Merge of %r into %r failed on image %s", report.source_value, report.target_value, image["id"]
                )
                if not report.images_updated and isinstance(exc, VocabularyError):
                    raise
                raise PartialMergeError(
                    f"Failed to update image {image['id']}: {exc}",
                    images_updated=report.images_updated,
                    images_total=len(images),
                    failed_image_id=image["id"],
                ) from exc

            report.images_updated += 1
            if gained:
                report.target_added += 1

        self.tag_store.update_tag(report.source_id, {"is_active": False})
        if report.target_added:
            self.tag_store.update_tag(report.target_id, {
                "times_used": (target.times_used or 0) + report.target_added,
                "last_used_at": datetime.now(timezone.utc),
            })

        logger.info(
            "Merged %s tag %r into %r: %d of %d images updated",
            category.key, report.source_value, report.target_value, report.images_updated, len(images),
        )
        return report

    def rename(
        self,
        tag: VocabularyTag,
        new_value: str,
        categories: Sequence[Category],
        images: Sequence[Mapping[str, Any]],
    ) -> RenameReport:
        category = find_category(list(categories), tag.category)
        if category is None:
            raise CategoryNotFoundError(tag.category)
        if not tag.is_active:
            raise ValidationFailedError(f"Tag {tag.id} is inactive and cannot be renamed")
        try:
            new_value = normalize_tag_value(new_value)
        except ValueError as exc:
            raise ValidationFailedError(str(exc)) from exc

        report = RenameReport(
            tag_id=tag.id,
            category=category.key,
            old_value=tag.tag_value,
            new_value=new_value,
            images_scanned=len(images),
        )
        if new_value == report.old_value:
            return report

        existing = self.tag_store.find_active(category.key, new_value)
        if existing is not None and existing.id != tag.id:
            raise ValidationFailedError(
                f"Tag '{new_value}' already exists in {category.key}; merge the tags instead"
            )

        for image in images:
            renamed = rename_value(
                read_value(image, category.path), report.old_value, new_value, category.storage_type
            )
            if renamed is None:
                continue
            try:
                self.image_store.update_image(image["id"], build_update(image, category.path, renamed))
            except Exception as exc:
                logger.exception("Rename of %r failed on image %s", report.old_value, image["id"])
                if not report.images_updated and isinstance(exc, VocabularyError):
                    raise
                raise PartialMergeError(
                    f"Failed to update image {image['id']}: {exc}",
                    images_updated=report.images_updated,
                    images_total=len(images),
                    failed_image_id=image["id"],
                ) from exc
            report.images_updated += 1

        self.tag_store.update_tag(report.tag_id, {"tag_value": new_value})
        logger.info(
            "Renamed %s tag %r to %r on %d images",
            category.key, report.old_value, new_value, report.images_updated,
        )
        return report


class TagService:
    """Vocabulary tag operations shared by the API and the CLI."""

    def __init__(self, session: Session, config: Settings | None = None):
        self.session = session
        self.config = config or default_settings
        self.resolver = VocabularyConfigResolver(session)
        self.images = ImageStore(session)
        self.tags = TagStore(session)
        self.reconciler = TagReconciler(
            self.images,
            self.tags,
            timeout_seconds=self.config.merge_timeout_seconds,
        )

    def list_tags(self, category: Optional[str] = None, include_inactive: bool = False) -> list[dict]:
        rows = self.tags.fetch_tags(category=category, is_active=None if include_inactive else True)
        return [row.to_dict() for row in rows]

    def add_tag(self, category: str, tag_value: str, description: Optional[str] = None) -> dict:
        categories = self.resolver.get_active_config()
        config = find_category(categories, category)
        if config is None:
            raise CategoryNotFoundError(category)
        if not config.storage_type.is_sequence:
            raise ValidationFailedError(f"Category {category} stores free text and has no tag list")
        try:
            value = normalize_tag_value(tag_value)
        except ValueError as exc:
            raise ValidationFailedError(str(exc)) from exc
        if self.tags.find_active(category, value):
            raise ValidationFailedError(f"Tag '{value}' already exists in {category}")

        tag = self.tags.insert_tag({
            "category": category,
            "tag_value": value,
            "description": description.strip() if description else None,
            "sort_order": self.tags.next_sort_order(category),
        })
        logger.info("Added %s tag %r", category, value)
        return tag.to_dict()

    def edit_tag(
        self,
        tag_id: int,
        tag_value: Optional[str] = None,
        description: Optional[str] = None,
    ) -> dict:
        tag = self.tags.get_tag(tag_id)
        rename: Optional[RenameReport] = None
        if tag_value is not None:
            categories = self.resolver.get_active_config()
            rename = self.reconciler.rename(tag, tag_value, categories, self.images.fetch_images())
        if description is not None:
            self.tags.update_tag(tag_id, {"description": description.strip() or None})
        result = {"tag": self.tags.get_tag(tag_id).to_dict()}
        if rename is not None:
            result["rename"] = rename.to_dict()
        return result

    def merge_tags(self, source_id: int, target_id: int) -> MergeReport:
        source = self.tags.get_tag(source_id)
        target = self.tags.get_tag(target_id)
        categories = self.resolver.get_active_config()
        return self.reconciler.merge(source, target, categories, self.images.fetch_images())
