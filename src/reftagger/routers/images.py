"""Router for saving category tags on a single image."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from reftagger.dependencies import get_db, http_error
from reftagger.exceptions import CategoryNotFoundError, ValidationFailedError, VocabularyError
from reftagger.paths import build_update_object, merge_suggestions, read_value
from reftagger.stores import ImageStore, TagStore
from reftagger.usage import UsageTracker
from reftagger.vocabulary import Category, find_category, normalize_tag_value
from reftagger.vocabulary.resolver import VocabularyConfigResolver

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/images",
    tags=["images"]
)


class ImageTagsUpdate(BaseModel):
    tags: Dict[str, Any] = {}
    suggested: Dict[str, Any] = {}
    status: Optional[str] = None


def _clean_value(category: Category, value: Any):
    if category.storage_type.is_sequence:
        if not isinstance(value, list):
            raise ValidationFailedError(f"Category {category.key} expects a list of tags")
        cleaned = []
        for item in value:
            try:
                tag = normalize_tag_value(item)
            except ValueError as exc:
                raise ValidationFailedError(f"{category.key}: {exc}") from exc
            if tag not in cleaned:
                cleaned.append(tag)
        return cleaned

    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationFailedError(f"Category {category.key} expects text")
    return value.strip()


@router.put("/{image_id}/tags")
async def save_image_tags(
    image_id: str,
    request: ImageTagsUpdate,
    db: Session = Depends(get_db),
):
    """Store per-category values on an image and update tag usage counts.

    ``tags`` and ``suggested`` are keyed by category key; suggestions are
    folded into the manual selection. Categories not mentioned keep their
    current value.
    """
    try:
        categories = VocabularyConfigResolver(db).get_active_config()
        images = ImageStore(db)
        image = images.get_image(image_id)

        for key in list(request.tags) + list(request.suggested):
            if find_category(categories, key) is None:
                raise CategoryNotFoundError(key)

        selected = merge_suggestions(request.tags, request.suggested, categories)
        cleaned = {
            category.key: _clean_value(category, selected[category.key])
            for category in categories
            if category.key in selected
        }

        previous = {category.key: read_value(image, category.path) for category in categories}
        update = build_update_object(cleaned, categories, image)
        if request.status is not None:
            update["status"] = request.status

        saved = images.update_image(image_id, update)
        usage = UsageTracker(TagStore(db)).apply_changes(previous, {**previous, **cleaned}, categories)
    except VocabularyError as exc:
        raise http_error(exc)

    logger.info("Saved tags for image %s (%d categories)", image_id, len(cleaned))
    return {"image": saved, "usage": usage}
