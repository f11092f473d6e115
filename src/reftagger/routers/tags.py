"""Router for vocabulary tag management."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from reftagger.dependencies import get_db, get_settings, http_error
from reftagger.exceptions import VocabularyError
from reftagger.reconcile import TagService
from reftagger.settings import Settings

router = APIRouter(
    prefix="/api/v1/tags",
    tags=["tags"]
)


class TagCreate(BaseModel):
    category: str = Field(min_length=1)
    tag_value: str
    description: Optional[str] = None


class TagUpdate(BaseModel):
    tag_value: Optional[str] = None
    description: Optional[str] = None


class TagMerge(BaseModel):
    target_tag_id: int


@router.get("")
async def list_tags(
    category: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """List vocabulary tags, active only unless ``include_inactive`` is set."""
    try:
        tags = TagService(db, config).list_tags(category=category, include_inactive=include_inactive)
    except VocabularyError as exc:
        raise http_error(exc)
    return {"tags": tags}


@router.post("", status_code=201)
async def create_tag(
    request: TagCreate,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    try:
        tag = TagService(db, config).add_tag(request.category, request.tag_value, request.description)
    except VocabularyError as exc:
        raise http_error(exc)
    return {"tag": tag}


@router.put("/{tag_id}")
async def update_tag(
    tag_id: int,
    request: TagUpdate,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """Edit a tag; a new ``tag_value`` is rewritten on every image carrying the old one."""
    try:
        return TagService(db, config).edit_tag(
            tag_id,
            tag_value=request.tag_value,
            description=request.description,
        )
    except VocabularyError as exc:
        raise http_error(exc)


@router.post("/{tag_id}/merge")
async def merge_tag(
    tag_id: int,
    request: TagMerge,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """Fold tag ``tag_id`` into ``target_tag_id`` across all images.

    A 409 response means some images were rewritten before the merge stopped;
    the source tag stays active and the same request can be repeated.
    """
    try:
        report = TagService(db, config).merge_tags(tag_id, request.target_tag_id)
    except VocabularyError as exc:
        raise http_error(exc)
    return {"success": True, **report.to_dict()}
