"""Router for the active vocabulary configuration."""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from reftagger.dependencies import get_db, http_error
from reftagger.exceptions import VocabularyError
from reftagger.vocabulary import VocabularyConfigPayload
from reftagger.vocabulary.resolver import VocabularyConfigResolver

router = APIRouter(
    prefix="/api/v1/vocabulary-config",
    tags=["vocabulary"]
)


@router.get("")
async def get_vocabulary_config(db: Session = Depends(get_db)):
    """Return the active configuration, or an empty structure when none is set."""
    try:
        return VocabularyConfigResolver(db).describe_active()
    except VocabularyError as exc:
        raise http_error(exc)


@router.post("/replace")
async def replace_vocabulary_config(
    body: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    """Replace the active vocabulary.

    Body: ``config_name``, optional ``description``, ``structure`` with a
    ``categories`` list, and optional ``purge_corpus`` to delete all image and
    tag rows first.
    """
    purge_corpus = bool(body.pop("purge_corpus", False))
    try:
        payload = VocabularyConfigPayload.model_validate(body)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid vocabulary configuration", "details": errors},
        )

    try:
        return VocabularyConfigResolver(db).replace_config(payload, purge_corpus=purge_corpus)
    except VocabularyError as exc:
        raise http_error(exc)
