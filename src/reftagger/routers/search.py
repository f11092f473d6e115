"""Router for reference image search."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from reftagger.dependencies import get_db, get_settings, status_for_error
from reftagger.exceptions import VocabularyError
from reftagger.search import ImageSearchService
from reftagger.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["search"]
)


class SearchRequest(BaseModel):
    keywords: Optional[Any] = None


@router.post("/search-references")
async def search_references(
    request: SearchRequest,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """Score the tagged corpus against keywords and return the best matches."""
    try:
        outcome = ImageSearchService(db, config).search(request.keywords)
    except VocabularyError as exc:
        logger.warning("Reference search failed: %s", exc)
        return JSONResponse(
            status_code=status_for_error(exc),
            content={"images": [], "error": str(exc)},
        )
    return outcome.to_dict()
