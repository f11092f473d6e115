"""Keyword search over the image corpus, scored by the active vocabulary.

Every keyword is compared against every category value of every image.
Sequence categories match in both directions ("modern" finds "modernist" and
"modernist" finds "modern"); text categories only match when the stored text
contains the keyword. Each match adds the category's ``search_weight``.

Results are cut with a relaxing threshold so a search returns something
useful whenever any image matched at all.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from reftagger.exceptions import ConfigurationMissingError, ValidationFailedError
from reftagger.paths import NestedPath, build_update, read_value
from reftagger.settings import Settings, settings as default_settings
from reftagger.stores import ImageStore
from reftagger.vocabulary import Category, StorageKind
from reftagger.vocabulary.resolver import VocabularyConfigResolver

logger = logging.getLogger(__name__)

INVALID_KEYWORDS_MESSAGE = "Invalid keywords provided"
EMPTY_CORPUS_WARNING = "No images in collection yet"
NO_MATCH_WARNING = "No matching images found. Try different keywords."

# Fields carried from the image into every result regardless of vocabulary.
IDENTITY_FIELDS = ("id", "thumbnail_path", "storage_path", "original_filename", "notes")


@dataclass(frozen=True)
class ThresholdPolicy:
    primary: int = 2
    fallback: int = 1
    min_results: int = 10
    max_results: int = 40

    @classmethod
    def from_settings(cls, config: Settings) -> "ThresholdPolicy":
        return cls(
            primary=config.search_primary_threshold,
            fallback=config.search_fallback_threshold,
            min_results=config.search_min_results,
            max_results=config.search_max_results,
        )


@dataclass
class ScoredImage:
    id: Any
    match_score: int = 0
    matched_keywords: List[str] = field(default_factory=list)
    matched_on: Dict[str, List[str]] = field(default_factory=dict)
    identity: Dict[str, Any] = field(default_factory=dict)
    fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        result = dict(self.fields)
        result.update(self.identity)
        result.update({
            "id": self.id,
            "match_score": self.match_score,
            "matched_keywords": list(self.matched_keywords),
            "matched_on": {key: list(values) for key, values in self.matched_on.items()},
        })
        return result


@dataclass
class SearchOutcome:
    images: List[ScoredImage] = field(default_factory=list)
    warning: Optional[str] = None
    error: Optional[str] = None
    tier: Optional[int] = None

    def to_dict(self) -> dict:
        payload: dict = {"images": [image.to_dict() for image in self.images]}
        if self.warning:
            payload["warning"] = self.warning
        if self.error:
            payload["error"] = self.error
        return payload


def validate_keywords(keywords: Any) -> List[str]:
    """Return the keyword list or raise ValidationFailedError."""
    if not isinstance(keywords, (list, tuple)) or not keywords:
        raise ValidationFailedError(INVALID_KEYWORDS_MESSAGE)
    cleaned = []
    for keyword in keywords:
        if not isinstance(keyword, str) or not keyword.strip():
            raise ValidationFailedError(INVALID_KEYWORDS_MESSAGE)
        cleaned.append(keyword.strip())
    return cleaned


def _record_once(values: List[str], value: str) -> None:
    if value not in values:
        values.append(value)


def score_image(image: Mapping[str, Any], keywords: Sequence[str], categories: Iterable[Category]) -> ScoredImage:
    """Score one image against all keywords and categories."""
    categories = list(categories)
    scored = ScoredImage(
        id=image.get("id"),
        identity={name: image.get(name) for name in IDENTITY_FIELDS if name != "id"},
    )

    for keyword in keywords:
        needle = keyword.lower()
        for category in categories:
            value = read_value(image, category.path)
            if value is None:
                continue

            if category.storage_type.is_sequence:
                if not isinstance(value, (list, tuple)):
                    continue
                for item in value:
                    if not isinstance(item, str) or not item.strip():
                        continue
                    haystack = item.lower()
                    if needle in haystack or haystack in needle:
                        scored.match_score += category.search_weight
                        _record_once(scored.matched_keywords, keyword)
                        _record_once(scored.matched_on.setdefault(category.key, []), item)

            elif category.storage_type is StorageKind.TEXT:
                if isinstance(value, str) and needle in value.lower():
                    scored.match_score += category.search_weight
                    _record_once(scored.matched_keywords, keyword)

    for category in categories:
        path = category.path
        if isinstance(path, NestedPath):
            scored.fields.setdefault(path.outer, {})
        value = read_value(image, path)
        if value is not None:
            scored.fields.update(build_update(scored.fields, path, value))

    return scored


def _ranked(scored: List[ScoredImage], keep, limit: int) -> List[ScoredImage]:
    # Ties fall back to image id so equal scores come back in a stable order.
    kept = [image for image in scored if keep(image.match_score)]
    kept.sort(key=lambda image: (-image.match_score, str(image.id)))
    return kept[:limit]


def apply_thresholds(scored: List[ScoredImage], policy: ThresholdPolicy) -> tuple[List[ScoredImage], Optional[int]]:
    """Three-tier cut: primary threshold, then fallback, then any positive score."""
    results = _ranked(scored, lambda score: score >= policy.primary, policy.max_results)
    if len(results) >= policy.min_results:
        return results, 1

    logger.warning(
        "Only %d images scored >= %d, relaxing threshold to %d",
        len(results), policy.primary, policy.fallback,
    )
    results = _ranked(scored, lambda score: score >= policy.fallback, policy.max_results)
    if results:
        return results, 2

    results = _ranked(scored, lambda score: score > 0, policy.max_results)
    if results:
        return results, 3
    return [], None


def search_images(
    keywords: Sequence[str],
    images: Sequence[Mapping[str, Any]],
    categories: Sequence[Category],
    policy: Optional[ThresholdPolicy] = None,
) -> SearchOutcome:
    """Score ``images`` for ``keywords`` and return the thresholded ranking."""
    keywords = validate_keywords(keywords)
    if not categories:
        return SearchOutcome(error=str(ConfigurationMissingError()))
    if not images:
        return SearchOutcome(warning=EMPTY_CORPUS_WARNING)

    policy = policy or ThresholdPolicy()
    scored = [score_image(image, keywords, categories) for image in images]
    results, tier = apply_thresholds(scored, policy)
    if not results:
        return SearchOutcome(warning=NO_MATCH_WARNING)
    return SearchOutcome(images=results, tier=tier)


class ImageSearchService:
    """Search the searchable part of the corpus using the active vocabulary."""

    def __init__(self, session: Session, config: Settings | None = None):
        self.session = session
        self.config = config or default_settings
        self.resolver = VocabularyConfigResolver(session)
        self.images = ImageStore(session)

    def search(self, keywords: Any) -> SearchOutcome:
        keywords = validate_keywords(keywords)
        categories = self.resolver.get_active_config()
        if not categories:
            raise ConfigurationMissingError()
        corpus = self.images.fetch_images(statuses=self.config.searchable_statuses)
        outcome = search_images(
            keywords,
            corpus,
            categories,
            policy=ThresholdPolicy.from_settings(self.config),
        )
        logger.info(
            "Search for %s over %d images returned %d results (tier %s)",
            keywords, len(corpus), len(outcome.images), outcome.tier,
        )
        return outcome
