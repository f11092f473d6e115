"""Keep tag_vocabulary usage counters in step with image edits."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Dict, Iterable, List, Mapping

from reftagger.stores import TagStore
from reftagger.vocabulary import Category

logger = logging.getLogger(__name__)


def _as_values(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    values: List[str] = []
    for item in value:
        if isinstance(item, str) and item and item not in values:
            values.append(item)
    return values


def diff_tags(
    old: Mapping[str, Any],
    new: Mapping[str, Any],
    categories: Iterable[Category],
) -> Dict[str, Dict[str, List[str]]]:
    """Added and removed values per sequence category.

    ``old`` and ``new`` are keyed by category key. Text categories have no
    vocabulary entries and are ignored; so are categories with no change.
    """
    changes: Dict[str, Dict[str, List[str]]] = {}
    for category in categories:
        if not category.storage_type.is_sequence:
            continue
        before = _as_values(old.get(category.key))
        after = _as_values(new.get(category.key))
        added = [value for value in after if value not in before]
        removed = [value for value in before if value not in after]
        if added or removed:
            changes[category.key] = {"added": added, "removed": removed}
    return changes


class UsageTracker:
    """Apply tag changes to ``times_used`` and ``last_used_at``."""

    def __init__(self, tag_store: TagStore):
        self.tag_store = tag_store

    def apply_changes(
        self,
        old: Mapping[str, Any],
        new: Mapping[str, Any],
        categories: Iterable[Category],
    ) -> Dict[str, int]:
        changes = diff_tags(old, new, categories)
        now = datetime.now(timezone.utc)
        incremented = 0
        decremented = 0
        for category_key, change in changes.items():
            for value in change["added"]:
                if self.tag_store.adjust_usage(category_key, value, 1, used_at=now):
                    incremented += 1
            for value in change["removed"]:
                if self.tag_store.adjust_usage(category_key, value, -1):
                    decremented += 1
        if incremented or decremented:
            logger.debug("Tag usage updated: +%d -%d", incremented, decremented)
        return {"incremented": incremented, "decremented": decremented}
