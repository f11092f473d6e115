"""CLI commands package."""

from . import (
    search,
    tags,
    vocabulary,
)

__all__ = [
    'search',
    'tags',
    'vocabulary',
]
