"""RefTagger API routers package."""

from . import config
from . import images
from . import search
from . import tags
from . import vocabulary_config

__all__ = [
    "config",
    "images",
    "search",
    "tags",
    "vocabulary_config",
]
