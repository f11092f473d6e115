"""Domain errors raised by the vocabulary engine."""

from __future__ import annotations


class VocabularyError(RuntimeError):
    """Base class for all reftagger domain errors."""


class ConfigurationMissingError(VocabularyError):
    """No active vocabulary configuration exists."""

    def __init__(self, message: str = "No active vocabulary configuration. Please configure vocabulary first."):
        super().__init__(message)


class ConfigurationInvalidError(VocabularyError):
    """The stored vocabulary configuration cannot be interpreted."""


class ValidationFailedError(VocabularyError):
    """A request was malformed; nothing was changed."""


class NotFoundError(VocabularyError):
    """A referenced record does not exist."""


class CategoryNotFoundError(NotFoundError):
    def __init__(self, category_key: str):
        self.category_key = category_key
        super().__init__(f"Category configuration not found for {category_key}")


class TagNotFoundError(NotFoundError):
    def __init__(self, tag_id):
        self.tag_id = tag_id
        super().__init__(f"Tag {tag_id} not found")


class ImageNotFoundError(NotFoundError):
    def __init__(self, image_id):
        self.image_id = image_id
        super().__init__(f"Image {image_id} not found")


class StorageUnavailableError(VocabularyError):
    """The underlying store could not be reached; the call may be retried."""


class PartialMergeError(VocabularyError):
    """A reconciliation pass stopped after rewriting some images.

    Already-rewritten images are left as they are. The source tag stays active,
    so running the same merge again finishes the migration.
    """

    def __init__(
        self,
        message: str,
        *,
        images_updated: int,
        images_total: int,
        failed_image_id: str | None = None,
        timed_out: bool = False,
    ):
        self.images_updated = images_updated
        self.images_total = images_total
        self.failed_image_id = failed_image_id
        self.timed_out = timed_out
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "images_updated": self.images_updated,
            "images_total": self.images_total,
            "failed_image_id": self.failed_image_id,
            "timed_out": self.timed_out,
        }
