"""Tests for tag merge/rename reconciliation and the tag service."""

import itertools

import pytest
from sqlalchemy.orm import Session

from reftagger.exceptions import (
    CategoryNotFoundError,
    PartialMergeError,
    StorageUnavailableError,
    TagNotFoundError,
    ValidationFailedError,
)
from reftagger.paths import read_value
from reftagger.reconcile import TagReconciler, TagService, merge_value, rename_value
from reftagger.stores import ImageStore, TagStore
from reftagger.vocabulary import StorageKind


class FlakyImageStore(ImageStore):
    """Image store that fails when asked to write one particular image."""

    def __init__(self, db, fail_on):
        super().__init__(db)
        self.fail_on = fail_on

    def update_image(self, image_id, partial):
        if image_id == self.fail_on:
            raise StorageUnavailableError("connection reset")
        return super().update_image(image_id, partial)


def _sorted_images(db):
    return sorted(ImageStore(db).fetch_images(), key=lambda image: image["id"])


@pytest.fixture
def mid_century_corpus(test_db: Session, categories, make_image, tag_by_value):
    """Three images with mid-century, one with both tags, one untouched."""
    make_image("img-1", tags={"style": ["mid-century"], "mood": ["calm"]})
    make_image("img-2", tags={"style": ["minimal", "mid-century"], "mood": ["playful"]})
    make_image("img-3", tags={"style": ["mid-century", "mid-century"]})
    make_image("img-4", tags={"style": ["retro", "mid-century"], "mood": ["calm"]})
    make_image("img-5", tags={"style": ["minimal"]}, notes="mid-century")

    source = tag_by_value("style", "mid-century")
    TagStore(test_db).update_tag(source.id, {"times_used": 3})
    return categories


class TestMergeValue:

    def test_sequence_replaces_every_occurrence_once(self):
        assert merge_value(["a", "old", "b", "old"], "old", "new", StorageKind.ARRAY) == (["a", "b", "new"], True)

    def test_sequence_with_target_present_is_not_duplicated(self):
        assert merge_value(["retro", "mid-century"], "mid-century", "retro", StorageKind.JSONB_ARRAY) == (["retro"], False)

    def test_untouched_values(self):
        assert merge_value(["a"], "old", "new", StorageKind.ARRAY) is None
        assert merge_value(None, "old", "new", StorageKind.ARRAY) is None
        assert merge_value("old stuff", "old", "new", StorageKind.TEXT) is None

    def test_text_exact_match(self):
        assert merge_value("old", "old", "new", StorageKind.TEXT) == ("new", True)


class TestRenameValue:

    def test_keeps_position_and_collapses_duplicates(self):
        assert rename_value(["a", "old", "new", "old"], "old", "new", StorageKind.ARRAY) == ["a", "new"]

    def test_text_exact_match(self):
        assert rename_value("old", "old", "new", StorageKind.TEXT) == "new"
        assert rename_value("older", "old", "new", StorageKind.TEXT) is None


class TestTagReconcilerMerge:

    def test_merge_mid_century_into_retro(self, test_db: Session, mid_century_corpus, tag_by_value):
        source = tag_by_value("style", "mid-century")
        target = tag_by_value("style", "retro")
        reconciler = TagReconciler(ImageStore(test_db), TagStore(test_db))

        report = reconciler.merge(source, target, mid_century_corpus, _sorted_images(test_db))

        assert report.images_updated == 4
        assert report.target_added == 3

        images = {image["id"]: image for image in ImageStore(test_db).fetch_images()}
        assert images["img-1"]["tags"]["style"] == ["retro"]
        assert images["img-2"]["tags"]["style"] == ["minimal", "retro"]
        assert images["img-3"]["tags"]["style"] == ["retro"]
        assert images["img-4"]["tags"]["style"] == ["retro"]
        assert images["img-5"]["tags"]["style"] == ["minimal"]
        # Text categories only change on exact equality with the source value.
        assert images["img-5"]["notes"] == "mid-century"

        for image in images.values():
            assert "mid-century" not in (read_value(image, "tags.style") or [])

        merged = TagStore(test_db).get_tag(report.source_id)
        assert merged.is_active is False
        assert TagStore(test_db).get_tag(report.target_id).times_used == 3

    def test_merge_preserves_sibling_nested_fields(self, test_db: Session, mid_century_corpus, tag_by_value):
        reconciler = TagReconciler(ImageStore(test_db), TagStore(test_db))
        reconciler.merge(
            tag_by_value("style", "mid-century"),
            tag_by_value("style", "retro"),
            mid_century_corpus,
            _sorted_images(test_db),
        )

        images = {image["id"]: image for image in ImageStore(test_db).fetch_images()}
        assert images["img-1"]["tags"]["mood"] == ["calm"]
        assert images["img-2"]["tags"]["mood"] == ["playful"]
        assert images["img-4"]["tags"]["mood"] == ["calm"]

    def test_merge_text_category(self, test_db: Session, categories, make_image):
        tags = TagStore(test_db)
        source = tags.insert_tag({"category": "notes", "tag_value": "lobby"})
        target = tags.insert_tag({"category": "notes", "tag_value": "entrance"})
        make_image("img-1", notes="lobby")
        make_image("img-2", notes="hotel lobby")

        TagReconciler(ImageStore(test_db), tags).merge(source, target, categories, _sorted_images(test_db))

        images = {image["id"]: image for image in ImageStore(test_db).fetch_images()}
        assert images["img-1"]["notes"] == "entrance"
        assert images["img-2"]["notes"] == "hotel lobby"

    def test_rejects_cross_category_merge(self, test_db: Session, mid_century_corpus, tag_by_value):
        reconciler = TagReconciler(ImageStore(test_db), TagStore(test_db))
        with pytest.raises(ValidationFailedError):
            reconciler.merge(
                tag_by_value("style", "mid-century"),
                tag_by_value("mood", "calm"),
                mid_century_corpus,
                _sorted_images(test_db),
            )
        assert tag_by_value("style", "mid-century").is_active

    def test_rejects_merge_into_itself(self, test_db: Session, mid_century_corpus, tag_by_value):
        tag = tag_by_value("style", "mid-century")
        with pytest.raises(ValidationFailedError):
            TagReconciler(ImageStore(test_db), TagStore(test_db)).merge(
                tag, tag, mid_century_corpus, _sorted_images(test_db)
            )

    def test_unknown_category(self, test_db: Session, mid_century_corpus, tag_by_value):
        others = [c for c in mid_century_corpus if c.key != "style"]
        with pytest.raises(CategoryNotFoundError):
            TagReconciler(ImageStore(test_db), TagStore(test_db)).merge(
                tag_by_value("style", "mid-century"),
                tag_by_value("style", "retro"),
                others,
                _sorted_images(test_db),
            )

    def test_failure_stops_and_keeps_source_active(self, test_db: Session, mid_century_corpus, tag_by_value):
        source = tag_by_value("style", "mid-century")
        target = tag_by_value("style", "retro")
        reconciler = TagReconciler(FlakyImageStore(test_db, fail_on="img-2"), TagStore(test_db))

        with pytest.raises(PartialMergeError) as exc_info:
            reconciler.merge(source, target, mid_century_corpus, _sorted_images(test_db))

        error = exc_info.value
        assert error.failed_image_id == "img-2"
        assert error.images_updated == 1
        assert error.images_total == 5
        assert not error.timed_out

        images = {image["id"]: image for image in ImageStore(test_db).fetch_images()}
        assert images["img-1"]["tags"]["style"] == ["retro"]
        assert images["img-3"]["tags"]["style"] == ["mid-century", "mid-century"]
        assert tag_by_value("style", "mid-century").is_active

        # Running the same merge again finishes the migration.
        report = TagReconciler(ImageStore(test_db), TagStore(test_db)).merge(
            tag_by_value("style", "mid-century"),
            tag_by_value("style", "retro"),
            mid_century_corpus,
            _sorted_images(test_db),
        )
        assert report.images_updated == 3
        assert tag_by_value("style", "mid-century") is None

    def test_failure_on_first_write_raises_store_error(self, test_db: Session, mid_century_corpus, tag_by_value):
        reconciler = TagReconciler(FlakyImageStore(test_db, fail_on="img-1"), TagStore(test_db))

        with pytest.raises(StorageUnavailableError):
            reconciler.merge(
                tag_by_value("style", "mid-century"),
                tag_by_value("style", "retro"),
                mid_century_corpus,
                _sorted_images(test_db),
            )

        images = {image["id"]: image for image in ImageStore(test_db).fetch_images()}
        assert images["img-1"]["tags"]["style"] == ["mid-century"]
        assert images["img-2"]["tags"]["style"] == ["minimal", "mid-century"]
        assert tag_by_value("style", "mid-century").is_active
        assert tag_by_value("style", "retro").times_used == 0

    def test_timeout_raises_partial_merge(self, test_db: Session, mid_century_corpus, tag_by_value):
        ticks = itertools.chain([0.0, 0.0], itertools.repeat(100.0))
        reconciler = TagReconciler(
            ImageStore(test_db),
            TagStore(test_db),
            timeout_seconds=10,
            clock=lambda: next(ticks),
        )

        with pytest.raises(PartialMergeError) as exc_info:
            reconciler.merge(
                tag_by_value("style", "mid-century"),
                tag_by_value("style", "retro"),
                mid_century_corpus,
                _sorted_images(test_db),
            )

        assert exc_info.value.timed_out
        assert exc_info.value.images_updated == 1
        assert tag_by_value("style", "mid-century").is_active


class TestTagReconcilerRename:

    def test_rename_rewrites_images(self, test_db: Session, mid_century_corpus, tag_by_value):
        tag = tag_by_value("style", "mid-century")

        report = TagReconciler(ImageStore(test_db), TagStore(test_db)).rename(
            tag, "  Midcentury Modern ", mid_century_corpus, _sorted_images(test_db)
        )

        assert report.new_value == "midcentury modern"
        assert report.images_updated == 4
        images = {image["id"]: image for image in ImageStore(test_db).fetch_images()}
        assert images["img-2"]["tags"]["style"] == ["minimal", "midcentury modern"]
        assert images["img-3"]["tags"]["style"] == ["midcentury modern"]
        assert images["img-4"]["tags"]["style"] == ["retro", "midcentury modern"]
        assert TagStore(test_db).get_tag(report.tag_id).tag_value == "midcentury modern"

    def test_rename_to_existing_value_suggests_merge(self, test_db: Session, mid_century_corpus, tag_by_value):
        with pytest.raises(ValidationFailedError) as exc_info:
            TagReconciler(ImageStore(test_db), TagStore(test_db)).rename(
                tag_by_value("style", "mid-century"), "Retro", mid_century_corpus, _sorted_images(test_db)
            )
        assert "merge" in str(exc_info.value)

    def test_rename_failure_on_first_write_raises_store_error(
        self, test_db: Session, mid_century_corpus, tag_by_value
    ):
        tag = tag_by_value("style", "mid-century")
        reconciler = TagReconciler(FlakyImageStore(test_db, fail_on="img-1"), TagStore(test_db))

        with pytest.raises(StorageUnavailableError):
            reconciler.rename(tag, "midcentury modern", mid_century_corpus, _sorted_images(test_db))

        assert tag_by_value("style", "mid-century") is not None
        assert ImageStore(test_db).get_image("img-1")["tags"]["style"] == ["mid-century"]

    def test_rename_failure_after_a_write_is_partial(self, test_db: Session, mid_century_corpus, tag_by_value):
        tag = tag_by_value("style", "mid-century")
        reconciler = TagReconciler(FlakyImageStore(test_db, fail_on="img-3"), TagStore(test_db))

        with pytest.raises(PartialMergeError) as exc_info:
            reconciler.rename(tag, "midcentury modern", mid_century_corpus, _sorted_images(test_db))

        assert exc_info.value.images_updated == 2
        assert exc_info.value.failed_image_id == "img-3"
        assert tag_by_value("style", "mid-century") is not None

    def test_rename_rejects_invalid_value(self, test_db: Session, mid_century_corpus, tag_by_value):
        with pytest.raises(ValidationFailedError):
            TagReconciler(ImageStore(test_db), TagStore(test_db)).rename(
                tag_by_value("style", "mid-century"), "retro!", mid_century_corpus, []
            )


class TestTagService:

    def test_list_tags_hides_inactive(self, test_db: Session, mid_century_corpus, tag_by_value, test_settings):
        service = TagService(test_db, test_settings)
        service.merge_tags(tag_by_value("style", "mid-century").id, tag_by_value("style", "retro").id)

        active = [t["tag_value"] for t in service.list_tags(category="style")]
        everything = [t["tag_value"] for t in service.list_tags(category="style", include_inactive=True)]
        assert "mid-century" not in active
        assert "mid-century" in everything

    def test_add_tag_appends_sort_order(self, test_db: Session, categories, test_settings):
        tag = TagService(test_db, test_settings).add_tag("style", " Brutalist ", "Raw concrete")
        assert tag["tag_value"] == "brutalist"
        assert tag["sort_order"] == 5
        assert tag["description"] == "Raw concrete"
        assert tag["is_active"] is True

    def test_add_duplicate_tag(self, test_db: Session, categories, test_settings):
        with pytest.raises(ValidationFailedError):
            TagService(test_db, test_settings).add_tag("style", "Retro")

    def test_add_tag_to_text_category(self, test_db: Session, categories, test_settings):
        with pytest.raises(ValidationFailedError):
            TagService(test_db, test_settings).add_tag("notes", "lobby")

    def test_add_tag_to_unknown_category(self, test_db: Session, categories, test_settings):
        with pytest.raises(CategoryNotFoundError):
            TagService(test_db, test_settings).add_tag("palette", "warm")

    def test_merge_missing_tag(self, test_db: Session, categories, tag_by_value, test_settings):
        with pytest.raises(TagNotFoundError):
            TagService(test_db, test_settings).merge_tags(tag_by_value("style", "retro").id, 9999)

    def test_merge_inactive_source(self, test_db: Session, mid_century_corpus, tag_by_value, test_settings):
        service = TagService(test_db, test_settings)
        source_id = tag_by_value("style", "mid-century").id
        target_id = tag_by_value("style", "retro").id
        service.merge_tags(source_id, target_id)

        with pytest.raises(ValidationFailedError):
            service.merge_tags(source_id, target_id)

    def test_edit_description_only(self, test_db: Session, categories, tag_by_value, test_settings):
        tag_id = tag_by_value("style", "retro").id
        result = TagService(test_db, test_settings).edit_tag(tag_id, description="Seventies revival")
        assert result["tag"]["description"] == "Seventies revival"
        assert result["tag"]["tag_value"] == "retro"
        assert "rename" not in result
