"""Metadata storage and management."""

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, String, Integer, DateTime, Boolean, Text, Index, CheckConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import declarative_base


@compiles(JSONB, "sqlite")
def compile_jsonb_for_sqlite(element, compiler, **kw):
    return compiler.visit_JSON(element, **kw)


Base = declarative_base()

IMAGE_STATUSES = ("pending", "tagged", "approved", "skipped")

# Image fields stored as real columns; everything else lives in ``attributes``.
IMAGE_COLUMN_FIELDS = ("status", "storage_path", "thumbnail_path", "original_filename", "notes")

# Fields the image store manages itself and never takes from a caller.
IMAGE_SYSTEM_FIELDS = ("id", "created_at", "updated_at")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VocabularyConfig(Base):
    """Vocabulary structure definition. Exactly one row is active at a time."""

    __tablename__ = "vocabulary_config"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    is_active = Column(Boolean, nullable=False, default=True)
    config_name = Column(String(255), nullable=False, default="Current Vocabulary")
    description = Column(Text, nullable=True)

    # {"categories": [{key, label, storage_type, storage_path, search_weight, ...}]}
    structure = Column(JSONB, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index(
            "idx_single_active_config",
            "is_active",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )


class ReferenceImage(Base):
    """A tagged design reference image.

    Identity, review state and media references are columns. Category values
    live in ``attributes`` under whatever storage path the active vocabulary
    names, e.g. ``{"industries": [...], "tags": {"style": [...]}}``.
    """

    __tablename__ = "reference_images"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    status = Column(String(20), nullable=False, default="pending", index=True)

    # Media references (managed by the upload pipeline)
    storage_path = Column(String(1024), nullable=True)
    thumbnail_path = Column(String(1024), nullable=True)
    original_filename = Column(String(512), nullable=True)

    notes = Column(Text, nullable=True)
    attributes = Column(JSONB, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint(
            "status in ('pending','tagged','approved','skipped')",
            name="ck_reference_images_status",
        ),
    )


class VocabularyTag(Base):
    """A single allowed value within a vocabulary category."""

    __tablename__ = "tag_vocabulary"

    id = Column(Integer, primary_key=True)
    category = Column(String(50), nullable=False, index=True)  # Category.key
    tag_value = Column(String(100), nullable=False)  # canonical lowercase
    description = Column(Text, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    times_used = Column(Integer, nullable=False, default=0)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        # Only one active tag per (category, tag_value); retired tags may repeat.
        Index(
            "idx_tag_vocabulary_active_value",
            "category",
            "tag_value",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "tag_value": self.tag_value,
            "description": self.description,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "times_used": self.times_used,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
