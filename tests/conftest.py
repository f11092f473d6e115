"""Test configuration and fixtures."""

import copy

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from reftagger.metadata import Base
from reftagger.settings import Settings
from reftagger.stores import ImageStore, TagStore
from reftagger.vocabulary import VocabularyConfigPayload
from reftagger.vocabulary.resolver import VocabularyConfigResolver


VOCABULARY = {
    "config_name": "Design references",
    "description": "Industries, style and mood",
    "structure": {
        "categories": [
            {
                "key": "industries",
                "label": "Industries",
                "storage_path": "industries",
                "storage_type": "array",
                "search_weight": 1,
                "tags": ["hospitality", "retail", "tech"],
            },
            {
                "key": "style",
                "label": "Style",
                "storage_path": "tags.style",
                "storage_type": "jsonb_array",
                "search_weight": 2,
                "tags": ["mid-century", "retro", "modernist", "minimal"],
            },
            {
                "key": "mood",
                "label": "Mood",
                "storage_path": "tags.mood",
                "storage_type": "jsonb_array",
                "search_weight": 1,
                "tags": ["calm", "playful"],
            },
            {
                "key": "notes",
                "label": "Notes",
                "storage_path": "notes",
                "storage_type": "text",
                "search_weight": 1,
            },
        ]
    },
}


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across threads (for TestClient)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def test_db(engine):
    """Create test database session."""
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()

    yield session

    session.close()


@pytest.fixture
def test_settings():
    """Settings with defaults only, ignoring any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def vocabulary_payload():
    """A fresh copy of the sample vocabulary request body."""
    return copy.deepcopy(VOCABULARY)


@pytest.fixture
def categories(test_db: Session):
    """Activate the sample vocabulary and return its categories."""
    resolver = VocabularyConfigResolver(test_db)
    resolver.replace_config(VocabularyConfigPayload.model_validate(VOCABULARY))
    return resolver.get_active_config()


@pytest.fixture
def make_image(test_db: Session):
    """Factory inserting an image record; defaults to a searchable status."""
    store = ImageStore(test_db)

    def _make(image_id: str, status: str = "tagged", **fields):
        return store.insert_image({"id": image_id, "status": status, **fields})

    return _make


@pytest.fixture
def tag_by_value(test_db: Session):
    """Look up the active tag row for a category/value pair."""
    store = TagStore(test_db)

    def _lookup(category: str, value: str):
        return store.find_active(category, value)

    return _lookup


@pytest.fixture
def client(engine, test_settings):
    """FastAPI test client bound to the in-memory database."""
    from reftagger.api import app
    from reftagger.dependencies import get_db, get_settings

    SessionLocal = sessionmaker(bind=engine)

    def _get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
