"""Database configuration and session management."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from reftagger.settings import settings


def get_engine_kwargs(database_url: str | None = None) -> dict:
    """Return SQLAlchemy engine kwargs with safe defaults for the configured backend."""
    url = database_url or settings.database_url
    kwargs = {
        "pool_pre_ping": settings.db_pool_pre_ping,
    }

    # QueuePool sizing only applies to non-sqlite engines.
    if not url.startswith("sqlite"):
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow
        kwargs["pool_timeout"] = settings.db_pool_timeout
        kwargs["pool_recycle"] = settings.db_pool_recycle

    if url.startswith("postgresql"):
        kwargs["connect_args"] = {
            "connect_timeout": settings.db_connect_timeout,
        }

    return kwargs


def build_engine(database_url: str | None = None):
    """Build a database engine using configured pool and connectivity options."""
    url = database_url or settings.database_url
    return create_engine(url, **get_engine_kwargs(url))


# Create database engine
engine = build_engine()

# Create session factory
SessionLocal = sessionmaker(bind=engine)


def get_db():
    """Get database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create all tables on the given engine (defaults to the configured one)."""
    from reftagger.metadata import Base

    Base.metadata.create_all(bind or engine)
