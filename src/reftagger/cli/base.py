"""Base command class for shared CLI setup/teardown."""

import click
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from reftagger.database import get_engine_kwargs
from reftagger.exceptions import VocabularyError
from reftagger.settings import settings


class CliCommand:
    """Base class for all CLI commands with shared setup/teardown."""

    def __init__(self):
        self.engine = None
        self.Session = None
        self.db = None

    def setup_db(self):
        """Initialize database connection."""
        self.engine = create_engine(
            settings.database_url,
            **get_engine_kwargs(settings.database_url),
        )
        self.Session = sessionmaker(bind=self.engine)
        self.db = self.Session()

    def cleanup_db(self):
        """Close database connection."""
        if self.db:
            self.db.close()
        if self.engine:
            self.engine.dispose()

    def execute(self, **kwargs):
        """Run with a database session, reporting domain errors as click errors."""
        self.setup_db()
        try:
            return self.run(**kwargs)
        except VocabularyError as exc:
            raise click.ClickException(str(exc)) from exc
        finally:
            self.cleanup_db()

    def run(self, **kwargs):
        """Execute command - override in subclasses."""
        raise NotImplementedError

    def __enter__(self):
        """Context manager entry."""
        self.setup_db()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.cleanup_db()
