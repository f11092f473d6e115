"""Application settings and environment configuration."""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[2]
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = "RefTagger"
    debug: bool = False
    environment: str = "dev"  # 'dev' or 'prod'
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./reftagger.db"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800
    db_pool_pre_ping: bool = True
    db_connect_timeout: int = 10

    # Search
    # Tier 1 keeps images scoring at least this much.
    search_primary_threshold: int = 2
    # Tier 2 relaxes to this score when tier 1 returns too few images.
    search_fallback_threshold: int = 1
    # Tier 1 result count below which tier 2 is attempted.
    search_min_results: int = 10
    search_max_results: int = 40
    # Only images in these review states are searchable.
    searchable_statuses: List[str] = ["tagged", "approved"]

    # Tag reconciliation
    # Overall budget for one merge/rename pass; exceeding it mid-loop is a partial merge.
    merge_timeout_seconds: float = 120.0

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_workers: int = 1
    cors_origins: List[str] = ["http://localhost:3000"]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "dev"


settings = Settings()
