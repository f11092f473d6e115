"""Router for system configuration endpoints."""

from fastapi import APIRouter, Depends

from reftagger import __version__
from reftagger.dependencies import get_settings
from reftagger.settings import Settings

router = APIRouter(
    prefix="/api/v1/config",
    tags=["config"]
)


@router.get("/system")
async def get_system_config(config: Settings = Depends(get_settings)):
    """Get non-secret runtime configuration (environment, version, search thresholds)."""
    return {
        "app_name": config.app_name,
        "environment": config.environment,
        "version": __version__,
        "debug": config.debug,
        "search_primary_threshold": config.search_primary_threshold,
        "search_fallback_threshold": config.search_fallback_threshold,
        "search_min_results": config.search_min_results,
        "search_max_results": config.search_max_results,
        "searchable_statuses": list(config.searchable_statuses),
        "merge_timeout_seconds": config.merge_timeout_seconds,
    }
