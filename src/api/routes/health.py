"""
Health Routes
=============

FastAPI routes for health check endpoints.
"""

from fastapi import APIRouter

from src.config.settings import get_settings
from src.core.assets.cache import get_asset_cache
from src.core.assets.fonts import base_font_available
from src.models.schemas import HealthStatus

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthStatus)
async def health_check() -> HealthStatus:
    """
    Get application health status.

    The service is degraded when the base font is missing: renders without
    caller-supplied fonts will fail.
    """
    settings = get_settings()
    has_base_font = base_font_available(settings)

    return HealthStatus(
        status="healthy" if has_base_font else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        base_font=has_base_font,
        cached_assets=len(get_asset_cache()),
    )
