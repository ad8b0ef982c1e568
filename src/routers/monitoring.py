"""Health and monitoring endpoints."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..modules.siigo.cache import get_cache
from ..modules.siigo.config import Settings, get_settings

router = APIRouter(prefix="/api", tags=["monitoring"])


@router.get("/health")
async def health_check(settings: Settings = Depends(get_settings)) -> JSONResponse:
    """
    Health check endpoint.

    Reports whether Siigo credentials are configured. Never calls Siigo.
    """
    missing = settings.missing_credentials()
    return JSONResponse(
        content={
            "status": "healthy" if not missing else "degraded",
            "service": "siigo-purchase-analytics",
            "credentials_configured": not missing,
            "missing": missing,
        }
    )


@router.get("/metrics")
async def metrics(settings: Settings = Depends(get_settings)) -> JSONResponse:
    """
    Cache metrics endpoint.

    Returns token/purchases cache statistics and the fetch limits in use.
    """
    return JSONResponse(
        content={
            "cache": get_cache().get_stats(),
            "fetch": {
                "page_size": settings.page_size,
                "max_pages": settings.max_pages,
                "fan_out_max_pages": settings.fan_out_max_pages,
                "max_retries_per_page": settings.max_retries_per_page,
                "request_timeout": settings.request_timeout,
            },
        }
    )
