"""
Siigo Purchase Analytics - API

Exposes Siigo purchases, dashboard analytics and invoice submission.
"""

import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .modules.siigo.cache import get_cache
from .modules.siigo.config import get_settings
from .routers import monitoring, siigo


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle manager."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("=== Starting Siigo Purchase Analytics ===")

    missing = settings.missing_credentials()
    if missing:
        logger.warning(f"Siigo credentials not configured: {', '.join(missing)}")
    else:
        logger.info(f"Siigo API: {settings.api_base_url} (partner={settings.partner_id})")

    logger.info("=== All services ready ===")

    yield

    logger.info("=== Shutting down ===")
    removed = get_cache().cleanup_expired()
    if removed:
        logger.debug(f"Dropped {removed} expired cache entries")


app = FastAPI(
    title="Siigo Purchase Analytics",
    description="Purchases retrieval, monthly analytics and invoice submission for Siigo",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(monitoring.router)
app.include_router(siigo.router)


@app.get("/")
async def root():
    return {
        "message": "Siigo Purchase Analytics API",
        "docs": "/docs",
        "endpoints": {
            "purchases": "/api/siigo/purchases",
            "analytics": "/api/siigo/analytics",
            "health": "/api/health",
        },
    }


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


if __name__ == "__main__":
    run()
