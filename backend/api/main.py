"""
PharmaPOP Entry API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_settings

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info(
        "PharmaPOP Entry API starting up",
        version=settings.app_version,
        min_resolution_enforced=settings.media_enforce_min_resolution,
    )
    yield
    logger.info("PharmaPOP Entry API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Entry sheet submission service with managed media storage",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import sheets, uploads

app.include_router(sheets.router)
app.include_router(uploads.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
