from __future__ import annotations

import logging

from fastapi import FastAPI, status

from repairhub import __version__
from repairhub.api.v1.auth import router as auth_router
from repairhub.api.v1.gamification import router as gamification_router
from repairhub.api.v1.health import router as health_router
from repairhub.config import settings

logging.basicConfig(level=settings.LOG_LEVEL.upper())
log = logging.getLogger(__name__)

description = "Customer streaks, XP, levels and achievements for RepairHub service centers."
tags_metadata = [
    {"name": "Authentication & Testing", "description": "Development token issuing."},
    {"name": "Gamification", "description": "Customer streaks, XP and achievements."},
    {"name": "Health", "description": "Liveness and dependency probes."},
]

app = FastAPI(
    title="RepairHub Gamification API",
    description=description,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=tags_metadata,
)

app.include_router(auth_router)
app.include_router(gamification_router)
app.include_router(health_router)

log.info("\U0001F331 FastAPI application configured. Environment: %s", settings.ENVIRONMENT)


@app.get("/healthz", tags=["Health"], status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness endpoint."""
    return {"status": "ok", "environment": settings.ENVIRONMENT}
