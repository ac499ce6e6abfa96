# repairhub/api/v1/health.py

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from redis import Redis
from redis.exceptions import RedisError

from repairhub.config import settings
from repairhub.db.base import engine

router = APIRouter(prefix="/v1/health", tags=["Health"])
log = logging.getLogger(__name__)


@router.get("/deps")
async def dependencies_health() -> dict[str, str]:
    out: dict[str, str] = {}

    # DB
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        out["db"] = "ok"
    except SQLAlchemyError as exc:
        log.exception("DB health check failed")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="db error") from exc

    # Redis (Celery broker)
    try:
        r = Redis.from_url(settings.CELERY_BROKER_URL, socket_connect_timeout=2)
        if not r.ping():
            raise RedisError("ping returned false")
        out["broker"] = "ok"
    except RedisError as exc:
        log.exception("Redis health check failed")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="broker error") from exc

    return out
