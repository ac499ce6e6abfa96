# repairhub/workers/tasks.py

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Dict, Optional

from celery import Celery
from celery.utils.log import get_task_logger

from repairhub.config import settings
from repairhub.core.gamification.exceptions import StorageUnavailable, SyncConflict
from repairhub.core.gamification.service import AchievementsService
from repairhub.db.base import async_session_context, engine

log = get_task_logger(__name__)

celery_app = Celery(
    "repairhub-gamification",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=['repairhub.workers.tasks'],
)
celery_app.conf.update(
    task_serializer='json',
    result_serializer='json',
    accept_content=['json'],
    task_track_started=True,
    timezone='UTC',
    broker_connection_retry_on_startup=True,
)


async def _run_record_sync(customer_id: str, centro_id: str, synced_on: Optional[str]) -> Dict[str, Any]:
    day = date.fromisoformat(synced_on) if synced_on else None
    try:
        async with async_session_context() as session:
            outcome = await AchievementsService(session).record_sync(customer_id, centro_id, today=day)
    finally:
        # every task runs in a fresh event loop; pooled connections must not outlive it
        await engine.dispose()
    log.info(
        "Sync task done for customer '%s' at centro '%s': %s, +%d XP, unlocked=%s",
        customer_id, centro_id, outcome.streak_event.value, outcome.xp_awarded, outcome.unlocked,
    )
    return outcome.model_dump(mode="json")


@celery_app.task(
    name="repairhub.workers.tasks.record_sync_task",
    autoretry_for=(StorageUnavailable, SyncConflict),
    retry_kwargs={'max_retries': 3},
    retry_backoff=True,
    retry_backoff_max=60 * 5,
    retry_jitter=True,
)
def record_sync_task(customer_id: str, centro_id: str, synced_on: Optional[str] = None) -> Dict[str, Any]:
    """Record a device-health sync reported by a device, outside the request cycle."""
    log.info("Recording sync for customer '%s' at centro '%s' (day=%s)", customer_id, centro_id, synced_on or "today")
    return asyncio.run(_run_record_sync(customer_id, centro_id, synced_on))


__all__ = ["celery_app", "record_sync_task"]
