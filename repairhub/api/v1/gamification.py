# repairhub/api/v1/gamification.py

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.core.auth.schemas import Role, TokenData
from repairhub.core.auth.security import ensure_customer_access, get_current_principal
from repairhub.core.gamification.catalog import ACHIEVEMENT_DEFINITIONS, LEVEL_THRESHOLDS, SYNC_DRIVEN_TYPES
from repairhub.core.gamification.exceptions import (
    StorageUnavailable,
    SyncConflict,
    UnknownAchievement,
)
from repairhub.core.gamification.schemas import (
    AchievementDefinitionOut,
    AchievementOut,
    GamificationSummary,
    LevelThresholdOut,
    ProgressUpdateIn,
    ProgressUpdateOut,
    SyncIn,
    SyncOutcome,
)
from repairhub.core.gamification.service import AchievementsService
from repairhub.db.base import get_async_db_session

router = APIRouter(
    prefix="/v1/gamification",
    tags=["Gamification"],
    dependencies=[Depends(get_current_principal)],
)
log = logging.getLogger(__name__)


def get_achievements_service(db: AsyncSession = Depends(get_async_db_session)) -> AchievementsService:
    return AchievementsService(db_session=db)


def _storage_error(exc: StorageUnavailable) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Gamification storage unavailable ({exc.operation})",
    )


@router.get("/catalog", response_model=List[AchievementDefinitionOut], summary="Achievement catalog")
async def get_catalog() -> List[AchievementDefinitionOut]:
    return [AchievementDefinitionOut.model_validate(d) for d in ACHIEVEMENT_DEFINITIONS]


@router.get("/levels", response_model=List[LevelThresholdOut], summary="Level thresholds")
async def get_levels() -> List[LevelThresholdOut]:
    return [LevelThresholdOut.model_validate(t) for t in LEVEL_THRESHOLDS]


@router.get(
    "/{centro_id}/customers/{customer_id}",
    response_model=GamificationSummary,
    summary="Customer gamification summary",
    description="Achievements, stats and level of a customer. Initialises the customer's rows on first access.",
)
async def get_customer_summary(
    centro_id: str,
    customer_id: str,
    principal: TokenData = Depends(get_current_principal),
    service: AchievementsService = Depends(get_achievements_service),
) -> GamificationSummary:
    ensure_customer_access(principal, customer_id, centro_id)
    try:
        return await service.get_summary(customer_id, centro_id)
    except StorageUnavailable as e:
        raise _storage_error(e) from e


@router.post(
    "/{centro_id}/customers/{customer_id}/sync",
    response_model=SyncOutcome,
    summary="Record a device-health sync",
)
async def record_customer_sync(
    centro_id: str,
    customer_id: str,
    payload: Optional[SyncIn] = Body(None),
    principal: TokenData = Depends(get_current_principal),
    service: AchievementsService = Depends(get_achievements_service),
) -> SyncOutcome:
    ensure_customer_access(principal, customer_id, centro_id)
    synced_on = payload.synced_on if payload else None
    try:
        outcome = await service.record_sync(customer_id, centro_id, today=synced_on)
    except SyncConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except StorageUnavailable as e:
        raise _storage_error(e) from e
    log.info("API: sync for customer '%s' at centro '%s' -> %s", customer_id, centro_id, outcome.streak_event.value)
    return outcome


@router.post(
    "/{centro_id}/customers/{customer_id}/achievements/{achievement_type}/progress",
    response_model=ProgressUpdateOut,
    summary="Report progress on an achievement",
    description="Centro staff only. Sync-driven achievements advance through the sync endpoint.",
)
async def update_achievement_progress(
    centro_id: str,
    customer_id: str,
    achievement_type: str,
    payload: ProgressUpdateIn,
    principal: TokenData = Depends(get_current_principal),
    service: AchievementsService = Depends(get_achievements_service),
) -> ProgressUpdateOut:
    ensure_customer_access(principal, customer_id, centro_id)
    if principal.role is not Role.CENTRO:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only centro staff can report progress")
    if achievement_type in SYNC_DRIVEN_TYPES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Achievement '{achievement_type}' is driven by syncs",
        )
    try:
        await service.initialize_achievements(customer_id, centro_id)
        unlocked_now = await service.update_progress(customer_id, centro_id, achievement_type, payload.progress)
        achievement = await service.store.select_achievement(customer_id, centro_id, achievement_type)
    except UnknownAchievement as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except StorageUnavailable as e:
        raise _storage_error(e) from e
    if achievement is None:  # pragma: no cover
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Achievement not initialised")
    return ProgressUpdateOut(achievement=AchievementOut.model_validate(achievement), unlocked_now=unlocked_now)
