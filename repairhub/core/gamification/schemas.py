# repairhub/core/gamification/schemas.py

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StreakEvent(str, Enum):
    STARTED = "started"
    SAME_DAY = "same_day"
    CONTINUED = "continued"
    RESET = "reset"
    OUT_OF_ORDER = "out_of_order"


class LevelInfo(BaseModel):
    level: int
    name: str
    xp: int
    xp_in_level: int
    xp_to_next: int = Field(..., description="XP span of the current level; 0 at the highest level")
    progress_percent: float = Field(..., ge=0, le=100)
    next_level_name: str


class AchievementDefinitionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    name: str
    description: str
    icon: str
    target: int
    xp_reward: int


class LevelThresholdOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    level: int
    min_xp: int
    name: str


class AchievementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    achievement_type: str
    achievement_name: str
    achievement_description: Optional[str] = None
    achievement_icon: Optional[str] = None
    progress: int
    target: int
    xp_reward: int
    is_unlocked: bool
    unlocked_at: Optional[datetime] = None


class StatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    total_xp: int
    level: int
    current_streak: int
    longest_streak: int
    last_sync_date: Optional[date] = None
    total_syncs: int


class GamificationSummary(BaseModel):
    """Everything a customer-facing widget needs in one payload."""

    customer_id: str
    centro_id: str
    achievements: List[AchievementOut]
    stats: Optional[StatsOut]
    level_info: LevelInfo
    unlocked_count: int
    total_achievements: int
    next_achievement: Optional[AchievementOut] = None


class SyncOutcome(BaseModel):
    customer_id: str
    centro_id: str
    synced_on: date
    streak_event: StreakEvent
    xp_awarded: int
    current_streak: int
    longest_streak: int
    total_syncs: int
    total_xp: int
    level: int
    unlocked: List[str] = Field(default_factory=list, description="Achievement types unlocked by this sync")


class SyncIn(BaseModel):
    synced_on: Optional[date] = Field(None, description="Calendar day of the sync; defaults to today")


class ProgressUpdateIn(BaseModel):
    progress: int = Field(..., ge=0)


class ProgressUpdateOut(BaseModel):
    achievement: AchievementOut
    unlocked_now: bool
