# repairhub/core/gamification/service.py

"""
Streak, XP and achievement engine for customers of a service centro.

State lives in two tables (see :mod:`.models`); the engine is stateless and
works through one :class:`~sqlalchemy.ext.asyncio.AsyncSession`. The caller
owns the transaction (FastAPI dependency or worker session context).
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import case
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.config import settings

from .catalog import (
    ACHIEVEMENT_DEFINITIONS,
    ACHIEVEMENTS_BY_TYPE,
    FIRST_SYNC,
    STREAK_MILESTONES,
    TOTAL_SYNC_MILESTONES,
    AchievementDefinition,
)
from .exceptions import GamificationError, SyncConflict, UnknownAchievement
from .levels import level_case, level_for_xp, level_info
from .models import CustomerAchievement, GamificationStats
from .schemas import (
    AchievementOut,
    GamificationSummary,
    StatsOut,
    StreakEvent,
    SyncOutcome,
)
from .store import AchievementStore

log = logging.getLogger(__name__)

SYNC_BASE_XP = 10
STREAK_BONUS_PER_DAY = 2
STREAK_BONUS_CAP = 20

_CATALOG_ORDER: Dict[str, int] = {d.type: i for i, d in enumerate(ACHIEVEMENT_DEFINITIONS)}


def advance_streak(
    current_streak: int, last_sync_date: Optional[date], today: date
) -> Tuple[int, StreakEvent]:
    """Next streak value for a sync on ``today`` and what kind of step it was."""
    if last_sync_date is None:
        return 1, StreakEvent.STARTED
    diff_days = (today - last_sync_date).days
    if diff_days == 0:
        return current_streak, StreakEvent.SAME_DAY
    if diff_days == 1:
        return current_streak + 1, StreakEvent.CONTINUED
    if diff_days > 1:
        return 1, StreakEvent.RESET
    # dated before the last recorded sync: counted, streak untouched
    return current_streak, StreakEvent.OUT_OF_ORDER


def sync_xp(streak: int) -> int:
    """XP granted for one sync at the given streak length."""
    if streak > 1:
        return SYNC_BASE_XP + min(streak * STREAK_BONUS_PER_DAY, STREAK_BONUS_CAP)
    return SYNC_BASE_XP


def _progress_ratio(achievement: CustomerAchievement) -> float:
    return achievement.progress / achievement.target if achievement.target else 0.0


class AchievementsService:
    """
    Customer gamification engine.

    Args:
        db_session: active async session; the service never commits it.
        clock: returns the current aware ``datetime``; used for
            ``unlocked_at`` and for the default sync day.
        timezone_name: IANA zone that decides which calendar day "today" is.
        max_sync_attempts: compare-and-set attempts per :meth:`record_sync`.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        clock: Optional[Callable[[], datetime]] = None,
        timezone_name: Optional[str] = None,
        max_sync_attempts: Optional[int] = None,
    ) -> None:
        self.db: AsyncSession = db_session
        self.store = AchievementStore(db_session)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._tz = ZoneInfo(timezone_name or settings.GAMIFICATION_TIMEZONE)
        self._max_sync_attempts = max_sync_attempts or settings.SYNC_MAX_ATTEMPTS

    def today(self) -> date:
        return self._clock().astimezone(self._tz).date()

    # ------------------------------------------------------------------ #
    #                           Initialisation                           #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _instance_row(customer_id: str, centro_id: str, definition: AchievementDefinition) -> dict:
        return {
            "id": str(uuid.uuid4()),
            "customer_id": customer_id,
            "centro_id": centro_id,
            "achievement_type": definition.type,
            "achievement_name": definition.name,
            "achievement_description": definition.description,
            "achievement_icon": definition.icon,
            "target": definition.target,
            "xp_reward": definition.xp_reward,
            "progress": 0,
            "is_unlocked": False,
        }

    @staticmethod
    def _initial_stats_row(customer_id: str, centro_id: str) -> dict:
        return {
            "id": str(uuid.uuid4()),
            "customer_id": customer_id,
            "centro_id": centro_id,
            "total_xp": 0,
            "level": 1,
            "current_streak": 0,
            "longest_streak": 0,
            "last_sync_date": None,
            "total_syncs": 0,
        }

    async def initialize_achievements(self, customer_id: str, centro_id: str) -> bool:
        """
        Create the catalog instances and the stats row for a customer if missing.

        Safe to call repeatedly and concurrently: existing rows are left alone
        and a lost insert race is silently absorbed by the unique keys.
        Definitions added to the catalog later are back-filled.
        Returns ``True`` when any achievement row was requested for creation.
        """
        existing = await self.store.select_achievements(customer_id, centro_id)
        existing_types = {a.achievement_type for a in existing}
        missing = [d for d in ACHIEVEMENT_DEFINITIONS if d.type not in existing_types]

        if missing:
            log.info(
                "Initialising %d achievements for customer '%s' at centro '%s'",
                len(missing), customer_id, centro_id,
            )
            await self.store.insert_achievements(
                self._instance_row(customer_id, centro_id, d) for d in missing
            )

        await self.ensure_stats(customer_id, centro_id)
        return bool(missing)

    async def ensure_stats(self, customer_id: str, centro_id: str) -> GamificationStats:
        stats = await self.store.select_stats(customer_id, centro_id)
        if stats is None:
            log.info("Creating gamification stats for customer '%s' at centro '%s'", customer_id, centro_id)
            stats = await self.store.insert_stats(self._initial_stats_row(customer_id, centro_id))
        return stats

    async def load_state(
        self, customer_id: str, centro_id: str
    ) -> Tuple[Sequence[CustomerAchievement], Optional[GamificationStats]]:
        """Achievement instances and stats, initialising them on first access."""
        achievements = await self.store.select_achievements(customer_id, centro_id)
        if len(achievements) < len(ACHIEVEMENT_DEFINITIONS):
            await self.initialize_achievements(customer_id, centro_id)
            achievements = await self.store.select_achievements(customer_id, centro_id)
        stats = await self.store.select_stats(customer_id, centro_id)
        return achievements, stats

    async def get_summary(self, customer_id: str, centro_id: str) -> GamificationSummary:
        achievements, stats = await self.load_state(customer_id, centro_id)

        ordered = sorted(
            achievements,
            key=lambda a: (not a.is_unlocked, -_progress_ratio(a), _CATALOG_ORDER.get(a.achievement_type, 0)),
        )
        locked = [a for a in ordered if not a.is_unlocked]
        next_achievement = locked[0] if locked else None

        return GamificationSummary(
            customer_id=customer_id,
            centro_id=centro_id,
            achievements=[AchievementOut.model_validate(a) for a in ordered],
            stats=StatsOut.model_validate(stats) if stats else None,
            level_info=level_info(stats.total_xp if stats else 0),
            unlocked_count=sum(1 for a in achievements if a.is_unlocked),
            total_achievements=len(ACHIEVEMENT_DEFINITIONS),
            next_achievement=AchievementOut.model_validate(next_achievement) if next_achievement else None,
        )

    # ------------------------------------------------------------------ #
    #                          Progress updates                          #
    # ------------------------------------------------------------------ #

    async def update_progress(
        self, customer_id: str, centro_id: str, achievement_type: str, new_progress: int
    ) -> bool:
        """
        Move an achievement towards its target and unlock it when reached.

        Progress is clamped to ``[stored progress, target]``. Unlocked or
        missing achievements are left untouched. On unlock the XP reward is
        added and the level recomputed in a single statement.

        Returns:
            bool: ``True`` if this call unlocked the achievement.
        """
        if achievement_type not in ACHIEVEMENTS_BY_TYPE:
            raise UnknownAchievement(achievement_type)

        achievement = await self.store.select_achievement(customer_id, centro_id, achievement_type)
        if achievement is None:
            log.debug("No '%s' achievement for customer '%s' at centro '%s'; skipping",
                      achievement_type, customer_id, centro_id)
            return False
        if achievement.is_unlocked:
            return False

        clamped = min(max(new_progress, 0), achievement.target)

        if clamped < achievement.target:
            await self.store.update_achievement(
                achievement.id,
                {
                    "progress": case(
                        (CustomerAchievement.progress > clamped, CustomerAchievement.progress),
                        else_=clamped,
                    )
                },
            )
            return False

        unlocked = await self.store.update_achievement(
            achievement.id,
            {"progress": clamped, "is_unlocked": True, "unlocked_at": self._clock()},
        )
        if not unlocked:
            log.info("Achievement '%s' for customer '%s' was unlocked concurrently", achievement_type, customer_id)
            return False

        stats = await self.ensure_stats(customer_id, centro_id)
        new_total = GamificationStats.total_xp + achievement.xp_reward
        await self.store.update_stats(stats.id, {"total_xp": new_total, "level": level_case(new_total)})
        log.info(
            "Achievement '%s' unlocked for customer '%s' at centro '%s': +%d XP",
            achievement_type, customer_id, centro_id, achievement.xp_reward,
        )
        return True

    # ------------------------------------------------------------------ #
    #                              Syncs                                 #
    # ------------------------------------------------------------------ #

    async def record_sync(
        self, customer_id: str, centro_id: str, today: Optional[date] = None
    ) -> SyncOutcome:
        """
        Record one device-health sync and apply its streak, XP and milestones.

        The stats row is written with a compare-and-set on ``total_syncs``;
        when another writer got in first the row is re-read and the
        transition recomputed, up to ``max_sync_attempts`` times.

        Raises:
            SyncConflict: every attempt lost the race.
            StorageUnavailable: the store failed while reading or writing stats.
        """
        today = today or self.today()
        await self.initialize_achievements(customer_id, centro_id)

        for attempt in range(1, self._max_sync_attempts + 1):
            stats = await self.ensure_stats(customer_id, centro_id)
            new_streak, event = advance_streak(stats.current_streak, stats.last_sync_date, today)
            longest = max(stats.longest_streak, new_streak)
            total_syncs = stats.total_syncs + 1
            xp = sync_xp(new_streak)
            # relative to the stored value so a concurrent unlock credit is kept
            new_total = GamificationStats.total_xp + xp
            observed_total = stats.total_xp + xp
            last_sync_date = stats.last_sync_date if event is StreakEvent.OUT_OF_ORDER else today

            applied = await self.store.update_stats(
                stats.id,
                {
                    "current_streak": new_streak,
                    "longest_streak": longest,
                    "last_sync_date": last_sync_date,
                    "total_syncs": total_syncs,
                    "total_xp": new_total,
                    "level": level_case(new_total),
                },
                expected_total_syncs=stats.total_syncs,
            )
            if applied:
                break
            log.warning(
                "Stats for customer '%s' at centro '%s' changed during sync (attempt %d/%d); retrying",
                customer_id, centro_id, attempt, self._max_sync_attempts,
            )
        else:
            raise SyncConflict(customer_id, centro_id, self._max_sync_attempts)

        log.info(
            "Sync recorded for customer '%s' at centro '%s': +%d XP, streak %d (%s), total syncs %d",
            customer_id, centro_id, xp, new_streak, event.value, total_syncs,
        )

        unlocked = await self._apply_sync_milestones(customer_id, centro_id, new_streak, total_syncs)

        final = await self.store.select_stats(customer_id, centro_id)
        return SyncOutcome(
            customer_id=customer_id,
            centro_id=centro_id,
            synced_on=today,
            streak_event=event,
            xp_awarded=xp,
            current_streak=final.current_streak if final else new_streak,
            longest_streak=final.longest_streak if final else longest,
            total_syncs=final.total_syncs if final else total_syncs,
            total_xp=final.total_xp if final else observed_total,
            level=final.level if final else level_for_xp(observed_total),
            unlocked=unlocked,
        )

    async def _apply_sync_milestones(
        self, customer_id: str, centro_id: str, streak: int, total_syncs: int
    ) -> List[str]:
        checks: List[Tuple[str, int]] = []
        if total_syncs == 1:
            checks.append((FIRST_SYNC, 1))
        checks.extend((t, streak) for threshold, t in STREAK_MILESTONES if streak >= threshold)
        checks.extend((t, total_syncs) for threshold, t in TOTAL_SYNC_MILESTONES if total_syncs >= threshold)

        unlocked: List[str] = []
        for achievement_type, progress in checks:
            try:
                # one savepoint per milestone: a failure rolls back only that
                # milestone and leaves the enclosing transaction usable
                async with self.db.begin_nested():
                    if await self.update_progress(customer_id, centro_id, achievement_type, progress):
                        unlocked.append(achievement_type)
            except GamificationError:
                log.exception(
                    "Milestone '%s' failed for customer '%s' at centro '%s'",
                    achievement_type, customer_id, centro_id,
                )
        return unlocked
