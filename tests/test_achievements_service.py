from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.core.gamification.catalog import ACHIEVEMENT_DEFINITIONS
from repairhub.core.gamification.exceptions import StorageUnavailable, SyncConflict, UnknownAchievement
from repairhub.core.gamification.models import CustomerAchievement, GamificationStats
from repairhub.core.gamification.schemas import StreakEvent
from repairhub.core.gamification.service import AchievementsService, advance_streak, sync_xp


CUSTOMER = "cust-1"
CENTRO = "centro-1"
DAY = date(2026, 3, 10)
FIXED_NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)


async def _achievement(session: AsyncSession, achievement_type: str) -> CustomerAchievement:
    stmt = (
        select(CustomerAchievement)
        .where(
            CustomerAchievement.customer_id == CUSTOMER,
            CustomerAchievement.centro_id == CENTRO,
            CustomerAchievement.achievement_type == achievement_type,
        )
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one()


# ---------------------------------------------------------------------- #
#                         pure streak helpers                            #
# ---------------------------------------------------------------------- #

def test_advance_streak_transitions():
    assert advance_streak(0, None, DAY) == (1, StreakEvent.STARTED)
    assert advance_streak(4, DAY, DAY) == (4, StreakEvent.SAME_DAY)
    assert advance_streak(4, DAY - timedelta(days=1), DAY) == (5, StreakEvent.CONTINUED)
    assert advance_streak(4, DAY - timedelta(days=2), DAY) == (1, StreakEvent.RESET)
    assert advance_streak(4, DAY + timedelta(days=1), DAY) == (4, StreakEvent.OUT_OF_ORDER)


def test_sync_xp_bonus_is_capped():
    assert sync_xp(1) == 10
    assert sync_xp(2) == 14
    assert sync_xp(9) == 28
    assert sync_xp(10) == 30
    assert sync_xp(45) == 30


# ---------------------------------------------------------------------- #
#                           initialisation                               #
# ---------------------------------------------------------------------- #

@pytest.mark.asyncio
async def test_initialize_creates_catalog_and_stats(service: AchievementsService, db_session: AsyncSession):
    created = await service.initialize_achievements(CUSTOMER, CENTRO)
    await db_session.commit()

    assert created is True
    achievements, stats = await service.load_state(CUSTOMER, CENTRO)
    assert {a.achievement_type for a in achievements} == {d.type for d in ACHIEVEMENT_DEFINITIONS}
    assert all(a.progress == 0 and not a.is_unlocked and a.unlocked_at is None for a in achievements)
    assert stats is not None
    assert (stats.total_xp, stats.level, stats.current_streak, stats.longest_streak, stats.total_syncs) == (0, 1, 0, 0, 0)
    assert stats.last_sync_date is None


@pytest.mark.asyncio
async def test_initialize_twice_is_idempotent(service: AchievementsService, db_session: AsyncSession):
    assert await service.initialize_achievements(CUSTOMER, CENTRO) is True
    assert await service.initialize_achievements(CUSTOMER, CENTRO) is False
    await db_session.commit()

    count = await db_session.scalar(select(func.count()).select_from(CustomerAchievement))
    stats_count = await db_session.scalar(select(func.count()).select_from(GamificationStats))
    assert count == len(ACHIEVEMENT_DEFINITIONS)
    assert stats_count == 1


@pytest.mark.asyncio
async def test_lost_initialisation_race_is_benign(service: AchievementsService, db_session: AsyncSession, monkeypatch):
    await service.initialize_achievements(CUSTOMER, CENTRO)

    # a second caller that read "nothing there yet" before the first one inserted
    late = AchievementsService(db_session)

    async def stale_select(customer_id, centro_id):
        return []

    monkeypatch.setattr(late.store, "select_achievements", stale_select)
    await late.initialize_achievements(CUSTOMER, CENTRO)
    await db_session.commit()

    count = await db_session.scalar(select(func.count()).select_from(CustomerAchievement))
    assert count == len(ACHIEVEMENT_DEFINITIONS)


@pytest.mark.asyncio
async def test_initialisation_is_scoped_per_centro(service: AchievementsService, db_session: AsyncSession):
    await service.initialize_achievements(CUSTOMER, CENTRO)
    await service.initialize_achievements(CUSTOMER, "centro-2")
    await db_session.commit()

    count = await db_session.scalar(select(func.count()).select_from(CustomerAchievement))
    assert count == 2 * len(ACHIEVEMENT_DEFINITIONS)


# ---------------------------------------------------------------------- #
#                           progress updates                             #
# ---------------------------------------------------------------------- #

@pytest.mark.asyncio
async def test_progress_is_clamped_and_never_regresses(service: AchievementsService, db_session: AsyncSession):
    await service.initialize_achievements(CUSTOMER, CENTRO)

    assert await service.update_progress(CUSTOMER, CENTRO, "health_master", 4) is False
    assert (await _achievement(db_session, "health_master")).progress == 4

    assert await service.update_progress(CUSTOMER, CENTRO, "health_master", 2) is False
    assert (await _achievement(db_session, "health_master")).progress == 4


@pytest.mark.asyncio
async def test_unlock_credits_xp_once(service: AchievementsService, db_session: AsyncSession):
    await service.initialize_achievements(CUSTOMER, CENTRO)

    assert await service.update_progress(CUSTOMER, CENTRO, "storage_cleaner", 5) is True
    achievement = await _achievement(db_session, "storage_cleaner")
    assert achievement.progress == achievement.target == 2
    assert achievement.is_unlocked is True
    assert achievement.unlocked_at is not None
    first_unlocked_at = achievement.unlocked_at

    stats = await service.store.select_stats(CUSTOMER, CENTRO)
    assert stats.total_xp == 75
    assert stats.level == 1

    # already unlocked: no-op
    assert await service.update_progress(CUSTOMER, CENTRO, "storage_cleaner", 9) is False
    achievement = await _achievement(db_session, "storage_cleaner")
    assert achievement.unlocked_at == first_unlocked_at
    assert achievement.is_unlocked is True
    stats = await service.store.select_stats(CUSTOMER, CENTRO)
    assert stats.total_xp == 75


@pytest.mark.asyncio
async def test_unlock_recomputes_level(service: AchievementsService):
    await service.initialize_achievements(CUSTOMER, CENTRO)

    await service.update_progress(CUSTOMER, CENTRO, "loyal_customer", 3)
    stats = await service.store.select_stats(CUSTOMER, CENTRO)
    assert stats.total_xp == 300
    assert stats.level == 3


@pytest.mark.asyncio
async def test_progress_without_instances_is_noop(service: AchievementsService):
    assert await service.update_progress(CUSTOMER, CENTRO, "first_sync", 1) is False
    assert await service.store.select_stats(CUSTOMER, CENTRO) is None


@pytest.mark.asyncio
async def test_unknown_achievement_type(service: AchievementsService):
    with pytest.raises(UnknownAchievement):
        await service.update_progress(CUSTOMER, CENTRO, "moon_landing", 1)


# ---------------------------------------------------------------------- #
#                                syncs                                   #
# ---------------------------------------------------------------------- #

@pytest.mark.asyncio
async def test_first_sync_unlocks_first_sync(service: AchievementsService):
    outcome = await service.record_sync(CUSTOMER, CENTRO, today=DAY)

    assert outcome.streak_event is StreakEvent.STARTED
    assert outcome.xp_awarded == 10
    assert outcome.unlocked == ["first_sync"]
    assert outcome.total_xp == 60
    assert outcome.level == 1
    assert outcome.current_streak == 1
    assert outcome.total_syncs == 1


@pytest.mark.asyncio
async def test_sync_defaults_to_clock_day(service: AchievementsService):
    outcome = await service.record_sync(CUSTOMER, CENTRO)
    assert outcome.synced_on == FIXED_NOW.date()


@pytest.mark.asyncio
async def test_same_day_syncs_count_but_keep_streak(service: AchievementsService):
    await service.record_sync(CUSTOMER, CENTRO, today=DAY)
    outcome = await service.record_sync(CUSTOMER, CENTRO, today=DAY)

    assert outcome.streak_event is StreakEvent.SAME_DAY
    assert outcome.total_syncs == 2
    assert outcome.current_streak == 1
    assert outcome.total_xp == 70
    assert outcome.unlocked == []


@pytest.mark.asyncio
async def test_gap_resets_streak(service: AchievementsService):
    streaks = []
    for day in (DAY, DAY + timedelta(days=1), DAY + timedelta(days=3)):
        streaks.append((await service.record_sync(CUSTOMER, CENTRO, today=day)).current_streak)

    stats = await service.store.select_stats(CUSTOMER, CENTRO)
    assert streaks == [1, 2, 1]
    assert stats.longest_streak == 2
    assert stats.last_sync_date == DAY + timedelta(days=3)


@pytest.mark.asyncio
async def test_three_day_streak_unlocks_milestone(service: AchievementsService):
    await service.record_sync(CUSTOMER, CENTRO, today=DAY)
    await service.record_sync(CUSTOMER, CENTRO, today=DAY + timedelta(days=1))
    outcome = await service.record_sync(CUSTOMER, CENTRO, today=DAY + timedelta(days=2))

    assert outcome.current_streak == 3
    assert outcome.xp_awarded == 16
    assert outcome.unlocked == ["sync_streak_3"]
    # 60 (first day) + 14 + 16 + 75 bonus
    assert outcome.total_xp == 165
    assert outcome.level == 2


@pytest.mark.asyncio
async def test_backdated_sync_does_not_move_last_sync_date(service: AchievementsService):
    await service.record_sync(CUSTOMER, CENTRO, today=DAY)
    outcome = await service.record_sync(CUSTOMER, CENTRO, today=DAY - timedelta(days=2))

    stats = await service.store.select_stats(CUSTOMER, CENTRO)
    assert outcome.streak_event is StreakEvent.OUT_OF_ORDER
    assert outcome.current_streak == 1
    assert outcome.total_syncs == 2
    assert stats.last_sync_date == DAY


@pytest.mark.asyncio
async def test_concurrent_writer_is_retried(service: AchievementsService):
    await service.record_sync(CUSTOMER, CENTRO, today=DAY)

    original = service.store.update_stats
    raced = []

    async def racing_update(stats_id, values, *, expected_total_syncs=None):
        if expected_total_syncs is not None and not raced:
            raced.append(True)
            # another tab records a sync between our read and our write
            await original(stats_id, {"total_syncs": GamificationStats.total_syncs + 1})
        return await original(stats_id, values, expected_total_syncs=expected_total_syncs)

    service.store.update_stats = racing_update
    outcome = await service.record_sync(CUSTOMER, CENTRO, today=DAY + timedelta(days=1))

    assert raced == [True]
    assert outcome.total_syncs == 3
    assert outcome.current_streak == 2


@pytest.mark.asyncio
async def test_sync_conflict_after_max_attempts(db_session: AsyncSession):
    service = AchievementsService(db_session, clock=lambda: FIXED_NOW, max_sync_attempts=2)
    await service.record_sync(CUSTOMER, CENTRO, today=DAY)

    original = service.store.update_stats

    async def always_racing(stats_id, values, *, expected_total_syncs=None):
        if expected_total_syncs is not None:
            await original(stats_id, {"total_syncs": GamificationStats.total_syncs + 1})
        return await original(stats_id, values, expected_total_syncs=expected_total_syncs)

    service.store.update_stats = always_racing
    with pytest.raises(SyncConflict) as excinfo:
        await service.record_sync(CUSTOMER, CENTRO, today=DAY + timedelta(days=1))
    assert excinfo.value.attempts == 2


@pytest.mark.asyncio
async def test_unlock_during_sync_keeps_its_xp(service: AchievementsService):
    await service.record_sync(CUSTOMER, CENTRO, today=DAY)

    original = service.store.update_stats
    interleaved = []

    async def unlock_between_read_and_write(stats_id, values, *, expected_total_syncs=None):
        if expected_total_syncs is not None and not interleaved:
            interleaved.append(True)
            # a progress report unlocks storage_cleaner (+75) after the sync read the row
            assert await service.update_progress(CUSTOMER, CENTRO, "storage_cleaner", 2) is True
        return await original(stats_id, values, expected_total_syncs=expected_total_syncs)

    service.store.update_stats = unlock_between_read_and_write
    outcome = await service.record_sync(CUSTOMER, CENTRO, today=DAY + timedelta(days=1))

    assert interleaved == [True]
    assert outcome.xp_awarded == 14
    # 60 (first day) + 75 unlock + 14
    assert outcome.total_xp == 149
    assert outcome.level == 2


@pytest.mark.asyncio
async def test_milestones_are_best_effort(service: AchievementsService, monkeypatch):
    calls = []

    async def flaky_update(customer_id, centro_id, achievement_type, new_progress):
        calls.append((achievement_type, new_progress))
        if achievement_type == "sync_streak_3":
            raise StorageUnavailable("update_achievement")
        return True

    monkeypatch.setattr(service, "update_progress", flaky_update)
    unlocked = await service._apply_sync_milestones(CUSTOMER, CENTRO, streak=7, total_syncs=10)

    assert calls == [("sync_streak_3", 7), ("sync_streak_7", 7), ("total_syncs_10", 10)]
    assert unlocked == ["sync_streak_7", "total_syncs_10"]


@pytest.mark.asyncio
async def test_failed_milestone_rolls_back_alone(service: AchievementsService, db_session: AsyncSession):
    await service.initialize_achievements(CUSTOMER, CENTRO)
    stats = await service.store.select_stats(CUSTOMER, CENTRO)
    await service.store.update_stats(
        stats.id,
        {"total_syncs": 9, "current_streak": 2, "longest_streak": 2, "last_sync_date": DAY - timedelta(days=1)},
    )

    original = service.store.update_stats
    failed = []

    async def failing_credit(stats_id, values, *, expected_total_syncs=None):
        # the XP credit for sync_streak_3 fails after its row was already marked unlocked
        if "total_syncs" not in values and not failed:
            failed.append(True)
            raise StorageUnavailable("update_stats", "OperationalError")
        return await original(stats_id, values, expected_total_syncs=expected_total_syncs)

    service.store.update_stats = failing_credit
    outcome = await service.record_sync(CUSTOMER, CENTRO, today=DAY)
    await db_session.commit()

    assert failed == [True]
    assert outcome.unlocked == ["total_syncs_10"]

    streak_3 = await _achievement(db_session, "sync_streak_3")
    assert streak_3.is_unlocked is False
    assert streak_3.progress == 0
    assert streak_3.unlocked_at is None
    assert (await _achievement(db_session, "total_syncs_10")).is_unlocked is True

    stored = await service.store.select_stats(CUSTOMER, CENTRO)
    assert stored.total_syncs == 10
    assert stored.current_streak == 3
    # 16 for the sync + 100 for total_syncs_10
    assert stored.total_xp == 116


@pytest.mark.asyncio
async def test_first_sync_milestone_comes_first(service: AchievementsService, monkeypatch):
    calls = []

    async def record(customer_id, centro_id, achievement_type, new_progress):
        calls.append(achievement_type)
        return False

    monkeypatch.setattr(service, "update_progress", record)
    await service._apply_sync_milestones(CUSTOMER, CENTRO, streak=1, total_syncs=1)
    assert calls == ["first_sync"]


# ---------------------------------------------------------------------- #
#                            summary / errors                            #
# ---------------------------------------------------------------------- #

@pytest.mark.asyncio
async def test_summary_orders_unlocked_first(service: AchievementsService):
    await service.record_sync(CUSTOMER, CENTRO, today=DAY)
    await service.update_progress(CUSTOMER, CENTRO, "storage_cleaner", 1)

    summary = await service.get_summary(CUSTOMER, CENTRO)

    assert summary.total_achievements == 10
    assert summary.unlocked_count == 1
    assert summary.achievements[0].achievement_type == "first_sync"
    assert summary.next_achievement.achievement_type == "storage_cleaner"
    assert summary.level_info.xp == 60
    assert summary.stats.total_syncs == 1


@pytest.mark.asyncio
async def test_storage_failure_is_reported(service: AchievementsService, monkeypatch):
    async def broken_execute(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is down"))

    monkeypatch.setattr(AsyncSession, "execute", broken_execute)
    with pytest.raises(StorageUnavailable) as excinfo:
        await service.get_summary(CUSTOMER, CENTRO)
    assert excinfo.value.operation == "select_achievements"
