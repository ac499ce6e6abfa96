# repairhub/core/gamification/store.py

"""
Row-level access to the two gamification tables.

Every statement goes through :meth:`AchievementStore._execute`, which turns
driver/SQL errors into :class:`StorageUnavailable`. Inserts use
``ON CONFLICT DO NOTHING`` on the unique keys, so concurrent initialisers
that lose the race simply insert nothing.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Result
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.expression import Executable
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import StorageUnavailable
from .models import CustomerAchievement, GamificationStats

log = logging.getLogger(__name__)


class AchievementStore:
    """Storage collaborator of the gamification engine, bound to one session."""

    def __init__(self, db_session: AsyncSession) -> None:
        self.db: AsyncSession = db_session

    async def _execute(self, operation: str, stmt: Executable) -> Result:
        try:
            return await self.db.execute(stmt)
        except SQLAlchemyError as exc:
            log.exception("Storage operation '%s' failed", operation)
            raise StorageUnavailable(operation, type(exc).__name__) from exc

    def _insert(self, model: type):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        raise StorageUnavailable("insert", f"unsupported dialect '{dialect}'")

    # ------------------------------------------------------------------ #
    #                         customer_achievements                      #
    # ------------------------------------------------------------------ #

    async def select_achievements(self, customer_id: str, centro_id: str) -> Sequence[CustomerAchievement]:
        stmt = (
            select(CustomerAchievement)
            .where(
                CustomerAchievement.customer_id == customer_id,
                CustomerAchievement.centro_id == centro_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._execute("select_achievements", stmt)
        return result.scalars().all()

    async def select_achievement(
        self, customer_id: str, centro_id: str, achievement_type: str
    ) -> Optional[CustomerAchievement]:
        stmt = (
            select(CustomerAchievement)
            .where(
                CustomerAchievement.customer_id == customer_id,
                CustomerAchievement.centro_id == centro_id,
                CustomerAchievement.achievement_type == achievement_type,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._execute("select_achievement", stmt)
        return result.scalar_one_or_none()

    async def insert_achievements(self, rows: Iterable[Mapping[str, Any]]) -> int:
        """Bulk insert; rows that already exist are skipped. Returns the driver's row count."""
        rows = [dict(row) for row in rows]
        if not rows:
            return 0
        stmt = (
            self._insert(CustomerAchievement)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["customer_id", "centro_id", "achievement_type"])
        )
        result = await self._execute("insert_achievements", stmt)
        log.debug("insert_achievements: %d requested, rowcount=%s", len(rows), result.rowcount)
        return result.rowcount

    async def update_achievement(
        self,
        achievement_id: str,
        values: Mapping[str, Any],
        *,
        only_if_locked: bool = True,
    ) -> bool:
        """
        Update one achievement row.

        With ``only_if_locked`` the statement matches only while
        ``is_unlocked`` is false, so an unlocked achievement is never
        touched again. Returns ``True`` when a row was updated.
        """
        stmt = update(CustomerAchievement).where(CustomerAchievement.id == achievement_id)
        if only_if_locked:
            stmt = stmt.where(CustomerAchievement.is_unlocked.is_(False))
        stmt = stmt.values(**values).execution_options(synchronize_session=False)
        result = await self._execute("update_achievement", stmt)
        return result.rowcount == 1

    # ------------------------------------------------------------------ #
    #                      customer_gamification_stats                   #
    # ------------------------------------------------------------------ #

    async def select_stats(self, customer_id: str, centro_id: str) -> Optional[GamificationStats]:
        stmt = (
            select(GamificationStats)
            .where(
                GamificationStats.customer_id == customer_id,
                GamificationStats.centro_id == centro_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._execute("select_stats", stmt)
        return result.scalar_one_or_none()

    async def insert_stats(self, values: Mapping[str, Any]) -> GamificationStats:
        """Insert the stats row if absent and return whichever row is stored."""
        stmt = (
            self._insert(GamificationStats)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["customer_id", "centro_id"])
        )
        await self._execute("insert_stats", stmt)
        stats = await self.select_stats(values["customer_id"], values["centro_id"])
        if stats is None:  # pragma: no cover
            raise StorageUnavailable("insert_stats", "row missing after insert")
        return stats

    async def update_stats(
        self,
        stats_id: str,
        values: Dict[str, Any],
        *,
        expected_total_syncs: Optional[int] = None,
    ) -> bool:
        """
        Update the stats row. Values may be SQL expressions over the row's own
        columns, which makes increments atomic.

        ``expected_total_syncs`` turns the update into a compare-and-set:
        it only applies while ``total_syncs`` still has the value the
        caller read. Returns ``True`` when a row was updated.
        """
        stmt = update(GamificationStats).where(GamificationStats.id == stats_id)
        if expected_total_syncs is not None:
            stmt = stmt.where(GamificationStats.total_syncs == expected_total_syncs)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)
        result = await self._execute("update_stats", stmt)
        return result.rowcount == 1
