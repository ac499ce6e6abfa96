# repairhub/core/gamification/models.py

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean, Date, DateTime, Integer, String, Text, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func, false

from repairhub.db.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class CustomerAchievement(Base):
    """One achievement of the catalog, tracked for a customer at one centro."""

    __tablename__ = "customer_achievements"
    __table_args__ = (
        UniqueConstraint("customer_id", "centro_id", "achievement_type", name="uq_customer_achievement"),
        CheckConstraint("progress >= 0 AND progress <= target", name="ck_customer_achievement_progress"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    centro_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    achievement_type: Mapped[str] = mapped_column(String(64), nullable=False, comment="Key into the static achievement catalog")
    # display fields are denormalised from the catalog at creation time
    achievement_name: Mapped[str] = mapped_column(String(128), nullable=False)
    achievement_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    achievement_icon: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    target: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_unlocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    unlocked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<CustomerAchievement customer='{self.customer_id}' centro='{self.centro_id}' "
            f"type='{self.achievement_type}' progress={self.progress}/{self.target} unlocked={self.is_unlocked}>"
        )


class GamificationStats(Base):
    """XP, level and streak counters for a customer at one centro."""

    __tablename__ = "customer_gamification_stats"
    __table_args__ = (
        UniqueConstraint("customer_id", "centro_id", name="uq_customer_gamification_stats"),
        CheckConstraint("longest_streak >= current_streak", name="ck_gamification_longest_streak"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    centro_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1", comment="Cached from total_xp")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_sync_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    total_syncs: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<GamificationStats customer='{self.customer_id}' centro='{self.centro_id}' "
            f"xp={self.total_xp} level={self.level} streak={self.current_streak}>"
        )
