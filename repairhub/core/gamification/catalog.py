# repairhub/core/gamification/catalog.py

"""
Static achievement and level tables.

Achievement ``type`` keys are referenced by rows in ``customer_achievements``;
once shipped they must never be renamed.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import FrozenSet, Mapping, Tuple


@dataclass(frozen=True)
class AchievementDefinition:
    type: str
    name: str
    description: str
    icon: str
    target: int
    xp_reward: int


@dataclass(frozen=True)
class LevelThreshold:
    level: int
    min_xp: int
    name: str


ACHIEVEMENT_DEFINITIONS: Tuple[AchievementDefinition, ...] = (
    AchievementDefinition("first_sync", "Primo Check-up", "Completa la prima sincronizzazione", "🎯", 1, 50),
    AchievementDefinition("sync_streak_3", "Costante", "3 giorni consecutivi di sync", "🔥", 3, 75),
    AchievementDefinition("sync_streak_7", "Settimana Perfetta", "7 giorni consecutivi di sync", "⭐", 7, 150),
    AchievementDefinition("sync_streak_30", "Maratoneta", "30 giorni consecutivi di sync", "🏆", 30, 500),
    AchievementDefinition("health_master", "Dispositivo Sano", "Mantieni health score > 80% per 7 giorni", "💚", 7, 200),
    AchievementDefinition("battery_champion", "Campione Batteria", "Mai sotto 20% per una settimana", "🔋", 7, 100),
    AchievementDefinition("storage_cleaner", "Pulizia Esperta", "Libera 2GB di spazio", "🧹", 2, 75),
    AchievementDefinition("loyal_customer", "Cliente Fedele", "3 riparazioni completate", "🎖️", 3, 300),
    AchievementDefinition("total_syncs_10", "Monitoraggio Regolare", "10 sincronizzazioni totali", "📊", 10, 100),
    AchievementDefinition("total_syncs_50", "Utente Esperto", "50 sincronizzazioni totali", "🌟", 50, 250),
)

ACHIEVEMENTS_BY_TYPE: Mapping[str, AchievementDefinition] = MappingProxyType(
    {definition.type: definition for definition in ACHIEVEMENT_DEFINITIONS}
)

LEVEL_THRESHOLDS: Tuple[LevelThreshold, ...] = (
    LevelThreshold(1, 0, "Novizio"),
    LevelThreshold(2, 100, "Apprendista"),
    LevelThreshold(3, 250, "Esploratore"),
    LevelThreshold(4, 500, "Praticante"),
    LevelThreshold(5, 800, "Esperto"),
    LevelThreshold(6, 1200, "Veterano"),
    LevelThreshold(7, 1800, "Maestro"),
    LevelThreshold(8, 2500, "Campione"),
    LevelThreshold(9, 3500, "Leggenda"),
    LevelThreshold(10, 5000, "Eroe"),
)

# Milestones checked after every sync, in the order they are applied.
FIRST_SYNC = "first_sync"
STREAK_MILESTONES: Tuple[Tuple[int, str], ...] = (
    (3, "sync_streak_3"),
    (7, "sync_streak_7"),
    (30, "sync_streak_30"),
)
TOTAL_SYNC_MILESTONES: Tuple[Tuple[int, str], ...] = (
    (10, "total_syncs_10"),
    (50, "total_syncs_50"),
)
# Only ever advanced by the sync recorder, never by a direct progress report.
SYNC_DRIVEN_TYPES: FrozenSet[str] = frozenset(
    (FIRST_SYNC,)
    + tuple(t for _, t in STREAK_MILESTONES)
    + tuple(t for _, t in TOTAL_SYNC_MILESTONES)
)

if len(ACHIEVEMENTS_BY_TYPE) != len(ACHIEVEMENT_DEFINITIONS):  # pragma: no cover
    raise RuntimeError("Duplicate achievement type in catalog")
