# repairhub/core/gamification/__init__.py

"""
Customer gamification: streaks, XP, levels and achievements.

``from repairhub.core.gamification import AchievementsService``
"""

from .exceptions import GamificationError, StorageUnavailable, SyncConflict, UnknownAchievement  # noqa: F401
from .levels import level_info  # noqa: F401
from .service import AchievementsService  # noqa: F401

__all__: list[str] = [
    "AchievementsService",
    "GamificationError",
    "StorageUnavailable",
    "SyncConflict",
    "UnknownAchievement",
    "level_info",
]
