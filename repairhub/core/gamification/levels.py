# repairhub/core/gamification/levels.py

from __future__ import annotations

from sqlalchemy import case
from sqlalchemy.sql.elements import ColumnElement

from .catalog import LEVEL_THRESHOLDS
from .schemas import LevelInfo


def _threshold_index(xp: int) -> int:
    for i in range(len(LEVEL_THRESHOLDS) - 1, -1, -1):
        if xp >= LEVEL_THRESHOLDS[i].min_xp:
            return i
    return 0


def level_for_xp(xp: int) -> int:
    """Level number for a total XP value."""
    return LEVEL_THRESHOLDS[_threshold_index(max(xp, 0))].level


def level_info(xp: int) -> LevelInfo:
    """
    Level, level name and progress towards the next level for ``xp``.

    At the highest defined level ``xp_to_next`` is 0 and the progress is 100%.
    Negative XP is treated as 0.
    """
    xp = max(xp, 0)
    index = _threshold_index(xp)
    current = LEVEL_THRESHOLDS[index]
    following = LEVEL_THRESHOLDS[index + 1] if index + 1 < len(LEVEL_THRESHOLDS) else current

    xp_in_level = xp - current.min_xp
    xp_to_next = following.min_xp - current.min_xp
    if xp_to_next > 0:
        progress = min(max(100.0 * xp_in_level / xp_to_next, 0.0), 100.0)
    else:
        progress = 100.0

    return LevelInfo(
        level=current.level,
        name=current.name,
        xp=xp,
        xp_in_level=xp_in_level,
        xp_to_next=xp_to_next,
        progress_percent=progress,
        next_level_name=following.name,
    )


def level_case(xp_expr: ColumnElement[int]) -> ColumnElement[int]:
    """SQL ``CASE`` computing the level for ``xp_expr`` server-side."""
    whens = [
        (xp_expr >= threshold.min_xp, threshold.level)
        for threshold in reversed(LEVEL_THRESHOLDS[1:])
    ]
    return case(*whens, else_=LEVEL_THRESHOLDS[0].level)
