import pytest

from repairhub.core.gamification.catalog import ACHIEVEMENT_DEFINITIONS, ACHIEVEMENTS_BY_TYPE, LEVEL_THRESHOLDS
from repairhub.core.gamification.levels import level_for_xp, level_info


def test_level_thresholds_strictly_increasing():
    for lower, upper in zip(LEVEL_THRESHOLDS, LEVEL_THRESHOLDS[1:]):
        assert upper.level > lower.level
        assert upper.min_xp > lower.min_xp


def test_catalog_types_are_unique():
    assert len(ACHIEVEMENTS_BY_TYPE) == len(ACHIEVEMENT_DEFINITIONS) == 10
    assert ACHIEVEMENTS_BY_TYPE["first_sync"].target == 1
    assert ACHIEVEMENTS_BY_TYPE["first_sync"].xp_reward == 50


def test_level_info_at_zero():
    info = level_info(0)
    assert info.level == 1
    assert info.name == "Novizio"
    assert info.xp_in_level == 0
    assert info.xp_to_next == 100
    assert info.progress_percent == 0
    assert info.next_level_name == "Apprendista"


@pytest.mark.parametrize(
    "xp, level, xp_in_level, xp_to_next, progress",
    [
        (60, 1, 60, 100, 60.0),
        (100, 2, 0, 150, 0.0),
        (175, 2, 75, 150, 50.0),
        (4999, 9, 1499, 1500, pytest.approx(99.933, abs=1e-3)),
    ],
)
def test_level_info_inside_levels(xp, level, xp_in_level, xp_to_next, progress):
    info = level_info(xp)
    assert info.level == level
    assert info.xp_in_level == xp_in_level
    assert info.xp_to_next == xp_to_next
    assert info.progress_percent == progress


def test_level_info_at_max_level():
    info = level_info(7500)
    assert info.level == 10
    assert info.name == "Eroe"
    assert info.xp_to_next == 0
    assert info.progress_percent == 100
    assert info.next_level_name == "Eroe"


def test_negative_xp_is_clamped():
    info = level_info(-40)
    assert info.level == 1
    assert info.xp == 0
    assert info.progress_percent == 0


def test_level_is_monotonic_and_progress_bounded():
    previous = 0
    for xp in range(0, 6000, 7):
        info = level_info(xp)
        assert info.level >= previous
        assert 0 <= info.progress_percent <= 100
        assert level_for_xp(xp) == info.level
        previous = info.level
