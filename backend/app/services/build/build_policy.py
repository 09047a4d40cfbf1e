"""
Build point policy.

How many build points a completed activity is worth.
BuildLedgerService.apply_activity_points (and POST /build/earn) size an
allocation with these and apply it once per activity.
"""
from typing import Optional

from ...models.db_models import BuildSourceType
from .allocation import round_half_up


TASK_BASE_POINTS = 20
URGE_BASE_POINTS = 12
URGE_COMPLETION_BONUS = 6
PHONE_BLOCK_MAX_POINTS = 240  # Cap for a single block


def points_for_task(duration_min: Optional[int], xp_earned: int) -> int:
    duration_bonus = round_half_up(duration_min / 5) if duration_min else 0
    xp_bonus = max(0, round_half_up(xp_earned / 5))
    return TASK_BASE_POINTS + duration_bonus + xp_bonus


def points_for_urge(completed: bool = False) -> int:
    """Resisting an urge, with a bonus when the micro-task was finished."""
    return URGE_BASE_POINTS + (URGE_COMPLETION_BONUS if completed else 0)


def points_for_phone_block(duration_min: int) -> int:
    """1 point per phone-free minute, at least 1, capped per block."""
    return max(1, min(duration_min, PHONE_BLOCK_MAX_POINTS))


def points_for_activity(
    activity: str,
    duration_min: Optional[float] = None,
    xp_earned: float = 0,
    completed: bool = False,
) -> int:
    """
    Points for a completed activity by source type.

    Raises:
        ValueError: activity is not task, urge or phone_block
    """
    if activity == BuildSourceType.TASK.value:
        return points_for_task(duration_min, xp_earned)
    if activity == BuildSourceType.URGE.value:
        return points_for_urge(completed)
    if activity == BuildSourceType.PHONE_BLOCK.value:
        return points_for_phone_block(duration_min or 0)
    raise ValueError(f"Unknown build activity: {activity}")


def activity_dedupe_key(activity: str, source_id: str) -> str:
    """One allocation per completed activity: <activity>:<source_id>:build"""
    return f"{activity}:{source_id}:build"
