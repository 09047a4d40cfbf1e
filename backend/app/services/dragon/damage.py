"""
Dragon damage formulas.

All results are integers, floored. Non-positive inputs produce 0 damage,
which the attack engine treats as "nothing to apply".
"""
import math


SEVERITY_STEP = 200  # Damage per severity tier
SEVERITY_MAX = 5
STREAK_DAMAGE_PER_DAY = 50
STREAK_DAMAGE_CAP = 1000
OVERAGE_MULTIPLIER_CAP = 3


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def compute_severity(damage: int) -> int:
    """Display-only tier: ceil(damage / 200) clamped to 1..5."""
    return clamp(math.ceil(damage / SEVERITY_STEP), 1, SEVERITY_MAX)


def calculate_usage_violation_damage(
    overage_min: int,
    daily_limit_min: int,
    consecutive_days: int,
) -> int:
    """
    overage x min(3, overage / limit) x (1 + 0.5 x consecutive_days)

    A non-positive daily limit uses the maximum overage multiplier.
    """
    if overage_min <= 0:
        return 0
    if daily_limit_min > 0:
        overage_multiplier = min(OVERAGE_MULTIPLIER_CAP, overage_min / daily_limit_min)
    else:
        overage_multiplier = OVERAGE_MULTIPLIER_CAP
    consecutive_multiplier = 1 + consecutive_days * 0.5
    return math.floor(overage_min * overage_multiplier * consecutive_multiplier)


def lie_multiplier(delta_min: int) -> int:
    if delta_min > 60:
        return 3
    if delta_min > 30:
        return 2
    return 1


def calculate_truth_mismatch_damage(delta_min: int, consecutive_days: int) -> int:
    """delta x lie_multiplier x (1 + 0.75 x consecutive_days) x 2"""
    if delta_min <= 0:
        return 0
    consecutive_multiplier = 1 + consecutive_days * 0.75
    return math.floor(delta_min * lie_multiplier(delta_min) * consecutive_multiplier * 2)


def calculate_streak_break_damage(previous_streak_days: int) -> int:
    """50 per lost streak day, capped at 1000."""
    if previous_streak_days <= 0:
        return 0
    return min(STREAK_DAMAGE_CAP, previous_streak_days * STREAK_DAMAGE_PER_DAY)
