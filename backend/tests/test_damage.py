"""Tests for dragon damage formulas and severity tiers."""
import pytest

from app.services.dragon.damage import (
    calculate_streak_break_damage,
    calculate_truth_mismatch_damage,
    calculate_usage_violation_damage,
    compute_severity,
    lie_multiplier,
)


class TestUsageViolationDamage:

    def test_half_limit_overage(self):
        # 60 x min(3, 0.5) x (1 + 0.5)
        assert calculate_usage_violation_damage(60, 120, 1) == 45

    def test_overage_multiplier_capped(self):
        # 100 x 3 x (1 + 0.5)
        assert calculate_usage_violation_damage(100, 10, 1) == 450

    def test_escalates_with_consecutive_days(self):
        # 60 x 0.5 x (1 + 1.5)
        assert calculate_usage_violation_damage(60, 120, 3) == 75

    def test_result_floored(self):
        # 7 x (7/30) x 1.5 = 2.45
        assert calculate_usage_violation_damage(7, 30, 1) == 2

    def test_zero_limit_uses_max_multiplier(self):
        assert calculate_usage_violation_damage(10, 0, 1) == 45

    @pytest.mark.parametrize("overage", [0, -5])
    def test_no_overage_no_damage(self, overage):
        assert calculate_usage_violation_damage(overage, 120, 1) == 0


class TestTruthMismatchDamage:

    def test_documented_example(self):
        """45 min lie on the second consecutive day -> 450."""
        assert calculate_truth_mismatch_damage(45, 2) == 450

    @pytest.mark.parametrize("delta,expected", [
        (10, 1),
        (30, 1),
        (31, 2),
        (60, 2),
        (61, 3),
    ])
    def test_lie_multiplier_thresholds(self, delta, expected):
        assert lie_multiplier(delta) == expected

    def test_small_lie(self):
        # 20 x 1 x 1.75 x 2
        assert calculate_truth_mismatch_damage(20, 1) == 70

    def test_no_delta_no_damage(self):
        assert calculate_truth_mismatch_damage(0, 3) == 0


class TestStreakBreakDamage:

    def test_fifty_per_day(self):
        assert calculate_streak_break_damage(3) == 150

    def test_capped(self):
        assert calculate_streak_break_damage(40) == 1000

    def test_no_streak_no_damage(self):
        assert calculate_streak_break_damage(0) == 0


class TestSeverity:

    @pytest.mark.parametrize("damage,expected", [
        (1, 1),
        (200, 1),
        (201, 2),
        (450, 3),
        (1000, 5),
        (5000, 5),
    ])
    def test_tiers(self, damage, expected):
        assert compute_severity(damage) == expected
