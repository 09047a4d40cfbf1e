"""Tests for build point policy helpers."""
import pytest

from app.services.build.build_policy import (
    activity_dedupe_key,
    points_for_activity,
    points_for_phone_block,
    points_for_task,
    points_for_urge,
)


class TestPointsForTask:

    def test_base_only(self):
        assert points_for_task(None, 0) == 20

    def test_duration_and_xp_bonus(self):
        # 20 + round(25/5) + round(50/5)
        assert points_for_task(25, 50) == 35

    def test_bonuses_round_half_up(self):
        # 12.5/5 = 2.5 -> 3 ; 7.5 -> xp 37.5/5 = 7.5 -> 8
        assert points_for_task(12.5, 37.5) == 20 + 3 + 8

    def test_negative_xp_ignored(self):
        assert points_for_task(None, -100) == 20


class TestPointsForUrge:

    def test_resisted(self):
        assert points_for_urge() == 12

    def test_resisted_with_micro_task(self):
        assert points_for_urge(completed=True) == 18


class TestPointsForPhoneBlock:

    def test_one_point_per_minute(self):
        assert points_for_phone_block(45) == 45

    def test_capped(self):
        assert points_for_phone_block(600) == 240

    def test_minimum_one(self):
        assert points_for_phone_block(0) == 1


class TestPointsForActivity:

    def test_dispatches_by_activity(self):
        assert points_for_activity("task", duration_min=25, xp_earned=50) == 35
        assert points_for_activity("urge", completed=True) == 18
        assert points_for_activity("phone_block", duration_min=45) == 45

    def test_phone_block_without_duration(self):
        assert points_for_activity("phone_block") == 1

    def test_unknown_activity(self):
        with pytest.raises(ValueError):
            points_for_activity("meditation")

    def test_dedupe_key(self):
        assert activity_dedupe_key("phone_block", "blk-1") == "phone_block:blk-1:build"
