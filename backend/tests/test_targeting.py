"""Tests for attack and repair target selection."""
from datetime import datetime

from app.services.dragon.targeting import (
    SegmentSnapshot,
    select_attack_target,
    select_repair_target,
)


def snap(key, order, cost, points, completed_at=None, updated_at=None):
    return SegmentSnapshot(
        progress_id=f"p-{key}",
        segment_key=key,
        label=key.title(),
        cost=cost,
        order=order,
        points_applied=points,
        completed_at=completed_at,
        updated_at=updated_at,
    )


class TestSelectAttackTarget:

    def test_most_recently_completed(self):
        snapshots = [
            snap("a", 1, 100, 100, completed_at=datetime(2026, 3, 1)),
            snap("b", 2, 100, 100, completed_at=datetime(2026, 3, 5)),
            snap("c", 3, 100, 40),
        ]

        assert select_attack_target(snapshots).segment_key == "b"

    def test_completed_tie_prefers_lower_order(self):
        stamp = datetime(2026, 3, 5)
        snapshots = [
            snap("b", 2, 100, 100, completed_at=stamp),
            snap("a", 1, 100, 100, completed_at=stamp),
        ]

        assert select_attack_target(snapshots).segment_key == "a"

    def test_unstamped_completed_ranked_by_update(self):
        snapshots = [
            snap("a", 1, 100, 100, updated_at=datetime(2026, 3, 5)),
            snap("b", 2, 100, 100, updated_at=datetime(2026, 3, 1)),
        ]

        assert select_attack_target(snapshots).segment_key == "a"

    def test_missing_completed_at_falls_back_to_updated_at(self):
        """A completed row without completed_at competes on its updated_at."""
        snapshots = [
            snap("a", 1, 100, 100, updated_at=datetime(2026, 3, 1)),
            snap("b", 2, 100, 100, completed_at=datetime(2026, 2, 1)),
        ]

        assert select_attack_target(snapshots).segment_key == "a"

    def test_completed_at_preferred_over_updated_at(self):
        snapshots = [
            snap("a", 1, 100, 100, completed_at=datetime(2026, 2, 1), updated_at=datetime(2026, 3, 9)),
            snap("b", 2, 100, 100, completed_at=datetime(2026, 3, 1), updated_at=datetime(2026, 3, 1)),
        ]

        assert select_attack_target(snapshots).segment_key == "b"

    def test_completed_beats_in_progress(self):
        snapshots = [
            snap("a", 1, 100, 100),
            snap("b", 2, 100, 60, updated_at=datetime(2026, 3, 9)),
        ]

        assert select_attack_target(snapshots).segment_key == "a"

    def test_falls_back_to_lowest_in_progress(self):
        snapshots = [
            snap("c", 3, 100, 10),
            snap("b", 2, 100, 60),
            snap("a", 1, 100, 0),
        ]

        assert select_attack_target(snapshots).segment_key == "b"

    def test_nothing_built(self):
        assert select_attack_target([snap("a", 1, 100, 0)]) is None
        assert select_attack_target([]) is None


class TestSelectRepairTarget:

    def test_largest_deficit(self):
        snapshots = [
            snap("a", 1, 100, 90),
            snap("b", 2, 200, 50),
            snap("c", 3, 100, 0),
        ]

        assert select_repair_target(snapshots).segment_key == "b"

    def test_tie_prefers_lower_order(self):
        snapshots = [
            snap("b", 2, 100, 70),
            snap("a", 1, 100, 70),
        ]

        assert select_repair_target(snapshots).segment_key == "a"

    def test_no_damage(self):
        assert select_repair_target([snap("a", 1, 100, 100)]) is None
        assert select_repair_target([]) is None

    def test_deficit_property(self):
        assert snap("a", 1, 100, 30).deficit == 70
        assert snap("a", 1, 100, 100).deficit == 0
        assert snap("a", 1, 100, 100).is_complete is True
