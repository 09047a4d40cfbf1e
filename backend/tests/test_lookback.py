"""Tests for ConsecutiveDayCalculator."""
from datetime import timedelta

import pytest

from app.models.db_models import DragonTriggerType
from app.services.dragon.lookback import MAX_LOOKBACK_DAYS, ConsecutiveDayCalculator
from conftest import DAY, USER


@pytest.fixture
def lookback(db):
    return ConsecutiveDayCalculator(db)


class TestConsecutiveDays:

    def test_no_facts_counts_trigger_day(self, lookback):
        assert lookback.count(USER, DAY, DragonTriggerType.VIOLATION) == 1

    def test_counts_unbroken_run(self, lookback, facts):
        facts.run(facts.usage_violation, DAY, 4)

        assert lookback.count(USER, DAY, DragonTriggerType.VIOLATION) == 4

    def test_gap_stops_count(self, lookback, facts):
        facts.run(facts.usage_violation, DAY, 2)
        facts.run(facts.usage_violation, DAY - timedelta(days=3), 5)

        assert lookback.count(USER, DAY, DragonTriggerType.VIOLATION) == 2

    def test_missing_trigger_day_row(self, lookback, facts):
        """Facts on earlier days do not count when the run does not reach the trigger day."""
        facts.run(facts.usage_violation, DAY - timedelta(days=1), 3)

        assert lookback.count(USER, DAY, DragonTriggerType.VIOLATION) == 1

    def test_capped_at_window(self, lookback, facts):
        facts.run(facts.truth_violation, DAY, MAX_LOOKBACK_DAYS + 5)

        assert lookback.count(USER, DAY, DragonTriggerType.TRUTH_MISMATCH) == MAX_LOOKBACK_DAYS

    def test_streak_break_counts_only_broken_days(self, lookback, facts):
        facts.run(facts.streak, DAY, 3, broken=True)
        facts.streak(DAY - timedelta(days=3), broken=False)
        facts.streak(DAY - timedelta(days=4), broken=True)

        assert lookback.count(USER, DAY, DragonTriggerType.STREAK_BREAK) == 3

    def test_trigger_types_are_independent(self, lookback, facts):
        facts.run(facts.usage_violation, DAY, 3)

        assert lookback.count(USER, DAY, DragonTriggerType.TRUTH_MISMATCH) == 1

    def test_other_users_ignored(self, lookback, facts):
        facts.run(facts.usage_violation, DAY, 3, user_id="other-user")

        assert lookback.count(USER, DAY, DragonTriggerType.VIOLATION) == 1

    def test_custom_window(self, db, facts):
        facts.run(facts.usage_violation, DAY, 10)

        assert ConsecutiveDayCalculator(db, max_lookback_days=7).count(
            USER, DAY, DragonTriggerType.VIOLATION,
        ) == 7
