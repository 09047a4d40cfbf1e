"""
Consecutive-Day Calculator

Counts the unbroken run of days, ending at a given date, on which a
trigger fact was recorded. Feeds the escalation term of the damage formulas.

- Scans at most MAX_LOOKBACK_DAYS days (the given date included)
- Stops at the first day with no matching record
- Never returns less than 1: the triggering day counts even when its own
  fact row has not been written yet
"""
from datetime import date, timedelta
from typing import Set

from sqlalchemy.orm import Session

from ...models.db_models import (
    DragonTriggerType,
    StreakHistoryDB,
    TruthViolationDB,
    UsageViolationDB,
)


MAX_LOOKBACK_DAYS = 30


class ConsecutiveDayCalculator:
    """Severity lookback over the read-only trigger fact tables."""

    def __init__(self, db: Session, max_lookback_days: int = MAX_LOOKBACK_DAYS):
        self.db = db
        self.max_lookback_days = max_lookback_days

    def count(self, user_id: str, day: date, trigger_type: DragonTriggerType) -> int:
        """
        Consecutive matching days ending at `day`.

        Args:
            user_id: User whose facts are scanned
            day: Triggering calendar day
            trigger_type: Which fact table to consult

        Returns:
            1..max_lookback_days
        """
        start = day - timedelta(days=self.max_lookback_days - 1)
        days_with_facts = self._fact_days(user_id, trigger_type, start, day)

        count = 0
        for offset in range(self.max_lookback_days):
            if day - timedelta(days=offset) not in days_with_facts:
                break
            count += 1

        return max(1, count)

    def _fact_days(
        self,
        user_id: str,
        trigger_type: DragonTriggerType,
        start: date,
        end: date,
    ) -> Set[date]:
        """Distinct days in [start, end] carrying a fact for the trigger."""
        if trigger_type == DragonTriggerType.VIOLATION:
            query = self.db.query(UsageViolationDB.date).filter(
                UsageViolationDB.user_id == user_id,
                UsageViolationDB.date >= start,
                UsageViolationDB.date <= end,
            )
        elif trigger_type == DragonTriggerType.TRUTH_MISMATCH:
            query = self.db.query(TruthViolationDB.date).filter(
                TruthViolationDB.user_id == user_id,
                TruthViolationDB.date >= start,
                TruthViolationDB.date <= end,
            )
        elif trigger_type == DragonTriggerType.STREAK_BREAK:
            query = self.db.query(StreakHistoryDB.date).filter(
                StreakHistoryDB.user_id == user_id,
                StreakHistoryDB.broken.is_(True),
                StreakHistoryDB.date >= start,
                StreakHistoryDB.date <= end,
            )
        else:
            raise ValueError(f"Unknown trigger type: {trigger_type}")

        return {row[0] for row in query.all()}
