"""
Dragon Service

Entry point for upstream evaluators (usage violations, truth checks,
streak evaluation) and for the daily repair sweep.

AUTHORITY MODEL:
- Evaluators decide WHEN an attack or repair fires
- This service decides HOW MUCH and WHERE, and applies it exactly once

Callers must not fail their own operation on a not-applied result;
ledger mutation is best-effort relative to the action it accompanies.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from ...models.blueprint import Blueprint
from ...models.db_models import DragonTriggerType, UserProjectDB
from .attack_engine import AttackResult, DragonAttackEngine
from .damage import (
    calculate_streak_break_damage,
    calculate_truth_mismatch_damage,
    calculate_usage_violation_damage,
)
from .lookback import ConsecutiveDayCalculator
from .repair_engine import DragonRepairEngine, RepairResult


logger = logging.getLogger(__name__)

DayLike = Union[date, datetime]


def to_day(value: DayLike) -> date:
    """Calendar day of a date or datetime. Aware datetimes are taken in UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


class DragonService:
    """Dragon attacks and repairs against one database session."""

    def __init__(self, db: Session, blueprint: Optional[Blueprint] = None):
        self.db = db
        self.attack_engine = DragonAttackEngine(db, blueprint)
        self.repair_engine = DragonRepairEngine(db, self.attack_engine.blueprint)
        self.lookback = ConsecutiveDayCalculator(db)

    # =========================================================================
    # ATTACKS
    # =========================================================================

    def apply_usage_violation_attack(
        self,
        user_id: str,
        day: DayLike,
        overage_min: int,
        daily_limit_min: int,
    ) -> AttackResult:
        day = to_day(day)
        consecutive_days = self.lookback.count(user_id, day, DragonTriggerType.VIOLATION)
        requested_damage = calculate_usage_violation_damage(overage_min, daily_limit_min, consecutive_days)
        return self.attack_engine.apply_attack(
            user_id=user_id,
            day=day,
            trigger_type=DragonTriggerType.VIOLATION,
            requested_damage=requested_damage,
            consecutive_days=consecutive_days,
            description=f"{overage_min}min over limit (day {consecutive_days})",
        )

    def apply_truth_mismatch_attack(
        self,
        user_id: str,
        day: DayLike,
        reported_min: int,
        verified_min: int,
    ) -> AttackResult:
        day = to_day(day)
        delta_min = abs(reported_min - verified_min)
        consecutive_days = self.lookback.count(user_id, day, DragonTriggerType.TRUTH_MISMATCH)
        requested_damage = calculate_truth_mismatch_damage(delta_min, consecutive_days)
        return self.attack_engine.apply_attack(
            user_id=user_id,
            day=day,
            trigger_type=DragonTriggerType.TRUTH_MISMATCH,
            requested_damage=requested_damage,
            consecutive_days=consecutive_days,
            description=f"Reported {reported_min}min, actually {verified_min}min",
        )

    def apply_streak_break_attack(
        self,
        user_id: str,
        day: DayLike,
        previous_streak_days: int,
    ) -> AttackResult:
        day = to_day(day)
        consecutive_days = self.lookback.count(user_id, day, DragonTriggerType.STREAK_BREAK)
        requested_damage = calculate_streak_break_damage(previous_streak_days)
        return self.attack_engine.apply_attack(
            user_id=user_id,
            day=day,
            trigger_type=DragonTriggerType.STREAK_BREAK,
            requested_damage=requested_damage,
            consecutive_days=consecutive_days,
            description=f"Lost {previous_streak_days}-day streak",
        )

    # =========================================================================
    # REPAIRS
    # =========================================================================

    def apply_auto_repairs(self, user_id: str, day: DayLike) -> List[RepairResult]:
        """One RepairResult per day of the trailing week ending at `day`."""
        return self.repair_engine.apply_auto_repairs(user_id, to_day(day))

    def run_daily_repairs(self, target_date: Optional[DayLike] = None) -> Dict[str, Any]:
        """
        Apply auto-repairs for every user with an active project.

        AUTHORITY: SYSTEM - Called by the daily scheduler.
        Defaults to yesterday (UTC). A failure for one user is logged and
        the sweep continues with the next.
        """
        if target_date is None:
            target_date = datetime.now(timezone.utc).date() - timedelta(days=1)
        day = to_day(target_date)

        user_ids = [
            row[0] for row in self.db.query(UserProjectDB.user_id).filter(
                UserProjectDB.active.is_(True),
            ).distinct().order_by(UserProjectDB.user_id).all()
        ]

        results = []
        applied_total = 0
        failed = 0
        for user_id in user_ids:
            try:
                repairs = self.apply_auto_repairs(user_id, day)
            except Exception as e:
                # The sweep owns this session; clear a failed commit before the next user
                self.db.rollback()
                failed += 1
                logger.error(f"Dragon repair sweep failed for user {user_id}: {e}")
                results.append({"user_id": user_id, "repairs_applied": 0, "error": str(e)})
                continue
            repairs_applied = sum(1 for r in repairs if r.applied)
            applied_total += repairs_applied
            results.append({"user_id": user_id, "repairs_applied": repairs_applied})

        logger.info(
            f"Dragon repair sweep for {day.isoformat()}: {len(user_ids)} users, "
            f"{applied_total} repairs applied, {failed} failed"
        )

        return {
            "processed_users": len(user_ids),
            "applied_repairs": applied_total,
            "failed_users": failed,
            "target_date": day.isoformat(),
            "results": results,
        }
