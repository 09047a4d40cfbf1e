"""
Dragon Repair Engine

Restores points for fully compliant ("perfect") days.

For each of the trailing REPAIR_WINDOW_DAYS days, independently:
- Skip unless the day is perfect
- Skip if the day was already repaired (dedupe key repair|user|day)
- Add up to REPAIR_POINTS to the segment with the largest deficit
- Write one positive BuildEventDB row carrying the dedupe key

Each day's repair runs in its own SAVEPOINT, so a rejected or skipped
day never discards other work pending in the session.

A perfect day has no usage violation, no truth violation, an intact
streak-history entry (not broken, under limit, zero violations) and, when
the user has iPhone verification enabled, a truth check with status match.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.blueprint import Blueprint
from ...models.db_models import (
    BuildSourceType,
    IosScreenTimeConnectionDB,
    StreakHistoryDB,
    TruthCheckDailyDB,
    TruthCheckStatus,
    TruthViolationDB,
    UsageViolationDB,
    UserProjectProgressDB,
    utcnow,
)
from ..build.allocation import SegmentAllocation
from ..build.build_ledger import BuildLedgerService
from ..dedupe import is_dedupe_violation, repair_dedupe_key
from .targeting import build_snapshots, select_repair_target


logger = logging.getLogger(__name__)


REPAIR_POINTS = 50
REPAIR_WINDOW_DAYS = 7


@dataclass
class RepairResult:
    """Outcome of one day's repair attempt."""
    day: date
    applied: bool
    deduped: bool = False
    reason: Optional[str] = None
    points_applied: Optional[int] = None
    segment_key: Optional[str] = None
    segment_label: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "date": self.day.isoformat(),
            "applied": self.applied,
            "deduped": self.deduped,
            "reason": self.reason,
            "points_applied": self.points_applied,
            "segment_key": self.segment_key,
            "segment_label": self.segment_label,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class DragonRepairEngine:
    """Perfect-day detection and automatic repairs."""

    def __init__(
        self,
        db: Session,
        blueprint: Optional[Blueprint] = None,
        repair_points: int = REPAIR_POINTS,
        window_days: int = REPAIR_WINDOW_DAYS,
    ):
        self.db = db
        self.ledger = BuildLedgerService(db, blueprint)
        self.blueprint = self.ledger.blueprint
        self.repair_points = repair_points
        self.window_days = window_days

    # =========================================================================
    # PERFECT DAY
    # =========================================================================

    def ios_verification_enabled(self, user_id: str) -> bool:
        connection = self.db.get(IosScreenTimeConnectionDB, user_id)
        return bool(connection and connection.enabled)

    def is_perfect_day(self, user_id: str, day: date, ios_verification_enabled: bool) -> bool:
        usage_violation = self.db.query(UsageViolationDB.id).filter(
            UsageViolationDB.user_id == user_id,
            UsageViolationDB.date == day,
        ).first()
        if usage_violation is not None:
            return False

        truth_violation = self.db.query(TruthViolationDB.id).filter(
            TruthViolationDB.user_id == user_id,
            TruthViolationDB.date == day,
        ).first()
        if truth_violation is not None:
            return False

        streak = self.db.query(StreakHistoryDB).filter(
            StreakHistoryDB.user_id == user_id,
            StreakHistoryDB.date == day,
        ).first()
        if streak is None or streak.broken or not streak.under_limit or (streak.violation_count or 0) > 0:
            return False

        if ios_verification_enabled:
            truth_check = self.db.query(TruthCheckDailyDB).filter(
                TruthCheckDailyDB.user_id == user_id,
                TruthCheckDailyDB.date == day,
            ).first()
            if truth_check is None or truth_check.status != TruthCheckStatus.MATCH:
                return False

        return True

    # =========================================================================
    # REPAIRS
    # =========================================================================

    def apply_repair_for_date(
        self,
        user_id: str,
        day: date,
        ios_verification_enabled: bool,
    ) -> RepairResult:
        """
        Repair the most damaged segment for one perfect day.

        Returns:
            RepairResult. Reasons: not_perfect, no_project, no_damage.
        """
        dedupe_key = repair_dedupe_key(user_id, day)

        try:
            with self.db.begin_nested():
                result = self._repair_in_savepoint(user_id, day, ios_verification_enabled, dedupe_key)
        except IntegrityError as e:
            if not is_dedupe_violation(e):
                raise
            logger.warning(f"Dragon repair rejected by dedupe constraint: {dedupe_key}")
            return RepairResult(day=day, applied=False, deduped=True)

        if not result.applied:
            return result

        self.db.commit()
        logger.info(
            f"Dragon repair restored {result.segment_key} for user {user_id}: "
            f"+{result.points_applied} (perfect day {day.isoformat()})"
        )
        return result

    def _repair_in_savepoint(
        self,
        user_id: str,
        day: date,
        ios_verification_enabled: bool,
        dedupe_key: str,
    ) -> RepairResult:
        if not self.is_perfect_day(user_id, day, ios_verification_enabled):
            return RepairResult(day=day, applied=False, reason="not_perfect")

        if self.ledger.event_exists(dedupe_key):
            return RepairResult(day=day, applied=False, deduped=True)

        project = self.ledger.get_active_project(user_id)
        if project is None:
            return RepairResult(day=day, applied=False, reason="no_project")

        progress = self.ledger.load_progress(project)
        target = select_repair_target(build_snapshots(self.blueprint, progress.values()))
        if target is None:
            return RepairResult(day=day, applied=False, reason="no_damage")

        points_applied = min(self.repair_points, target.deficit)
        new_points = target.points_applied + points_applied
        now = utcnow()

        row: UserProjectProgressDB = progress[target.segment_key]
        row.points_applied = new_points
        if new_points >= target.cost and row.completed_at is None:
            row.completed_at = now

        self.ledger.emit_event(
            project,
            points=points_applied,
            source_type=BuildSourceType.DRAGON_REPAIR.value,
            dedupe_key=dedupe_key,
            allocations=[SegmentAllocation(
                segment_key=target.segment_key,
                applied=points_applied,
                total=new_points,
                completed=new_points >= target.cost,
                cost=target.cost,
            )],
            notes=f"Cathedral Restoration: +{points_applied} (perfect day {day.isoformat()})",
        )

        return RepairResult(
            day=day,
            applied=True,
            points_applied=points_applied,
            segment_key=target.segment_key,
            segment_label=target.label,
            created_at=now,
        )

    def apply_auto_repairs(self, user_id: str, day: date) -> List[RepairResult]:
        """
        Evaluate `day` and the days before it, one result per day, newest first.
        """
        ios_enabled = self.ios_verification_enabled(user_id)
        return [
            self.apply_repair_for_date(user_id, day - timedelta(days=offset), ios_enabled)
            for offset in range(self.window_days)
        ]
