"""
Dragon Attack Engine

Applies a fully resolved attack trigger to the build ledger.

The engine never decides whether an attack should happen - upstream
evaluators do. It only:
1. Derives the dedupe key (user|day|trigger)
2. Selects a target segment from the active project
3. Subtracts damage, never below zero
4. Writes one DragonAttackDB row and one negative BuildEventDB row

Steps 3 and 4 run in one SAVEPOINT and commit together. Outcomes that
write nothing leave the session untouched. A dedupe_key unique violation
rolls back only the SAVEPOINT; another call already applied this attack,
so it is reported as deduped=True.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.blueprint import Blueprint
from ...models.db_models import (
    BuildSourceType,
    DragonAttackDB,
    DragonTriggerType,
    utcnow,
)
from ..build.allocation import SegmentAllocation
from ..build.build_ledger import BuildLedgerService
from ..dedupe import attack_dedupe_key, is_dedupe_violation
from .damage import compute_severity
from .targeting import build_snapshots, select_attack_target


logger = logging.getLogger(__name__)


@dataclass
class AttackResult:
    """Outcome of a dragon attack. Non-applied outcomes carry a reason."""
    applied: bool
    deduped: bool = False
    reason: Optional[str] = None
    damage_applied: Optional[int] = None
    severity: Optional[int] = None
    consecutive_days: Optional[int] = None
    segment_key: Optional[str] = None
    segment_label: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "applied": self.applied,
            "deduped": self.deduped,
            "reason": self.reason,
            "damage_applied": self.damage_applied,
            "severity": self.severity,
            "consecutive_days": self.consecutive_days,
            "segment_key": self.segment_key,
            "segment_label": self.segment_label,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class DragonAttackEngine:
    """Generic apply step shared by every attack trigger."""

    def __init__(self, db: Session, blueprint: Optional[Blueprint] = None):
        self.db = db
        self.ledger = BuildLedgerService(db, blueprint)
        self.blueprint = self.ledger.blueprint

    def attack_exists(self, dedupe_key: str) -> bool:
        return self.db.query(DragonAttackDB.id).filter(
            DragonAttackDB.dedupe_key == dedupe_key,
        ).first() is not None

    def apply_attack(
        self,
        user_id: str,
        day: date,
        trigger_type: DragonTriggerType,
        requested_damage: int,
        consecutive_days: int,
        description: str,
    ) -> AttackResult:
        """
        Subtract damage from the selected segment of the user's active project.

        Args:
            user_id: Attacked user
            day: Calendar day of the trigger (part of the dedupe key)
            trigger_type: violation, truth_mismatch or streak_break
            requested_damage: Damage computed by the trigger formula
            consecutive_days: Lookback count used in the formula
            description: Human-readable reason, copied to the ledger note

        Returns:
            AttackResult. Reasons: no_damage, no_project, no_progress, no_points.
        """
        if requested_damage <= 0:
            return AttackResult(applied=False, reason="no_damage")

        dedupe_key = attack_dedupe_key(user_id, day, trigger_type.value)

        try:
            with self.db.begin_nested():
                result = self._apply_in_savepoint(
                    user_id, trigger_type, requested_damage, consecutive_days, description, dedupe_key,
                )
        except IntegrityError as e:
            if not is_dedupe_violation(e):
                raise
            logger.warning(f"Dragon attack rejected by dedupe constraint: {dedupe_key}")
            return AttackResult(applied=False, deduped=True)

        if not result.applied:
            return result

        self.db.commit()
        logger.info(
            f"Dragon attack ({trigger_type.value}) hit {result.segment_key} for user {user_id}: "
            f"-{result.damage_applied} (severity {result.severity}, day {consecutive_days})"
        )
        return result

    def _apply_in_savepoint(
        self,
        user_id: str,
        trigger_type: DragonTriggerType,
        requested_damage: int,
        consecutive_days: int,
        description: str,
        dedupe_key: str,
    ) -> AttackResult:
        if self.attack_exists(dedupe_key):
            logger.info(f"Dragon attack already applied: {dedupe_key}")
            return AttackResult(applied=False, deduped=True)

        project = self.ledger.get_active_project(user_id)
        if project is None:
            return AttackResult(applied=False, reason="no_project")

        progress = self.ledger.load_progress(project)
        target = select_attack_target(build_snapshots(self.blueprint, progress.values()))
        if target is None:
            return AttackResult(applied=False, reason="no_progress")

        available = max(0, min(target.points_applied, target.cost))
        damage_applied = min(requested_damage, available)
        if damage_applied <= 0:
            return AttackResult(applied=False, reason="no_points")

        new_points = target.points_applied - damage_applied
        row = progress[target.segment_key]
        row.points_applied = new_points
        if new_points < target.cost:
            row.completed_at = None

        severity = compute_severity(damage_applied)
        created_at = utcnow()
        attack = DragonAttackDB(
            id=str(uuid4()),
            user_id=user_id,
            user_project_id=project.id,
            blueprint_id=project.blueprint_id,
            segment_key=target.segment_key,
            trigger_type=trigger_type,
            damage_amount=damage_applied,
            severity=severity,
            consecutive_days=consecutive_days,
            description=description,
            dedupe_key=dedupe_key,
            created_at=created_at,
        )
        self.db.add(attack)
        self.db.flush()

        self.ledger.emit_event(
            project,
            points=-damage_applied,
            source_type=BuildSourceType.DRAGON_ATTACK.value,
            source_id=attack.id,
            allocations=[SegmentAllocation(
                segment_key=target.segment_key,
                applied=-damage_applied,
                total=new_points,
                completed=new_points >= target.cost,
                cost=target.cost,
            )],
            notes=f"Dragon attack: {description}",
        )

        return AttackResult(
            applied=True,
            damage_applied=damage_applied,
            severity=severity,
            consecutive_days=consecutive_days,
            segment_key=target.segment_key,
            segment_label=target.label,
            created_at=created_at,
        )
