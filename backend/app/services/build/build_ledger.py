"""
Build Ledger Service

Per-(user, blueprint) progress ledger.

Core Principles:
1. Every mutation writes exactly one BuildEventDB row.
2. Build events are append-only - no updates or deletes.
3. Progress rows hold 0 <= points_applied <= cost, with completed_at set
   iff the segment is full.
4. Each mutation runs in a SAVEPOINT. Progress rows and the event are
   released together or rolled back together; the caller's own pending
   work in the session is never rolled back. A successful mutation
   commits the session.

Allocation distributes points across incomplete segments in blueprint
order. Points beyond the remaining capacity are dropped.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.blueprint import Blueprint, load_blueprint
from ...models.db_models import (
    BuildEventDB,
    BuildSourceType,
    UserDB,
    UserProjectDB,
    UserProjectProgressDB,
    utcnow,
)
from ..dedupe import allocation_dedupe_key, is_dedupe_violation
from .allocation import SegmentAllocation, plan_allocation, summarize_progress
from .build_policy import activity_dedupe_key, points_for_activity


logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    """Outcome of BuildLedgerService.apply_points."""
    applied: bool
    deduped: bool = False
    reason: Optional[str] = None
    allocations: List[SegmentAllocation] = field(default_factory=list)
    remaining_points: int = 0
    summary: Optional[Dict[str, Any]] = None
    event_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "applied": self.applied,
            "deduped": self.deduped,
            "reason": self.reason,
            "allocations": [a.to_dict() for a in self.allocations],
            "remaining_points": self.remaining_points,
            "summary": self.summary,
            "event_id": self.event_id,
        }


class BuildLedgerService:
    """
    Reads and writes the build ledger for one database session.

    Also provides the project/progress/event primitives the dragon
    engines build their transactions from.
    """

    def __init__(self, db: Session, blueprint: Optional[Blueprint] = None):
        self.db = db
        self.blueprint = blueprint or load_blueprint()

    # =========================================================================
    # PROJECT LIFECYCLE
    # =========================================================================

    def _find_user(self, user_id: str) -> Optional[UserDB]:
        return self.db.get(UserDB, user_id)

    def _find_project(self, user_id: str) -> Optional[UserProjectDB]:
        return self.db.query(UserProjectDB).filter(
            UserProjectDB.user_id == user_id,
            UserProjectDB.blueprint_id == self.blueprint.id,
        ).first()

    def ensure_user(self, user_id: str) -> UserDB:
        """Get or create the user row. A concurrent first insert wins."""
        user = self._find_user(user_id)
        if user is not None:
            return user
        try:
            with self.db.begin_nested():
                user = UserDB(id=user_id)
                self.db.add(user)
                self.db.flush()
        except IntegrityError:
            user = self._find_user(user_id)
            if user is None:
                raise
            logger.info(f"User {user_id} created concurrently; using existing row")
        return user

    def ensure_project(self, user_id: str) -> UserProjectDB:
        """
        Get or lazily create the user's project for the current blueprint.

        The insert runs in its own SAVEPOINT. If a concurrent request
        created the project first, the unique (user, blueprint) constraint
        rejects this insert and the winner's row is returned.
        """
        self.ensure_user(user_id)
        project = self._find_project(user_id)
        if project is not None:
            return project
        try:
            with self.db.begin_nested():
                project = UserProjectDB(
                    id=str(uuid4()),
                    user_id=user_id,
                    blueprint_id=self.blueprint.id,
                    active=True,
                )
                self.db.add(project)
                self.db.flush()
        except IntegrityError:
            project = self._find_project(user_id)
            if project is None:
                raise
            logger.info(f"Build project for user {user_id} created concurrently; using {project.id}")
            return project
        logger.info(f"Created build project {project.id} for user {user_id}")
        return project

    def get_active_project(self, user_id: str) -> Optional[UserProjectDB]:
        """Active project for the current blueprint. Never creates one."""
        return self.db.query(UserProjectDB).filter(
            UserProjectDB.user_id == user_id,
            UserProjectDB.blueprint_id == self.blueprint.id,
            UserProjectDB.active.is_(True),
        ).first()

    def load_progress(self, project: UserProjectDB) -> Dict[str, UserProjectProgressDB]:
        """
        Progress rows of a project keyed by segment.

        Rows are locked FOR UPDATE until the transaction ends (a no-op on
        SQLite, which serializes writers anyway).
        """
        rows = self.db.query(UserProjectProgressDB).filter(
            UserProjectProgressDB.user_project_id == project.id,
        ).with_for_update().all()
        return {row.segment_key: row for row in rows}

    def event_exists(self, dedupe_key: str) -> bool:
        return self.db.query(BuildEventDB.id).filter(
            BuildEventDB.dedupe_key == dedupe_key,
        ).first() is not None

    # =========================================================================
    # EVENT LOG
    # =========================================================================

    def emit_event(
        self,
        project: UserProjectDB,
        points: int,
        source_type: Optional[str],
        allocations: List[SegmentAllocation],
        source_id: Optional[str] = None,
        dedupe_key: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BuildEventDB:
        """
        Append one build event.

        Flushes so a duplicate dedupe_key fails here, inside the caller's
        SAVEPOINT, rather than at commit.
        """
        event = BuildEventDB(
            id=str(uuid4()),
            user_project_id=project.id,
            user_id=project.user_id,
            blueprint_id=project.blueprint_id,
            points=points,
            source_type=source_type,
            source_id=source_id,
            dedupe_key=dedupe_key,
            allocations=[a.to_dict() for a in allocations],
            notes=notes,
            created_at=utcnow(),
        )
        self.db.add(event)
        self.db.flush()
        return event

    def list_events(self, user_id: str, limit: int = 50) -> List[BuildEventDB]:
        """Most recent build events for a user, newest first."""
        return self.db.query(BuildEventDB).filter(
            BuildEventDB.user_id == user_id,
        ).order_by(BuildEventDB.created_at.desc()).limit(limit).all()

    # =========================================================================
    # ALLOCATION
    # =========================================================================

    def apply_points(
        self,
        user_id: str,
        points: int,
        source_type: Optional[str] = BuildSourceType.ALLOCATION.value,
        source_id: Optional[str] = None,
        dedupe_key: Optional[str] = None,
    ) -> AllocationResult:
        """
        Distribute points across incomplete segments in blueprint order.

        Args:
            user_id: Owner of the project (created on first use)
            points: Positive number of points to allocate
            source_type: What earned the points (task, phone_block, ...)
            source_id: Optional id of the source record
            dedupe_key: Optional caller key, scoped to user_id before it is
                stored; a repeat call with the same key is a no-op

        Returns:
            AllocationResult. points <= 0 returns reason="no_points" without
            writing anything; a repeated dedupe_key returns deduped=True.
        """
        if not points or points <= 0:
            return AllocationResult(applied=False, reason="no_points")

        scoped_key = allocation_dedupe_key(user_id, dedupe_key) if dedupe_key else None

        try:
            with self.db.begin_nested():
                if scoped_key and self.event_exists(scoped_key):
                    logger.info(f"Allocation already applied for dedupe key {scoped_key}")
                    return AllocationResult(applied=False, deduped=True)
                plan, current, event_id = self._allocate(
                    user_id, points, source_type, source_id, scoped_key,
                )
        except IntegrityError as e:
            if not is_dedupe_violation(e):
                raise
            logger.warning(f"Allocation rejected by dedupe constraint: {scoped_key}")
            return AllocationResult(applied=False, deduped=True)

        self.db.commit()

        if plan.remaining_points > 0:
            logger.info(
                f"Dropped {plan.remaining_points} of {points} points for user {user_id}: "
                f"blueprint capacity exhausted"
            )
        logger.info(
            f"Applied {plan.applied_points} build points for user {user_id} "
            f"across {len(plan.allocations)} segment(s)"
        )

        return AllocationResult(
            applied=True,
            allocations=plan.allocations,
            remaining_points=plan.remaining_points,
            summary=summarize_progress(self.blueprint.segments, current),
            event_id=event_id,
        )

    def _allocate(
        self,
        user_id: str,
        points: int,
        source_type: Optional[str],
        source_id: Optional[str],
        dedupe_key: Optional[str],
    ):
        """Write progress rows and the event. Runs inside apply_points' SAVEPOINT."""
        project = self.ensure_project(user_id)
        progress = self.load_progress(project)
        current = {key: row.points_applied for key, row in progress.items()}

        plan = plan_allocation(self.blueprint.segments, current, points)
        now = utcnow()

        for alloc in plan.allocations:
            row = progress.get(alloc.segment_key)
            if row is None:
                row = UserProjectProgressDB(
                    id=str(uuid4()),
                    user_project_id=project.id,
                    blueprint_id=project.blueprint_id,
                    segment_key=alloc.segment_key,
                    points_applied=0,
                )
                self.db.add(row)
                progress[alloc.segment_key] = row
            row.points_applied = alloc.total
            if alloc.completed and row.completed_at is None:
                row.completed_at = now
            current[alloc.segment_key] = alloc.total

        event = self.emit_event(
            project,
            points=plan.applied_points,
            source_type=source_type,
            allocations=plan.allocations,
            source_id=source_id,
            dedupe_key=dedupe_key,
        )
        return plan, current, event.id

    def apply_activity_points(
        self,
        user_id: str,
        activity: str,
        source_id: str,
        duration_min: Optional[float] = None,
        xp_earned: float = 0,
        completed: bool = False,
    ) -> AllocationResult:
        """
        Size an allocation with the build point policy and apply it once
        per (activity, source_id).

        Raises:
            ValueError: Unknown activity
        """
        points = points_for_activity(
            activity,
            duration_min=duration_min,
            xp_earned=xp_earned,
            completed=completed,
        )
        return self.apply_points(
            user_id=user_id,
            points=points,
            source_type=activity,
            source_id=source_id,
            dedupe_key=activity_dedupe_key(activity, source_id),
        )

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_status(self, user_id: str) -> Dict[str, Any]:
        """
        Blueprint, per-segment progress and completion summary.

        Creates the project on first call, like apply_points.
        """
        project = self.ensure_project(user_id)
        self.db.commit()

        rows = self.db.query(UserProjectProgressDB).filter(
            UserProjectProgressDB.user_project_id == project.id,
        ).all()
        by_key = {row.segment_key: row for row in rows}

        per_segment = []
        current = {}
        for seg in self.blueprint.segments:
            row = by_key.get(seg.key)
            applied = min(row.points_applied, seg.cost) if row else 0
            current[seg.key] = applied
            per_segment.append({
                "segment_key": seg.key,
                "label": seg.label,
                "phase": seg.phase,
                "order": seg.order,
                "cost": seg.cost,
                "points_applied": applied,
                "completed": applied >= seg.cost,
                "completed_at": row.completed_at.isoformat() if row and row.completed_at else None,
            })

        summary = summarize_progress(self.blueprint.segments, current)
        return {
            "blueprint": self.blueprint.to_dict(),
            "project": {
                "id": project.id,
                "blueprint_id": project.blueprint_id,
                "active": project.active,
            },
            "per_segment_progress": per_segment,
            **summary,
        }
