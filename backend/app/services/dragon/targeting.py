"""
Target Selection

Pure functions over an in-memory snapshot of a project's segment progress.
Every ordering is an explicit sort with an order-index tie-break, so the
result never depends on database row order.

Attack target precedence:
1. Completed segment with the most recent completed_at (updated_at when
   completed_at is missing)
2. Partially built segment (0 < points < cost) with the lowest order

An "oldest completed" fallback can never be reached: any completed segment
is already picked by rule 1.

Repair target:
- Segment with the largest positive deficit (cost - points), lowest order on ties
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from ...models.blueprint import Blueprint
from ...models.db_models import UserProjectProgressDB


@dataclass(frozen=True)
class SegmentSnapshot:
    """Progress row joined with its blueprint segment."""
    progress_id: str
    segment_key: str
    label: str
    cost: int
    order: int
    points_applied: int
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.points_applied >= self.cost

    @property
    def deficit(self) -> int:
        return max(0, self.cost - self.points_applied)


def build_snapshots(
    blueprint: Blueprint,
    rows: Iterable[UserProjectProgressDB],
) -> List[SegmentSnapshot]:
    """Join progress rows to blueprint segments. Rows for unknown segments are skipped."""
    snapshots = []
    for row in rows:
        seg = blueprint.segment(row.segment_key)
        if seg is None:
            continue
        snapshots.append(SegmentSnapshot(
            progress_id=row.id,
            segment_key=row.segment_key,
            label=seg.label,
            cost=seg.cost,
            order=seg.order,
            points_applied=row.points_applied or 0,
            completed_at=row.completed_at,
            updated_at=row.updated_at,
        ))
    return snapshots


def _completion_time(snapshot: SegmentSnapshot) -> datetime:
    """completed_at, falling back to updated_at for rows written without it."""
    return snapshot.completed_at or snapshot.updated_at or datetime.min


def select_attack_target(snapshots: Sequence[SegmentSnapshot]) -> Optional[SegmentSnapshot]:
    """Pick the segment a dragon attack damages, or None when nothing is built."""
    completed = [s for s in snapshots if s.is_complete]
    if completed:
        # max() keeps the first of equal keys, so lower order wins a tie
        by_order = sorted(completed, key=lambda s: s.order)
        return max(by_order, key=_completion_time)

    in_progress = [s for s in snapshots if 0 < s.points_applied < s.cost]
    if in_progress:
        return sorted(in_progress, key=lambda s: s.order)[0]

    return None


def select_repair_target(snapshots: Sequence[SegmentSnapshot]) -> Optional[SegmentSnapshot]:
    """Pick the most damaged segment, or None when nothing has a deficit."""
    damaged = [s for s in snapshots if s.deficit > 0]
    if not damaged:
        return None
    return sorted(damaged, key=lambda s: (-s.deficit, s.order))[0]
