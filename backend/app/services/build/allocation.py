"""
Allocation Algorithm

Pure functions over an in-memory snapshot of segment progress:
- plan_allocation: distribute points across incomplete segments in order
- summarize_progress: completion percentage and current segment

Points beyond the remaining capacity of the whole blueprint are dropped,
not banked. The caller reports them as remaining_points.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ...models.blueprint import BlueprintSegment


def round_half_up(value: float) -> int:
    """Round halves toward positive infinity (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


@dataclass
class SegmentAllocation:
    """Points moved into (or out of) one segment by a single ledger event."""
    segment_key: str
    applied: int
    total: int
    completed: bool
    cost: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape stored on build_events.allocations."""
        return {
            "segment_key": self.segment_key,
            "applied": self.applied,
            "total": self.total,
            "completed": self.completed,
            "cost": self.cost,
        }


@dataclass
class AllocationPlan:
    """Result of plan_allocation."""
    allocations: List[SegmentAllocation] = field(default_factory=list)
    remaining_points: int = 0

    @property
    def applied_points(self) -> int:
        return sum(a.applied for a in self.allocations)


def plan_allocation(
    segments: Sequence[BlueprintSegment],
    current_points: Mapping[str, int],
    points: int,
) -> AllocationPlan:
    """
    Fill each incomplete segment's remaining capacity, in segment order,
    until points run out or every segment is full.

    Args:
        segments: Blueprint segments, already sorted by order
        current_points: segment_key -> points_applied (missing means 0)
        points: Points to distribute

    Returns:
        AllocationPlan with one entry per segment that received points
    """
    plan = AllocationPlan(remaining_points=max(0, points))

    for seg in sorted(segments, key=lambda s: s.order):
        if plan.remaining_points <= 0:
            break

        current = min(current_points.get(seg.key, 0), seg.cost)
        if current >= seg.cost:
            continue

        apply = min(plan.remaining_points, seg.cost - current)
        total = current + apply
        plan.allocations.append(SegmentAllocation(
            segment_key=seg.key,
            applied=apply,
            total=total,
            completed=total >= seg.cost,
            cost=seg.cost,
        ))
        plan.remaining_points -= apply

    return plan


def summarize_progress(
    segments: Sequence[BlueprintSegment],
    current_points: Mapping[str, int],
) -> Dict[str, Any]:
    """
    Completion summary for a project.

    Returns:
        {
            "completion_pct": int,
            "current_segment": {...} or None,
            "current_segment_pct": int,
        }
    """
    applied_total = 0
    total_cost = 0
    current: Optional[Dict[str, Any]] = None

    for seg in sorted(segments, key=lambda s: s.order):
        applied = min(current_points.get(seg.key, 0), seg.cost)
        applied_total += applied
        total_cost += seg.cost

        if current is None and applied < seg.cost:
            current = {
                "segment_key": seg.key,
                "label": seg.label,
                "phase": seg.phase,
                "cost": seg.cost,
                "points_applied": applied,
                "remaining": seg.cost - applied,
            }

    completion_pct = 0 if total_cost == 0 else round_half_up(applied_total * 100 / total_cost)
    if current is not None and current["cost"] > 0:
        current_segment_pct = round_half_up(current["points_applied"] * 100 / current["cost"])
    else:
        current_segment_pct = 100

    return {
        "completion_pct": completion_pct,
        "current_segment": current,
        "current_segment_pct": current_segment_pct,
    }
