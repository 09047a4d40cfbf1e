"""
Build Services

Cathedral progress ledger.

- BuildLedgerService: Allocation, status, project/event primitives
- plan_allocation / summarize_progress: Pure allocation math
- build_policy: Points earned per activity
"""

from .build_ledger import BuildLedgerService, AllocationResult
from .allocation import SegmentAllocation, AllocationPlan, plan_allocation, summarize_progress

__all__ = [
    'BuildLedgerService',
    'AllocationResult',
    'SegmentAllocation',
    'AllocationPlan',
    'plan_allocation',
    'summarize_progress',
]
