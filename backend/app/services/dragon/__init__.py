"""
Dragon Services

Punitive attacks and restorative repairs on the build ledger.

- DragonService: Public entry point (three attack triggers, auto-repairs, daily sweep)
- DragonAttackEngine: Target selection + damage application
- DragonRepairEngine: Perfect-day detection + repairs
- ConsecutiveDayCalculator: Repeated-offense lookback
"""

from .attack_engine import DragonAttackEngine, AttackResult
from .repair_engine import DragonRepairEngine, RepairResult
from .lookback import ConsecutiveDayCalculator
from .dragon_service import DragonService

__all__ = [
    'DragonService',
    'DragonAttackEngine',
    'AttackResult',
    'DragonRepairEngine',
    'RepairResult',
    'ConsecutiveDayCalculator',
]
