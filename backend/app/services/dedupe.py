"""
Dedupe Keys

Deterministic keys backed by unique constraints on dragon_attacks.dedupe_key
and build_events.dedupe_key. A rejected insert on either column means the
operation already happened; callers report it as deduped, never as a failure.
"""
from datetime import date

from sqlalchemy.exc import IntegrityError


DEDUPE_COLUMN = "dedupe_key"
REPAIR_NAMESPACE = "repair"
ALLOCATION_NAMESPACE = "alloc"


def allocation_dedupe_key(user_id: str, caller_key: str) -> str:
    """
    alloc|user|caller_key

    Caller keys are scoped to their user so they can never collide with
    repair keys or with another user's allocations.
    """
    return f"{ALLOCATION_NAMESPACE}|{user_id}|{caller_key}"


def attack_dedupe_key(user_id: str, day: date, trigger_type: str) -> str:
    """user|YYYY-MM-DD|trigger"""
    return f"{user_id}|{day.isoformat()}|{trigger_type}"


def repair_dedupe_key(user_id: str, day: date) -> str:
    """repair|user|YYYY-MM-DD"""
    return f"{REPAIR_NAMESPACE}|{user_id}|{day.isoformat()}"


def is_dedupe_violation(error: IntegrityError) -> bool:
    """
    True when an IntegrityError was raised by a dedupe_key unique constraint.

    PostgreSQL reports the constraint name (uq_*_dedupe_key) and SQLite the
    column (UNIQUE constraint failed: <table>.dedupe_key); both contain the
    column name.
    """
    message = str(getattr(error, "orig", None) or error)
    return DEDUPE_COLUMN in message
