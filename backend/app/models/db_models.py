"""
Cathedral Build Engine - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage
"""
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, JSON, ForeignKey, Enum as SQLEnum,
    Boolean, Date, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship
from ..database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# ENUMS
# =============================================================================

class DragonTriggerType(str, Enum):
    """Rule violations that can trigger a dragon attack."""
    VIOLATION = "violation"
    TRUTH_MISMATCH = "truth_mismatch"
    STREAK_BREAK = "streak_break"


class BuildSourceType(str, Enum):
    """Well-known build event sources. Callers may pass their own string."""
    ALLOCATION = "allocation"
    TASK = "task"
    URGE = "urge"
    PHONE_BLOCK = "phone_block"
    DRAGON_ATTACK = "DRAGON_ATTACK"
    DRAGON_REPAIR = "DRAGON_REPAIR"


class TruthCheckStatus(str, Enum):
    """Outcome of comparing self-reported against verified screen time."""
    MATCH = "match"
    MISMATCH = "mismatch"
    MISSING = "missing"


class UserDB(Base):
    """User row. Created lazily the first time a user touches the build ledger."""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    display_name = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    projects = relationship("UserProjectDB", back_populates="user", cascade="all, delete-orphan")


# =============================================================================
# BUILD LEDGER MODELS
# =============================================================================

class UserProjectDB(Base):
    """
    A (user, blueprint) pairing.
    Only one active project per user is consulted by the dragon engines.
    """
    __tablename__ = "user_projects"
    __table_args__ = (
        UniqueConstraint("user_id", "blueprint_id", name="uq_user_projects_user_blueprint"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    blueprint_id = Column(String(64), nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("UserDB", back_populates="projects")
    progress = relationship("UserProjectProgressDB", back_populates="project", cascade="all, delete-orphan")
    events = relationship("BuildEventDB", back_populates="project", cascade="all, delete-orphan")


class UserProjectProgressDB(Base):
    """
    Points applied to one blueprint segment of a project.

    Invariants:
    - 0 <= points_applied <= segment cost
    - completed_at is set iff points_applied >= segment cost
    """
    __tablename__ = "user_project_progress"
    __table_args__ = (
        UniqueConstraint("user_project_id", "segment_key", name="uq_progress_project_segment"),
        CheckConstraint("points_applied >= 0", name="ck_progress_points_non_negative"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    user_project_id = Column(String(36), ForeignKey("user_projects.id", ondelete="CASCADE"), nullable=False, index=True)
    blueprint_id = Column(String(64), nullable=False)
    segment_key = Column(String(64), nullable=False)

    points_applied = Column(Integer, default=0, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    project = relationship("UserProjectDB", back_populates="progress")


class BuildEventDB(Base):
    """
    Immutable record of every build ledger mutation.
    Append-only - allocations, dragon attacks and dragon repairs.

    dedupe_key is globally unique when present; it is the idempotency
    primitive for repairs and optional for ordinary allocations.
    """
    __tablename__ = "build_events"
    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_build_events_dedupe_key"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    user_project_id = Column(String(36), ForeignKey("user_projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    blueprint_id = Column(String(64), nullable=False)

    points = Column(Integer, nullable=False)  # Signed delta
    source_type = Column(String(50), nullable=True)
    source_id = Column(String(64), nullable=True)
    dedupe_key = Column(String(255), nullable=True)

    # Per-segment breakdown: [{"segment_key", "applied", "total", "completed", "cost"}]
    allocations = Column(JSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)

    # Timestamps (immutable)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    project = relationship("UserProjectDB", back_populates="events")


class DragonAttackDB(Base):
    """
    One row per successfully applied dragon attack.
    Immutable. dedupe_key guarantees at most one attack per (user, day, trigger).
    """
    __tablename__ = "dragon_attacks"
    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_dragon_attacks_dedupe_key"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(64), nullable=False, index=True)
    user_project_id = Column(String(36), ForeignKey("user_projects.id", ondelete="CASCADE"), nullable=False, index=True)
    blueprint_id = Column(String(64), nullable=False)
    segment_key = Column(String(64), nullable=False)

    trigger_type = Column(SQLEnum(DragonTriggerType, native_enum=False, length=20), nullable=False)
    damage_amount = Column(Integer, nullable=False)  # Damage actually applied
    severity = Column(Integer, nullable=False)       # 1-5, display only
    consecutive_days = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    dedupe_key = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=utcnow)


# =============================================================================
# TRIGGER FACTS (owned by upstream evaluators, read-only here)
# =============================================================================

class UsageViolationDB(Base):
    """Daily phone-usage limit violation recorded by the usage evaluator."""
    __tablename__ = "usage_violations"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    total_minutes = Column(Integer, nullable=True)
    limit_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class TruthViolationDB(Base):
    """Day on which self-reported usage disagreed with verified usage."""
    __tablename__ = "truth_violations"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    reported_minutes = Column(Integer, nullable=True)
    verified_minutes = Column(Integer, nullable=True)
    delta_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class TruthCheckDailyDB(Base):
    """Per-day truth check result. Only consulted when iPhone verification is on."""
    __tablename__ = "truth_check_daily"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_truth_check_daily_user_date"),
    )

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False)
    status = Column(SQLEnum(TruthCheckStatus, native_enum=False, length=20), nullable=False)
    reported_minutes = Column(Integer, nullable=True)
    verified_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class StreakHistoryDB(Base):
    """Daily streak evaluation written by the streak evaluator."""
    __tablename__ = "streak_history"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    streak_days = Column(Integer, default=0)
    broken = Column(Boolean, default=False, nullable=False)
    under_limit = Column(Boolean, default=True, nullable=False)
    violation_count = Column(Integer, default=0, nullable=False)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class IosScreenTimeConnectionDB(Base):
    """iPhone Screen Time verification setting per user."""
    __tablename__ = "ios_screentime_connections"

    user_id = Column(String(64), primary_key=True)
    enabled = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
