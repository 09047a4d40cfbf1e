"""
Shared fixtures for the build ledger test suite.

Every test gets a fresh in-memory SQLite database with all tables created,
and a small three-segment blueprint injected into the services.
"""
import os
import sys
from datetime import date, timedelta
from uuid import uuid4

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Must be set before app.database creates its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models.blueprint import Blueprint
from app.models.db_models import (
    IosScreenTimeConnectionDB,
    StreakHistoryDB,
    TruthCheckDailyDB,
    TruthCheckStatus,
    TruthViolationDB,
    UsageViolationDB,
)
from app.services.build import BuildLedgerService
from app.services.dragon import DragonService


DAY = date(2026, 3, 10)
USER = "user-123"


def make_blueprint(*segments) -> Blueprint:
    """make_blueprint(("A", 100), ("B", 200)) -> ordered blueprint."""
    return Blueprint.from_dict({
        "id": "test_blueprint_v1",
        "name": "Test Blueprint",
        "segments": [
            {"key": key, "label": f"Segment {key}", "cost": cost, "phase": "test", "order": idx}
            for idx, (key, cost) in enumerate(segments, start=1)
        ],
    })


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT (begin_nested) to work
    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    """Database session bound to the in-memory engine."""
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def blueprint():
    """A=100, B=200, C=300 in that order."""
    return make_blueprint(("A", 100), ("B", 200), ("C", 300))


@pytest.fixture
def ledger(db, blueprint):
    return BuildLedgerService(db, blueprint)


@pytest.fixture
def dragon(db, blueprint):
    return DragonService(db, blueprint)


class FactWriter:
    """Writes upstream trigger facts the engines only read."""

    def __init__(self, db):
        self.db = db

    def _add(self, row):
        self.db.add(row)
        self.db.commit()
        return row

    def usage_violation(self, day: date, user_id: str = USER):
        return self._add(UsageViolationDB(id=str(uuid4()), user_id=user_id, date=day))

    def truth_violation(self, day: date, user_id: str = USER):
        return self._add(TruthViolationDB(id=str(uuid4()), user_id=user_id, date=day))

    def truth_check(self, day: date, status: TruthCheckStatus, user_id: str = USER):
        return self._add(TruthCheckDailyDB(id=str(uuid4()), user_id=user_id, date=day, status=status))

    def streak(
        self,
        day: date,
        user_id: str = USER,
        broken: bool = False,
        under_limit: bool = True,
        violation_count: int = 0,
    ):
        return self._add(StreakHistoryDB(
            id=str(uuid4()),
            user_id=user_id,
            date=day,
            broken=broken,
            under_limit=under_limit,
            violation_count=violation_count,
        ))

    def perfect_day(self, day: date, user_id: str = USER):
        return self.streak(day, user_id=user_id)

    def ios_verification(self, enabled: bool, user_id: str = USER):
        return self._add(IosScreenTimeConnectionDB(user_id=user_id, enabled=enabled))

    def run(self, writer, end: date, days: int, **kwargs):
        """Write one fact per day for `days` days ending at `end`."""
        for offset in range(days):
            writer(end - timedelta(days=offset), **kwargs)


@pytest.fixture
def facts(db):
    return FactWriter(db)
