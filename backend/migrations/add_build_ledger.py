"""
Migration: Add Build Ledger tables.

Creates the cathedral progress ledger:
1. user_projects - (user, blueprint) pairing with active flag
2. user_project_progress - points applied per segment
3. build_events - append-only ledger, unique dedupe_key
4. dragon_attacks - one row per applied attack, unique dedupe_key

The dedupe_key unique constraints are the idempotency guarantee for
attacks and repairs. They must exist before the engines run.

Trigger fact tables (usage_violations, truth_violations, truth_check_daily,
streak_history, ios_screentime_connections) belong to the evaluators that
write them and are not created here.
"""
from sqlalchemy import create_engine, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/build_ledger"
)


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = :table_name
        )
    """), {"table_name": table_name})
    return result.fetchone()[0]


def run_migration():
    """Create all build ledger tables."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        if table_exists(conn, "users"):
            print("users table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE users (
                    id VARCHAR(64) PRIMARY KEY,
                    display_name VARCHAR(100),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            print("Created users table")

        # =================================================================
        # TABLE 1: user_projects
        # =================================================================
        if table_exists(conn, "user_projects"):
            print("user_projects table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE user_projects (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    blueprint_id VARCHAR(64) NOT NULL,
                    active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_user_projects_user_blueprint UNIQUE (user_id, blueprint_id)
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_user_projects_user ON user_projects(user_id)
            """))
            print("Created user_projects table")

        # =================================================================
        # TABLE 2: user_project_progress
        # =================================================================
        if table_exists(conn, "user_project_progress"):
            print("user_project_progress table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE user_project_progress (
                    id VARCHAR(36) PRIMARY KEY,
                    user_project_id VARCHAR(36) NOT NULL REFERENCES user_projects(id) ON DELETE CASCADE,
                    blueprint_id VARCHAR(64) NOT NULL,
                    segment_key VARCHAR(64) NOT NULL,
                    points_applied INTEGER NOT NULL DEFAULT 0,
                    completed_at TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_progress_project_segment UNIQUE (user_project_id, segment_key),
                    CONSTRAINT ck_progress_points_non_negative CHECK (points_applied >= 0)
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_progress_project ON user_project_progress(user_project_id)
            """))
            print("Created user_project_progress table")

        # =================================================================
        # TABLE 3: build_events
        # =================================================================
        if table_exists(conn, "build_events"):
            print("build_events table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE build_events (
                    id VARCHAR(36) PRIMARY KEY,
                    user_project_id VARCHAR(36) NOT NULL REFERENCES user_projects(id) ON DELETE CASCADE,
                    user_id VARCHAR(64) NOT NULL,
                    blueprint_id VARCHAR(64) NOT NULL,
                    points INTEGER NOT NULL,
                    source_type VARCHAR(50),
                    source_id VARCHAR(64),
                    dedupe_key VARCHAR(255),
                    allocations JSON NOT NULL,
                    notes TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_build_events_dedupe_key UNIQUE (dedupe_key)
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_build_events_user ON build_events(user_id)
            """))
            conn.execute(text("""
                CREATE INDEX idx_build_events_project ON build_events(user_project_id)
            """))
            print("Created build_events table")

        # =================================================================
        # TABLE 4: dragon_attacks
        # =================================================================
        if table_exists(conn, "dragon_attacks"):
            print("dragon_attacks table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE dragon_attacks (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(64) NOT NULL,
                    user_project_id VARCHAR(36) NOT NULL REFERENCES user_projects(id) ON DELETE CASCADE,
                    blueprint_id VARCHAR(64) NOT NULL,
                    segment_key VARCHAR(64) NOT NULL,
                    trigger_type VARCHAR(20) NOT NULL,
                    damage_amount INTEGER NOT NULL,
                    severity INTEGER NOT NULL,
                    consecutive_days INTEGER NOT NULL,
                    description TEXT,
                    dedupe_key VARCHAR(255) NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_dragon_attacks_dedupe_key UNIQUE (dedupe_key)
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_dragon_attacks_user ON dragon_attacks(user_id)
            """))
            print("Created dragon_attacks table")

        conn.commit()
        print("\nBuild Ledger migration completed successfully!")


if __name__ == "__main__":
    run_migration()
