#!/usr/bin/env python3
"""
Dragon Repair Sweep
Applies perfect-day repairs for every user with an active build project.

Usage:
    python -m scripts.run_dragon_repair [YYYY-MM-DD]

Without a date, yesterday (UTC) is evaluated.

Example:
    python -m scripts.run_dragon_repair 2026-10-18
"""
import logging
import sys
import os
from datetime import date

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from app.database import SessionLocal, init_db
from app.services.dragon import DragonService


def run_sweep(target_date: date = None) -> dict:
    """Run the repair sweep in its own session."""
    # Ensure tables exist
    init_db()

    db: Session = SessionLocal()
    try:
        return DragonService(db).run_daily_repairs(target_date)
    finally:
        db.close()


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if len(sys.argv) > 2:
        print(__doc__)
        sys.exit(1)

    target_date = None
    if len(sys.argv) == 2:
        try:
            target_date = date.fromisoformat(sys.argv[1])
        except ValueError:
            print(f"Error: Invalid date '{sys.argv[1]}', expected YYYY-MM-DD.")
            sys.exit(1)

    result = run_sweep(target_date)
    print(f"Target date: {result['target_date']}")
    print(f"Users processed: {result['processed_users']}")
    print(f"Repairs applied: {result['applied_repairs']}")
    sys.exit(0 if result["failed_users"] == 0 else 1)


if __name__ == "__main__":
    main()
