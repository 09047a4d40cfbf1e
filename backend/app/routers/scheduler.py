"""
Scheduler API Routes

Internal endpoints for system-automatic tasks.
Daily dragon repair sweep.
"""
import os
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Header
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.dragon import DragonService


router = APIRouter(prefix="/internal", tags=["scheduler"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "scheduler-internal-key-change-in-production")


async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for scheduler endpoints."""
    if x_internal_key != INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


class DragonRepairRequest(BaseModel):
    """Optional override of the day to evaluate (defaults to yesterday)."""
    target_date: Optional[date] = None


# =============================================================================
# SCHEDULER ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/dragon-repair", response_model=dict)
async def run_dragon_repair(
    request: Optional[DragonRepairRequest] = None,
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Run the daily dragon repair sweep.

    System-automatic - no user confirmation required.
    Applies auto-repairs for every user with an active project.
    """
    service = DragonService(db)
    target_date = request.target_date if request else None
    result = service.run_daily_repairs(target_date)
    return {"success": True, **result}
