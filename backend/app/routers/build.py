"""
Build API Routes

Endpoints for the cathedral build ledger.
Status view, point allocation, activity rewards and recent ledger events.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user_id
from ..services.build import BuildLedgerService


router = APIRouter(prefix="/build", tags=["build"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class ApplyPointsRequest(BaseModel):
    """Request to allocate build points."""
    points: int = Field(..., description="Points to distribute across segments")
    source_type: Optional[str] = Field("allocation", description="What earned the points")
    source_id: Optional[str] = Field(None, description="ID of the source record")
    dedupe_key: Optional[str] = Field(None, description="Idempotency key for retries")


class EarnPointsRequest(BaseModel):
    """Completed activity to convert into build points."""
    activity: str = Field(..., description="task, urge or phone_block")
    source_id: str = Field(..., description="ID of the completed task, urge or block")
    duration_min: Optional[float] = Field(None, description="Task or block length in minutes")
    xp_earned: float = Field(0, description="XP granted for a task")
    completed: bool = Field(False, description="Urge micro-task completed")


class BuildEventResponse(BaseModel):
    """Build ledger entry."""
    id: str
    points: int
    source_type: Optional[str]
    source_id: Optional[str]
    allocations: list
    notes: Optional[str]
    created_at: str


# =============================================================================
# USER-AUTHORIZED ENDPOINTS
# =============================================================================

@router.get("/status", response_model=dict)
async def get_build_status(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Get cathedral progress for the current user.

    Creates the project on first access.
    """
    service = BuildLedgerService(db)
    return service.get_status(user_id)


@router.post("/apply", response_model=dict)
async def apply_build_points(
    request: ApplyPointsRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Allocate build points to the current user's cathedral.

    Points beyond the blueprint's remaining capacity are dropped and
    reported as remaining_points.
    """
    if request.points <= 0:
        raise HTTPException(status_code=400, detail="No points provided")

    service = BuildLedgerService(db)
    result = service.apply_points(
        user_id=user_id,
        points=request.points,
        source_type=request.source_type,
        source_id=request.source_id,
        dedupe_key=request.dedupe_key,
    )
    return result.to_dict()


@router.get("/events", response_model=List[BuildEventResponse])
async def list_build_events(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Recent build ledger entries, newest first."""
    service = BuildLedgerService(db)
    return [
        BuildEventResponse(
            id=event.id,
            points=event.points,
            source_type=event.source_type,
            source_id=event.source_id,
            allocations=event.allocations or [],
            notes=event.notes,
            created_at=event.created_at.isoformat() if event.created_at else "",
        )
        for event in service.list_events(user_id, limit=limit)
    ]


@router.post("/earn", response_model=dict)
async def earn_build_points(
    request: EarnPointsRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Award build points for a completed activity.

    Points are sized by the build point policy and applied at most once
    per (activity, source_id).
    """
    service = BuildLedgerService(db)
    try:
        result = service.apply_activity_points(
            user_id=user_id,
            activity=request.activity,
            source_id=request.source_id,
            duration_min=request.duration_min,
            xp_earned=request.xp_earned,
            completed=request.completed,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()
