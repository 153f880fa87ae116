"""
Adherence API Router
Endpoints for adherence percentages and streaks
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_user_id, services
from api.schemas.adherence import AdherenceWindowEnum, AdherenceWindowResponse, AdherenceStreak


router = APIRouter(prefix="/users/{user_id}/adherence", tags=["adherence"])


@router.get("", response_model=AdherenceWindowResponse)
async def get_adherence(
    user_id: int = Depends(get_current_user_id),
    window: AdherenceWindowEnum = Query(AdherenceWindowEnum.TODAY),
    db: Session = Depends(get_db)
):
    """
    Get adherence for the user's current local day, week or month

    Only doses already due are counted; an empty window reports 100%.
    """
    adherence_service = services.get_adherence_service()

    result = await adherence_service.get_adherence(user_id, window.value, db=db)

    return AdherenceWindowResponse(
        user_id=user_id,
        window=window,
        start=result.start,
        end=result.end,
        scheduled=result.scheduled,
        taken=result.taken,
        missed=result.missed,
        pending=result.pending,
        percentage=result.percentage
    )


@router.get("/streak", response_model=AdherenceStreak)
async def get_adherence_streak(
    user_id: int = Depends(get_current_user_id),
    lookback_days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db)
):
    """
    Get the current streak of fully-taken days
    """
    adherence_service = services.get_adherence_service()

    streak = await adherence_service.get_streak(user_id, db=db, lookback_days=lookback_days)

    return AdherenceStreak(
        user_id=user_id,
        current=streak.current,
        lookback_days=streak.lookback_days,
        last_counted_day=streak.last_counted_day
    )
