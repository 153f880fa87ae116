"""
Doses API Router
Endpoints for listing dose instances and marking them taken
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_user_id, services
from api.schemas.dose import DoseTakenRequest, DoseInstanceResponse, DoseList, ScheduledDose


router = APIRouter(tags=["doses"])


@router.get("/users/{user_id}/doses/today", response_model=DoseList)
async def get_today_doses(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Get today's dose instances for a user (local calendar day)
    """
    schedule_service = services.get_schedule_service()

    doses = await schedule_service.get_today(user_id, db=db)

    return DoseList(
        user_id=user_id,
        count=len(doses),
        doses=[ScheduledDose(**dose) for dose in doses]
    )


@router.get("/users/{user_id}/doses/upcoming", response_model=DoseList)
async def get_upcoming_doses(
    user_id: int = Depends(get_current_user_id),
    hours: int = Query(24, ge=1, le=168),
    db: Session = Depends(get_db)
):
    """
    Get pending doses due within the next `hours`
    """
    schedule_service = services.get_schedule_service()

    doses = await schedule_service.get_upcoming(user_id, hours=hours, db=db)

    return DoseList(
        user_id=user_id,
        count=len(doses),
        doses=[ScheduledDose(**dose) for dose in doses]
    )


@router.post("/doses/{dose_id}/taken", response_model=DoseInstanceResponse)
async def mark_dose_taken(
    dose_id: int,
    payload: Optional[DoseTakenRequest] = None,
    db: Session = Depends(get_db)
):
    """
    Mark a dose as taken

    Allowed from pending or missed; repeating the call is harmless.
    Archived doses are rejected with 409.
    """
    schedule_service = services.get_schedule_service()

    try:
        dose = await schedule_service.mark_taken(dose_id, taken_at=payload.taken_at if payload else None, db=db)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return DoseInstanceResponse.model_validate(dose)
