"""
Engine API Router
Endpoints for triggering engine runs and raising emergency alerts
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from api.deps import get_db, services
from api.schemas.engine import (
    TriggerRequestBody,
    TriggerSummaryResponse,
    EmergencyAlertRequest,
    EmergencyAlertResponse,
)


router = APIRouter(prefix="/engine", tags=["engine"])


@router.post("/trigger", response_model=TriggerSummaryResponse)
async def trigger_engine(
    payload: TriggerRequestBody,
    db: Session = Depends(get_db)
):
    """
    Run one engine pass: generate, sweep or report

    Due notifications are dispatched at the end of every run.
    """
    from actions.engine_trigger import TriggerMode, TriggerRequest

    engine_trigger = services.get_engine_trigger()

    try:
        summary = await engine_trigger.run(
            TriggerRequest(
                mode=TriggerMode(payload.mode.value),
                user_id=payload.user_id,
                target_date=payload.target_date
            ),
            db=db
        )
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return TriggerSummaryResponse(**summary.to_dict())


@router.post("/emergency", response_model=EmergencyAlertResponse, status_code=status.HTTP_201_CREATED)
async def raise_emergency(
    payload: EmergencyAlertRequest,
    db: Session = Depends(get_db)
):
    """
    Raise a critical alert for a user and escalate it to caregivers
    """
    escalation = services.get_caregiver_escalation()

    try:
        notification = await escalation.raise_emergency(
            payload.user_id, payload.title, payload.message, db=db
        )
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return EmergencyAlertResponse(
        notification_id=notification.id if notification else None,
        user_id=payload.user_id,
        status=notification.status if notification else "duplicate"
    )
