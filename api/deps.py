"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db


async def get_current_user_id(
    user_id: int,
    db: Session = Depends(get_db)
) -> int:
    """
    Validate user exists and return user ID
    """
    from models import User

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"User {user_id} is not active"
        )

    return user_id


class ServiceDependency:
    """
    Dependency injection for services
    """

    @staticmethod
    def get_schedule_service():
        from services.schedule_service import schedule_service
        return schedule_service

    @staticmethod
    def get_adherence_service():
        from services.adherence_service import adherence_service
        return adherence_service

    @staticmethod
    def get_engine_trigger():
        from actions.engine_trigger import engine_trigger
        return engine_trigger

    @staticmethod
    def get_caregiver_escalation():
        from actions.caregiver_escalation import caregiver_escalation
        return caregiver_escalation


# Service dependency instances
services = ServiceDependency()
