"""
Engine Schemas
Pydantic models for engine trigger and emergency alert endpoints
"""

from typing import Optional, List, Dict
from datetime import date
from pydantic import BaseModel, Field
from enum import Enum


class TriggerModeEnum(str, Enum):
    """Engine run modes"""
    GENERATE = "generate"
    SWEEP = "sweep"
    REPORT = "report"


class TriggerRequestBody(BaseModel):
    """Schema for triggering an engine run"""
    mode: TriggerModeEnum = TriggerModeEnum.GENERATE
    user_id: Optional[int] = Field(None, description="Omit to process every active user")
    target_date: Optional[date] = None


class TriggerSummaryResponse(BaseModel):
    """Schema for the outcome of an engine run"""
    mode: TriggerModeEnum
    users_processed: int
    doses_created: int
    doses_missed: int
    doses_archived: int
    reminders_scheduled: int
    reports_generated: int
    notifications: Dict[str, int] = Field(default_factory=dict)
    failed_users: List[int] = Field(default_factory=list)


class EmergencyAlertRequest(BaseModel):
    """Schema for raising an emergency alert"""
    user_id: int
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=1000)


class EmergencyAlertResponse(BaseModel):
    """Schema for a raised emergency alert"""
    notification_id: Optional[int] = None
    user_id: int
    status: str
