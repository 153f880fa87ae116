"""
Dose Schemas
Pydantic models for dose instance API requests and responses
"""

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict
from enum import Enum


class DoseStatusEnum(str, Enum):
    """Dose instance status values"""
    PENDING = "pending"
    TAKEN = "taken"
    MISSED = "missed"
    ARCHIVED = "archived"


# ==================== REQUEST SCHEMAS ====================

class DoseTakenRequest(BaseModel):
    """Schema for marking a dose taken"""
    taken_at: Optional[datetime] = Field(None, description="Defaults to now (UTC)")


# ==================== RESPONSE SCHEMAS ====================

class DoseInstanceResponse(BaseModel):
    """Schema for a stored dose instance"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    medication_id: int
    scheduled_time: datetime
    status: DoseStatusEnum
    taken_at: Optional[datetime] = None
    archived_from: Optional[str] = None


class ScheduledDose(BaseModel):
    """Dose with medication details, as listed for a user"""
    dose_instance_id: int
    medication_id: int
    medication_name: str
    dosage: str
    scheduled_time: datetime
    local_time: str = Field(..., description="HH:MM in the user's timezone")
    status: DoseStatusEnum
    taken_at: Optional[datetime] = None
    minutes_until: int


class DoseList(BaseModel):
    """Schema for a list of doses"""
    user_id: int
    count: int
    doses: List[ScheduledDose]
