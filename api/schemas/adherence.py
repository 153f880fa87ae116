"""
Adherence Schemas
Pydantic models for adherence statistics responses
"""

from typing import Optional
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict
from enum import Enum


class AdherenceWindowEnum(str, Enum):
    """Supported adherence windows"""
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"


class AdherenceWindowResponse(BaseModel):
    """Schema for adherence over a window"""
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    window: AdherenceWindowEnum
    start: datetime
    end: datetime
    scheduled: int = Field(..., ge=0)
    taken: int = Field(..., ge=0)
    missed: int = Field(..., ge=0)
    pending: int = Field(..., ge=0)
    percentage: float = Field(..., ge=0, le=100)


class AdherenceStreak(BaseModel):
    """Schema for the adherence streak"""
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    current: int = Field(..., ge=0, description="Consecutive fully-taken days ending yesterday")
    lookback_days: int
    last_counted_day: Optional[date] = None
