"""
Services Module
Business logic layer for the MedCare Dose Engine
"""

from services.schedule_service import ScheduleService, schedule_service
from services.adherence_service import AdherenceService, AdherenceWindow, Streak, adherence_service
from services.preference_service import PreferenceService, QuietHoursDecision, preference_service
from services.notification_service import NotificationService, notification_service


__all__ = [
    # Service classes
    "ScheduleService",
    "AdherenceService",
    "PreferenceService",
    "NotificationService",
    # Value types
    "AdherenceWindow",
    "Streak",
    "QuietHoursDecision",
    # Singleton instances
    "schedule_service",
    "adherence_service",
    "preference_service",
    "notification_service",
]
