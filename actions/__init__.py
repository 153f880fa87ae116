"""
Actions Module
Engines for reminders, missed-dose sweeps, dispatch, escalation and reports
"""

from .reminder_engine import (
    ReminderEngine,
    reminder_engine
)

from .caregiver_escalation import (
    EscalationEvent,
    CaregiverEscalation,
    caregiver_escalation,
    caregiver_channels,
    ESCALATABLE_CATEGORIES
)

from .missed_dose_sweeper import (
    MissedDoseSweeper,
    missed_dose_sweeper
)

from .notification_dispatcher import (
    DeliveryResult,
    NotificationDispatcher,
    notification_dispatcher
)

from .report_engine import (
    ReportEngine,
    report_engine
)

from .engine_trigger import (
    TriggerMode,
    TriggerRequest,
    TriggerSummary,
    EngineTrigger,
    engine_trigger
)


__all__ = [
    # Reminder Engine
    "ReminderEngine",
    "reminder_engine",

    # Caregiver Escalation
    "EscalationEvent",
    "CaregiverEscalation",
    "caregiver_escalation",
    "caregiver_channels",
    "ESCALATABLE_CATEGORIES",

    # Missed-Dose Sweeper
    "MissedDoseSweeper",
    "missed_dose_sweeper",

    # Notification Dispatcher
    "DeliveryResult",
    "NotificationDispatcher",
    "notification_dispatcher",

    # Report Engine
    "ReportEngine",
    "report_engine",

    # Engine Trigger
    "TriggerMode",
    "TriggerRequest",
    "TriggerSummary",
    "EngineTrigger",
    "engine_trigger"
]
