"""
Notification Preference Resolver
Category/channel toggles and quiet-hours evaluation per user
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from database import get_db_context
import models
from models import NotificationCategory, NotificationChannel, NotificationPriority
from tools.time_windows import get_zone, is_within_quiet_hours, to_local, utcnow


logger = logging.getLogger(__name__)


_CATEGORY_TOGGLES = {
    NotificationCategory.MEDICATION_REMINDER: "medication_reminders",
    NotificationCategory.MISSED_DOSE: "missed_dose_alerts",
    NotificationCategory.ADHERENCE_REPORT: "adherence_reports",
    NotificationCategory.EMERGENCY: "emergency_alerts",
}

_CHANNEL_TOGGLES = {
    NotificationChannel.PUSH: "push_enabled",
    NotificationChannel.EMAIL: "email_enabled",
    NotificationChannel.SMS: "sms_enabled",
}


@dataclass
class QuietHoursDecision:
    """Outcome of the quiet-hours check"""
    in_quiet_hours: bool
    suppressed: bool
    local_time: str


class PreferenceService:
    """
    Resolves the effective NotificationPreference for a user

    A user without a stored row gets `NotificationPreference.defaults`.
    """

    async def get_preferences(
        self,
        user_id: int,
        db: Optional[Session] = None
    ) -> models.NotificationPreference:
        """Stored preferences, or defaults when none exist"""
        def _get(session: Session) -> models.NotificationPreference:
            preference = session.query(models.NotificationPreference).filter(
                models.NotificationPreference.user_id == user_id
            ).first()
            if preference is None:
                logger.debug(f"No notification preferences for user {user_id}, using defaults")
                return models.NotificationPreference.defaults(user_id)
            return preference

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    def is_category_enabled(
        self,
        preference: models.NotificationPreference,
        category: NotificationCategory
    ) -> bool:
        toggle = _CATEGORY_TOGGLES[NotificationCategory(category)]
        value = getattr(preference, toggle)
        return True if value is None else bool(value)

    def enabled_channels(
        self,
        preference: models.NotificationPreference,
        requested: List[NotificationChannel]
    ) -> List[NotificationChannel]:
        """Requested channels the user has switched on, in request order"""
        enabled = []
        for channel in requested:
            channel = NotificationChannel(channel)
            if getattr(preference, _CHANNEL_TOGGLES[channel]) and channel not in enabled:
                enabled.append(channel)
        return enabled

    def evaluate_quiet_hours(
        self,
        preference: models.NotificationPreference,
        priority: NotificationPriority,
        timezone_name: Optional[str],
        now: Optional[datetime] = None
    ) -> QuietHoursDecision:
        """
        Quiet hours are evaluated in the user's local time.

        Inside quiet hours everything below critical is suppressed; critical
        passes only with `critical_override`.
        """
        local_now = to_local(now or utcnow(), get_zone(timezone_name))
        quiet = is_within_quiet_hours(
            local_now.time(),
            preference.quiet_hours_start,
            preference.quiet_hours_end
        )

        suppressed = False
        if quiet:
            is_critical = NotificationPriority(priority) == NotificationPriority.CRITICAL
            suppressed = not (is_critical and preference.critical_override)

        return QuietHoursDecision(
            in_quiet_hours=quiet,
            suppressed=suppressed,
            local_time=local_now.strftime("%H:%M")
        )


# Singleton instance
preference_service = PreferenceService()
