"""
Notification Service
Creates notification events and renders their per-channel copy
"""

import html
import logging
from typing import Dict, List, Optional, Any
from datetime import datetime
from sqlalchemy.orm import Session

from config import settings
from database import get_db_context, insert_ignore
import models
from models import NotificationCategory, NotificationChannel, NotificationPriority, NotificationStatus
from tools.time_windows import utcnow


logger = logging.getLogger(__name__)


# Notification templates
NOTIFICATION_TEMPLATES: Dict[NotificationCategory, Dict[str, str]] = {
    NotificationCategory.MEDICATION_REMINDER: {
        "title": "Medication Reminder",
        "message": "Don't forget to take your {medication} ({dosage}) in {minutes} minutes at {scheduled_time}.",
        "sms": "Reminder: take {medication} ({dosage}) at {scheduled_time}.",
    },
    NotificationCategory.MISSED_DOSE: {
        "title": "Missed Medication Alert",
        "message": "You missed your {medication} ({dosage}) scheduled for {scheduled_time}.",
        "sms": "You may have missed your {medication} dose scheduled for {scheduled_time}. Take it if appropriate or skip to the next dose. Never double up.",
        "caregiver_title": "Missed dose: {patient_name}",
        "caregiver_message": "Hello {caregiver_name}, {patient_name} missed their {medication} ({dosage}) dose scheduled for {scheduled_time}.",
    },
    NotificationCategory.ADHERENCE_REPORT: {
        "title": "Weekly Medication Report",
        "message": "Weekly Adherence Report: {adherence}% adherence this week ({taken}/{total} medications taken).",
        "caregiver_title": "Weekly Caregiver Report: {patient_name}",
        "caregiver_message": "Hello {caregiver_name}, weekly report for {patient_name}: {adherence}% medication adherence ({taken}/{total} doses taken).",
    },
    NotificationCategory.EMERGENCY: {
        "title": "Emergency Alert",
        "message": "{message}",
        "caregiver_title": "Emergency alert: {patient_name}",
        "caregiver_message": "Hello {caregiver_name}, {patient_name} raised an emergency alert: {message}",
    },
}

PRIORITY_COLORS = {
    NotificationPriority.CRITICAL: "#dc2626",
    NotificationPriority.HIGH: "#ea580c",
    NotificationPriority.NORMAL: "#d97706",
    NotificationPriority.LOW: "#059669",
}


class _SafeFormat(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def format_template(
    category: NotificationCategory,
    key: str,
    fallback: str = "",
    **context: Any
) -> str:
    """Format a template string, leaving unknown placeholders untouched"""
    template = NOTIFICATION_TEMPLATES.get(category, {}).get(key)
    if template is None:
        return fallback
    return template.format_map(_SafeFormat(context))


def render_email_html(
    title: str,
    message: str,
    priority: NotificationPriority,
    recipient_name: Optional[str] = None,
    patient_name: Optional[str] = None
) -> str:
    """Render the HTML body handed to the email adapter"""
    color = PRIORITY_COLORS.get(priority, PRIORITY_COLORS[NotificationPriority.NORMAL])
    greeting = f"<h3 style=\"margin: 0 0 10px 0;\">Hello {html.escape(recipient_name)},</h3>" if recipient_name else ""
    caregiver_note = ""
    if patient_name:
        caregiver_note = (
            "<p style=\"font-size: 14px; color: #065f46;\">"
            f"You're receiving this as a designated caregiver for {html.escape(patient_name)}."
            "</p>"
        )

    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: {color}; color: white; padding: 20px; text-align: center;">
        <h1 style="margin: 0; font-size: 24px;">{html.escape(title)}</h1>
        <div style="margin-top: 10px;">{priority.value.upper()} PRIORITY</div>
      </div>
      <div style="padding: 30px;">
        {greeting}
        <p style="font-size: 16px; line-height: 1.5;">{html.escape(message)}</p>
        <p><a href="{settings.DASHBOARD_URL}">Open MedCare</a></p>
        {caregiver_note}
        <p style="font-size: 12px; color: #92400e;">
          This is an automated notification. Always consult your healthcare provider for medical advice.
        </p>
      </div>
    </div>
    """


def format_local_time(moment: datetime) -> str:
    """HH:MM rendering used in notification copy"""
    return moment.strftime("%H:%M")


class NotificationService:
    """
    Service for persisting notification events

    Notifications are written as `pending` rows (an outbox); the dispatcher
    delivers them once `scheduled_for` is reached.
    """

    async def create_notification(
        self,
        user_id: int,
        category: NotificationCategory,
        title: str,
        message: str,
        channels: List[NotificationChannel],
        priority: NotificationPriority = NotificationPriority.NORMAL,
        scheduled_for: Optional[datetime] = None,
        caregiver_id: Optional[int] = None,
        dose_instance_id: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
        dedup_key: Optional[str] = None,
        db: Optional[Session] = None
    ) -> Optional[models.Notification]:
        """
        Create a pending notification

        With a `dedup_key`, a second call for the same event is a no-op and
        returns None.
        """
        def _create(session: Session) -> Optional[models.Notification]:
            values = {
                "user_id": user_id,
                "caregiver_id": caregiver_id,
                "dose_instance_id": dose_instance_id,
                "category": NotificationCategory(category).value,
                "title": title,
                "message": message,
                "priority": NotificationPriority(priority).value,
                "channels": [NotificationChannel(c).value for c in channels],
                "data": data or {},
                "scheduled_for": scheduled_for or utcnow(),
                "status": NotificationStatus.PENDING.value,
                "dedup_key": dedup_key,
            }
            notification_id = insert_ignore(session, models.Notification, values)
            session.commit()

            if notification_id is None:
                logger.debug(f"Notification {dedup_key} already exists, skipped")
                return None

            logger.info(
                f"Created {values['category']} notification {notification_id} for user {user_id}"
                + (f" (caregiver {caregiver_id})" if caregiver_id else "")
            )
            return session.get(models.Notification, notification_id)

        if db:
            return _create(db)

        with get_db_context() as session:
            return _create(session)


# Singleton instance
notification_service = NotificationService()
