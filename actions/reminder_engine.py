"""
Reminder Engine
Schedules "take your medication" notifications ahead of pending doses
"""

import logging
from typing import List, Optional
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import and_

from config import engine_config
from database import get_db_context
import models
from models import DoseStatus, NotificationCategory, NotificationChannel, NotificationPriority
from services.notification_service import format_local_time, format_template, notification_service
from tools.time_windows import get_zone, to_local, utcnow


logger = logging.getLogger(__name__)


class ReminderEngine:
    """
    Creates one medication reminder per pending dose in the reminder horizon

    Reminders are due `REMINDER_LEAD_MINUTES` before the dose, or
    immediately when that moment has already passed. The dedup key
    `reminder:<dose_id>` makes repeated runs harmless.
    """

    def __init__(
        self,
        lead_minutes: Optional[int] = None,
        horizon_minutes: Optional[int] = None
    ):
        self.lead_minutes = lead_minutes or engine_config.REMINDER_LEAD_MINUTES
        self.horizon_minutes = horizon_minutes or engine_config.REMINDER_HORIZON_MINUTES
        logger.info(
            f"ReminderEngine initialized (lead {self.lead_minutes} min, horizon {self.horizon_minutes} min)"
        )

    async def schedule_upcoming_reminders(
        self,
        user_id: int,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> List[models.Notification]:
        """
        Queue reminders for the user's doses due within the horizon

        Returns:
            Newly created reminder notifications
        """
        async def _schedule(session: Session) -> List[models.Notification]:
            current = now or utcnow()
            horizon = current + timedelta(minutes=self.horizon_minutes)

            user = session.get(models.User, user_id)
            if user is None:
                raise LookupError(f"User {user_id} not found")
            zone = get_zone(user.timezone)

            doses = session.query(models.DoseInstance).filter(
                and_(
                    models.DoseInstance.user_id == user_id,
                    models.DoseInstance.status == DoseStatus.PENDING.value,
                    models.DoseInstance.scheduled_time > current,
                    models.DoseInstance.scheduled_time <= horizon
                )
            ).order_by(models.DoseInstance.scheduled_time).all()

            created = []
            for dose in doses:
                medication = dose.medication
                remind_at = max(dose.scheduled_time - timedelta(minutes=self.lead_minutes), current)
                minutes = int((dose.scheduled_time - remind_at).total_seconds() // 60)
                context = {
                    "medication": medication.name,
                    "dosage": medication.dosage,
                    "minutes": minutes,
                    "scheduled_time": format_local_time(to_local(dose.scheduled_time, zone)),
                }

                notification = await notification_service.create_notification(
                    user_id=user_id,
                    category=NotificationCategory.MEDICATION_REMINDER,
                    title=format_template(NotificationCategory.MEDICATION_REMINDER, "title", **context),
                    message=format_template(NotificationCategory.MEDICATION_REMINDER, "message", **context),
                    channels=[NotificationChannel.PUSH, NotificationChannel.SMS],
                    priority=NotificationPriority.NORMAL,
                    scheduled_for=remind_at,
                    dose_instance_id=dose.id,
                    data={
                        "medication_id": medication.id,
                        "medication_name": medication.name,
                        "sms_text": format_template(NotificationCategory.MEDICATION_REMINDER, "sms", **context),
                    },
                    dedup_key=f"reminder:{dose.id}",
                    db=session
                )
                if notification is not None:
                    created.append(notification)

            if created:
                logger.info(f"Scheduled {len(created)} reminders for user {user_id}")
            return created

        if db:
            return await _schedule(db)

        with get_db_context() as session:
            return await _schedule(session)


# Singleton instance
reminder_engine = ReminderEngine()
