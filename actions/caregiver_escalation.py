"""
Caregiver Escalation
Fans patient events out to the caregivers who opted in
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy import and_

from database import get_db_context
import models
from models import NotificationCategory, NotificationChannel, NotificationPriority
from services.notification_service import format_template, notification_service
from tools.time_windows import utcnow


logger = logging.getLogger(__name__)


ESCALATABLE_CATEGORIES = (
    NotificationCategory.MISSED_DOSE,
    NotificationCategory.EMERGENCY,
    NotificationCategory.ADHERENCE_REPORT,
)


@dataclass
class EscalationEvent:
    """A patient event that caregivers should hear about"""
    category: NotificationCategory
    key: str
    priority: NotificationPriority = NotificationPriority.HIGH
    context: Dict[str, Any] = field(default_factory=dict)
    dose_instance_id: Optional[int] = None
    # Restricts caregiver channels; None means every contact method
    channels: Optional[List[NotificationChannel]] = None


def caregiver_channels(
    caregiver: models.Caregiver,
    allowed: Optional[List[NotificationChannel]] = None
) -> List[NotificationChannel]:
    """Channels a caregiver can be reached on: email and/or SMS"""
    channels = []
    if caregiver.email:
        channels.append(NotificationChannel.EMAIL)
    if caregiver.phone_number:
        channels.append(NotificationChannel.SMS)
    if allowed is not None:
        channels = [channel for channel in channels if channel in allowed]
    return channels


class CaregiverEscalation:
    """
    Creates caregiver notifications for missed doses, emergencies and
    weekly reports

    Delivery is left to the dispatcher, which applies the patient's
    category toggle and quiet hours.
    """

    async def escalate_to_caregivers(
        self,
        user_id: int,
        event: EscalationEvent,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> List[models.Notification]:
        """
        Create one notification per reachable, enabled caregiver

        Args:
            user_id: Patient the event belongs to
            event: Escalation event; key feeds the per-caregiver dedup key
            db: Database session
            now: Reference time (naive UTC)

        Returns:
            Newly created caregiver notifications
        """
        try:
            category = NotificationCategory(event.category)
        except ValueError:
            logger.error(f"Dropping escalation {event.key}: unknown category {event.category!r}")
            return []

        if category not in ESCALATABLE_CATEGORIES:
            logger.error(f"Dropping escalation {event.key}: {category.value} is not escalated to caregivers")
            return []

        async def _escalate(session: Session) -> List[models.Notification]:
            user = session.get(models.User, user_id)
            if user is None:
                raise LookupError(f"User {user_id} not found")

            caregivers = session.query(models.Caregiver).filter(
                and_(
                    models.Caregiver.user_id == user_id,
                    models.Caregiver.notifications_enabled == True
                )
            ).order_by(models.Caregiver.id).all()

            created = []
            for caregiver in caregivers:
                channels = caregiver_channels(caregiver, event.channels)
                if not channels:
                    logger.info(f"Caregiver {caregiver.id} has no contact method for {category.value}, skipped")
                    continue

                context = {
                    **event.context,
                    "patient_name": user.display_name,
                    "caregiver_name": caregiver.name,
                }
                title = format_template(category, "caregiver_title", fallback=category.value, **context)
                message = format_template(category, "caregiver_message", fallback=title, **context)

                notification = await notification_service.create_notification(
                    user_id=user_id,
                    category=category,
                    title=title,
                    message=message,
                    channels=channels,
                    priority=event.priority,
                    scheduled_for=now or utcnow(),
                    caregiver_id=caregiver.id,
                    dose_instance_id=event.dose_instance_id,
                    data={
                        "event_key": event.key,
                        "patient_name": user.display_name,
                        "sms_text": message,
                    },
                    dedup_key=f"{event.key}:caregiver:{caregiver.id}",
                    db=session
                )
                if notification is not None:
                    created.append(notification)

            if created:
                logger.info(f"Escalated {event.key} to {len(created)} caregivers of user {user_id}")
            return created

        if db:
            return await _escalate(db)

        with get_db_context() as session:
            return await _escalate(session)

    async def raise_emergency(
        self,
        user_id: int,
        title: str,
        message: str,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> Optional[models.Notification]:
        """
        Critical alert to the patient on every channel, escalated to caregivers

        Returns:
            The patient notification
        """
        current = now or utcnow()
        key = f"emergency:{user_id}:{current.strftime('%Y%m%d%H%M%S')}"

        async def _raise(session: Session) -> Optional[models.Notification]:
            if session.get(models.User, user_id) is None:
                raise LookupError(f"User {user_id} not found")

            notification = await notification_service.create_notification(
                user_id=user_id,
                category=NotificationCategory.EMERGENCY,
                title=title,
                message=message,
                channels=[NotificationChannel.PUSH, NotificationChannel.EMAIL, NotificationChannel.SMS],
                priority=NotificationPriority.CRITICAL,
                scheduled_for=current,
                data={"sms_text": f"{title}: {message}"},
                dedup_key=key,
                db=session
            )
            await self.escalate_to_caregivers(
                user_id,
                EscalationEvent(
                    category=NotificationCategory.EMERGENCY,
                    key=key,
                    priority=NotificationPriority.CRITICAL,
                    context={"message": message},
                ),
                db=session,
                now=current
            )
            logger.warning(f"Emergency alert raised for user {user_id}: {title}")
            return notification

        if db:
            return await _raise(db)

        with get_db_context() as session:
            return await _raise(session)


# Singleton instance
caregiver_escalation = CaregiverEscalation()
