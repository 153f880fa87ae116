"""
Missed-Dose Sweeper
Moves overdue pending doses to missed and raises the resulting alerts
"""

import logging
from typing import List, Optional
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import and_, update

from config import engine_config
from database import get_db_context
import models
from models import DoseStatus, NotificationCategory, NotificationChannel, NotificationPriority
from services.notification_service import format_local_time, format_template, notification_service
from tools.time_windows import get_zone, to_local, utcnow
from actions.caregiver_escalation import CaregiverEscalation, EscalationEvent, caregiver_escalation


logger = logging.getLogger(__name__)


class MissedDoseSweeper:
    """
    Single sweep path for missed-dose detection

    A dose is missed once it is still pending `GRACE_WINDOW_MINUTES` after
    its scheduled time. Every transition is guarded on `status='pending'`,
    so overlapping sweeps and a concurrent MarkTaken cannot double-process.
    """

    def __init__(self, escalation: Optional[CaregiverEscalation] = None):
        self.escalation = escalation or caregiver_escalation

    async def sweep_missed(
        self,
        user_id: Optional[int] = None,
        db: Optional[Session] = None,
        now: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[models.DoseInstance]:
        """
        Mark overdue doses missed, oldest first

        Args:
            user_id: Restrict the sweep to one user; None sweeps everyone
            db: Database session
            now: Reference time (naive UTC)
            limit: Batch bound, defaults to SWEEP_BATCH_LIMIT

        Returns:
            Doses this sweep transitioned to missed
        """
        async def _sweep(session: Session) -> List[models.DoseInstance]:
            current = now or utcnow()
            cutoff = current - timedelta(minutes=engine_config.GRACE_WINDOW_MINUTES)

            query = session.query(models.DoseInstance.id).filter(
                and_(
                    models.DoseInstance.status == DoseStatus.PENDING.value,
                    models.DoseInstance.scheduled_time < cutoff
                )
            )
            if user_id is not None:
                query = query.filter(models.DoseInstance.user_id == user_id)

            candidate_ids = [
                row.id for row in query.order_by(models.DoseInstance.scheduled_time)
                .limit(limit or engine_config.SWEEP_BATCH_LIMIT).all()
            ]

            missed = []
            for dose_id in candidate_ids:
                result = session.execute(
                    update(models.DoseInstance)
                    .where(
                        and_(
                            models.DoseInstance.id == dose_id,
                            models.DoseInstance.status == DoseStatus.PENDING.value
                        )
                    )
                    .values(status=DoseStatus.MISSED.value, updated_at=current)
                    .execution_options(synchronize_session=False)
                )
                session.commit()

                if result.rowcount == 0:
                    logger.debug(f"Dose {dose_id} already resolved by another writer")
                    continue

                dose = session.get(models.DoseInstance, dose_id, populate_existing=True)
                missed.append(dose)

                try:
                    await self._emit_missed_events(session, dose, current)
                except Exception:
                    session.rollback()
                    logger.exception(f"Failed to emit missed-dose notifications for dose {dose_id}")

            if missed:
                logger.info(f"Marked {len(missed)} doses missed (cutoff {cutoff})")
            return missed

        if db:
            return await _sweep(db)

        with get_db_context() as session:
            return await _sweep(session)

    async def _emit_missed_events(
        self,
        session: Session,
        dose: models.DoseInstance,
        now: datetime
    ) -> None:
        user = dose.user
        medication = dose.medication
        context = {
            "medication": medication.name,
            "dosage": medication.dosage,
            "scheduled_time": format_local_time(to_local(dose.scheduled_time, get_zone(user.timezone))),
        }
        key = f"missed:{dose.id}"

        await notification_service.create_notification(
            user_id=dose.user_id,
            category=NotificationCategory.MISSED_DOSE,
            title=format_template(NotificationCategory.MISSED_DOSE, "title", **context),
            message=format_template(NotificationCategory.MISSED_DOSE, "message", **context),
            channels=[NotificationChannel.PUSH, NotificationChannel.EMAIL, NotificationChannel.SMS],
            priority=NotificationPriority.HIGH,
            scheduled_for=now,
            dose_instance_id=dose.id,
            data={
                "medication_id": medication.id,
                "medication_name": medication.name,
                "sms_text": format_template(NotificationCategory.MISSED_DOSE, "sms", **context),
            },
            dedup_key=key,
            db=session
        )

        await self.escalation.escalate_to_caregivers(
            dose.user_id,
            EscalationEvent(
                category=NotificationCategory.MISSED_DOSE,
                key=key,
                priority=NotificationPriority.HIGH,
                context=context,
                dose_instance_id=dose.id,
            ),
            db=session,
            now=now
        )


# Singleton instance
missed_dose_sweeper = MissedDoseSweeper()
