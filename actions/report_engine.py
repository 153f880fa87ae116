"""
Report Engine
Weekly adherence reports for patients and their caregivers
"""

import logging
from typing import Optional
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import and_

from database import get_db_context, insert_ignore
import models
from models import NotificationCategory, NotificationChannel, NotificationPriority
from services.adherence_service import adherence_service
from services.notification_service import format_template, notification_service
from tools.time_windows import day_bounds_utc, get_zone, local_today, utcnow, week_bounds
from actions.caregiver_escalation import CaregiverEscalation, EscalationEvent, caregiver_escalation


logger = logging.getLogger(__name__)


class ReportEngine:
    """
    Builds the report for the previous calendar week

    The WeeklyReport row is upserted on (user_id, week_start); notifications
    carry the dedup key `report:<user_id>:<week_start>`, so rerunning a week
    refreshes the numbers without notifying twice.
    """

    def __init__(self, escalation: Optional[CaregiverEscalation] = None):
        self.escalation = escalation or caregiver_escalation

    async def generate_weekly_report(
        self,
        user_id: int,
        db: Optional[Session] = None,
        now: Optional[datetime] = None,
        force: bool = False
    ) -> Optional[models.WeeklyReport]:
        """
        Generate last week's report for a user

        Args:
            user_id: User ID
            db: Database session
            now: Reference time (naive UTC)
            force: Generate even when the user disabled weekly reports

        Returns:
            The stored WeeklyReport, or None when reports are disabled
        """
        async def _generate(session: Session) -> Optional[models.WeeklyReport]:
            current = now or utcnow()
            user = session.get(models.User, user_id)
            if user is None:
                raise LookupError(f"User {user_id} not found")

            if not user.weekly_reports_enabled and not force:
                logger.debug(f"Weekly reports disabled for user {user_id}")
                return None

            zone = get_zone(user.timezone)
            this_week_start, _ = week_bounds(local_today(zone, current))
            week_start = this_week_start - timedelta(days=7)
            week_end = this_week_start - timedelta(days=1)
            start = day_bounds_utc(week_start, zone)[0]
            end = day_bounds_utc(this_week_start, zone)[0]

            window = await adherence_service.compute_adherence(user_id, start, end, db=session, now=current)
            breakdown = await adherence_service.get_medication_breakdown(
                user_id, start, end, db=session, now=current
            )

            values = {
                "week_end": week_end,
                "total_doses": window.scheduled,
                "doses_taken": window.taken,
                "doses_missed": window.missed,
                "adherence_percentage": window.percentage,
                "report_data": {
                    "medications": breakdown,
                    "week_summary": {
                        "start_date": week_start.isoformat(),
                        "end_date": week_end.isoformat(),
                        "adherence_score": round(window.percentage),
                    },
                },
                "generated_at": current,
            }

            created = insert_ignore(session, models.WeeklyReport, {
                "user_id": user_id,
                "week_start": week_start,
                **values,
            })
            report = session.query(models.WeeklyReport).filter(
                and_(
                    models.WeeklyReport.user_id == user_id,
                    models.WeeklyReport.week_start == week_start
                )
            ).populate_existing().one()
            if created is None:
                for field_name, value in values.items():
                    setattr(report, field_name, value)
            session.commit()

            logger.info(
                f"Weekly report for user {user_id} ({week_start} - {week_end}): "
                f"{window.taken}/{window.scheduled} doses, {window.percentage}%"
            )

            if window.scheduled == 0:
                logger.info(f"No doses scheduled for user {user_id} last week, report not sent")
                return report

            context = {
                "adherence": round(window.percentage),
                "taken": window.taken,
                "total": window.scheduled,
            }
            key = f"report:{user_id}:{week_start.isoformat()}"

            await notification_service.create_notification(
                user_id=user_id,
                category=NotificationCategory.ADHERENCE_REPORT,
                title=format_template(NotificationCategory.ADHERENCE_REPORT, "title", **context),
                message=format_template(NotificationCategory.ADHERENCE_REPORT, "message", **context),
                channels=[NotificationChannel.PUSH, NotificationChannel.EMAIL],
                priority=NotificationPriority.LOW,
                scheduled_for=current,
                data={"weekly_report_id": report.id, "week_start": week_start.isoformat()},
                dedup_key=key,
                db=session
            )

            await self.escalation.escalate_to_caregivers(
                user_id,
                EscalationEvent(
                    category=NotificationCategory.ADHERENCE_REPORT,
                    key=key,
                    priority=NotificationPriority.LOW,
                    context=context,
                    channels=[NotificationChannel.EMAIL],
                ),
                db=session,
                now=current
            )
            return report

        if db:
            return await _generate(db)

        with get_db_context() as session:
            return await _generate(session)


# Singleton instance
report_engine = ReportEngine()
