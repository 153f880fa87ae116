"""
Engine Trigger
Entry point for scheduled runs (cron, API, CLI)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from sqlalchemy.orm import Session
from sqlalchemy import and_, func

from config import engine_config
from database import get_db_context
import models
from models import NotificationCategory
from services.schedule_service import schedule_service
from tools.time_windows import utcnow
from actions.reminder_engine import reminder_engine
from actions.missed_dose_sweeper import missed_dose_sweeper
from actions.notification_dispatcher import NotificationDispatcher, notification_dispatcher
from actions.report_engine import report_engine


logger = logging.getLogger(__name__)


class TriggerMode(str, Enum):
    """What a trigger run does"""
    GENERATE = "generate"
    SWEEP = "sweep"
    REPORT = "report"


@dataclass
class TriggerRequest:
    """Trigger input; no user_id means every active user"""
    mode: TriggerMode = TriggerMode.GENERATE
    user_id: Optional[int] = None
    target_date: Optional[date] = None


@dataclass
class TriggerSummary:
    """Outcome of one trigger run"""
    mode: TriggerMode
    users_processed: int = 0
    doses_created: int = 0
    doses_missed: int = 0
    doses_archived: int = 0
    reminders_scheduled: int = 0
    reports_generated: int = 0
    notifications: Dict[str, int] = field(default_factory=dict)
    failed_users: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "users_processed": self.users_processed,
            "doses_created": self.doses_created,
            "doses_missed": self.doses_missed,
            "doses_archived": self.doses_archived,
            "reminders_scheduled": self.reminders_scheduled,
            "reports_generated": self.reports_generated,
            "notifications": self.notifications,
            "failed_users": self.failed_users,
        }


class EngineTrigger:
    """
    Runs one engine pass

    generate: today's (or target_date's) schedule plus the lookahead days,
              then upcoming reminders
    sweep:    missed-dose detection, retention archival, then reminders for
              doses that entered the reminder horizon since the last run
    report:   previous week's adherence report

    Every mode finishes by dispatching due notifications. Users are processed
    independently; any error for one user is logged, rolled back and the
    batch continues.
    """

    def __init__(self, dispatcher: Optional[NotificationDispatcher] = None):
        self.dispatcher = dispatcher or notification_dispatcher

    def _user_ids(self, session: Session, request: TriggerRequest) -> List[int]:
        if request.user_id is not None:
            if session.get(models.User, request.user_id) is None:
                raise LookupError(f"User {request.user_id} not found")
            return [request.user_id]
        rows = session.query(models.User.id).filter(
            models.User.is_active == True
        ).order_by(models.User.id).all()
        return [row.id for row in rows]

    def _reminder_count(self, session: Session, user_id: int) -> int:
        return session.query(func.count(models.Notification.id)).filter(
            and_(
                models.Notification.user_id == user_id,
                models.Notification.category == NotificationCategory.MEDICATION_REMINDER.value
            )
        ).scalar()

    async def _run_for_user(
        self,
        session: Session,
        user_id: int,
        request: TriggerRequest,
        summary: TriggerSummary,
        now: datetime
    ) -> None:
        if request.mode == TriggerMode.GENERATE:
            reminders_before = self._reminder_count(session, user_id)
            if request.target_date is not None:
                created = await schedule_service.ensure_day_schedule(
                    user_id, request.target_date, db=session, now=now
                )
            else:
                created = await schedule_service.ensure_upcoming_schedule(
                    user_id, engine_config.GENERATION_LOOKAHEAD_DAYS, db=session, now=now
                )
            summary.doses_created += len(created)
            await reminder_engine.schedule_upcoming_reminders(user_id, db=session, now=now)
            # Generation may already have queued some of them
            summary.reminders_scheduled += self._reminder_count(session, user_id) - reminders_before

        elif request.mode == TriggerMode.SWEEP:
            missed = await missed_dose_sweeper.sweep_missed(user_id=user_id, db=session, now=now)
            summary.doses_missed += len(missed)
            summary.doses_archived += await schedule_service.archive_old_instances(
                user_id=user_id, db=session, now=now
            )
            # Doses generated by an earlier run enter the horizon here
            reminders = await reminder_engine.schedule_upcoming_reminders(user_id, db=session, now=now)
            summary.reminders_scheduled += len(reminders)

        elif request.mode == TriggerMode.REPORT:
            report = await report_engine.generate_weekly_report(user_id, db=session, now=now)
            if report is not None:
                summary.reports_generated += 1

    async def run(
        self,
        request: TriggerRequest,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> TriggerSummary:
        """
        Execute a trigger request

        Raises:
            LookupError: the requested user does not exist
        """
        current = now or utcnow()
        mode = TriggerMode(request.mode)
        summary = TriggerSummary(mode=mode)

        async def _run(session: Session) -> TriggerSummary:
            user_ids = self._user_ids(session, request)
            logger.info(f"Engine trigger ({mode.value}) for {len(user_ids)} users")

            for user_id in user_ids:
                try:
                    await self._run_for_user(session, user_id, request, summary, current)
                    summary.users_processed += 1
                except Exception:
                    session.rollback()
                    summary.failed_users.append(user_id)
                    logger.exception(f"Engine trigger ({mode.value}) failed for user {user_id}")

            try:
                summary.notifications = await self.dispatcher.process_due_notifications(
                    user_id=request.user_id, db=session, now=current
                )
            except Exception:
                session.rollback()
                logger.exception("Dispatching due notifications failed")

            logger.info(f"Engine trigger ({mode.value}) finished: {summary.to_dict()}")
            return summary

        if db:
            return await _run(db)

        with get_db_context() as session:
            return await _run(session)


# Singleton instance
engine_trigger = EngineTrigger()
