"""
Schedule Service
Expands medication definitions into dose instances and manages their lifecycle
"""

import logging
from typing import Dict, List, Optional, Any
from datetime import datetime, date, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import and_, update

from config import engine_config
from database import get_db_context, insert_ignore
import models
from models import DoseStatus
from tools.time_windows import (
    day_bounds_utc,
    get_zone,
    local_to_utc,
    local_today,
    parse_time_of_day,
    scheduled_bucket,
    to_local,
    utcnow,
)


logger = logging.getLogger(__name__)


class ScheduleService:
    """
    Service for dose instance generation and status transitions
    """

    def _get_user(self, session: Session, user_id: int) -> models.User:
        user = session.get(models.User, user_id)
        if user is None:
            raise LookupError(f"User {user_id} not found")
        return user

    def _generate(
        self,
        session: Session,
        user_id: int,
        target_date: Optional[date],
        now: datetime
    ) -> List[models.DoseInstance]:
        user = self._get_user(session, user_id)
        zone = get_zone(user.timezone)
        day = target_date or local_today(zone, now)
        day_start, day_end = day_bounds_utc(day, zone)

        medications = [
            medication for medication in session.query(models.Medication).filter(
                and_(
                    models.Medication.user_id == user_id,
                    models.Medication.active == True
                )
            ).order_by(models.Medication.id).all()
            if medication.covers(day)
        ]

        if not medications:
            logger.debug(f"No active medications for user {user_id} on {day}")
            return []

        existing = session.query(models.DoseInstance).filter(
            and_(
                models.DoseInstance.user_id == user_id,
                models.DoseInstance.scheduled_time >= day_start,
                models.DoseInstance.scheduled_time < day_end,
                models.DoseInstance.status != DoseStatus.ARCHIVED.value
            )
        ).all()

        tolerance = timedelta(seconds=engine_config.DEDUP_TOLERANCE_SECONDS)
        known = [(dose.medication_id, dose.scheduled_time) for dose in existing]
        created_ids = []

        for medication in medications:
            times = medication.times
            if not isinstance(times, list):
                logger.warning(f"Invalid times for medication {medication.name}: {times!r}")
                continue

            for raw_time in times:
                try:
                    time_of_day = parse_time_of_day(raw_time)
                except ValueError as e:
                    logger.warning(f"Skipping time for medication {medication.name} ({medication.id}): {e}")
                    continue

                scheduled = local_to_utc(day, time_of_day, zone)
                if any(
                    med_id == medication.id and abs(ts - scheduled) <= tolerance
                    for med_id, ts in known
                ):
                    continue

                new_id = insert_ignore(session, models.DoseInstance, {
                    "user_id": user_id,
                    "medication_id": medication.id,
                    "scheduled_time": scheduled,
                    "scheduled_bucket": scheduled_bucket(scheduled),
                    "status": DoseStatus.PENDING.value,
                })
                known.append((medication.id, scheduled))

                if new_id is None:
                    # A concurrent run inserted the same bucket first
                    logger.info(
                        f"Dose for medication {medication.id} at {scheduled} already exists, skipped"
                    )
                    continue
                created_ids.append(new_id)

        session.commit()

        if not created_ids:
            return []

        logger.info(f"Generated {len(created_ids)} dose instances for user {user_id} on {day}")
        return session.query(models.DoseInstance).filter(
            models.DoseInstance.id.in_(created_ids)
        ).order_by(models.DoseInstance.scheduled_time).all()

    async def ensure_day_schedule(
        self,
        user_id: int,
        target_date: Optional[date] = None,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> List[models.DoseInstance]:
        """
        Make sure every dose obligation of `target_date` exists

        Safe to call repeatedly and concurrently: an instance within the
        dedup tolerance of the computed timestamp suppresses creation, and the
        (medication_id, scheduled_bucket) unique constraint catches races.

        Args:
            user_id: Owner of the medications
            target_date: Local calendar date; defaults to the user's today
            db: Database session
            now: Reference time (naive UTC)

        Returns:
            Newly created DoseInstance rows
        """
        from actions.reminder_engine import reminder_engine

        current = now or utcnow()

        async def _ensure(session: Session) -> List[models.DoseInstance]:
            created = self._generate(session, user_id, target_date, current)
            if created:
                await reminder_engine.schedule_upcoming_reminders(user_id, db=session, now=current)
            return created

        if db:
            return await _ensure(db)

        with get_db_context() as session:
            return await _ensure(session)

    async def ensure_upcoming_schedule(
        self,
        user_id: int,
        days: Optional[int] = None,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> List[models.DoseInstance]:
        """Generate today plus the following `days` local dates"""
        current = now or utcnow()
        lookahead = engine_config.GENERATION_LOOKAHEAD_DAYS if days is None else days

        async def _ensure(session: Session) -> List[models.DoseInstance]:
            user = self._get_user(session, user_id)
            today = local_today(get_zone(user.timezone), current)
            created = []
            for offset in range(lookahead + 1):
                created.extend(await self.ensure_day_schedule(
                    user_id, today + timedelta(days=offset), db=session, now=current
                ))
            return created

        if db:
            return await _ensure(db)

        with get_db_context() as session:
            return await _ensure(session)

    async def mark_taken(
        self,
        dose_instance_id: int,
        taken_at: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.DoseInstance:
        """
        Mark a dose as taken

        Allowed from pending or missed (a late dose still counts). Repeating
        the call on a taken dose is a no-op.

        Raises:
            LookupError: unknown dose instance
            ValueError: the dose is archived
        """
        def _mark(session: Session) -> models.DoseInstance:
            current = utcnow()
            result = session.execute(
                update(models.DoseInstance)
                .where(
                    and_(
                        models.DoseInstance.id == dose_instance_id,
                        models.DoseInstance.status.in_(
                            [DoseStatus.PENDING.value, DoseStatus.MISSED.value]
                        )
                    )
                )
                .values(
                    status=DoseStatus.TAKEN.value,
                    taken_at=taken_at or current,
                    updated_at=current
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()

            dose = session.get(models.DoseInstance, dose_instance_id, populate_existing=True)
            if dose is None:
                raise LookupError(f"Dose instance {dose_instance_id} not found")

            if result.rowcount == 0 and dose.status != DoseStatus.TAKEN.value:
                raise ValueError(
                    f"Dose instance {dose_instance_id} is {dose.status} and cannot be marked taken"
                )

            if result.rowcount:
                logger.info(f"Dose instance {dose_instance_id} marked taken")
            return dose

        if db:
            return _mark(db)

        with get_db_context() as session:
            return _mark(session)

    async def archive_old_instances(
        self,
        user_id: Optional[int] = None,
        days: Optional[int] = None,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> int:
        """
        Archive taken/missed instances older than the retention age

        Archival is a status change; the terminal status is kept in
        `archived_from`.
        """
        def _archive(session: Session) -> int:
            retention = engine_config.ARCHIVE_AFTER_DAYS if days is None else days
            cutoff = (now or utcnow()) - timedelta(days=retention)

            conditions = [
                models.DoseInstance.status.in_([DoseStatus.TAKEN.value, DoseStatus.MISSED.value]),
                models.DoseInstance.scheduled_time < cutoff,
            ]
            if user_id is not None:
                conditions.append(models.DoseInstance.user_id == user_id)

            result = session.execute(
                update(models.DoseInstance)
                .where(and_(*conditions))
                .values(
                    archived_from=models.DoseInstance.status,
                    status=DoseStatus.ARCHIVED.value
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()

            if result.rowcount:
                logger.info(f"Archived {result.rowcount} dose instances older than {cutoff}")
            return result.rowcount

        if db:
            return _archive(db)

        with get_db_context() as session:
            return _archive(session)

    def _describe(self, dose: models.DoseInstance, zone, now: datetime) -> Dict[str, Any]:
        medication = dose.medication
        local_time = to_local(dose.scheduled_time, zone)
        return {
            "dose_instance_id": dose.id,
            "medication_id": dose.medication_id,
            "medication_name": medication.name if medication else "Unknown",
            "dosage": medication.dosage if medication else "",
            "scheduled_time": dose.scheduled_time,
            "local_time": local_time.strftime("%H:%M"),
            "status": dose.status,
            "taken_at": dose.taken_at,
            "minutes_until": int((dose.scheduled_time - now).total_seconds() // 60),
        }

    async def get_today(
        self,
        user_id: int,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Get today's dose instances for a user

        Returns:
            List of doses with medication details, in scheduled order
        """
        def _get(session: Session) -> List[Dict[str, Any]]:
            current = now or utcnow()
            user = self._get_user(session, user_id)
            zone = get_zone(user.timezone)
            day_start, day_end = day_bounds_utc(local_today(zone, current), zone)

            doses = session.query(models.DoseInstance).filter(
                and_(
                    models.DoseInstance.user_id == user_id,
                    models.DoseInstance.scheduled_time >= day_start,
                    models.DoseInstance.scheduled_time < day_end,
                    models.DoseInstance.status != DoseStatus.ARCHIVED.value
                )
            ).order_by(models.DoseInstance.scheduled_time).all()

            return [self._describe(dose, zone, current) for dose in doses]

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_upcoming(
        self,
        user_id: int,
        hours: int = 24,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Pending doses scheduled within the next `hours`"""
        def _get(session: Session) -> List[Dict[str, Any]]:
            current = now or utcnow()
            user = self._get_user(session, user_id)
            zone = get_zone(user.timezone)

            doses = session.query(models.DoseInstance).filter(
                and_(
                    models.DoseInstance.user_id == user_id,
                    models.DoseInstance.status == DoseStatus.PENDING.value,
                    models.DoseInstance.scheduled_time >= current,
                    models.DoseInstance.scheduled_time <= current + timedelta(hours=hours)
                )
            ).order_by(models.DoseInstance.scheduled_time).all()

            return [self._describe(dose, zone, current) for dose in doses]

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)


# Singleton instance
schedule_service = ScheduleService()
