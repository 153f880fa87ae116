"""
Adherence Service
Read-only adherence statistics: window percentages, streaks and breakdowns
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from datetime import datetime, date, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import and_

from config import engine_config
from database import get_db_context
import models
from models import DoseStatus
from tools.time_windows import (
    day_bounds_utc,
    get_zone,
    local_today,
    month_bounds,
    to_local,
    utcnow,
    week_bounds,
)


logger = logging.getLogger(__name__)


def _percentage(taken: int, scheduled: int) -> float:
    # Nothing scheduled is vacuously perfect adherence
    if scheduled == 0:
        return 100.0
    return round(taken / scheduled * 100, 1)


@dataclass
class AdherenceWindow:
    """Adherence over [start, end), counting only doses already due"""
    start: datetime
    end: datetime
    scheduled: int = 0
    taken: int = 0
    missed: int = 0
    pending: int = 0

    @property
    def percentage(self) -> float:
        return _percentage(self.taken, self.scheduled)


@dataclass
class Streak:
    """Consecutive fully-taken days ending yesterday"""
    current: int
    lookback_days: int
    last_counted_day: Optional[date] = None


class AdherenceService:
    """
    Service for adherence tracking and analysis

    Archived instances count by the outcome they had before archival.
    """

    def _get_zone(self, session: Session, user_id: int):
        user = session.get(models.User, user_id)
        if user is None:
            raise LookupError(f"User {user_id} not found")
        return get_zone(user.timezone)

    def _due_instances(
        self,
        session: Session,
        user_id: int,
        start: datetime,
        end: datetime,
        now: datetime
    ) -> List[models.DoseInstance]:
        upper = min(end, now)
        if upper <= start:
            return []
        return session.query(models.DoseInstance).filter(
            and_(
                models.DoseInstance.user_id == user_id,
                models.DoseInstance.scheduled_time >= start,
                models.DoseInstance.scheduled_time < upper
            )
        ).all()

    def _tally(self, start: datetime, end: datetime, doses: List[models.DoseInstance]) -> AdherenceWindow:
        window = AdherenceWindow(start=start, end=end, scheduled=len(doses))
        for dose in doses:
            outcome = dose.outcome
            if outcome == DoseStatus.TAKEN.value:
                window.taken += 1
            elif outcome == DoseStatus.MISSED.value:
                window.missed += 1
            elif outcome == DoseStatus.PENDING.value:
                window.pending += 1
        return window

    async def compute_adherence(
        self,
        user_id: int,
        start: datetime,
        end: datetime,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> AdherenceWindow:
        """
        Calculate adherence for a window

        Args:
            user_id: User ID
            start: Window start (naive UTC, inclusive)
            end: Window end (naive UTC, exclusive)
            db: Database session
            now: Doses scheduled at or after this instant are not counted

        Returns:
            AdherenceWindow
        """
        def _compute(session: Session) -> AdherenceWindow:
            doses = self._due_instances(session, user_id, start, end, now or utcnow())
            return self._tally(start, end, doses)

        if db:
            return _compute(db)

        with get_db_context() as session:
            return _compute(session)

    def _local_window(
        self,
        session: Session,
        user_id: int,
        window: str,
        now: datetime
    ) -> Tuple[datetime, datetime]:
        zone = self._get_zone(session, user_id)
        today = local_today(zone, now)

        if window == "today":
            return day_bounds_utc(today, zone)
        if window == "week":
            first, after = week_bounds(today)
        elif window == "month":
            first, after = month_bounds(today)
        else:
            raise ValueError(f"Unknown adherence window: {window!r}")

        return day_bounds_utc(first, zone)[0], day_bounds_utc(after, zone)[0]

    async def get_adherence(
        self,
        user_id: int,
        window: str = "today",
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> AdherenceWindow:
        """Adherence for the user's current local today, week or month"""
        def _get(session: Session) -> AdherenceWindow:
            current = now or utcnow()
            start, end = self._local_window(session, user_id, window, current)
            doses = self._due_instances(session, user_id, start, end, current)
            return self._tally(start, end, doses)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_today_adherence(self, user_id: int, db: Optional[Session] = None, now: Optional[datetime] = None) -> AdherenceWindow:
        return await self.get_adherence(user_id, "today", db=db, now=now)

    async def get_week_adherence(self, user_id: int, db: Optional[Session] = None, now: Optional[datetime] = None) -> AdherenceWindow:
        return await self.get_adherence(user_id, "week", db=db, now=now)

    async def get_month_adherence(self, user_id: int, db: Optional[Session] = None, now: Optional[datetime] = None) -> AdherenceWindow:
        return await self.get_adherence(user_id, "month", db=db, now=now)

    async def get_streak(
        self,
        user_id: int,
        db: Optional[Session] = None,
        now: Optional[datetime] = None,
        lookback_days: Optional[int] = None
    ) -> Streak:
        """
        Count consecutive fully-adherent days

        Scans backward from yesterday in the user's local calendar. Days with
        no instances are skipped without breaking the streak; the first day
        with any non-taken instance ends it.
        """
        def _get_streak(session: Session) -> Streak:
            lookback = lookback_days or engine_config.STREAK_LOOKBACK_DAYS
            current = now or utcnow()
            zone = self._get_zone(session, user_id)
            yesterday = local_today(zone, current) - timedelta(days=1)
            oldest = yesterday - timedelta(days=lookback - 1)

            range_start = day_bounds_utc(oldest, zone)[0]
            range_end = day_bounds_utc(yesterday, zone)[1]

            doses = session.query(models.DoseInstance).filter(
                and_(
                    models.DoseInstance.user_id == user_id,
                    models.DoseInstance.scheduled_time >= range_start,
                    models.DoseInstance.scheduled_time < range_end
                )
            ).all()

            by_day: Dict[date, List[str]] = defaultdict(list)
            for dose in doses:
                by_day[to_local(dose.scheduled_time, zone).date()].append(dose.outcome)

            streak = 0
            last_counted = None
            for offset in range(lookback):
                day = yesterday - timedelta(days=offset)
                outcomes = by_day.get(day)
                if not outcomes:
                    continue
                if any(outcome != DoseStatus.TAKEN.value for outcome in outcomes):
                    break
                streak += 1
                last_counted = day

            return Streak(current=streak, lookback_days=lookback, last_counted_day=last_counted)

        if db:
            return _get_streak(db)

        with get_db_context() as session:
            return _get_streak(session)

    async def get_medication_breakdown(
        self,
        user_id: int,
        start: datetime,
        end: datetime,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Per-medication adherence for a window

        Returns:
            One entry per medication with due doses, sorted by name
        """
        def _breakdown(session: Session) -> List[Dict[str, Any]]:
            doses = self._due_instances(session, user_id, start, end, now or utcnow())

            grouped: Dict[int, List[models.DoseInstance]] = defaultdict(list)
            for dose in doses:
                grouped[dose.medication_id].append(dose)

            breakdown = []
            for medication_id, med_doses in grouped.items():
                medication = session.get(models.Medication, medication_id)
                window = self._tally(start, end, med_doses)
                breakdown.append({
                    "medication_id": medication_id,
                    "name": medication.name if medication else "Unknown",
                    "dosage": medication.dosage if medication else "",
                    "scheduled": window.scheduled,
                    "taken": window.taken,
                    "missed": window.missed,
                    "adherence_percentage": window.percentage,
                })

            return sorted(breakdown, key=lambda entry: entry["name"])

        if db:
            return _breakdown(db)

        with get_db_context() as session:
            return _breakdown(session)


# Singleton instance
adherence_service = AdherenceService()
