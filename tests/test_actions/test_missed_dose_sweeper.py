"""
Tests for Missed-Dose Sweeper
Tests the grace window, guarded transitions and missed-dose events
"""

import pytest
from datetime import timedelta

from models import DoseStatus, Notification
from actions.missed_dose_sweeper import MissedDoseSweeper
from actions.caregiver_escalation import CaregiverEscalation


@pytest.fixture
def sweeper():
    """Create sweeper instance"""
    return MissedDoseSweeper(escalation=CaregiverEscalation())


def notifications_for(db_session, dose):
    return db_session.query(Notification).filter(
        Notification.dose_instance_id == dose.id
    ).order_by(Notification.id).all()


@pytest.mark.unit
@pytest.mark.database
class TestGraceWindow:
    """Tests for the missed threshold"""

    @pytest.mark.asyncio
    async def test_untouched_inside_grace_window(self, sweeper, db_session, lisinopril, make_dose, now):
        dose = make_dose(lisinopril, now - timedelta(minutes=29))

        missed = await sweeper.sweep_missed(db=db_session, now=now)

        db_session.refresh(dose)
        assert missed == []
        assert dose.status == DoseStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_missed_after_grace_window(self, sweeper, db_session, lisinopril, make_dose, now):
        dose = make_dose(lisinopril, now - timedelta(minutes=31))

        missed = await sweeper.sweep_missed(db=db_session, now=now)

        assert [d.id for d in missed] == [dose.id]
        assert missed[0].status == DoseStatus.MISSED.value

    @pytest.mark.asyncio
    async def test_taken_dose_is_never_reclassified(self, sweeper, db_session, lisinopril, make_dose, now):
        dose = make_dose(lisinopril, now - timedelta(hours=3), status=DoseStatus.TAKEN, taken_at=now - timedelta(hours=3))

        assert await sweeper.sweep_missed(db=db_session, now=now) == []

        db_session.refresh(dose)
        assert dose.status == DoseStatus.TAKEN.value

    @pytest.mark.asyncio
    async def test_second_sweep_is_a_no_op(self, sweeper, db_session, lisinopril, make_dose, now):
        make_dose(lisinopril, now - timedelta(hours=1))

        first = await sweeper.sweep_missed(db=db_session, now=now)
        second = await sweeper.sweep_missed(db=db_session, now=now)

        assert len(first) == 1
        assert second == []
        assert db_session.query(Notification).count() == 1

    @pytest.mark.asyncio
    async def test_oldest_first_within_limit(self, sweeper, db_session, lisinopril, make_dose, now):
        newest = make_dose(lisinopril, now - timedelta(hours=1))
        oldest = make_dose(lisinopril, now - timedelta(hours=3))
        middle = make_dose(lisinopril, now - timedelta(hours=2))

        missed = await sweeper.sweep_missed(db=db_session, now=now, limit=2)

        assert [d.id for d in missed] == [oldest.id, middle.id]
        db_session.refresh(newest)
        assert newest.status == DoseStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_user_scope(self, sweeper, db_session, lisinopril, ny_user, make_medication, make_dose, now):
        other = make_medication(ny_user)
        make_dose(lisinopril, now - timedelta(hours=1))
        untouched = make_dose(other, now - timedelta(hours=1))

        missed = await sweeper.sweep_missed(user_id=lisinopril.user_id, db=db_session, now=now)

        assert len(missed) == 1
        db_session.refresh(untouched)
        assert untouched.status == DoseStatus.PENDING.value


@pytest.mark.unit
@pytest.mark.database
class TestMissedDoseEvents:
    """Tests for notifications emitted on a miss"""

    @pytest.mark.asyncio
    async def test_user_notification(self, sweeper, db_session, lisinopril, make_dose, now):
        dose = make_dose(lisinopril, now - timedelta(hours=4))

        await sweeper.sweep_missed(db=db_session, now=now)

        [notification] = notifications_for(db_session, dose)
        assert notification.category == "missed_dose"
        assert notification.priority == "high"
        assert notification.channels == ["push", "email", "sms"]
        assert notification.caregiver_id is None
        assert notification.dedup_key == f"missed:{dose.id}"
        assert "Lisinopril (10mg)" in notification.message
        assert "08:00" in notification.message
        assert notification.scheduled_for == now

    @pytest.mark.asyncio
    async def test_escalates_to_enabled_caregivers(
        self, sweeper, db_session, lisinopril, test_caregiver, make_dose, now
    ):
        dose = make_dose(lisinopril, now - timedelta(hours=4))

        await sweeper.sweep_missed(db=db_session, now=now)

        user_notification, caregiver_notification = notifications_for(db_session, dose)
        assert user_notification.caregiver_id is None
        assert caregiver_notification.caregiver_id == test_caregiver.id
        assert caregiver_notification.channels == ["email", "sms"]
        assert caregiver_notification.dedup_key == f"missed:{dose.id}:caregiver:{test_caregiver.id}"
        assert caregiver_notification.title == "Missed dose: Jane Doe"

    @pytest.mark.asyncio
    async def test_disabled_caregiver_is_not_notified(
        self, sweeper, db_session, lisinopril, test_caregiver, make_dose, now
    ):
        test_caregiver.notifications_enabled = False
        db_session.commit()
        dose = make_dose(lisinopril, now - timedelta(hours=4))

        await sweeper.sweep_missed(db=db_session, now=now)

        assert len(notifications_for(db_session, dose)) == 1

    @pytest.mark.asyncio
    async def test_emission_error_does_not_stop_the_sweep(self, db_session, lisinopril, make_dose, now):
        class BrokenOnceEscalation(CaregiverEscalation):
            calls = 0

            async def escalate_to_caregivers(self, user_id, event, db=None, now=None):
                BrokenOnceEscalation.calls += 1
                if BrokenOnceEscalation.calls == 1:
                    raise AttributeError("caregiver row has no contact list")
                return await super().escalate_to_caregivers(user_id, event, db=db, now=now)

        older = make_dose(lisinopril, now - timedelta(hours=6))
        newer = make_dose(lisinopril, now - timedelta(hours=4))

        missed = await MissedDoseSweeper(escalation=BrokenOnceEscalation()).sweep_missed(db=db_session, now=now)

        db_session.refresh(older)
        db_session.refresh(newer)
        assert [dose.id for dose in missed] == [older.id, newer.id]
        assert older.status == DoseStatus.MISSED.value
        assert newer.status == DoseStatus.MISSED.value
        assert len(notifications_for(db_session, newer)) == 1
