"""
Tests for Caregiver Escalation
"""

import pytest

from models import Caregiver, Notification, NotificationCategory, NotificationChannel, NotificationPriority
from actions.caregiver_escalation import CaregiverEscalation, EscalationEvent, caregiver_channels


@pytest.fixture
def escalation():
    return CaregiverEscalation()


@pytest.mark.unit
class TestCaregiverChannels:
    """Tests for contact-method channel selection"""

    def test_email_and_phone(self):
        caregiver = Caregiver(name="A", email="a@example.com", phone_number="+1555")
        assert caregiver_channels(caregiver) == [NotificationChannel.EMAIL, NotificationChannel.SMS]

    def test_email_only(self):
        caregiver = Caregiver(name="A", email="a@example.com")
        assert caregiver_channels(caregiver) == [NotificationChannel.EMAIL]

    def test_allowed_filter(self):
        caregiver = Caregiver(name="A", email="a@example.com", phone_number="+1555")
        assert caregiver_channels(caregiver, [NotificationChannel.EMAIL]) == [NotificationChannel.EMAIL]


@pytest.mark.unit
@pytest.mark.database
class TestEscalateToCaregivers:
    """Tests for caregiver fan-out"""

    @pytest.mark.asyncio
    async def test_one_notification_per_reachable_caregiver(
        self, escalation, db_session, test_user, test_caregiver, now
    ):
        unreachable = Caregiver(user_id=test_user.id, name="No Contact", notifications_enabled=True)
        db_session.add(unreachable)
        db_session.commit()

        created = await escalation.escalate_to_caregivers(
            test_user.id,
            EscalationEvent(category=NotificationCategory.EMERGENCY, key="emergency:test", context={"message": "Fell"}),
            db=db_session,
            now=now
        )

        assert [n.caregiver_id for n in created] == [test_caregiver.id]
        assert created[0].message == "Hello John Doe, Jane Doe raised an emergency alert: Fell"

    @pytest.mark.asyncio
    async def test_same_event_escalates_once(self, escalation, db_session, test_user, test_caregiver, now):
        event = EscalationEvent(category=NotificationCategory.EMERGENCY, key="emergency:once")

        first = await escalation.escalate_to_caregivers(test_user.id, event, db=db_session, now=now)
        second = await escalation.escalate_to_caregivers(test_user.id, event, db=db_session, now=now)

        assert len(first) == 1
        assert second == []

    @pytest.mark.asyncio
    async def test_unknown_category_is_dropped(self, escalation, db_session, test_user, test_caregiver, now):
        created = await escalation.escalate_to_caregivers(
            test_user.id,
            EscalationEvent(category="fax_blast", key="bogus"),
            db=db_session,
            now=now
        )

        assert created == []
        assert db_session.query(Notification).count() == 0

    @pytest.mark.asyncio
    async def test_reminders_are_not_escalated(self, escalation, db_session, test_user, test_caregiver, now):
        created = await escalation.escalate_to_caregivers(
            test_user.id,
            EscalationEvent(category=NotificationCategory.MEDICATION_REMINDER, key="reminder:1"),
            db=db_session,
            now=now
        )

        assert created == []


@pytest.mark.unit
@pytest.mark.database
class TestRaiseEmergency:
    """Tests for emergency alerts"""

    @pytest.mark.asyncio
    async def test_critical_alert_for_user_and_caregivers(
        self, escalation, db_session, test_user, test_caregiver, now
    ):
        notification = await escalation.raise_emergency(
            test_user.id, "Fall detected", "Jane may need help", db=db_session, now=now
        )

        assert notification.priority == NotificationPriority.CRITICAL.value
        assert notification.channels == ["push", "email", "sms"]
        caregiver_notification = db_session.query(Notification).filter(
            Notification.caregiver_id == test_caregiver.id
        ).one()
        assert caregiver_notification.priority == "critical"
        assert caregiver_notification.dedup_key == f"{notification.dedup_key}:caregiver:{test_caregiver.id}"

    @pytest.mark.asyncio
    async def test_unknown_user_raises(self, escalation, db_session, now):
        with pytest.raises(LookupError):
            await escalation.raise_emergency(999, "t", "m", db=db_session, now=now)
