"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all dose engine tests.
Fixtures include database sessions, test clients, sample data, and fake
channel adapters.
"""

import os
import sys
import asyncio
from datetime import datetime, timedelta
from typing import Generator, Dict, Any, List, Optional, Callable

# Keep the application engine off the filesystem
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from models import (
    User, Medication, DoseInstance, Caregiver, NotificationPreference,
    Notification, DoseStatus
)
from tools.channels import (
    ChannelAdapters, ChannelDeliveryError, PushAdapter, EmailAdapter, SmsAdapter
)
from tools.time_windows import scheduled_bucket
from app import app


# Wednesday, 14 October 2026, 12:00 UTC
FIXED_NOW = datetime(2026, 10, 14, 12, 0, 0)


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a test database session"""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine
    )

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database override"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ==================== TIME FIXTURES ====================

@pytest.fixture
def now() -> datetime:
    """Fixed reference time (naive UTC) shared by engine calls in a test"""
    return FIXED_NOW


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def sample_user_data() -> Dict[str, Any]:
    """Sample user data for creating test users"""
    return {
        "email": "jane.doe@example.com",
        "full_name": "Jane Doe",
        "phone_number": "+15551234567",
        "timezone": "UTC",
        "weekly_reports_enabled": True,
        "is_active": True
    }


@pytest.fixture
def test_user(db_session: Session, sample_user_data: Dict) -> User:
    """Create and return a test user living in UTC"""
    user = User(**sample_user_data)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def ny_user(db_session: Session) -> User:
    """Create and return a test user living in New York"""
    user = User(
        email="ny.patient@example.com",
        full_name="Sam Rivera",
        phone_number="+12125550100",
        timezone="America/New_York",
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def lisinopril(db_session: Session, test_user: User, now: datetime) -> Medication:
    """Lisinopril 10mg at 08:00 and 20:00"""
    medication = Medication(
        user_id=test_user.id,
        name="Lisinopril",
        dosage="10mg",
        frequency="twice daily",
        times=["08:00", "20:00"],
        start_date=now.date() - timedelta(days=30),
        active=True
    )
    db_session.add(medication)
    db_session.commit()
    db_session.refresh(medication)
    return medication


@pytest.fixture
def make_medication(db_session: Session, now: datetime) -> Callable[..., Medication]:
    """Factory creating a Medication with overrides"""
    def _make(user: User, **overrides) -> Medication:
        values = {
            "user_id": user.id,
            "name": "Metformin",
            "dosage": "500mg",
            "frequency": "once daily",
            "times": ["09:00"],
            "start_date": now.date() - timedelta(days=30),
            "active": True,
        }
        values.update(overrides)
        medication = Medication(**values)
        db_session.add(medication)
        db_session.commit()
        db_session.refresh(medication)
        return medication
    return _make


@pytest.fixture
def test_caregiver(db_session: Session, test_user: User) -> Caregiver:
    """Caregiver reachable by email and SMS"""
    caregiver = Caregiver(
        user_id=test_user.id,
        name="John Doe",
        email="john.doe@example.com",
        phone_number="+15557654321",
        relationship_tag="spouse",
        notifications_enabled=True
    )
    db_session.add(caregiver)
    db_session.commit()
    db_session.refresh(caregiver)
    return caregiver


@pytest.fixture
def set_preferences(db_session: Session) -> Callable[..., NotificationPreference]:
    """Factory storing a NotificationPreference row with overrides"""
    def _set(user: User, **overrides) -> NotificationPreference:
        preference = NotificationPreference.defaults(user.id)
        for key, value in overrides.items():
            setattr(preference, key, value)
        db_session.add(preference)
        db_session.commit()
        db_session.refresh(preference)
        return preference
    return _set


@pytest.fixture
def make_dose(db_session: Session) -> Callable[..., DoseInstance]:
    """Factory creating a DoseInstance directly"""
    def _make(
        medication: Medication,
        scheduled_time: datetime,
        status: DoseStatus = DoseStatus.PENDING,
        taken_at: Optional[datetime] = None,
        archived_from: Optional[str] = None
    ) -> DoseInstance:
        dose = DoseInstance(
            user_id=medication.user_id,
            medication_id=medication.id,
            scheduled_time=scheduled_time,
            scheduled_bucket=scheduled_bucket(scheduled_time),
            status=status.value,
            taken_at=taken_at,
            archived_from=archived_from
        )
        db_session.add(dose)
        db_session.commit()
        db_session.refresh(dose)
        return dose
    return _make


@pytest.fixture
def make_notification(db_session: Session, now: datetime) -> Callable[..., Notification]:
    """Factory creating a pending Notification directly"""
    def _make(user: User, **overrides) -> Notification:
        values = {
            "user_id": user.id,
            "category": "missed_dose",
            "title": "Missed Medication Alert",
            "message": "You missed your Lisinopril (10mg) scheduled for 08:00.",
            "priority": "high",
            "channels": ["push", "email", "sms"],
            "data": {},
            "scheduled_for": now,
            "status": "pending",
        }
        values.update(overrides)
        notification = Notification(**values)
        db_session.add(notification)
        db_session.commit()
        db_session.refresh(notification)
        return notification
    return _make


# ==================== CHANNEL ADAPTER FIXTURES ====================

class RecordingPushAdapter(PushAdapter):
    """Push adapter that records every message"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send(self, user_id, title, body, priority, data=None):
        self.sent.append({"user_id": user_id, "title": title, "body": body, "priority": priority, "data": data})
        return f"push-{len(self.sent)}"


class RecordingEmailAdapter(EmailAdapter):
    """Email adapter that records every message"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send(self, address, subject, html):
        self.sent.append({"address": address, "subject": subject, "html": html})
        return f"email-{len(self.sent)}"


class RecordingSmsAdapter(SmsAdapter):
    """SMS adapter that records every message"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send(self, phone, text):
        self.sent.append({"phone": phone, "text": text})
        return f"sms-{len(self.sent)}"


class FailingEmailAdapter(EmailAdapter):
    """Email adapter whose provider always rejects"""

    def __init__(self):
        self.attempts = 0

    async def send(self, address, subject, html):
        self.attempts += 1
        raise ChannelDeliveryError(self.channel, "provider returned 503")


class CrashingEmailAdapter(EmailAdapter):
    """Email adapter that raises an error outside ChannelDeliveryError"""

    async def send(self, address, subject, html):
        raise RuntimeError("template engine exploded")


class HangingSmsAdapter(SmsAdapter):
    """SMS adapter that never answers in time"""

    async def send(self, phone, text):
        await asyncio.sleep(10)
        return "too-late"


@pytest.fixture
def fake_adapters() -> ChannelAdapters:
    """Recording adapters for every channel"""
    return ChannelAdapters(
        push=RecordingPushAdapter(),
        email=RecordingEmailAdapter(),
        sms=RecordingSmsAdapter()
    )


@pytest.fixture
def failing_email_adapters() -> ChannelAdapters:
    """Recording push/SMS with a failing email provider"""
    return ChannelAdapters(
        push=RecordingPushAdapter(),
        email=FailingEmailAdapter(),
        sms=RecordingSmsAdapter()
    )


@pytest.fixture
def crashing_email_adapters() -> ChannelAdapters:
    """Recording push/SMS with an email adapter that raises unexpectedly"""
    return ChannelAdapters(
        push=RecordingPushAdapter(),
        email=CrashingEmailAdapter(),
        sms=RecordingSmsAdapter()
    )


@pytest.fixture
def hanging_sms_adapters() -> ChannelAdapters:
    """Recording push/email with an SMS provider that times out"""
    return ChannelAdapters(
        push=RecordingPushAdapter(),
        email=RecordingEmailAdapter(),
        sms=HangingSmsAdapter()
    )


# ==================== PYTEST CONFIGURATION ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "database: mark test as requiring database")
