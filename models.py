"""
Database Models
SQLAlchemy ORM models for the MedCare Dose Engine
"""

from sqlalchemy import Column, Integer, String, Boolean, Float, DateTime, ForeignKey, Text, Date, Time, Index, UniqueConstraint, JSON
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from enum import Enum as PyEnum

from config import TableNames
from database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ==================== ENUMS ====================

class DoseStatus(str, PyEnum):
    """Status of a concrete dose obligation"""
    PENDING = "pending"
    TAKEN = "taken"
    MISSED = "missed"
    ARCHIVED = "archived"


class NotificationCategory(str, PyEnum):
    """Logical notification categories, each toggled by a preference"""
    MEDICATION_REMINDER = "medication_reminder"
    MISSED_DOSE = "missed_dose"
    ADHERENCE_REPORT = "adherence_report"
    EMERGENCY = "emergency"


class NotificationPriority(str, PyEnum):
    """Notification priority levels"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationChannel(str, PyEnum):
    """Delivery channels"""
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"


class NotificationStatus(str, PyEnum):
    """Lifecycle of a logical notification"""
    PENDING = "pending"
    DISPATCHING = "dispatching"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class DeliveryStatus(str, PyEnum):
    """Outcome of one channel attempt"""
    DELIVERED = "delivered"
    FAILED = "failed"


# ==================== MODELS ====================

class User(Base):
    """Patient account that owns medications, caregivers and preferences"""
    __tablename__ = TableNames.USERS

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(200))
    phone_number = Column(String(20))

    # IANA zone; medication times and quiet hours are local to it
    timezone = Column(String(50), default="UTC", nullable=False)
    weekly_reports_enabled = Column(Boolean, default=True)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    medications = relationship("Medication", back_populates="user", cascade="all, delete-orphan")
    dose_instances = relationship("DoseInstance", back_populates="user", cascade="all, delete-orphan")
    caregivers = relationship("Caregiver", back_populates="user", cascade="all, delete-orphan")
    notification_preference = relationship(
        "NotificationPreference", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        return self.full_name or self.email.split("@")[0]


class Medication(Base):
    """Recurring medication definition"""
    __tablename__ = TableNames.MEDICATIONS

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=False)  # e.g., "10mg"
    frequency = Column(String(100))  # display text, e.g. "twice daily"

    # List of "HH:MM" strings, local to the user
    times = Column(JSON, default=list, nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date)
    active = Column(Boolean, default=True)
    notes = Column(Text)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    user = relationship("User", back_populates="medications")
    dose_instances = relationship("DoseInstance", back_populates="medication")

    __table_args__ = (
        Index("ix_medications_user_active", "user_id", "active"),
    )

    def covers(self, day) -> bool:
        """Whether the definition is in force on the given date"""
        if not self.active or self.start_date is None:
            return False
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date


class DoseInstance(Base):
    """One concrete, time-stamped dose obligation"""
    __tablename__ = TableNames.DOSE_INSTANCES

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    medication_id = Column(Integer, ForeignKey("medications.id"), nullable=False)

    # Naive UTC
    scheduled_time = Column(DateTime, nullable=False)
    # Minutes since epoch; storage-level dedup bucket
    scheduled_bucket = Column(Integer, nullable=False)

    status = Column(String(20), default=DoseStatus.PENDING.value, nullable=False)
    taken_at = Column(DateTime)
    # Terminal status held before archival (taken/missed)
    archived_from = Column(String(20))

    notes = Column(Text)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    user = relationship("User", back_populates="dose_instances")
    medication = relationship("Medication", back_populates="dose_instances")

    __table_args__ = (
        UniqueConstraint("medication_id", "scheduled_bucket", name="uq_dose_medication_bucket"),
        Index("ix_dose_instances_user_time", "user_id", "scheduled_time"),
        Index("ix_dose_instances_status_time", "status", "scheduled_time"),
    )

    @property
    def outcome(self) -> str:
        """Status for adherence math; archived rows count as what they were"""
        if self.status == DoseStatus.ARCHIVED.value and self.archived_from:
            return self.archived_from
        return self.status


class Caregiver(Base):
    """Escalation target belonging to a user"""
    __tablename__ = TableNames.CAREGIVERS

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    name = Column(String(200), nullable=False)
    email = Column(String(255))
    phone_number = Column(String(20))
    relationship_tag = Column("relationship", String(50))  # "spouse", "child", "nurse"
    notifications_enabled = Column(Boolean, default=True)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    user = relationship("User", back_populates="caregivers")

    __table_args__ = (
        Index("ix_caregivers_user_enabled", "user_id", "notifications_enabled"),
    )


class NotificationPreference(Base):
    """Per-user category and channel toggles plus quiet hours"""
    __tablename__ = TableNames.NOTIFICATION_PREFERENCES

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    # Categories
    medication_reminders = Column(Boolean, default=True, nullable=False)
    missed_dose_alerts = Column(Boolean, default=True, nullable=False)
    adherence_reports = Column(Boolean, default=False, nullable=False)
    emergency_alerts = Column(Boolean, default=True, nullable=False)

    # Channels
    push_enabled = Column(Boolean, default=True, nullable=False)
    email_enabled = Column(Boolean, default=True, nullable=False)
    sms_enabled = Column(Boolean, default=False, nullable=False)

    # Local time-of-day
    quiet_hours_start = Column(Time)
    quiet_hours_end = Column(Time)
    critical_override = Column(Boolean, default=True, nullable=False)

    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    user = relationship("User", back_populates="notification_preference")

    @classmethod
    def defaults(cls, user_id: int) -> "NotificationPreference":
        """Unsaved preference row used when the user never stored one"""
        return cls(
            user_id=user_id,
            medication_reminders=True,
            missed_dose_alerts=True,
            adherence_reports=False,
            emergency_alerts=True,
            push_enabled=True,
            email_enabled=True,
            sms_enabled=False,
            quiet_hours_start=None,
            quiet_hours_end=None,
            critical_override=True,
        )


class Notification(Base):
    """A logical notification event, fanned out to one delivery per channel"""
    __tablename__ = TableNames.NOTIFICATIONS

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    caregiver_id = Column(Integer, ForeignKey("caregivers.id"))
    dose_instance_id = Column(Integer, ForeignKey("dose_instances.id"))

    category = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(20), default=NotificationPriority.NORMAL.value, nullable=False)
    channels = Column(JSON, default=list, nullable=False)
    data = Column(JSON, default=dict)

    scheduled_for = Column(DateTime, nullable=False, default=_utcnow)
    status = Column(String(20), default=NotificationStatus.PENDING.value, nullable=False)
    skip_reason = Column(String(100))
    sent_at = Column(DateTime)

    # e.g. "missed:42", "missed:42:caregiver:7", "report:3:2026-10-11"
    dedup_key = Column(String(200), unique=True)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    caregiver = relationship("Caregiver")
    dose_instance = relationship("DoseInstance")
    deliveries = relationship("NotificationDelivery", back_populates="notification", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_notifications_status_due", "status", "scheduled_for"),
        Index("ix_notifications_user", "user_id"),
    )


class NotificationDelivery(Base):
    """One channel attempt for a notification"""
    __tablename__ = TableNames.NOTIFICATION_DELIVERIES

    id = Column(Integer, primary_key=True, index=True)
    notification_id = Column(Integer, ForeignKey("notifications.id"), nullable=False)

    channel = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False)
    attempt_count = Column(Integer, default=1, nullable=False)
    last_error = Column(Text)
    provider_message_id = Column(String(255))
    delivered_at = Column(DateTime)

    created_at = Column(DateTime, default=_utcnow)

    notification = relationship("Notification", back_populates="deliveries")

    __table_args__ = (
        Index("ix_deliveries_notification", "notification_id"),
    )


class WeeklyReport(Base):
    """Persisted weekly adherence summary"""
    __tablename__ = TableNames.WEEKLY_REPORTS

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    week_start = Column(Date, nullable=False)
    week_end = Column(Date, nullable=False)

    total_doses = Column(Integer, default=0)
    doses_taken = Column(Integer, default=0)
    doses_missed = Column(Integer, default=0)
    adherence_percentage = Column(Float)
    report_data = Column(JSON)  # per-medication breakdown

    generated_at = Column(DateTime, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "week_start", name="uq_weekly_report_user_week"),
    )
