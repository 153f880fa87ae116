#!/usr/bin/env python
"""
Seed Data
Script to seed the database with a demo user for development
"""

import sys
import os
import asyncio
import argparse
import logging
from datetime import time, timedelta
from typing import List

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import SessionLocal, init_db, reset_db
from models import User, Medication, DoseInstance, Caregiver, NotificationPreference, Notification
from services.schedule_service import schedule_service
from tools.time_windows import get_zone, local_today, utcnow


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def seed_demo_user(db) -> User:
    """Create a demo user with preferences and a caregiver"""
    logger.info("Creating demo user...")

    existing = db.query(User).filter(User.email == "demo@medcare.app").first()
    if existing:
        logger.info("Demo user already exists")
        return existing

    user = User(
        email="demo@medcare.app",
        full_name="Jane Doe",
        phone_number="+15551234567",
        timezone="America/New_York",
        weekly_reports_enabled=True,
    )
    db.add(user)
    db.flush()

    db.add(NotificationPreference(
        user_id=user.id,
        medication_reminders=True,
        missed_dose_alerts=True,
        adherence_reports=True,
        emergency_alerts=True,
        push_enabled=True,
        email_enabled=True,
        sms_enabled=False,
        quiet_hours_start=time(22, 0),
        quiet_hours_end=time(7, 0),
        critical_override=True,
    ))

    db.add(Caregiver(
        user_id=user.id,
        name="John Doe",
        email="john.doe@example.com",
        phone_number="+15557654321",
        relationship_tag="spouse",
        notifications_enabled=True,
    ))

    logger.info(f"Created demo user {user.email}")
    return user


def seed_medications(db, user: User) -> List[Medication]:
    """Add the demo medications"""
    medications_data = [
        {"name": "Lisinopril", "dosage": "10mg", "frequency": "twice daily", "times": ["08:00", "20:00"]},
        {"name": "Metformin", "dosage": "500mg", "frequency": "with meals", "times": ["08:30", "12:30", "19:00"]},
        {"name": "Atorvastatin", "dosage": "20mg", "frequency": "once daily", "times": ["21:00"]},
    ]

    today = local_today(get_zone(user.timezone), utcnow())
    medications = []
    for data in medications_data:
        exists = db.query(Medication).filter(
            Medication.user_id == user.id,
            Medication.name == data["name"]
        ).first()
        if exists:
            medications.append(exists)
            continue

        medication = Medication(
            user_id=user.id,
            start_date=today - timedelta(days=30),
            active=True,
            **data
        )
        db.add(medication)
        medications.append(medication)

    db.flush()
    logger.info(f"Seeded {len(medications)} medications")
    return medications


def seed_all(clear_existing: bool = False):
    """Run all seed operations"""

    print("\n" + "=" * 60)
    print("Database Seeding")
    print("=" * 60)

    if clear_existing:
        logger.info("Clearing existing data...")
        reset_db()
    else:
        init_db()

    db = SessionLocal()

    try:
        user = seed_demo_user(db)
        db.commit()

        seed_medications(db, user)
        db.commit()

        created = asyncio.run(schedule_service.ensure_upcoming_schedule(user.id, db=db))

        print("\n" + "=" * 60)
        print("Seeding Complete!")
        print("=" * 60)
        print(f"\nDatabase Statistics:")
        print(f"  Users: {db.query(User).count()}")
        print(f"  Medications: {db.query(Medication).count()}")
        print(f"  Dose Instances: {db.query(DoseInstance).count()} ({len(created)} new)")
        print(f"  Notifications: {db.query(Notification).count()}")

        print(f"\nDemo User ID: {user.id}")
        print(f"Demo User Email: {user.email}")

    except Exception as e:
        db.rollback()
        logger.error(f"Error during seeding: {e}")
        raise
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(
        description="Seed the database with a demo user"
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Clear existing data before seeding"
    )

    args = parser.parse_args()

    seed_all(clear_existing=args.clear)


if __name__ == "__main__":
    main()
