"""Seed a local database with demo users, a bucket and leads."""

from __future__ import annotations

import random
import sys
from datetime import timedelta

from sqlalchemy import select

from leaddesk.database.db import get_session_factory
from leaddesk.models import CustomField, CustomFieldType, Lead, LeadBucket, User, UserRole
from leaddesk.models.base import utcnow

SCHOOLS = ["North High", "South High", "Lakeside Academy", "Hillcrest School"]
DISTRICTS = ["Central", "Harbor", "Uplands"]
STREAMS = ["Science", "Commerce", "Arts"]
GENDERS = ["F", "M"]


def seed_leads(lead_count: int = 250) -> None:
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        existing = db.execute(select(User).where(User.email == "admin@leaddesk.local")).scalar_one_or_none()
        if existing:
            print("Seed data already exists.")
            return

        print("Seeding users...")
        admin = User(email="admin@leaddesk.local", name="Admin", role=UserRole.ADMIN)
        reps = [User(email=f"rep{index}@leaddesk.local", name=f"Rep {index}", role=UserRole.SALES_REP) for index in (1, 2)]
        db.add_all([admin, *reps])

        bucket = LeadBucket(name="Spring intake", description="Walk-in and fair leads")
        bucket.fields = [
            CustomField(name="percent_score", label="Percent Score", field_type=CustomFieldType.NUMBER, display_order=0),
            CustomField(name="board", label="Board", field_type=CustomFieldType.SELECT, display_order=1),
        ]
        db.add(bucket)
        db.flush()

        print(f"Seeding {lead_count} leads...")
        rng = random.Random(7)
        start = utcnow() - timedelta(days=30)
        for index in range(lead_count):
            db.add(
                Lead(
                    name=f"Student {index + 1}",
                    phone=f"98{index:08d}",
                    school=rng.choice(SCHOOLS),
                    district=rng.choice(DISTRICTS),
                    gender=rng.choice(GENDERS),
                    stream=rng.choice(STREAMS),
                    custom_fields={"percent_score": str(rng.randint(55, 99)), "board": rng.choice(["CBSE", "State"])},
                    bucket_id=bucket.id,
                    assigned_to=rng.choice([None, reps[0].id, reps[1].id]),
                    created_by=admin.id,
                    created_at=start + timedelta(minutes=index * 7),
                )
            )
        db.commit()
        print("Seed complete.")
    except Exception as e:
        print(f"Error seeding data: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_leads(int(sys.argv[1]) if len(sys.argv) > 1 else 250)
