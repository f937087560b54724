#!/usr/bin/env python3
"""
Seed a development database with a service menu and weekly work hours
Usage: python -m salon_booking.scripts.seed_salon
"""
from datetime import time
from decimal import Decimal

from sqlalchemy.orm import Session

from salon_booking.config.database import SessionLocal
from salon_booking.models.service import Service
from salon_booking.services.availability.availability_policy_service import AvailabilityPolicyService
from salon_booking.services.availability.windows import CLOSED, OpenWindow

SERVICES = [
    {"slug": "hair-cut", "name": "Hair cut", "price": Decimal("35.00"), "duration": 45},
    {"slug": "hair-color", "name": "Hair color", "price": Decimal("90.00"), "duration": 120},
    {"slug": "manicure", "name": "Manicure", "price": Decimal("25.00"), "duration": 30},
    {"slug": "beard-trim", "name": "Beard trim", "price": Decimal("15.00"), "duration": 15},
]


def seed_services(db: Session) -> int:
    """Insert services that are not there yet, matched by slug"""
    existing = {slug for (slug,) in db.query(Service.slug).all()}
    added = 0
    for order, data in enumerate(SERVICES):
        if data["slug"] in existing:
            continue
        db.add(Service(display_order=order, is_active=True, **data))
        added += 1
    db.commit()
    return added


def seed_week(db: Session) -> int:
    # Tue-Sat 09:00-18:00, closed Sunday and Monday
    open_day = OpenWindow(time(9, 0), time(18, 0))
    week = [CLOSED, open_day, open_day, open_day, open_day, open_day, CLOSED]
    return AvailabilityPolicyService.replace_week(db, week)


def main():
    db: Session = SessionLocal()
    try:
        added = seed_services(db)
        version = seed_week(db)
        print(f"Seeded {added} services, weekly template at version {version}")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
