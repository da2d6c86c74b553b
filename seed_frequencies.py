import os
from sqlalchemy.orm import Session

from homecare.database import SessionLocal, create_tables
from homecare import models

DEFAULT_FREQUENCIES = [
    {
        "name": "Enfermería c/8hs",
        "description": "Nursing every 8 hours at fixed times",
        "frequency_type": "HOURLY",
        "next_date_calculation_rule": "EXACT_DAYS",
        "interval_value": 8,
        "interval_unit": "HOURS",
        "custom_schedule": {"schedule_type": "FIXED_HOURS", "fixed_times": ["08:00", "16:00", "00:00"]},
        "respect_business_hours": False,
        "allow_weekends": True,
        "allow_holidays": True,
    },
    {
        "name": "Kinesiología 2x día",
        "description": "Physiotherapy twice a day, 8 hours apart from 09:00",
        "frequency_type": "DAILY_MULTIPLE",
        "next_date_calculation_rule": "EXACT_DAYS",
        "visits_per_day": 2,
        "custom_schedule": {"schedule_type": "FIXED_HOURS", "fixed_times": ["09:00", "17:00"]},
        "respect_business_hours": True,
        "allow_weekends": False,
        "allow_holidays": False,
    },
    {
        "name": "Lunes-Miércoles-Viernes",
        "description": "Three visits a week",
        "frequency_type": "WEEKLY_PATTERN",
        "next_date_calculation_rule": "NEXT_BUSINESS_DAY",
        "weekly_pattern": [1, 3, 5],
    },
    {
        "name": "Quincenal",
        "description": "Every 14 days, moved to the next business day",
        "frequency_type": "SIMPLE",
        "next_date_calculation_rule": "NEXT_BUSINESS_DAY",
        "days_between_visits": 14,
        "visits_per_month": 2,
    },
    {
        "name": "Mensual",
        "description": "Same day every month",
        "frequency_type": "SIMPLE",
        "next_date_calculation_rule": "EXACT_DAYS",
        "interval_value": 1,
        "interval_unit": "MONTHS",
    },
]


def upsert_frequencies(db: Session) -> None:
    for data in DEFAULT_FREQUENCIES:
        frequency = db.query(models.Frequency).filter(models.Frequency.name == data["name"]).first()
        if frequency:
            for key, value in data.items():
                setattr(frequency, key, value)
            action = "updated"
        else:
            frequency = models.Frequency(**data)
            db.add(frequency)
            action = "created"
        print(f"Frequency {action}: '{data['name']}' ({data['frequency_type']})")
    db.commit()


def main():
    if not os.getenv("DATABASE_URL"):
        raise RuntimeError("Missing required env var: DATABASE_URL")

    create_tables()
    db = SessionLocal()
    try:
        upsert_frequencies(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
