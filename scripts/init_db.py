"""Create the scheduling tables directly from metadata, optionally with demo data.

Intended for local development against SQLite; production databases are
managed with ``scripts/migrate.py``.

Usage:
    python scripts/init_db.py [--seed]
"""

import asyncio
import sys
from uuid import uuid4

from sqlalchemy import insert

from appointment_engine.database import engine
from appointment_engine.models import clinics, doctors, metadata, patients

DEMO_WEEKDAY = {
    "morning": {"start": "09:00", "end": "13:00", "is_off": False},
    "evening": {"start": "16:00", "end": "19:00", "is_off": False},
}
DEMO_AVAILABILITY = {
    **{day: DEMO_WEEKDAY for day in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")},
    "Saturday": {"morning": {"start": "09:00", "end": "13:00", "is_off": False}},
}


async def init_db(seed: bool = False) -> None:
    """Create all tables and, if requested, one demo clinic with a doctor and a patient."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        print("✓ Database initialized successfully!")

        if not seed:
            return

        clinic_id, doctor_id, patient_id = uuid4(), uuid4(), uuid4()
        await conn.execute(
            insert(clinics).values(
                id=clinic_id,
                name="Demo Clinic",
                timezone="Asia/Kolkata",
                slot_duration_minutes=15,
                default_availability=DEMO_AVAILABILITY,
            )
        )
        await conn.execute(
            insert(doctors).values(id=doctor_id, clinic_id=clinic_id, full_name="Dr. Demo")
        )
        await conn.execute(insert(patients).values(id=patient_id, full_name="Demo Patient"))

        print(f"✓ Seeded clinic {clinic_id}")
        print(f"  doctor  {doctor_id}")
        print(f"  patient {patient_id}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_db(seed="--seed" in sys.argv[1:]))
