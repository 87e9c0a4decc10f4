"""Script to initialize the database, optionally with demo patients."""

import argparse
import asyncio

from sqlalchemy import insert

from app.database import engine
from app.models import metadata, patients

DEMO_PATIENTS = [
    {"first_names": "Ana Lucia", "last_names": "Quispe Mamani", "phone": "+51987654321"},
    {"first_names": "Jorge", "last_names": "Huaman Rojas", "phone": "+51912345678"},
    {"first_names": "Maria Elena", "last_names": "Torres Vega", "phone": "+51955511122"},
]


async def init_db(seed: bool = False) -> None:
    """Create all tables and optionally insert demo patients."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

        if seed:
            result = await conn.execute(insert(patients).returning(patients.c.id), DEMO_PATIENTS)
            for patient_id in result.scalars():
                print(f"  seeded patient {patient_id}")

    await engine.dispose()
    print("✓ Database initialized successfully!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create clinic scheduling tables")
    parser.add_argument("--seed", action="store_true", help="insert demo patients")
    args = parser.parse_args()
    asyncio.run(init_db(seed=args.seed))
