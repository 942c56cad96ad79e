"""Create the database tables and optionally load demo data.

Usage: python init_db.py [--seed]
"""
import argparse
import asyncio
import logging

from educms.config import settings
from educms.database import create_db_and_tables, unit_of_work
from educms.seed import seed_demo_data


async def run(seed: bool = False):
    """Create every table on `settings.DATABASE_URL`.

    With `seed` (or SEED_DEMO_DATA=true) the demo students and welcome
    announcement are added when missing.
    """
    print("Using database:", settings.DATABASE_URL)
    await create_db_and_tables()
    if seed or settings.SEED_DEMO_DATA:
        async with unit_of_work() as uow:
            saved = await seed_demo_data(uow)
        print(f"Seeded {saved} rows.")
    print("Database ready.")


if __name__ == '__main__':
    logging.basicConfig(level=settings.LOG_LEVEL)
    parser = argparse.ArgumentParser()
    parser.add_argument('--seed', action='store_true', help='Insert demo students and announcement')
    args = parser.parse_args()
    asyncio.run(run(seed=args.seed))
