#!/usr/bin/env python3
"""
Create the AI cache tables in the database named by DATABASE_URL

Run once per environment, e.g. against the Supabase Postgres connection
string before switching CACHE_BACKEND to supabase:
    DATABASE_URL=postgresql://... python migrate.py
"""
import asyncio
import os
import sys

if not os.getenv("DATABASE_URL"):
    print("ERROR: DATABASE_URL not found")
    sys.exit(1)

from sqlalchemy import text

from app.config import get_settings
from app.database import engine, init_db


async def run_migration():
    database_url = get_settings().database_url
    print("=" * 70)
    print("Provisioning AI cache tables")
    print("=" * 70)
    print(f"Database: {database_url.split('@')[1] if '@' in database_url else database_url}")

    try:
        await init_db()

        print("\nVerifying migration...")
        async with engine.connect() as conn:
            for table in (
                "cached_career_recommendations",
                "cached_career_details",
                "cached_course_recommendations",
                "cache_invalidation",
            ):
                count = (await conn.execute(text(f"SELECT COUNT(*) FROM {table}"))).scalar()
                print(f"  {table}: {count} rows")
    except Exception as e:
        print(f"\nERROR: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
    finally:
        await engine.dispose()

    print("\n" + "=" * 70)
    print("Migration Completed Successfully!")
    print("=" * 70)


if __name__ == "__main__":
    asyncio.run(run_migration())
