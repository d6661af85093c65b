import asyncio
import sys

import asyncpg

from database import db, ensure_progress_tables, get_database_url


async def check():
    try:
        await db.connect()
    except (asyncpg.PostgresError, OSError) as e:
        print(f"Connection failed ({get_database_url()}): {e}")
        sys.exit(1)

    try:
        await ensure_progress_tables()
        row = await db.fetch_one("SELECT COUNT(*) AS count FROM student_progress")
        print(f"Successfully connected to database! {row['count']} progress records.")
    finally:
        await db.disconnect()


if __name__ == "__main__":
    asyncio.run(check())
