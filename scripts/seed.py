"""
Database Seed Script

Creates the schema and loads the demo menu and table tokens.
Run from project root: python scripts/seed.py

Author: Khalil_Bannouri
Version: 1.0.0
"""

import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tableorder.core.config import get_settings, setup_logging
from tableorder.database import dispose_engine, get_session_factory, init_db
from tableorder.seed import TABLE_TOKENS, seed_demo_data

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


async def main() -> None:
    settings = get_settings()
    print("=" * 60)
    print("DATABASE SEED")
    print("=" * 60)
    print(f"Database: {settings.database_url.split('@')[-1]}")

    await init_db()
    async with get_session_factory()() as session:
        added = await seed_demo_data(session)
    await dispose_engine()

    print(f"Rows added: {added}")
    print("\nTable QR tokens:")
    for table_id, token in TABLE_TOKENS.items():
        print(f"   {table_id:<4} {settings.app_base_url}/order?table={table_id}&token={token}")
    print("=" * 60)


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
