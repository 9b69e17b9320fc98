"""
Create the MongoDB indexes used by the sync pipeline and its readers.

Usage:
    python scripts/setup_indexes.py
    python scripts/setup_indexes.py --drop    # Drop and recreate
    python scripts/setup_indexes.py --list    # Show existing indexes only
"""
import argparse
import asyncio
import logging

from billwatch.config import settings
from billwatch.database import create_all_indexes, open_database, ping
from billwatch.database.indexes import list_existing_indexes


async def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(description="Create MongoDB indexes")
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing indexes before creating new ones"
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List existing indexes only (don't create)"
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format=settings.LOG_FORMAT)

    async with open_database() as (client, db):
        await ping(client)
        print(f"✅ Connected to {settings.MONGODB_DATABASE}")

        if not args.list:
            await create_all_indexes(db, drop_existing=args.drop)

        for collection, names in sorted((await list_existing_indexes(db)).items()):
            print(f"\n📁 {collection}")
            for name in names:
                print(f"   • {name}")


if __name__ == "__main__":
    asyncio.run(main())
