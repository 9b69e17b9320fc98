"""
MongoDB connection management.

The pipeline never reaches for a global client. Callers open one with
`open_database()` and pass the database (and client, for transactions) to
the stores and ingesters that need it. The client is closed when the
context exits.

Usage:
    async with open_database() as (client, db):
        store = BillStore(db, client=client)
        ...
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from billwatch.config.settings import settings


def create_client(uri: Optional[str] = None) -> AsyncIOMotorClient:
    """Create a new async MongoDB client. The caller owns it and must close it."""
    return AsyncIOMotorClient(uri or settings.MONGODB_URI, tz_aware=False)


@asynccontextmanager
async def open_database(
    uri: Optional[str] = None,
    database: Optional[str] = None,
) -> AsyncIterator[tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]]:
    """
    Open a client for the lifetime of the block.

    Args:
        uri: MongoDB URI (defaults to settings.MONGODB_URI)
        database: Database name (defaults to settings.MONGODB_DATABASE)

    Yields:
        (client, database)
    """
    client = create_client(uri)
    try:
        yield client, client[database or settings.MONGODB_DATABASE]
    finally:
        client.close()


async def ping(client: AsyncIOMotorClient) -> bool:
    """
    Check that the server is reachable.

    Returns:
        True if connection successful, raises exception otherwise.
    """
    # The ping command is lightweight and confirms connectivity
    result = await client.admin.command("ping")
    return result.get("ok") == 1.0
