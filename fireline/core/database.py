"""
MongoDB connection management for the region service, using Motor.

Single DatabaseClient instance shared across all requests via a
module-level singleton. FastAPI's dependency injection (get_db) gives
routes access without importing the singleton directly.

Collections:
  regions    — one document per subscription region
               {email, name, geojson, created_at, updated_at}
  fire_risk  — risk points {point_id, latitude, longitude, probability, timestamp}

The connection is opened in FastAPI's lifespan (startup) and closed on
shutdown.
"""

import logging
import re

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from fireline.core.config import settings

logger = logging.getLogger(__name__)


class DatabaseClient:
    """
    Holds the Motor client and selected database.

    A class rather than bare globals so tests can swap .client and .db.
    """

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None


# Module-level singleton; all app code references this object
db_client = DatabaseClient()


async def connect_to_mongo() -> None:
    """
    Create the MongoDB connection, validate it with a ping and make sure
    the region indexes exist.

    Fails soft: if MongoDB is down the service still starts, region routes
    answer 503 and the risk feed serves seed points.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        db_client.client = AsyncIOMotorClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            tlsCAFile=certifi.where(),
        )
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.client.admin.command("ping")
        await db_client.db["regions"].create_index([("email", 1), ("created_at", 1)])
        await db_client.db["fire_risk"].create_index([("probability", -1)])
        logger.info("MongoDB connection established (db: %s)", settings.mongo_db_name)
    except Exception as exc:
        logger.warning(
            "MongoDB unavailable at startup: %s. "
            "Region service running in degraded mode — region routes will fail.",
            exc,
        )
        db_client.client = None
        db_client.db = None


async def close_mongo_connection() -> None:
    """Close the MongoDB connection gracefully on app shutdown."""
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")


def get_db() -> AsyncIOMotorDatabase | None:
    """
    FastAPI dependency — inject the database into route handlers.

    Returns None when MongoDB is unavailable so routes can decide between
    a 503 and a seed-data fallback.
    """
    return db_client.db


def _redact_uri(uri: str) -> str:
    """Strip credentials from URI before logging."""
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
