import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING

from app.core.config import settings

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]

    await create_indexes(mongodb.db)
    logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
        logger.info("Disconnected from MongoDB")

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes."""
    # User email unique index (emails are stored lower-cased)
    await db["users"].create_index("email", unique=True)

    # Family membership lookups
    await db["families"].create_index("members.user_id")

    # Invitation tokens are unique, and at most one pending invitation
    # may exist per (family, email)
    await db["invitations"].create_index("token", unique=True)
    await db["invitations"].create_index(
        [("family_id", ASCENDING), ("email", ASCENDING)],
        unique=True,
        partialFilterExpression={"status": "pending"},
        name="uniq_pending_invitation_per_family_email",
    )

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
