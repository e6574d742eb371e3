import logging

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING

from config import settings

logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(settings.MONGO_URL, serverSelectionTimeoutMS=10000)
db = client[settings.DB_NAME]

COLLECTIONS = (
    "users",
    "donors",
    "blood_requests",
    "inventory",
    "inventory_thresholds",
    "notifications",
    "appointments",
    "donations",
    "medical_reports",
    "audit_logs",
)


async def ensure_indexes():
    await db.users.create_index("email", unique=True)
    await db.users.create_index("id", unique=True)
    await db.donors.create_index("user_id")
    await db.donors.create_index([("blood_group", ASCENDING), ("is_active", ASCENDING), ("is_available", ASCENDING)])
    # FIFO picking by blood group
    await db.inventory.create_index([("blood_group", ASCENDING), ("expiry_date", ASCENDING)])
    await db.inventory.create_index("donor_id")
    await db.inventory_thresholds.create_index("blood_group", unique=True)
    await db.blood_requests.create_index([("status", ASCENDING), ("created_at", DESCENDING)])
    await db.blood_requests.create_index("requester_user_id")
    await db.notifications.create_index([("recipient_id", ASCENDING), ("status", ASCENDING)])
    await db.notifications.create_index("request_id")
    await db.appointments.create_index([("donor_id", ASCENDING), ("scheduled_date", ASCENDING)])
    await db.appointments.create_index([("status", ASCENDING), ("scheduled_date", ASCENDING)])
    await db.donations.create_index([("donor_id", ASCENDING), ("collection_date", DESCENDING)])
    await db.medical_reports.create_index([("donor_id", ASCENDING), ("status", ASCENDING)])
    await db.audit_logs.create_index("timestamp")
    logger.info("MongoDB indexes ensured on %s", settings.DB_NAME)
