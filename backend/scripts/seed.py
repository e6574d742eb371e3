"""
Seed a development database with sample accounts and one inventory lot per
blood group. Existing users, donors and inventory are cleared first.

Run from backend/: python -m scripts.seed
"""
import asyncio
import logging
import random
from datetime import datetime, timezone, timedelta

from config import settings, configure_logging
from database import client, db, ensure_indexes
from models import User, Donor, InventoryLot, BloodGroup, UserRole, AdminStatus, VerificationStatus
from services import hash_password, ensure_thresholds

logger = logging.getLogger("scripts.seed")

SAMPLE_USERS = [
    (settings.MAIN_ADMIN_EMAIL, "Admin123", UserRole.ADMIN, "System Administrator", "5550000123"),
    ("hospital@bloodbank.org", "Hospital123", UserRole.HOSPITAL, "City General Hospital", "5550000124"),
    ("donor@bloodbank.org", "Donor123", UserRole.DONOR, "John Doe", "5550000125"),
    ("external@bloodbank.org", "External123", UserRole.EXTERNAL, "Jane Smith", "5550000126"),
]


async def seed():
    await db.users.delete_many({})
    await db.donors.delete_many({})
    await db.inventory.delete_many({})
    await ensure_indexes()

    for email, password, role, name, phone in SAMPLE_USERS:
        user = User(email=email, password_hash=hash_password(password), role=role, name=name, phone=phone)
        if role == UserRole.ADMIN:
            user.is_main_admin = True
            user.admin_status = AdminStatus.APPROVED
            user.approved_at = user.created_at
        await db.users.insert_one(user.model_dump(mode="json"))
        logger.info("Created %s user %s / %s", role.value, email, password)

        if role == UserRole.DONOR:
            donor = Donor(
                user_id=user.id, name=name, email=email, phone=phone,
                blood_group=BloodGroup.O_POSITIVE, verification_status=VerificationStatus.VERIFIED
            )
            await db.donors.insert_one(donor.model_dump(mode="json"))

    expiry = (datetime.now(timezone.utc) + timedelta(days=30)).date().isoformat()
    for group in BloodGroup:
        lot = InventoryLot(
            blood_group=group,
            units=random.randint(5, 25),
            expiry_date=expiry,
            location=f"Storage Unit {random.randint(1, 5)}",
        )
        await db.inventory.insert_one(lot.model_dump(mode="json"))
    await ensure_thresholds()
    logger.info("Created sample inventory for all blood groups")


def main():
    configure_logging()
    try:
        asyncio.run(seed())
    finally:
        client.close()


if __name__ == "__main__":
    main()
