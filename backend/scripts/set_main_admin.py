"""
Promote the MAIN_ADMIN_EMAIL account to main admin and approve any admins
still waiting for a decision.

Run from backend/: python -m scripts.set_main_admin
"""
import asyncio
import logging
import sys
from datetime import datetime, timezone

from config import settings, configure_logging
from database import client, db
from models import AdminStatus

logger = logging.getLogger("scripts.set_main_admin")


async def set_main_admin() -> bool:
    user = await db.users.find_one({"email": settings.MAIN_ADMIN_EMAIL}, {"_id": 0})
    if not user:
        logger.error("User %s not found. Register this account with the admin role first.", settings.MAIN_ADMIN_EMAIL)
        return False

    now = datetime.now(timezone.utc).isoformat()
    await db.users.update_one(
        {"id": user["id"]},
        {"$set": {"role": "admin", "is_main_admin": True, "admin_status": AdminStatus.APPROVED.value,
                  "approved_at": now, "updated_at": now}}
    )
    logger.info("Main admin set to %s (%s)", user["email"], user["name"])

    result = await db.users.update_many(
        {"role": "admin", "email": {"$ne": settings.MAIN_ADMIN_EMAIL}, "admin_status": {"$ne": AdminStatus.APPROVED.value}},
        {"$set": {"admin_status": AdminStatus.APPROVED.value, "approved_by": user["id"], "approved_at": now}}
    )
    if result.modified_count:
        logger.info("Approved %s existing admin(s)", result.modified_count)
    return True


def main():
    configure_logging()
    try:
        ok = asyncio.run(set_main_admin())
    finally:
        client.close()
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
