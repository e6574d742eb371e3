import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

from database import db
from models import Notification, NotificationMetadata, NotificationType, NotificationPriority, NotificationStatus

logger = logging.getLogger(__name__)

OPEN_STATUSES = [NotificationStatus.PENDING.value, NotificationStatus.SENT.value, NotificationStatus.READ.value]


async def create_notification(
    recipient_id: str,
    type: NotificationType,
    title: str,
    message: str,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    request_id: Optional[str] = None,
    appointment_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    expires_in_hours: Optional[int] = None,
    created_by: Optional[str] = None,
) -> dict:
    """Store a notification for a donor and mark it sent."""
    now = datetime.now(timezone.utc)
    notification = Notification(
        type=type,
        priority=priority,
        status=NotificationStatus.SENT,
        title=title,
        message=message,
        recipient_id=recipient_id,
        request_id=request_id,
        appointment_id=appointment_id,
        sent_at=now.isoformat(),
        expires_at=(now + timedelta(hours=expires_in_hours)).isoformat() if expires_in_hours else None,
        created_by=created_by,
        metadata=NotificationMetadata(**(metadata or {})),
    )
    doc = notification.model_dump(mode="json")
    await db.notifications.insert_one(doc)
    doc.pop("_id", None)
    return doc


def is_expired(notification: dict, now: Optional[datetime] = None) -> bool:
    expires_at = notification.get("expires_at")
    if not expires_at:
        return False
    expiry = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
    return expiry < (now or datetime.now(timezone.utc))


async def expire_stale_notifications(now: Optional[datetime] = None) -> int:
    """Mark open notifications whose expiry has passed as expired."""
    now_iso = (now or datetime.now(timezone.utc)).isoformat()
    result = await db.notifications.update_many(
        {"status": {"$in": OPEN_STATUSES}, "expires_at": {"$ne": None, "$lt": now_iso}},
        {"$set": {"status": NotificationStatus.EXPIRED.value}},
    )
    if result.modified_count:
        logger.info("Expired %s notification(s)", result.modified_count)
    return result.modified_count
