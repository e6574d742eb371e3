import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Request

from database import db
from models import (
    DonationRequestSend, NotificationRespond, NotificationResponse, NotificationType,
    NotificationPriority, NotificationStatus
)
from models.audit import AuditAction, AuditModule
from middleware import require_admin, require_donor
from services import create_notification, expire_stale_notifications, audit_log
from services.notification_service import OPEN_STATUSES, is_expired
from routers.donors import get_own_donor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.post("/send-donation-request", status_code=201)
async def send_donation_request(body: DonationRequestSend, request: Request, current_user: dict = Depends(require_admin)):
    blood_request = await db.blood_requests.find_one({"id": body.request_id}, {"_id": 0})
    if not blood_request:
        raise HTTPException(status_code=404, detail="Blood request not found")

    donors = await db.donors.find({"id": {"$in": body.donor_ids}}, {"_id": 0, "id": 1, "name": 1}).to_list(1000)
    if not donors:
        raise HTTPException(status_code=404, detail="No valid donors found")

    title = "Blood Donation Needed"
    if body.priority == NotificationPriority.URGENT:
        title = f"URGENT: {title}"

    notifications = []
    for donor in donors:
        notifications.append(await create_notification(
            recipient_id=donor["id"],
            type=NotificationType.DONATION_REQUEST,
            priority=body.priority,
            title=title,
            message=body.message or f"We need {blood_request['blood_group']} blood for a patient. Can you help?",
            request_id=blood_request["id"],
            metadata={
                "blood_group": blood_request["blood_group"],
                "units_needed": blood_request["units_requested"],
                "hospital_name": blood_request.get("hospital_name"),
                "urgency_level": blood_request.get("urgency"),
            },
            expires_in_hours=body.expires_in_hours,
            created_by=current_user["id"],
        ))

    await db.blood_requests.update_one({"id": blood_request["id"]}, {"$inc": {"donors_notified": len(donors)}})
    await audit_log(
        AuditAction.NOTIFY, AuditModule.NOTIFICATIONS, current_user,
        record_id=blood_request["id"], record_type="blood_request",
        description=f"Notified {len(donors)} donor(s)", request=request
    )
    logger.info("Sent %s donation request(s) for request %s", len(donors), blood_request["id"])

    return {
        "message": f"Notifications sent to {len(donors)} donors",
        "notifications": [
            {"id": n["id"], "recipient_id": n["recipient_id"], "status": n["status"], "expires_at": n["expires_at"]}
            for n in notifications
        ],
    }


@router.get("/donor")
async def get_donor_notifications(
    status: Optional[NotificationStatus] = None,
    page: int = 1,
    limit: int = 20,
    current_user: dict = Depends(require_donor)
):
    donor = await get_own_donor(current_user)
    query = {"recipient_id": donor["id"]}
    if status:
        query["status"] = status.value

    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    total = await db.notifications.count_documents(query)
    notifications = await db.notifications.find(query, {"_id": 0}).sort("created_at", -1).skip((page - 1) * limit).to_list(limit)
    unread = await db.notifications.count_documents({
        "recipient_id": donor["id"],
        "status": {"$in": [NotificationStatus.PENDING.value, NotificationStatus.SENT.value]},
    })

    return {
        "notifications": notifications,
        "unread_count": unread,
        "pagination": {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
    }


async def _get_own_notification(notification_id: str, current_user: dict) -> dict:
    donor = await get_own_donor(current_user)
    notification = await db.notifications.find_one({"id": notification_id}, {"_id": 0})
    if not notification or notification["recipient_id"] != donor["id"]:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


@router.post("/{notification_id}/respond")
async def respond_to_notification(notification_id: str, body: NotificationRespond, current_user: dict = Depends(require_donor)):
    notification = await _get_own_notification(notification_id, current_user)
    if notification["status"] not in OPEN_STATUSES:
        raise HTTPException(status_code=400, detail="Notification already responded or expired")

    if is_expired(notification):
        await db.notifications.update_one({"id": notification_id}, {"$set": {"status": NotificationStatus.EXPIRED.value}})
        raise HTTPException(status_code=400, detail="Notification has expired")

    now = datetime.now(timezone.utc).isoformat()
    response = NotificationResponse(
        action=body.action,
        message=body.message,
        preferred_slots=body.preferred_slots,
        responded_at=now,
    )
    result = await db.notifications.update_one(
        {"id": notification_id, "status": {"$in": OPEN_STATUSES}},
        {"$set": {
            "status": NotificationStatus.RESPONDED.value,
            "responded_at": now,
            "response": response.model_dump(mode="json"),
        }}
    )
    if result.modified_count == 0:
        raise HTTPException(status_code=409, detail="Notification was already responded to")

    if notification.get("request_id"):
        await db.blood_requests.update_one({"id": notification["request_id"]}, {"$inc": {"donors_responded": 1}})

    return {
        "message": "Response recorded successfully",
        "notification": await db.notifications.find_one({"id": notification_id}, {"_id": 0}),
    }


@router.patch("/{notification_id}/read")
async def mark_notification_read(notification_id: str, current_user: dict = Depends(require_donor)):
    notification = await _get_own_notification(notification_id, current_user)
    if notification["status"] in (NotificationStatus.PENDING.value, NotificationStatus.SENT.value):
        now = datetime.now(timezone.utc).isoformat()
        await db.notifications.update_one(
            {"id": notification_id},
            {"$set": {"status": NotificationStatus.READ.value, "read_at": now}}
        )
        notification.update(status=NotificationStatus.READ.value, read_at=now)
    return {"message": "Notification marked as read", "notification": notification}


@router.get("/admin/all")
async def get_all_notifications(
    type: Optional[NotificationType] = None,
    status: Optional[NotificationStatus] = None,
    request_id: Optional[str] = None,
    current_user: dict = Depends(require_admin)
):
    query = {}
    if type:
        query["type"] = type.value
    if status:
        query["status"] = status.value
    if request_id:
        query["request_id"] = request_id
    return await db.notifications.find(query, {"_id": 0}).sort("created_at", -1).to_list(1000)


@router.post("/expire")
async def expire_notifications(current_user: dict = Depends(require_admin)):
    expired = await expire_stale_notifications()
    return {"message": f"Expired {expired} notification(s)", "expired": expired}
