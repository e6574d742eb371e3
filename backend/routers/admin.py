import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query, Request

from config import settings
from database import db
from models import AdminReject, AdminToggle, AdminStatus, RequestType
from models.audit import AuditAction, AuditModule
from middleware import require_admin, require_main_admin
from services import AuditService, audit_log, audit_delete

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin Approval"])

USER_FIELDS = {"_id": 0, "password_hash": 0}


async def _get_admin_user(admin_id: str) -> dict:
    admin = await db.users.find_one({"id": admin_id}, USER_FIELDS)
    if not admin:
        raise HTTPException(status_code=404, detail="Admin not found")
    if admin["role"] != "admin":
        raise HTTPException(status_code=400, detail="User is not an admin")
    return admin


@router.get("/pending-admins")
async def get_pending_admins(current_user: dict = Depends(require_main_admin)):
    return await db.users.find(
        {"role": "admin", "admin_status": AdminStatus.PENDING.value, "is_main_admin": {"$ne": True}},
        USER_FIELDS
    ).sort("created_at", -1).to_list(1000)


@router.get("/all-admins")
async def get_all_admins(current_user: dict = Depends(require_main_admin)):
    return await db.users.find({"role": "admin"}, USER_FIELDS).sort("created_at", -1).to_list(1000)


@router.post("/{admin_id}/approve")
async def approve_admin(admin_id: str, request: Request, current_user: dict = Depends(require_main_admin)):
    admin = await _get_admin_user(admin_id)
    if admin.get("admin_status") == AdminStatus.APPROVED.value:
        raise HTTPException(status_code=400, detail="Admin is already approved")

    now = datetime.now(timezone.utc).isoformat()
    await db.users.update_one(
        {"id": admin_id},
        {"$set": {
            "admin_status": AdminStatus.APPROVED.value,
            "approved_by": current_user["id"],
            "approved_at": now,
            "updated_at": now,
        }}
    )
    await audit_log(
        AuditAction.APPROVE, AuditModule.ADMINS, current_user,
        record_id=admin_id, record_type="user", description=f"Approved admin {admin['email']}", request=request
    )
    logger.info("Admin %s approved by %s", admin["email"], current_user["email"])

    return {
        "status": "success",
        "message": "Admin approved successfully",
        "admin": {"id": admin_id, "name": admin["name"], "email": admin["email"],
                  "admin_status": AdminStatus.APPROVED.value, "approved_at": now},
    }


@router.post("/{admin_id}/reject")
async def reject_admin(admin_id: str, body: AdminReject, request: Request, current_user: dict = Depends(require_main_admin)):
    admin = await _get_admin_user(admin_id)
    if admin.get("is_main_admin"):
        raise HTTPException(status_code=400, detail="Cannot reject main admin")

    now = datetime.now(timezone.utc).isoformat()
    await db.users.update_one(
        {"id": admin_id},
        {"$set": {
            "admin_status": AdminStatus.REJECTED.value,
            "approved_by": current_user["id"],
            "approved_at": now,
            "updated_at": now,
        }}
    )
    reason = body.reason or "No reason provided"
    await audit_log(
        AuditAction.REJECT, AuditModule.ADMINS, current_user,
        record_id=admin_id, record_type="user", description=f"Rejected admin {admin['email']}: {reason}", request=request
    )

    return {
        "status": "success",
        "message": "Admin rejected successfully",
        "admin": {"id": admin_id, "name": admin["name"], "email": admin["email"],
                  "admin_status": AdminStatus.REJECTED.value, "reason": reason},
    }


@router.patch("/{admin_id}/toggle-status")
async def toggle_admin_status(admin_id: str, body: AdminToggle, request: Request, current_user: dict = Depends(require_main_admin)):
    admin = await _get_admin_user(admin_id)
    if admin.get("is_main_admin"):
        raise HTTPException(status_code=400, detail="Cannot disable main admin")

    await db.users.update_one(
        {"id": admin_id},
        {"$set": {"is_active": body.is_active, "updated_at": datetime.now(timezone.utc).isoformat()}}
    )
    await audit_log(
        AuditAction.ENABLE if body.is_active else AuditAction.DISABLE, AuditModule.ADMINS, current_user,
        record_id=admin_id, record_type="user", request=request
    )

    return {
        "status": "success",
        "message": f"Admin {'enabled' if body.is_active else 'disabled'} successfully",
        "admin": {"id": admin_id, "name": admin["name"], "email": admin["email"], "is_active": body.is_active},
    }


@router.delete("/{admin_id}")
async def delete_admin(admin_id: str, request: Request, current_user: dict = Depends(require_main_admin)):
    admin = await _get_admin_user(admin_id)
    if admin.get("is_main_admin"):
        raise HTTPException(status_code=400, detail="Cannot delete main admin")

    await db.users.delete_one({"id": admin_id})
    await audit_delete(AuditModule.ADMINS, current_user, admin_id, "user", old_values=admin, request=request)

    return {
        "status": "success",
        "message": "Admin deleted successfully",
        "admin": {"id": admin_id, "name": admin["name"], "email": admin["email"]},
    }


@router.get("/admin-stats")
async def get_admin_stats(current_user: dict = Depends(require_main_admin)):
    pipeline = [
        {"$match": {"role": "admin"}},
        {"$group": {"_id": "$admin_status", "count": {"$sum": 1}}},
    ]
    by_status = {row["_id"]: row["count"] for row in await db.users.aggregate(pipeline).to_list(10)}

    return {
        "total_admins": await db.users.count_documents({"role": "admin"}),
        "main_admins": await db.users.count_documents({"role": "admin", "is_main_admin": True}),
        "pending_admins": by_status.get(AdminStatus.PENDING.value, 0),
        "approved_admins": by_status.get(AdminStatus.APPROVED.value, 0),
        "rejected_admins": by_status.get(AdminStatus.REJECTED.value, 0),
        "active_admins": await db.users.count_documents({"role": "admin", "is_active": True}),
        "disabled_admins": await db.users.count_documents({"role": "admin", "is_active": False}),
    }


@router.get("/audit-logs")
async def get_audit_logs(
    module: Optional[AuditModule] = None,
    action: Optional[AuditAction] = None,
    record_id: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    current_user: dict = Depends(require_main_admin)
):
    return await AuditService.recent(module=module, action=action, record_id=record_id, limit=limit)


@router.get("/main-admin-status")
async def get_main_admin_status(current_user: dict = Depends(require_admin)):
    is_main = bool(current_user.get("is_main_admin"))
    return {
        "is_main_admin": is_main,
        "admin_status": current_user.get("admin_status"),
        "can_approve_admins": is_main,
    }


@router.post("/setup-main-admin")
async def setup_main_admin():
    user = await db.users.find_one({"email": settings.MAIN_ADMIN_EMAIL}, USER_FIELDS)
    if not user:
        raise HTTPException(
            status_code=404,
            detail=f"User not found. Please register with the email {settings.MAIN_ADMIN_EMAIL} first"
        )

    now = datetime.now(timezone.utc).isoformat()
    await db.users.update_one(
        {"id": user["id"]},
        {"$set": {
            "role": "admin",
            "is_main_admin": True,
            "admin_status": AdminStatus.APPROVED.value,
            "approved_at": now,
            "updated_at": now,
        }}
    )
    logger.info("Main admin set to %s", user["email"])

    return {
        "status": "success",
        "message": "Main admin setup successful",
        "user": {"id": user["id"], "name": user["name"], "email": user["email"], "role": "admin",
                 "is_main_admin": True, "admin_status": AdminStatus.APPROVED.value},
    }


# Maintenance

@router.post("/cleanup/invalid-donors")
async def cleanup_invalid_donors(request: Request, current_user: dict = Depends(require_admin)):
    donors = await db.donors.find({}, {"_id": 0, "id": 1, "user_id": 1, "name": 1, "email": 1, "blood_group": 1}).to_list(10000)
    user_ids = {u["id"] for u in await db.users.find({}, {"_id": 0, "id": 1}).to_list(10000)}

    invalid = [d for d in donors if not d.get("user_id") or d["user_id"] not in user_ids]
    if not invalid:
        return {"message": "No invalid donors found", "deleted": 0, "total_donors": len(donors)}

    result = await db.donors.delete_many({"id": {"$in": [d["id"] for d in invalid]}})
    await audit_log(
        AuditAction.CLEANUP, AuditModule.DONORS, current_user,
        description=f"Deleted {result.deleted_count} donors without a valid user", request=request
    )
    logger.info("Deleted %s invalid donor(s)", result.deleted_count)

    return {
        "message": f"Deleted {result.deleted_count} invalid donors",
        "deleted": result.deleted_count,
        "invalid_donors": invalid,
        "before_count": len(donors),
        "after_count": len(donors) - result.deleted_count,
    }


@router.post("/cleanup/fix-availability")
async def fix_donor_availability(current_user: dict = Depends(require_admin)):
    today = datetime.now(timezone.utc).date().isoformat()
    result = await db.donors.update_many(
        {"is_available": True, "next_eligible_date": {"$ne": None, "$gt": today}},
        {"$set": {"is_available": False, "updated_at": datetime.now(timezone.utc).isoformat()}}
    )
    return {
        "message": f"Marked {result.modified_count} donor(s) in their waiting period as unavailable",
        "updated": result.modified_count,
    }


@router.get("/cleanup/proactive-requests")
async def get_proactive_requests_for_cleanup(current_user: dict = Depends(require_admin)):
    requests = await db.blood_requests.find(
        {"request_type": RequestType.PROACTIVE_INVENTORY.value}, {"_id": 0}
    ).sort("created_at", -1).to_list(1000)

    enriched = []
    for req in requests:
        notifications = await db.notifications.count_documents({"request_id": req["id"]})
        appointments = await db.appointments.count_documents({"request_id": req["id"]})
        enriched.append({
            "id": req["id"],
            "blood_group": req["blood_group"],
            "units_requested": req["units_requested"],
            "units_collected": req.get("units_collected", 0),
            "status": req["status"],
            "donors_notified": req.get("donors_notified", 0),
            "appointments_scheduled": req.get("appointments_scheduled", 0),
            "created_at": req.get("created_at"),
            "notifications_count": notifications,
            "appointments_count": appointments,
            "has_data": notifications > 0 or appointments > 0,
        })
    return {"requests": enriched}


@router.delete("/cleanup/proactive-requests/{request_id}")
async def delete_proactive_request(
    request_id: str,
    request: Request,
    delete_related_data: bool = True,
    current_user: dict = Depends(require_admin)
):
    req = await db.blood_requests.find_one(
        {"id": request_id, "request_type": RequestType.PROACTIVE_INVENTORY.value}, {"_id": 0}
    )
    if not req:
        raise HTTPException(status_code=404, detail="Request not found")

    deleted_notifications = deleted_appointments = 0
    if delete_related_data:
        deleted_notifications = (await db.notifications.delete_many({"request_id": request_id})).deleted_count
        deleted_appointments = (await db.appointments.delete_many({"request_id": request_id})).deleted_count

    await db.blood_requests.delete_one({"id": request_id})
    await audit_delete(AuditModule.REQUESTS, current_user, request_id, "blood_request", request=request)

    return {
        "message": "Request deleted successfully",
        "deleted_related_data": delete_related_data,
        "deleted_notifications": deleted_notifications,
        "deleted_appointments": deleted_appointments,
    }
