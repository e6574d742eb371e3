"""
Blood request workflow.

pending -> approved (units allocated FIFO) -> collected -> verified, with
rejection, cancellation, rescheduling and no-show detection on the way.
Every transition is applied with the expected current status in the
update filter, so two concurrent writers cannot both move a request.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional, List

from fastapi import APIRouter, HTTPException, Depends, Query, Request
from pymongo import ReturnDocument

from database import db
from models import (
    BloodRequest, BloodRequestCreate, ProactiveRequestCreate, ApproveRequest, RejectRequest,
    RescheduleRequest, RescheduleDecision, CancelRequest, RequestStatus, RequestType, Urgency
)
from models.audit import AuditAction, AuditModule
from middleware import require_admin, require_roles, require_requester
from services import (
    InsufficientInventoryError, allocate_fifo, release_allocations, available_units, audit_log
)
from services.donor_matching import find_suitable_donors, count_eligible_donors
from services.eligibility import parse_datetime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["Blood Requests"])

CANCELLABLE = [RequestStatus.PENDING.value, RequestStatus.APPROVED.value, RequestStatus.RESCHEDULE_REQUESTED.value]
APPROVABLE = [RequestStatus.PENDING.value, RequestStatus.COMPLETED.value]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _get_request(request_id: str) -> dict:
    req = await db.blood_requests.find_one({"id": request_id}, {"_id": 0})
    if not req:
        raise HTTPException(status_code=404, detail="Request not found")
    return req


def _check_access(req: dict, current_user: dict, allow_admin: bool = True):
    if allow_admin and current_user["role"] == "admin":
        return
    if req.get("requester_user_id") != current_user["id"]:
        raise HTTPException(status_code=403, detail="You do not have access to this request")


async def _transition(request_id: str, from_statuses: List[str], updates: dict) -> dict:
    """
    Apply `updates` only while the request is in one of `from_statuses`.

    Returns the request as it was before the update; raises 409 when another
    writer moved it first.
    """
    updates["updated_at"] = _now()
    before = await db.blood_requests.find_one_and_update(
        {"id": request_id, "status": {"$in": from_statuses}},
        {"$set": updates},
        projection={"_id": 0},
        return_document=ReturnDocument.BEFORE,
    )
    if before is None:
        raise HTTPException(status_code=409, detail="Request status changed, please reload and try again")
    return before


async def _create(data: dict, current_user: dict, request_type: RequestType = RequestType.STANDARD) -> dict:
    blood_request = BloodRequest(
        requester_user_id=current_user["id"],
        requester_role=current_user["role"],
        request_type=request_type,
        **data
    )
    doc = blood_request.model_dump(mode="json")
    await db.blood_requests.insert_one(doc)
    doc.pop("_id", None)
    logger.info("Request %s created by %s: %s unit(s) of %s", doc["id"], current_user["email"], doc["units_requested"], doc["blood_group"])
    return doc


@router.post("", status_code=201)
async def create_blood_request(request_data: BloodRequestCreate, current_user: dict = Depends(require_requester)):
    return await _create(request_data.model_dump(), current_user)


@router.post("/enhanced", status_code=201)
async def create_enhanced_request(
    request_data: BloodRequestCreate,
    current_user: dict = Depends(require_roles("hospital", "external", "admin"))
):
    doc = await _create(request_data.model_dump(), current_user)
    available = await available_units(doc["blood_group"])
    shortage = max(0, doc["units_requested"] - available)

    donor_suggestions = None
    if shortage > 0:
        eligible = await count_eligible_donors(doc["blood_group"])
        donor_suggestions = {
            "shortage": shortage,
            "eligible_donors": eligible,
            "recommendation": "Sufficient eligible donors available" if eligible >= shortage
            else "Limited eligible donors - consider expanding search criteria",
        }

    return {
        "message": "Request created successfully",
        "request": doc,
        "inventory_status": {"available": available, "shortage": shortage},
        "donor_suggestions": donor_suggestions,
    }


@router.post("/proactive", status_code=201)
async def create_proactive_request(request_data: ProactiveRequestCreate, current_user: dict = Depends(require_admin)):
    data = request_data.model_dump()
    data.setdefault("hospital_name", "Blood Bank Inventory")
    data["patient_name"] = "Inventory Replenishment"
    return await _create(data, current_user, RequestType.PROACTIVE_INVENTORY)


@router.get("")
async def get_blood_requests(
    status: Optional[RequestStatus] = None,
    current_user: dict = Depends(require_roles("admin", "hospital", "external"))
):
    query = {}
    if current_user["role"] != "admin":
        query["requester_user_id"] = current_user["id"]
    if status:
        query["status"] = status.value
    return await db.blood_requests.find(query, {"_id": 0}).sort("created_at", -1).to_list(1000)


@router.get("/dashboard")
async def get_request_dashboard(current_user: dict = Depends(require_admin)):
    requests = await db.blood_requests.find({}, {"_id": 0}).to_list(10000)
    today = datetime.now(timezone.utc).date().isoformat()

    status_counts, urgency_counts, today_counts, needs = {}, {}, {}, {}
    flow = {"total_requested": 0, "total_notified": 0, "total_responded": 0, "total_scheduled": 0, "total_collected": 0}
    for req in requests:
        status_counts[req["status"]] = status_counts.get(req["status"], 0) + 1
        urgency_counts[req["urgency"]] = urgency_counts.get(req["urgency"], 0) + 1
        if str(req.get("created_at", "")).startswith(today):
            today_counts[req["status"]] = today_counts.get(req["status"], 0) + 1
        if req["status"] in (RequestStatus.PENDING.value, RequestStatus.APPROVED.value):
            need = needs.setdefault(req["blood_group"], {"blood_group": req["blood_group"], "total_units": 0, "requests": 0})
            need["total_units"] += req["units_requested"]
            need["requests"] += 1
        if req["status"] != RequestStatus.REJECTED.value:
            flow["total_requested"] += req["units_requested"]
            flow["total_notified"] += req.get("donors_notified", 0)
            flow["total_responded"] += req.get("donors_responded", 0)
            flow["total_scheduled"] += req.get("appointments_scheduled", 0)
            flow["total_collected"] += req.get("units_collected", 0)

    response_rate = round(flow["total_responded"] / flow["total_notified"] * 100, 1) if flow["total_notified"] else 0.0
    fulfillment_rate = round(flow["total_collected"] / flow["total_requested"] * 100, 1) if flow["total_requested"] else 0.0

    due_soon = datetime.now(timezone.utc) + timedelta(hours=24)
    urgency_rank = {u.value: i for i, u in enumerate(Urgency)}
    urgent = []
    for req in requests:
        if req["status"] != RequestStatus.PENDING.value:
            continue
        required_by = parse_datetime(req.get("required_by"))
        if req["urgency"] in (Urgency.HIGH.value, Urgency.CRITICAL.value) or (required_by and required_by <= due_soon):
            urgent.append(req)
    urgent.sort(key=lambda r: (-urgency_rank.get(r["urgency"], 0), r.get("required_by") or ""))

    recommendations = []
    if flow["total_notified"] and response_rate < 30:
        recommendations.append({"type": "warning", "message": "Low donor response rate. Consider improving notification messages or timing."})
    if flow["total_requested"] and fulfillment_rate < 70:
        recommendations.append({"type": "alert", "message": "Low request fulfillment rate. Consider expanding donor outreach."})
    critical = urgency_counts.get(Urgency.CRITICAL.value, 0)
    if critical:
        recommendations.append({"type": "urgent", "message": f"{critical} critical requests need immediate attention."})

    return {
        "summary": {
            "status_counts": status_counts,
            "urgency_breakdown": urgency_counts,
            "today_requests": today_counts,
            "blood_group_needs": sorted(needs.values(), key=lambda n: n["blood_group"]),
        },
        "donation_flow": {**flow, "response_rate": response_rate, "fulfillment_rate": fulfillment_rate},
        "urgent_requests": urgent[:10],
        "recommendations": recommendations,
    }


@router.post("/detect-no-shows")
async def detect_no_shows(request: Request, current_user: dict = Depends(require_admin)):
    now = datetime.now(timezone.utc)
    approved = await db.blood_requests.find({"status": RequestStatus.APPROVED.value}, {"_id": 0}).to_list(10000)

    detected = []
    for req in approved:
        due = parse_datetime(req.get("collection_date"))
        if due is None:
            continue
        if len(req["collection_date"]) == 10:
            # a bare date stays collectable for the whole day
            due += timedelta(days=1)
        if due >= now:
            continue
        try:
            before = await _transition(req["id"], [RequestStatus.APPROVED.value], {
                "status": RequestStatus.NO_SHOW.value,
                "no_show_detected_at": now.isoformat(),
                "no_show_reason": "Requester did not collect by the scheduled collection date",
                "allocations": [],
                "assigned_units": 0,
            })
        except HTTPException:
            continue
        restored = await release_allocations(before.get("allocations", []))
        detected.append({"id": req["id"], "blood_group": req["blood_group"], "units_restored": restored})

    if detected:
        await audit_log(
            AuditAction.RELEASE, AuditModule.REQUESTS, current_user,
            description=f"Marked {len(detected)} request(s) as no-show", request=request
        )
        logger.info("Detected %s no-show request(s)", len(detected))

    return {
        "message": f"Detected {len(detected)} no-show request(s)",
        "count": len(detected),
        "units_restored": sum(d["units_restored"] for d in detected),
        "requests": detected,
    }


@router.get("/{request_id}")
async def get_blood_request(request_id: str, current_user: dict = Depends(require_roles("admin", "hospital", "external"))):
    req = await _get_request(request_id)
    _check_access(req, current_user)
    return req


@router.post("/{request_id}/approve")
async def approve_request(request_id: str, body: ApproveRequest, request: Request, current_user: dict = Depends(require_admin)):
    req = await _get_request(request_id)
    if req.get("request_type") == RequestType.PROACTIVE_INVENTORY.value:
        raise HTTPException(status_code=400, detail="Proactive inventory requests are fulfilled through donations, not approval")
    if req["status"] not in APPROVABLE:
        raise HTTPException(status_code=400, detail=f"Cannot approve a request with status '{req['status']}'")

    try:
        allocations = await allocate_fifo(req["blood_group"], req["units_requested"])
    except InsufficientInventoryError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "available_units": exc.available, "required_units": exc.requested},
        )

    try:
        await _transition(request_id, APPROVABLE, {
            "status": RequestStatus.APPROVED.value,
            "allocations": allocations,
            "assigned_units": req["units_requested"],
            "approved_on": _now(),
            "approved_by": current_user["id"],
            "collection_date": body.collection_date,
            "collection_location": body.collection_location,
            "collection_instructions": body.collection_instructions,
        })
    except HTTPException:
        await release_allocations(allocations)
        raise

    await audit_log(
        AuditAction.APPROVE, AuditModule.REQUESTS, current_user,
        record_id=request_id, record_type="blood_request",
        new_values={"allocations": allocations, "collection_date": body.collection_date}, request=request
    )
    logger.info("Request %s approved by %s", request_id, current_user["email"])
    return {"message": "Request approved and units assigned", "request": await _get_request(request_id)}


@router.post("/{request_id}/reject")
async def reject_request(request_id: str, body: RejectRequest, request: Request, current_user: dict = Depends(require_admin)):
    req = await _get_request(request_id)
    if req["status"] != RequestStatus.PENDING.value:
        raise HTTPException(status_code=400, detail="Only pending requests can be rejected")

    await _transition(request_id, [RequestStatus.PENDING.value], {
        "status": RequestStatus.REJECTED.value,
        "rejected_on": _now(),
        "rejection_reason": body.reason,
    })
    await audit_log(
        AuditAction.REJECT, AuditModule.REQUESTS, current_user,
        record_id=request_id, record_type="blood_request", description=body.reason, request=request
    )
    return {"message": "Request rejected", "request": await _get_request(request_id)}


@router.post("/{request_id}/confirm-collection")
async def confirm_collection(request_id: str, current_user: dict = Depends(require_requester)):
    req = await _get_request(request_id)
    _check_access(req, current_user, allow_admin=False)
    if req["status"] != RequestStatus.APPROVED.value:
        raise HTTPException(status_code=400, detail="Only approved requests can be marked as collected")

    await _transition(request_id, [RequestStatus.APPROVED.value], {
        "status": RequestStatus.COLLECTED.value,
        "collected_at": _now(),
        "collected_by_user_confirmation": True,
    })
    return {"message": "Collection confirmed. Awaiting admin verification.", "request": await _get_request(request_id)}


@router.patch("/{request_id}/verify-collection")
async def verify_collection(request_id: str, request: Request, current_user: dict = Depends(require_admin)):
    req = await _get_request(request_id)
    if req["status"] != RequestStatus.COLLECTED.value:
        raise HTTPException(status_code=400, detail="Only collected requests can be verified")

    await _transition(request_id, [RequestStatus.COLLECTED.value], {
        "status": RequestStatus.VERIFIED.value,
        "verified_by_admin": True,
        "verified_at": _now(),
        "verified_by_user_id": current_user["id"],
    })
    await audit_log(
        AuditAction.VERIFY, AuditModule.REQUESTS, current_user,
        record_id=request_id, record_type="blood_request", request=request
    )
    return {"message": "Collection verified", "request": await _get_request(request_id)}


@router.post("/{request_id}/request-reschedule")
async def request_reschedule(request_id: str, body: RescheduleRequest, current_user: dict = Depends(require_requester)):
    req = await _get_request(request_id)
    _check_access(req, current_user, allow_admin=False)
    if req["status"] != RequestStatus.APPROVED.value:
        raise HTTPException(status_code=400, detail="Only approved requests can be rescheduled")

    await _transition(request_id, [RequestStatus.APPROVED.value], {
        "status": RequestStatus.RESCHEDULE_REQUESTED.value,
        "reschedule_requested": True,
        "reschedule_reason": body.reason,
        "original_collection_date": req.get("collection_date"),
        "new_requested_date": body.new_date,
    })
    return {"message": "Reschedule request submitted", "request": await _get_request(request_id)}


@router.post("/{request_id}/handle-reschedule")
async def handle_reschedule(request_id: str, body: RescheduleDecision, current_user: dict = Depends(require_admin)):
    req = await _get_request(request_id)
    if req["status"] != RequestStatus.RESCHEDULE_REQUESTED.value:
        raise HTTPException(status_code=400, detail="No pending reschedule request")

    updates = {
        "status": RequestStatus.APPROVED.value,
        "reschedule_requested": False,
        "reschedule_approved": body.approved,
    }
    if body.approved:
        updates["collection_date"] = req.get("new_requested_date")
    await _transition(request_id, [RequestStatus.RESCHEDULE_REQUESTED.value], updates)

    message = "Reschedule approved" if body.approved else "Reschedule declined; original collection date kept"
    return {"message": message, "request": await _get_request(request_id)}


@router.post("/{request_id}/cancel")
async def cancel_request(
    request_id: str,
    body: CancelRequest,
    request: Request,
    current_user: dict = Depends(require_roles("admin", "hospital", "external"))
):
    req = await _get_request(request_id)
    _check_access(req, current_user)
    if req["status"] not in CANCELLABLE:
        raise HTTPException(status_code=400, detail=f"Cannot cancel a request with status '{req['status']}'")

    before = await _transition(request_id, CANCELLABLE, {
        "status": RequestStatus.CANCELLED.value,
        "cancelled_at": _now(),
        "cancellation_reason": body.reason,
        "allocations": [],
        "assigned_units": 0,
    })
    restored = await release_allocations(before.get("allocations", []))
    await audit_log(
        AuditAction.CANCEL, AuditModule.REQUESTS, current_user,
        record_id=request_id, record_type="blood_request", description=body.reason,
        metadata={"units_restored": restored}, request=request
    )
    return {
        "message": "Request cancelled",
        "units_restored": restored,
        "request": await _get_request(request_id),
    }


@router.post("/{request_id}/mark-inventory-satisfied")
async def mark_inventory_satisfied(request_id: str, current_user: dict = Depends(require_admin)):
    req = await _get_request(request_id)
    if req["status"] != RequestStatus.PENDING.value:
        raise HTTPException(status_code=400, detail="Only pending requests can be marked as inventory satisfied")

    available = await available_units(req["blood_group"])
    if available < req["units_requested"]:
        raise HTTPException(
            status_code=400,
            detail=f"Insufficient inventory. Available: {available} units, Required: {req['units_requested']} units"
        )

    await _transition(request_id, [RequestStatus.PENDING.value], {
        "status": RequestStatus.COMPLETED.value,
        "units_collected": req["units_requested"],
    })
    return {
        "message": "Inventory satisfied. Request is ready for collection scheduling.",
        "request": await _get_request(request_id),
    }


@router.get("/{request_id}/suitable-donors")
async def get_suitable_donors(
    request_id: str,
    urgency: str = Query(default="normal", pattern="^(normal|urgent)$"),
    current_user: dict = Depends(require_admin)
):
    req = await _get_request(request_id)
    return await find_suitable_donors(req, urgency)


@router.get("/{request_id}/notification-responses")
async def get_notification_responses(request_id: str, current_user: dict = Depends(require_admin)):
    await _get_request(request_id)
    notifications = await db.notifications.find({"request_id": request_id}, {"_id": 0}).sort("created_at", -1).to_list(1000)

    by_status, by_action = {}, {}
    for notification in notifications:
        by_status[notification["status"]] = by_status.get(notification["status"], 0) + 1
        response = notification.get("response")
        if response:
            by_action[response["action"]] = by_action.get(response["action"], 0) + 1

    return {
        "request_id": request_id,
        "total": len(notifications),
        "by_status": by_status,
        "by_action": by_action,
        "notifications": notifications,
    }
