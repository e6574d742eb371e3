"""
Donation appointments.

Appointments are booked from an accepted donation-request notification and
move scheduled -> confirmed -> in_progress -> completed, or end as
cancelled/no_show. Completing one records the donation and books the
collected units into inventory.
"""
import logging
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Request

from database import db
from models import (
    Appointment, AppointmentFromNotification, AppointmentStatusUpdate, AppointmentCancel,
    AppointmentComplete, AppointmentStatus, AppointmentType, BloodGroup, NotificationType,
    ResponseAction
)
from models.audit import AuditAction, AuditModule
from middleware import require_admin, require_donor, require_roles
from services import create_notification, record_donation, audit_log
from routers.donors import get_own_donor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED.value: {"confirmed", "in_progress", "cancelled", "no_show", "completed"},
    AppointmentStatus.CONFIRMED.value: {"in_progress", "cancelled", "no_show", "completed"},
    AppointmentStatus.IN_PROGRESS.value: {"completed", "cancelled"},
}
OPEN_STATUSES = list(ALLOWED_TRANSITIONS)
DONOR_CANCEL_CUTOFF_HOURS = 2


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _get_appointment(appointment_id: str) -> dict:
    appointment = await db.appointments.find_one({"id": appointment_id}, {"_id": 0})
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return appointment


async def _set_status(appointment_id: str, from_statuses, updates: dict) -> dict:
    updates["updated_at"] = _now()
    result = await db.appointments.update_one(
        {"id": appointment_id, "status": {"$in": list(from_statuses)}},
        {"$set": updates}
    )
    if result.modified_count == 0:
        raise HTTPException(status_code=409, detail="Appointment status changed, please reload and try again")
    return await _get_appointment(appointment_id)


def scheduled_at(appointment: dict) -> datetime:
    """Appointment start as an aware UTC datetime."""
    day = datetime.fromisoformat(appointment["scheduled_date"][:10])
    hours, minutes = appointment["scheduled_time"].split(":")
    return day.replace(hour=int(hours), minute=int(minutes), tzinfo=timezone.utc)


async def complete_appointment(
    appointment: dict,
    current_user: dict,
    units_collected: int = 1,
    admin_notes: Optional[str] = None,
    location: Optional[str] = None,
) -> dict:
    """
    Close an appointment as completed and record the donation.

    The appointment is claimed first so the same visit cannot be recorded
    twice, and released again if the donation cannot be recorded. The linked
    request's units_collected grows by the collected units and the donor
    receives a thank-you notification.
    """
    donor = await db.donors.find_one({"id": appointment["donor_id"]}, {"_id": 0})
    if not donor:
        raise HTTPException(status_code=404, detail="Donor not found")
    if not donor.get("is_active", True):
        raise HTTPException(status_code=400, detail="Donor account is inactive")

    await _set_status(appointment["id"], OPEN_STATUSES, {
        "status": AppointmentStatus.COMPLETED.value,
        "completed_at": _now(),
        "units_collected": units_collected,
        "admin_notes": admin_notes or appointment.get("admin_notes"),
    })

    try:
        result = await record_donation(
            donor,
            recorded_by=current_user["id"],
            units=units_collected,
            notes=admin_notes,
            location=location or appointment.get("location"),
            request_id=appointment.get("request_id"),
            appointment_id=appointment["id"],
        )
    except Exception:
        await db.appointments.update_one(
            {"id": appointment["id"], "status": AppointmentStatus.COMPLETED.value},
            {"$set": {
                "status": appointment["status"],
                "completed_at": appointment.get("completed_at"),
                "units_collected": appointment.get("units_collected"),
                "admin_notes": appointment.get("admin_notes"),
            }}
        )
        logger.exception("Recording donation for appointment %s failed, status reverted", appointment["id"])
        raise
    await db.appointments.update_one(
        {"id": appointment["id"]},
        {"$set": {"donation_record_id": result["donation"]["id"]}}
    )

    if appointment.get("request_id"):
        await db.blood_requests.update_one(
            {"id": appointment["request_id"]},
            {"$inc": {"units_collected": units_collected}}
        )

    await create_notification(
        recipient_id=donor["id"],
        type=NotificationType.DONATION_THANKS,
        title="Thank you for donating!",
        message=f"Your donation of {units_collected} unit(s) of {donor['blood_group']} blood has been recorded. Thank you for saving lives!",
        request_id=appointment.get("request_id"),
        appointment_id=appointment["id"],
        metadata={"blood_group": donor["blood_group"], "units_needed": units_collected},
        created_by=current_user["id"],
    )
    logger.info("Appointment %s completed: %s unit(s) from donor %s", appointment["id"], units_collected, donor["id"])

    return {
        "appointment": await _get_appointment(appointment["id"]),
        "donation": result["donation"],
        "inventory_lot": result["inventory_lot"],
        "warning": result["warning"],
    }


@router.post("/from-notification", status_code=201)
async def create_appointment_from_notification(
    body: AppointmentFromNotification,
    request: Request,
    current_user: dict = Depends(require_admin)
):
    notification = await db.notifications.find_one({"id": body.notification_id}, {"_id": 0})
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    if (notification.get("response") or {}).get("action") != ResponseAction.ACCEPT.value:
        raise HTTPException(status_code=400, detail="Donor has not accepted the donation request")
    if notification.get("appointment_id"):
        raise HTTPException(status_code=409, detail="An appointment has already been scheduled for this notification")
    if date.fromisoformat(body.scheduled_date) < datetime.now(timezone.utc).date():
        raise HTTPException(status_code=400, detail="Appointment date cannot be in the past")

    donor = await db.donors.find_one({"id": notification["recipient_id"]}, {"_id": 0})
    if not donor:
        raise HTTPException(status_code=404, detail="Donor not found")

    appointment = Appointment(
        donor_id=donor["id"],
        request_id=notification.get("request_id"),
        notification_id=notification["id"],
        scheduled_date=body.scheduled_date,
        scheduled_time=body.scheduled_time,
        location=body.location,
        blood_group=donor["blood_group"],
        donor_notes=body.donor_notes,
        created_by=current_user["id"],
        type=AppointmentType.REACTIVE,
    )
    claimed = await db.notifications.update_one(
        {"id": notification["id"], "appointment_id": None},
        {"$set": {"appointment_id": appointment.id}}
    )
    if claimed.modified_count == 0:
        raise HTTPException(status_code=409, detail="An appointment has already been scheduled for this notification")

    doc = appointment.model_dump(mode="json")
    await db.appointments.insert_one(doc)
    doc.pop("_id", None)

    if notification.get("request_id"):
        await db.blood_requests.update_one(
            {"id": notification["request_id"]}, {"$inc": {"appointments_scheduled": 1}}
        )

    await create_notification(
        recipient_id=donor["id"],
        type=NotificationType.APPOINTMENT_CONFIRMATION,
        title="Donation appointment scheduled",
        message=f"Your donation appointment is on {body.scheduled_date} at {body.scheduled_time}, {body.location}.",
        request_id=notification.get("request_id"),
        appointment_id=appointment.id,
        metadata={"blood_group": donor["blood_group"]},
        created_by=current_user["id"],
    )
    await audit_log(
        AuditAction.CREATE, AuditModule.APPOINTMENTS, current_user,
        record_id=appointment.id, record_type="appointment", request=request
    )

    return {
        "message": "Appointment scheduled successfully",
        "appointment": {**doc, "donor_name": donor.get("name")},
    }


@router.get("")
async def get_appointments(
    status: Optional[AppointmentStatus] = None,
    date: Optional[str] = None,
    blood_group: Optional[BloodGroup] = None,
    request_id: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    current_user: dict = Depends(require_admin)
):
    query = {}
    if status:
        query["status"] = status.value
    if date:
        query["scheduled_date"] = date
    if blood_group:
        query["blood_group"] = blood_group.value
    if request_id:
        query["request_id"] = request_id

    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    total = await db.appointments.count_documents(query)
    appointments = await db.appointments.find(query, {"_id": 0}).sort(
        [("scheduled_date", 1), ("scheduled_time", 1)]
    ).skip((page - 1) * limit).to_list(limit)

    donor_ids = list({a["donor_id"] for a in appointments})
    donors = {d["id"]: d for d in await db.donors.find(
        {"id": {"$in": donor_ids}}, {"_id": 0, "id": 1, "name": 1, "email": 1, "phone": 1}
    ).to_list(len(donor_ids) or 1)}
    for appointment in appointments:
        appointment["donor"] = donors.get(appointment["donor_id"])

    return {
        "appointments": appointments,
        "pagination": {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
    }


@router.get("/donor")
async def get_donor_appointments(current_user: dict = Depends(require_donor)):
    donor = await get_own_donor(current_user)
    appointments = await db.appointments.find({"donor_id": donor["id"]}, {"_id": 0}).sort("scheduled_date", -1).to_list(1000)
    now = datetime.now(timezone.utc)
    for appointment in appointments:
        hours_until = (scheduled_at(appointment) - now).total_seconds() / 3600
        appointment["can_cancel"] = (
            appointment["status"] in (AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)
            and hours_until > DONOR_CANCEL_CUTOFF_HOURS
        )
    return appointments


@router.get("/stats")
async def get_appointment_stats(current_user: dict = Depends(require_admin)):
    appointments = await db.appointments.find({}, {"_id": 0, "status": 1, "blood_group": 1, "scheduled_date": 1}).to_list(10000)
    today = datetime.now(timezone.utc).date().isoformat()

    by_status, by_group, today_counts = {}, {}, {}
    for appointment in appointments:
        by_status[appointment["status"]] = by_status.get(appointment["status"], 0) + 1
        by_group[appointment["blood_group"]] = by_group.get(appointment["blood_group"], 0) + 1
        if appointment["scheduled_date"][:10] == today:
            today_counts[appointment["status"]] = today_counts.get(appointment["status"], 0) + 1

    total = len(appointments)
    completed = by_status.get(AppointmentStatus.COMPLETED.value, 0)
    no_shows = by_status.get(AppointmentStatus.NO_SHOW.value, 0)
    return {
        "total_appointments": total,
        "status_counts": by_status,
        "blood_group_counts": by_group,
        "today_appointments": today_counts,
        "completion_rate": round(completed / total * 100, 1) if total else 0.0,
        "no_show_rate": round(no_shows / total * 100, 1) if total else 0.0,
    }


@router.patch("/{appointment_id}/status")
async def update_appointment_status(
    appointment_id: str,
    body: AppointmentStatusUpdate,
    request: Request,
    current_user: dict = Depends(require_admin)
):
    appointment = await _get_appointment(appointment_id)
    current = appointment["status"]
    target = body.status.value
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise HTTPException(status_code=400, detail=f"Cannot change appointment status from '{current}' to '{target}'")

    if body.status == AppointmentStatus.COMPLETED:
        result = await complete_appointment(
            appointment, current_user, units_collected=body.units_collected or 1, admin_notes=body.admin_notes
        )
        return {"message": "Appointment completed", **result}

    updates = {"status": target}
    if body.admin_notes:
        updates["admin_notes"] = body.admin_notes
    if body.status == AppointmentStatus.CONFIRMED:
        updates["confirmed_at"] = _now()
    updated = await _set_status(appointment_id, [current], updates)

    await audit_log(
        AuditAction.UPDATE, AuditModule.APPOINTMENTS, current_user,
        record_id=appointment_id, record_type="appointment",
        old_values={"status": current}, new_values={"status": target}, request=request
    )
    return {"message": f"Appointment {target}", "appointment": updated}


@router.post("/{appointment_id}/cancel")
async def cancel_appointment(
    appointment_id: str,
    body: AppointmentCancel,
    current_user: dict = Depends(require_roles("admin", "donor"))
):
    appointment = await _get_appointment(appointment_id)
    allowed_from = OPEN_STATUSES

    if current_user["role"] == "donor":
        donor = await get_own_donor(current_user)
        if appointment["donor_id"] != donor["id"]:
            raise HTTPException(status_code=403, detail="You can only cancel your own appointments")
        hours_until = (scheduled_at(appointment) - datetime.now(timezone.utc)).total_seconds() / 3600
        allowed_from = [AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value]
        if appointment["status"] not in allowed_from or hours_until <= DONOR_CANCEL_CUTOFF_HOURS:
            raise HTTPException(
                status_code=400,
                detail="Appointment cannot be cancelled less than 2 hours before scheduled time"
            )
    elif appointment["status"] not in allowed_from:
        raise HTTPException(status_code=400, detail=f"Cannot cancel an appointment with status '{appointment['status']}'")

    updated = await _set_status(appointment_id, allowed_from, {
        "status": AppointmentStatus.CANCELLED.value,
        "cancellation_reason": body.reason,
    })
    return {"message": "Appointment cancelled successfully", "appointment": updated}


@router.post("/{appointment_id}/complete")
async def complete_appointment_endpoint(
    appointment_id: str,
    body: AppointmentComplete,
    request: Request,
    current_user: dict = Depends(require_admin)
):
    appointment = await _get_appointment(appointment_id)
    if appointment["status"] not in OPEN_STATUSES:
        raise HTTPException(status_code=400, detail=f"Cannot complete an appointment with status '{appointment['status']}'")

    result = await complete_appointment(
        appointment, current_user,
        units_collected=body.units_collected, admin_notes=body.admin_notes, location=body.location
    )
    await audit_log(
        AuditAction.COMPLETE, AuditModule.APPOINTMENTS, current_user,
        record_id=appointment_id, record_type="appointment",
        new_values={"units_collected": body.units_collected}, request=request
    )
    return {"message": "Appointment completed and donation recorded", **result}
