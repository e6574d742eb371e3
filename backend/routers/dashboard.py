from fastapi import APIRouter, Depends
from datetime import datetime, timezone, timedelta

from database import db
from middleware import require_admin
from services import stock_by_group

router = APIRouter(tags=["Dashboard"])


@router.get("/dashboard/stats")
async def get_dashboard_stats(current_user: dict = Depends(require_admin)):
    today = datetime.now(timezone.utc).date()
    expiring_cutoff = (today + timedelta(days=7)).isoformat()

    total_donors = await db.donors.count_documents({})
    active_donors = await db.donors.count_documents({"is_active": True})

    units_by_group = await stock_by_group()

    pending_requests = await db.blood_requests.count_documents({"status": "pending"})

    expiring_count = await db.inventory.count_documents({
        "units": {"$gt": 0},
        "expiry_date": {"$gte": today.isoformat(), "$lte": expiring_cutoff}
    })

    todays_appointments = await db.appointments.count_documents({"scheduled_date": today.isoformat()})

    pending_reports = await db.medical_reports.count_documents({"status": "pending", "is_active": True})

    return {
        "total_donors": total_donors,
        "active_donors": active_donors,
        "available_units": sum(units_by_group.values()),
        "pending_requests": pending_requests,
        "expiring_within_7_days": expiring_count,
        "todays_appointments": todays_appointments,
        "pending_medical_reports": pending_reports,
        "inventory_by_blood_group": units_by_group,
    }


@router.get("/")
async def root():
    return {"status": "healthy", "service": "Blood Bank Management API"}
