from datetime import datetime, timezone, timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Request

from database import db
from models import DonationRecordCreate, BloodGroup, DonationStatus
from models.audit import AuditAction, AuditModule
from middleware import require_admin, require_roles
from services import record_donation, audit_log

router = APIRouter(prefix="/donations", tags=["Donations"])


@router.post("/record", status_code=201)
async def record_donation_entry(body: DonationRecordCreate, request: Request, current_user: dict = Depends(require_admin)):
    donor = await db.donors.find_one({"id": body.donor_id}, {"_id": 0})
    if not donor:
        raise HTTPException(status_code=404, detail="Donor not found")
    if not donor.get("is_active", True):
        raise HTTPException(status_code=400, detail="Donor account is inactive")

    result = await record_donation(
        donor,
        recorded_by=current_user["id"],
        units=body.units,
        collection_date=body.collection_date,
        notes=body.notes,
        verified_by=body.verified_by,
        location=body.location,
    )
    await audit_log(
        AuditAction.COLLECT, AuditModule.DONATIONS, current_user,
        record_id=result["donation"]["id"], record_type="donation",
        new_values={"donor_id": donor["id"], "units": body.units}, request=request
    )
    return {"message": "Donation recorded successfully", **result}


@router.get("")
async def list_donations(
    status: Optional[DonationStatus] = None,
    blood_group: Optional[BloodGroup] = None,
    donor_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    current_user: dict = Depends(require_admin)
):
    query = {}
    if status:
        query["status"] = status.value
    if blood_group:
        query["blood_group"] = blood_group.value
    if donor_id:
        query["donor_id"] = donor_id
    if start_date or end_date:
        query["collection_date"] = {}
        if start_date:
            query["collection_date"]["$gte"] = start_date
        if end_date:
            # whole end day
            query["collection_date"]["$lte"] = f"{end_date}T23:59:59.999999+00:00"

    return await db.donations.find(query, {"_id": 0}).sort("collection_date", -1).to_list(100)


@router.get("/stats")
async def get_donation_stats(current_user: dict = Depends(require_admin)):
    since = (datetime.now(timezone.utc) - timedelta(days=30)).isoformat()
    pipeline = [
        {"$group": {"_id": "$blood_group", "donations": {"$sum": 1}, "units": {"$sum": "$units"}}},
    ]
    by_group = {row["_id"]: {"donations": row["donations"], "units": row["units"]}
                for row in await db.donations.aggregate(pipeline).to_list(20)}

    return {
        "total_donations": await db.donations.count_documents({}),
        "last_30_days": await db.donations.count_documents({"collection_date": {"$gte": since}}),
        "by_blood_group": by_group,
    }


@router.get("/donor/{donor_id}")
async def get_donor_donations(donor_id: str, current_user: dict = Depends(require_roles("admin", "donor"))):
    donor = await db.donors.find_one({"id": donor_id}, {"_id": 0, "id": 1, "user_id": 1})
    if not donor:
        raise HTTPException(status_code=404, detail="Donor not found")
    if current_user["role"] == "donor" and donor.get("user_id") != current_user["id"]:
        raise HTTPException(status_code=403, detail="You can only view your own donations")

    return await db.donations.find({"donor_id": donor_id}, {"_id": 0}).sort("collection_date", -1).to_list(1000)
