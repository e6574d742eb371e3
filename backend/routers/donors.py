import logging
import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Request

from config import settings
from database import db
from models import (
    Donor, DonorRegister, DonorAdminCreate, AvailabilityUpdate, DonorStatusUpdate, User, UserRole,
    BloodGroup, VerificationStatus, AvailabilityPreferences
)
from models.user import normalize_email
from models.audit import AuditAction, AuditModule
from middleware import require_admin, require_donor
from services import (
    hash_password, enrich_donor, eligibility_summary, eligible_donor_query, is_eligible,
    audit_log, audit_create
)

logger = logging.getLogger(__name__)

# Donor self-service
router = APIRouter(prefix="/donor", tags=["Donor Profile"])


async def get_own_donor(current_user: dict) -> dict:
    donor = await db.donors.find_one({"user_id": current_user["id"]}, {"_id": 0})
    if not donor:
        raise HTTPException(status_code=404, detail="Donor profile not found")
    return donor


@router.post("/register", status_code=201)
async def register_donor(profile: DonorRegister, current_user: dict = Depends(require_donor)):
    existing = await db.donors.find_one({"user_id": current_user["id"]})
    if existing:
        raise HTTPException(status_code=409, detail="Donor profile already exists")

    donor = Donor(
        user_id=current_user["id"],
        name=current_user["name"],
        email=current_user["email"],
        phone=current_user.get("phone"),
        **profile.model_dump()
    )
    doc = donor.model_dump(mode="json")
    await db.donors.insert_one(doc)
    doc.pop("_id", None)
    logger.info("Donor profile %s registered for user %s", donor.id, current_user["email"])
    return doc


@router.get("/me")
async def get_my_profile(current_user: dict = Depends(require_donor)):
    return enrich_donor(await get_own_donor(current_user))


@router.patch("/availability")
async def update_availability(body: AvailabilityUpdate, current_user: dict = Depends(require_donor)):
    donor = await get_own_donor(current_user)
    await db.donors.update_one(
        {"id": donor["id"]},
        {"$set": {"is_available": body.is_available, "updated_at": datetime.now(timezone.utc).isoformat()}}
    )
    donor["is_available"] = body.is_available
    return {
        "message": f"Availability updated to {'available' if body.is_available else 'unavailable'}",
        "donor": enrich_donor(donor),
    }


@router.get("/eligibility")
async def get_my_eligibility(current_user: dict = Depends(require_donor)):
    return eligibility_summary(await get_own_donor(current_user))


# Donor management (admin)
admin_router = APIRouter(prefix="/donors", tags=["Donors"])


@admin_router.get("")
async def list_donors(
    blood_group: Optional[BloodGroup] = None,
    is_active: Optional[bool] = None,
    is_available: Optional[bool] = None,
    can_donate: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    current_user: dict = Depends(require_admin)
):
    query = {}
    if blood_group:
        query["blood_group"] = blood_group.value
    if is_active is not None:
        query["is_active"] = is_active
    if is_available is not None:
        query["is_available"] = is_available
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"name": pattern}, {"email": pattern}, {"phone": pattern}]

    donors = await db.donors.find(query, {"_id": 0}).sort("created_at", -1).to_list(10000)
    enriched = [enrich_donor(d) for d in donors]
    if can_donate is not None:
        enriched = [d for d in enriched if d["can_donate"] == can_donate]

    page = max(page, 1)
    limit = min(max(limit, 1), 200)
    start = (page - 1) * limit
    return {
        "donors": enriched[start:start + limit],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": len(enriched),
            "pages": (len(enriched) + limit - 1) // limit,
        },
    }


@admin_router.get("/stats")
async def get_donor_stats(current_user: dict = Depends(require_admin)):
    donors = await db.donors.find({}, {"_id": 0}).to_list(10000)
    by_group = {group.value: 0 for group in BloodGroup}
    for donor in donors:
        by_group[donor["blood_group"]] = by_group.get(donor["blood_group"], 0) + 1

    enriched = [enrich_donor(d) for d in donors]
    return {
        "total": len(donors),
        "active": sum(1 for d in donors if d.get("is_active", True)),
        "available": sum(1 for d in donors if d.get("is_available", True)),
        "verified": sum(1 for d in donors if d.get("verification_status") == VerificationStatus.VERIFIED.value),
        "eligible": sum(1 for d in enriched if d["is_eligible"]),
        "can_donate": sum(1 for d in enriched if d["can_donate"]),
        "by_blood_group": by_group,
    }


@admin_router.get("/eligible/{blood_group}")
async def get_eligible_donors(blood_group: BloodGroup, current_user: dict = Depends(require_admin)):
    donors = await db.donors.find(eligible_donor_query(blood_group.value), {"_id": 0}).to_list(1000)
    # next_eligible_date can lag behind a manual history edit
    donors = [enrich_donor(d) for d in donors if is_eligible(d)]
    return {"blood_group": blood_group.value, "count": len(donors), "donors": donors}


@admin_router.post("", status_code=201)
async def admin_create_donor(body: DonorAdminCreate, request: Request, current_user: dict = Depends(require_admin)):
    try:
        email = normalize_email(body.email)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    if await db.users.find_one({"email": email}):
        raise HTTPException(status_code=409, detail="User with this email already exists")

    temporary_password = body.temporary_password or settings.DONOR_TEMP_PASSWORD
    user = User(
        email=email,
        password_hash=hash_password(temporary_password),
        name=body.name,
        role=UserRole.DONOR,
        phone=body.phone,
        must_change_password=True,
    )
    await db.users.insert_one(user.model_dump(mode="json"))

    donor = Donor(
        user_id=user.id,
        name=body.name,
        email=email,
        phone=body.phone,
        blood_group=body.blood_group,
        dob=body.dob,
        gender=body.gender,
        address=body.address,
        weight=body.weight,
        donor_type=body.donor_type,
        availability=body.availability or AvailabilityPreferences(),
        registered_by=current_user["id"],
        verification_status=VerificationStatus.VERIFIED,
    )
    doc = donor.model_dump(mode="json")
    await db.donors.insert_one(doc)
    await audit_create(AuditModule.DONORS, current_user, donor.id, "donor", {"email": email, "blood_group": doc["blood_group"]}, request=request)
    logger.info("Admin %s created donor %s", current_user["email"], email)

    return {
        "message": "Donor created successfully",
        "donor": {
            "id": donor.id,
            "user_id": user.id,
            "name": donor.name,
            "email": email,
            "blood_group": doc["blood_group"],
            "temporary_password": temporary_password,
            "login_instructions": "Donor must change password on first login",
        },
    }


async def _get_donor(donor_id: str) -> dict:
    donor = await db.donors.find_one({"id": donor_id}, {"_id": 0})
    if not donor:
        raise HTTPException(status_code=404, detail="Donor not found")
    return donor


@admin_router.post("/{donor_id}/send-credentials")
async def send_donor_credentials(donor_id: str, current_user: dict = Depends(require_admin)):
    donor = await _get_donor(donor_id)
    return {
        "message": "Credentials prepared for donor",
        "credentials": {
            "email": donor.get("email"),
            "temporary_password": settings.DONOR_TEMP_PASSWORD,
            "login_url": f"{settings.FRONTEND_URL}/login",
            "instructions": "Please log in and change your password immediately",
        },
    }


async def _set_donor_active(donor: dict, is_active: bool, reason: Optional[str], current_user: dict, request: Request) -> dict:
    await db.donors.update_one(
        {"id": donor["id"]},
        {"$set": {"is_active": is_active, "updated_at": datetime.now(timezone.utc).isoformat()}}
    )
    await audit_log(
        AuditAction.ENABLE if is_active else AuditAction.DISABLE, AuditModule.DONORS, current_user,
        record_id=donor["id"], record_type="donor", description=reason, request=request
    )
    donor["is_active"] = is_active
    return {
        "message": f"Donor {'activated' if is_active else 'deactivated'} successfully",
        "reason": reason,
        "donor": enrich_donor(donor),
    }


@admin_router.patch("/{donor_id}/status")
async def update_donor_status(donor_id: str, body: DonorStatusUpdate, request: Request, current_user: dict = Depends(require_admin)):
    donor = await _get_donor(donor_id)
    if body.is_active is None:
        raise HTTPException(status_code=400, detail="is_active is required")
    return await _set_donor_active(donor, body.is_active, body.reason, current_user, request)


@admin_router.patch("/{donor_id}/toggle-status")
async def toggle_donor_status(
    donor_id: str,
    request: Request,
    body: Optional[DonorStatusUpdate] = None,
    current_user: dict = Depends(require_admin)
):
    donor = await _get_donor(donor_id)
    reason = body.reason if body else None
    return await _set_donor_active(donor, not donor.get("is_active", True), reason, current_user, request)
