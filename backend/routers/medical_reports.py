import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, File, Form, Request, UploadFile

from database import db
from models import MedicalReport, MedicalReportReview, ReportType, ReviewStatus, VerificationStatus, EligibilityStatus
from models.audit import AuditAction, AuditModule
from middleware import require_admin, require_donor, require_roles
from services import audit_log, audit_delete
from services.storage import save_upload, delete_upload
from routers.donors import get_own_donor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/medical-reports", tags=["Medical Reports"])


@router.post("/upload", status_code=201)
async def upload_medical_report(
    file: UploadFile = File(...),
    report_type: ReportType = Form(ReportType.HEALTH_CHECKUP),
    valid_until: Optional[str] = Form(None),
    current_user: dict = Depends(require_donor)
):
    donor = await get_own_donor(current_user)
    stored = await save_upload(file, prefix="medical-report")

    report = MedicalReport(
        donor_id=donor["id"],
        report_type=report_type,
        report_url=stored["url"],
        stored_name=stored["stored_name"],
        file_name=stored["file_name"],
        file_size=stored["file_size"],
        content_type=stored["content_type"],
        valid_until=valid_until,
    )
    doc = report.model_dump(mode="json")
    await db.medical_reports.insert_one(doc)
    doc.pop("_id", None)
    logger.info("Donor %s uploaded medical report %s", donor["id"], report.id)
    return {"message": "Medical report uploaded successfully", "report": doc}


@router.get("/my-reports")
async def get_my_reports(current_user: dict = Depends(require_donor)):
    donor = await get_own_donor(current_user)
    return await db.medical_reports.find(
        {"donor_id": donor["id"], "is_active": True}, {"_id": 0}
    ).sort("uploaded_at", -1).to_list(1000)


@router.get("/pending")
async def get_pending_reports(current_user: dict = Depends(require_admin)):
    reports = await db.medical_reports.find(
        {"status": ReviewStatus.PENDING.value, "is_active": True}, {"_id": 0}
    ).sort("uploaded_at", 1).to_list(1000)

    donor_ids = list({r["donor_id"] for r in reports})
    donors = {d["id"]: d for d in await db.donors.find(
        {"id": {"$in": donor_ids}},
        {"_id": 0, "id": 1, "name": 1, "email": 1, "blood_group": 1, "verification_status": 1}
    ).to_list(len(donor_ids) or 1)}
    for report in reports:
        report["donor"] = donors.get(report["donor_id"])
    return reports


@router.get("/donor/{donor_id}")
async def get_donor_reports(donor_id: str, current_user: dict = Depends(require_admin)):
    if not await db.donors.find_one({"id": donor_id}, {"_id": 0, "id": 1}):
        raise HTTPException(status_code=404, detail="Donor not found")
    return await db.medical_reports.find({"donor_id": donor_id}, {"_id": 0}).sort("uploaded_at", -1).to_list(1000)


@router.patch("/{report_id}/review")
async def review_report(report_id: str, body: MedicalReportReview, request: Request, current_user: dict = Depends(require_admin)):
    if body.status == ReviewStatus.PENDING:
        raise HTTPException(status_code=400, detail="Invalid status. Must be approved or rejected")

    report = await db.medical_reports.find_one({"id": report_id}, {"_id": 0})
    if not report:
        raise HTTPException(status_code=404, detail="Medical report not found")

    now = datetime.now(timezone.utc).isoformat()
    await db.medical_reports.update_one(
        {"id": report_id},
        {"$set": {
            "status": body.status.value,
            "reviewed_by": current_user["id"],
            "reviewed_at": now,
            "review_notes": body.review_notes,
        }}
    )

    if body.status == ReviewStatus.APPROVED:
        donor_updates = {
            "verification_status": VerificationStatus.VERIFIED.value,
            "eligibility_status": EligibilityStatus.ELIGIBLE.value,
            "eligibility_notes": "Medical report approved - donor eligible for donation",
        }
    else:
        donor_updates = {
            "verification_status": VerificationStatus.REJECTED.value,
            "eligibility_status": EligibilityStatus.NOT_ELIGIBLE.value,
            "eligibility_notes": body.review_notes or "Medical report rejected - donor not eligible",
        }
    donor_updates["updated_at"] = now
    await db.donors.update_one({"id": report["donor_id"]}, {"$set": donor_updates})

    await audit_log(
        AuditAction.APPROVE if body.status == ReviewStatus.APPROVED else AuditAction.REJECT,
        AuditModule.MEDICAL_REPORTS, current_user,
        record_id=report_id, record_type="medical_report", description=body.review_notes, request=request
    )
    logger.info("Medical report %s %s by %s", report_id, body.status.value, current_user["email"])

    return {
        "message": f"Medical report {body.status.value}",
        "report": await db.medical_reports.find_one({"id": report_id}, {"_id": 0}),
        "donor": await db.donors.find_one({"id": report["donor_id"]}, {"_id": 0}),
    }


@router.delete("/{report_id}")
async def delete_report(report_id: str, request: Request, current_user: dict = Depends(require_roles("admin", "donor"))):
    report = await db.medical_reports.find_one({"id": report_id}, {"_id": 0})
    if not report:
        raise HTTPException(status_code=404, detail="Medical report not found")

    if current_user["role"] == "donor":
        donor = await get_own_donor(current_user)
        if report["donor_id"] != donor["id"]:
            raise HTTPException(status_code=403, detail="Not authorized to delete this report")

    delete_upload(report["stored_name"])
    await db.medical_reports.delete_one({"id": report_id})
    await audit_delete(AuditModule.MEDICAL_REPORTS, current_user, report_id, "medical_report", request=request)
    return {"message": "Medical report deleted successfully"}
