import logging
from datetime import date, datetime, timezone, timedelta

from fastapi import APIRouter, HTTPException, Depends, Query, Request

from database import db
from models import InventoryLotCreate, ThresholdUpdate, InventoryThreshold, NotificationType, NotificationPriority
from models.audit import AuditModule
from middleware import require_admin, require_roles
from services import (
    add_lot, apply_donation_to_donor, stock_by_group, ensure_thresholds, classify_stock,
    create_notification, audit_create
)
from services.donor_matching import eligible_donors
from services.inventory_service import today_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["Inventory"])

REPLENISHMENT_INVITES = 10
REPLENISHMENT_EXPIRY_HOURS = 7 * 24


@router.get("")
async def get_inventory(current_user: dict = Depends(require_roles("admin", "hospital"))):
    lots = await db.inventory.find({}, {"_id": 0}).sort([("blood_group", 1), ("expiry_date", 1)]).to_list(10000)

    today = today_iso()
    summary = {}
    for lot in lots:
        entry = summary.setdefault(lot["blood_group"], {"blood_group": lot["blood_group"], "total_units": 0, "lots": 0})
        if lot["expiry_date"] >= today and lot["units"] > 0:
            entry["total_units"] += lot["units"]
            entry["lots"] += 1

    return {"lots": lots, "summary": sorted(summary.values(), key=lambda s: s["blood_group"])}


@router.post("", status_code=201)
async def create_lot(lot_data: InventoryLotCreate, request: Request, current_user: dict = Depends(require_admin)):
    if lot_data.units < 1:
        raise HTTPException(status_code=400, detail="Units must be at least 1")
    if date.fromisoformat(lot_data.expiry_date) <= datetime.now(timezone.utc).date():
        raise HTTPException(status_code=400, detail="Expiry date must be in the future")

    donor = None
    if lot_data.donor_id:
        donor = await db.donors.find_one({"id": lot_data.donor_id}, {"_id": 0})
        if not donor:
            raise HTTPException(status_code=404, detail="Donor not found")
        if donor["blood_group"] != lot_data.blood_group.value:
            raise HTTPException(status_code=400, detail="Donor blood group does not match the lot")

    lot = await add_lot(
        blood_group=lot_data.blood_group.value,
        units=lot_data.units,
        expiry_date=lot_data.expiry_date,
        location=lot_data.location,
        donor_id=lot_data.donor_id,
        collection_date=lot_data.collection_date,
    )
    if donor:
        await apply_donation_to_donor(donor, lot["collection_date"], lot_data.units, mark_unavailable=False)

    await audit_create(AuditModule.INVENTORY, current_user, lot["id"], "inventory_lot", lot, request=request)
    logger.info("Added lot %s: %s unit(s) of %s", lot["id"], lot["units"], lot["blood_group"])
    return lot


@router.get("/thresholds")
async def get_thresholds(current_user: dict = Depends(require_admin)):
    return await ensure_thresholds()


@router.put("/thresholds")
async def update_threshold(body: ThresholdUpdate, current_user: dict = Depends(require_admin)):
    await ensure_thresholds()
    updates = body.model_dump(exclude_none=True, mode="json")
    updates.pop("blood_group")
    existing = await db.inventory_thresholds.find_one({"blood_group": body.blood_group.value}, {"_id": 0})

    minimum = updates.get("minimum_units", existing["minimum_units"] if existing else None)
    target = updates.get("target_units", existing["target_units"] if existing else None)
    if minimum is not None and target is not None and target < minimum:
        raise HTTPException(status_code=400, detail="Target units cannot be lower than minimum units")

    if existing:
        updates["updated_at"] = datetime.now(timezone.utc).isoformat()
        await db.inventory_thresholds.update_one({"blood_group": body.blood_group.value}, {"$set": updates})
    else:
        await db.inventory_thresholds.insert_one(
            InventoryThreshold(blood_group=body.blood_group, **updates).model_dump(mode="json")
        )

    threshold = await db.inventory_thresholds.find_one({"blood_group": body.blood_group.value}, {"_id": 0})
    return {"message": "Threshold settings updated successfully", "threshold": threshold}


async def _inventory_status() -> list:
    thresholds = {t["blood_group"]: t for t in await ensure_thresholds()}
    totals = await stock_by_group()
    result = []
    for blood_group, units in totals.items():
        threshold = thresholds.get(blood_group)
        result.append({
            "blood_group": blood_group,
            "units": units,
            "threshold": {
                "minimum_units": threshold["minimum_units"],
                "target_units": threshold["target_units"],
                "alert_enabled": threshold.get("alert_enabled", True),
            } if threshold else None,
            **classify_stock(units, threshold),
        })
    return result


@router.get("/with-thresholds")
async def get_inventory_with_thresholds(current_user: dict = Depends(require_roles("admin", "hospital"))):
    return await _inventory_status()


@router.post("/check-thresholds")
async def check_inventory_thresholds(current_user: dict = Depends(require_admin)):
    """Invite eligible donors for every blood group that has fallen below its minimum."""
    low_stock_alerts = []
    notifications_sent = 0

    for item in await _inventory_status():
        threshold = item["threshold"]
        if not threshold or not threshold["alert_enabled"] or not item["needs_donors"]:
            continue

        critical = item["status"] == "critical"
        alert = {
            "blood_group": item["blood_group"],
            "current_units": item["units"],
            "minimum_units": threshold["minimum_units"],
            "target_units": threshold["target_units"],
            "shortage": threshold["minimum_units"] - item["units"],
            "urgency": "Critical" if critical else "High",
            "donors_invited": 0,
        }

        donors = (await eligible_donors(item["blood_group"]))[:REPLENISHMENT_INVITES]
        for donor in donors:
            await create_notification(
                recipient_id=donor["id"],
                type=NotificationType.CAMPAIGN_INVITE,
                priority=NotificationPriority.URGENT if critical else NotificationPriority.HIGH,
                title=f"{item['blood_group']} blood donors needed",
                message=(
                    f"Our {item['blood_group']} stock is low: only {item['units']} units remaining "
                    f"(minimum {threshold['minimum_units']}). Your donation can save lives!"
                ),
                metadata={
                    "blood_group": item["blood_group"],
                    "units_needed": threshold["target_units"] - item["units"],
                    "urgency_level": alert["urgency"],
                },
                expires_in_hours=REPLENISHMENT_EXPIRY_HOURS,
                created_by=current_user["id"],
            )
        alert["donors_invited"] = len(donors)
        notifications_sent += len(donors)

        await db.inventory_thresholds.update_one(
            {"blood_group": item["blood_group"]},
            {"$set": {"last_alert_date": datetime.now(timezone.utc).isoformat()}}
        )
        low_stock_alerts.append(alert)

    if low_stock_alerts:
        logger.info("Low stock for %s; invited %s donor(s)", [a["blood_group"] for a in low_stock_alerts], notifications_sent)

    return {
        "message": "Inventory threshold check completed",
        "low_stock_alerts": low_stock_alerts,
        "notifications_sent": notifications_sent,
    }


@router.get("/expiring")
async def get_expiring_lots(days: int = Query(default=7, ge=1, le=365), current_user: dict = Depends(require_roles("admin", "hospital"))):
    today = datetime.now(timezone.utc).date()
    cutoff = (today + timedelta(days=days)).isoformat()
    lots = await db.inventory.find(
        {"units": {"$gt": 0}, "expiry_date": {"$gte": today.isoformat(), "$lte": cutoff}}, {"_id": 0}
    ).sort("expiry_date", 1).to_list(1000)
    return {
        "days": days,
        "count": len(lots),
        "total_units": sum(lot["units"] for lot in lots),
        "lots": lots,
    }
