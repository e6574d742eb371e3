"""
Inventory Service
FIFO lot allocation, lot intake and stock threshold evaluation.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import List, Optional

from database import db
from models import InventoryLot, InventoryThreshold, BloodGroup

logger = logging.getLogger(__name__)

SHELF_LIFE_DAYS = 35

# blood group -> (minimum units, target units)
DEFAULT_THRESHOLDS = {
    "A+": (10, 25),
    "A-": (5, 15),
    "B+": (10, 25),
    "B-": (5, 15),
    "AB+": (3, 10),
    "AB-": (2, 8),
    "O+": (15, 35),
    "O-": (8, 20),
}


class InsufficientInventoryError(Exception):
    def __init__(self, blood_group: str, requested: int, available: int):
        self.blood_group = blood_group
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient inventory. Available: {available} units, Required: {requested} units"
        )


def today_iso() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def usable_lot_query(blood_group: str, today: Optional[str] = None) -> dict:
    """Lots that still hold units and have not expired."""
    return {
        "blood_group": blood_group,
        "units": {"$gt": 0},
        "expiry_date": {"$gte": today or today_iso()},
    }


async def available_units(blood_group: str, today: Optional[str] = None) -> int:
    lots = await db.inventory.find(usable_lot_query(blood_group, today), {"_id": 0, "units": 1}).to_list(1000)
    return sum(lot["units"] for lot in lots)


async def allocate_fifo(blood_group: str, units: int, today: Optional[str] = None) -> List[dict]:
    """
    Take `units` from the earliest-expiring usable lots of `blood_group`.

    Every deduction only applies while the lot still holds the units being
    taken. If stock is short, or another writer drained a lot first, the
    deductions made so far are put back and InsufficientInventoryError is
    raised, so nothing is partially consumed.

    Returns:
        The allocations made, as [{"lot_id": ..., "units": ...}].
    """
    lots = await db.inventory.find(
        usable_lot_query(blood_group, today), {"_id": 0}
    ).sort([("expiry_date", 1), ("created_at", 1)]).to_list(1000)

    total = sum(lot["units"] for lot in lots)
    if total < units:
        raise InsufficientInventoryError(blood_group, units, total)

    allocations = []
    remaining = units
    for lot in lots:
        if remaining <= 0:
            break
        take = min(remaining, lot["units"])
        result = await db.inventory.update_one(
            {"id": lot["id"], "units": {"$gte": take}},
            {
                "$inc": {"units": -take},
                "$set": {"updated_at": datetime.now(timezone.utc).isoformat()},
            },
        )
        if result.modified_count == 0:
            logger.warning("Lot %s changed during allocation of %s %s; rolling back", lot["id"], units, blood_group)
            await release_allocations(allocations)
            raise InsufficientInventoryError(blood_group, units, await available_units(blood_group, today))
        allocations.append({"lot_id": lot["id"], "units": take})
        remaining -= take

    logger.info("Allocated %s units of %s from %s lot(s)", units, blood_group, len(allocations))
    return allocations


async def release_allocations(allocations: List[dict]) -> int:
    """Return allocated units to their lots. Returns the number of units restored."""
    restored = 0
    for allocation in allocations:
        result = await db.inventory.update_one(
            {"id": allocation["lot_id"]},
            {
                "$inc": {"units": allocation["units"]},
                "$set": {"updated_at": datetime.now(timezone.utc).isoformat()},
            },
        )
        if result.modified_count:
            restored += allocation["units"]
        else:
            logger.warning("Could not restore %s units to missing lot %s", allocation["units"], allocation["lot_id"])
    return restored


async def add_lot(
    blood_group: str,
    units: int,
    expiry_date: Optional[str] = None,
    location: Optional[str] = None,
    donor_id: Optional[str] = None,
    collection_date: Optional[str] = None,
) -> dict:
    collected = collection_date or datetime.now(timezone.utc).isoformat()
    if expiry_date is None:
        collected_on = datetime.fromisoformat(collected.replace("Z", "+00:00"))
        expiry_date = (collected_on + timedelta(days=SHELF_LIFE_DAYS)).date().isoformat()

    lot = InventoryLot(
        blood_group=blood_group,
        units=units,
        expiry_date=expiry_date,
        location=location,
        donor_id=donor_id,
        collection_date=collected,
    )
    doc = lot.model_dump(mode="json")
    await db.inventory.insert_one(doc)
    doc.pop("_id", None)
    return doc


async def stock_by_group(today: Optional[str] = None) -> dict:
    """Total usable units per blood group; every group is present."""
    pipeline = [
        {"$match": {"units": {"$gt": 0}, "expiry_date": {"$gte": today or today_iso()}}},
        {"$group": {"_id": "$blood_group", "total": {"$sum": "$units"}}},
    ]
    rows = await db.inventory.aggregate(pipeline).to_list(20)
    totals = {group.value: 0 for group in BloodGroup}
    for row in rows:
        totals[row["_id"]] = row["total"]
    return totals


async def ensure_thresholds() -> List[dict]:
    """Create the default threshold for every blood group that has none."""
    existing = {t["blood_group"] for t in await db.inventory_thresholds.find({}, {"_id": 0, "blood_group": 1}).to_list(20)}
    for blood_group, (minimum, target) in DEFAULT_THRESHOLDS.items():
        if blood_group in existing:
            continue
        threshold = InventoryThreshold(blood_group=blood_group, minimum_units=minimum, target_units=target)
        await db.inventory_thresholds.insert_one(threshold.model_dump(mode="json"))
    return await db.inventory_thresholds.find({}, {"_id": 0}).sort("blood_group", 1).to_list(20)


def classify_stock(units: int, threshold: Optional[dict]) -> dict:
    status, color, message = "normal", "success", "Stock levels are adequate"
    if threshold and threshold.get("alert_enabled", True):
        minimum = threshold["minimum_units"]
        if units < minimum / 2:
            status, color, message = "critical", "error", f"CRITICAL: Only {units} units remaining!"
        elif units < minimum:
            status, color, message = "low", "warning", f"LOW: {units} units (minimum: {minimum})"
        elif units >= threshold["target_units"]:
            status, color, message = "optimal", "success", f"OPTIMAL: {units} units available"
    return {
        "status": status,
        "status_color": color,
        "message": message,
        "needs_donors": bool(threshold) and units < threshold["minimum_units"],
    }
