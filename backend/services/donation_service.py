import logging
from datetime import datetime, timezone
from typing import Optional

from database import db
from models import Donation
from services.eligibility import is_eligible, days_until_eligible, next_eligible_date
from services.inventory_service import add_lot

logger = logging.getLogger(__name__)


async def apply_donation_to_donor(donor: dict, collection_date: str, units: int, mark_unavailable: bool = True) -> dict:
    """Push a donation onto the donor's history and recompute the next eligible date."""
    updates = {
        "last_donation_date": collection_date,
        "next_eligible_date": next_eligible_date(collection_date),
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }
    if mark_unavailable:
        updates["is_available"] = False

    await db.donors.update_one(
        {"id": donor["id"]},
        {
            "$set": updates,
            "$push": {"donation_history": {"date": collection_date, "units": units}},
            "$inc": {"total_donations": 1},
        },
    )
    return await db.donors.find_one({"id": donor["id"]}, {"_id": 0})


async def record_donation(
    donor: dict,
    recorded_by: Optional[str],
    units: int = 1,
    collection_date: Optional[str] = None,
    notes: Optional[str] = None,
    verified_by: Optional[str] = None,
    location: Optional[str] = None,
    request_id: Optional[str] = None,
    appointment_id: Optional[str] = None,
) -> dict:
    """
    Record blood physically collected from a donor.

    Creates the donation record, updates the donor's history (the donor
    becomes unavailable until the waiting period ends) and books a new
    inventory lot. An ineligible donor is still recorded; the result
    carries a warning instead.
    """
    eligible = is_eligible(donor)
    remaining_days = days_until_eligible(donor)
    if not eligible:
        logger.warning("Donor %s recorded before eligibility (%s days remaining)", donor["id"], remaining_days)

    collected = collection_date or datetime.now(timezone.utc).isoformat()

    lot = await add_lot(
        blood_group=donor["blood_group"],
        units=units,
        location=location or "Not specified",
        donor_id=donor["id"],
        collection_date=collected,
    )

    donation = Donation(
        donor_id=donor["id"],
        request_id=request_id,
        appointment_id=appointment_id,
        collection_date=collected,
        units=units,
        blood_group=donor["blood_group"],
        recorded_by=recorded_by,
        verified_by=verified_by,
        notes=notes,
        inventory_lot_id=lot["id"],
    )
    doc = donation.model_dump(mode="json")
    await db.donations.insert_one(doc)
    doc.pop("_id", None)

    updated_donor = await apply_donation_to_donor(donor, collected, units)
    logger.info("Recorded donation %s: %s unit(s) of %s from donor %s", donation.id, units, donor["blood_group"], donor["id"])

    return {
        "donation": doc,
        "inventory_lot": lot,
        "donor": {
            "id": updated_donor["id"],
            "last_donation_date": updated_donor.get("last_donation_date"),
            "next_eligible_date": updated_donor.get("next_eligible_date"),
            "total_donations": len(updated_donor.get("donation_history", [])),
        },
        "warning": None if eligible else f"Donor was not eligible ({remaining_days} days remaining)",
    }
