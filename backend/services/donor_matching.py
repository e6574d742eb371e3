"""
Donor matching for blood requests.

Ranks eligible donors of the requested blood group when stock cannot cover
a request. Scores favour emergency/flexible donors, donation experience,
current eligibility and availability preferences matching the current time.
"""
import math
from datetime import datetime
from typing import List, Optional

from database import db
from services.eligibility import days_until_eligible, eligible_donor_query, parse_datetime, utc_now
from services.inventory_service import available_units

DONOR_TYPE_SCORES = {"emergency": 30, "flexible": 20, "regular": 10}
URGENT_GRACE_DAYS = 3

DONOR_FIELDS = {
    "_id": 0, "id": 1, "user_id": 1, "name": 1, "email": 1, "phone": 1, "blood_group": 1,
    "donor_type": 1, "availability": 1, "next_eligible_date": 1, "total_donations": 1,
    "last_donation_date": 1,
}


def _days_until(next_eligible: Optional[str], now: datetime) -> int:
    target = parse_datetime(next_eligible)
    if target is None:
        return 0
    return math.ceil((target - now).total_seconds() / 86400)


def score_donor(donor: dict, now: Optional[datetime] = None) -> dict:
    now = now or utc_now()
    score = DONOR_TYPE_SCORES.get(donor.get("donor_type") or "regular", 10)
    score += min((donor.get("total_donations") or 0) * 2, 20)

    if donor.get("last_donation_date"):
        days_until = days_until_eligible(donor, now)
    else:
        days_until = _days_until(donor.get("next_eligible_date"), now)
    if days_until <= 0:
        score += 25
    elif days_until <= URGENT_GRACE_DAYS:
        score += 15
    else:
        score += 5

    availability = donor.get("availability") or {}
    weekday = now.weekday()  # Monday == 0
    if weekday < 5 and availability.get("weekdays"):
        score += 5
    if weekday >= 5 and availability.get("weekends"):
        score += 5
    if now.hour < 12 and availability.get("mornings"):
        score += 3
    if now.hour >= 17 and availability.get("evenings"):
        score += 3

    return {
        **donor,
        "score": score,
        "days_until_eligible": max(0, days_until),
        "is_currently_eligible": days_until <= 0,
    }


def prioritize(scored: List[dict]) -> dict:
    ranked = sorted(scored, key=lambda d: d["score"], reverse=True)
    return {
        "high_priority": [d for d in ranked if d["score"] >= 40][:5],
        "medium_priority": [d for d in ranked if 25 <= d["score"] < 40][:8],
        "low_priority": [d for d in ranked if d["score"] < 25][:10],
    }


def best_contact_time(hour: int) -> str:
    if 9 <= hour <= 11:
        return "Current time is good (morning)"
    if 14 <= hour <= 17:
        return "Current time is good (afternoon)"
    if 18 <= hour <= 20:
        return "Current time is good (evening)"
    return "Best to contact during 9-11 AM, 2-5 PM, or 6-8 PM"


async def eligible_donors(
    blood_group: str, now: Optional[datetime] = None, grace_days: int = 0, fields: Optional[dict] = None
) -> List[dict]:
    """
    Donors of `blood_group` who can donate within `grace_days`.

    next_eligible_date only has day precision, so the query result is
    narrowed again by the elapsed waiting period.
    """
    now = now or utc_now()
    projection = {**(fields or {"_id": 0, "id": 1}), "last_donation_date": 1}
    donors = await db.donors.find(eligible_donor_query(blood_group, now, grace_days), projection).to_list(10000)
    return [d for d in donors if days_until_eligible(d, now) <= grace_days]


async def count_eligible_donors(blood_group: str) -> int:
    return len(await eligible_donors(blood_group))


async def find_suitable_donors(request: dict, urgency: str = "normal", now: Optional[datetime] = None) -> dict:
    now = now or utc_now()
    available = await available_units(request["blood_group"])
    shortage = max(0, request["units_requested"] - available)
    inventory_status = {
        "available": available,
        "requested": request["units_requested"],
        "shortage": shortage,
    }

    if shortage == 0:
        return {
            "message": "Sufficient inventory available, no donors needed",
            "inventory_status": inventory_status,
            "donors": [],
        }

    grace = URGENT_GRACE_DAYS if urgency == "urgent" else 0
    donors = await eligible_donors(request["blood_group"], now, grace_days=grace, fields=DONOR_FIELDS)
    scored = [score_donor(donor, now) for donor in donors]
    groups = prioritize(scored)

    return {
        "request_info": {
            "id": request["id"],
            "blood_group": request["blood_group"],
            "units_requested": request["units_requested"],
            "urgency": request.get("urgency"),
            "required_by": request.get("required_by"),
            "hospital_name": request.get("hospital_name"),
        },
        "inventory_status": inventory_status,
        "donor_recommendations": {"total_found": len(scored), **groups},
        "suggestions": {
            "recommended_to_contact": min(shortage * 3, 10),
            "urgency_level": urgency,
            "best_time_to_contact": best_contact_time(now.hour),
        },
    }
