"""
Donor eligibility rules.

A donor must wait WAITING_PERIOD_DAYS after a whole-blood donation before
donating again. Availability is the donor's own switch, activity is the
admin's; a donor can donate only when all three hold.
"""
from datetime import datetime, timezone, timedelta, date
from typing import Optional, Union

WAITING_PERIOD_DAYS = 90


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """Parse stored ISO dates/datetimes into aware UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def next_eligible_date(last_donation_date) -> Optional[str]:
    last = parse_datetime(last_donation_date)
    if last is None:
        return None
    return (last + timedelta(days=WAITING_PERIOD_DAYS)).date().isoformat()


def days_since_last_donation(donor: dict, now: Optional[datetime] = None) -> Optional[int]:
    last = parse_datetime(donor.get("last_donation_date"))
    if last is None:
        return None
    return ((now or utc_now()) - last).days


def is_eligible(donor: dict, now: Optional[datetime] = None) -> bool:
    days = days_since_last_donation(donor, now)
    if days is None:
        return True
    return days >= WAITING_PERIOD_DAYS


def days_until_eligible(donor: dict, now: Optional[datetime] = None) -> int:
    days = days_since_last_donation(donor, now)
    if days is None:
        return 0
    return max(0, WAITING_PERIOD_DAYS - days)


def can_donate(donor: dict, now: Optional[datetime] = None) -> bool:
    return bool(donor.get("is_active", True)) and bool(donor.get("is_available", True)) and is_eligible(donor, now)


def enrich_donor(donor: dict, now: Optional[datetime] = None) -> dict:
    """Return a copy of the donor document with the computed eligibility fields."""
    return {
        **donor,
        "is_eligible": is_eligible(donor, now),
        "days_until_eligible": days_until_eligible(donor, now),
        "can_donate": can_donate(donor, now),
    }


def eligibility_summary(donor: dict, now: Optional[datetime] = None) -> dict:
    return {
        "is_active": donor.get("is_active", True),
        "is_available": donor.get("is_available", True),
        "is_eligible": is_eligible(donor, now),
        "can_donate": can_donate(donor, now),
        "last_donation_date": donor.get("last_donation_date"),
        "next_eligible_date": donor.get("next_eligible_date"),
        "days_until_eligible": days_until_eligible(donor, now),
        "total_donations": len(donor.get("donation_history", [])),
        "eligibility_notes": donor.get("eligibility_notes"),
    }


def eligible_donor_query(blood_group: str, now: Optional[datetime] = None, grace_days: int = 0) -> dict:
    """Mongo filter for active, available, verified donors eligible by now (+ grace_days)."""
    cutoff = ((now or utc_now()) + timedelta(days=grace_days)).date().isoformat()
    return {
        "blood_group": blood_group,
        "is_active": True,
        "is_available": True,
        "verification_status": "verified",
        "$or": [
            {"next_eligible_date": None},
            {"next_eligible_date": {"$exists": False}},
            {"next_eligible_date": {"$lte": cutoff}},
        ],
    }
