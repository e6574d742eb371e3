from datetime import datetime, timezone, timedelta

import pytest

from conftest import add_lot, create_donor, create_request, days_from_today, run
from services.eligibility import next_eligible_date
from services.inventory_service import InsufficientInventoryError, allocate_fifo
import database
import services.inventory_service as inventory_service

APPROVAL = {"collection_date": days_from_today(2), "collection_location": "Main blood bank"}


def _lot_units(lot_id):
    return run(database.db.inventory.find_one({"id": lot_id}))["units"]


def test_add_lot_validation(client, admin_headers):
    zero = client.post(
        "/api/inventory", json={"blood_group": "A+", "units": 0, "expiry_date": days_from_today(10)}, headers=admin_headers
    )
    assert zero.status_code == 400

    expired = client.post(
        "/api/inventory", json={"blood_group": "A+", "units": 2, "expiry_date": days_from_today(0)}, headers=admin_headers
    )
    assert expired.status_code == 400

    unknown = client.post(
        "/api/inventory", json={"blood_group": "C+", "units": 2, "expiry_date": days_from_today(10)}, headers=admin_headers
    )
    assert unknown.status_code == 422


def test_lot_with_mismatched_donor(client, admin_headers):
    donor_id, _ = create_donor(client, admin_headers, "lot.donor@example.com", "B+")
    response = client.post(
        "/api/inventory",
        json={"blood_group": "A+", "units": 1, "expiry_date": days_from_today(30), "donor_id": donor_id},
        headers=admin_headers,
    )
    assert response.status_code == 400

    response = client.post(
        "/api/inventory",
        json={"blood_group": "B+", "units": 1, "expiry_date": days_from_today(30), "donor_id": donor_id},
        headers=admin_headers,
    )
    assert response.status_code == 201
    donor = run(database.db.donors.find_one({"id": donor_id}))
    assert donor["total_donations"] == 1
    assert donor["next_eligible_date"] is not None


def test_inventory_listing_and_access(client, admin_headers, hospital_headers, external_headers):
    add_lot(client, admin_headers, "O+", 4)
    add_lot(client, admin_headers, "O+", 3)

    body = client.get("/api/inventory", headers=hospital_headers).json()
    assert len(body["lots"]) == 2
    assert body["summary"] == [{"blood_group": "O+", "total_units": 7, "lots": 2}]

    assert client.get("/api/inventory", headers=external_headers).status_code == 403
    assert client.post(
        "/api/inventory", json={"blood_group": "O+", "units": 1, "expiry_date": days_from_today(5)}, headers=hospital_headers
    ).status_code == 403


def test_fifo_allocation_uses_earliest_expiry(client, admin_headers, hospital_headers):
    late = add_lot(client, admin_headers, "A+", 4, expires_in_days=20)
    early = add_lot(client, admin_headers, "A+", 3, expires_in_days=5)
    request = create_request(client, hospital_headers, "A+", 5)

    response = client.post(f"/api/requests/{request['id']}/approve", json=APPROVAL, headers=admin_headers)
    assert response.status_code == 200
    approved = response.json()["request"]
    assert approved["status"] == "approved"
    assert approved["assigned_units"] == 5
    assert approved["allocations"] == [
        {"lot_id": early["id"], "units": 3},
        {"lot_id": late["id"], "units": 2},
    ]
    assert _lot_units(early["id"]) == 0
    assert _lot_units(late["id"]) == 2


def test_shortage_consumes_nothing(client, admin_headers, hospital_headers):
    lot = add_lot(client, admin_headers, "B-", 2)
    request = create_request(client, hospital_headers, "B-", 3)

    response = client.post(f"/api/requests/{request['id']}/approve", json=APPROVAL, headers=admin_headers)
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["available_units"] == 2
    assert detail["required_units"] == 3
    assert _lot_units(lot["id"]) == 2
    assert client.get(f"/api/requests/{request['id']}", headers=admin_headers).json()["status"] == "pending"


def test_expired_lots_are_skipped(client, admin_headers, hospital_headers):
    run(database.db.inventory.insert_one({
        "id": "stale", "blood_group": "AB+", "units": 5, "expiry_date": days_from_today(-1),
        "created_at": "2020-01-01T00:00:00+00:00",
    }))
    fresh = add_lot(client, admin_headers, "AB+", 2)
    request = create_request(client, hospital_headers, "AB+", 2)

    response = client.post(f"/api/requests/{request['id']}/approve", json=APPROVAL, headers=admin_headers)
    assert response.status_code == 200
    assert _lot_units("stale") == 5
    assert _lot_units(fresh["id"]) == 0


def test_thresholds(client, admin_headers):
    thresholds = client.get("/api/inventory/thresholds", headers=admin_headers).json()
    assert len(thresholds) == 8
    o_neg = next(t for t in thresholds if t["blood_group"] == "O-")
    assert (o_neg["minimum_units"], o_neg["target_units"]) == (8, 20)

    bad = client.put("/api/inventory/thresholds", json={"blood_group": "O-", "target_units": 4}, headers=admin_headers)
    assert bad.status_code == 400

    response = client.put(
        "/api/inventory/thresholds", json={"blood_group": "O-", "minimum_units": 2, "target_units": 4}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["threshold"]["minimum_units"] == 2

    add_lot(client, admin_headers, "O-", 4)
    status = client.get("/api/inventory/with-thresholds", headers=admin_headers).json()
    o_neg = next(s for s in status if s["blood_group"] == "O-")
    assert o_neg["units"] == 4
    assert o_neg["status"] == "optimal"
    a_pos = next(s for s in status if s["blood_group"] == "A+")
    assert a_pos["status"] == "critical"
    assert a_pos["needs_donors"] is True


def test_check_thresholds_invites_eligible_donors(client, admin_headers):
    donor_id, _ = create_donor(client, admin_headers, "aneg@example.com", "A-")

    response = client.post("/api/inventory/check-thresholds", headers=admin_headers)
    assert response.status_code == 200
    body = response.json()
    assert len(body["low_stock_alerts"]) == 8
    assert body["notifications_sent"] == 1

    a_neg = next(a for a in body["low_stock_alerts"] if a["blood_group"] == "A-")
    assert a_neg["donors_invited"] == 1
    assert a_neg["urgency"] == "Critical"

    notification = run(database.db.notifications.find_one({"recipient_id": donor_id}))
    assert notification["type"] == "campaign_invite"
    assert notification["priority"] == "urgent"
    assert notification["expires_at"] is not None

    threshold = run(database.db.inventory_thresholds.find_one({"blood_group": "A-"}))
    assert threshold["last_alert_date"] is not None


def test_expiring_lots(client, admin_headers):
    add_lot(client, admin_headers, "O+", 2, expires_in_days=3)
    add_lot(client, admin_headers, "O+", 5, expires_in_days=30)

    body = client.get("/api/inventory/expiring", headers=admin_headers).json()
    assert body["count"] == 1
    assert body["total_units"] == 2

    wide = client.get("/api/inventory/expiring", params={"days": 60}, headers=admin_headers).json()
    assert wide["count"] == 2


def test_lot_dates_are_checked_as_dates(client, admin_headers):
    def post(**body):
        return client.post("/api/inventory", json={"blood_group": "A+", "units": 2, **body}, headers=admin_headers)

    assert post(expiry_date="tomorrow").status_code == 422
    assert post(expiry_date="2099-13-01").status_code == 422
    assert post(expiry_date=days_from_today(10), collection_date="yesterday").status_code == 422

    past = post(expiry_date=days_from_today(-3))
    assert past.status_code == 400
    assert run(database.db.inventory.count_documents({})) == 0

    created = post(expiry_date=f" {days_from_today(10)} ", collection_date=f"{days_from_today(-1)}T08:00:00Z")
    assert created.status_code == 201
    assert created.json()["expiry_date"] == days_from_today(10)


class _DrainingInventory:
    """Inventory collection where another writer empties one lot just before it is deducted."""

    def __init__(self, collection, lot_id):
        self._collection = collection
        self._lot_id = lot_id

    async def update_one(self, query, update, *args, **kwargs):
        if query.get("id") == self._lot_id and "units" in query:
            await self._collection.update_one({"id": self._lot_id}, {"$set": {"units": 0}})
        return await self._collection.update_one(query, update, *args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._collection, name)


class _DbWithDrainingInventory:
    def __init__(self, db, lot_id):
        self._db = db
        self.inventory = _DrainingInventory(db.inventory, lot_id)

    def __getattr__(self, name):
        return getattr(self._db, name)


def test_allocation_rolls_back_when_a_lot_is_drained(client, admin_headers, monkeypatch):
    late = add_lot(client, admin_headers, "A+", 4, expires_in_days=20)
    early = add_lot(client, admin_headers, "A+", 3, expires_in_days=5)
    monkeypatch.setattr(inventory_service, "db", _DbWithDrainingInventory(inventory_service.db, late["id"]))

    with pytest.raises(InsufficientInventoryError) as excinfo:
        run(allocate_fifo("A+", 5))

    assert excinfo.value.requested == 5
    assert excinfo.value.available == 3
    assert _lot_units(early["id"]) == 3
    assert _lot_units(late["id"]) == 0


def test_check_thresholds_skips_donor_still_in_waiting_period(client, admin_headers):
    waiting_id, _ = create_donor(client, admin_headers, "waiting@example.com", "A-")
    last = datetime.now(timezone.utc) - timedelta(days=90) + timedelta(hours=1)
    run(database.db.donors.update_one(
        {"id": waiting_id},
        {"$set": {"last_donation_date": last.isoformat(), "next_eligible_date": next_eligible_date(last)}}
    ))
    ready_id, _ = create_donor(client, admin_headers, "ready@example.com", "A-")

    body = client.post("/api/inventory/check-thresholds", headers=admin_headers).json()
    a_neg = next(a for a in body["low_stock_alerts"] if a["blood_group"] == "A-")
    assert a_neg["donors_invited"] == 1
    assert run(database.db.notifications.count_documents({"recipient_id": waiting_id})) == 0
    assert run(database.db.notifications.count_documents({"recipient_id": ready_id})) == 1
