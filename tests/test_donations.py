from conftest import create_donor, run
import database


def _record(client, admin_headers, donor_id, **extra):
    return client.post("/api/donations/record", json={"donor_id": donor_id, **extra}, headers=admin_headers)


def test_record_donation(client, admin_headers):
    donor_id, _ = create_donor(client, admin_headers, "giver@example.com", "O+")

    response = _record(client, admin_headers, donor_id, units=2, location="Mobile drive", notes="First visit")
    assert response.status_code == 201
    body = response.json()
    assert body["donation"]["blood_group"] == "O+"
    assert body["donation"]["inventory_lot_id"] == body["inventory_lot"]["id"]
    assert body["inventory_lot"]["units"] == 2
    assert body["inventory_lot"]["location"] == "Mobile drive"
    assert body["donor"]["total_donations"] == 1
    assert body["donor"]["next_eligible_date"] is not None
    assert body["warning"] is None

    donor = run(database.db.donors.find_one({"id": donor_id}))
    assert donor["is_available"] is False
    assert donor["donation_history"][0]["units"] == 2


def test_early_donation_is_recorded_with_warning(client, admin_headers):
    donor_id, _ = create_donor(client, admin_headers, "eager@example.com", "O+")
    _record(client, admin_headers, donor_id)

    again = _record(client, admin_headers, donor_id)
    assert again.status_code == 201
    assert again.json()["warning"].startswith("Donor was not eligible")
    assert again.json()["donor"]["total_donations"] == 2


def test_record_for_unknown_or_inactive_donor(client, admin_headers):
    assert _record(client, admin_headers, "missing").status_code == 404

    donor_id, _ = create_donor(client, admin_headers, "inactive@example.com", "O+")
    client.patch(f"/api/donors/{donor_id}/status", json={"is_active": False}, headers=admin_headers)
    assert _record(client, admin_headers, donor_id).status_code == 400
    assert _record(client, admin_headers, donor_id, units=0).status_code == 422


def test_donation_listing_and_stats(client, admin_headers):
    o_pos, _ = create_donor(client, admin_headers, "o@example.com", "O+")
    b_neg, _ = create_donor(client, admin_headers, "b@example.com", "B-")
    _record(client, admin_headers, o_pos, units=1)
    _record(client, admin_headers, o_pos, units=2)
    _record(client, admin_headers, b_neg)

    assert len(client.get("/api/donations", headers=admin_headers).json()) == 3
    filtered = client.get("/api/donations", params={"blood_group": "B-"}, headers=admin_headers).json()
    assert [d["donor_id"] for d in filtered] == [b_neg]

    stats = client.get("/api/donations/stats", headers=admin_headers).json()
    assert stats["total_donations"] == 3
    assert stats["last_30_days"] == 3
    assert stats["by_blood_group"]["O+"] == {"donations": 2, "units": 3}


def test_donor_sees_only_own_history(client, admin_headers):
    mine, my_headers = create_donor(client, admin_headers, "mine@example.com", "A+")
    theirs, _ = create_donor(client, admin_headers, "theirs@example.com", "A+")
    _record(client, admin_headers, mine)

    history = client.get(f"/api/donations/donor/{mine}", headers=my_headers)
    assert history.status_code == 200
    assert len(history.json()) == 1

    assert client.get(f"/api/donations/donor/{theirs}", headers=my_headers).status_code == 403
    assert client.get("/api/donations", headers=my_headers).status_code == 403


def test_collection_date_must_be_iso(client, admin_headers):
    donor_id, _ = create_donor(client, admin_headers, "dated@example.com", "O+")
    assert _record(client, admin_headers, donor_id, collection_date="last friday").status_code == 422
    assert run(database.db.donations.count_documents({})) == 0
