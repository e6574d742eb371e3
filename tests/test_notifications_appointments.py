from fastapi.testclient import TestClient

from conftest import create_donor, create_request, days_from_today, run
from server import app
import database
import routers.appointments as appointments_router


def _notify(client, admin_headers, request_id, donor_ids, **extra):
    response = client.post(
        "/api/notifications/send-donation-request",
        json={"request_id": request_id, "donor_ids": donor_ids, **extra},
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["notifications"]


def _respond(client, donor_headers, notification_id, action="accept"):
    return client.post(f"/api/notifications/{notification_id}/respond", json={"action": action}, headers=donor_headers)


def _book(client, admin_headers, notification_id, scheduled_date=None, scheduled_time="10:30"):
    return client.post(
        "/api/appointments/from-notification",
        json={
            "notification_id": notification_id,
            "scheduled_date": scheduled_date or days_from_today(3),
            "scheduled_time": scheduled_time,
            "location": "Main blood bank",
        },
        headers=admin_headers,
    )


def _accepted_appointment(client, admin_headers, hospital_headers, email="donor@example.com", **booking):
    request = create_request(client, hospital_headers, "A+", 2)
    donor_id, donor_headers = create_donor(client, admin_headers, email, "A+")
    notification = _notify(client, admin_headers, request["id"], [donor_id])[0]
    assert _respond(client, donor_headers, notification["id"]).status_code == 200
    response = _book(client, admin_headers, notification["id"], **booking)
    assert response.status_code == 201, response.text
    return request, donor_id, donor_headers, response.json()["appointment"]


def test_send_donation_request(client, admin_headers, hospital_headers):
    request = create_request(client, hospital_headers, "A+", 2)
    donor_id, donor_headers = create_donor(client, admin_headers, "donor@example.com", "A+")

    sent = _notify(client, admin_headers, request["id"], [donor_id, "unknown"], priority="urgent")
    assert len(sent) == 1
    assert sent[0]["status"] == "sent"
    assert sent[0]["expires_at"] is not None

    inbox = client.get("/api/notifications/donor", headers=donor_headers).json()
    assert inbox["unread_count"] == 1
    assert inbox["notifications"][0]["title"].startswith("URGENT: ")
    assert inbox["notifications"][0]["metadata"]["blood_group"] == "A+"

    stored = client.get(f"/api/requests/{request['id']}", headers=admin_headers).json()
    assert stored["donors_notified"] == 1

    missing = client.post(
        "/api/notifications/send-donation-request",
        json={"request_id": request["id"], "donor_ids": ["nobody"]},
        headers=admin_headers,
    )
    assert missing.status_code == 404


def test_read_and_respond(client, admin_headers, hospital_headers):
    request = create_request(client, hospital_headers, "A+", 2)
    donor_id, donor_headers = create_donor(client, admin_headers, "donor@example.com", "A+")
    notification = _notify(client, admin_headers, request["id"], [donor_id])[0]

    read = client.patch(f"/api/notifications/{notification['id']}/read", headers=donor_headers)
    assert read.json()["notification"]["status"] == "read"
    assert client.get("/api/notifications/donor", headers=donor_headers).json()["unread_count"] == 0

    response = _respond(client, donor_headers, notification["id"], "decline")
    assert response.status_code == 200
    assert response.json()["notification"]["status"] == "responded"
    assert response.json()["notification"]["response"]["action"] == "decline"

    assert _respond(client, donor_headers, notification["id"]).status_code == 400

    responses = client.get(f"/api/requests/{request['id']}/notification-responses", headers=admin_headers).json()
    assert responses["by_action"] == {"decline": 1}
    assert client.get(f"/api/requests/{request['id']}", headers=admin_headers).json()["donors_responded"] == 1

    # declined notifications cannot be booked
    assert _book(client, admin_headers, notification["id"]).status_code == 400


def test_other_donor_cannot_see_notification(client, admin_headers, hospital_headers):
    request = create_request(client, hospital_headers, "A+", 2)
    donor_id, _ = create_donor(client, admin_headers, "donor@example.com", "A+")
    _, other_headers = create_donor(client, admin_headers, "other@example.com", "A+")
    notification = _notify(client, admin_headers, request["id"], [donor_id])[0]

    assert _respond(client, other_headers, notification["id"]).status_code == 404


def test_expired_notification(client, admin_headers, hospital_headers):
    request = create_request(client, hospital_headers, "A+", 2)
    donor_id, donor_headers = create_donor(client, admin_headers, "donor@example.com", "A+")
    first, = _notify(client, admin_headers, request["id"], [donor_id])
    second, = _notify(client, admin_headers, request["id"], [donor_id])
    run(database.db.notifications.update_many(
        {"recipient_id": donor_id}, {"$set": {"expires_at": "2020-01-01T00:00:00+00:00"}}
    ))

    response = _respond(client, donor_headers, first["id"])
    assert response.status_code == 400
    assert response.json()["detail"] == "Notification has expired"
    assert run(database.db.notifications.find_one({"id": first["id"]}))["status"] == "expired"

    swept = client.post("/api/notifications/expire", headers=admin_headers).json()
    assert swept["expired"] == 1
    assert run(database.db.notifications.find_one({"id": second["id"]}))["status"] == "expired"


def test_appointment_booked_from_accepted_notification(client, admin_headers, hospital_headers):
    request, donor_id, donor_headers, appointment = _accepted_appointment(client, admin_headers, hospital_headers)
    assert appointment["status"] == "scheduled"
    assert appointment["blood_group"] == "A+"
    assert appointment["request_id"] == request["id"]

    assert _book(client, admin_headers, appointment["notification_id"]).status_code == 409
    assert client.get(f"/api/requests/{request['id']}", headers=admin_headers).json()["appointments_scheduled"] == 1

    confirmation = run(database.db.notifications.find_one({"type": "appointment_confirmation"}))
    assert confirmation["recipient_id"] == donor_id

    mine = client.get("/api/appointments/donor", headers=donor_headers).json()
    assert [a["id"] for a in mine] == [appointment["id"]]
    assert mine[0]["can_cancel"] is True

    listed = client.get("/api/appointments", params={"blood_group": "A+"}, headers=admin_headers).json()
    assert listed["pagination"]["total"] == 1
    assert listed["appointments"][0]["donor"]["email"] == "donor@example.com"


def test_invalid_booking_time(client, admin_headers, hospital_headers):
    request = create_request(client, hospital_headers, "A+", 2)
    donor_id, donor_headers = create_donor(client, admin_headers, "donor@example.com", "A+")
    notification = _notify(client, admin_headers, request["id"], [donor_id])[0]
    _respond(client, donor_headers, notification["id"])

    assert _book(client, admin_headers, notification["id"], scheduled_time="25:00").status_code == 422


def test_complete_appointment_records_donation(client, admin_headers, hospital_headers):
    request, donor_id, donor_headers, appointment = _accepted_appointment(client, admin_headers, hospital_headers)

    response = client.post(
        f"/api/appointments/{appointment['id']}/complete", json={"units_collected": 1}, headers=admin_headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["appointment"]["status"] == "completed"
    assert body["appointment"]["donation_record_id"] == body["donation"]["id"]
    assert body["inventory_lot"]["blood_group"] == "A+"
    assert body["inventory_lot"]["donor_id"] == donor_id
    assert body["warning"] is None

    donor = client.get("/api/donor/me", headers=donor_headers).json()
    assert donor["is_available"] is False
    assert donor["total_donations"] == 1
    assert donor["can_donate"] is False

    stored_request = client.get(f"/api/requests/{request['id']}", headers=admin_headers).json()
    assert stored_request["units_collected"] == 1
    assert run(database.db.notifications.count_documents({"type": "donation_thanks", "recipient_id": donor_id})) == 1

    # a completed appointment is closed
    again = client.post(f"/api/appointments/{appointment['id']}/complete", json={}, headers=admin_headers)
    assert again.status_code == 400

    stats = client.get("/api/appointments/stats", headers=admin_headers).json()
    assert stats["total_appointments"] == 1
    assert stats["completion_rate"] == 100.0


def test_status_transitions(client, admin_headers, hospital_headers):
    _, _, _, appointment = _accepted_appointment(client, admin_headers, hospital_headers)
    url = f"/api/appointments/{appointment['id']}/status"

    confirmed = client.patch(url, json={"status": "confirmed"}, headers=admin_headers)
    assert confirmed.status_code == 200
    assert confirmed.json()["appointment"]["confirmed_at"] is not None

    assert client.patch(url, json={"status": "scheduled"}, headers=admin_headers).status_code == 400

    no_show = client.patch(url, json={"status": "no_show"}, headers=admin_headers)
    assert no_show.json()["appointment"]["status"] == "no_show"
    assert client.patch(url, json={"status": "completed"}, headers=admin_headers).status_code == 400


def test_completion_via_status_update(client, admin_headers, hospital_headers):
    _, donor_id, _, appointment = _accepted_appointment(client, admin_headers, hospital_headers)
    response = client.patch(
        f"/api/appointments/{appointment['id']}/status", json={"status": "completed", "units_collected": 2}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["inventory_lot"]["units"] == 2
    assert run(database.db.donations.count_documents({"donor_id": donor_id})) == 1


def test_donor_cancellation_rules(client, admin_headers, hospital_headers):
    _, _, donor_headers, upcoming = _accepted_appointment(client, admin_headers, hospital_headers)
    _, _, other_headers, past = _accepted_appointment(client, admin_headers, hospital_headers, email="late@example.com")
    run(database.db.appointments.update_one({"id": past["id"]}, {"$set": {"scheduled_date": days_from_today(-1)}}))

    assert client.post(f"/api/appointments/{past['id']}/cancel", json={}, headers=other_headers).status_code == 400
    assert client.post(f"/api/appointments/{upcoming['id']}/cancel", json={}, headers=other_headers).status_code == 403

    response = client.post(
        f"/api/appointments/{upcoming['id']}/cancel", json={"reason": "Feeling unwell"}, headers=donor_headers
    )
    assert response.status_code == 200
    assert response.json()["appointment"]["status"] == "cancelled"

    # admins are not bound by the cut-off
    assert client.post(f"/api/appointments/{past['id']}/cancel", json={}, headers=admin_headers).status_code == 200


def test_booking_date_must_be_a_future_date(client, admin_headers, hospital_headers):
    request = create_request(client, hospital_headers, "A+", 2)
    donor_id, donor_headers = create_donor(client, admin_headers, "donor@example.com", "A+")
    notification = _notify(client, admin_headers, request["id"], [donor_id])[0]
    _respond(client, donor_headers, notification["id"])

    assert _book(client, admin_headers, notification["id"], scheduled_date="soon").status_code == 422
    assert _book(client, admin_headers, notification["id"], scheduled_date="2026-02-30").status_code == 422

    past = _book(client, admin_headers, notification["id"], scheduled_date=days_from_today(-1))
    assert past.status_code == 400
    assert past.json()["detail"] == "Appointment date cannot be in the past"
    assert run(database.db.appointments.count_documents({})) == 0

    # the notification is still free to book
    assert _book(client, admin_headers, notification["id"], scheduled_date=days_from_today(0)).status_code == 201
    assert client.get("/api/appointments/donor", headers=donor_headers).status_code == 200


class _StaleNotifications:
    """Notifications collection whose reads predate an appointment being booked."""

    def __init__(self, collection, snapshot):
        self._collection = collection
        self._snapshot = snapshot

    async def find_one(self, *args, **kwargs):
        return dict(self._snapshot)

    def __getattr__(self, name):
        return getattr(self._collection, name)


class _DbWithStaleNotifications:
    def __init__(self, db, snapshot):
        self._db = db
        self.notifications = _StaleNotifications(db.notifications, snapshot)

    def __getattr__(self, name):
        return getattr(self._db, name)


def test_concurrent_booking_of_one_notification(client, admin_headers, hospital_headers, monkeypatch):
    request, _, _, appointment = _accepted_appointment(client, admin_headers, hospital_headers)
    snapshot = run(database.db.notifications.find_one({"id": appointment["notification_id"]}, {"_id": 0}))
    snapshot["appointment_id"] = None
    monkeypatch.setattr(
        appointments_router, "db", _DbWithStaleNotifications(appointments_router.db, snapshot)
    )

    response = _book(client, admin_headers, appointment["notification_id"])
    assert response.status_code == 409
    assert run(database.db.appointments.count_documents({})) == 1
    stored = run(database.db.notifications.find_one({"id": appointment["notification_id"]}))
    assert stored["appointment_id"] == appointment["id"]
    assert client.get(f"/api/requests/{request['id']}", headers=admin_headers).json()["appointments_scheduled"] == 1


def test_inactive_donor_appointment_cannot_be_completed(client, admin_headers, hospital_headers):
    _, donor_id, _, appointment = _accepted_appointment(client, admin_headers, hospital_headers)
    run(database.db.donors.update_one({"id": donor_id}, {"$set": {"is_active": False}}))

    response = client.post(f"/api/appointments/{appointment['id']}/complete", json={}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Donor account is inactive"
    assert run(database.db.appointments.find_one({"id": appointment["id"]}))["status"] == "scheduled"
    assert run(database.db.donations.count_documents({})) == 0


def test_failed_donation_record_reopens_appointment(client, admin_headers, hospital_headers, monkeypatch):
    _, donor_id, _, appointment = _accepted_appointment(client, admin_headers, hospital_headers)

    async def failing_record_donation(*args, **kwargs):
        raise RuntimeError("inventory unavailable")

    monkeypatch.setattr(appointments_router, "record_donation", failing_record_donation)
    unsafe_client = TestClient(app, raise_server_exceptions=False)

    response = unsafe_client.post(
        f"/api/appointments/{appointment['id']}/complete", json={"units_collected": 1}, headers=admin_headers
    )
    assert response.status_code == 500
    stored = run(database.db.appointments.find_one({"id": appointment["id"]}))
    assert stored["status"] == "scheduled"
    assert stored["completed_at"] is None
    assert run(database.db.donations.count_documents({"donor_id": donor_id})) == 0

    monkeypatch.undo()
    retried = client.post(f"/api/appointments/{appointment['id']}/complete", json={"units_collected": 1}, headers=admin_headers)
    assert retried.status_code == 200
    assert retried.json()["appointment"]["status"] == "completed"
