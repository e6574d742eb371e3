from conftest import register_and_login, run
from config import settings
import database

PDF = ("checkup.pdf", b"%PDF-1.4 blood work results", "application/pdf")


def _self_registered_donor(client, email="reporter@example.com"):
    headers = register_and_login(client, email, "donor")
    response = client.post("/api/donor/register", json={"blood_group": "AB-"}, headers=headers)
    assert response.status_code == 201
    return response.json()["id"], headers


def _upload(client, headers, file=PDF, **form):
    return client.post("/api/medical-reports/upload", files={"file": file}, data=form, headers=headers)


def test_upload_and_list_reports(client, admin_headers):
    donor_id, headers = _self_registered_donor(client)

    response = _upload(client, headers, report_type="blood_test", valid_until="2027-01-01")
    assert response.status_code == 201
    report = response.json()["report"]
    assert report["status"] == "pending"
    assert report["report_type"] == "blood_test"
    assert report["file_name"] == "checkup.pdf"
    assert report["report_url"] == f"/uploads/{report['stored_name']}"
    assert (settings.UPLOAD_DIR / report["stored_name"]).read_bytes() == PDF[1]

    served = client.get(report["report_url"])
    assert served.status_code == 200
    assert served.content == PDF[1]

    mine = client.get("/api/medical-reports/my-reports", headers=headers).json()
    assert [r["id"] for r in mine] == [report["id"]]

    pending = client.get("/api/medical-reports/pending", headers=admin_headers).json()
    assert pending[0]["donor"]["id"] == donor_id
    assert pending[0]["donor"]["verification_status"] == "pending"

    by_donor = client.get(f"/api/medical-reports/donor/{donor_id}", headers=admin_headers).json()
    assert len(by_donor) == 1


def test_upload_rejects_other_file_types(client):
    _, headers = _self_registered_donor(client)
    response = _upload(client, headers, file=("notes.txt", b"hello", "text/plain"))
    assert response.status_code == 400

    disguised = _upload(client, headers, file=("scan.pdf", b"MZ", "application/x-msdownload"))
    assert disguised.status_code == 400

    assert _upload(client, headers, report_type="x-ray").status_code == 422


def test_upload_requires_donor_profile(client):
    headers = register_and_login(client, "noprofile@example.com", "donor")
    assert _upload(client, headers).status_code == 404


def test_approving_report_verifies_donor(client, admin_headers):
    donor_id, headers = _self_registered_donor(client)
    report_id = _upload(client, headers).json()["report"]["id"]

    assert client.patch(
        f"/api/medical-reports/{report_id}/review", json={"status": "pending"}, headers=admin_headers
    ).status_code == 400

    response = client.patch(
        f"/api/medical-reports/{report_id}/review", json={"status": "approved", "review_notes": "All clear"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["report"]["status"] == "approved"
    assert response.json()["report"]["reviewed_at"] is not None
    donor = response.json()["donor"]
    assert donor["id"] == donor_id
    assert donor["verification_status"] == "verified"
    assert donor["eligibility_status"] == "eligible"

    assert client.get("/api/medical-reports/pending", headers=admin_headers).json() == []


def test_rejecting_report_marks_donor_not_eligible(client, admin_headers):
    _, headers = _self_registered_donor(client)
    report_id = _upload(client, headers).json()["report"]["id"]

    response = client.patch(
        f"/api/medical-reports/{report_id}/review", json={"status": "rejected", "review_notes": "Low haemoglobin"}, headers=admin_headers
    )
    donor = response.json()["donor"]
    assert donor["verification_status"] == "rejected"
    assert donor["eligibility_status"] == "not_eligible"
    assert donor["eligibility_notes"] == "Low haemoglobin"

    assert client.patch(
        "/api/medical-reports/missing/review", json={"status": "approved"}, headers=admin_headers
    ).status_code == 404


def test_delete_report_removes_file(client, admin_headers):
    _, headers = _self_registered_donor(client)
    _, other_headers = _self_registered_donor(client, "other@example.com")
    report = _upload(client, headers).json()["report"]
    path = settings.UPLOAD_DIR / report["stored_name"]
    assert path.exists()

    assert client.delete(f"/api/medical-reports/{report['id']}", headers=other_headers).status_code == 403

    response = client.delete(f"/api/medical-reports/{report['id']}", headers=headers)
    assert response.status_code == 200
    assert not path.exists()
    assert run(database.db.medical_reports.count_documents({})) == 0
    assert client.delete(f"/api/medical-reports/{report['id']}", headers=admin_headers).status_code == 404


def test_request_attachment_upload(client, admin_headers, hospital_headers):
    response = client.post(
        "/api/upload", files={"file": ("prescription.png", b"\x89PNG scan", "image/png")}, headers=hospital_headers
    )
    assert response.status_code == 201
    body = response.json()
    assert body["filename"].startswith("medical-report-")
    assert body["filename"].endswith(".png")
    assert body["original_name"] == "prescription.png"
    assert body["size"] == 9

    listed = client.get("/api/files", headers=admin_headers).json()
    assert body["filename"] in [f["filename"] for f in listed["files"]]

    info = client.get(f"/api/files/{body['filename']}", headers=hospital_headers).json()
    assert info["exists"] is True
    assert info["url"] == body["url"]
    assert client.get("/api/files/nothing-here.pdf", headers=hospital_headers).json() == {
        "filename": "nothing-here.pdf", "exists": False
    }

    assert client.get("/api/files", headers=hospital_headers).status_code == 403


def test_request_attachment_size_and_role(client, hospital_headers):
    too_big = b"0" * (5 * 1024 * 1024 + 1)
    response = client.post(
        "/api/upload", files={"file": ("scan.pdf", too_big, "application/pdf")}, headers=hospital_headers
    )
    assert response.status_code == 413

    donor_headers = register_and_login(client, "donor@example.com", "donor")
    response = client.post("/api/upload", files={"file": PDF}, headers=donor_headers)
    assert response.status_code == 403


def test_health_root_and_dashboard(client, admin_headers, hospital_headers):
    assert client.get("/health").json()["status"] == "ok"
    assert client.get("/api/").json()["status"] == "healthy"

    stats = client.get("/api/dashboard/stats", headers=admin_headers).json()
    assert stats["total_donors"] == 0
    assert stats["available_units"] == 0
    assert set(stats["inventory_by_blood_group"]) == {"A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"}

    assert client.get("/api/dashboard/stats", headers=hospital_headers).status_code == 403
