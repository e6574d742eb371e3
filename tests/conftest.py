import asyncio
import os
import tempfile
from datetime import datetime, timezone, timedelta

os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="bloodbank-uploads-")
os.environ["MAIN_ADMIN_EMAIL"] = "main.admin@bloodbank.org"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

import database

database.client = AsyncMongoMockClient()
database.db = database.client["bloodbank_test"]

from server import app  # noqa: E402

MAIN_ADMIN_EMAIL = "main.admin@bloodbank.org"
PASSWORD = "Passw0rd"
DONOR_TEMP_PASSWORD = "TempPass123!"


def run(coro):
    return asyncio.run(coro)


def days_from_today(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).date().isoformat()


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def clean_db():
    yield
    for name in database.COLLECTIONS:
        run(database.db[name].delete_many({}))


@pytest.fixture
def client():
    return TestClient(app)


def register(client, email, role, password=PASSWORD, name="Test User"):
    return client.post("/api/auth/register", json={"email": email, "password": password, "name": name, "role": role})


def login(client, email, password=PASSWORD):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["token"]


def register_and_login(client, email, role):
    assert register(client, email, role).status_code == 201
    return auth(login(client, email))


@pytest.fixture
def admin_headers(client):
    return register_and_login(client, MAIN_ADMIN_EMAIL, "admin")


@pytest.fixture
def hospital_headers(client):
    return register_and_login(client, "hospital@example.com", "hospital")


@pytest.fixture
def external_headers(client):
    return register_and_login(client, "external@example.com", "external")


def create_donor(client, admin_headers, email, blood_group="A+", **extra):
    """Admin-created donor (verified). Returns (donor_id, donor auth headers)."""
    body = {"name": "Donor Person", "email": email, "blood_group": blood_group, **extra}
    response = client.post("/api/donors", json=body, headers=admin_headers)
    assert response.status_code == 201, response.text
    donor_id = response.json()["donor"]["id"]
    return donor_id, auth(login(client, email, DONOR_TEMP_PASSWORD))


def add_lot(client, admin_headers, blood_group, units, expires_in_days=20):
    response = client.post(
        "/api/inventory",
        json={"blood_group": blood_group, "units": units, "expiry_date": days_from_today(expires_in_days)},
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def create_request(client, headers, blood_group="A+", units=2, **extra):
    body = {"blood_group": blood_group, "units_requested": units, "hospital_name": "City General", **extra}
    response = client.post("/api/requests", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()
