import os
import tempfile

os.environ["JWT_SECRET"] = "test-secret"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="neighborhood-uploads-")
os.environ["BOOKING_LOCK_WAIT_SECONDS"] = "0.2"

import mongomock
import pytest

import database

# must happen before any module does `from database import db`
database.db = mongomock.MongoClient()["neighborhood_test"]

from fastapi.testclient import TestClient

from main import app


@pytest.fixture(autouse=True)
def clean_db():
    yield
    for name in database.db.list_collection_names():
        database.db.drop_collection(name)


@pytest.fixture
def db():
    return database.db


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def register(client):
    def _register(name, role="resident", email=None):
        email = email or f"{name.lower()}@example.com"
        res = client.post("/api/auth/register", json={
            "name": name, "email": email, "password": "secret123", "role": role,
        })
        assert res.status_code == 201, res.text
        body = res.json()
        return {
            "id": body["data"]["id"],
            "token": body["token"],
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }
    return _register


@pytest.fixture
def provider(register):
    return register("Olivia", role="service_provider")


@pytest.fixture
def resident(register):
    return register("Uma")


@pytest.fixture
def neighbor(register):
    return register("Nate")


@pytest.fixture
def make_service(client, provider):
    def _make(price=50, price_type="fixed", owner=None, **extra):
        owner = owner or provider
        payload = {
            "title": "Leak repair",
            "description": "Fixing dripping taps and pipes",
            "category": "plumbing",
            "price": price,
            "price_type": price_type,
        }
        payload.update(extra)
        res = client.post("/api/services", json=payload, headers=owner["headers"])
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _make


@pytest.fixture
def book(client, resident):
    def _book(service, start="2030-05-01T10:00:00Z", duration=1, customer=None):
        customer = customer or resident
        return client.post("/api/bookings", json={
            "service_id": service["id"],
            "booking_datetime": start,
            "duration": duration,
            "address": "12 Elm Street",
        }, headers=customer["headers"])
    return _book


@pytest.fixture
def set_status(client):
    def _set(booking_id, status, actor):
        return client.put(f"/api/bookings/{booking_id}/status", json={"status": status}, headers=actor["headers"])
    return _set
