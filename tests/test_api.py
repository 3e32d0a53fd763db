"""
Tests for the FastAPI endpoints
The identity service is swapped for one backed by the in-memory store
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from main import app, get_identity_service
from services.identity_service import IdentityService


def test_root(api_client):
    response = api_client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Identity Reconciliation API is running"
    assert "version" in data


def test_identify_creates_primary(api_client):
    response = api_client.post(
        "/identify",
        json={"email": "lorraine@hillvalley.edu", "phoneNumber": "123456"}
    )

    assert response.status_code == 200
    assert response.json() == {
        "contact": {
            "primaryContactId": 1,
            "emails": ["lorraine@hillvalley.edu"],
            "phoneNumbers": ["123456"],
            "secondaryContactIds": []
        }
    }


def test_identify_links_secondary(api_client, memory_store):
    memory_store.add("lorraine@hillvalley.edu", "123456")

    response = api_client.post(
        "/identify",
        json={"email": "mcfly@hillvalley.edu", "phoneNumber": "123456"}
    )

    assert response.status_code == 200
    contact = response.json()["contact"]
    assert contact["primaryContactId"] == 1
    assert contact["emails"] == ["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"]
    assert contact["secondaryContactIds"] == [2]


def test_identify_accepts_null_field(api_client, memory_store):
    memory_store.add("lorraine@hillvalley.edu", "123456")

    response = api_client.post("/identify", json={"email": None, "phoneNumber": "123456"})

    assert response.status_code == 200
    assert response.json()["contact"]["emails"] == ["lorraine@hillvalley.edu"]
    assert memory_store.mutations == []


@pytest.mark.parametrize("payload", [
    {},
    {"email": None, "phoneNumber": None},
    {"email": "", "phoneNumber": "  "},
])
def test_identify_requires_an_identifier(api_client, memory_store, payload):
    response = api_client.post("/identify", json=payload)

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"
    assert memory_store.calls == []


@pytest.mark.parametrize("payload", [
    {"phoneNumber": 123456},
    {"email": ["a@example.com"]},
])
def test_identify_rejects_non_string_identifiers(api_client, memory_store, payload):
    response = api_client.post("/identify", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "ValidationError"
    assert body["details"]["errors"]
    assert memory_store.calls == []


def test_identify_store_failure_returns_503(api_client, memory_store):
    memory_store.fail_on["find_matching"] = OperationalError(
        "SELECT", {}, Exception("password authentication failed")
    )

    response = api_client.post("/identify", json={"email": "a@example.com"})

    assert response.status_code == 503
    body = response.json()
    assert body["error"] == "DatabaseError"
    assert "password" not in body["message"]


def test_invalid_request_from_service_returns_400(memory_service):
    class RejectingService(IdentityService):
        async def identify_contact(self, request):
            return await self.resolve(42, None)

    app.dependency_overrides[get_identity_service] = lambda: RejectingService(
        store_factory=memory_service.store_factory
    )
    try:
        with TestClient(app) as client:
            response = client.post("/identify", json={"email": "a@example.com"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 400
    assert response.json() == {
        "error": "InvalidRequest",
        "message": "email must be a string",
        "details": {"field": "email"}
    }


@pytest.mark.asyncio
async def test_health_reports_database_status(sqlite_db):
    from httpx import ASGITransport, AsyncClient

    app.dependency_overrides[get_identity_service] = lambda: IdentityService(database=sqlite_db)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/health")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert isinstance(data["uptime"], float)
    assert data["uptime"] >= 0
    assert data["database"] == {"status": "connected", "dialect": "sqlite"}
