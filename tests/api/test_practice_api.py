"""
Practice API Tests

Tests verify:
1. Bearer token is required and resolved into a principal
2. Practice errors map onto HTTP status codes
3. End to end: notes posted with stale references are healed server-side
4. Health and root endpoints
"""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

os.environ["AWS_REGION"] = "us-east-1"

from fastapi.testclient import TestClient

from psyplex.api.app import app
from psyplex.api.practice import set_auth_provider_factory, set_practice_service
from psyplex.errors import (
    ConstraintViolation,
    OperationFailed,
    RecordNotFound,
    StoreUnavailable,
    ValidationError,
)
from psyplex.services.practice import DeleteResult, PracticeService
from psyplex.services.principal import StaticAuthProvider


ALICE = {"Authorization": "Bearer alice"}
BOB = {"Authorization": "Bearer bob"}


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture()
def client():
    """FastAPI test client."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def static_auth():
    """Bearer <name> authenticates as principal-<name>; 'expired' has no session."""
    def factory(token):
        if token == "expired":
            return StaticAuthProvider(None)
        return StaticAuthProvider(f"principal-{token}", access_token=token)

    set_auth_provider_factory(factory)
    yield
    set_auth_provider_factory(None)


@pytest.fixture()
def live_service(connector):
    """Real PracticeService over the in-memory database."""
    service = PracticeService(connector)
    set_practice_service(service)
    yield service
    set_practice_service(None)


@pytest.fixture()
def mock_service():
    """PracticeService whose calls can be made to fail."""
    mock = MagicMock(spec=PracticeService)
    set_practice_service(mock)
    yield mock
    set_practice_service(None)


def _when(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


# =============================================================================
# Authentication
# =============================================================================

class TestAuthentication:

    def test_missing_header(self, client, live_service):
        response = client.get("/clients")

        assert response.status_code == 401

    def test_non_bearer_header(self, client, live_service):
        response = client.get("/clients", headers={"Authorization": "Basic abc"})

        assert response.status_code == 401

    def test_no_session_for_token(self, client, live_service):
        response = client.get("/clients", headers={"Authorization": "Bearer expired"})

        assert response.status_code == 401


# =============================================================================
# Error mapping
# =============================================================================

class TestErrorMapping:

    @pytest.mark.parametrize("error, status", [
        (ValidationError("bad", fields=["first_name"]), 422),
        (RecordNotFound("client x not found"), 404),
        (StoreUnavailable("privileged credential not configured"), 503),
        (OperationFailed("Could not create client", cause=ConstraintViolation()), 500),
    ])
    def test_service_errors(self, client, mock_service, error, status):
        mock_service.create_client.side_effect = error

        response = client.post("/clients", headers=ALICE, json={
            "client": {"first_name": "Ana", "last_name": "Lopez"},
        })

        assert response.status_code == status

    def test_validation_error_lists_fields(self, client, mock_service):
        mock_service.create_client.side_effect = ValidationError("bad", fields=["first_name"])

        response = client.post("/clients", headers=ALICE, json={
            "client": {"first_name": "Ana", "last_name": "Lopez"},
        })

        assert response.json()["detail"]["fields"] == ["first_name"]

    def test_request_validation_does_not_echo_values(self, client, mock_service):
        response = client.post("/session-notes", headers=ALICE, json={"title": "secret diagnosis"})

        assert response.status_code == 422
        assert "secret diagnosis" not in response.text
        assert "body.client_id" in response.json()["fields"]
        mock_service.create_session_note.assert_not_called()

    def test_delete_unsuccessful_is_404(self, client, mock_service):
        mock_service.delete_client.return_value = DeleteResult(success=False)

        response = client.delete(f"/clients/{uuid4()}", headers=ALICE)

        assert response.status_code == 404


# =============================================================================
# End to end
# =============================================================================

class TestPracticeEndpoints:

    def test_client_lifecycle(self, client, live_service):
        created = client.post("/clients", headers=ALICE, json={
            "client": {"first_name": "Ana", "last_name": "Lopez", "therapist_id": str(uuid4())},
            "profile": {"occupation": "Nurse"},
        })
        assert created.status_code == 201
        client_id = created.json()["id"]

        listed = client.get("/clients", headers=ALICE).json()
        assert [c["id"] for c in listed] == [client_id]
        assert listed[0]["profile"]["occupation"] == "Nurse"

        assert client.get(f"/clients/{client_id}", headers=BOB).status_code == 404
        assert client.delete(f"/clients/{client_id}", headers=BOB).status_code == 404

        deleted = client.delete(f"/clients/{client_id}", headers=ALICE)
        assert deleted.json() == {"success": True}
        assert client.get(f"/clients/{client_id}", headers=ALICE).status_code == 404

    def test_sessions(self, client, live_service):
        client_id = client.post("/clients", headers=ALICE, json={
            "client": {"first_name": "Ana", "last_name": "Lopez"},
        }).json()["id"]
        client.post("/sessions", headers=ALICE, json={"client_id": client_id, "session_date": _when(-3)})
        upcoming = client.post("/sessions", headers=ALICE, json={"client_id": client_id, "session_date": _when(2)})
        assert upcoming.status_code == 201

        response = client.get("/sessions", headers=ALICE, params={"upcoming": "true"})

        assert [s["id"] for s in response.json()] == [upcoming.json()["id"]]
        assert len(client.get("/sessions", headers=ALICE, params={"client_id": client_id}).json()) == 2

    def test_note_with_stale_references_is_healed(self, client, live_service):
        stale_client, stale_session = str(uuid4()), str(uuid4())

        response = client.post("/session-notes", headers=ALICE, json={
            "client_id": stale_client,
            "therapist_id": str(uuid4()),
            "session_id": stale_session,
            "title": "Intake",
            "content": "{broken",
        })

        assert response.status_code == 201
        note = response.json()
        assert note["client_id"] != stale_client
        assert note["session_id"] != stale_session
        assert note["content"] == {"insights": {}, "recommendations": {"nextSession": [], "homework": []}}

    def test_note_without_privileged_credential(self, client, restricted_only_connector):
        set_practice_service(PracticeService(restricted_only_connector))
        try:
            response = client.post("/session-notes", headers=ALICE, json={
                "client_id": str(uuid4()),
                "therapist_id": str(uuid4()),
                "title": "Intake",
                "content": "notes",
            })
        finally:
            set_practice_service(None)

        assert response.status_code == 503


# =============================================================================
# Health
# =============================================================================

class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"
        assert client.get("/healthz").json() == {"status": "ok"}

    def test_root(self, client):
        assert client.get("/").json()["service"] == "psyplex"
