"""
Tests for the centralized AuditService.

Validates that audit entries are created with correct event types and
persisted to the database when a session factory is available.
"""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from psyplex.models.audit_log import AuditAction, AuditEventType, AuditLog, AuditLogRead
from psyplex.services.audit import AuditService


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def audit_service():
    """AuditService with no DB session (structlog-only mode)."""
    return AuditService()


@pytest.fixture
def db_audit_service(sf):
    """AuditService backed by the in-memory database."""
    return AuditService(session_factory=sf)


# ---------------------------------------------------------------------------
# structlog-only mode
# ---------------------------------------------------------------------------

def test_entry_without_database(audit_service):
    """Entries are still built when nothing persists them."""
    resource_id = uuid4()

    entry = audit_service.log_phi_access("principal-alice", uuid4(), "client", resource_id)

    assert isinstance(entry, AuditLog)
    assert entry.event_type == AuditEventType.PHI_ACCESS
    assert entry.action == AuditAction.READ
    assert entry.resource_id == resource_id


def test_trail_without_database_is_empty(audit_service):
    assert audit_service.get_audit_trail() == []


@pytest.mark.parametrize("action, event_type", [
    (AuditAction.CREATE, AuditEventType.PHI_CREATE),
    (AuditAction.UPDATE, AuditEventType.PHI_UPDATE),
    (AuditAction.DELETE, AuditEventType.PHI_DELETE),
])
def test_modification_event_types(audit_service, action, event_type):
    entry = audit_service.log_phi_modification("principal-alice", uuid4(), "session_note", uuid4(), action)

    assert entry.event_type == event_type
    assert entry.action == action


def test_provisioned_entry(audit_service):
    entry = audit_service.log_provisioned(
        "principal-alice", uuid4(), "client", uuid4(), details={"requested_id": "temp-1"}
    )

    assert entry.event_type == AuditEventType.RECORD_PROVISIONED
    assert entry.action == AuditAction.PROVISION
    assert entry.details == {"requested_id": "temp-1"}


def test_malformed_resource_id_is_dropped(audit_service):
    entry = audit_service.log_provisioned("principal-alice", None, "session", "temp-session")

    assert entry.resource_id is None
    assert entry.user_id is None


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def test_entries_are_persisted(db_audit_service):
    client_id = uuid4()
    db_audit_service.log_phi_modification("principal-alice", uuid4(), "client", client_id, AuditAction.CREATE)
    db_audit_service.log_phi_modification("principal-alice", uuid4(), "client", client_id, AuditAction.UPDATE)
    db_audit_service.log_phi_modification("principal-bob", uuid4(), "client", uuid4(), AuditAction.CREATE)

    trail = db_audit_service.get_audit_trail(resource_type="client", resource_id=str(client_id))

    assert len(trail) == 2
    assert {e.action for e in trail} == {AuditAction.CREATE, AuditAction.UPDATE}


def test_trail_filters_by_principal_and_limit(db_audit_service):
    for _ in range(3):
        db_audit_service.log_provisioned("principal-alice", None, "therapist", uuid4())
    db_audit_service.log_provisioned("principal-bob", None, "therapist", uuid4())

    assert len(db_audit_service.get_audit_trail(principal_id="principal-alice")) == 3
    assert len(db_audit_service.get_audit_trail(principal_id="principal-alice", limit=2)) == 2


def test_persisted_entry_reads_back(db_audit_service):
    entry = db_audit_service.log_phi_access("principal-alice", uuid4(), "client", uuid4())

    read = AuditLogRead.model_validate(entry)

    assert read.principal_id == "principal-alice"
    assert read.details == {}
    assert read.created_at is not None


def test_persist_failure_propagates():
    session = MagicMock()
    session.commit.side_effect = RuntimeError("disk full")
    service = AuditService(session_factory=lambda: session)

    with pytest.raises(RuntimeError):
        service.log_phi_access("principal-alice", uuid4(), "client", uuid4())

    session.rollback.assert_called_once()
    session.close.assert_called_once()
