"""
Centralized Audit Service

Structured audit logging for every orchestrated PHI write and for
placeholder records created on a principal's behalf. Records ids only,
never field values.
"""

from typing import Any, Callable, Optional
from uuid import uuid4

import structlog

from psyplex.models.audit_log import AuditAction, AuditEventType, AuditLog
from psyplex.store.record_store import to_uuid

logger = structlog.get_logger(__name__)

_MODIFICATION_EVENTS = {
    AuditAction.CREATE: AuditEventType.PHI_CREATE,
    AuditAction.UPDATE: AuditEventType.PHI_UPDATE,
    AuditAction.DELETE: AuditEventType.PHI_DELETE,
}


class AuditService:
    """
    Centralized audit logging service.

    Persists to the database when a session factory is available, and
    always emits a structlog event.

    Args:
        session_factory: Optional SQLAlchemy session factory for DB persistence.
            When None, audit entries are logged via structlog only.
    """

    def __init__(self, session_factory: Optional[Callable] = None) -> None:
        self._session_factory = session_factory

    def _create_entry(
        self,
        event_type: str,
        principal_id: Optional[str],
        user_id: Any,
        resource_type: str,
        resource_id: Any,
        action: str,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        """
        Create an AuditLog entry, persist to DB if possible, and emit structlog event.

        Args:
            event_type: Category of audit event (e.g. phi_create).
            principal_id: Authenticated principal the operation ran for.
            user_id: Resolved therapist id acting on the record.
            resource_type: Table/entity name of the record.
            resource_id: ID of the specific record.
            action: Action performed (create, read, update, delete, provision).
            details: Additional context as a JSON-serializable dict.

        Returns:
            The created AuditLog ORM instance.
        """
        entry = AuditLog(
            id=uuid4(),
            event_type=event_type,
            principal_id=principal_id,
            user_id=to_uuid(user_id),
            resource_type=resource_type,
            resource_id=to_uuid(resource_id),
            action=action,
            details=details or {},
        )

        if self._session_factory is not None:
            session = self._session_factory()
            try:
                session.add(entry)
                session.commit()
                session.refresh(entry)
            except Exception:
                session.rollback()
                logger.error(
                    "audit_persist_failed",
                    event_type=event_type,
                    action=action,
                    resource_type=resource_type,
                )
                raise
            finally:
                session.close()

        logger.info(
            "audit_event",
            event_type=event_type,
            principal_id=principal_id,
            user_id=str(user_id) if user_id else None,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id else None,
            action=action,
            details=details or {},
        )

        return entry

    def log_phi_access(
        self,
        principal_id: str,
        user_id: Any,
        resource_type: str,
        resource_id: Any,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        """Log a PHI read."""
        return self._create_entry(
            event_type=AuditEventType.PHI_ACCESS,
            principal_id=principal_id,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=AuditAction.READ,
            details=details,
        )

    def log_phi_modification(
        self,
        principal_id: str,
        user_id: Any,
        resource_type: str,
        resource_id: Any,
        action: str,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        """Log a PHI create/update/delete."""
        return self._create_entry(
            event_type=_MODIFICATION_EVENTS.get(action, AuditEventType.PHI_UPDATE),
            principal_id=principal_id,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            details=details,
        )

    def log_provisioned(
        self,
        principal_id: str,
        user_id: Any,
        resource_type: str,
        resource_id: Any,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        """Log a record created on demand as a missing parent."""
        return self._create_entry(
            event_type=AuditEventType.RECORD_PROVISIONED,
            principal_id=principal_id,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=AuditAction.PROVISION,
            details=details,
        )

    def get_audit_trail(
        self,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        principal_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditLog]:
        """
        Query audit entries with optional filters.

        Returns:
            List of matching AuditLog entries, newest first. Empty when no
            session factory is configured.
        """
        if self._session_factory is None:
            return []

        session = self._session_factory()
        try:
            query = session.query(AuditLog)

            if resource_type is not None:
                query = query.filter(AuditLog.resource_type == resource_type)
            if resource_id is not None:
                query = query.filter(AuditLog.resource_id == to_uuid(resource_id))
            if principal_id is not None:
                query = query.filter(AuditLog.principal_id == principal_id)

            query = query.order_by(AuditLog.created_at.desc()).limit(limit)
            return query.all()
        finally:
            session.close()
