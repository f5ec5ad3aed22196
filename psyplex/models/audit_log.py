"""
AuditLog model - Append-only trail of every orchestrated PHI write.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from psyplex.models.base import Base, JSONType, UTCDateTime, utcnow


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class AuditLog(Base):
    """SQLAlchemy model for audit_logs table."""

    __tablename__ = "audit_logs"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    event_type = Column(String(100), nullable=False, index=True)
    user_id = Column(PG_UUID(as_uuid=True), nullable=True, index=True)  # Resolved therapist id
    principal_id = Column(String(255), nullable=True, index=True)
    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(PG_UUID(as_uuid=True), nullable=True)
    action = Column(String(50), nullable=False, index=True)
    details = Column(JSONType, nullable=False, default=dict)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, event_type={self.event_type}, action={self.action})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================

class AuditLogRead(BaseModel):
    """Schema for reading audit log data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_type: str = Field(..., max_length=100)
    user_id: Optional[UUID] = None
    principal_id: Optional[str] = None
    resource_type: str = Field(..., max_length=100)
    resource_id: Optional[UUID] = None
    action: str = Field(..., max_length=50)
    details: dict[str, Any] = {}
    created_at: datetime


# =============================================================================
# Audit Event Types (Constants)
# =============================================================================

class AuditEventType:
    """Audit event types emitted by the practice layer."""
    PHI_ACCESS = "phi_access"
    PHI_CREATE = "phi_create"
    PHI_UPDATE = "phi_update"
    PHI_DELETE = "phi_delete"

    # Placeholder parents created on demand
    RECORD_PROVISIONED = "record_provisioned"


class AuditAction:
    """Standard audit actions."""
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    PROVISION = "provision"
