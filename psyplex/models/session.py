"""
Session model - Therapy sessions between a client and their therapist.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import Column, Enum as SQLEnum, ForeignKey, Index, Integer
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from psyplex.models.base import Base, UTCDateTime, utcnow


# =============================================================================
# Enums
# =============================================================================

class SessionType(str, Enum):
    """Type of therapy session."""
    IN_PERSON = "In-person"
    VIRTUAL = "Virtual"


class SessionStatus(str, Enum):
    """Status of a therapy session."""
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELED = "Canceled"
    NO_SHOW = "No-show"


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class Session(Base):
    """SQLAlchemy model for sessions table."""

    __tablename__ = "sessions"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    client_id = Column(PG_UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    therapist_id = Column(PG_UUID(as_uuid=True), ForeignKey("therapists.id", ondelete="RESTRICT"), nullable=False)
    session_date = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    session_type = Column(SQLEnum(SessionType), nullable=False, default=SessionType.VIRTUAL)
    status = Column(SQLEnum(SessionStatus), nullable=False, default=SessionStatus.SCHEDULED)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_sessions_client_id", "client_id"),
        Index("ix_sessions_therapist_date", "therapist_id", "session_date"),
    )

    # Relationships
    client = relationship("Client", back_populates="sessions")
    notes = relationship("SessionNote", back_populates="session")

    def __repr__(self) -> str:
        return f"<Session(id={self.id}, client_id={self.client_id}, status={self.status})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================

class SessionBase(BaseModel):
    """Base schema for session data."""
    session_date: datetime = Field(..., description="Scheduled date/time of session")
    duration_minutes: Optional[int] = Field(None, ge=0, description="Length of the session")
    session_type: SessionType = Field(SessionType.VIRTUAL, description="Type of session")
    status: SessionStatus = Field(SessionStatus.SCHEDULED, description="Session status")


class SessionCreate(SessionBase):
    """Schema for creating a new session.

    client_id and therapist_id are references from the caller; both are
    resolved (and provisioned if missing) before the insert.
    """
    client_id: str = Field(..., description="ID of the client")
    therapist_id: Optional[str] = Field(None, description="Advisory; resolved server-side")


class SessionUpdate(BaseModel):
    """Schema for updating a session."""
    session_date: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, ge=0)
    session_type: Optional[SessionType] = None
    status: Optional[SessionStatus] = None

    @field_validator("session_date", "session_type", "status")
    @classmethod
    def validate_not_null(cls, v):
        """Omit a field to keep it; None is not a value for these columns."""
        if v is None:
            raise ValueError("must not be null")
        return v


class SessionRead(SessionBase):
    """Schema for reading session data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    therapist_id: UUID
    created_at: datetime
    updated_at: datetime
