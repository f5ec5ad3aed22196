"""
SessionNote model - Structured clinical notes attached to a session.

``content`` is stored as JSON. Callers may hand it over either already
structured or as serialized text (e.g. straight from the transcription
front end); see psyplex.services.content for the normalization step.
"""

from datetime import datetime
from typing import Any, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import Column, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from psyplex.models.base import Base, JSONType, UTCDateTime, utcnow


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class SessionNote(Base):
    """SQLAlchemy model for session_notes table."""

    __tablename__ = "session_notes"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    session_id = Column(PG_UUID(as_uuid=True), ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False)
    therapist_id = Column(PG_UUID(as_uuid=True), ForeignKey("therapists.id", ondelete="RESTRICT"), nullable=False)
    client_id = Column(PG_UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    content = Column(JSONType, nullable=False, default=dict)
    therapy_type = Column(String(100), nullable=True)
    tags = Column(JSONType, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_session_notes_session_id", "session_id"),
        Index("ix_session_notes_client_id", "client_id"),
    )

    # Relationships
    session = relationship("Session", back_populates="notes")

    def __repr__(self) -> str:
        return f"<SessionNote(id={self.id}, session_id={self.session_id}, client_id={self.client_id})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================

class SessionNoteCreate(BaseModel):
    """Schema for creating a session note.

    All ids are references supplied by the caller. therapist_id is advisory
    and session_id may be missing or stale; both are resolved before insert.
    """
    client_id: str = Field(..., description="ID of the client")
    therapist_id: str = Field(..., description="Advisory; resolved server-side")
    session_id: Optional[str] = Field(None, description="Existing session, if any")
    title: str = Field(..., max_length=255)
    content: Union[dict[str, Any], str] = Field(..., description="Structured or serialized content")
    therapy_type: Optional[str] = Field(None, max_length=100)
    tags: Optional[list[str]] = None

    @field_validator("client_id", "therapist_id", "title")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Required text fields must contain more than whitespace."""
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: Union[dict[str, Any], str]) -> Union[dict[str, Any], str]:
        """Content must be a non-empty string or a non-empty object."""
        if isinstance(v, str) and not v.strip():
            raise ValueError("must not be empty")
        if isinstance(v, dict) and not v:
            raise ValueError("must not be empty")
        return v


class SessionNoteUpdate(BaseModel):
    """Schema for updating a session note."""
    title: Optional[str] = Field(None, max_length=255)
    content: Optional[Union[dict[str, Any], str]] = None
    therapy_type: Optional[str] = Field(None, max_length=100)
    tags: Optional[list[str]] = None

    @field_validator("title")
    @classmethod
    def validate_not_blank(cls, v: Optional[str]) -> str:
        if v is None or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("content")
    @classmethod
    def validate_content(cls, v):
        if v is None or not (v.strip() if isinstance(v, str) else v):
            raise ValueError("must not be empty")
        return v


class SessionNoteRead(BaseModel):
    """Schema for reading session note data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    therapist_id: UUID
    client_id: UUID
    title: str
    content: dict[str, Any]
    therapy_type: Optional[str] = None
    tags: Optional[list[str]] = None
    created_at: datetime
    updated_at: datetime
