"""
Client model - Therapy clients owned by a therapist.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import Column, Enum as SQLEnum, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from psyplex.models.base import Base, UTCDateTime, utcnow


# =============================================================================
# Enums
# =============================================================================

class ClientStatus(str, Enum):
    """Where the client is in their course of treatment."""
    NEW = "New"
    ACTIVE = "Active"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class Client(Base):
    """SQLAlchemy model for clients table."""

    __tablename__ = "clients"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    therapist_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("therapists.id", ondelete="RESTRICT"),
        nullable=False,
    )
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    status = Column(SQLEnum(ClientStatus), nullable=False, default=ClientStatus.NEW)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_clients_therapist_id", "therapist_id"),
    )

    # Relationships
    therapist = relationship("Therapist", back_populates="clients")
    profile = relationship("ClientProfile", back_populates="client", uselist=False)
    sessions = relationship("Session", back_populates="client")

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, therapist_id={self.therapist_id}, status={self.status})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================

class ClientBase(BaseModel):
    """Base schema for client data."""
    first_name: str = Field(..., max_length=255, description="Client first name")
    last_name: str = Field(..., max_length=255, description="Client last name")
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    status: ClientStatus = Field(ClientStatus.NEW, description="Treatment status")


class ClientCreate(ClientBase):
    """Schema for creating a new client.

    A therapist_id may arrive from the front end but it is advisory only;
    ownership is re-derived from the authenticated principal.
    """
    therapist_id: Optional[str] = Field(None, description="Ignored; resolved server-side")

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Names must contain more than whitespace."""
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class ClientUpdate(BaseModel):
    """Schema for updating a client.

    Fields may be omitted, but the required ones cannot be cleared.
    """
    first_name: Optional[str] = Field(None, max_length=255)
    last_name: Optional[str] = Field(None, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    status: Optional[ClientStatus] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_not_blank(cls, v: Optional[str]) -> str:
        if v is None or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("status")
    @classmethod
    def validate_not_null(cls, v: Optional[ClientStatus]) -> ClientStatus:
        if v is None:
            raise ValueError("must not be null")
        return v


class ClientRead(ClientBase):
    """Schema for reading client data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    therapist_id: UUID
    created_at: datetime
    updated_at: datetime
