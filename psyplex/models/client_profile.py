"""
ClientProfile model - Demographic and clinical intake details, one per client.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Column, Date, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from psyplex.models.base import Base, JSONType, UTCDateTime, utcnow


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class ClientProfile(Base):
    """SQLAlchemy model for client_profiles table."""

    __tablename__ = "client_profiles"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    client_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    date_of_birth = Column(Date, nullable=True)
    address = Column(Text, nullable=True)
    occupation = Column(String(255), nullable=True)
    emergency_contact = Column(String(255), nullable=True)
    primary_concerns = Column(JSONType, nullable=True)
    therapy_type = Column(String(100), nullable=True)
    start_date = Column(Date, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    client = relationship("Client", back_populates="profile")

    def __repr__(self) -> str:
        return f"<ClientProfile(id={self.id}, client_id={self.client_id})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================

class ClientProfileBase(BaseModel):
    """Base schema for client profile data."""
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    occupation: Optional[str] = Field(None, max_length=255)
    emergency_contact: Optional[str] = Field(None, max_length=255)
    primary_concerns: Optional[list[str]] = None
    therapy_type: Optional[str] = Field(None, max_length=100)
    start_date: Optional[date] = None


class ClientProfileCreate(ClientProfileBase):
    """Schema for creating a client profile (client_id comes from the parent write)."""
    pass


class ClientProfileUpdate(ClientProfileBase):
    """Schema for updating a client profile."""
    pass


class ClientProfileRead(ClientProfileBase):
    """Schema for reading client profile data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    created_at: datetime
    updated_at: datetime
