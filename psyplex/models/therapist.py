"""
Therapist model - Practitioners using PsyPlex, one per authenticated principal.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Column, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from psyplex.models.base import Base, JSONType, UTCDateTime, utcnow


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class Therapist(Base):
    """SQLAlchemy model for therapists table."""

    __tablename__ = "therapists"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    principal_id = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    credentials = Column(String(255), nullable=True)
    specialties = Column(JSONType, nullable=True)
    bio = Column(Text, nullable=True)
    profile_image_url = Column(String, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    clients = relationship("Client", back_populates="therapist")

    def __repr__(self) -> str:
        return f"<Therapist(id={self.id}, principal_id={self.principal_id})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================

class TherapistBase(BaseModel):
    """Base schema for therapist data."""
    full_name: Optional[str] = Field(None, max_length=255, description="Display name")
    credentials: Optional[str] = Field(None, max_length=255, description="Licenses and degrees")
    specialties: Optional[list[str]] = Field(None, description="Clinical specialties")
    bio: Optional[str] = None
    profile_image_url: Optional[str] = None


class TherapistCreate(TherapistBase):
    """Schema for creating a new therapist.

    principal_id is always taken from the verified principal context,
    never from request input.
    """
    principal_id: str = Field(..., max_length=255, description="Auth provider subject ID")


class TherapistUpdate(BaseModel):
    """Schema for updating a therapist."""
    full_name: Optional[str] = Field(None, max_length=255)
    credentials: Optional[str] = Field(None, max_length=255)
    specialties: Optional[list[str]] = None
    bio: Optional[str] = None
    profile_image_url: Optional[str] = None


class TherapistRead(TherapistBase):
    """Schema for reading therapist data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    principal_id: str
    created_at: datetime
    updated_at: datetime
