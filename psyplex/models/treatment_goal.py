"""
TreatmentGoal model - Goals agreed with a client for their course of treatment.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import Column, Date, Enum as SQLEnum, ForeignKey, Index, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from psyplex.models.base import Base, UTCDateTime, utcnow


# =============================================================================
# Enums
# =============================================================================

class GoalStatus(str, Enum):
    """Progress toward a treatment goal."""
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    ACHIEVED = "Achieved"


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class TreatmentGoal(Base):
    """SQLAlchemy model for treatment_goals table."""

    __tablename__ = "treatment_goals"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    client_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )
    goal_description = Column(Text, nullable=False)
    status = Column(SQLEnum(GoalStatus), nullable=False, default=GoalStatus.NOT_STARTED)
    target_date = Column(Date, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_treatment_goals_client_id", "client_id"),
    )

    def __repr__(self) -> str:
        return f"<TreatmentGoal(id={self.id}, client_id={self.client_id}, status={self.status})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================

class TreatmentGoalCreate(BaseModel):
    """Schema for creating a treatment goal."""
    client_id: str = Field(..., description="ID of an existing client")
    goal_description: str = Field(..., description="What the client is working toward")
    status: GoalStatus = Field(GoalStatus.NOT_STARTED)
    target_date: Optional[date] = None

    @field_validator("goal_description")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v


class TreatmentGoalUpdate(BaseModel):
    """Schema for updating a treatment goal."""
    goal_description: Optional[str] = None
    status: Optional[GoalStatus] = None
    target_date: Optional[date] = None

    @field_validator("goal_description")
    @classmethod
    def validate_not_blank(cls, v: Optional[str]) -> str:
        if v is None or not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("status")
    @classmethod
    def validate_not_null(cls, v: Optional[GoalStatus]) -> GoalStatus:
        if v is None:
            raise ValueError("must not be null")
        return v


class TreatmentGoalRead(BaseModel):
    """Schema for reading treatment goal data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    goal_description: str
    status: GoalStatus
    target_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime
