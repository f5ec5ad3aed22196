"""
ProgressMetric model - Tracks quantitative progress measurements for clients.

Each row is one named measurement (e.g. an anxiety or depression scale
score) recorded on a given day, with optional free-text notes.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import Column, Date, Float, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from psyplex.models.base import Base, UTCDateTime, utcnow


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class ProgressMetric(Base):
    """SQLAlchemy model for progress_metrics table."""

    __tablename__ = "progress_metrics"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    client_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )
    metric_name = Column(String(100), nullable=False)
    metric_value = Column(Float, nullable=False)
    date_recorded = Column(Date, nullable=False, default=lambda: utcnow().date())
    notes = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_progress_metrics_client_id", "client_id"),
        Index("ix_progress_metrics_client_name", "client_id", "metric_name"),
    )

    def __repr__(self) -> str:
        return (
            f"<ProgressMetric(id={self.id}, client_id={self.client_id}, "
            f"metric_name={self.metric_name}, metric_value={self.metric_value})>"
        )


# =============================================================================
# Pydantic Schemas
# =============================================================================

class ProgressMetricCreate(BaseModel):
    """Schema for creating a new progress metric."""
    client_id: str = Field(..., description="ID of an existing client")
    metric_name: str = Field(..., min_length=1, max_length=100, description="e.g. 'anxiety_level'")
    metric_value: float = Field(..., description="Numeric metric value")
    date_recorded: Optional[date] = Field(None, description="Defaults to today (UTC)")
    notes: Optional[str] = None


class ProgressMetricUpdate(BaseModel):
    """Schema for correcting a recorded metric."""
    metric_name: Optional[str] = Field(None, min_length=1, max_length=100)
    metric_value: Optional[float] = None
    date_recorded: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("metric_name", "metric_value", "date_recorded")
    @classmethod
    def validate_not_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v


class ProgressMetricRead(BaseModel):
    """Schema for reading progress metric data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    metric_name: str
    metric_value: float
    date_recorded: date
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
