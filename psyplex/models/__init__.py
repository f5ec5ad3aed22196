# PsyPlex Models Package
# SQLAlchemy ORM models with Pydantic schemas

from psyplex.models.base import Base, drop_db, get_engine, init_db
from psyplex.models.therapist import Therapist, TherapistCreate, TherapistRead, TherapistUpdate
from psyplex.models.client import Client, ClientCreate, ClientRead, ClientUpdate, ClientStatus
from psyplex.models.client_profile import ClientProfile, ClientProfileCreate, ClientProfileRead, ClientProfileUpdate
from psyplex.models.session import Session, SessionCreate, SessionRead, SessionUpdate, SessionType, SessionStatus
from psyplex.models.session_note import SessionNote, SessionNoteCreate, SessionNoteRead, SessionNoteUpdate
from psyplex.models.treatment_goal import TreatmentGoal, TreatmentGoalCreate, TreatmentGoalRead, TreatmentGoalUpdate, GoalStatus
from psyplex.models.progress_metric import ProgressMetric, ProgressMetricCreate, ProgressMetricRead, ProgressMetricUpdate
from psyplex.models.audit_log import AuditLog, AuditLogRead

__all__ = [
    # Base
    "Base",
    "get_engine",
    "drop_db",
    "init_db",
    # Therapist
    "Therapist",
    "TherapistCreate",
    "TherapistRead",
    "TherapistUpdate",
    # Client
    "Client",
    "ClientCreate",
    "ClientRead",
    "ClientUpdate",
    "ClientStatus",
    # Client Profile
    "ClientProfile",
    "ClientProfileCreate",
    "ClientProfileRead",
    "ClientProfileUpdate",
    # Session
    "Session",
    "SessionCreate",
    "SessionRead",
    "SessionUpdate",
    "SessionType",
    "SessionStatus",
    # Session Note
    "SessionNote",
    "SessionNoteCreate",
    "SessionNoteRead",
    "SessionNoteUpdate",
    # Treatment Goal
    "TreatmentGoal",
    "TreatmentGoalCreate",
    "TreatmentGoalRead",
    "TreatmentGoalUpdate",
    "GoalStatus",
    # Progress Metric
    "ProgressMetric",
    "ProgressMetricCreate",
    "ProgressMetricRead",
    "ProgressMetricUpdate",
    # Audit Log
    "AuditLog",
    "AuditLogRead",
]
