"""
Row ownership policy for the restricted tier.

Mirrors the PostgreSQL RLS policies installed by the initial migration so
the restricted tier behaves the same on SQLite (tests, local development)
as it does on PostgreSQL:

    therapists          principal_id = <principal>
    clients             therapist_id in <principal's therapists>
    sessions            therapist_id in <principal's therapists>
    session_notes       therapist_id in <principal's therapists>
    client_profiles     client_id in <principal's clients>
    treatment_goals     client_id in <principal's clients>
    progress_metrics    client_id in <principal's clients>
"""

from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session as DBSession

from psyplex.models.client import Client
from psyplex.models.client_profile import ClientProfile
from psyplex.models.progress_metric import ProgressMetric
from psyplex.models.session import Session
from psyplex.models.session_note import SessionNote
from psyplex.models.therapist import Therapist
from psyplex.models.treatment_goal import TreatmentGoal


def owned_therapist_ids(principal_id: str):
    """Subquery of therapist ids belonging to the principal."""
    return select(Therapist.id).where(Therapist.principal_id == principal_id)


def owned_client_ids(principal_id: str):
    """Subquery of client ids belonging to the principal's therapists."""
    return select(Client.id).where(Client.therapist_id.in_(owned_therapist_ids(principal_id)))


# model -> (owner column, parent model or None, owned-ids subquery builder)
_OWNERSHIP = {
    Therapist: ("principal_id", None, None),
    Client: ("therapist_id", Therapist, owned_therapist_ids),
    Session: ("therapist_id", Therapist, owned_therapist_ids),
    SessionNote: ("therapist_id", Therapist, owned_therapist_ids),
    ClientProfile: ("client_id", Client, owned_client_ids),
    TreatmentGoal: ("client_id", Client, owned_client_ids),
    ProgressMetric: ("client_id", Client, owned_client_ids),
}


def is_governed(model) -> bool:
    return model in _OWNERSHIP


def visibility_clause(model, principal_id: str):
    """WHERE clause limiting ``model`` rows to those the principal owns."""
    column_name, parent, owned = _OWNERSHIP[model]
    column = getattr(model, column_name)
    if parent is None:
        return column == principal_id
    return column.in_(owned(principal_id))


def owns_reference(db: DBSession, model, values: dict[str, Any], principal_id: str) -> bool:
    """Whether a row with ``values`` would be owned by the principal.

    Used to check inserts and the post-image of updates.
    """
    column_name, parent, owned = _OWNERSHIP[model]
    value: Optional[Any] = values.get(column_name)
    if value is None:
        return False
    if parent is None:
        return value == principal_id

    stmt = (
        select(func.count())
        .select_from(parent)
        .where(parent.id == value, parent.id.in_(owned(principal_id)))
    )
    return db.scalar(stmt) > 0


def is_visible(db: DBSession, model, record_id, principal_id: str) -> bool:
    stmt = (
        select(func.count())
        .select_from(model)
        .where(model.id == record_id, visibility_clause(model, principal_id))
    )
    return db.scalar(stmt) > 0
