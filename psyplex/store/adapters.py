"""
RecordStore adapters - Typed CRUD primitives per practice entity.

Each adapter method issues exactly one store operation through the
AccessRouter and returns a StoreResult whose data is a Pydantic read
schema (or a list of them). Adapters never raise store errors.

Leaf inserts that must cross ownership boundaries (therapist, session and
session note writes) ask the router for the privileged tier directly; the
rest start on the restricted tier and rely on the router's fallback.
"""

from datetime import datetime
from typing import Any, Iterable, Optional, Type

from pydantic import BaseModel

from psyplex.models.client import Client, ClientRead
from psyplex.models.client_profile import ClientProfile, ClientProfileRead
from psyplex.models.progress_metric import ProgressMetric, ProgressMetricRead
from psyplex.models.session import Session, SessionRead
from psyplex.models.session_note import SessionNote, SessionNoteRead
from psyplex.models.therapist import Therapist, TherapistRead
from psyplex.models.treatment_goal import TreatmentGoal, TreatmentGoalRead
from psyplex.store.record_store import AccessTier, StoreResult, to_uuid
from psyplex.store.router import AccessRouter


def _as_read(schema: Type[BaseModel], result: StoreResult) -> StoreResult:
    if result.error is not None or result.data is None:
        return result
    if isinstance(result.data, list):
        return StoreResult([schema.model_validate(row) for row in result.data], None)
    return StoreResult(schema.model_validate(result.data), None)


def _first(result: StoreResult) -> StoreResult:
    if result.error is not None:
        return result
    return StoreResult(result.data[0] if result.data else None, None)


class _Adapter:
    """Shared plumbing: one model, one read schema, one router."""

    model: Any = None
    read_schema: Type[BaseModel] = BaseModel

    def __init__(self, router: AccessRouter) -> None:
        self._router = router

    async def _execute(self, operation, hint: AccessTier = AccessTier.RESTRICTED) -> StoreResult:
        return _as_read(self.read_schema, await self._router.execute(operation, hint))

    async def get(self, record_id: Any) -> StoreResult:
        return await self._execute(lambda store: store.get(self.model, record_id))

    async def insert(self, values: dict[str, Any], hint: AccessTier = AccessTier.RESTRICTED) -> StoreResult:
        return await self._execute(lambda store: store.insert(self.model, values), hint)

    async def update(self, record_id: Any, values: dict[str, Any]) -> StoreResult:
        return await self._execute(lambda store: store.update(self.model, record_id, values))

    async def delete(self, record_id: Any) -> StoreResult:
        return await self._router.execute(lambda store: store.delete(self.model, record_id))


class TherapistAdapter(_Adapter):
    model = Therapist
    read_schema = TherapistRead

    async def find_by_principal(self, principal_id: str) -> StoreResult:
        """All therapist rows for a principal, oldest first."""
        return await self._execute(
            lambda store: store.select(
                Therapist,
                Therapist.principal_id == principal_id,
                order_by=(Therapist.created_at, Therapist.id),
            )
        )

    async def insert(self, values: dict[str, Any], hint: AccessTier = AccessTier.PRIVILEGED) -> StoreResult:
        return await super().insert(values, hint)


class ClientAdapter(_Adapter):
    model = Client
    read_schema = ClientRead

    async def list_for_therapist(self, therapist_id: Any) -> StoreResult:
        return await self._execute(
            lambda store: store.select(
                Client,
                Client.therapist_id == to_uuid(therapist_id),
                order_by=(Client.created_at.desc(),),
            )
        )

    async def insert(self, values: dict[str, Any], hint: AccessTier = AccessTier.PRIVILEGED) -> StoreResult:
        return await super().insert(values, hint)


class ClientProfileAdapter(_Adapter):
    model = ClientProfile
    read_schema = ClientProfileRead

    async def get_for_client(self, client_id: Any) -> StoreResult:
        """The client's profile, or data None when it has none."""
        key = to_uuid(client_id)
        if key is None:
            return StoreResult(None, None)
        return _first(await self._execute(
            lambda store: store.select(ClientProfile, ClientProfile.client_id == key, limit=1)
        ))

    async def list_for_clients(self, client_ids: Iterable[Any]) -> StoreResult:
        keys = [k for k in (to_uuid(c) for c in client_ids) if k is not None]
        if not keys:
            return StoreResult([], None)
        return await self._execute(
            lambda store: store.select(ClientProfile, ClientProfile.client_id.in_(keys))
        )

    async def delete_for_client(self, client_id: Any) -> StoreResult:
        """Delete the client's profile on the privileged tier. Data is the row count."""
        key = to_uuid(client_id)
        return await self._router.execute(
            lambda store: store.delete_where(ClientProfile, ClientProfile.client_id == key),
            AccessTier.PRIVILEGED,
        )


class SessionAdapter(_Adapter):
    model = Session
    read_schema = SessionRead

    async def list_for_therapist(
        self,
        therapist_id: Any,
        client_id: Optional[Any] = None,
        since: Optional[datetime] = None,
    ) -> StoreResult:
        """Sessions for a therapist, newest first unless ``since`` is given."""
        criteria = [Session.therapist_id == to_uuid(therapist_id)]
        if client_id is not None:
            criteria.append(Session.client_id == to_uuid(client_id))
        if since is not None:
            criteria.append(Session.session_date >= since)
            order_by = (Session.session_date,)
        else:
            order_by = (Session.session_date.desc(),)

        return await self._execute(
            lambda store: store.select(Session, *criteria, order_by=order_by)
        )

    async def insert(self, values: dict[str, Any], hint: AccessTier = AccessTier.PRIVILEGED) -> StoreResult:
        return await super().insert(values, hint)


class SessionNoteAdapter(_Adapter):
    model = SessionNote
    read_schema = SessionNoteRead

    async def list_for_therapist(
        self,
        therapist_id: Any,
        client_id: Optional[Any] = None,
        session_id: Optional[Any] = None,
    ) -> StoreResult:
        criteria = [SessionNote.therapist_id == to_uuid(therapist_id)]
        if client_id is not None:
            criteria.append(SessionNote.client_id == to_uuid(client_id))
        if session_id is not None:
            criteria.append(SessionNote.session_id == to_uuid(session_id))

        return await self._execute(
            lambda store: store.select(
                SessionNote, *criteria, order_by=(SessionNote.created_at.desc(),)
            )
        )

    async def insert(self, values: dict[str, Any], hint: AccessTier = AccessTier.PRIVILEGED) -> StoreResult:
        return await super().insert(values, hint)


class TreatmentGoalAdapter(_Adapter):
    model = TreatmentGoal
    read_schema = TreatmentGoalRead

    async def list_for_client(self, client_id: Any) -> StoreResult:
        return await self._execute(
            lambda store: store.select(
                TreatmentGoal,
                TreatmentGoal.client_id == to_uuid(client_id),
                order_by=(TreatmentGoal.created_at,),
            )
        )


class ProgressMetricAdapter(_Adapter):
    model = ProgressMetric
    read_schema = ProgressMetricRead

    async def list_for_client(self, client_id: Any, metric_name: Optional[str] = None) -> StoreResult:
        criteria = [ProgressMetric.client_id == to_uuid(client_id)]
        if metric_name is not None:
            criteria.append(ProgressMetric.metric_name == metric_name)

        return await self._execute(
            lambda store: store.select(
                ProgressMetric,
                *criteria,
                order_by=(ProgressMetric.date_recorded, ProgressMetric.created_at),
            )
        )


class PracticeAdapters:
    """Every entity adapter, sharing one AccessRouter."""

    def __init__(self, router: AccessRouter) -> None:
        self.router = router
        self.therapists = TherapistAdapter(router)
        self.clients = ClientAdapter(router)
        self.profiles = ClientProfileAdapter(router)
        self.sessions = SessionAdapter(router)
        self.notes = SessionNoteAdapter(router)
        self.goals = TreatmentGoalAdapter(router)
        self.metrics = ProgressMetricAdapter(router)
