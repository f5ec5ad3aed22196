"""
Practice Service - Orchestrated operations over the practice records.

Every operation takes the caller's PrincipalContext first and has the
same two-part shape:

1. resolve (or provision) the parent chain through the EntityProvisioner,
   so ownership ids are always derived from the authenticated principal
   and never taken from caller input;
2. perform the leaf write with the ownership fields forced to the
   resolved values.

Only operations that create records provision the principal's therapist.
Reads, updates and deletes look it up and treat a principal without one
as owning nothing. Updates and deletes check ownership on the restricted
tier before the write, since the router may retry the write itself on
the privileged tier.

Writes are sequential with no cross-entity rollback. Secondary writes
(profiles alongside a client, audit entries) are logged on failure and
never fail the primary operation.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional, Type, TypeVar
from uuid import uuid4

import pydantic
import structlog
from pydantic import BaseModel

from psyplex.errors import (
    AuthenticationRequired,
    NotFound,
    OperationFailed,
    PolicyDenied,
    RecordNotFound,
    StoreUnavailable,
    ValidationError,
)
from psyplex.models.audit_log import AuditAction
from psyplex.models.base import utcnow
from psyplex.models.client import ClientCreate, ClientRead, ClientUpdate
from psyplex.models.client_profile import ClientProfileCreate, ClientProfileRead, ClientProfileUpdate
from psyplex.models.progress_metric import ProgressMetricCreate, ProgressMetricRead, ProgressMetricUpdate
from psyplex.models.session import SessionCreate, SessionRead, SessionStatus, SessionUpdate
from psyplex.models.session_note import SessionNoteCreate, SessionNoteRead, SessionNoteUpdate
from psyplex.models.therapist import TherapistRead, TherapistUpdate
from psyplex.models.treatment_goal import TreatmentGoalCreate, TreatmentGoalRead, TreatmentGoalUpdate
from psyplex.services.audit import AuditService
from psyplex.services.content import as_note_content, normalize_content
from psyplex.services.principal import PrincipalContext
from psyplex.services.provisioner import EntityProvisioner
from psyplex.store.adapters import PracticeAdapters
from psyplex.store.record_store import StoreResult
from psyplex.store.router import StoreConnector

logger = structlog.get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


# =============================================================================
# Result models
# =============================================================================

class ClientWithProfile(ClientRead):
    """Client enriched with its profile and session summary."""
    name: str
    session_count: int = 0
    last_session_date: Optional[datetime] = None
    profile: Optional[ClientProfileRead] = None


class DeleteResult(BaseModel):
    """Outcome of a delete operation."""
    success: bool


# =============================================================================
# Service
# =============================================================================

class PracticeService:
    """
    Composite use cases for the practice front end.

    Args:
        connector: Builds the per-principal AccessRouter.
        audit: Optional audit service for PHI writes.
    """

    def __init__(self, connector: StoreConnector, audit: Optional[AuditService] = None) -> None:
        self._connector = connector
        self._audit = audit

    def _bind(self, ctx: Optional[PrincipalContext]) -> tuple[PracticeAdapters, EntityProvisioner]:
        self._require_principal(ctx)
        adapters = PracticeAdapters(self._connector.router_for(ctx.principal_id))
        return adapters, EntityProvisioner(adapters, self._audit)

    # -------------------------------------------------------------------------
    # Therapists
    # -------------------------------------------------------------------------

    async def ensure_therapist(self, ctx: Optional[PrincipalContext]) -> TherapistRead:
        """The calling principal's therapist row, provisioned on first use."""
        _, provisioner = self._bind(ctx)
        return await provisioner.ensure_therapist(ctx)

    async def update_therapist(
        self,
        ctx: Optional[PrincipalContext],
        data: TherapistUpdate | Mapping,
    ) -> TherapistRead:
        """Edit the principal's own therapist profile, provisioning it if needed."""
        adapters, provisioner = self._bind(ctx)
        payload = _coerce(TherapistUpdate, data)

        therapist = await provisioner.ensure_therapist(ctx)
        therapist = await _apply_update(adapters.therapists, therapist, payload, "update therapist")

        self._audit_write(ctx, therapist.id, "therapist", therapist.id, AuditAction.UPDATE)
        return therapist

    # -------------------------------------------------------------------------
    # Clients
    # -------------------------------------------------------------------------

    async def create_client(
        self,
        ctx: Optional[PrincipalContext],
        data: ClientCreate | Mapping,
        profile: ClientProfileCreate | Mapping | None = None,
    ) -> ClientRead:
        """
        Create a client owned by the principal's therapist.

        Any therapist_id in ``data`` is ignored. The profile, when given,
        is a secondary write.

        Raises:
            AuthenticationRequired: No principal.
            ValidationError: Missing or empty required fields.
            OperationFailed: The client insert failed.
            StoreUnavailable: Privileged credential not configured.
        """
        adapters, provisioner = self._bind(ctx)
        payload = _coerce(ClientCreate, data)
        profile_payload = _coerce(ClientProfileCreate, profile) if profile is not None else None

        therapist = await provisioner.ensure_therapist(ctx)
        self._note_rewrite(payload.therapist_id, therapist, "client")

        values = payload.model_dump(exclude={"therapist_id"})
        values.update(id=uuid4(), therapist_id=therapist.id)
        client = _terminal(await adapters.clients.insert(values), "create client")

        if profile_payload is not None:
            result = await adapters.profiles.insert(
                {**profile_payload.model_dump(), "id": uuid4(), "client_id": client.id}
            )
            if result.error is not None:
                _secondary_failed("create client profile", client.id, result)

        logger.info("client_created", client_id=str(client.id), therapist_id=str(therapist.id))
        self._audit_write(ctx, therapist.id, "client", client.id, AuditAction.CREATE)
        return client

    async def update_client(
        self,
        ctx: Optional[PrincipalContext],
        client_id: Any,
        data: ClientUpdate | Mapping,
        profile: ClientProfileUpdate | Mapping | None = None,
    ) -> ClientRead:
        """
        Update a client; the profile upsert is a secondary write.

        Raises:
            ValidationError: A required field was blanked or set to null.
            RecordNotFound: The client does not exist or belongs to someone else.
        """
        adapters, _ = self._bind(ctx)
        payload = _coerce(ClientUpdate, data)
        profile_payload = _coerce(ClientProfileUpdate, profile) if profile is not None else None

        therapist = await self._existing_therapist(adapters, ctx, "client", client_id)
        client = await self._owned_client(adapters, client_id, therapist)
        client = await _apply_update(adapters.clients, client, payload, "update client")

        if profile_payload is not None:
            await self._upsert_profile(adapters, client, profile_payload)

        self._audit_write(ctx, therapist.id, "client", client.id, AuditAction.UPDATE)
        return client

    async def get_client(self, ctx: Optional[PrincipalContext], client_id: Any) -> ClientWithProfile:
        """
        One of the principal's clients with profile and session summary.

        Raises:
            RecordNotFound: The client does not exist or belongs to someone else.
        """
        adapters, _ = self._bind(ctx)
        therapist = await self._existing_therapist(adapters, ctx, "client", client_id)
        client = await self._owned_client(adapters, client_id, therapist)

        profile_result = await adapters.profiles.get_for_client(client.id)
        if profile_result.error is not None:
            _secondary_failed("load client profile", client.id, profile_result)
        sessions = _terminal(
            await adapters.sessions.list_for_therapist(therapist.id, client_id=client.id),
            "list sessions",
        )
        return _enrich(client, profile_result.data, sessions)

    async def list_clients(self, ctx: Optional[PrincipalContext]) -> list[ClientWithProfile]:
        """All of the principal's clients, newest first, enriched."""
        adapters, _ = self._bind(ctx)
        therapist = await self._find_therapist(adapters, ctx)
        if therapist is None:
            return []

        clients = _terminal(await adapters.clients.list_for_therapist(therapist.id), "list clients")
        if not clients:
            return []

        profile_result = await adapters.profiles.list_for_clients([c.id for c in clients])
        if profile_result.error is not None:
            _secondary_failed("load client profiles", None, profile_result)
        profiles = {p.client_id: p for p in profile_result.data or []}

        sessions = _terminal(await adapters.sessions.list_for_therapist(therapist.id), "list sessions")
        by_client: dict[Any, list[SessionRead]] = {}
        for session in sessions:
            by_client.setdefault(session.client_id, []).append(session)

        return [_enrich(c, profiles.get(c.id), by_client.get(c.id, [])) for c in clients]

    async def delete_client(self, ctx: Optional[PrincipalContext], client_id: Any) -> DeleteResult:
        """
        Delete a client: its profile first (privileged, non-blocking), then
        the client itself.

        Returns:
            DeleteResult(success=False) when the client is not the principal's.
        """
        adapters, _ = self._bind(ctx)
        try:
            therapist = await self._existing_therapist(adapters, ctx, "client", client_id)
            client = await self._owned_client(adapters, client_id, therapist)
        except RecordNotFound:
            logger.info("client_delete_not_found", client_id=str(client_id))
            return DeleteResult(success=False)

        profile_result = await adapters.profiles.delete_for_client(client.id)
        if profile_result.error is not None:
            _secondary_failed("delete client profile", client.id, profile_result)

        return await self._remove(ctx, adapters.clients, therapist, "client", client.id)

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    async def create_session(self, ctx: Optional[PrincipalContext], data: SessionCreate | Mapping) -> SessionRead:
        """
        Schedule a session, provisioning a placeholder client when
        ``client_id`` does not resolve for this principal.
        """
        adapters, provisioner = self._bind(ctx)
        payload = _coerce(SessionCreate, data)

        therapist = await provisioner.ensure_therapist(ctx)
        self._note_rewrite(payload.therapist_id, therapist, "session")
        client = await provisioner.ensure_client(ctx, payload.client_id, therapist)

        values = payload.model_dump(exclude={"client_id", "therapist_id"})
        values.update(id=uuid4(), client_id=client.id, therapist_id=therapist.id)
        session = _terminal(await adapters.sessions.insert(values), "create session")

        logger.info("session_created", session_id=str(session.id), client_id=str(client.id))
        self._audit_write(ctx, therapist.id, "session", session.id, AuditAction.CREATE)
        return session

    async def update_session(
        self,
        ctx: Optional[PrincipalContext],
        session_id: Any,
        data: SessionUpdate | Mapping,
    ) -> SessionRead:
        """
        Reschedule or otherwise edit one of the principal's sessions.

        Raises:
            ValidationError: A field was set to null or an invalid value.
            RecordNotFound: The session does not exist or belongs to someone else.
        """
        adapters, _ = self._bind(ctx)
        payload = _coerce(SessionUpdate, data)

        therapist = await self._existing_therapist(adapters, ctx, "session", session_id)
        session = await self._owned_by_therapist(adapters.sessions, "session", session_id, therapist)
        session = await _apply_update(adapters.sessions, session, payload, "update session")

        self._audit_write(ctx, therapist.id, "session", session.id, AuditAction.UPDATE)
        return session

    async def update_session_status(
        self,
        ctx: Optional[PrincipalContext],
        session_id: Any,
        status: SessionStatus | str,
    ) -> SessionRead:
        return await self.update_session(ctx, session_id, {"status": status})

    async def delete_session(self, ctx: Optional[PrincipalContext], session_id: Any) -> DeleteResult:
        """Delete one of the principal's sessions; its notes go with it."""
        adapters, _ = self._bind(ctx)
        try:
            therapist = await self._existing_therapist(adapters, ctx, "session", session_id)
            session = await self._owned_by_therapist(adapters.sessions, "session", session_id, therapist)
        except RecordNotFound:
            logger.info("session_delete_not_found", session_id=str(session_id))
            return DeleteResult(success=False)

        return await self._remove(ctx, adapters.sessions, therapist, "session", session.id)

    async def list_sessions(
        self,
        ctx: Optional[PrincipalContext],
        client_id: Any = None,
        upcoming: bool = False,
    ) -> list[SessionRead]:
        """The principal's sessions; ``upcoming`` keeps future ones, soonest first."""
        adapters, _ = self._bind(ctx)
        therapist = await self._find_therapist(adapters, ctx)
        if therapist is None:
            return []

        since = utcnow() if upcoming else None
        return _terminal(
            await adapters.sessions.list_for_therapist(therapist.id, client_id=client_id, since=since),
            "list sessions",
        )

    # -------------------------------------------------------------------------
    # Session notes
    # -------------------------------------------------------------------------

    async def create_session_note(
        self,
        ctx: Optional[PrincipalContext],
        data: SessionNoteCreate | Mapping,
    ) -> SessionNoteRead:
        """
        Save a session note, healing every missing or foreign reference.

        The therapist is the principal's, the client is resolved under it
        (placeholder if needed), and the session is reused only when it
        belongs to exactly that client and therapist; otherwise a new one
        is synthesized. Content is normalized before the insert. Only a
        failure of the final insert fails the operation.

        Raises:
            AuthenticationRequired: No principal.
            ValidationError: client_id, therapist_id, title or content empty.
            OperationFailed: The note insert failed.
            StoreUnavailable: Privileged credential not configured.
        """
        adapters, provisioner = self._bind(ctx)
        payload = _coerce(SessionNoteCreate, data)

        therapist = await provisioner.ensure_therapist(ctx)
        self._note_rewrite(payload.therapist_id, therapist, "session_note")
        client = await provisioner.ensure_client(ctx, payload.client_id, therapist)
        session = await provisioner.ensure_session(ctx, payload.session_id, client, therapist)
        content = normalize_content(as_note_content(payload.content))

        note = _terminal(
            await adapters.notes.insert({
                "id": uuid4(),
                "session_id": session.id,
                "client_id": client.id,
                "therapist_id": therapist.id,
                "title": payload.title,
                "content": content,
                "therapy_type": payload.therapy_type,
                "tags": payload.tags,
            }),
            "create session note",
        )

        logger.info(
            "session_note_created",
            note_id=str(note.id),
            session_id=str(session.id),
            client_id=str(client.id),
        )
        self._audit_write(ctx, therapist.id, "session_note", note.id, AuditAction.CREATE)
        return note

    async def update_session_note(
        self,
        ctx: Optional[PrincipalContext],
        note_id: Any,
        data: SessionNoteUpdate | Mapping,
    ) -> SessionNoteRead:
        """
        Edit a note's title, content or tags. New content is normalized
        the same way as on create; the note's session and client are fixed.
        """
        adapters, _ = self._bind(ctx)
        payload = _coerce(SessionNoteUpdate, data)

        therapist = await self._existing_therapist(adapters, ctx, "session_note", note_id)
        note = await self._owned_by_therapist(adapters.notes, "session_note", note_id, therapist)

        values = payload.model_dump(exclude_unset=True)
        if "content" in values:
            values["content"] = normalize_content(as_note_content(payload.content))
        if values:
            note = _terminal(await adapters.notes.update(note.id, values), "update session note")

        self._audit_write(ctx, therapist.id, "session_note", note.id, AuditAction.UPDATE)
        return note

    async def delete_session_note(self, ctx: Optional[PrincipalContext], note_id: Any) -> DeleteResult:
        adapters, _ = self._bind(ctx)
        try:
            therapist = await self._existing_therapist(adapters, ctx, "session_note", note_id)
            note = await self._owned_by_therapist(adapters.notes, "session_note", note_id, therapist)
        except RecordNotFound:
            logger.info("session_note_delete_not_found", note_id=str(note_id))
            return DeleteResult(success=False)

        return await self._remove(ctx, adapters.notes, therapist, "session_note", note.id)

    async def list_session_notes(
        self,
        ctx: Optional[PrincipalContext],
        client_id: Any = None,
        session_id: Any = None,
    ) -> list[SessionNoteRead]:
        adapters, _ = self._bind(ctx)
        therapist = await self._find_therapist(adapters, ctx)
        if therapist is None:
            return []

        return _terminal(
            await adapters.notes.list_for_therapist(therapist.id, client_id=client_id, session_id=session_id),
            "list session notes",
        )

    # -------------------------------------------------------------------------
    # Treatment goals and progress metrics
    # -------------------------------------------------------------------------

    async def create_treatment_goal(
        self,
        ctx: Optional[PrincipalContext],
        data: TreatmentGoalCreate | Mapping,
    ) -> TreatmentGoalRead:
        """
        Add a goal for an existing client. No placeholder is provisioned.

        Raises:
            RecordNotFound: The client does not exist for this principal.
        """
        adapters, _ = self._bind(ctx)
        payload = _coerce(TreatmentGoalCreate, data)

        therapist = await self._existing_therapist(adapters, ctx, "client", payload.client_id)
        client = await self._owned_client(adapters, payload.client_id, therapist)

        values = payload.model_dump(exclude={"client_id"})
        values.update(id=uuid4(), client_id=client.id)
        goal = _terminal(await adapters.goals.insert(values), "create treatment goal")

        self._audit_write(ctx, therapist.id, "treatment_goal", goal.id, AuditAction.CREATE)
        return goal

    async def update_treatment_goal(
        self,
        ctx: Optional[PrincipalContext],
        goal_id: Any,
        data: TreatmentGoalUpdate | Mapping,
    ) -> TreatmentGoalRead:
        """Edit a goal or move it along, e.g. to Achieved."""
        adapters, _ = self._bind(ctx)
        payload = _coerce(TreatmentGoalUpdate, data)

        therapist = await self._existing_therapist(adapters, ctx, "treatment_goal", goal_id)
        goal = await self._owned_by_client(adapters, adapters.goals, "treatment_goal", goal_id, therapist)
        goal = await _apply_update(adapters.goals, goal, payload, "update treatment goal")

        self._audit_write(ctx, therapist.id, "treatment_goal", goal.id, AuditAction.UPDATE)
        return goal

    async def delete_treatment_goal(self, ctx: Optional[PrincipalContext], goal_id: Any) -> DeleteResult:
        adapters, _ = self._bind(ctx)
        try:
            therapist = await self._existing_therapist(adapters, ctx, "treatment_goal", goal_id)
            goal = await self._owned_by_client(adapters, adapters.goals, "treatment_goal", goal_id, therapist)
        except RecordNotFound:
            logger.info("treatment_goal_delete_not_found", goal_id=str(goal_id))
            return DeleteResult(success=False)

        return await self._remove(ctx, adapters.goals, therapist, "treatment_goal", goal.id)

    async def list_treatment_goals(self, ctx: Optional[PrincipalContext], client_id: Any) -> list[TreatmentGoalRead]:
        adapters, _ = self._bind(ctx)
        therapist = await self._existing_therapist(adapters, ctx, "client", client_id)
        client = await self._owned_client(adapters, client_id, therapist)
        return _terminal(await adapters.goals.list_for_client(client.id), "list treatment goals")

    async def record_progress_metric(
        self,
        ctx: Optional[PrincipalContext],
        data: ProgressMetricCreate | Mapping,
    ) -> ProgressMetricRead:
        """
        Record a measurement for an existing client. No placeholder is provisioned.

        Raises:
            RecordNotFound: The client does not exist for this principal.
        """
        adapters, _ = self._bind(ctx)
        payload = _coerce(ProgressMetricCreate, data)

        therapist = await self._existing_therapist(adapters, ctx, "client", payload.client_id)
        client = await self._owned_client(adapters, payload.client_id, therapist)

        values = payload.model_dump(exclude={"client_id"})
        values.update(id=uuid4(), client_id=client.id)
        if values["date_recorded"] is None:
            values["date_recorded"] = utcnow().date()
        metric = _terminal(await adapters.metrics.insert(values), "record progress metric")

        self._audit_write(ctx, therapist.id, "progress_metric", metric.id, AuditAction.CREATE)
        return metric

    async def update_progress_metric(
        self,
        ctx: Optional[PrincipalContext],
        metric_id: Any,
        data: ProgressMetricUpdate | Mapping,
    ) -> ProgressMetricRead:
        """Correct a recorded measurement."""
        adapters, _ = self._bind(ctx)
        payload = _coerce(ProgressMetricUpdate, data)

        therapist = await self._existing_therapist(adapters, ctx, "progress_metric", metric_id)
        metric = await self._owned_by_client(adapters, adapters.metrics, "progress_metric", metric_id, therapist)
        metric = await _apply_update(adapters.metrics, metric, payload, "update progress metric")

        self._audit_write(ctx, therapist.id, "progress_metric", metric.id, AuditAction.UPDATE)
        return metric

    async def delete_progress_metric(self, ctx: Optional[PrincipalContext], metric_id: Any) -> DeleteResult:
        adapters, _ = self._bind(ctx)
        try:
            therapist = await self._existing_therapist(adapters, ctx, "progress_metric", metric_id)
            metric = await self._owned_by_client(
                adapters, adapters.metrics, "progress_metric", metric_id, therapist
            )
        except RecordNotFound:
            logger.info("progress_metric_delete_not_found", metric_id=str(metric_id))
            return DeleteResult(success=False)

        return await self._remove(ctx, adapters.metrics, therapist, "progress_metric", metric.id)

    async def list_progress_metrics(
        self,
        ctx: Optional[PrincipalContext],
        client_id: Any,
        metric_name: Optional[str] = None,
    ) -> list[ProgressMetricRead]:
        adapters, _ = self._bind(ctx)
        therapist = await self._existing_therapist(adapters, ctx, "client", client_id)
        client = await self._owned_client(adapters, client_id, therapist)
        return _terminal(
            await adapters.metrics.list_for_client(client.id, metric_name=metric_name),
            "list progress metrics",
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _require_principal(ctx: Optional[PrincipalContext]) -> None:
        if ctx is None or not ctx.principal_id:
            raise AuthenticationRequired("Authentication required")

    async def _find_therapist(self, adapters: PracticeAdapters, ctx: PrincipalContext) -> Optional[TherapistRead]:
        """The principal's therapist row (oldest wins), without provisioning one."""
        rows = _terminal(await adapters.therapists.find_by_principal(ctx.principal_id), "load therapist")
        return rows[0] if rows else None

    async def _existing_therapist(
        self,
        adapters: PracticeAdapters,
        ctx: PrincipalContext,
        kind: str,
        record_id: Any,
    ) -> TherapistRead:
        # A principal without a therapist row owns no records at all
        therapist = await self._find_therapist(adapters, ctx)
        if therapist is None:
            raise RecordNotFound(f"{kind} {record_id} not found")
        return therapist

    async def _owned_client(self, adapters: PracticeAdapters, client_id: Any, therapist: TherapistRead) -> ClientRead:
        client = _read(await adapters.clients.get(client_id), "client", client_id)
        if client.therapist_id != therapist.id:
            raise RecordNotFound(f"client {client_id} not found")
        return client

    async def _owned_by_therapist(self, adapter: Any, kind: str, record_id: Any, therapist: TherapistRead) -> Any:
        record = _read(await adapter.get(record_id), kind, record_id)
        if record.therapist_id != therapist.id:
            raise RecordNotFound(f"{kind} {record_id} not found")
        return record

    async def _owned_by_client(
        self,
        adapters: PracticeAdapters,
        adapter: Any,
        kind: str,
        record_id: Any,
        therapist: TherapistRead,
    ) -> Any:
        record = _read(await adapter.get(record_id), kind, record_id)
        try:
            await self._owned_client(adapters, record.client_id, therapist)
        except RecordNotFound:
            raise RecordNotFound(f"{kind} {record_id} not found")
        return record

    async def _remove(
        self,
        ctx: PrincipalContext,
        adapter: Any,
        therapist: TherapistRead,
        kind: str,
        record_id: Any,
    ) -> DeleteResult:
        _terminal(await adapter.delete(record_id), f"delete {kind.replace('_', ' ')}")

        logger.info("record_deleted", resource_type=kind, record_id=str(record_id), therapist_id=str(therapist.id))
        self._audit_write(ctx, therapist.id, kind, record_id, AuditAction.DELETE)
        return DeleteResult(success=True)

    async def _upsert_profile(
        self,
        adapters: PracticeAdapters,
        client: ClientRead,
        profile: ClientProfileUpdate,
    ) -> None:
        existing = await adapters.profiles.get_for_client(client.id)
        if existing.error is not None:
            _secondary_failed("load client profile", client.id, existing)
            return

        if existing.data is None:
            result = await adapters.profiles.insert(
                {**profile.model_dump(exclude_unset=True), "id": uuid4(), "client_id": client.id}
            )
        else:
            result = await adapters.profiles.update(existing.data.id, profile.model_dump(exclude_unset=True))
        if result.error is not None:
            _secondary_failed("save client profile", client.id, result)

    @staticmethod
    def _note_rewrite(supplied: Optional[str], therapist: TherapistRead, resource_type: str) -> None:
        if supplied and supplied != str(therapist.id):
            logger.info(
                "therapist_id_rewritten",
                resource_type=resource_type,
                supplied=supplied,
                resolved=str(therapist.id),
            )

    def _audit_write(self, ctx: PrincipalContext, therapist_id: Any, resource_type: str, resource_id: Any, action: str) -> None:
        if self._audit is None:
            return
        try:
            self._audit.log_phi_modification(
                principal_id=ctx.principal_id,
                user_id=therapist_id,
                resource_type=resource_type,
                resource_id=resource_id,
                action=action,
            )
        except Exception as e:
            logger.warning("audit_write_failed", resource_type=resource_type, action=action, error=str(e))


# =============================================================================
# Module helpers
# =============================================================================

def _coerce(schema: Type[SchemaT], data: Any) -> SchemaT:
    """Validate caller input into ``schema``, raising our ValidationError."""
    if isinstance(data, schema):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError(f"Expected {schema.__name__} input")
    try:
        return schema.model_validate(dict(data))
    except pydantic.ValidationError as e:
        fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise ValidationError(f"Invalid {schema.__name__}: {', '.join(fields)}", fields=fields) from e


async def _apply_update(adapter: Any, record: Any, payload: BaseModel, what: str) -> Any:
    """Write the fields the caller set; an empty update returns ``record`` unchanged."""
    values = payload.model_dump(exclude_unset=True)
    if not values:
        return record
    return _terminal(await adapter.update(record.id, values), what)


def _terminal(result: StoreResult, what: str) -> Any:
    """Data of a primary write/read, or the operation's terminal error."""
    if result.error is None:
        return result.data
    if isinstance(result.error, StoreUnavailable):
        raise result.error
    logger.error("operation_failed", operation=what, code=result.error.code, error=result.error.message)
    raise OperationFailed(f"Could not {what}: {result.error}", cause=result.error)


def _read(result: StoreResult, kind: str, record_id: Any) -> Any:
    if isinstance(result.error, (NotFound, PolicyDenied)):
        raise RecordNotFound(f"{kind} {record_id} not found")
    return _terminal(result, f"load {kind}")


def _secondary_failed(what: str, client_id: Any, result: StoreResult) -> None:
    logger.warning(
        "secondary_write_failed",
        operation=what,
        client_id=str(client_id) if client_id else None,
        code=result.error.code,
        error=result.error.message,
    )


def _enrich(client: ClientRead, profile: Optional[ClientProfileRead], sessions: list[SessionRead]) -> ClientWithProfile:
    last = max((s.session_date for s in sessions), default=None)
    return ClientWithProfile(
        **client.model_dump(),
        name=f"{client.first_name} {client.last_name}".strip(),
        session_count=len(sessions),
        last_session_date=last,
        profile=profile,
    )
