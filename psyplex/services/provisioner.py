"""
Entity Provisioner - get-or-create along the ownership chain.

    Principal -> Therapist -> Client -> Session -> (SessionNote)

Each ``ensure_*`` looks the record up on the restricted tier and, when it
does not resolve, inserts a minimal placeholder whose parent ids are the
already-resolved ones. Resolution is an explicit bounded loop
("not found -> create -> re-resolve") with at most one insert per level:

- a row created here but missed by a stale re-read is returned as-is
  instead of being inserted again;
- a duplicate-key conflict (a concurrent caller won the race) is resolved
  by re-querying.
"""

from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

import structlog

from psyplex.errors import (
    DuplicateKey,
    NotFound,
    PolicyDenied,
    ProvisioningError,
    StoreError,
    StoreUnavailable,
)
from psyplex.models.base import utcnow
from psyplex.models.client import ClientRead, ClientStatus
from psyplex.models.session import SessionRead, SessionStatus, SessionType
from psyplex.models.therapist import TherapistRead
from psyplex.services.audit import AuditService
from psyplex.services.principal import PrincipalContext
from psyplex.store.adapters import PracticeAdapters
from psyplex.store.record_store import StoreResult

logger = structlog.get_logger(__name__)

MAX_PROVISION_ATTEMPTS = 2

PLACEHOLDER_CLIENT_FIRST_NAME = "Unnamed"
PLACEHOLDER_CLIENT_LAST_NAME = "Client"

# Lookup misses that provisioning heals; anything else is a real failure
_UNRESOLVED = (NotFound, PolicyDenied)


class EntityProvisioner:
    """
    Resolves or creates the parent records a write depends on.

    Args:
        adapters: Entity adapters bound to the calling principal's router.
        audit: Optional audit service; placeholder creation is audited.
    """

    def __init__(self, adapters: PracticeAdapters, audit: Optional[AuditService] = None) -> None:
        self._adapters = adapters
        self._audit = audit

    # -------------------------------------------------------------------------
    # Therapist
    # -------------------------------------------------------------------------

    async def ensure_therapist(self, ctx: PrincipalContext) -> TherapistRead:
        """
        The therapist row for the principal, created on first use.

        The principal_id always comes from the verified context. When more
        than one row exists for the principal the oldest one wins.
        """

        async def lookup(created: Optional[TherapistRead]) -> Optional[TherapistRead]:
            rows = self._unwrap(
                await self._adapters.therapists.find_by_principal(ctx.principal_id), "therapist"
            )
            if not rows:
                return None
            if len(rows) > 1:
                logger.warning(
                    "duplicate_therapists_for_principal",
                    principal_id=ctx.principal_id,
                    count=len(rows),
                    kept_id=str(rows[0].id),
                )
            return rows[0]

        async def create() -> StoreResult:
            return await self._adapters.therapists.insert({
                "id": uuid4(),
                "principal_id": ctx.principal_id,
                "full_name": ctx.full_name,
            })

        therapist, created = await self._get_or_create("therapist", lookup, create)
        if created:
            logger.info("therapist_provisioned", principal_id=ctx.principal_id, therapist_id=str(therapist.id))
            self._record(ctx, therapist.id, "therapist", therapist.id)
        return therapist

    # -------------------------------------------------------------------------
    # Client
    # -------------------------------------------------------------------------

    async def ensure_client(
        self,
        ctx: PrincipalContext,
        client_id: Optional[Any],
        therapist: TherapistRead,
    ) -> ClientRead:
        """
        The client ``client_id`` if it belongs to ``therapist``, else a placeholder.

        Placeholders always get a fresh id; a caller-supplied id that does
        not resolve is never reused.
        """

        async def lookup(created: Optional[ClientRead]) -> Optional[ClientRead]:
            target = created.id if created is not None else client_id
            if target is None:
                return None
            client = self._unwrap(await self._adapters.clients.get(target), "client")
            if client is not None and client.therapist_id != therapist.id:
                logger.warning(
                    "client_owner_mismatch",
                    client_id=str(client.id),
                    therapist_id=str(therapist.id),
                )
                return None
            return client

        async def create() -> StoreResult:
            return await self._adapters.clients.insert({
                "id": uuid4(),
                "therapist_id": therapist.id,
                "first_name": PLACEHOLDER_CLIENT_FIRST_NAME,
                "last_name": PLACEHOLDER_CLIENT_LAST_NAME,
                "status": ClientStatus.NEW,
            })

        client, created = await self._get_or_create("client", lookup, create)
        if created:
            logger.info(
                "client_provisioned",
                requested_id=str(client_id) if client_id else None,
                client_id=str(client.id),
                therapist_id=str(therapist.id),
            )
            self._record(ctx, therapist.id, "client", client.id, requested_id=client_id)
        return client

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def ensure_session(
        self,
        ctx: PrincipalContext,
        session_id: Optional[Any],
        client: ClientRead,
        therapist: TherapistRead,
    ) -> SessionRead:
        """
        The session ``session_id`` if it exists for exactly this client and
        therapist; otherwise a synthesized one (Virtual, Completed, 0 minutes,
        dated now).
        """

        async def lookup(created: Optional[SessionRead]) -> Optional[SessionRead]:
            target = created.id if created is not None else session_id
            if target is None:
                return None
            session = self._unwrap(await self._adapters.sessions.get(target), "session")
            if session is None:
                return None
            if session.client_id != client.id or session.therapist_id != therapist.id:
                logger.warning(
                    "session_mismatch_discarded",
                    session_id=str(session.id),
                    client_id=str(client.id),
                    therapist_id=str(therapist.id),
                )
                return None
            return session

        async def create() -> StoreResult:
            return await self._adapters.sessions.insert({
                "id": uuid4(),
                "client_id": client.id,
                "therapist_id": therapist.id,
                "session_date": utcnow(),
                "duration_minutes": 0,
                "session_type": SessionType.VIRTUAL,
                "status": SessionStatus.COMPLETED,
            })

        session, created = await self._get_or_create("session", lookup, create)
        if created:
            logger.info(
                "session_synthesized",
                requested_id=str(session_id) if session_id else None,
                session_id=str(session.id),
                client_id=str(client.id),
            )
            self._record(ctx, therapist.id, "session", session.id, requested_id=session_id)
        return session

    # -------------------------------------------------------------------------
    # Bounded resolution loop
    # -------------------------------------------------------------------------

    async def _get_or_create(
        self,
        kind: str,
        lookup: Callable[[Any], Awaitable[Any]],
        create: Callable[[], Awaitable[StoreResult]],
    ) -> tuple[Any, bool]:
        """
        Resolve a record, inserting it at most once.

        Returns:
            (record, created) where created is True if this call inserted it.
        """
        created = None
        insert_attempted = False

        for attempt in range(1, MAX_PROVISION_ATTEMPTS + 1):
            found = await lookup(created)
            if found is not None:
                return found, created is not None and found.id == created.id

            if created is not None:
                logger.warning("stale_read_after_provision", kind=kind, record_id=str(created.id))
                return created, True

            if insert_attempted:
                break

            insert_attempted = True
            result = await create()
            if result.error is None:
                created = result.data
            elif isinstance(result.error, DuplicateKey):
                logger.info("provision_conflict_requery", kind=kind, attempt=attempt)
            elif isinstance(result.error, StoreUnavailable):
                raise result.error
            else:
                raise ProvisioningError(f"Could not create {kind}: {result.error}") from result.error

        if created is not None:
            return created, True
        raise ProvisioningError(f"Could not resolve {kind} after {MAX_PROVISION_ATTEMPTS} attempts")

    def _unwrap(self, result: StoreResult, kind: str) -> Any:
        if result.error is None:
            return result.data
        if isinstance(result.error, _UNRESOLVED):
            return None
        if isinstance(result.error, StoreUnavailable):
            raise result.error
        raise ProvisioningError(f"Could not look up {kind}: {result.error}") from result.error

    def _record(self, ctx: PrincipalContext, therapist_id: Any, resource_type: str, resource_id: Any, **details: Any) -> None:
        if self._audit is None:
            return
        try:
            self._audit.log_provisioned(
                principal_id=ctx.principal_id,
                user_id=therapist_id,
                resource_type=resource_type,
                resource_id=resource_id,
                details={k: str(v) for k, v in details.items() if v is not None},
            )
        except Exception as e:
            logger.warning("audit_write_failed", resource_type=resource_type, error=str(e))
