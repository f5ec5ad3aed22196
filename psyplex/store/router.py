"""
AccessRouter - Chooses the credential tier a store operation runs under.

The router knows nothing about the operation it is running. It tries the
restricted store first, and re-issues the same operation on the privileged
store when the restricted attempt is rejected by row-level policy or when
the caller asks for the privileged tier up front.
"""

from typing import Awaitable, Callable, Optional

import structlog

from psyplex.errors import PolicyDenied, StoreUnavailable
from psyplex.models.base import get_privileged_session_factory, get_session_factory
from psyplex.store.record_store import AccessTier, RecordStore, StoreResult

logger = structlog.get_logger(__name__)

StoreOperation = Callable[[RecordStore], Awaitable[StoreResult]]


class AccessRouter:
    """
    Dual-credential router for one principal.

    Args:
        restricted: Store scoped to the principal by row-level policy.
        privileged: Policy-bypassing store, or None when the privileged
            credential is not configured.
    """

    def __init__(self, restricted: RecordStore, privileged: Optional[RecordStore] = None) -> None:
        self._restricted = restricted
        self._privileged = privileged

    @property
    def principal_id(self) -> Optional[str]:
        return self._restricted.principal_id

    @property
    def privileged_configured(self) -> bool:
        return self._privileged is not None

    async def execute(
        self,
        operation: StoreOperation,
        hint: AccessTier = AccessTier.RESTRICTED,
    ) -> StoreResult:
        """
        Run ``operation`` against the appropriate store.

        Args:
            operation: Coroutine function taking a RecordStore.
            hint: PRIVILEGED skips the restricted attempt.

        Returns:
            The StoreResult of the attempt that ran last.
        """
        if hint is AccessTier.PRIVILEGED:
            return await self._run_privileged(operation)

        result = await operation(self._restricted)
        if isinstance(result.error, PolicyDenied):
            logger.info(
                "policy_denied_fallback",
                principal_id=self.principal_id,
                code=result.error.code,
            )
            return await self._run_privileged(operation)
        return result

    async def _run_privileged(self, operation: StoreOperation) -> StoreResult:
        if self._privileged is None:
            logger.error("privileged_credential_missing", principal_id=self.principal_id)
            return StoreResult(None, StoreUnavailable("Privileged credential is not configured"))
        return await operation(self._privileged)


class StoreConnector:
    """
    Builds per-principal AccessRouters from the two tier session factories.

    Args:
        session_factory: Restricted-tier session factory.
        privileged_session_factory: Privileged-tier session factory, or
            None when the privileged credential is not configured.
    """

    def __init__(
        self,
        session_factory: Callable,
        privileged_session_factory: Optional[Callable] = None,
    ) -> None:
        self._session_factory = session_factory
        self._privileged_session_factory = privileged_session_factory

    @classmethod
    def from_env(cls) -> "StoreConnector":
        """Connector for DATABASE_URL / PRIVILEGED_DATABASE_URL."""
        return cls(get_session_factory(), get_privileged_session_factory())

    def router_for(self, principal_id: str) -> AccessRouter:
        restricted = RecordStore(self._session_factory, AccessTier.RESTRICTED, principal_id)
        privileged = None
        if self._privileged_session_factory is not None:
            privileged = RecordStore(self._privileged_session_factory, AccessTier.PRIVILEGED)
        return AccessRouter(restricted, privileged)
