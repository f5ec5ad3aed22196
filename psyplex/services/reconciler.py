"""
Optimistic collections - in-memory lists kept in step with the store.

An OptimisticCollection holds the front end's view of one list (clients,
sessions). Successful writes are echoed into it immediately; a periodic
task re-fetches the authoritative list and replaces it wholesale.

State machine::

    IDLE -> LOADING -> READY
    IDLE -> LOADING -> ERROR -> IDLE (reset) or -> LOADING (next refresh)

Conflict rule between echoes and refreshes: every echo/discard is stamped
with a generation number. A refresh remembers the generation it started
at; local changes made before that point are superseded by the fetched
list, local changes made while the fetch was in flight are re-applied on
top of it.
"""

import asyncio
import contextlib
import os
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Hashable, Optional, TypeVar

import structlog

from psyplex.services.principal import PrincipalContext, PrincipalResolver

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_REFRESH_INTERVAL = 30.0

_UPSERT = "upsert"
_DISCARD = "discard"


class CollectionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


def refresh_interval_from_env() -> float:
    return float(os.getenv("PSYPLEX_REFRESH_INTERVAL", str(DEFAULT_REFRESH_INTERVAL)))


class OptimisticCollection(Generic[T]):
    """
    In-memory collection with optimistic echo and periodic refresh.

    Args:
        name: Collection name for logs.
        fetch: Coroutine returning the authoritative list for a principal.
        resolver: Refreshes the credential before every fetch.
        key: Identity of an item. Defaults to its ``id`` attribute.
        refresh_interval: Seconds between periodic refreshes. Defaults to
            PSYPLEX_REFRESH_INTERVAL (30).
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[PrincipalContext], Awaitable[list[T]]],
        resolver: PrincipalResolver,
        key: Callable[[T], Hashable] = lambda item: item.id,
        refresh_interval: Optional[float] = None,
    ) -> None:
        self.name = name
        self._fetch = fetch
        self._resolver = resolver
        self._key = key
        self.refresh_interval = refresh_interval if refresh_interval is not None else refresh_interval_from_env()

        self.state = CollectionState.IDLE
        self.error: Optional[Exception] = None
        self._items: dict[Hashable, T] = {}
        self._generation = 0
        self._pending: list[tuple[int, str, Hashable, Optional[T]]] = []
        self._refreshing = False
        self._task: Optional[asyncio.Task] = None

    @property
    def items(self) -> list[T]:
        return list(self._items.values())

    def get(self, item_id: Hashable) -> Optional[T]:
        return self._items.get(item_id)

    # -------------------------------------------------------------------------
    # Authoritative refresh
    # -------------------------------------------------------------------------

    async def load(self) -> bool:
        """First load; same as refresh."""
        return await self.refresh()

    async def refresh(self) -> bool:
        """
        Re-fetch the authoritative list and replace the collection.

        A refresh already in flight makes this a no-op. Failures move a
        loading collection to ERROR; a READY collection keeps its items.

        Returns:
            True if the collection was replaced.
        """
        if self._refreshing:
            return False

        self._refreshing = True
        started_at = self._generation
        if self.state is not CollectionState.READY:
            self.state = CollectionState.LOADING

        try:
            ctx = await self._resolver.resolve()
            fetched = await self._fetch(ctx)
        except Exception as e:
            logger.warning("collection_refresh_failed", collection=self.name, error=str(e))
            self.error = e
            if self.state is CollectionState.LOADING:
                self.state = CollectionState.ERROR
            self._pending = []
            return False
        finally:
            self._refreshing = False

        items = {self._key(item): item for item in fetched}
        pending = [p for p in self._pending if p[0] > started_at]
        self._pending = []
        for _, op, item_key, item in pending:
            if op == _UPSERT:
                items[item_key] = item
            else:
                items.pop(item_key, None)

        self._items = items
        self.state = CollectionState.READY
        self.error = None
        logger.debug(
            "collection_refreshed",
            collection=self.name,
            count=len(items),
            reapplied=len(pending),
        )
        return True

    def reset(self) -> None:
        """Return an errored collection to IDLE so it can be loaded again."""
        if self.state is CollectionState.ERROR:
            self.state = CollectionState.IDLE
            self.error = None

    # -------------------------------------------------------------------------
    # Optimistic echo
    # -------------------------------------------------------------------------

    def echo(self, item: T) -> bool:
        """Insert or replace ``item`` locally. Only applies when READY."""
        if self.state is not CollectionState.READY:
            return False
        item_key = self._key(item)
        self._record(_UPSERT, item_key, item)
        self._items[item_key] = item
        return True

    def discard(self, item_id: Hashable) -> bool:
        """Remove an item locally. Only applies when READY."""
        if self.state is not CollectionState.READY:
            return False
        self._record(_DISCARD, item_id, None)
        self._items.pop(item_id, None)
        return True

    def _record(self, op: str, item_key: Hashable, item: Optional[T]) -> None:
        self._generation += 1
        # Only a refresh already in flight can overwrite a local change
        if self._refreshing:
            self._pending.append((self._generation, op, item_key, item))

    # -------------------------------------------------------------------------
    # Periodic task
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start refreshing every ``refresh_interval`` seconds on the running loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run_periodic())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run_periodic(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self.refresh_interval)


# =============================================================================
# Collections over PracticeService
# =============================================================================

def client_collection(service: Any, resolver: PrincipalResolver, **kwargs: Any) -> OptimisticCollection:
    """Clients of the resolved principal."""
    return OptimisticCollection("clients", service.list_clients, resolver, **kwargs)


def session_collection(
    service: Any,
    resolver: PrincipalResolver,
    client_id: Any = None,
    upcoming: bool = False,
    **kwargs: Any,
) -> OptimisticCollection:
    """Sessions of the resolved principal, optionally for one client."""

    async def fetch(ctx: PrincipalContext) -> list:
        return await service.list_sessions(ctx, client_id=client_id, upcoming=upcoming)

    return OptimisticCollection("sessions", fetch, resolver, **kwargs)
