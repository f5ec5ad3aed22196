"""
AccessRouter Tests

Tests verify:
1. Restricted credential is tried first
2. PolicyDenied on the restricted attempt is retried on the privileged store
3. A privileged hint skips the restricted attempt
4. Missing privileged credential yields StoreUnavailable, never a retry loop
5. Fallback results are indistinguishable from a privileged-only call
"""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from psyplex.errors import NotFound, PolicyDenied, StoreUnavailable
from psyplex.models.client import Client
from psyplex.models.therapist import Therapist
from psyplex.store.adapters import PracticeAdapters
from psyplex.store.record_store import AccessTier, RecordStore, StoreResult
from psyplex.store.router import AccessRouter, StoreConnector


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture()
def restricted(sf):
    return RecordStore(sf, AccessTier.RESTRICTED, "principal-alice")


@pytest.fixture()
def privileged(sf):
    return RecordStore(sf, AccessTier.PRIVILEGED)


@pytest.fixture()
def bob_client(sf):
    """A client owned by someone other than principal-alice."""
    therapist_id, client_id = uuid4(), uuid4()
    db = sf()
    db.add(Therapist(id=therapist_id, principal_id="principal-bob"))
    db.flush()
    db.add(Client(id=client_id, therapist_id=therapist_id, first_name="Ben", last_name="Reyes"))
    db.commit()
    db.close()
    return client_id


# =============================================================================
# Routing with stub operations
# =============================================================================

class TestRouting:

    @pytest.mark.asyncio
    async def test_restricted_result_returned_as_is(self, restricted, privileged):
        router = AccessRouter(restricted, privileged)
        operation = AsyncMock(return_value=StoreResult("restricted-data", None))

        result = await router.execute(operation)

        assert result.data == "restricted-data"
        operation.assert_awaited_once_with(restricted)

    @pytest.mark.asyncio
    async def test_policy_denied_falls_back_to_privileged(self, restricted, privileged):
        router = AccessRouter(restricted, privileged)
        operation = AsyncMock(side_effect=[
            StoreResult(None, PolicyDenied()),
            StoreResult("privileged-data", None),
        ])

        result = await router.execute(operation)

        assert result == StoreResult("privileged-data", None)
        assert [c.args[0] for c in operation.await_args_list] == [restricted, privileged]

    @pytest.mark.asyncio
    async def test_other_errors_do_not_fall_back(self, restricted, privileged):
        router = AccessRouter(restricted, privileged)
        operation = AsyncMock(return_value=StoreResult(None, NotFound()))

        result = await router.execute(operation)

        assert isinstance(result.error, NotFound)
        operation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_privileged_hint_skips_restricted(self, restricted, privileged):
        router = AccessRouter(restricted, privileged)
        operation = AsyncMock(return_value=StoreResult("privileged-data", None))

        await router.execute(operation, AccessTier.PRIVILEGED)

        operation.assert_awaited_once_with(privileged)

    @pytest.mark.asyncio
    async def test_fallback_without_privileged_credential(self, restricted):
        router = AccessRouter(restricted, None)
        operation = AsyncMock(return_value=StoreResult(None, PolicyDenied()))

        result = await router.execute(operation)

        assert isinstance(result.error, StoreUnavailable)
        operation.assert_awaited_once_with(restricted)

    @pytest.mark.asyncio
    async def test_privileged_hint_without_privileged_credential(self, restricted):
        router = AccessRouter(restricted, None)
        operation = AsyncMock()

        result = await router.execute(operation, AccessTier.PRIVILEGED)

        assert isinstance(result.error, StoreUnavailable)
        operation.assert_not_awaited()


# =============================================================================
# Routing against the database
# =============================================================================

class TestFallbackTransparency:

    @pytest.mark.asyncio
    async def test_denied_update_matches_privileged_only_update(self, restricted, privileged, bob_client):
        router = AccessRouter(restricted, privileged)

        via_fallback = await router.execute(
            lambda store: store.update(Client, bob_client, {"first_name": "Bea"})
        )
        via_privileged = await router.execute(
            lambda store: store.update(Client, bob_client, {"first_name": "Bea"}),
            AccessTier.PRIVILEGED,
        )

        assert via_fallback.error is None
        assert via_privileged.error is None
        assert via_fallback.data.id == via_privileged.data.id
        assert via_fallback.data.first_name == via_privileged.data.first_name == "Bea"


class TestStoreConnector:

    def test_router_for_principal(self, sf):
        router = StoreConnector(sf, sf).router_for("principal-alice")

        assert router.principal_id == "principal-alice"
        assert router.privileged_configured is True

    def test_privileged_not_configured(self, sf):
        router = StoreConnector(sf, None).router_for("principal-alice")

        assert router.privileged_configured is False

    @pytest.mark.asyncio
    async def test_adapters_share_router(self, connector):
        adapters = PracticeAdapters(connector.router_for("principal-alice"))

        result = await adapters.therapists.find_by_principal("principal-alice")

        assert result == StoreResult([], None)
        assert adapters.clients._router is adapters.router

    def test_from_env_without_privileged_url(self, monkeypatch):
        monkeypatch.setattr("psyplex.models.base.PRIVILEGED_DATABASE_URL", None)

        connector = StoreConnector.from_env()

        assert connector.router_for("principal-alice").privileged_configured is False
