"""
PrincipalResolver Tests

Tests verify:
1. A fresh credential is used as-is
2. A credential close to expiry is refreshed before use
3. A failed refresh falls back to the current token only while it is valid
4. No session at all raises AuthenticationRequired
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from psyplex.errors import AuthenticationRequired
from psyplex.services.principal import (
    TOKEN_REFRESH_MARGIN,
    AuthSession,
    PrincipalContext,
    PrincipalResolver,
    StaticAuthProvider,
)


def _session(expires_in: timedelta, principal_id: str = "principal-alice") -> AuthSession:
    return AuthSession(
        principal_id=principal_id,
        access_token="current-token",
        expires_at=datetime.now(timezone.utc) + expires_in,
    )


class TestPrincipalContext:

    def test_expires_within(self):
        now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        ctx = PrincipalContext("p", "t", now + timedelta(minutes=3))

        assert ctx.expires_within(TOKEN_REFRESH_MARGIN, now=now) is True
        assert ctx.expires_within(timedelta(minutes=1), now=now) is False

    def test_naive_expiry_is_treated_as_utc(self):
        session = AuthSession(principal_id="p", access_token="t", expires_at=datetime(2030, 1, 1))

        assert session.to_context().expires_at.tzinfo == timezone.utc


class TestPrincipalResolver:

    @pytest.mark.asyncio
    async def test_fresh_credential_is_not_refreshed(self):
        provider = StaticAuthProvider("principal-alice", access_token="tok", full_name="Alice Moreno")

        ctx = await PrincipalResolver(provider).resolve()

        assert ctx.principal_id == "principal-alice"
        assert ctx.access_token == "tok"
        assert ctx.full_name == "Alice Moreno"
        assert provider.refresh_count == 0

    @pytest.mark.asyncio
    async def test_near_expiry_credential_is_refreshed(self):
        provider = StaticAuthProvider(
            "principal-alice",
            access_token="old",
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=2),
        )

        ctx = await PrincipalResolver(provider).resolve()

        assert provider.refresh_count == 1
        assert ctx.access_token == "principal-alice-refreshed-1"
        assert not ctx.expires_within(TOKEN_REFRESH_MARGIN)

    @pytest.mark.asyncio
    async def test_custom_refresh_margin(self):
        provider = StaticAuthProvider("principal-alice", ttl=timedelta(minutes=20))

        await PrincipalResolver(provider, refresh_margin=timedelta(minutes=30)).resolve()

        assert provider.refresh_count == 1

    @pytest.mark.asyncio
    async def test_no_session_raises(self):
        with pytest.raises(AuthenticationRequired):
            await PrincipalResolver(StaticAuthProvider(None)).resolve()

    @pytest.mark.asyncio
    async def test_no_session_but_refresh_succeeds(self):
        provider = AsyncMock()
        provider.get_session.return_value = None
        provider.refresh_session.return_value = _session(timedelta(hours=1))

        ctx = await PrincipalResolver(provider).resolve()

        assert ctx.principal_id == "principal-alice"

    @pytest.mark.asyncio
    async def test_failed_refresh_uses_still_valid_token(self):
        provider = AsyncMock()
        provider.get_session.return_value = _session(timedelta(minutes=2))
        provider.refresh_session.return_value = None

        ctx = await PrincipalResolver(provider).resolve()

        assert ctx.access_token == "current-token"
        provider.refresh_session.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refresh_error_uses_still_valid_token(self):
        provider = AsyncMock()
        provider.get_session.return_value = _session(timedelta(minutes=2))
        provider.refresh_session.side_effect = ConnectionError("auth provider unreachable")

        ctx = await PrincipalResolver(provider).resolve()

        assert ctx.access_token == "current-token"

    @pytest.mark.asyncio
    async def test_expired_token_without_refresh_raises(self):
        provider = AsyncMock()
        provider.get_session.return_value = _session(timedelta(minutes=-1))
        provider.refresh_session.return_value = None

        with pytest.raises(AuthenticationRequired):
            await PrincipalResolver(provider).resolve()
