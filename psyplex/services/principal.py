"""
Principal resolution - who an orchestrated operation runs on behalf of.

Every orchestrated call takes an explicit PrincipalContext. The
PrincipalResolver produces one from an AuthProvider, refreshing the
credential first when it is within TOKEN_REFRESH_MARGIN of expiry so that
restricted reads never run with a stale token (which looks exactly like
"no rows" under row-level security).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import structlog
from pydantic import BaseModel

from psyplex.errors import AuthenticationRequired

logger = structlog.get_logger(__name__)

TOKEN_REFRESH_MARGIN = timedelta(minutes=5)


@dataclass(frozen=True)
class PrincipalContext:
    """The authenticated principal and its current credential."""
    principal_id: str
    access_token: str
    expires_at: datetime
    email: Optional[str] = None
    full_name: Optional[str] = None

    def expires_within(self, margin: timedelta, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.expires_at - now < margin


class AuthSession(BaseModel):
    """Session as reported by an auth provider."""
    principal_id: str
    access_token: str
    expires_at: datetime
    refresh_token: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None

    def to_context(self) -> PrincipalContext:
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return PrincipalContext(
            principal_id=self.principal_id,
            access_token=self.access_token,
            expires_at=expires_at,
            email=self.email,
            full_name=self.full_name,
        )


class AuthProvider(Protocol):
    """Minimal interface every auth provider exposes."""

    async def get_session(self) -> Optional[AuthSession]: ...
    async def refresh_session(self) -> Optional[AuthSession]: ...


class StaticAuthProvider:
    """
    Fixed-session provider for development and tests.

    NOT for production. ``refresh_session`` extends the current session by
    ``ttl`` and counts how often it was asked to.
    """

    def __init__(
        self,
        principal_id: Optional[str],
        access_token: str = "dev-token",
        ttl: timedelta = timedelta(hours=1),
        expires_at: Optional[datetime] = None,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> None:
        self._ttl = ttl
        self.refresh_count = 0
        self._session: Optional[AuthSession] = None
        if principal_id is not None:
            self._session = AuthSession(
                principal_id=principal_id,
                access_token=access_token,
                expires_at=expires_at or datetime.now(timezone.utc) + ttl,
                email=email,
                full_name=full_name,
            )

    async def get_session(self) -> Optional[AuthSession]:
        return self._session

    async def refresh_session(self) -> Optional[AuthSession]:
        if self._session is None:
            return None
        self.refresh_count += 1
        self._session = self._session.model_copy(
            update={
                "access_token": f"{self._session.principal_id}-refreshed-{self.refresh_count}",
                "expires_at": datetime.now(timezone.utc) + self._ttl,
            }
        )
        return self._session


class PrincipalResolver:
    """
    Resolves the current PrincipalContext from an AuthProvider.

    Args:
        provider: Source of the current auth session.
        refresh_margin: Refresh when the credential expires sooner than this.
    """

    def __init__(self, provider: AuthProvider, refresh_margin: timedelta = TOKEN_REFRESH_MARGIN) -> None:
        self._provider = provider
        self._refresh_margin = refresh_margin

    async def resolve(self) -> PrincipalContext:
        """
        Return the current principal, refreshing its credential if near expiry.

        Raises:
            AuthenticationRequired: No session exists, or the credential has
                expired and could not be refreshed.
        """
        session = await self._provider.get_session()
        if session is None:
            session = await self._try_refresh(None)
            if session is None:
                raise AuthenticationRequired("Authentication required")
            return session.to_context()

        context = session.to_context()
        if not context.expires_within(self._refresh_margin):
            return context

        refreshed = await self._try_refresh(context)
        if refreshed is not None:
            return refreshed.to_context()

        if context.expires_within(timedelta(0)):
            raise AuthenticationRequired("Credential expired and could not be refreshed")

        logger.warning(
            "credential_refresh_failed_using_current",
            principal_id=context.principal_id,
            expires_at=context.expires_at.isoformat(),
        )
        return context

    async def _try_refresh(self, context: Optional[PrincipalContext]) -> Optional[AuthSession]:
        try:
            session = await self._provider.refresh_session()
        except Exception as e:
            logger.warning(
                "credential_refresh_error",
                principal_id=context.principal_id if context else None,
                error=str(e),
            )
            return None

        if session is not None:
            logger.info("credential_refreshed", principal_id=session.principal_id)
        return session
