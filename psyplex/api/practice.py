"""
Practice API Endpoints

Thin HTTP surface over PracticeService:
- Create, list, get and delete clients
- Create and list sessions
- Save session notes

The caller is identified by ``Authorization: Bearer <access token>``. The
token is handed to the configured auth provider factory (Cognito by
default) and resolved into a PrincipalContext before every call.
"""

from typing import Callable, Optional

import structlog
from fastapi import APIRouter, Header, HTTPException, Query
from pydantic import BaseModel

from psyplex.errors import (
    AuthenticationRequired,
    PracticeError,
    RecordNotFound,
    StoreUnavailable,
    ValidationError,
)
from psyplex.models.base import get_session_factory
from psyplex.models.client import ClientCreate, ClientRead
from psyplex.models.client_profile import ClientProfileCreate
from psyplex.models.session import SessionCreate, SessionRead
from psyplex.models.session_note import SessionNoteCreate, SessionNoteRead
from psyplex.services.audit import AuditService
from psyplex.services.cognito_auth import CognitoAuthProvider
from psyplex.services.practice import ClientWithProfile, DeleteResult, PracticeService
from psyplex.services.principal import AuthProvider, PrincipalContext, PrincipalResolver
from psyplex.store.router import StoreConnector

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["practice"])


# =============================================================================
# Module-level services (for dependency injection)
# =============================================================================

_practice_service: Optional[PracticeService] = None
_auth_provider_factory: Optional[Callable[[str], AuthProvider]] = None


def get_practice_service() -> PracticeService:
    """Get or create practice service."""
    global _practice_service
    if _practice_service is None:
        _practice_service = PracticeService(
            StoreConnector.from_env(),
            AuditService(get_session_factory()),
        )
    return _practice_service


def set_practice_service(service: Optional[PracticeService]) -> None:
    """Set practice service (for testing)."""
    global _practice_service
    _practice_service = service


def get_auth_provider_factory() -> Callable[[str], AuthProvider]:
    """Get the token -> AuthProvider factory (Cognito unless overridden)."""
    if _auth_provider_factory is None:
        return lambda token: CognitoAuthProvider(access_token=token)
    return _auth_provider_factory


def set_auth_provider_factory(factory: Optional[Callable[[str], AuthProvider]]) -> None:
    """Set auth provider factory (for testing)."""
    global _auth_provider_factory
    _auth_provider_factory = factory


# =============================================================================
# Request Models
# =============================================================================

class CreateClientRequest(BaseModel):
    """Client plus optional intake profile."""
    client: ClientCreate
    profile: Optional[ClientProfileCreate] = None


# =============================================================================
# Helpers
# =============================================================================

async def _principal(authorization: Optional[str]) -> PrincipalContext:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Authentication required")

    token = authorization[len("bearer "):].strip()
    provider = get_auth_provider_factory()(token)
    try:
        return await PrincipalResolver(provider).resolve()
    except AuthenticationRequired as e:
        raise HTTPException(status_code=401, detail=str(e))


def _http_error(e: Exception) -> HTTPException:
    """Map practice and store errors onto HTTP status codes."""
    if isinstance(e, AuthenticationRequired):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail={"message": str(e), "fields": e.fields})
    if isinstance(e, RecordNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, StoreUnavailable):
        return HTTPException(status_code=503, detail="Store unavailable")
    logger.error("practice_request_failed", error_type=type(e).__name__)
    return HTTPException(status_code=500, detail="Operation failed")


# =============================================================================
# Clients
# =============================================================================

@router.post("/clients", response_model=ClientRead, status_code=201)
async def create_client(
    data: CreateClientRequest,
    authorization: Optional[str] = Header(None),
) -> ClientRead:
    """Create a client owned by the caller's therapist record."""
    ctx = await _principal(authorization)
    service = get_practice_service()

    try:
        return await service.create_client(ctx, data.client, data.profile)
    except (PracticeError, StoreUnavailable) as e:
        raise _http_error(e)


@router.get("/clients", response_model=list[ClientWithProfile])
async def list_clients(
    authorization: Optional[str] = Header(None),
) -> list[ClientWithProfile]:
    """List the caller's clients with profiles and session summaries."""
    ctx = await _principal(authorization)
    service = get_practice_service()

    try:
        return await service.list_clients(ctx)
    except (PracticeError, StoreUnavailable) as e:
        raise _http_error(e)


@router.get("/clients/{client_id}", response_model=ClientWithProfile)
async def get_client(
    client_id: str,
    authorization: Optional[str] = Header(None),
) -> ClientWithProfile:
    ctx = await _principal(authorization)
    service = get_practice_service()

    try:
        return await service.get_client(ctx, client_id)
    except (PracticeError, StoreUnavailable) as e:
        raise _http_error(e)


@router.delete("/clients/{client_id}", response_model=DeleteResult)
async def delete_client(
    client_id: str,
    authorization: Optional[str] = Header(None),
) -> DeleteResult:
    """Delete a client and its profile."""
    ctx = await _principal(authorization)
    service = get_practice_service()

    try:
        result = await service.delete_client(ctx, client_id)
    except (PracticeError, StoreUnavailable) as e:
        raise _http_error(e)

    if not result.success:
        raise HTTPException(status_code=404, detail=f"client {client_id} not found")
    return result


# =============================================================================
# Sessions and notes
# =============================================================================

@router.post("/sessions", response_model=SessionRead, status_code=201)
async def create_session(
    data: SessionCreate,
    authorization: Optional[str] = Header(None),
) -> SessionRead:
    ctx = await _principal(authorization)
    service = get_practice_service()

    try:
        return await service.create_session(ctx, data)
    except (PracticeError, StoreUnavailable) as e:
        raise _http_error(e)


@router.get("/sessions", response_model=list[SessionRead])
async def list_sessions(
    client_id: Optional[str] = Query(None, description="Only this client's sessions"),
    upcoming: bool = Query(False, description="Only future sessions, soonest first"),
    authorization: Optional[str] = Header(None),
) -> list[SessionRead]:
    ctx = await _principal(authorization)
    service = get_practice_service()

    try:
        return await service.list_sessions(ctx, client_id=client_id, upcoming=upcoming)
    except (PracticeError, StoreUnavailable) as e:
        raise _http_error(e)


@router.post("/session-notes", response_model=SessionNoteRead, status_code=201)
async def create_session_note(
    data: SessionNoteCreate,
    authorization: Optional[str] = Header(None),
) -> SessionNoteRead:
    """
    Save a session note.

    Missing or foreign client/session references are healed server-side;
    the returned note carries the ids actually used.
    """
    ctx = await _principal(authorization)
    service = get_practice_service()

    try:
        return await service.create_session_note(ctx, data)
    except (PracticeError, StoreUnavailable) as e:
        raise _http_error(e)
