"""
Pytest configuration and fixtures for PsyPlex tests.
"""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from psyplex.models.base import Base, get_engine, get_session_factory  # noqa: E402
from psyplex.services.principal import PrincipalContext  # noqa: E402
from psyplex.store.router import StoreConnector  # noqa: E402

# Import all models to register with Base.metadata
import psyplex.models  # noqa: E402, F401


# Change to project root for tests that reference relative paths
@pytest.fixture(autouse=True)
def change_to_project_root():
    """Change to project root directory for all tests."""
    original_dir = os.getcwd()
    project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    os.chdir(project_root)
    yield
    os.chdir(original_dir)


# =============================================================================
# Database fixtures
# =============================================================================

@pytest.fixture()
def engine():
    """In-memory SQLite engine (shared connection, FKs on) with all tables."""
    eng = get_engine("sqlite://")
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def sf(engine):
    """Session factory bound to the in-memory engine."""
    return get_session_factory(engine)


@pytest.fixture()
def connector(sf):
    """Connector with both tiers configured against the same database."""
    return StoreConnector(sf, sf)


@pytest.fixture()
def restricted_only_connector(sf):
    """Connector whose privileged credential is not configured."""
    return StoreConnector(sf, None)


# =============================================================================
# Principal fixtures
# =============================================================================

@pytest.fixture()
def make_ctx():
    """Factory for PrincipalContext values."""
    def _make(principal_id: str = "principal-alice", expires_in: timedelta = timedelta(hours=1), **kwargs):
        return PrincipalContext(
            principal_id=principal_id,
            access_token=f"token-{principal_id}",
            expires_at=datetime.now(timezone.utc) + expires_in,
            **kwargs,
        )
    return _make


@pytest.fixture()
def ctx(make_ctx):
    return make_ctx("principal-alice", full_name="Alice Moreno")


@pytest.fixture()
def other_ctx(make_ctx):
    return make_ctx("principal-bob", full_name="Bob Okafor")
