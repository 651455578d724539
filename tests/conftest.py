"""
Global pytest configuration and fixtures for the OrgGuard API test suite.
"""

import os
from typing import Any, Callable, Dict, Generator

import jwt
import pytest
from fastapi.testclient import TestClient

# Set test environment variables before settings are loaded
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only-32-chars"
os.environ["STORE_BACKEND"] = "memory"

from orgguard.core.database import (  # noqa: E402
    get_membership_store,
    get_organization_store,
    get_principal_resolver,
    get_user_store,
)
from orgguard.domains.auth.service import JwtSessionResolver  # noqa: E402
from orgguard.domains.auth.store import InMemoryUserStore  # noqa: E402
from orgguard.domains.organizations.store import (  # noqa: E402
    InMemoryOrganizationStore,
)
from orgguard.main import app  # noqa: E402

# Import fixtures from fixture modules
from tests.fixtures.auth_fixtures import *  # noqa: F403, F401, E402
from tests.fixtures.organization_fixtures import *  # noqa: F403, F401, E402


@pytest.fixture
def test_jwt_secret() -> str:
    """JWT secret for generating test tokens."""
    return "test-secret-key-for-testing-only-32-chars"


@pytest.fixture
def make_token(test_jwt_secret: str) -> Callable[..., str]:
    """Factory for session tokens as minted by the auth service."""

    def _make_token(user_id: str, **claims: Any) -> str:
        payload: Dict[str, Any] = {
            "sub": user_id,
            "session_id": f"session-{user_id}",
            "iat": 1700000000,
        }
        payload.update(claims)
        return jwt.encode(payload, test_jwt_secret, algorithm="HS256")

    return _make_token


@pytest.fixture
def auth_headers(make_token: Callable[..., str]) -> Callable[[str], Dict[str, str]]:
    """Authorization headers for a user ID."""

    def _auth_headers(user_id: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _auth_headers


@pytest.fixture
def client(
    organization_store: InMemoryOrganizationStore,
    user_store: InMemoryUserStore,
    test_jwt_secret: str,
) -> Generator[TestClient, None, None]:
    """FastAPI test client wired to in-memory stores."""
    resolver = JwtSessionResolver(user_store, jwt_secret=test_jwt_secret)

    async def _organization_store() -> InMemoryOrganizationStore:
        return organization_store

    async def _user_store() -> InMemoryUserStore:
        return user_store

    async def _resolver() -> JwtSessionResolver:
        return resolver

    app.dependency_overrides[get_organization_store] = _organization_store
    app.dependency_overrides[get_membership_store] = _organization_store
    app.dependency_overrides[get_user_store] = _user_store
    app.dependency_overrides[get_principal_resolver] = _resolver

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
