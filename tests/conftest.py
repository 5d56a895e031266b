from __future__ import annotations

import fakeredis
import pytest
from fastapi.testclient import TestClient

from auth_service.config import Settings
from auth_service.domain.service import AuthService
from auth_service.main import create_app
from auth_service.repository import InMemoryAccountRepository, RedisAccountRepository


@pytest.fixture
def settings() -> Settings:
    """Fast bcrypt cost and a fixed signing secret for tests."""
    return Settings(bcrypt_rounds=4, jwt_secret="test-secret", jwt_issuer="auth-service-test")


@pytest.fixture(params=["memory", "redis"])
def repository(request):
    """Every service and API flow runs against each store backend."""
    if request.param == "memory":
        store = InMemoryAccountRepository()
    else:
        store = RedisAccountRepository(
            fakeredis.FakeStrictRedis(server=fakeredis.FakeServer()), key_prefix="test"
        )
    yield store
    store.close()


@pytest.fixture
def service(repository, settings) -> AuthService:
    return AuthService(repository, settings)


@pytest.fixture
def api_client(repository, settings):
    """Provide a FastAPI test client with an isolated store."""
    app = create_app(settings, repository=repository)
    with TestClient(app) as client:
        yield client
