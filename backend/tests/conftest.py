from collections.abc import Generator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_registry
from app.core.pool import PoolRegistry
from app.main import app
from tests.utils.pool import FakePoolFactory

SERVER_VERSION = "PostgreSQL 16.2 on x86_64-pc-linux-gnu"


@pytest.fixture
def pool_factory() -> FakePoolFactory:
    return FakePoolFactory()


@pytest.fixture
def server_probe() -> AsyncMock:
    return AsyncMock(return_value=SERVER_VERSION)


@pytest.fixture
def registry(pool_factory: FakePoolFactory, server_probe: AsyncMock) -> PoolRegistry:
    return PoolRegistry(pool_factory=pool_factory, server_probe=server_probe)


@pytest.fixture
def client(registry: PoolRegistry) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_registry] = lambda: registry
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def connect_body() -> dict[str, object]:
    return {
        "host": "db.internal",
        "port": 5432,
        "database": "app",
        "username": "app_user",
        "password": "s3cret",
    }
