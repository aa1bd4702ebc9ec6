"""Shared fixtures: an in-memory backend with the sample menu, and HTTP clients."""

import pytest
from fastapi.testclient import TestClient

from oona.core.config import get_settings
from oona.deps import get_backend
from oona.models import ORDERS_TABLE
from oona.schemas import MenuItem
from oona.services.backend import MockBackendService
from oona.state.sessions import SessionRegistry


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def backend():
    """Deterministic mock: no latency, no simulated failures."""
    return MockBackendService(failure_rate=0.0, public_base_url="http://testserver")


@pytest.fixture
def menu(backend) -> dict[str, MenuItem]:
    """Seed the sample menu and index it by item name."""
    rows = backend.seed_menu()
    return {row["name"]: MenuItem.model_validate(row) for row in rows}


@pytest.fixture
def make_order(backend):
    """Insert an order row directly, as if another table had checked out."""

    async def _make(table_number=1, total=100, status="pending", items=None, **extra):
        row = {
            "table_number": table_number,
            "items": items or [{"id": "x", "name": "Dish", "price": total, "quantity": 1}],
            "total": total,
            "status": status,
            "customer_notes": None,
            **extra,
        }
        result = await backend.insert(ORDERS_TABLE, [row])
        assert result.success
        return result.data[0]

    return _make


@pytest.fixture
def app(backend, menu):
    from oona.main import app as application

    application.state.sessions = SessionRegistry(backend)
    application.dependency_overrides[get_backend] = lambda: backend
    yield application
    application.dependency_overrides.clear()
    del application.state.sessions


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_client(client, settings):
    response = client.post(
        "/admin/login",
        data={"email": settings.admin_email, "password": settings.admin_password},
        follow_redirects=False,
    )
    assert response.status_code == 303
    return client
