"""
Shared fixtures: a fake database handle that answers queries by SQL fragment,
a mocked push client, and a TestClient factory that injects both.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from rescue_hub.notifications.models import DispatchResult
from tests.helpers import FakeDatabase, make_user


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "test-secret-that-is-long-enough-for-hs256")


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def push_client():
    client = MagicMock()
    client.send_multicast = AsyncMock(
        side_effect=lambda tokens, title, body, data=None: DispatchResult(success_count=len(tokens))
    )
    return client


@pytest.fixture
def reporter():
    return make_user("user", name="Reporter")


@pytest.fixture
def volunteer():
    return make_user("volunteer", name="Volunteer A", fcm_token="volunteer-token")


@pytest.fixture
def admin():
    return make_user("admin", name="Admin")


@pytest.fixture
def client_for(db, push_client):
    """Build a TestClient authenticated as the given user (or anonymous with None)"""
    from main import app
    from rescue_hub.auth.manager import get_current_user
    from rescue_hub.notifications.utils import get_push_client
    from rescue_hub.shared.db import get_db

    def _client(user=None):
        app.dependency_overrides[get_db] = lambda: db
        app.dependency_overrides[get_push_client] = lambda: push_client
        if user is not None:
            app.dependency_overrides[get_current_user] = lambda: user
        else:
            app.dependency_overrides.pop(get_current_user, None)
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()
