import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from panelhub.database.panel_repository import get_repository
from panelhub.middleware.auth_middleware import get_current_user
from panelhub.models.auth import Principal, UserRole
from tests.fakes import InMemoryPanelRepository


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def repo():
    return InMemoryPanelRepository()


@pytest.fixture
def contest_window():
    now = datetime.now(timezone.utc)
    return now - timedelta(days=1), now + timedelta(days=6)


class ApiClient:
    """TestClient wrapper that swaps the caller's identity between requests"""

    def __init__(self, app, repo):
        self.repo = repo
        self.principal = None
        app.dependency_overrides[get_repository] = lambda: repo
        app.dependency_overrides[get_current_user] = lambda: self.principal
        self.http = TestClient(app)

    def as_user(self, user_id: str, role: UserRole = UserRole.PANELIST) -> "ApiClient":
        run(self.repo.create_user(user_id, f"{user_id}@example.com", role))
        self.principal = Principal(id=user_id, email=f"{user_id}@example.com", role=role)
        return self


@pytest.fixture
def api(repo):
    from main import app
    client = ApiClient(app, repo)
    yield client
    app.dependency_overrides.clear()
