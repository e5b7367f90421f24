import asyncio

import pytest
from fastapi.testclient import TestClient

from studybuddy.core.dependencies import get_current_user_id
from studybuddy.database.supabase_client import get_supabase
from studybuddy.main import app
from studybuddy.modules.auth import service as auth_service
from tests.fakes import FakeSupabase


def run(coro):
    return asyncio.run(coro)


class AuthAs:
    """Switch the authenticated user between requests"""

    def __init__(self):
        self.user = {"id": "u1", "email": "u1@example.com"}

    def __call__(self, user_id: str):
        self.user = {"id": user_id, "email": f"{user_id}@example.com"}


@pytest.fixture(autouse=True)
def clear_auth_cache():
    auth_service._AUTH_USER_CACHE.clear()
    yield
    auth_service._AUTH_USER_CACHE.clear()


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def auth_as():
    return AuthAs()


@pytest.fixture
def client(fake_supabase, auth_as):
    app.dependency_overrides[get_supabase] = lambda: fake_supabase
    app.dependency_overrides[get_current_user_id] = lambda: auth_as.user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
