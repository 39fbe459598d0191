# web_api/tests/conftest.py
"""Pytest fixtures for web API tests.

Routes are mounted on a bare FastAPI app with authentication overridden, so
tests exercise request parsing and error mapping without a database.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core.capabilities import get_capability_checker
from core.sync import get_reconciler
from web_api.auth import get_current_user, require_admin

ADMIN_USER = {"sub": "1", "user_id": 1, "username": "admin"}


class AllowAll:
    async def has_capability(self, capability, course_id, user_id):
        return True


@pytest.fixture
def reconciler():
    """Reconciler stand-in whose async methods are AsyncMocks."""
    mock = MagicMock()
    mock.reconcile = AsyncMock()
    mock.list_exclusions = AsyncMock(return_value=set())
    mock.set_exclusions = AsyncMock(return_value=(set(), set()))
    mock.add_exclusion = AsyncMock(return_value=True)
    mock.remove_exclusion = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def make_client(reconciler):
    """Build a TestClient for one router, logged in as an admin."""

    def _make(router, checker=None) -> TestClient:
        app = FastAPI()
        app.include_router(router)
        app.dependency_overrides[get_current_user] = lambda: ADMIN_USER
        app.dependency_overrides[require_admin] = lambda: ADMIN_USER
        app.dependency_overrides[get_capability_checker] = lambda: checker or AllowAll()
        app.dependency_overrides[get_reconciler] = lambda: reconciler
        return TestClient(app)

    return _make
