"""
Pytest configuration and shared fixtures for the admin client tests.

This file is automatically loaded by pytest and provides shared fixtures
that can be used across all test files.
"""

import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path so tests can import modules without installing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gis_admin.config import AdminSettings  # noqa: E402
from gis_admin.session import AdminSession, PortalSession  # noqa: E402


class RoutedTransport:
    """Fake AdminTransport answering from a per-endpoint routing table.

    A route value may be a JSON-like object, an exception instance (raised),
    or a callable receiving ``(params)`` and returning/raising either.
    Every call is recorded in ``calls`` as ``(method, endpoint, params)``.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls = []
        self.get = AsyncMock(side_effect=self._handler("GET"))
        self.post = AsyncMock(side_effect=self._handler("POST"))
        self.aclose = AsyncMock()

    def _handler(self, method: str) -> Callable:
        async def handle(endpoint, params=None, timeout=None):
            self.calls.append((method, endpoint, params))
            if endpoint not in self.routes:
                raise AssertionError(f"Unexpected {method} {endpoint}")
            route = self.routes[endpoint]
            if callable(route) and not isinstance(route, type):
                route = route(params)
                if hasattr(route, "__await__"):
                    route = await route
            if isinstance(route, BaseException):
                raise route
            return route
        return handle

    def endpoints(self, method: Optional[str] = None):
        return [endpoint for m, endpoint, _ in self.calls if method is None or m == method]


@pytest.fixture
def admin_session():
    return AdminSession(
        environment="test",
        admin_token="admin-token-12345",
        server_admin_url="https://gis.example.com/arcgis/admin",
        elevation_expires=time.time() + 3600,
    )


@pytest.fixture
def portal_session():
    return PortalSession(portal="https://portal.example.com/portal/sharing/rest", token="portal-token")


@pytest.fixture
def fast_settings():
    """Settings with short polling intervals so lifecycle tests run quickly."""
    return AdminSettings(
        poll_interval=0.01,
        service_wait_timeout_ms=2000,
        validate_timeout_ms=2000,
        token_cache_capacity=3,
    )


@pytest.fixture
def make_transport():
    def factory(routes=None):
        return RoutedTransport(routes)
    return factory


@pytest.fixture
def mock_session_store(admin_session):
    store = MagicMock()
    store.get_admin_session.return_value = admin_session
    return store
