"""
Pytest configuration and shared fixtures for the Keycloak PKCE tests.

Provides settings, session fixtures and a fake Keycloak served through
httpx.MockTransport, so no test talks to a real identity provider.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from keycloak_pkce.web_app.config import KeycloakSettings
from keycloak_pkce.web_app.flow import AuthorizationFlow
from keycloak_pkce.web_app.session_store import ServerSession, SessionStore


class FakeKeycloak:
    """
    Minimal stand-in for the Keycloak token and userinfo endpoints.

    Tests tweak the status codes and bodies, then inspect the recorded
    requests.
    """

    def __init__(self):
        self.token_status = 200
        self.token_body: Any = {
            "access_token": "mock_access_token_1234567890",
            "token_type": "Bearer",
            "expires_in": 300,
            "refresh_token": "mock_refresh_token_1234567890",
            "id_token": "mock.id.token",
            "scope": "openid email profile"
        }
        self.userinfo_status = 200
        self.userinfo_body: Any = {
            "sub": "f3a1c2d4-0000-4000-8000-000000000001",
            "email": "alice@example.com",
            "email_verified": True,
            "name": "Alice Demo",
            "preferred_username": "alice"
        }
        self.token_exception: Optional[Exception] = None
        self.requests: List[httpx.Request] = []

    @staticmethod
    def _response(status: int, body: Any) -> httpx.Response:
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, content=body or b"")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/token"):
            if self.token_exception is not None:
                raise self.token_exception
            return self._response(self.token_status, self.token_body)
        if request.url.path.endswith("/userinfo"):
            return self._response(self.userinfo_status, self.userinfo_body)
        return httpx.Response(404, json={"error": "not_found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, suffix: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def token_form(self, index: int = -1) -> Dict[str, str]:
        """Decode the form body of a recorded token request."""
        request = self.requests_to("/token")[index]
        parsed = parse_qs(request.content.decode("utf-8"))
        return {key: values[0] for key, values in parsed.items()}


@pytest.fixture
def settings() -> KeycloakSettings:
    """Settings for a local Keycloak reachable as keycloak:8080 on the back channel."""
    return KeycloakSettings(
        keycloak_url="http://localhost:8080",
        keycloak_internal_url="http://keycloak:8080",
        keycloak_realm="demo",
        client_id="web-app",
        client_secret="web-app-client-secret",
        session_secret="test-session-secret",
        app_base_url="http://localhost:3000"
    )


@pytest.fixture
def fake_keycloak() -> FakeKeycloak:
    return FakeKeycloak()


@pytest.fixture
def flow(settings, fake_keycloak) -> AuthorizationFlow:
    return AuthorizationFlow(settings, transport=fake_keycloak.transport)


@pytest.fixture
def session_store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def session(session_store) -> ServerSession:
    """A fresh, empty server-side session."""
    return ServerSession(session_store, session_store.create_session())


@pytest.fixture
def keycloak_env() -> Dict[str, str]:
    """A complete set of environment variables."""
    return {
        "KEYCLOAK_URL": "http://localhost:8080",
        "KEYCLOAK_REALM": "demo",
        "KEYCLOAK_CLIENT_ID": "web-app",
        "KEYCLOAK_CLIENT_SECRET": "web-app-client-secret",
        "SESSION_SECRET": "test-session-secret"
    }


@pytest.fixture(autouse=True)
def disable_logging():
    """Disable logging during tests to reduce noise."""
    logging.disable(logging.CRITICAL)
    yield
    logging.disable(logging.NOTSET)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that drive the full web application"
    )
