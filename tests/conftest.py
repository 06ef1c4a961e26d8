"""
Pytest configuration and fixtures for auth gateway tests.

Provides fixtures for:
- Authentication configuration (local, Google and Supabase strategies)
- In-memory user and auth code stores
- Fake Google/Supabase endpoints served through httpx.MockTransport
- Assembled gateway and HTTP test client
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from auth_gateway.config.settings import Settings
from auth_gateway.config.strategies import (
    AuthConfig,
    AuthJwtConfig,
    CookieOptions,
    create_google_auth_strategy,
    create_local_auth_strategy,
    create_supabase_auth_strategy,
)
from auth_gateway.core.auth.gateway import AuthGateway, build_gateway
from auth_gateway.infrastructure.auth.auth_code_store import MemoryAuthCodeStore
from auth_gateway.infrastructure.auth.user_store import MemoryUserStore
from auth_gateway.main import create_app

GOOGLE_REDIRECT_URL = "http://localhost:3000,http://localhost:4000/welcome"
SUPABASE_URL = "https://project.supabase.co"
SUPABASE_REDIRECT_URL = "http://localhost:3000"

GOOGLE_USER = {
    "sub": "google-123",
    "email": "Jane@Example.com",
    "email_verified": True,
    "name": "Jane Doe",
    "picture": "https://example.com/jane.png",
}
SUPABASE_USER = {
    "id": "supabase-456",
    "email": "sam@example.com",
    "email_confirmed_at": "2024-01-01T00:00:00Z",
    "user_metadata": {"full_name": "Sam Smith", "avatar_url": "https://example.com/sam.png"},
}


class FakeClock:
    """Settable UTC clock"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class FakeProviders:
    """Google and Supabase endpoints answered in-process

    Set ``token_status`` to make the token endpoints fail, or
    ``raise_transport_error`` to simulate a network failure. ``google_user``
    and ``supabase_user`` are the user objects the endpoints return.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.token_status = 200
        self.token_body: dict = {}
        self.raise_transport_error = False
        self.google_user = dict(GOOGLE_USER)
        self.supabase_user = dict(SUPABASE_USER)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_transport_error:
            raise httpx.ConnectTimeout("timed out", request=request)

        host, path = request.url.host, request.url.path

        if host == "oauth2.googleapis.com" and path == "/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return httpx.Response(
                200,
                json=self.token_body
                or {
                    "access_token": "google-access-token",
                    "refresh_token": "google-refresh-token",
                    "expires_in": 3599,
                    "token_type": "Bearer",
                    "scope": "openid profile email",
                },
            )

        if host == "www.googleapis.com" and path == "/oauth2/v3/userinfo":
            return httpx.Response(200, json=self.google_user)

        if host == "project.supabase.co" and path == "/auth/v1/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return httpx.Response(
                200,
                json={
                    "access_token": "supabase-access-token",
                    "refresh_token": "supabase-refresh-token",
                    "expires_in": 3600,
                    "token_type": "bearer",
                },
            )

        if host == "project.supabase.co" and path == "/auth/v1/user":
            return httpx.Response(200, json=self.supabase_user)

        return httpx.Response(404, json={"error": "not_found"})

    def last_request_to(self, path: str) -> httpx.Request:
        return [r for r in self.requests if r.url.path == path][-1]


@pytest.fixture
def jwt_config() -> AuthJwtConfig:
    return AuthJwtConfig(
        secret="test-access-secret",
        expiry_seconds=3600,
        refresh_secret="test-refresh-secret",
        refresh_expiry_seconds=7 * 24 * 3600,
    )


@pytest.fixture
def auth_config(jwt_config) -> AuthConfig:
    """Config with all three strategies (bcrypt cost kept low for speed)"""
    return AuthConfig(
        strategies=(
            create_local_auth_strategy(),
            create_google_auth_strategy(
                client_id="google-client-id",
                client_secret="google-client-secret",
                redirect_url=GOOGLE_REDIRECT_URL,
            ),
            create_supabase_auth_strategy(
                url=SUPABASE_URL,
                anon_key="supabase-anon-key",
                redirect_url=SUPABASE_REDIRECT_URL,
            ),
        ),
        jwt_config=jwt_config,
        hash_salt_rounds=4,
    )


@pytest.fixture
def cookie_auth_config(auth_config) -> AuthConfig:
    """Same config with session cookies enabled (not Secure, so http:// tests send them back)"""
    return auth_config.model_copy(update={"cookie_config": CookieOptions(secure=False)})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user_store() -> MemoryUserStore:
    return MemoryUserStore()


@pytest.fixture
def code_store() -> MemoryAuthCodeStore:
    return MemoryAuthCodeStore()


@pytest.fixture
def fake_providers() -> FakeProviders:
    return FakeProviders()


@pytest_asyncio.fixture
async def http_client(fake_providers) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client whose requests are answered by FakeProviders"""
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_providers.handler)) as client:
        yield client


@pytest.fixture
def gateway(auth_config, user_store, code_store, http_client) -> AuthGateway:
    return build_gateway(auth_config, user_store, code_store, http_client=http_client)


@pytest.fixture
def cookie_gateway(cookie_auth_config, user_store, code_store, http_client) -> AuthGateway:
    return build_gateway(cookie_auth_config, user_store, code_store, http_client=http_client)


@pytest.fixture
def settings() -> Settings:
    return Settings(storage_backend="memory", auth_strategies="local,google,supabase")


async def _client_for(settings: Settings, gateway: AuthGateway) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(settings, gateway=gateway)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def client(settings, gateway) -> AsyncGenerator[AsyncClient, None]:
    """Test HTTP client for an app with bearer-only sessions"""
    async for ac in _client_for(settings, gateway):
        yield ac


@pytest_asyncio.fixture
async def cookie_client(settings, cookie_gateway) -> AsyncGenerator[AsyncClient, None]:
    """Test HTTP client for an app that also writes session cookies"""
    async for ac in _client_for(settings, cookie_gateway):
        yield ac
