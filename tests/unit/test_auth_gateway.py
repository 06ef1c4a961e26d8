"""Unit tests for AuthGateway

Runs the gateway against in-memory stores and fake provider endpoints.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import pytest

from auth_gateway.config.strategies import create_google_auth_strategy
from auth_gateway.core.auth.gateway import AuthGateway, build_gateway
from auth_gateway.domain.exceptions import (
    INVALID_CODE_MESSAGE,
    InvalidCodeError,
    NotFoundError,
    TokenExpiredError,
    TokenInvalidError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from auth_gateway.domain.models import AuthInfo, UserMetadata
from auth_gateway.infrastructure.auth.auth_code_store import MemoryAuthCodeStore
from auth_gateway.infrastructure.auth.session_issuer import SessionIssuer

CALLBACK = "http://test/auth/google/callback"


@pytest.fixture
def metadata():
    return UserMetadata(
        provider="google", provider_id="google-123", identifier="jane@example.com"
    )


@pytest.mark.unit
class TestCreateUser:
    """Find-or-create by identifier"""

    @pytest.mark.asyncio
    async def test_creates_missing_user(self, gateway, user_store, metadata):
        auth_info = await gateway.create_user(metadata)

        assert auth_info.identifier == "jane@example.com"
        assert len(user_store) == 1

    @pytest.mark.asyncio
    async def test_is_idempotent(self, gateway, user_store, metadata):
        first = await gateway.create_user(metadata)
        second = await gateway.create_user(metadata)

        assert first.user_id == second.user_id
        assert len(user_store) == 1


@pytest.mark.unit
class TestAuthCodeExchange:
    """Issue, find and clear intermediary codes"""

    @pytest.mark.asyncio
    async def test_issue_then_find(self, gateway, metadata):
        # Arrange
        auth_info = await gateway.create_user(metadata)
        code = await gateway.issue_auth_code(auth_info.identifier, "google")

        # Act
        grant = await gateway.find_by_auth_code(code, "google")

        # Assert
        assert grant.auth_info.user_id == auth_info.user_id
        assert grant.auth_code.identifier == auth_info.identifier

    @pytest.mark.asyncio
    async def test_find_for_deleted_user(self, gateway):
        code = await gateway.issue_auth_code("ghost@example.com", "google")

        with pytest.raises(InvalidCodeError):
            await gateway.find_by_auth_code(code, "google")

    @pytest.mark.asyncio
    async def test_issue_tokens(self, gateway, metadata):
        auth_info = await gateway.create_user(metadata)

        session = await gateway.issue_tokens(auth_info.id)

        assert session.auth_info.user_id == auth_info.user_id
        assert gateway.authenticate(session.tokens.access_token)["sub"] == auth_info.user_id
        assert session.cookies == []

    @pytest.mark.asyncio
    async def test_issue_tokens_unknown_user(self, gateway):
        with pytest.raises(NotFoundError):
            await gateway.issue_tokens("auth-404")


@pytest.mark.unit
class TestRedirectFlow:
    """begin_signin, exchange_provider_code and post_login_redirect"""

    def test_begin_signin_rejects_disallowed_next(self, gateway, fake_providers):
        with pytest.raises(ValidationError) as exc_info:
            gateway.begin_signin("google", None, CALLBACK, "https://evil.example.com")

        assert exc_info.value.message == "Invalid redirect URL"
        assert fake_providers.requests == []

    def test_begin_signin_carries_next_as_state(self, gateway):
        url = gateway.begin_signin("google", None, CALLBACK, "http://localhost:4000/welcome")

        assert parse_qs(urlsplit(url).query)["state"] == ["http://localhost:4000/welcome"]

    def test_begin_signin_unknown_provider(self, gateway):
        with pytest.raises(ValidationError) as exc_info:
            gateway.begin_signin("github", None, CALLBACK)

        assert exc_info.value.message == "Unsupported provider: github"

    @pytest.mark.asyncio
    async def test_exchange_provider_code_issues_auth_code(self, gateway, user_store):
        # Act
        code = await gateway.exchange_provider_code("google", "provider-code", CALLBACK)

        # Assert
        assert code
        assert len(user_store) == 1
        grant = await gateway.find_by_auth_code(code, "google")
        assert grant.auth_info.identifier == "jane@example.com"

    @pytest.mark.asyncio
    async def test_exchange_missing_code_issues_nothing(self, gateway, user_store, code_store):
        with pytest.raises(UnauthorizedError):
            await gateway.exchange_provider_code("google", None, CALLBACK)

        assert len(user_store) == 0
        assert len(code_store) == 0

    @pytest.mark.asyncio
    async def test_exchange_upstream_failure_issues_nothing(self, gateway, fake_providers, code_store):
        fake_providers.token_status = 400

        with pytest.raises(UpstreamError):
            await gateway.exchange_provider_code("google", "bad-code", CALLBACK)

        assert len(code_store) == 0

    def test_post_login_redirect_default_target(self, gateway):
        url = gateway.post_login_redirect("google", None, "abc123")

        assert url == "http://localhost:3000?code=abc123&provider=google"

    def test_post_login_redirect_next_target(self, gateway):
        url = gateway.post_login_redirect("google", "http://localhost:4000/welcome", "abc123")

        assert url == "http://localhost:4000/welcome?code=abc123&provider=google"

    def test_post_login_redirect_rejects_disallowed_next(self, gateway):
        with pytest.raises(ValidationError):
            gateway.post_login_redirect("google", "http://localhost:5000", "abc123")

    def test_post_login_redirect_keeps_fragment(self, auth_config, user_store, code_store):
        # Arrange
        config = auth_config.model_copy(
            update={
                "strategies": (
                    create_google_auth_strategy(
                        client_id="google-client-id",
                        client_secret="google-client-secret",
                        redirect_url="http://localhost:3000/app?tab=home#/welcome",
                    ),
                )
            }
        )
        gateway = build_gateway(config, user_store, code_store)

        # Act
        url = gateway.post_login_redirect("google", None, "abc123")

        # Assert
        assert url == "http://localhost:3000/app?tab=home&code=abc123&provider=google#/welcome"


@pytest.mark.unit
class TestSigninWithCode:
    """Intermediary code -> session"""

    @pytest.mark.asyncio
    async def test_full_exchange(self, gateway):
        # Arrange
        code = await gateway.exchange_provider_code("google", "provider-code", CALLBACK)

        # Act
        session = await gateway.signin_with_code(code, "google")

        # Assert
        claims = gateway.authenticate(session.tokens.access_token)
        assert claims["sub"] == session.auth_info.user_id
        assert claims["provider"] == "google"

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, gateway):
        code = await gateway.exchange_provider_code("google", "provider-code", CALLBACK)
        await gateway.signin_with_code(code, "google")

        with pytest.raises(InvalidCodeError) as exc_info:
            await gateway.signin_with_code(code, "google")

        assert exc_info.value.message == INVALID_CODE_MESSAGE

    @pytest.mark.asyncio
    async def test_concurrent_signin_has_one_winner(self, gateway):
        code = await gateway.exchange_provider_code("google", "provider-code", CALLBACK)

        results = await asyncio.gather(
            *[gateway.signin_with_code(code, "google") for _ in range(5)],
            return_exceptions=True,
        )

        assert len([r for r in results if not isinstance(r, Exception)]) == 1
        assert all(isinstance(r, InvalidCodeError) for r in results if isinstance(r, Exception))

    @pytest.mark.asyncio
    async def test_expired_code(self, auth_config, user_store, clock):
        # Arrange
        code_store = MemoryAuthCodeStore(expiry_seconds=300, clock=clock)
        gateway = AuthGateway(
            auth_config, user_store, code_store, SessionIssuer(auth_config.jwt_config), {}
        )
        await user_store.create_user(
            UserMetadata(provider="google", provider_id="g-1", identifier="jane@example.com")
        )
        code = await gateway.issue_auth_code("jane@example.com", "google")
        clock.advance(301)

        # Act / Assert
        with pytest.raises(InvalidCodeError) as exc_info:
            await gateway.signin_with_code(code, "google")
        assert exc_info.value.message == INVALID_CODE_MESSAGE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code,provider", [(None, "google"), ("abc", None), ("", "")])
    async def test_missing_code_or_provider(self, gateway, code, provider):
        with pytest.raises(ValidationError) as exc_info:
            await gateway.signin_with_code(code, provider)

        assert exc_info.value.message == "Provider is missing. Please provide a valid provider."

    @pytest.mark.asyncio
    async def test_code_for_other_provider(self, gateway):
        code = await gateway.exchange_provider_code("google", "provider-code", CALLBACK)

        with pytest.raises(InvalidCodeError):
            await gateway.signin_with_code(code, "supabase")

    @pytest.mark.asyncio
    async def test_session_cookies_when_configured(self, cookie_gateway):
        code = await cookie_gateway.exchange_provider_code("google", "provider-code", CALLBACK)

        session = await cookie_gateway.signin_with_code(code, "google")

        assert [c.name for c in session.cookies] == ["access_token", "refresh_token"]
        assert session.cookies[0].value == session.tokens.access_token


@pytest.mark.unit
class TestLocalStrategy:
    """Username/password signup and signin"""

    @pytest.mark.asyncio
    async def test_signup_then_signin(self, gateway):
        # Arrange
        created = await gateway.signup_with_username("jane", "correct-horse")

        # Act
        session = await gateway.signin_with_username("jane", "correct-horse")

        # Assert
        assert session.auth_info.user_id == created.user_id
        assert gateway.authenticate(session.tokens.access_token)["provider"] == "local"

    @pytest.mark.asyncio
    async def test_signup_existing_user(self, gateway):
        await gateway.signup_with_username("jane", "correct-horse")

        with pytest.raises(ValidationError) as exc_info:
            await gateway.signup_with_username("JANE", "another-password")

        assert exc_info.value.message == "User already exists"

    @pytest.mark.asyncio
    async def test_local_account_not_merged_with_provider_account(self, gateway):
        # Arrange: a local account registered with someone else's email
        local_user = await gateway.signup_with_username("jane@example.com", "attacker-pw1")

        # Act: the owner signs in with Google using the same email
        code = await gateway.exchange_provider_code("google", "provider-code", CALLBACK)
        session = await gateway.signin_with_code(code, "google")

        # Assert
        assert session.auth_info.provider == "google"
        assert session.auth_info.user_id != local_user.user_id
        assert session.auth_info.password_hash is None
        local_session = await gateway.signin_with_username("jane@example.com", "attacker-pw1")
        assert local_session.auth_info.user_id == local_user.user_id

    @pytest.mark.asyncio
    async def test_provider_account_does_not_block_local_signup(self, gateway, metadata):
        google_user = await gateway.create_user(metadata)

        local_user = await gateway.signup_with_username("jane@example.com", "correct-horse")

        assert local_user.user_id != google_user.user_id
        assert local_user.provider == "local"

    @pytest.mark.asyncio
    async def test_signin_wrong_password(self, gateway):
        await gateway.signup_with_username("jane", "correct-horse")

        with pytest.raises(UnauthorizedError):
            await gateway.signin_with_username("jane", "battery-staple")

    @pytest.mark.asyncio
    async def test_local_strategy_not_configured(self, auth_config, user_store, code_store):
        gateway = AuthGateway(
            auth_config, user_store, code_store, SessionIssuer(auth_config.jwt_config), {}
        )

        with pytest.raises(ValidationError):
            await gateway.signup_with_username("jane", "correct-horse")


@pytest.mark.unit
class TestSessionLifecycle:
    """Refresh, authenticate and signout"""

    @pytest.mark.asyncio
    async def test_refresh_session(self, gateway):
        # Arrange
        await gateway.signup_with_username("jane", "correct-horse")
        first = await gateway.signin_with_username("jane", "correct-horse")

        # Act
        refreshed = await gateway.refresh_session(first.tokens.refresh_token)

        # Assert
        assert refreshed.auth_info.user_id == first.auth_info.user_id
        assert refreshed.tokens.access_token != first.tokens.access_token

    @pytest.mark.asyncio
    async def test_refresh_with_access_token_rejected(self, gateway):
        await gateway.signup_with_username("jane", "correct-horse")
        session = await gateway.signin_with_username("jane", "correct-horse")

        with pytest.raises(TokenInvalidError):
            await gateway.refresh_session(session.tokens.access_token)

    @pytest.mark.asyncio
    async def test_refresh_missing_token(self, gateway):
        with pytest.raises(TokenInvalidError):
            await gateway.refresh_session(None)

    @pytest.mark.asyncio
    async def test_refresh_for_removed_user(self, gateway, user_store):
        # Arrange
        await gateway.signup_with_username("jane", "correct-horse")
        session = await gateway.signin_with_username("jane", "correct-horse")
        user_store._users.clear()

        # Act / Assert
        with pytest.raises(TokenInvalidError):
            await gateway.refresh_session(session.tokens.refresh_token)

    def test_authenticate_expired_token(self, gateway, auth_config):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        tokens = SessionIssuer(auth_config.jwt_config, clock=lambda: past).create_token_pair(
            AuthInfo(id="a", user_id="u", identifier="i", provider="local", provider_id="p")
        )

        with pytest.raises(TokenExpiredError):
            gateway.authenticate(tokens.access_token)

    def test_signout_without_cookies(self, gateway):
        assert gateway.signout() == []

    def test_signout_with_cookies(self, cookie_gateway):
        cookies = cookie_gateway.signout()

        assert all(c.is_deletion for c in cookies)
        assert len(cookies) == 2

    @pytest.mark.parametrize(
        "url,allowed",
        [
            ("http://localhost:3000", True),
            ("http://localhost:4000/welcome", True),
            ("http://localhost:4000", False),
            ("https://evil.example.com", False),
            (None, False),
        ],
    )
    def test_redirect_allowed(self, gateway, url, allowed):
        assert gateway.redirect_allowed(url) is allowed
