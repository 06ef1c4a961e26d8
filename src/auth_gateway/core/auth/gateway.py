"""Auth Gateway

Purpose: Orchestrate sign-in across strategies and issue application sessions

The gateway owns the intermediary-code protocol. A redirect-based sign-in
spans two requests:

    1. callback: provider code -> UserMetadata -> find-or-create user -> auth code
    2. token:    auth code -> redeem (single use) -> clear -> token pair

The auth code is the only thing that crosses the redirect back to the client;
provider tokens never leave the server. Local signin skips the code and goes
straight from credentials to a session.

Each attempt is tracked by a LoginAttempt that only moves forward. Nothing is
retried automatically: a failed attempt is reported and the client starts over.

Key Components:
- AuthGateway: Strategy dispatcher and session orchestration
- build_gateway: Explicit construction from AuthConfig and collaborators
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from auth_gateway.config.strategies import AuthConfig
from auth_gateway.domain.exceptions import (
    AuthGatewayError,
    InvalidCodeError,
    NotFoundError,
    TokenInvalidError,
    ValidationError,
)
from auth_gateway.domain.models import (
    AuthCodeGrant,
    AuthInfo,
    CookieDirective,
    IssuedSession,
    LoginAttempt,
    LoginStage,
    UserMetadata,
)
from auth_gateway.infrastructure.auth.auth_code_store import AuthCodeStore
from auth_gateway.infrastructure.auth.session_issuer import SessionIssuer
from auth_gateway.infrastructure.auth.user_store import UserStore

from .factory import build_identity_providers, get_identity_provider
from .local import LocalIdentityProvider
from .provider import DEFAULT_TIMEOUT_SECONDS, IdentityProvider, add_query_params

logger = logging.getLogger(__name__)

MISSING_PROVIDER_MESSAGE = "Provider is missing. Please provide a valid provider."
INVALID_REDIRECT_MESSAGE = "Invalid redirect URL"


class AuthGateway:
    """Strategy dispatcher and session orchestration"""

    def __init__(
        self,
        config: AuthConfig,
        user_store: UserStore,
        code_store: AuthCodeStore,
        session_issuer: SessionIssuer,
        providers: Mapping[str, IdentityProvider],
    ):
        """Initialize gateway

        Args:
            config: Frozen process configuration
            user_store: User record store
            code_store: Intermediary auth code store
            session_issuer: Access/refresh token issuer
            providers: Provider dispatch table keyed by provider name
        """
        self.config = config
        self.user_store = user_store
        self.code_store = code_store
        self.session_issuer = session_issuer
        self.providers = dict(providers)

    def get_provider(self, name: Optional[str]) -> IdentityProvider:
        return get_identity_provider(self.providers, name)

    # ------------------------------------------------------------------
    # User and code primitives
    # ------------------------------------------------------------------

    async def create_user(self, metadata: UserMetadata) -> AuthInfo:
        """Find the user for a provider identity, creating it if absent

        Idempotent: two calls with the same provider and identifier return the
        same user. Identities from different providers are never merged.
        """
        try:
            return await self.user_store.find_by_identifier(
                metadata.identifier, metadata.provider
            )
        except NotFoundError:
            logger.info(f"No user for {metadata.provider}:{metadata.identifier}, creating one")
        return await self.user_store.create_user(metadata)

    async def issue_auth_code(self, identifier: str, provider: str) -> str:
        """Issue a single-use auth code and return its value"""
        auth_code = await self.code_store.issue(identifier, provider)
        return auth_code.value

    async def find_by_auth_code(self, code: str, provider: str) -> AuthCodeGrant:
        """Redeem an auth code and load the user it was issued for

        Raises:
            InvalidCodeError: If the code is unknown, used, expired, or its user is gone
        """
        auth_code = await self.code_store.redeem(code, provider)
        try:
            auth_info = await self.user_store.find_by_identifier(
                auth_code.identifier, auth_code.provider
            )
        except NotFoundError:
            logger.warning(f"Auth code {auth_code.id} refers to a missing user")
            raise InvalidCodeError()
        return AuthCodeGrant(auth_code=auth_code, auth_info=auth_info)

    async def clear_auth_code(self, code_id: str) -> None:
        await self.code_store.clear(code_id)

    async def issue_tokens(self, auth_id: str) -> IssuedSession:
        """Mint a session for a stored user"""
        auth_info = await self.user_store.find_by_id(auth_id)
        return self._issue_session(auth_info)

    def _issue_session(self, auth_info: AuthInfo) -> IssuedSession:
        tokens = self.session_issuer.create_token_pair(auth_info)
        return IssuedSession(
            tokens=tokens,
            auth_info=auth_info,
            cookies=self.session_issuer.session_cookies(tokens),
        )

    # ------------------------------------------------------------------
    # Redirect flow
    # ------------------------------------------------------------------

    def validate_next_url(self, provider: str, next_url: Optional[str]) -> None:
        """Reject a post-login target that is not on the strategy's allow-list

        An absent ``next_url`` is always accepted (the default target is used).

        Raises:
            ValidationError: If the URL is not allowed
        """
        if not next_url:
            return
        strategy = self.config.get_strategy(provider)
        if strategy is None or next_url not in strategy.allowed_redirect_urls:
            logger.warning(f"Rejected redirect URL for {provider}: {next_url}")
            raise ValidationError(INVALID_REDIRECT_MESSAGE)

    def begin_signin(
        self,
        provider: str,
        scopes: Optional[Sequence[str]],
        redirect_uri: str,
        next_url: Optional[str] = None,
        code_challenge: Optional[str] = None,
    ) -> str:
        """Build the provider authorization URL

        ``next_url`` is validated before the provider is consulted and then
        carried through the provider as ``state``.
        """
        adapter = self.get_provider(provider)
        self.validate_next_url(provider, next_url)
        return adapter.begin_signin(scopes, redirect_uri, next_url, code_challenge)

    async def exchange_provider_code(
        self,
        provider: str,
        code: Optional[str],
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> str:
        """Provider callback: exchange the provider's code and issue an auth code

        Returns:
            Intermediary auth code value
        """
        adapter = self.get_provider(provider)
        attempt = LoginAttempt(provider=provider)
        try:
            metadata = await adapter.exchange_authorization_code(code, redirect_uri, code_verifier)
            attempt.advance(LoginStage.PROVIDER_EXCHANGED)

            auth_info = await self.create_user(metadata)
            attempt.advance(LoginStage.USER_RESOLVED)

            value = await self.issue_auth_code(auth_info.identifier, provider)
            attempt.advance(LoginStage.CODE_ISSUED)
        except AuthGatewayError as e:
            attempt.fail(f"{type(e).__name__}: {e.message}")
            raise

        logger.info(f"Provider sign-in ({provider}) issued auth code for {auth_info.identifier}")
        return value

    async def signin_with_code(self, code: Optional[str], provider: Optional[str]) -> IssuedSession:
        """Exchange an intermediary auth code for a session

        Raises:
            ValidationError: If code or provider is missing
            InvalidCodeError: If the code is unknown, used or expired
        """
        if not code or not provider:
            raise ValidationError(MISSING_PROVIDER_MESSAGE)

        attempt = LoginAttempt.resume(provider, LoginStage.CODE_ISSUED)
        try:
            grant = await self.find_by_auth_code(code, provider)
            attempt.advance(LoginStage.CODE_REDEEMED)

            await self.clear_auth_code(grant.auth_code.id)
            session = self._issue_session(grant.auth_info)
            attempt.advance(LoginStage.SESSION_ISSUED)
        except AuthGatewayError as e:
            attempt.fail(f"{type(e).__name__}: {e.message}")
            raise

        logger.info(f"Session issued for user {grant.auth_info.user_id} via {provider}")
        return session

    def post_login_redirect(self, provider: str, next_url: Optional[str], code: str) -> str:
        """Build the redirect back to the client carrying the auth code

        Raises:
            ValidationError: If ``next_url`` is not allowed or no default target exists
        """
        self.validate_next_url(provider, next_url)
        target = next_url
        if not target:
            strategy = self.config.get_strategy(provider)
            target = strategy.default_redirect_url if strategy else None
        if not target:
            raise ValidationError(INVALID_REDIRECT_MESSAGE)

        return add_query_params(target, {"code": code, "provider": provider})

    # ------------------------------------------------------------------
    # Local strategy
    # ------------------------------------------------------------------

    def _local_provider(self) -> LocalIdentityProvider:
        adapter = self.get_provider("local")
        if not isinstance(adapter, LocalIdentityProvider):
            raise ValidationError("Unsupported provider: local")
        return adapter

    async def _user_exists(self, identifier: str, provider: str) -> bool:
        try:
            await self.user_store.find_by_identifier(identifier, provider)
        except NotFoundError:
            return False
        return True

    async def signup_with_username(self, username: str, password: str) -> AuthInfo:
        """Register a local user

        Raises:
            ValidationError: If the input is invalid or the user already exists
        """
        adapter = self._local_provider()
        metadata = adapter.prepare_signup(username, password)
        if await self._user_exists(metadata.identifier, metadata.provider):
            raise ValidationError("User already exists")

        auth_info = await self.user_store.create_user(metadata)
        # create_user returns the existing record when a concurrent signup won
        if auth_info.provider_id != metadata.provider_id:
            raise ValidationError("User already exists")

        logger.info(f"Local signup: {auth_info.identifier} ({auth_info.user_id})")
        return auth_info

    async def signin_with_username(self, username: str, password: str) -> IssuedSession:
        adapter = self._local_provider()
        attempt = LoginAttempt(provider=adapter.name)
        try:
            auth_info = await adapter.verify_credentials(username, password)
            attempt.advance(LoginStage.USER_RESOLVED)
            session = self._issue_session(auth_info)
            attempt.advance(LoginStage.SESSION_ISSUED)
        except AuthGatewayError as e:
            attempt.fail(f"{type(e).__name__}: {e.message}")
            raise
        return session

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def refresh_session(self, refresh_token: Optional[str]) -> IssuedSession:
        """Issue a new token pair from a valid refresh token

        Raises:
            TokenExpiredError / TokenInvalidError: If the refresh token is unusable
        """
        claims = self.session_issuer.verify(refresh_token or "", kind="refresh")
        try:
            auth_info = await self.user_store.find_by_id(claims["aid"])
        except NotFoundError:
            logger.warning(f"Refresh token for missing auth record {claims['aid']}")
            raise TokenInvalidError("Invalid refresh token")
        logger.info(f"Refreshed session for user {auth_info.user_id}")
        return self._issue_session(auth_info)

    def authenticate(self, token: Optional[str]) -> Dict[str, Any]:
        """Verify an access token and return its claims"""
        return self.session_issuer.verify(token or "", kind="access")

    def signout(self) -> List[CookieDirective]:
        """Cookie deletions for signout; empty for bearer-only clients"""
        return self.session_issuer.signout_cookies()

    def redirect_allowed(self, url: Optional[str]) -> bool:
        """Whether a signout redirect target is on any strategy's allow-list"""
        return bool(url) and url in self.config.all_redirect_urls


def build_gateway(
    config: AuthConfig,
    user_store: UserStore,
    code_store: AuthCodeStore,
    http_client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> AuthGateway:
    """Assemble the gateway from configuration and collaborators

    Raises:
        ConfigurationError: If a strategy is misconfigured
    """
    providers = build_identity_providers(config, user_store, http_client, timeout)
    session_issuer = SessionIssuer(config.jwt_config, config.cookie_config)
    logger.info(f"Auth gateway ready with providers: {', '.join(providers)}")
    return AuthGateway(config, user_store, code_store, session_issuer, providers)
