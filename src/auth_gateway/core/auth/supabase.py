"""Supabase identity provider.

Signs users in through a Supabase project's GoTrue REST API using the PKCE
code flow. Supabase itself delegates to an upstream OAuth provider
(``oauth_provider``, Google by default).

Endpoints (relative to the project URL):

    authorize: GET  /auth/v1/authorize?provider&redirect_to&scopes&code_challenge&code_challenge_method=s256
    token:     POST /auth/v1/token?grant_type=pkce            {auth_code, code_verifier}
    refresh:   POST /auth/v1/token?grant_type=refresh_token   {refresh_token}
    user:      GET  /auth/v1/user

Every call carries the project's anon key in the ``apikey`` header.

Example Configuration:
    AUTH_STRATEGIES=local,supabase
    SUPABASE_URL=https://xyzcompany.supabase.co
    SUPABASE_ANON_KEY=eyJhbGciOi...
    SUPABASE_REDIRECT_URL=https://app.example.com
"""

import logging
from typing import Any, Dict, Optional, Sequence
from urllib.parse import urlencode

import httpx

from auth_gateway.config.strategies import SupabaseAuthConfig
from auth_gateway.domain.exceptions import ConfigurationError, UnauthorizedError, ValidationError
from auth_gateway.domain.models import ProviderSession, UserMetadata

from .provider import (
    DEFAULT_TIMEOUT_SECONDS,
    add_query_params,
    http_session,
    send_provider_request,
)

logger = logging.getLogger(__name__)


class SupabaseIdentityProvider:
    """Supabase (GoTrue) PKCE provider."""

    name = "supabase"
    requires_pkce = True

    def __init__(
        self,
        config: SupabaseAuthConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.config = config
        self._http_client = http_client
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        if not self.config.url or not self.config.anon_key:
            raise ConfigurationError("Supabase URL and anon key are not configured")
        return self.config.url.rstrip("/")

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {"apikey": self.config.anon_key or ""}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def begin_signin(
        self,
        scopes: Optional[Sequence[str]],
        redirect_uri: str,
        state: Optional[str],
        code_challenge: Optional[str] = None,
    ) -> str:
        """Generate the GoTrue authorize URL.

        GoTrue has no ``state`` parameter of its own, so the state travels as a
        query parameter on ``redirect_to`` and comes back on the callback.

        Raises:
            ConfigurationError: If URL/anon key are missing
            ValidationError: If no PKCE code challenge was supplied
        """
        base_url = self.base_url
        if not code_challenge:
            raise ValidationError("PKCE code challenge is required for Supabase sign-in")

        redirect_to = add_query_params(redirect_uri, {"state": state}) if state else redirect_uri
        params = {
            "provider": self.config.oauth_provider,
            "redirect_to": redirect_to,
            "code_challenge": code_challenge,
            "code_challenge_method": "s256",
        }
        if scopes:
            params["scopes"] = " ".join(scopes)
        return f"{base_url}/auth/v1/authorize?{urlencode(params)}"

    async def exchange_authorization_code(
        self,
        code: Optional[str],
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> UserMetadata:
        """Exchange the PKCE auth code for Supabase user metadata."""
        if not code:
            raise UnauthorizedError("Authorization code is missing. Please provide a valid code.")
        if not code_verifier:
            raise ValidationError("PKCE code verifier is missing. Please restart sign-in.")

        session = await self.get_session(
            "pkce", {"auth_code": code, "code_verifier": code_verifier}
        )
        user = await self.get_user(session.access_token)

        if not user.get("id"):
            raise UnauthorizedError(
                "Failed to exchange authorization code for session. Please try again."
            )

        metadata = user.get("user_metadata") or {}
        # Only a confirmed address identifies the user; otherwise use the GoTrue id
        email = user.get("email") if user.get("email_confirmed_at") else None
        logger.info(f"Supabase code exchange successful: id={user['id']}")
        return UserMetadata(
            provider=self.name,
            provider_id=user["id"],
            name=metadata.get("full_name") or metadata.get("name"),
            email=email,
            identifier=email or user["id"],
            picture_url=metadata.get("avatar_url") or metadata.get("picture"),
        )

    async def refresh_token(self, refresh_token: str) -> ProviderSession:
        if not refresh_token:
            raise ValidationError('Refresh token is required for "refresh_token" exchange')
        return await self.get_session("refresh_token", {"refresh_token": refresh_token})

    async def get_session(self, grant_type: str, body: Dict[str, str]) -> ProviderSession:
        """POST a grant to the GoTrue token endpoint."""
        url = f"{self.base_url}/auth/v1/token?{urlencode({'grant_type': grant_type})}"
        async with http_session(self._http_client, self._timeout) as client:
            tokens = await send_provider_request(
                client, "POST", url, f"exchange {grant_type}", json=body, headers=self._headers()
            )

        if not tokens.get("access_token"):
            raise UnauthorizedError(
                "Failed to exchange authorization code for session. Please try again."
            )
        return ProviderSession.model_validate(tokens)

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        async with http_session(self._http_client, self._timeout) as client:
            return await send_provider_request(
                client,
                "GET",
                f"{self.base_url}/auth/v1/user",
                "fetch user",
                headers=self._headers(access_token),
            )
