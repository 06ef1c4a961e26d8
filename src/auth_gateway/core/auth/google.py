"""Google OAuth2 identity provider.

Authorization-code flow against Google's fixed endpoints:

    authorize: GET  https://accounts.google.com/o/oauth2/v2/auth
    token:     POST https://oauth2.googleapis.com/token   (form-encoded)
    userinfo:  GET  https://www.googleapis.com/oauth2/v3/userinfo

Example Configuration:
    AUTH_STRATEGIES=local,google
    GOOGLE_CLIENT_ID=xxx.apps.googleusercontent.com
    GOOGLE_CLIENT_SECRET=GOCSPX-xxx
    GOOGLE_REDIRECT_URL=https://app.example.com,https://admin.example.com
"""

import logging
from typing import Any, Dict, Optional, Sequence
from urllib.parse import urlencode

import httpx

from auth_gateway.config.strategies import GoogleAuthConfig
from auth_gateway.domain.exceptions import ConfigurationError, UnauthorizedError, ValidationError
from auth_gateway.domain.models import ProviderSession, UserMetadata

from .provider import DEFAULT_TIMEOUT_SECONDS, http_session, send_provider_request

logger = logging.getLogger(__name__)

GOOGLE_AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

DEFAULT_SCOPES = ("openid", "profile", "email")


def _is_verified(value: Any) -> bool:
    # Google sends a JSON boolean, older endpoints the string "true"
    return value is True or (isinstance(value, str) and value.lower() == "true")


class GoogleIdentityProvider:
    """Google OAuth2 authorization-code provider."""

    name = "google"
    requires_pkce = False

    def __init__(
        self,
        config: GoogleAuthConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize Google provider.

        Args:
            config: Google strategy configuration
            http_client: Shared HTTP client (a short-lived one is created per call if None)
            timeout: Request timeout for short-lived clients
        """
        self.config = config
        self._http_client = http_client
        self._timeout = timeout

    def _require_credentials(self) -> None:
        if not self.config.client_id or not self.config.client_secret:
            raise ConfigurationError("Google OAuth client ID and secret are not configured")

    def begin_signin(
        self,
        scopes: Optional[Sequence[str]],
        redirect_uri: str,
        state: Optional[str],
        code_challenge: Optional[str] = None,
    ) -> str:
        """Generate the Google authorization URL.

        Returns:
            Authorization URL with offline access and forced consent
        """
        self._require_credentials()

        params = {
            "client_id": self.config.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes or DEFAULT_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state or "",
        }
        return f"{GOOGLE_AUTHORIZATION_URL}?{urlencode(params)}"

    async def exchange_authorization_code(
        self,
        code: Optional[str],
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> UserMetadata:
        """Exchange the callback code for Google user metadata.

        Two sequential calls: code -> access token, then access token -> userinfo.
        """
        if not code:
            raise UnauthorizedError("Authorization code is missing. Please provide a valid code.")

        session = await self.get_session(
            {
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
            }
        )
        user = await self.get_user_info(session.access_token)

        if not user.get("sub"):
            raise UnauthorizedError(
                "Failed to exchange authorization code for session. Please try again."
            )

        # Unverified addresses are not identities; fall back to the subject id
        email = user.get("email") if _is_verified(user.get("email_verified")) else None

        logger.info(f"Google code exchange successful: sub={user['sub']}")
        return UserMetadata(
            provider=self.name,
            provider_id=user["sub"],
            name=user.get("name"),
            email=email,
            identifier=email or user["sub"],
            picture_url=user.get("picture"),
        )

    async def refresh_token(self, refresh_token: str) -> ProviderSession:
        """Refresh a Google access token."""
        if not refresh_token:
            raise ValidationError('Refresh token is required for "refresh_token" exchange')

        return await self.get_session(
            {"refresh_token": refresh_token, "grant_type": "refresh_token"}
        )

    async def get_session(self, grant: Dict[str, str]) -> ProviderSession:
        """POST a grant to the Google token endpoint."""
        self._require_credentials()

        data = {
            "access_type": "offline",
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            **grant,
        }
        async with http_session(self._http_client, self._timeout) as client:
            tokens = await send_provider_request(
                client,
                "POST",
                GOOGLE_TOKEN_URL,
                f"exchange {grant['grant_type']}",
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )

        if not tokens.get("access_token"):
            raise UnauthorizedError(
                "Failed to exchange authorization code for session. Please try again."
            )
        return ProviderSession.model_validate(tokens)

    async def get_user_info(self, access_token: str) -> Dict[str, Any]:
        """Fetch the Google userinfo document for an access token."""
        async with http_session(self._http_client, self._timeout) as client:
            return await send_provider_request(
                client,
                "GET",
                GOOGLE_USERINFO_URL,
                "fetch user info",
                headers={"Authorization": f"Bearer {access_token}"},
            )
