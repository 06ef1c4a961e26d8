"""Identity provider interface.

Every sign-in strategy implements the same capability interface. Adapters are
independent classes behind a typing.Protocol, selected from a dispatch table
keyed by provider name (see factory.py); there is no shared base class.

Redirect-based providers follow the same shape: authorize URL -> code-for-token
exchange -> userinfo fetch -> canonical UserMetadata.
"""

import base64
import hashlib
import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Protocol, Sequence
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx

from auth_gateway.domain.exceptions import UpstreamError
from auth_gateway.domain.models import ProviderSession, UserMetadata

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class IdentityProvider(Protocol):
    """Capability interface shared by all identity providers.

    Attributes:
        name: Provider name used in auth codes and redirects (local, google, supabase)
        requires_pkce: Whether begin_signin needs a code_challenge and the
            exchange a matching code_verifier
    """

    name: str
    requires_pkce: bool

    def begin_signin(
        self,
        scopes: Optional[Sequence[str]],
        redirect_uri: str,
        state: Optional[str],
        code_challenge: Optional[str] = None,
    ) -> str:
        """Build the provider authorization URL.

        Pure construction: no network call, no side effect.

        Args:
            scopes: Scopes to request (provider default when None/empty)
            redirect_uri: Callback URL the provider redirects back to
            state: Opaque value carrying the caller's post-login redirect target
            code_challenge: PKCE S256 challenge (PKCE providers only)

        Returns:
            Authorization URL to redirect the user to

        Raises:
            ConfigurationError: If provider credentials are missing
        """
        ...

    async def exchange_authorization_code(
        self,
        code: Optional[str],
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> UserMetadata:
        """Exchange the provider's authorization code for canonical user metadata.

        Raises:
            UnauthorizedError: If the code is missing or yields no session
            UpstreamError: If a provider call fails
        """
        ...

    async def refresh_token(self, refresh_token: str) -> ProviderSession:
        """Refresh the provider session.

        Raises:
            UpstreamError: If the provider call fails
        """
        ...


@asynccontextmanager
async def http_session(
    client: Optional[httpx.AsyncClient], timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the shared HTTP client, or a short-lived one when none was injected"""
    if client is not None:
        yield client
    else:
        async with httpx.AsyncClient(timeout=timeout) as session:
            yield session


async def send_provider_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    action: str,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Send a request to an identity provider and return its JSON body.

    Args:
        client: HTTP client
        method: HTTP method
        url: Endpoint URL
        action: Short description used in error messages ("exchange authorization code")

    Raises:
        UpstreamError: On transport failure, timeout, or non-2xx status (status and
            body propagated)
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        logger.error(f"Provider request failed ({action}): {type(e).__name__}: {e}")
        raise UpstreamError(f"Failed to {action}: {type(e).__name__}") from e

    if not response.is_success:
        logger.error(f"Provider request failed ({action}): {response.status_code} {response.text}")
        raise UpstreamError(
            f"Failed to {action}: {response.status_code} {response.text}",
            upstream_status=response.status_code,
            body=response.text,
        )

    try:
        return response.json()
    except ValueError as e:
        raise UpstreamError(
            f"Failed to {action}: provider returned invalid JSON",
            upstream_status=response.status_code,
            body=response.text,
        ) from e


def add_query_params(url: str, params: Mapping[str, str]) -> str:
    """Append query parameters to a URL, keeping any existing query and fragment"""
    parts = urlsplit(url)
    extra = urlencode(params)
    query = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def create_code_verifier() -> str:
    """Generate a PKCE code verifier (43-128 chars, RFC 7636)"""
    return secrets.token_urlsafe(48)


def create_code_challenge(code_verifier: str) -> str:
    """Derive the S256 PKCE code challenge for a verifier"""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
