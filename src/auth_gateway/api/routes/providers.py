"""Provider Redirect Routes

Redirect-based sign-in shared by every remote identity provider
(Google, Supabase).

Key Endpoints:
- GET /auth/{provider}: Redirect to the provider's authorization page
- GET /auth/{provider}/callback: Provider callback; redirects back to the
  client with an intermediary auth code
- POST /auth/{provider}/token: Exchange the intermediary auth code for a session

Flow:
1. Client opens GET /auth/google?next=https://app.example.com
2. Provider redirects to /auth/google/callback?code=...&state=https://app.example.com
3. Gateway redirects to https://app.example.com?code=<auth code>&provider=google
4. Client POSTs {code, provider} to /auth/google/token and receives the session

For PKCE providers the code verifier is kept in a short-lived HttpOnly cookie
between steps 1 and 2.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import RedirectResponse

from auth_gateway.api.dependencies import get_gateway, public, write_cookies
from auth_gateway.core.auth.gateway import AuthGateway
from auth_gateway.core.auth.provider import create_code_challenge, create_code_verifier
from auth_gateway.domain.models import SigninResponse, SigninWithCodeRequest

router = APIRouter(prefix="/auth", tags=["providers"])
logger = logging.getLogger(__name__)

CODE_VERIFIER_COOKIE = "auth_code_verifier"
CODE_VERIFIER_MAX_AGE = 600


def callback_url(request: Request, provider: str) -> str:
    """Absolute callback URL for a provider, as seen by the client"""
    return str(request.url_for("provider_callback", provider=provider))


@router.get("/{provider}")
@public
async def signin_with_provider(
    provider: str,
    request: Request,
    next: Optional[str] = Query(None, description="Post-login redirect target"),
    scope: Optional[str] = Query(None, description="Space-separated scopes"),
    gateway: AuthGateway = Depends(get_gateway),
):
    """Redirect to the provider's authorization page

    Returns 400 if ``next`` is not on the provider's redirect allow-list.
    """
    adapter = gateway.get_provider(provider)
    scopes = scope.split() if scope else None

    code_verifier = create_code_verifier() if adapter.requires_pkce else None
    code_challenge = create_code_challenge(code_verifier) if code_verifier else None

    url = gateway.begin_signin(
        provider, scopes, callback_url(request, provider), next, code_challenge
    )
    response = RedirectResponse(url, status_code=status.HTTP_302_FOUND)

    if code_verifier:
        response.set_cookie(
            CODE_VERIFIER_COOKIE,
            code_verifier,
            max_age=CODE_VERIFIER_MAX_AGE,
            path="/auth",
            secure=request.url.scheme == "https",
            httponly=True,
            samesite="lax",
        )

    logger.info(f"Redirecting to {provider} authorization")
    return response


@router.get("/{provider}/callback", name="provider_callback")
@public
async def handle_callback(
    provider: str,
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    gateway: AuthGateway = Depends(get_gateway),
):
    """Provider callback

    Exchanges the provider's code, then redirects to ``state`` (or the default
    target) with ``?code=<auth code>&provider=<name>``.
    """
    gateway.validate_next_url(provider, state)
    adapter = gateway.get_provider(provider)
    code_verifier = request.cookies.get(CODE_VERIFIER_COOKIE) if adapter.requires_pkce else None

    auth_code = await gateway.exchange_provider_code(
        provider, code, callback_url(request, provider), code_verifier
    )

    response = RedirectResponse(
        gateway.post_login_redirect(provider, state, auth_code),
        status_code=status.HTTP_302_FOUND,
    )
    if code_verifier:
        response.delete_cookie(CODE_VERIFIER_COOKIE, path="/auth")
    return response


@router.post("/{provider}/token", response_model=SigninResponse)
@public
async def signin_with_code(
    provider: str,
    response: Response,
    request: Optional[SigninWithCodeRequest] = None,
    gateway: AuthGateway = Depends(get_gateway),
):
    """Exchange an intermediary auth code for a session

    Returns 400 if code or provider is missing, or the code is unknown,
    already used or expired.
    """
    gateway.get_provider(provider)
    code = request.code if request else None
    code_provider = request.provider if request else None

    session = await gateway.signin_with_code(code, code_provider)
    write_cookies(response, session.cookies)
    return SigninResponse(
        access_token=session.tokens.access_token, user_id=session.auth_info.user_id
    )
