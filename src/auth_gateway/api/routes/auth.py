"""Session Routes

Strategy-independent session endpoints plus the local (username/password)
strategy.

Key Endpoints:
- POST /auth/local/signup: Register a local user
- POST /auth/local/signin: Sign in with username/password
- POST /auth/refresh: Exchange a refresh token for a new token pair
- GET|POST /auth/signout: Clear session cookies
- GET /auth/me: Current authenticated user
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response, status
from fastapi.responses import RedirectResponse

from auth_gateway.api.dependencies import get_gateway, public, write_cookies
from auth_gateway.core.auth.gateway import AuthGateway
from auth_gateway.domain.models import (
    CurrentUserResponse,
    RefreshRequest,
    RefreshResponse,
    SigninResponse,
    SignoutResponse,
    SignupResponse,
    UsernamePasswordRequest,
)

router = APIRouter(prefix="/auth", tags=["authentication"])
logger = logging.getLogger(__name__)


@router.post("/local/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
@public
async def signup_with_username(
    request: UsernamePasswordRequest,
    gateway: AuthGateway = Depends(get_gateway),
):
    """Register a local user

    Returns 400 if the user already exists or the password is too short.
    """
    auth_info = await gateway.signup_with_username(request.username, request.password)
    return SignupResponse(user_id=auth_info.user_id, identifier=auth_info.identifier)


@router.post("/local/signin", response_model=SigninResponse)
@public
async def signin_with_username(
    request: UsernamePasswordRequest,
    response: Response,
    gateway: AuthGateway = Depends(get_gateway),
):
    """Sign in with username/password

    Unknown user and wrong password both return 401 with the same message.
    """
    session = await gateway.signin_with_username(request.username, request.password)
    write_cookies(response, session.cookies)
    return SigninResponse(
        access_token=session.tokens.access_token, user_id=session.auth_info.user_id
    )


@router.post("/refresh", response_model=RefreshResponse)
@public
async def refresh_session(
    http_request: Request,
    response: Response,
    request: Optional[RefreshRequest] = Body(None),
    gateway: AuthGateway = Depends(get_gateway),
):
    """Refresh the session

    The refresh token comes from the body, or from the refresh cookie when
    cookies are configured.
    """
    refresh_token = request.refresh_token if request else None
    cookie_config = gateway.config.cookie_config
    if not refresh_token and cookie_config:
        refresh_token = http_request.cookies.get(cookie_config.refresh_cookie_name)

    session = await gateway.refresh_session(refresh_token)
    write_cookies(response, session.cookies)
    return RefreshResponse(
        access_token=session.tokens.access_token,
        refresh_token=session.tokens.refresh_token,
        user_id=session.auth_info.user_id,
        expires_in=session.tokens.expires_in,
    )


@router.api_route("/signout", methods=["GET", "POST"], response_model=SignoutResponse)
@public
async def signout(
    response: Response,
    redirect_uri: Optional[str] = Query(None),
    gateway: AuthGateway = Depends(get_gateway),
):
    """Sign out

    Tokens are stateless, so signout only clears the client's cookies. Redirects
    when ``redirect_uri`` is on a strategy's allow-list.
    """
    cookies = gateway.signout()

    if redirect_uri and gateway.redirect_allowed(redirect_uri):
        redirect = RedirectResponse(redirect_uri, status_code=status.HTTP_302_FOUND)
        write_cookies(redirect, cookies)
        return redirect

    if redirect_uri:
        logger.warning(f"Ignoring signout redirect to disallowed URL: {redirect_uri}")

    write_cookies(response, cookies)
    return SignoutResponse()


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(request: Request):
    """Get the authenticated caller

    Requires a valid access token.
    """
    claims = request.state.auth
    return CurrentUserResponse(
        user_id=claims["sub"],
        identifier=claims.get("identifier"),
        provider=claims.get("provider"),
    )
