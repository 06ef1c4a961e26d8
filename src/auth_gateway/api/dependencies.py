"""Request dependencies shared by the auth routes.

Key Components:
- public: Marks an endpoint as reachable without credentials
- require_authentication: App-wide guard; every endpoint is private unless marked
- get_gateway: The process AuthGateway
- write_cookies: Applies CookieDirective values to an HTTP response
"""

import logging
from typing import Any, Callable, Dict, Iterable, Optional, TypeVar

from fastapi import Request, Response

from auth_gateway.core.auth.gateway import AuthGateway
from auth_gateway.domain.exceptions import UnauthorizedError
from auth_gateway.domain.models import CookieDirective

logger = logging.getLogger(__name__)

PUBLIC_ENDPOINT_ATTR = "__auth_public__"

F = TypeVar("F", bound=Callable[..., Any])


def public(endpoint: F) -> F:
    """Mark an endpoint as public (the guard skips credential extraction)"""
    setattr(endpoint, PUBLIC_ENDPOINT_ATTR, True)
    return endpoint


def is_public(endpoint: Optional[Callable[..., Any]]) -> bool:
    return bool(getattr(endpoint, PUBLIC_ENDPOINT_ATTR, False))


def get_gateway(request: Request) -> AuthGateway:
    """Get the gateway built at startup"""
    return request.app.state.gateway


def extract_credential(request: Request, cookie_name: Optional[str] = None) -> Optional[str]:
    """Find the access token on a request

    Precedence: ``Authorization: Bearer``, then the ``token`` header, then the
    ``token`` query parameter, then the access cookie (when cookies are configured).
    """
    authorization = request.headers.get("Authorization")
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()

    token = request.headers.get("token") or request.query_params.get("token")
    if token:
        return token

    if cookie_name:
        return request.cookies.get(cookie_name) or None
    return None


async def require_authentication(request: Request) -> Optional[Dict[str, Any]]:
    """App-wide guard

    Public endpoints pass through untouched. Private endpoints need a valid
    access token; its claims are stored on ``request.state.auth``.

    Raises:
        UnauthorizedError: If no credential is present or it does not verify
    """
    if is_public(request.scope.get("endpoint")):
        return None

    gateway = get_gateway(request)
    cookie_config = gateway.config.cookie_config
    token = extract_credential(
        request, cookie_config.access_cookie_name if cookie_config else None
    )
    if not token:
        logger.warning(f"Unauthenticated request to {request.url.path}")
        raise UnauthorizedError("Unauthorized")

    claims = gateway.authenticate(token)
    request.state.auth = claims
    return claims


def write_cookies(response: Response, directives: Iterable[CookieDirective]) -> None:
    """Set or delete cookies on a response"""
    for cookie in directives:
        if cookie.is_deletion:
            response.delete_cookie(
                cookie.name,
                path=cookie.path,
                domain=cookie.domain,
                secure=cookie.secure,
                httponly=cookie.httponly,
                samesite=cookie.samesite,
            )
        else:
            response.set_cookie(
                cookie.name,
                cookie.value,
                max_age=cookie.max_age,
                path=cookie.path,
                domain=cookie.domain,
                secure=cookie.secure,
                httponly=cookie.httponly,
                samesite=cookie.samesite,
            )
