"""Domain models for Auth Gateway"""

from auth_gateway.domain.models.api_auth import (
    AuthErrorResponse,
    CurrentUserResponse,
    RefreshRequest,
    RefreshResponse,
    SigninResponse,
    SigninWithCodeRequest,
    SignoutResponse,
    SignupResponse,
    UsernamePasswordRequest,
)
from auth_gateway.domain.models.auth import (
    AuthCode,
    AuthCodeGrant,
    AuthInfo,
    CookieDirective,
    IssuedSession,
    LoginAttempt,
    LoginStage,
    ProviderSession,
    TokenPair,
    UserMetadata,
    utc_now,
)

__all__ = [
    # Auth models
    "UserMetadata",
    "AuthInfo",
    "AuthCode",
    "AuthCodeGrant",
    "TokenPair",
    "CookieDirective",
    "IssuedSession",
    "ProviderSession",
    "LoginStage",
    "LoginAttempt",
    "utc_now",
    # API models
    "SigninWithCodeRequest",
    "UsernamePasswordRequest",
    "RefreshRequest",
    "SigninResponse",
    "RefreshResponse",
    "SignupResponse",
    "SignoutResponse",
    "CurrentUserResponse",
    "AuthErrorResponse",
]
