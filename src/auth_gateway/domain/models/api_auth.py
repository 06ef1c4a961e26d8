"""Authentication API Models

Purpose: Request/response models for authentication endpoints

Field names use camelCase aliases on the wire (``accessToken``, ``userId``)
so the HTTP contract matches what existing browser clients send and expect.

Key Components:
- SigninWithCodeRequest: Intermediary code exchange input
- UsernamePasswordRequest: Local strategy signin/signup input
- SigninResponse / SignupResponse / RefreshResponse / SignoutResponse / CurrentUserResponse
- AuthErrorResponse: Structured error body
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SigninWithCodeRequest(_CamelModel):
    """Request model for exchanging an intermediary auth code

    Both fields are optional at the schema level; the gateway reports a
    missing field with a 400 rather than a schema error.
    """

    code: Optional[str] = Field(None, description="Intermediary auth code from the callback redirect")
    provider: Optional[str] = Field(None, description="Provider name from the callback redirect")


class UsernamePasswordRequest(_CamelModel):
    """Request model for local signin and signup

    Format rules are enforced by the local provider so that signin failures
    stay a uniform 401 and signup failures a 400.
    """

    username: str = Field(
        ...,
        description="Username or email address (3-50 chars)",
        examples=["jane.doe@example.com"],
    )
    password: str = Field(..., description="Plain text password")


class RefreshRequest(_CamelModel):
    """Token refresh request (falls back to the refresh cookie when omitted)"""

    refresh_token: Optional[str] = None


class SigninResponse(_CamelModel):
    """Successful signin response"""

    access_token: str
    user_id: str


class RefreshResponse(_CamelModel):
    access_token: str
    refresh_token: str
    user_id: str
    expires_in: int


class SignupResponse(_CamelModel):
    user_id: str
    identifier: str


class SignoutResponse(BaseModel):
    user: None = None


class AuthErrorResponse(BaseModel):
    """Structured error body rendered for gateway errors"""

    error: str = Field(..., description="Machine-readable error code", examples=["invalid_code"])
    message: str = Field(..., description="Human-readable message")


class CurrentUserResponse(_CamelModel):
    """Authenticated caller, read from the verified access token"""

    user_id: str
    identifier: Optional[str] = None
    provider: Optional[str] = None
