"""Authentication Data Models

Purpose: Define data structures for identities, auth codes and sessions

Key Components:
- UserMetadata: Canonical identity produced by an identity provider
- AuthInfo: Persisted user record returned by the user store
- AuthCode: Short-lived, single-use intermediary code
- TokenPair / IssuedSession: Minted session tokens
- CookieDirective: Pure description of a cookie write
- ProviderSession: Remote provider token-endpoint response
- LoginStage / LoginAttempt: Per-attempt state machine
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UserMetadata(BaseModel):
    """Identity normalized from a provider login

    Attributes:
        provider: Provider name (local, google, supabase)
        provider_id: Provider's stable subject id
        identifier: Canonical lookup key in the user store (email or username)
        password_hash: bcrypt hash, set only by the local strategy at signup
    """
    provider: str
    provider_id: str
    identifier: str
    name: Optional[str] = None
    email: Optional[str] = None
    picture_url: Optional[str] = None
    password_hash: Optional[str] = Field(default=None, repr=False)


class AuthInfo(BaseModel):
    """User record owned by the user store"""
    id: str
    user_id: str
    identifier: str
    provider: str
    provider_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    picture_url: Optional[str] = None
    password_hash: Optional[str] = Field(default=None, repr=False)
    created_at: datetime = Field(default_factory=utc_now)


class AuthCode(BaseModel):
    """Intermediary auth code

    ``value`` is only populated on the freshly issued code handed back to the
    caller; stored copies keep just its hash as the lookup key.
    """
    id: str
    value: Optional[str] = Field(default=None, repr=False)
    identifier: str
    provider: str
    issued_at: datetime
    expiry: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expiry


class AuthCodeGrant(BaseModel):
    """Result of a successful auth code lookup"""
    auth_code: AuthCode
    auth_info: AuthInfo


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int


class CookieDirective(BaseModel):
    """A cookie to set (``value`` present) or delete (``value`` None)"""
    name: str
    value: Optional[str] = Field(default=None, repr=False)
    max_age: Optional[int] = None
    domain: Optional[str] = None
    path: str = "/"
    secure: bool = True
    httponly: bool = True
    samesite: str = "lax"

    @property
    def is_deletion(self) -> bool:
        return self.value is None


class IssuedSession(BaseModel):
    tokens: TokenPair
    auth_info: AuthInfo
    cookies: list[CookieDirective] = Field(default_factory=list)


class ProviderSession(BaseModel):
    """Token-endpoint response from a remote identity provider"""
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    id_token: Optional[str] = None


class LoginStage(Enum):
    """Login attempt stages, in order"""
    STARTED = "started"
    PROVIDER_EXCHANGED = "provider_exchanged"
    USER_RESOLVED = "user_resolved"
    CODE_ISSUED = "code_issued"
    CODE_REDEEMED = "code_redeemed"
    SESSION_ISSUED = "session_issued"
    FAILED = "failed"


_STAGE_ORDER = [
    LoginStage.STARTED,
    LoginStage.PROVIDER_EXCHANGED,
    LoginStage.USER_RESOLVED,
    LoginStage.CODE_ISSUED,
    LoginStage.CODE_REDEEMED,
    LoginStage.SESSION_ISSUED,
]


@dataclass
class LoginAttempt:
    """Tracks one login attempt through its stages

    Stages only move forward. Any stage may end in FAILED; SESSION_ISSUED and
    FAILED are terminal. A failed attempt is never retried: the client starts over.
    """
    provider: str
    stage: LoginStage = LoginStage.STARTED
    failure_reason: Optional[str] = None
    history: list[LoginStage] = field(default_factory=lambda: [LoginStage.STARTED])

    @classmethod
    def resume(cls, provider: str, stage: LoginStage) -> "LoginAttempt":
        """Continue an attempt whose earlier stages ran in a previous request"""
        return cls(provider=provider, stage=stage, history=[stage])

    @property
    def is_terminal(self) -> bool:
        return self.stage in (LoginStage.SESSION_ISSUED, LoginStage.FAILED)

    def advance(self, stage: LoginStage) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Login attempt already {self.stage.value}")
        if stage == LoginStage.FAILED or _STAGE_ORDER.index(stage) <= _STAGE_ORDER.index(self.stage):
            raise RuntimeError(
                f"Illegal login transition: {self.stage.value} -> {stage.value}"
            )
        self.stage = stage
        self.history.append(stage)
        logger.debug(f"Login attempt ({self.provider}) -> {stage.value}")

    def fail(self, reason: str) -> None:
        if self.is_terminal:
            return
        self.stage = LoginStage.FAILED
        self.failure_reason = reason
        self.history.append(LoginStage.FAILED)
        logger.info(f"Login attempt ({self.provider}) failed: {reason}")
