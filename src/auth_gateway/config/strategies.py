"""Authentication Strategy Configuration

Tagged configuration records for each supported sign-in strategy.

A strategy is selected by its ``type`` discriminant. Exactly one strategy per
type may be registered; the identity provider factory builds a dispatch table
keyed by the provider name each type maps to.

Key Components:
- AuthStrategyType: Discriminant values
- LocalAuthConfig / GoogleAuthConfig / SupabaseAuthConfig: Strategy records
- AuthStrategy: Discriminated union of the three
- CookieOptions / AuthJwtConfig / AuthConfig: Immutable process configuration
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class AuthStrategyType(str, Enum):
    """Strategy discriminant values"""
    LOCAL = "local"
    GOOGLE = "google"
    SUPABASE = "supabase"


def split_redirect_urls(redirect_url: Optional[str]) -> list[str]:
    """Split a comma-separated redirect allow-list into its entries"""
    if not redirect_url:
        return []
    return [url.strip() for url in redirect_url.split(",") if url.strip()]


class _StrategyBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def provider_name(self) -> str:
        return self.type.value

    @property
    def allowed_redirect_urls(self) -> list[str]:
        return split_redirect_urls(getattr(self, "redirect_url", None))

    @property
    def default_redirect_url(self) -> Optional[str]:
        urls = self.allowed_redirect_urls
        return urls[0] if urls else None


class LocalAuthConfig(_StrategyBase):
    """Username/password strategy"""
    type: Literal[AuthStrategyType.LOCAL] = AuthStrategyType.LOCAL


class GoogleAuthConfig(_StrategyBase):
    """Google OAuth2 authorization-code strategy

    Attributes:
        client_id: OAuth 2.0 client ID
        client_secret: OAuth 2.0 client secret
        redirect_url: Comma-separated allow-list of post-login redirect targets.
            The first entry is used when the client does not pass ``next``.
    """
    type: Literal[AuthStrategyType.GOOGLE] = AuthStrategyType.GOOGLE
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_url: str = ""


class SupabaseAuthConfig(_StrategyBase):
    """Supabase (GoTrue) strategy using the PKCE code flow

    Attributes:
        url: Project URL (e.g., https://xyzcompany.supabase.co)
        anon_key: Public anon API key sent as the ``apikey`` header
        redirect_url: Comma-separated allow-list of post-login redirect targets
        oauth_provider: Upstream provider Supabase delegates to (google, github, ...)
    """
    type: Literal[AuthStrategyType.SUPABASE] = AuthStrategyType.SUPABASE
    url: Optional[str] = None
    anon_key: Optional[str] = None
    redirect_url: str = ""
    oauth_provider: str = "google"


AuthStrategy = Annotated[
    Union[LocalAuthConfig, GoogleAuthConfig, SupabaseAuthConfig],
    Field(discriminator="type"),
]


def create_local_auth_strategy() -> LocalAuthConfig:
    return LocalAuthConfig()


def create_google_auth_strategy(
    client_id: Optional[str], client_secret: Optional[str], redirect_url: str
) -> GoogleAuthConfig:
    return GoogleAuthConfig(
        client_id=client_id, client_secret=client_secret, redirect_url=redirect_url
    )


def create_supabase_auth_strategy(
    url: Optional[str],
    anon_key: Optional[str],
    redirect_url: str,
    oauth_provider: str = "google",
) -> SupabaseAuthConfig:
    return SupabaseAuthConfig(
        url=url, anon_key=anon_key, redirect_url=redirect_url, oauth_provider=oauth_provider
    )


class AuthJwtConfig(BaseModel):
    """JWT signing configuration (access and refresh use separate keys)"""
    model_config = ConfigDict(frozen=True)

    secret: str
    expiry_seconds: int = 3600
    refresh_secret: str
    refresh_expiry_seconds: int = 7 * 24 * 3600
    algorithm: str = "HS256"


class CookieOptions(BaseModel):
    """Session cookie options

    When present on AuthConfig, issued tokens are also written as cookies.
    """
    model_config = ConfigDict(frozen=True)

    access_cookie_name: str = "access_token"
    refresh_cookie_name: str = "refresh_token"
    domain: Optional[str] = None
    path: str = "/"
    secure: bool = True
    httponly: bool = True
    samesite: Literal["lax", "strict", "none"] = "lax"


class AuthConfig(BaseModel):
    """Process-wide authentication configuration

    Built once at startup and passed by reference to every component.
    Frozen: nothing may mutate it after initialization.
    """
    model_config = ConfigDict(frozen=True)

    strategies: tuple[AuthStrategy, ...]
    jwt_config: AuthJwtConfig
    cookie_config: Optional[CookieOptions] = None
    hash_salt_rounds: int = 10
    auth_code_expiry_seconds: int = 300

    def get_strategy(self, provider: str) -> Optional[_StrategyBase]:
        """Look up the strategy registered for a provider name"""
        for strategy in self.strategies:
            if strategy.provider_name == provider:
                return strategy
        return None

    @property
    def all_redirect_urls(self) -> list[str]:
        urls: list[str] = []
        for strategy in self.strategies:
            urls.extend(strategy.allowed_redirect_urls)
        return urls
