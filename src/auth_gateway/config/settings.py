"""Configuration Settings for Auth Gateway

Manages environment variables and application configuration.
``Settings`` is the raw environment view; ``Settings.to_auth_config()``
turns it into the frozen ``AuthConfig`` handed to every component.
"""

import re
from functools import lru_cache
from typing import Literal, Optional, Union

from pydantic_settings import BaseSettings

from auth_gateway.config.strategies import (
    AuthConfig,
    AuthJwtConfig,
    AuthStrategyType,
    CookieOptions,
    create_google_auth_strategy,
    create_local_auth_strategy,
    create_supabase_auth_strategy,
)
from auth_gateway.domain.exceptions import ConfigurationError

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*(s|m|h|d)?\s*$")
_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: Union[str, int]) -> int:
    """Parse a duration such as ``"30s"``, ``"5m"``, ``"1h"``, ``"7d"`` into seconds

    Plain integers (or digit strings) are taken as seconds.

    Raises:
        ConfigurationError: If the value is not a recognised duration
    """
    if isinstance(value, int):
        seconds = value
    else:
        match = _DURATION_PATTERN.match(str(value))
        if not match:
            raise ConfigurationError(f"Invalid duration: {value!r}")
        seconds = int(match.group(1)) * _DURATION_UNITS[match.group(2) or "s"]
    if seconds <= 0:
        raise ConfigurationError(f"Duration must be positive: {value!r}")
    return seconds


class Settings(BaseSettings):
    """Application settings"""

    # Service info
    service_name: str = "auth-gateway"
    service_version: str = "1.0.0"
    environment: str = "development"

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Storage backend for auth codes and users: "redis" or "memory"
    storage_backend: Literal["redis", "memory"] = "redis"

    # Redis configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    @property
    def redis_url(self) -> str:
        """Construct Redis URL from components"""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Strategies (comma-separated: local, google, supabase)
    auth_strategies: str = "local"

    # Google OAuth2
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_redirect_url: str = "http://localhost:3000"

    # Supabase
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_redirect_url: str = "http://localhost:3000"
    supabase_oauth_provider: str = "google"

    # JWT configuration
    jwt_algorithm: str = "HS256"
    jwt_secret: str = "dev-secret-change-in-production"
    jwt_expiry: str = "1h"
    jwt_refresh_secret: str = "dev-refresh-secret-change-in-production"
    jwt_refresh_expiry: str = "7d"

    # Session cookies (disabled: tokens are returned in the body only)
    cookie_enabled: bool = False
    cookie_access_name: str = "access_token"
    cookie_refresh_name: str = "refresh_token"
    cookie_domain: Optional[str] = None
    cookie_path: str = "/"
    cookie_secure: bool = True
    cookie_httponly: bool = True
    cookie_samesite: Literal["lax", "strict", "none"] = "lax"

    # Local strategy password hashing cost factor
    hash_salt_rounds: int = 10

    # Intermediary auth code lifetime
    auth_code_expiry: str = "5m"

    # Outbound provider HTTP timeout (seconds)
    provider_timeout_seconds: float = 10.0

    # CORS configuration
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def to_auth_config(self) -> AuthConfig:
        """Build the immutable AuthConfig from environment settings

        Raises:
            ConfigurationError: If a strategy name or duration is invalid
        """
        strategies = []
        for name in [s.strip().lower() for s in self.auth_strategies.split(",") if s.strip()]:
            if name == AuthStrategyType.LOCAL.value:
                strategies.append(create_local_auth_strategy())
            elif name == AuthStrategyType.GOOGLE.value:
                strategies.append(
                    create_google_auth_strategy(
                        client_id=self.google_client_id,
                        client_secret=self.google_client_secret,
                        redirect_url=self.google_redirect_url,
                    )
                )
            elif name == AuthStrategyType.SUPABASE.value:
                strategies.append(
                    create_supabase_auth_strategy(
                        url=self.supabase_url,
                        anon_key=self.supabase_anon_key,
                        redirect_url=self.supabase_redirect_url,
                        oauth_provider=self.supabase_oauth_provider,
                    )
                )
            else:
                raise ConfigurationError(
                    f"Unknown auth strategy: {name}. Valid options: local, google, supabase"
                )

        cookie_config = None
        if self.cookie_enabled:
            cookie_config = CookieOptions(
                access_cookie_name=self.cookie_access_name,
                refresh_cookie_name=self.cookie_refresh_name,
                domain=self.cookie_domain,
                path=self.cookie_path,
                secure=self.cookie_secure,
                httponly=self.cookie_httponly,
                samesite=self.cookie_samesite,
            )

        return AuthConfig(
            strategies=tuple(strategies),
            jwt_config=AuthJwtConfig(
                secret=self.jwt_secret,
                expiry_seconds=parse_duration(self.jwt_expiry),
                refresh_secret=self.jwt_refresh_secret,
                refresh_expiry_seconds=parse_duration(self.jwt_refresh_expiry),
                algorithm=self.jwt_algorithm,
            ),
            cookie_config=cookie_config,
            hash_salt_rounds=self.hash_salt_rounds,
            auth_code_expiry_seconds=parse_duration(self.auth_code_expiry),
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance

    Returns:
        Settings instance
    """
    return Settings()
