"""Identity provider factory.

Builds the dispatch table of identity providers from the configured
strategies. The table is built once at startup and handed to the gateway;
there is no module-global provider instance.
"""

import logging
from typing import Dict, Mapping, Optional

import httpx

from auth_gateway.config.strategies import (
    AuthConfig,
    GoogleAuthConfig,
    LocalAuthConfig,
    SupabaseAuthConfig,
)
from auth_gateway.domain.exceptions import ConfigurationError, ValidationError
from auth_gateway.infrastructure.auth.user_store import UserStore

from .google import GoogleIdentityProvider
from .local import LocalIdentityProvider
from .provider import DEFAULT_TIMEOUT_SECONDS, IdentityProvider
from .supabase import SupabaseIdentityProvider

logger = logging.getLogger(__name__)


def build_identity_providers(
    config: AuthConfig,
    user_store: UserStore,
    http_client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Dict[str, IdentityProvider]:
    """Build the provider dispatch table for the configured strategies.

    Args:
        config: Process authentication configuration
        user_store: User store (used by the local strategy)
        http_client: Shared HTTP client for remote providers
        timeout: Request timeout when no shared client is given

    Returns:
        Mapping of provider name to adapter

    Raises:
        ConfigurationError: On duplicate strategy types or missing credentials
    """
    providers: Dict[str, IdentityProvider] = {}

    for strategy in config.strategies:
        name = strategy.provider_name
        if name in providers:
            raise ConfigurationError(f"Duplicate auth strategy: {name}")

        if isinstance(strategy, LocalAuthConfig):
            providers[name] = LocalIdentityProvider(
                user_store, hash_salt_rounds=config.hash_salt_rounds
            )

        elif isinstance(strategy, GoogleAuthConfig):
            if not strategy.client_id or not strategy.client_secret:
                raise ConfigurationError(
                    "Google strategy requires: GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET"
                )
            providers[name] = GoogleIdentityProvider(strategy, http_client, timeout)

        elif isinstance(strategy, SupabaseAuthConfig):
            if not strategy.url or not strategy.anon_key:
                raise ConfigurationError(
                    "Supabase strategy requires: SUPABASE_URL, SUPABASE_ANON_KEY"
                )
            providers[name] = SupabaseIdentityProvider(strategy, http_client, timeout)

        else:
            raise ConfigurationError(f"Unsupported auth strategy: {strategy.type}")

        logger.info(f"Registered identity provider: {name}")

    if not providers:
        raise ConfigurationError("At least one auth strategy must be configured")

    return providers


def get_identity_provider(
    providers: Mapping[str, IdentityProvider], name: Optional[str]
) -> IdentityProvider:
    """Look up an adapter by provider name.

    Raises:
        ValidationError: If no strategy is registered under that name
    """
    provider = providers.get(name or "")
    if provider is None:
        raise ValidationError(f"Unsupported provider: {name}")
    return provider
