"""Identity provider layer.

Supports multiple sign-in strategies via interchangeable providers:
- local: Username/password with bcrypt (self-hosted default)
- google: Google OAuth2 authorization-code flow
- supabase: Supabase GoTrue PKCE flow
"""

from .provider import IdentityProvider
from .factory import build_identity_providers, get_identity_provider
from .gateway import AuthGateway, build_gateway

__all__ = [
    "IdentityProvider",
    "build_identity_providers",
    "get_identity_provider",
    "AuthGateway",
    "build_gateway",
]
