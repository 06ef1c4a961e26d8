"""Local identity provider (username/password).

Default strategy for self-hosted deployments. There is no redirect flow:
clients post credentials directly and the gateway issues a session.
Passwords are hashed with bcrypt; the hash lives on the user's AuthInfo.
"""

import logging
import re
import uuid
from typing import NoReturn, Optional, Sequence

import bcrypt

from auth_gateway.domain.exceptions import NotFoundError, UnauthorizedError, ValidationError
from auth_gateway.domain.models import AuthInfo, ProviderSession, UserMetadata
from auth_gateway.infrastructure.auth.user_store import UserStore, normalize_identifier

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
# bcrypt only accepts the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72
INVALID_CREDENTIALS_MESSAGE = "Invalid username or password"

_EMAIL_PATTERN = re.compile(r"^[^@]+@[^@]+\.[^@]+$")
_USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")


class LocalIdentityProvider:
    """Username/password authentication against the user store.

    Features:
    - Signup with username (or email) and password
    - Signin with the same credentials
    - bcrypt hashing with a configurable cost factor

    Configuration:
        AUTH_STRATEGIES=local (default)
        HASH_SALT_ROUNDS=10 (default)
    """

    name = "local"
    requires_pkce = False

    def __init__(self, user_store: UserStore, hash_salt_rounds: int = 10):
        """Initialize local provider.

        Args:
            user_store: Store used to look users up at signin
            hash_salt_rounds: bcrypt cost factor
        """
        self.user_store = user_store
        self.hash_salt_rounds = hash_salt_rounds

    def _no_redirect_flow(self) -> NoReturn:
        raise ValidationError(
            "Local authentication does not use a redirect flow. "
            "Sign in with username and password instead."
        )

    def begin_signin(
        self,
        scopes: Optional[Sequence[str]],
        redirect_uri: str,
        state: Optional[str],
        code_challenge: Optional[str] = None,
    ) -> str:
        self._no_redirect_flow()

    async def exchange_authorization_code(
        self,
        code: Optional[str],
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> UserMetadata:
        self._no_redirect_flow()

    async def refresh_token(self, refresh_token: str) -> ProviderSession:
        raise ValidationError("Local sessions are refreshed with the gateway refresh token")

    def prepare_signup(self, username: str, password: str) -> UserMetadata:
        """Validate signup input and hash the password.

        Args:
            username: Username or email address
            password: Plain text password

        Returns:
            UserMetadata for the new user, carrying the bcrypt hash

        Raises:
            ValidationError: If the username or password is not acceptable
        """
        identifier = normalize_identifier(username or "")
        if not 3 <= len(identifier) <= 50:
            raise ValidationError("Username must be between 3 and 50 characters")
        if not (_EMAIL_PATTERN.match(identifier) or _USERNAME_PATTERN.match(identifier)):
            raise ValidationError(
                "Username must be a valid email address or contain only letters, "
                "numbers, dots, underscores, and hyphens"
            )
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        if len(password.encode()) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

        password_hash = bcrypt.hashpw(
            password.encode(), bcrypt.gensalt(rounds=self.hash_salt_rounds)
        ).decode()

        return UserMetadata(
            provider=self.name,
            provider_id=str(uuid.uuid4()),
            identifier=identifier,
            name=identifier,
            email=identifier if _EMAIL_PATTERN.match(identifier) else None,
            password_hash=password_hash,
        )

    async def verify_credentials(self, username: str, password: str) -> AuthInfo:
        """Check a username/password pair.

        Unknown user, user without a password and wrong password all raise the
        same error.

        Raises:
            UnauthorizedError: If the credentials do not match
        """
        identifier = normalize_identifier(username or "")
        try:
            auth_info = await self.user_store.find_by_identifier(identifier, self.name)
        except NotFoundError:
            logger.warning(f"Login failed: user not found ({identifier})")
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)

        if not auth_info.password_hash:
            logger.warning(f"Login failed: no local password for {identifier}")
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)

        password_bytes = (password or "").encode()
        if len(password_bytes) > MAX_PASSWORD_BYTES or not bcrypt.checkpw(
            password_bytes, auth_info.password_hash.encode()
        ):
            logger.warning(f"Login failed: invalid password ({identifier})")
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)

        logger.info(f"User authenticated successfully: {identifier} ({auth_info.user_id})")
        return auth_info
