"""Session Issuer

Purpose: Mint and verify the application's access/refresh JWT pair

Tokens are stateless: validity is signature plus expiry, nothing is stored
server-side and there is no revocation list. Signout only clears the copy the
client holds in cookies.

Cookie handling is split in two. This module decides which cookies to set or
delete (CookieDirective values); the route layer writes them onto the HTTP
response.

Token Format:
    access:  {sub, aid, identifier, provider, type="access", iat, exp, jti}
    refresh: {sub, aid, type="refresh", iat, exp, jti}

    sub is the user id, aid the auth record id used to reload AuthInfo.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Literal, Optional

from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError

from auth_gateway.config.strategies import AuthJwtConfig, CookieOptions
from auth_gateway.domain.exceptions import TokenExpiredError, TokenInvalidError
from auth_gateway.domain.models import AuthInfo, CookieDirective, TokenPair, utc_now

logger = logging.getLogger(__name__)

TokenKind = Literal["access", "refresh"]


class SessionIssuer:
    """Access/refresh token signer and verifier"""

    def __init__(
        self,
        jwt_config: AuthJwtConfig,
        cookie_config: Optional[CookieOptions] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize session issuer

        Args:
            jwt_config: Secrets, expiries and algorithm
            cookie_config: Cookie options; None means bearer-only clients
            clock: Current-time source used for iat/exp
        """
        self.jwt_config = jwt_config
        self.cookie_config = cookie_config
        self._clock = clock

        if jwt_config.secret == jwt_config.refresh_secret:
            logger.warning("Access and refresh tokens share a signing secret")

    def create_token_pair(self, auth_info: AuthInfo) -> TokenPair:
        """Sign a fresh access and refresh token for a user

        Args:
            auth_info: User the session belongs to

        Returns:
            TokenPair with both tokens and their lifetimes
        """
        now = self._clock()
        config = self.jwt_config

        access_payload = {
            "sub": auth_info.user_id,
            "aid": auth_info.id,
            "identifier": auth_info.identifier,
            "provider": auth_info.provider,
            "type": "access",
            "iat": now,
            "exp": now + timedelta(seconds=config.expiry_seconds),
            "jti": str(uuid.uuid4()),
        }
        refresh_payload = {
            "sub": auth_info.user_id,
            "aid": auth_info.id,
            "type": "refresh",
            "iat": now,
            "exp": now + timedelta(seconds=config.refresh_expiry_seconds),
            "jti": str(uuid.uuid4()),
        }

        return TokenPair(
            access_token=jwt.encode(access_payload, config.secret, algorithm=config.algorithm),
            refresh_token=jwt.encode(
                refresh_payload, config.refresh_secret, algorithm=config.algorithm
            ),
            expires_in=config.expiry_seconds,
            refresh_expires_in=config.refresh_expiry_seconds,
        )

    def verify(self, token: str, kind: TokenKind = "access") -> Dict[str, Any]:
        """Verify a token's signature, expiry and kind

        Args:
            token: Encoded JWT
            kind: Expected token kind

        Returns:
            Decoded claims

        Raises:
            TokenExpiredError: If the token has expired
            TokenInvalidError: If the token is malformed, badly signed or the wrong kind
        """
        if not token:
            raise TokenInvalidError("Token is empty")

        secret = self.jwt_config.secret if kind == "access" else self.jwt_config.refresh_secret
        try:
            claims = jwt.decode(token, secret, algorithms=[self.jwt_config.algorithm])
        except ExpiredSignatureError:
            raise TokenExpiredError(f"{kind.capitalize()} token has expired")
        except JWTError as e:
            logger.warning(f"{kind.capitalize()} token validation failed: {e}")
            raise TokenInvalidError(f"Invalid {kind} token")

        if claims.get("type") != kind or not claims.get("sub") or not claims.get("aid"):
            raise TokenInvalidError(f"Invalid {kind} token")

        return claims

    def session_cookies(self, tokens: TokenPair) -> List[CookieDirective]:
        """Cookies to set for a freshly issued session (none for bearer-only)"""
        if not self.cookie_config:
            return []
        options = self.cookie_config
        return [
            self._cookie(options.access_cookie_name, tokens.access_token, tokens.expires_in),
            self._cookie(
                options.refresh_cookie_name, tokens.refresh_token, tokens.refresh_expires_in
            ),
        ]

    def signout_cookies(self) -> List[CookieDirective]:
        """Cookies to delete on signout (none for bearer-only)"""
        if not self.cookie_config:
            return []
        return [
            self._cookie(self.cookie_config.access_cookie_name),
            self._cookie(self.cookie_config.refresh_cookie_name),
        ]

    def _cookie(
        self, name: str, value: Optional[str] = None, max_age: Optional[int] = None
    ) -> CookieDirective:
        options = self.cookie_config
        return CookieDirective(
            name=name,
            value=value,
            max_age=max_age,
            domain=options.domain,
            path=options.path,
            secure=options.secure,
            httponly=options.httponly,
            samesite=options.samesite,
        )
