"""Auth Gateway exception taxonomy.

Every error the core raises derives from AuthGatewayError and carries the
HTTP status and machine-readable error code it is rendered with at the
request boundary.
"""

from typing import Optional

INVALID_CODE_MESSAGE = "Invalid authentication code. Please try again."


class AuthGatewayError(Exception):
    """Base class for gateway errors."""

    status_code: int = 500
    error: str = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(AuthGatewayError):
    """Provider credentials or settings are missing or invalid."""

    status_code = 500
    error = "configuration_error"


class ValidationError(AuthGatewayError):
    """Malformed or disallowed input (bad redirect URL, missing provider, ...)."""

    status_code = 400
    error = "validation_error"


class UnauthorizedError(AuthGatewayError):
    """Missing or invalid credential."""

    status_code = 401
    error = "unauthorized"


class TokenExpiredError(UnauthorizedError):
    """Token signature is valid but its expiry has passed."""

    error = "token_expired"


class TokenInvalidError(UnauthorizedError):
    """Token is malformed, has a bad signature, or is the wrong kind."""

    error = "token_invalid"


class InvalidCodeError(AuthGatewayError):
    """Auth code not found, already consumed, or expired.

    The message is the same in all three cases.
    """

    status_code = 400
    error = "invalid_code"

    def __init__(self, message: str = INVALID_CODE_MESSAGE):
        super().__init__(message)


class NotFoundError(AuthGatewayError):
    """User store lookup found nothing."""

    status_code = 404
    error = "not_found"


class UpstreamError(AuthGatewayError):
    """Remote identity provider returned a failure or could not be reached.

    Attributes:
        upstream_status: HTTP status returned by the provider (None on transport failure)
        body: Response body returned by the provider
    """

    error = "upstream_error"

    def __init__(self, message: str, upstream_status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.body = body

    @property
    def status_code(self) -> int:
        # Provider 4xx means the client sent something bad (expired code, bad grant)
        if self.upstream_status is not None and 400 <= self.upstream_status < 500:
            return 400
        return 502
