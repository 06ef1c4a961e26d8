"""Auth Code Store

Purpose: Issue and redeem short-lived, single-use intermediary auth codes

An auth code binds an (identifier, provider) pair for a few minutes between
the provider callback redirect and the client's code-for-session exchange.

Key Features:
- 256-bit random code values (secrets.token_urlsafe)
- Codes stored under the SHA-256 hash of their value, never in plaintext
- Atomic delete-and-return on redemption: one success per code, even under
  concurrent requests
- Expiry checked at redemption time; an expired code is removed by the same
  read that rejects it
- Not found, already redeemed and expired all raise the same InvalidCodeError

Storage Schema (Redis):
- auth:code:{provider}:{code_hash} -> {auth_code_json}   (TTL = expiry)
- auth:code_id:{code_id} -> auth:code:{provider}:{code_hash}   (TTL = expiry)
"""

import asyncio
import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, Protocol

from redis.asyncio import Redis

from auth_gateway.domain.exceptions import InvalidCodeError
from auth_gateway.domain.models import AuthCode, utc_now

logger = logging.getLogger(__name__)

DEFAULT_AUTH_CODE_EXPIRY_SECONDS = 300
MAX_ISSUE_ATTEMPTS = 5


class AuthCodeStore(Protocol):
    """Auth code store interface"""

    async def issue(self, identifier: str, provider: str) -> AuthCode:
        """Issue a new code; the returned AuthCode carries ``value``"""
        ...

    async def redeem(self, value: str, provider: str) -> AuthCode:
        """Consume a code. Raises InvalidCodeError if unusable"""
        ...

    async def clear(self, code_id: str) -> None:
        """Invalidate a code by id. Idempotent"""
        ...


def generate_code_value() -> str:
    return secrets.token_urlsafe(32)


def hash_code(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


def _new_auth_code(identifier: str, provider: str, now: datetime, expiry_seconds: int) -> AuthCode:
    return AuthCode(
        id=str(uuid.uuid4()),
        identifier=identifier,
        provider=provider,
        issued_at=now,
        expiry=now + timedelta(seconds=expiry_seconds),
    )


class MemoryAuthCodeStore:
    """In-process auth code store

    All reads and writes go through one asyncio lock, so pop-on-redeem is a
    compare-and-delete. Single-instance deployments and tests only.
    """

    def __init__(
        self,
        expiry_seconds: int = DEFAULT_AUTH_CODE_EXPIRY_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.expiry_seconds = expiry_seconds
        self._clock = clock
        self._codes: Dict[str, AuthCode] = {}
        self._ids: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(provider: str, value: str) -> str:
        return f"{provider}:{hash_code(value)}"

    async def issue(self, identifier: str, provider: str) -> AuthCode:
        async with self._lock:
            for _ in range(MAX_ISSUE_ATTEMPTS):
                value = generate_code_value()
                key = self._key(provider, value)
                if key not in self._codes:
                    break
            else:
                raise RuntimeError("Could not generate a unique auth code")

            auth_code = _new_auth_code(identifier, provider, self._clock(), self.expiry_seconds)
            self._codes[key] = auth_code
            self._ids[auth_code.id] = key

        logger.info(f"Issued auth code {auth_code.id} for {provider}:{identifier}")
        return auth_code.model_copy(update={"value": value})

    async def redeem(self, value: str, provider: str) -> AuthCode:
        if not value or not provider:
            raise InvalidCodeError()

        async with self._lock:
            auth_code = self._codes.pop(self._key(provider, value), None)
            if auth_code is not None:
                self._ids.pop(auth_code.id, None)

        if auth_code is None:
            logger.warning(f"Auth code redemption failed: unknown code ({provider})")
            raise InvalidCodeError()
        if auth_code.is_expired(self._clock()):
            logger.warning(f"Auth code redemption failed: code {auth_code.id} expired")
            raise InvalidCodeError()

        logger.info(f"Redeemed auth code {auth_code.id}")
        return auth_code

    async def clear(self, code_id: str) -> None:
        async with self._lock:
            key = self._ids.pop(code_id, None)
            if key is not None:
                self._codes.pop(key, None)

    def __len__(self) -> int:
        return len(self._codes)


class RedisAuthCodeStore:
    """Redis-backed auth code store

    Redemption uses GETDEL, a single atomic command, so two concurrent
    redemptions of the same code cannot both see it.
    """

    def __init__(
        self,
        redis_client: Redis,
        expiry_seconds: int = DEFAULT_AUTH_CODE_EXPIRY_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize auth code store

        Args:
            redis_client: Redis connection for code storage
            expiry_seconds: Code lifetime
            clock: Current-time source (UTC)
        """
        self.redis = redis_client
        self.expiry_seconds = expiry_seconds
        self._clock = clock

        # Redis key patterns
        self.code_key_pattern = "auth:code:{}:{}"
        self.code_id_key_pattern = "auth:code_id:{}"

    async def issue(self, identifier: str, provider: str) -> AuthCode:
        auth_code = _new_auth_code(identifier, provider, self._clock(), self.expiry_seconds)
        payload = auth_code.model_dump_json()

        for _ in range(MAX_ISSUE_ATTEMPTS):
            value = generate_code_value()
            code_key = self.code_key_pattern.format(provider, hash_code(value))
            created = await self.redis.set(code_key, payload, nx=True, ex=self.expiry_seconds)
            if created:
                break
        else:
            raise RuntimeError("Could not generate a unique auth code")

        await self.redis.set(
            self.code_id_key_pattern.format(auth_code.id), code_key, ex=self.expiry_seconds
        )

        logger.info(f"Issued auth code {auth_code.id} for {provider}:{identifier}")
        return auth_code.model_copy(update={"value": value})

    async def redeem(self, value: str, provider: str) -> AuthCode:
        if not value or not provider:
            raise InvalidCodeError()

        try:
            data = await self.redis.getdel(self.code_key_pattern.format(provider, hash_code(value)))
        except Exception as e:
            logger.error(f"Redis GETDEL failed during auth code redemption: {e}")
            raise

        if not data:
            logger.warning(f"Auth code redemption failed: unknown code ({provider})")
            raise InvalidCodeError()

        auth_code = AuthCode.model_validate_json(data)
        await self.redis.delete(self.code_id_key_pattern.format(auth_code.id))

        if auth_code.is_expired(self._clock()):
            logger.warning(f"Auth code redemption failed: code {auth_code.id} expired")
            raise InvalidCodeError()

        logger.info(f"Redeemed auth code {auth_code.id}")
        return auth_code

    async def clear(self, code_id: str) -> None:
        code_key = await self.redis.getdel(self.code_id_key_pattern.format(code_id))
        if code_key:
            await self.redis.delete(code_key)
