"""User Storage

Purpose: Default implementations of the user store collaborator

The gateway only depends on the ``UserStore`` protocol
(``find_by_id``, ``find_by_identifier``, ``create_user``). Two
implementations ship with the service so it runs standalone:

- RedisUserStore: production default
- MemoryUserStore: single-process development and tests

Invariant: at most one user per (provider, identifier) pair. ``create_user`` on a
pair that already exists returns the existing record instead of creating another.
The same email signed in through two providers is two separate users.

Storage Schema (Redis):
- auth:info:{auth_id} -> {auth_info_json}
- auth:identifier:{provider}:{identifier} -> {auth_id}
"""

import asyncio
import logging
import uuid
from typing import Dict, Optional, Protocol, Tuple

from redis.asyncio import Redis

from auth_gateway.domain.exceptions import NotFoundError
from auth_gateway.domain.models import AuthInfo, UserMetadata

logger = logging.getLogger(__name__)


class UserStore(Protocol):
    """User store collaborator interface"""

    async def find_by_id(self, auth_id: str) -> AuthInfo:
        """Raises NotFoundError if absent"""
        ...

    async def find_by_identifier(self, identifier: str, provider: str) -> AuthInfo:
        """Raises NotFoundError if absent"""
        ...

    async def create_user(self, metadata: UserMetadata) -> AuthInfo:
        ...


def normalize_identifier(identifier: str) -> str:
    return identifier.strip().lower()


def build_auth_info(metadata: UserMetadata) -> AuthInfo:
    """Create a fresh AuthInfo record for a new user"""
    return AuthInfo(
        id=str(uuid.uuid4()),
        user_id=str(uuid.uuid4()),
        identifier=normalize_identifier(metadata.identifier),
        provider=metadata.provider,
        provider_id=metadata.provider_id,
        name=metadata.name,
        email=metadata.email,
        picture_url=metadata.picture_url,
        password_hash=metadata.password_hash,
    )


class RedisUserStore:
    """Redis-backed user store"""

    def __init__(self, redis_client: Redis):
        """Initialize user store

        Args:
            redis_client: Redis connection for user storage
        """
        self.redis = redis_client

        # Redis key patterns
        self.info_key_pattern = "auth:info:{}"
        self.identifier_key_pattern = "auth:identifier:{}:{}"

    async def find_by_id(self, auth_id: str) -> AuthInfo:
        """Get user by auth record id

        Raises:
            NotFoundError: If no such user
        """
        if not auth_id:
            raise NotFoundError("User not found")

        data = await self._redis_get(self.info_key_pattern.format(auth_id))
        if not data:
            raise NotFoundError(f"User {auth_id} not found")

        return AuthInfo.model_validate_json(data)

    async def find_by_identifier(self, identifier: str, provider: str) -> AuthInfo:
        """Get user by provider and canonical identifier

        Raises:
            NotFoundError: If no such user
        """
        if not identifier:
            raise NotFoundError("User not found")

        auth_id = await self._redis_get(
            self.identifier_key_pattern.format(provider, normalize_identifier(identifier))
        )
        if not auth_id:
            raise NotFoundError(f"User '{provider}:{identifier}' not found")

        return await self.find_by_id(auth_id)

    async def create_user(self, metadata: UserMetadata) -> AuthInfo:
        """Create a user, or return the existing one for the same provider and identifier

        The record is written before the identifier index is claimed (SET NX),
        so a concurrent reader that wins the index never sees a dangling id.
        """
        auth_info = build_auth_info(metadata)
        info_key = self.info_key_pattern.format(auth_info.id)
        identifier_key = self.identifier_key_pattern.format(
            auth_info.provider, auth_info.identifier
        )

        await self._redis_set(info_key, auth_info.model_dump_json())
        claimed = await self.redis.set(identifier_key, auth_info.id, nx=True)

        if not claimed:
            await self._redis_delete(info_key)
            logger.info(f"User '{auth_info.identifier}' already exists, returning existing record")
            return await self.find_by_identifier(auth_info.identifier, auth_info.provider)

        logger.info(f"Created user {auth_info.user_id} ({metadata.provider}:{auth_info.identifier})")
        return auth_info

    # Redis async wrapper methods
    async def _redis_set(self, key: str, value: str) -> None:
        """Set Redis key"""
        try:
            await self.redis.set(key, value)
        except Exception as e:
            logger.error(f"Redis SET failed for key {key}: {e}")
            raise

    async def _redis_get(self, key: str) -> Optional[str]:
        """Get Redis key value"""
        try:
            result = await self.redis.get(key)
            return result if result else None
        except Exception as e:
            logger.error(f"Redis GET failed for key {key}: {e}")
            raise

    async def _redis_delete(self, key: str) -> None:
        """Delete Redis key"""
        try:
            await self.redis.delete(key)
        except Exception as e:
            logger.error(f"Redis DELETE failed for key {key}: {e}")
            raise


class MemoryUserStore:
    """In-process user store

    Data is lost on restart; single-instance deployments and tests only.
    """

    def __init__(self):
        self._users: Dict[str, AuthInfo] = {}
        self._by_identifier: Dict[Tuple[str, str], str] = {}
        self._lock = asyncio.Lock()

    async def find_by_id(self, auth_id: str) -> AuthInfo:
        auth_info = self._users.get(auth_id)
        if auth_info is None:
            raise NotFoundError(f"User {auth_id} not found")
        return auth_info

    async def find_by_identifier(self, identifier: str, provider: str) -> AuthInfo:
        auth_id = self._by_identifier.get((provider, normalize_identifier(identifier or "")))
        if auth_id is None:
            raise NotFoundError(f"User '{provider}:{identifier}' not found")
        return self._users[auth_id]

    async def create_user(self, metadata: UserMetadata) -> AuthInfo:
        async with self._lock:
            key = (metadata.provider, normalize_identifier(metadata.identifier))
            existing = self._by_identifier.get(key)
            if existing is not None:
                return self._users[existing]

            auth_info = build_auth_info(metadata)
            self._users[auth_info.id] = auth_info
            self._by_identifier[key] = auth_info.id
            logger.info(f"Created user {auth_info.user_id} ({metadata.provider}:{auth_info.identifier})")
            return auth_info

    def __len__(self) -> int:
        return len(self._users)
