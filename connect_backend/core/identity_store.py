"""
Storage for user id to Stripe customer id mappings.

Two backends:
1. In-memory dict, process-wide, lost on restart (default)
2. Redis, shared between processes and restarts
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis.asyncio as aioredis
import structlog

from connect_backend.config import Settings, get_settings

logger = structlog.get_logger(__name__)


class IdentityStore(ABC):
    """Key-value store mapping user ids to customer ids."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[str]:
        """Return the customer id for ``user_id``, or None."""

    @abstractmethod
    async def set(self, user_id: str, customer_id: str) -> None:
        """Associate ``user_id`` with ``customer_id``."""

    async def contains(self, user_id: str) -> bool:
        return await self.get(user_id) is not None

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryIdentityStore(IdentityStore):
    """Unbounded dict-backed store. No eviction, no persistence."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._mappings: Dict[str, str] = dict(initial or {})

    async def get(self, user_id: str) -> Optional[str]:
        return self._mappings.get(user_id)

    async def set(self, user_id: str, customer_id: str) -> None:
        self._mappings[user_id] = customer_id

    async def contains(self, user_id: str) -> bool:
        return user_id in self._mappings

    def __len__(self) -> int:
        return len(self._mappings)


class RedisIdentityStore(IdentityStore):
    """
    Redis-backed store.

    Keys are ``<prefix><user_id>`` with no TTL; customer ids never change
    once assigned.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        key_prefix: str = "identity:customer:",
        redis_client: Optional[aioredis.Redis] = None,
    ):
        """
        Initialize Redis identity store.

        Args:
            redis_url: Redis connection URL, used when no client is given
            key_prefix: Prefix for every mapping key
            redis_client: Optional Redis client (creates one if not provided)
        """
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.redis_client = redis_client

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    async def _ensure_redis(self) -> aioredis.Redis:
        """Ensure Redis client is initialized."""
        if self.redis_client is None:
            if not self.redis_url:
                raise ValueError("redis_url is required for RedisIdentityStore")
            self.redis_client = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self.redis_client

    async def get(self, user_id: str) -> Optional[str]:
        redis = await self._ensure_redis()
        return await redis.get(self._key(user_id))

    async def set(self, user_id: str, customer_id: str) -> None:
        redis = await self._ensure_redis()
        # NX keeps the first mapping if two processes race
        await redis.set(self._key(user_id), customer_id, nx=True)

    async def contains(self, user_id: str) -> bool:
        redis = await self._ensure_redis()
        return bool(await redis.exists(self._key(user_id)))

    async def close(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
            logger.info("identity_store_closed", backend="redis")


def create_identity_store(settings: Optional[Settings] = None) -> IdentityStore:
    """Build the identity store selected by ``identity_store_backend``."""
    settings = settings or get_settings()
    if settings.identity_store_backend == "redis":
        logger.info("identity_store_selected", backend="redis")
        return RedisIdentityStore(
            redis_url=settings.redis_url,
            key_prefix=settings.identity_key_prefix,
        )
    logger.info("identity_store_selected", backend="memory")
    return InMemoryIdentityStore()
