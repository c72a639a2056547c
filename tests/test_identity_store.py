"""
Unit tests for identity store backends.
"""
from unittest.mock import AsyncMock

import pytest

from connect_backend.config import Settings
from connect_backend.core.identity_store import (
    InMemoryIdentityStore,
    RedisIdentityStore,
    create_identity_store,
)


class TestInMemoryIdentityStore:
    """Test suite for InMemoryIdentityStore."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_set_contains(self) -> None:
        store = InMemoryIdentityStore()

        assert await store.get("u1") is None
        assert not await store.contains("u1")

        await store.set("u1", "cus_1")

        assert await store.get("u1") == "cus_1"
        assert await store.contains("u1")
        assert len(store) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_initial_mappings(self) -> None:
        store = InMemoryIdentityStore({"u1": "cus_1"})

        assert await store.get("u1") == "cus_1"


class TestRedisIdentityStore:
    """Test suite for RedisIdentityStore against a mocked Redis client."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_uses_prefixed_key(self) -> None:
        redis_client = AsyncMock()
        redis_client.get.return_value = "cus_1"
        store = RedisIdentityStore(key_prefix="test:", redis_client=redis_client)

        assert await store.get("u1") == "cus_1"
        redis_client.get.assert_awaited_once_with("test:u1")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_set_keeps_first_mapping(self) -> None:
        redis_client = AsyncMock()
        store = RedisIdentityStore(key_prefix="test:", redis_client=redis_client)

        await store.set("u1", "cus_1")

        redis_client.set.assert_awaited_once_with("test:u1", "cus_1", nx=True)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_contains(self) -> None:
        redis_client = AsyncMock()
        redis_client.exists.return_value = 0
        store = RedisIdentityStore(redis_client=redis_client)

        assert not await store.contains("u1")
        redis_client.exists.assert_awaited_once_with("identity:customer:u1")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_close_releases_client(self) -> None:
        redis_client = AsyncMock()
        store = RedisIdentityStore(redis_client=redis_client)

        await store.close()

        redis_client.aclose.assert_awaited_once()
        assert store.redis_client is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_url_raises(self) -> None:
        store = RedisIdentityStore()

        with pytest.raises(ValueError, match="redis_url is required"):
            await store.get("u1")


class TestCreateIdentityStore:
    """Test suite for backend selection."""

    @pytest.mark.unit
    def test_memory_backend_by_default(self, test_settings: Settings) -> None:
        assert isinstance(create_identity_store(test_settings), InMemoryIdentityStore)

    @pytest.mark.unit
    def test_redis_backend(self) -> None:
        settings = Settings(
            stripe_secret_key="sk_test_fake_key_for_testing",
            identity_store_backend="redis",
            redis_url="redis://localhost:6379/1",
            identity_key_prefix="test:",
        )

        store = create_identity_store(settings)

        assert isinstance(store, RedisIdentityStore)
        assert store.redis_url == "redis://localhost:6379/1"
        assert store.key_prefix == "test:"
