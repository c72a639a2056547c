"""
Unit tests for user id to customer id resolution.
"""
import asyncio
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import pytest

from connect_backend.core.identity import (
    IdentityResolver,
    IdentityValidationError,
    ResolutionOutcome,
)
from connect_backend.core.identity_store import InMemoryIdentityStore
from connect_backend.integrations.stripe_client import (
    StripeError,
    StripeErrorKind,
    StripeErrorType,
)

from conftest import make_customer, make_page


class TestIdentityResolver:
    """Test suite for IdentityResolver."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cache_hit_makes_no_stripe_calls(
        self, resolver: IdentityResolver, stripe_client_mock: AsyncMock
    ) -> None:
        await resolver.store.set("u1", "cus_cached")

        resolution = await resolver.resolve_with_outcome("u1")

        assert resolution.customer_id == "cus_cached"
        assert resolution.outcome is ResolutionOutcome.CACHE_HIT
        stripe_client_mock.list_customers.assert_not_called()
        stripe_client_mock.create_customer.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_user_creates_exactly_one_customer(
        self,
        resolver: IdentityResolver,
        stripe_client_mock: AsyncMock,
        identity_store: InMemoryIdentityStore,
    ) -> None:
        resolution = await resolver.resolve_with_outcome("u1")

        assert resolution.customer_id == "cus_new"
        assert resolution.outcome is ResolutionOutcome.CREATED
        stripe_client_mock.create_customer.assert_awaited_once_with(
            metadata={"user_id": "u1"},
            idempotency_key="customer-create-u1",
        )
        assert await identity_store.get("u1") == "cus_new"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_resolution_is_cache_hit(
        self, resolver: IdentityResolver, stripe_client_mock: AsyncMock
    ) -> None:
        first = await resolver.resolve("u1")
        stripe_client_mock.list_customers.reset_mock()

        second = await resolver.resolve_with_outcome("u1")

        assert second.customer_id == first == "cus_new"
        assert second.outcome is ResolutionOutcome.CACHE_HIT
        stripe_client_mock.list_customers.assert_not_called()
        assert stripe_client_mock.create_customer.await_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_existing_customer_found_in_directory(
        self,
        resolver: IdentityResolver,
        stripe_client_mock: AsyncMock,
        identity_store: InMemoryIdentityStore,
    ) -> None:
        stripe_client_mock.list_customers.side_effect = [
            make_page([make_customer(f"cus_{i}", f"other_{i}") for i in range(100)], True),
            make_page([make_customer("cus_other"), make_customer("cus_match", "u1")], True),
        ]

        resolution = await resolver.resolve_with_outcome("u1")

        assert resolution.customer_id == "cus_match"
        assert resolution.outcome is ResolutionOutcome.DIRECTORY_HIT
        assert stripe_client_mock.list_customers.await_count == 2
        stripe_client_mock.create_customer.assert_not_called()
        assert await identity_store.get("u1") == "cus_match"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_match_on_last_scanned_page(
        self, resolver: IdentityResolver, stripe_client_mock: AsyncMock
    ) -> None:
        pages = [
            make_page([make_customer(f"cus_{p}_{i}") for i in range(100)], True)
            for p in range(9)
        ]
        pages.append(make_page([make_customer("cus_last", "u1")], True))
        stripe_client_mock.list_customers.side_effect = pages

        assert await resolver.resolve("u1") == "cus_last"
        stripe_client_mock.create_customer.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_match_beyond_scan_limit_is_not_found(
        self, resolver: IdentityResolver, stripe_client_mock: AsyncMock
    ) -> None:
        def endless_pages(limit: int, starting_after: Any = None) -> Any:
            return make_page([make_customer("cus_x")], has_more=True)

        stripe_client_mock.list_customers.side_effect = endless_pages

        assert await resolver.resolve("u1") == "cus_new"
        assert stripe_client_mock.list_customers.await_count == 10
        stripe_client_mock.create_customer.assert_awaited_once()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_scan_failure_falls_through_to_creation(
        self, resolver: IdentityResolver, stripe_client_mock: AsyncMock
    ) -> None:
        stripe_client_mock.list_customers.side_effect = StripeError(
            "Invalid API key", StripeErrorKind.AUTHENTICATION, StripeErrorType.PERMANENT
        )

        resolution = await resolver.resolve_with_outcome("u1")

        assert resolution.outcome is ResolutionOutcome.CREATED
        stripe_client_mock.create_customer.assert_awaited_once()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_creation_failure_propagates_and_caches_nothing(
        self,
        resolver: IdentityResolver,
        stripe_client_mock: AsyncMock,
        identity_store: InMemoryIdentityStore,
    ) -> None:
        stripe_client_mock.create_customer.side_effect = StripeError(
            "Stripe is down", StripeErrorKind.API, StripeErrorType.TRANSIENT
        )

        with pytest.raises(StripeError, match="Stripe is down"):
            await resolver.resolve("u1")

        assert not await identity_store.contains("u1")
        assert len(resolver._locks) == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", ["", "   "])
    async def test_blank_user_id_rejected(
        self, resolver: IdentityResolver, user_id: str
    ) -> None:
        with pytest.raises(IdentityValidationError, match="userId is required"):
            await resolver.resolve(user_id)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_concurrent_resolutions_create_one_customer(
        self, resolver: IdentityResolver, stripe_client_mock: AsyncMock
    ) -> None:
        created = 0

        async def slow_create(**kwargs: Any) -> SimpleNamespace:
            nonlocal created
            created += 1
            await asyncio.sleep(0.01)
            return SimpleNamespace(id=f"cus_{created}")

        stripe_client_mock.create_customer.side_effect = slow_create

        results = await asyncio.gather(*(resolver.resolve("u1") for _ in range(5)))

        assert created == 1
        assert set(results) == {"cus_1"}
        assert len(resolver._locks) == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_different_users_resolve_independently(
        self, resolver: IdentityResolver, stripe_client_mock: AsyncMock
    ) -> None:
        stripe_client_mock.create_customer.side_effect = [
            SimpleNamespace(id="cus_a"),
            SimpleNamespace(id="cus_b"),
        ]

        assert await resolver.resolve("a") == "cus_a"
        assert await resolver.resolve("b") == "cus_b"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_custom_metadata_key(
        self, identity_store: InMemoryIdentityStore, stripe_client_mock: AsyncMock, directory: Any
    ) -> None:
        stripe_client_mock.list_customers.return_value = make_page(
            [SimpleNamespace(id="cus_app", metadata={"app_user": "u1"})]
        )
        resolver = IdentityResolver(
            store=identity_store,
            stripe_client=stripe_client_mock,
            directory=directory,
            metadata_key="app_user",
        )

        assert await resolver.resolve("u1") == "cus_app"
