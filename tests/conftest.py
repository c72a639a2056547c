"""
Pytest configuration and fixtures.
"""
import os

os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fake_key_for_testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from types import SimpleNamespace  # noqa: E402
from typing import Any, AsyncGenerator, Callable, List, Optional  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from tenacity import wait_none  # noqa: E402

from connect_backend.api.dependencies import (  # noqa: E402
    get_identity_resolver,
    get_identity_store,
    get_stripe_client,
)
from connect_backend.api.main import app  # noqa: E402
from connect_backend.config import Settings  # noqa: E402
from connect_backend.core.identity import IdentityResolver  # noqa: E402
from connect_backend.core.identity_store import InMemoryIdentityStore  # noqa: E402
from connect_backend.integrations.customer_directory import CustomerDirectory  # noqa: E402
from connect_backend.integrations.stripe_client import StripeClient  # noqa: E402


def make_customer(customer_id: str, user_id: Optional[str] = None) -> SimpleNamespace:
    """Customer record shaped like the Stripe SDK object."""
    metadata = {"user_id": user_id} if user_id is not None else {}
    return SimpleNamespace(id=customer_id, metadata=metadata)


def make_page(records: List[Any], has_more: bool = False) -> SimpleNamespace:
    """One page of a Stripe list response."""
    return SimpleNamespace(data=records, has_more=has_more)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        stripe_secret_key="sk_test_fake_key_for_testing",
        app_name="connect-backend-test",
        app_env="test",
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def customer_factory() -> Callable[..., SimpleNamespace]:
    return make_customer


@pytest.fixture
def page_factory() -> Callable[..., SimpleNamespace]:
    return make_page


@pytest.fixture
def stripe_client_mock() -> AsyncMock:
    """Stripe client with an empty customer list and a working customer create."""
    client = AsyncMock(spec=StripeClient)
    client.list_customers.return_value = make_page([])
    client.create_customer.return_value = SimpleNamespace(id="cus_new")
    return client


@pytest.fixture
def identity_store() -> InMemoryIdentityStore:
    return InMemoryIdentityStore()


@pytest.fixture
def directory(stripe_client_mock: AsyncMock) -> CustomerDirectory:
    return CustomerDirectory(stripe_client_mock, retry_wait=wait_none())


@pytest.fixture
def resolver(
    identity_store: InMemoryIdentityStore,
    stripe_client_mock: AsyncMock,
    directory: CustomerDirectory,
) -> IdentityResolver:
    return IdentityResolver(
        store=identity_store,
        stripe_client=stripe_client_mock,
        directory=directory,
    )


@pytest_asyncio.fixture
async def client(
    stripe_client_mock: AsyncMock,
    identity_store: InMemoryIdentityStore,
    resolver: IdentityResolver,
) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client wired to the mocked Stripe client."""
    app.dependency_overrides[get_stripe_client] = lambda: stripe_client_mock
    app.dependency_overrides[get_identity_store] = lambda: identity_store
    app.dependency_overrides[get_identity_resolver] = lambda: resolver

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
