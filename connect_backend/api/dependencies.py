"""
Service wiring for the API.

Each getter builds its service once per process. Tests replace them
through ``app.dependency_overrides``.
"""
from functools import lru_cache

from fastapi import Depends

from connect_backend.config import get_settings
from connect_backend.core.identity import IdentityResolver
from connect_backend.core.identity_store import IdentityStore, create_identity_store
from connect_backend.integrations.customer_directory import CustomerDirectory
from connect_backend.integrations.stripe_client import StripeClient
from connect_backend.monitoring.health import HealthCheck


@lru_cache()
def get_stripe_client() -> StripeClient:
    return StripeClient()


@lru_cache()
def get_identity_store() -> IdentityStore:
    return create_identity_store()


@lru_cache()
def get_identity_resolver() -> IdentityResolver:
    settings = get_settings()
    stripe_client = get_stripe_client()
    directory = CustomerDirectory(
        stripe_client,
        page_size=settings.customer_page_size,
        max_pages=settings.customer_scan_max_pages,
        read_attempts=settings.directory_read_attempts,
    )
    return IdentityResolver(
        store=get_identity_store(),
        stripe_client=stripe_client,
        directory=directory,
        metadata_key=settings.customer_metadata_key,
    )


def get_health_check(
    stripe_client: StripeClient = Depends(get_stripe_client),
    store: IdentityStore = Depends(get_identity_store),
) -> HealthCheck:
    return HealthCheck(stripe_client, store)
