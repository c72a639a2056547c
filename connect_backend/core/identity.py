"""
Resolution of application user ids to Stripe customer ids.

Resolution order:
1. Identity store (no Stripe calls)
2. Bounded scan of the Stripe customer list, matching on metadata
3. Creation of a new customer tagged with the user id

A failed scan is treated as "not found" and falls through to creation.
Resolutions for the same user id are serialized inside the process, and
creation carries a deterministic idempotency key so concurrent processes
converge on one customer.
"""
import asyncio
from enum import Enum
from typing import Dict, NamedTuple, Optional

import structlog

from connect_backend.integrations.customer_directory import CustomerDirectory, metadata_value
from connect_backend.integrations.stripe_client import StripeClient, StripeError
from connect_backend.monitoring.metrics import metrics

from .identity_store import IdentityStore

logger = structlog.get_logger(__name__)


class IdentityError(Exception):
    """Base exception for identity resolution errors."""

    pass


class IdentityValidationError(IdentityError):
    """Raised when the user id is missing or blank."""

    pass


class ResolutionOutcome(Enum):
    """Where the customer id came from."""

    CACHE_HIT = "cache_hit"
    DIRECTORY_HIT = "directory_hit"
    CREATED = "created"


class Resolution(NamedTuple):
    customer_id: str
    outcome: ResolutionOutcome


class _KeyedLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    async def acquire(self, key: str) -> asyncio.Lock:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._release_user(key)
            raise
        return lock

    def release(self, key: str, lock: asyncio.Lock) -> None:
        lock.release()
        self._release_user(key)

    def _release_user(self, key: str) -> None:
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class IdentityResolver:
    """
    Maps user ids to Stripe customer ids, creating customers on demand.

    The store and directory are injected so tests and alternative
    deployments can swap them.
    """

    def __init__(
        self,
        store: IdentityStore,
        stripe_client: StripeClient,
        directory: Optional[CustomerDirectory] = None,
        metadata_key: str = "user_id",
    ):
        """
        Initialize identity resolver.

        Args:
            store: Identity store consulted first and updated on every miss
            stripe_client: Stripe client used for customer creation
            directory: Customer directory scanned on a store miss
            metadata_key: Customer metadata field holding the user id
        """
        self.store = store
        self.stripe_client = stripe_client
        self.directory = directory or CustomerDirectory(stripe_client)
        self.metadata_key = metadata_key
        self._locks = _KeyedLocks()

    @staticmethod
    def creation_idempotency_key(user_id: str) -> str:
        return f"customer-create-{user_id}"

    async def resolve(self, user_id: str) -> str:
        """
        Return the customer id for ``user_id``.

        Raises:
            IdentityValidationError: If user_id is blank
            StripeError: If customer creation fails
        """
        resolution = await self.resolve_with_outcome(user_id)
        return resolution.customer_id

    async def resolve_with_outcome(self, user_id: str) -> Resolution:
        """Resolve ``user_id`` and report which step produced the customer id."""
        if not isinstance(user_id, str) or not user_id.strip():
            raise IdentityValidationError("userId is required")

        cached = await self.store.get(user_id)
        if cached is not None:
            return self._finish(user_id, cached, ResolutionOutcome.CACHE_HIT)

        lock = await self._locks.acquire(user_id)
        try:
            # Another resolution may have finished while we waited
            cached = await self.store.get(user_id)
            if cached is not None:
                return self._finish(user_id, cached, ResolutionOutcome.CACHE_HIT)

            customer_id = await self._scan_directory(user_id)
            if customer_id is not None:
                await self.store.set(user_id, customer_id)
                return self._finish(user_id, customer_id, ResolutionOutcome.DIRECTORY_HIT)

            customer = await self.stripe_client.create_customer(
                metadata={self.metadata_key: user_id},
                idempotency_key=self.creation_idempotency_key(user_id),
            )
            await self.store.set(user_id, customer.id)
            return self._finish(user_id, customer.id, ResolutionOutcome.CREATED)
        finally:
            self._locks.release(user_id, lock)

    async def _scan_directory(self, user_id: str) -> Optional[str]:
        try:
            customer = await self.directory.find(
                lambda record: metadata_value(record, self.metadata_key) == user_id
            )
        except StripeError as e:
            logger.warning(
                "customer_directory_scan_failed",
                user_id=user_id,
                error_kind=e.kind.value,
                error=str(e),
            )
            metrics.record_directory_scan_failure()
            return None
        return customer.id if customer is not None else None

    def _finish(
        self, user_id: str, customer_id: str, outcome: ResolutionOutcome
    ) -> Resolution:
        metrics.record_identity_resolution(outcome.value)
        logger.info(
            "identity_resolved",
            user_id=user_id,
            customer_id=customer_id,
            outcome=outcome.value,
        )
        return Resolution(customer_id, outcome)
