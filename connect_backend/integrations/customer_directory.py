"""
Paginated view over the Stripe customer list.

Each iteration starts a fresh scan from the first page, so a directory
object can be reused for every resolution.
"""
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable, List, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from connect_backend.monitoring.metrics import metrics

from .stripe_client import StripeClient, StripeError

logger = structlog.get_logger(__name__)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, StripeError) and error.is_retryable


def metadata_value(customer: Any, key: str) -> Optional[str]:
    """Read one metadata field from a customer record, None when absent."""
    metadata = getattr(customer, "metadata", None)
    if not metadata:
        return None
    try:
        return metadata[key]
    except KeyError:
        return None


class CustomerDirectory:
    """
    Lazy, finite, restartable sequence of customer pages.

    Iteration stops when Stripe reports no further pages or after
    ``max_pages`` pages, whichever comes first.
    """

    def __init__(
        self,
        client: StripeClient,
        page_size: int = 100,
        max_pages: int = 10,
        read_attempts: int = 3,
        retry_wait: Optional[wait_base] = None,
    ):
        """
        Initialize customer directory.

        Args:
            client: Stripe client used to fetch pages
            page_size: Customers per page (Stripe caps this at 100)
            max_pages: Hard ceiling on pages fetched per scan
            read_attempts: Attempts per page on transient errors
            retry_wait: Tenacity wait strategy between attempts
        """
        self.client = client
        self.page_size = page_size
        self.max_pages = max_pages
        self.read_attempts = read_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=4)

    async def _fetch_page(self, starting_after: Optional[str]) -> Any:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.read_attempts),
            wait=self.retry_wait,
            reraise=True,
        ):
            with attempt:
                return await self.client.list_customers(
                    limit=self.page_size, starting_after=starting_after
                )

    async def pages(self) -> AsyncIterator[List[Any]]:
        """Yield pages of customer records, one Stripe request per page."""
        starting_after: Optional[str] = None
        for _ in range(self.max_pages):
            page = await self._fetch_page(starting_after)
            metrics.record_directory_page()
            records = list(page.data)
            yield records

            if not page.has_more or not records:
                return
            starting_after = records[-1].id

        logger.info("customer_directory_page_limit_reached", max_pages=self.max_pages)

    def __aiter__(self) -> AsyncIterator[List[Any]]:
        return self.pages()

    async def find(self, predicate: Callable[[Any], bool]) -> Optional[Any]:
        """
        Return the first customer matching ``predicate``.

        Stops fetching as soon as a match is found.

        Raises:
            StripeError: If a page cannot be fetched
        """
        pages_scanned = 0
        async with aclosing(self.pages()) as pages:
            async for records in pages:
                pages_scanned += 1
                for customer in records:
                    if predicate(customer):
                        logger.debug(
                            "customer_directory_match",
                            customer_id=customer.id,
                            pages_scanned=pages_scanned,
                        )
                        return customer
        return None
