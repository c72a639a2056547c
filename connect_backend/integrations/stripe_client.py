"""
Stripe API client with circuit breaking and typed error classification.

Implements:
- Non-blocking calls: the synchronous SDK runs in the default executor
- Circuit breaker pattern
- A closed set of error kinds so callers never branch on raw error codes
- Idempotent customer creation
"""
import asyncio
import functools
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import stripe
import structlog

from connect_backend.config import Settings, get_settings
from connect_backend.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class StripeErrorType(Enum):
    """Classification of Stripe errors for retry logic."""

    TRANSIENT = "transient"  # Retry these
    PERMANENT = "permanent"  # Don't retry these
    RATE_LIMIT = "rate_limit"  # Retry with longer backoff


class StripeErrorKind(Enum):
    """What went wrong on the Stripe side, independent of the SDK's exception classes."""

    CARD_DECLINED = "card_declined"
    RESOURCE_MISSING = "resource_missing"
    BALANCE_INSUFFICIENT = "balance_insufficient"
    INVALID_REQUEST = "invalid_request"
    AUTHENTICATION = "authentication"
    PERMISSION = "permission"
    RATE_LIMITED = "rate_limited"
    IDEMPOTENCY = "idempotency"
    CONNECTION = "connection"
    API = "api"
    CIRCUIT_OPEN = "circuit_open"


class StripeError(Exception):
    """Base exception for Stripe-related errors."""

    def __init__(
        self,
        message: str,
        kind: StripeErrorKind,
        error_type: StripeErrorType,
        code: Optional[str] = None,
        vendor_type: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize Stripe error.

        Args:
            message: Error message, passed through from Stripe
            kind: Tagged error kind
            error_type: Retry classification
            code: Stripe error code (e.g. 'resource_missing')
            vendor_type: Stripe error type (e.g. 'invalid_request_error')
            original_error: Original Stripe exception
        """
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.error_type = error_type
        self.code = code
        self.vendor_type = vendor_type
        self.original_error = original_error

    @property
    def is_retryable(self) -> bool:
        """Whether a read that failed this way may be attempted again."""
        return self.error_type in (StripeErrorType.TRANSIENT, StripeErrorType.RATE_LIMIT)


class CircuitBreaker:
    """
    Circuit breaker for Stripe API calls.

    Prevents cascading failures by temporarily stopping requests
    when error rate exceeds threshold. Only transport and server
    failures count; rejected requests mean Stripe is up.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: int = 60,
        success_threshold: int = 2,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            timeout: Seconds before attempting to close circuit
            success_threshold: Successful calls needed to close circuit
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "closed"  # closed, open, half_open

    async def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Run a blocking function in the executor with circuit breaker protection.

        Args:
            func: Function to execute
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Function result

        Raises:
            StripeError: If circuit is open
        """
        if self.state == "open":
            if (
                self.last_failure_time
                and time.time() - self.last_failure_time > self.timeout
            ):
                self._set_state("half_open")
                self.success_count = 0
                logger.info("circuit_breaker_half_open")
            else:
                raise StripeError(
                    "Circuit breaker is open",
                    StripeErrorKind.CIRCUIT_OPEN,
                    StripeErrorType.TRANSIENT,
                )

        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
        except (stripe.APIConnectionError, stripe.APIError):
            self.on_failure()
            raise
        self.on_success()
        return result

    def on_success(self) -> None:
        """Record successful call."""
        self.failure_count = 0
        if self.state == "half_open":
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self._set_state("closed")
                logger.info("circuit_breaker_closed")

    def on_failure(self) -> None:
        """Record failed call."""
        self.failure_count += 1
        self.last_failure_time = time.time()
        if self.state == "half_open" or self.failure_count >= self.failure_threshold:
            self._set_state("open")
            logger.warning(
                "circuit_breaker_opened",
                failure_count=self.failure_count,
            )

    def _set_state(self, state: str) -> None:
        self.state = state
        metrics.set_circuit_breaker_state(state)


class StripeClient:
    """
    Wrapper for the Stripe API used by every route.

    Each method performs exactly one Stripe call and either returns the
    SDK object or raises StripeError with a StripeErrorKind.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        """Initialize Stripe client."""
        settings = settings or get_settings()
        stripe.api_key = settings.stripe_secret_key
        if settings.stripe_api_version:
            stripe.api_version = settings.stripe_api_version
        self.settings = settings
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            timeout=settings.circuit_breaker_timeout,
        )

        logger.info(
            "stripe_client_initialized",
            api_version=settings.stripe_api_version,
            test_mode=settings.is_test_mode,
        )

    @staticmethod
    def classify_error(
        error: stripe.StripeError,
    ) -> Tuple[StripeErrorKind, StripeErrorType]:
        """
        Classify a Stripe SDK error.

        Args:
            error: Stripe error

        Returns:
            Tuple of error kind and retry classification
        """
        code = getattr(error, "code", None)
        if isinstance(error, stripe.RateLimitError):
            return StripeErrorKind.RATE_LIMITED, StripeErrorType.RATE_LIMIT
        elif isinstance(error, stripe.CardError):
            return StripeErrorKind.CARD_DECLINED, StripeErrorType.PERMANENT
        elif isinstance(error, stripe.IdempotencyError):
            return StripeErrorKind.IDEMPOTENCY, StripeErrorType.PERMANENT
        elif isinstance(error, stripe.InvalidRequestError):
            if code == "resource_missing":
                return StripeErrorKind.RESOURCE_MISSING, StripeErrorType.PERMANENT
            if code == "balance_insufficient":
                return StripeErrorKind.BALANCE_INSUFFICIENT, StripeErrorType.PERMANENT
            return StripeErrorKind.INVALID_REQUEST, StripeErrorType.PERMANENT
        elif isinstance(error, stripe.AuthenticationError):
            return StripeErrorKind.AUTHENTICATION, StripeErrorType.PERMANENT
        elif isinstance(error, stripe.PermissionError):
            return StripeErrorKind.PERMISSION, StripeErrorType.PERMANENT
        elif isinstance(error, stripe.APIConnectionError):
            return StripeErrorKind.CONNECTION, StripeErrorType.TRANSIENT
        else:
            # Unknown errors are treated as transient
            return StripeErrorKind.API, StripeErrorType.TRANSIENT

    def _convert_error(self, error: stripe.StripeError, operation: str) -> StripeError:
        kind, error_type = self.classify_error(error)
        code = getattr(error, "code", None)
        error_object = getattr(error, "error", None)
        vendor_type = getattr(error_object, "type", None) if error_object else None
        message = getattr(error, "user_message", None) or str(error)

        logger.error(
            "stripe_api_error",
            operation=operation,
            error_kind=kind.value,
            error_code=code,
            error_message=message,
        )
        metrics.record_stripe_api_error(kind.value)

        return StripeError(
            message=message,
            kind=kind,
            error_type=error_type,
            code=code,
            vendor_type=vendor_type,
            original_error=error,
        )

    async def _call(
        self, operation: str, func: Callable[..., Any], **kwargs: Any
    ) -> Any:
        start_time = time.time()
        try:
            result = await self.circuit_breaker.call(func, **kwargs)
        except stripe.StripeError as e:
            metrics.record_stripe_api_call(operation, "error", time.time() - start_time)
            raise self._convert_error(e, operation) from e
        except StripeError as e:
            metrics.record_stripe_api_call(operation, "error", time.time() - start_time)
            metrics.record_stripe_api_error(e.kind.value)
            logger.warning("stripe_call_rejected", operation=operation, error_kind=e.kind.value)
            raise
        metrics.record_stripe_api_call(operation, "success", time.time() - start_time)
        return result

    async def create_account(
        self, email: Optional[str] = None, country: Optional[str] = None
    ) -> stripe.Account:
        """
        Create a connected account.

        Args:
            email: Optional account email
            country: Two-letter country code, defaults to the configured country

        Returns:
            stripe.Account: Created account
        """
        params: Dict[str, Any] = {
            "type": self.settings.connected_account_type,
            "country": country or self.settings.default_country,
        }
        if email:
            params["email"] = email
        if self.settings.connected_account_type == "custom":
            params["capabilities"] = {
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            }

        logger.info("creating_account", country=params["country"])
        account = await self._call("create_account", stripe.Account.create, **params)
        logger.info("account_created", account_id=account.id)
        return account

    async def retrieve_account(self, account_id: str) -> stripe.Account:
        """Retrieve a connected account by ID."""
        return await self._call("retrieve_account", stripe.Account.retrieve, id=account_id)

    async def create_account_session(self, account_id: str) -> stripe.AccountSession:
        """Create an embedded onboarding session for a connected account."""
        logger.info("creating_account_session", account_id=account_id)
        return await self._call(
            "create_account_session",
            stripe.AccountSession.create,
            account=account_id,
            components={"account_onboarding": {"enabled": True}},
        )

    async def create_account_link(
        self,
        account_id: str,
        refresh_url: Optional[str] = None,
        return_url: Optional[str] = None,
    ) -> stripe.AccountLink:
        """Create a hosted onboarding link for a connected account."""
        logger.info("creating_account_link", account_id=account_id)
        return await self._call(
            "create_account_link",
            stripe.AccountLink.create,
            account=account_id,
            refresh_url=refresh_url or self.settings.onboarding_refresh_url,
            return_url=return_url or self.settings.onboarding_return_url,
            type="account_onboarding",
        )

    async def list_customers(
        self, limit: int = 100, starting_after: Optional[str] = None
    ) -> stripe.ListObject:
        """
        List one page of customers.

        Args:
            limit: Number of items to return
            starting_after: Cursor for pagination

        Returns:
            stripe.ListObject: Page of customers with has_more flag
        """
        params: Dict[str, Any] = {"limit": limit}
        if starting_after:
            params["starting_after"] = starting_after
        return await self._call("list_customers", stripe.Customer.list, **params)

    async def create_customer(
        self, metadata: Dict[str, str], idempotency_key: Optional[str] = None
    ) -> stripe.Customer:
        """
        Create a customer.

        Args:
            metadata: Customer metadata, carries the application user id
            idempotency_key: Optional idempotency key for preventing duplicates

        Returns:
            stripe.Customer: Created customer
        """
        params: Dict[str, Any] = {"metadata": metadata}
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        customer = await self._call("create_customer", stripe.Customer.create, **params)
        logger.info("customer_created", customer_id=customer.id)
        return customer

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer_id: Optional[str] = None,
        destination: Optional[str] = None,
        application_fee_amount: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> stripe.PaymentIntent:
        """
        Create a PaymentIntent, optionally routed to a connected account.

        Args:
            amount: Amount in the currency's smallest unit
            currency: Currency code (e.g. 'usd')
            customer_id: Optional customer to attach
            destination: Optional connected account receiving the funds
            application_fee_amount: Optional platform fee for destination charges
            metadata: Optional metadata

        Returns:
            stripe.PaymentIntent: Created payment intent
        """
        params: Dict[str, Any] = {
            "amount": amount,
            "currency": currency.lower(),
            "automatic_payment_methods": {"enabled": True},
            "metadata": metadata or {},
        }
        if customer_id:
            params["customer"] = customer_id
        if destination:
            params["transfer_data"] = {"destination": destination}
            if application_fee_amount:
                params["application_fee_amount"] = application_fee_amount

        logger.info("creating_payment_intent", amount=amount, currency=params["currency"])
        payment_intent = await self._call(
            "create_payment_intent", stripe.PaymentIntent.create, **params
        )
        logger.info(
            "payment_intent_created",
            payment_intent_id=payment_intent.id,
            status=payment_intent.status,
        )
        return payment_intent

    async def create_setup_intent(self, customer_id: str) -> stripe.SetupIntent:
        """Create a SetupIntent for saving a payment method to a customer."""
        return await self._call(
            "create_setup_intent",
            stripe.SetupIntent.create,
            customer=customer_id,
            automatic_payment_methods={"enabled": True},
        )

    async def list_payment_methods(self, customer_id: str) -> stripe.ListObject:
        """List a customer's saved cards."""
        return await self._call(
            "list_payment_methods",
            stripe.PaymentMethod.list,
            customer=customer_id,
            type="card",
        )

    async def detach_payment_method(self, payment_method_id: str) -> stripe.PaymentMethod:
        """Detach a payment method from its customer."""
        logger.info("detaching_payment_method", payment_method_id=payment_method_id)
        return await self._call(
            "detach_payment_method",
            stripe.PaymentMethod.detach,
            payment_method=payment_method_id,
        )

    async def create_transfer(
        self, amount: int, currency: str, destination: str
    ) -> stripe.Transfer:
        """
        Move funds from the platform balance to a connected account.

        Raises:
            StripeError: kind BALANCE_INSUFFICIENT when the platform balance
                cannot cover the transfer
        """
        logger.info("creating_transfer", amount=amount, destination=destination)
        transfer = await self._call(
            "create_transfer",
            stripe.Transfer.create,
            amount=amount,
            currency=currency.lower(),
            destination=destination,
        )
        logger.info("transfer_created", transfer_id=transfer.id)
        return transfer

    async def create_payout(
        self, amount: int, currency: str, account_id: str
    ) -> stripe.Payout:
        """Pay out a connected account's balance to its external account."""
        logger.info("creating_payout", amount=amount, account_id=account_id)
        payout = await self._call(
            "create_payout",
            stripe.Payout.create,
            amount=amount,
            currency=currency.lower(),
            stripe_account=account_id,
        )
        logger.info("payout_created", payout_id=payout.id, status=payout.status)
        return payout

    async def ping(self) -> None:
        """Cheapest authenticated call, used by the readiness probe."""
        await self._call("retrieve_balance", stripe.Balance.retrieve)
