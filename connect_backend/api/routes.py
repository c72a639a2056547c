"""
API routes for the Connect backend.

Every handler validates its required fields, performs one Stripe call
(customer-bound handlers resolve the customer first) and reshapes the
result into a small JSON object.
"""
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from connect_backend.config import get_settings
from connect_backend.core.identity import IdentityResolver, IdentityValidationError
from connect_backend.integrations.stripe_client import StripeClient, StripeError
from connect_backend.monitoring.health import HealthCheck

from .dependencies import get_health_check, get_identity_resolver, get_stripe_client
from .errors import BadRequest, from_stripe_error
from .schemas import (
    AccountLinkRequest,
    AccountLinkResponse,
    AccountSessionRequest,
    AccountSessionResponse,
    AccountStatusResponse,
    CreateAccountRequest,
    CreateAccountResponse,
    CustomerRequest,
    CustomerResponse,
    DeletePaymentMethodResponse,
    ErrorResponse,
    HealthCheckResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentMethodsResponse,
    PayoutRequest,
    PayoutResponse,
    SetupIntentRequest,
    SetupIntentResponse,
    TransferRequest,
    TransferResponse,
)

logger = structlog.get_logger(__name__)

ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

account_router = APIRouter(tags=["accounts"], responses=ERROR_RESPONSES)
customer_router = APIRouter(tags=["customers"], responses=ERROR_RESPONSES)
payment_router = APIRouter(tags=["payments"], responses=ERROR_RESPONSES)
transfer_router = APIRouter(tags=["transfers"], responses=ERROR_RESPONSES)
monitoring_router = APIRouter(tags=["monitoring"])


def _require(value: Optional[str], message: str) -> str:
    if value is None or not value.strip():
        raise BadRequest(message)
    return value.strip()


def _require_amount(amount: Optional[int]) -> int:
    if amount is None or amount <= 0:
        raise BadRequest("Valid amount is required")
    return amount


async def _resolve_customer(resolver: IdentityResolver, user_id: Optional[str]) -> str:
    try:
        return await resolver.resolve(_require(user_id, "userId is required"))
    except IdentityValidationError as e:
        raise BadRequest(str(e))


@account_router.post(
    "/create-account",
    response_model=CreateAccountResponse,
    summary="Create a connected account",
)
async def create_account(
    request: Optional[CreateAccountRequest] = None,
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> Dict[str, Any]:
    """Create a connected account; email and country are optional."""
    request = request or CreateAccountRequest()
    try:
        account = await stripe_client.create_account(
            email=request.email, country=request.country
        )
    except StripeError as e:
        logger.error("api_create_account_error", error=str(e), error_kind=e.kind.value)
        raise from_stripe_error(e) from e

    return {"account_id": account.id}


@account_router.post(
    "/create-account-session",
    response_model=AccountSessionResponse,
    summary="Create an embedded onboarding session",
)
async def create_account_session(
    request: Optional[AccountSessionRequest] = None,
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> Dict[str, Any]:
    request = request or AccountSessionRequest()
    account_id = _require(request.account_id, "accountId is required")
    try:
        session = await stripe_client.create_account_session(account_id)
    except StripeError as e:
        logger.error("api_create_account_session_error", account_id=account_id, error=str(e))
        raise from_stripe_error(e) from e

    return {"client_secret": session.client_secret}


@account_router.post(
    "/create-account-link",
    response_model=AccountLinkResponse,
    response_model_exclude_none=True,
    summary="Create a hosted onboarding link",
)
async def create_account_link(
    request: Optional[AccountLinkRequest] = None,
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> Dict[str, Any]:
    request = request or AccountLinkRequest()
    account_id = _require(request.account_id, "accountId is required")
    try:
        link = await stripe_client.create_account_link(
            account_id,
            refresh_url=request.refresh_url,
            return_url=request.return_url,
        )
    except StripeError as e:
        logger.error("api_create_account_link_error", account_id=account_id, error=str(e))
        raise from_stripe_error(e) from e

    return {"url": link.url, "expires_at": getattr(link, "expires_at", None)}


@account_router.get(
    "/account-status/{account_id}",
    response_model=AccountStatusResponse,
    summary="Get connected account status",
)
async def account_status(
    account_id: str,
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> Dict[str, Any]:
    """Return onboarding and capability flags; 404 when the account does not exist."""
    try:
        account = await stripe_client.retrieve_account(account_id)
    except StripeError as e:
        logger.warning("api_account_status_error", account_id=account_id, error=str(e))
        raise from_stripe_error(e) from e

    requirements = getattr(account, "requirements", None)
    currently_due: List[str] = list(getattr(requirements, "currently_due", None) or [])
    return {
        "account_id": account.id,
        "charges_enabled": bool(account.charges_enabled),
        "payouts_enabled": bool(account.payouts_enabled),
        "details_submitted": bool(account.details_submitted),
        "currently_due": currently_due,
    }


@customer_router.post(
    "/customers",
    response_model=CustomerResponse,
    summary="Get or create the customer for a user",
)
async def resolve_customer(
    request: Optional[CustomerRequest] = None,
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Dict[str, Any]:
    request = request or CustomerRequest()
    try:
        customer_id = await _resolve_customer(resolver, request.user_id)
    except StripeError as e:
        logger.error("api_resolve_customer_error", error=str(e), error_kind=e.kind.value)
        raise from_stripe_error(e) from e

    return {"customer_id": customer_id}


@payment_router.post(
    "/create-payment-intent",
    response_model=PaymentIntentResponse,
    response_model_exclude_none=True,
    summary="Create a payment intent",
)
async def create_payment_intent(
    request: Optional[PaymentIntentRequest] = None,
    stripe_client: StripeClient = Depends(get_stripe_client),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Dict[str, Any]:
    """
    Create a payment intent.

    With ``userId`` the user's customer is attached; with
    ``connectedAccountId`` the funds are routed to that account.
    """
    request = request or PaymentIntentRequest()
    amount = _require_amount(request.amount)
    currency = request.currency or get_settings().default_currency

    try:
        customer_id = None
        if request.user_id is not None:
            customer_id = await _resolve_customer(resolver, request.user_id)

        payment_intent = await stripe_client.create_payment_intent(
            amount=amount,
            currency=currency,
            customer_id=customer_id,
            destination=request.connected_account_id,
            application_fee_amount=request.application_fee_amount,
            metadata=request.metadata,
        )
    except StripeError as e:
        logger.error("api_create_payment_intent_error", error=str(e), error_kind=e.kind.value)
        raise from_stripe_error(e) from e

    return {
        "client_secret": payment_intent.client_secret,
        "payment_intent_id": payment_intent.id,
        "customer_id": customer_id,
    }


@payment_router.post(
    "/create-setup-intent",
    response_model=SetupIntentResponse,
    summary="Create a setup intent for saving a card",
)
async def create_setup_intent(
    request: Optional[SetupIntentRequest] = None,
    stripe_client: StripeClient = Depends(get_stripe_client),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Dict[str, Any]:
    request = request or SetupIntentRequest()
    try:
        customer_id = await _resolve_customer(resolver, request.user_id)
        setup_intent = await stripe_client.create_setup_intent(customer_id)
    except StripeError as e:
        logger.error("api_create_setup_intent_error", error=str(e), error_kind=e.kind.value)
        raise from_stripe_error(e) from e

    return {
        "client_secret": setup_intent.client_secret,
        "setup_intent_id": setup_intent.id,
        "customer_id": customer_id,
    }


@payment_router.get(
    "/payment-methods/{user_id}",
    response_model=PaymentMethodsResponse,
    summary="List a user's saved cards",
)
async def list_payment_methods(
    user_id: str,
    stripe_client: StripeClient = Depends(get_stripe_client),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Dict[str, Any]:
    try:
        customer_id = await _resolve_customer(resolver, user_id)
        payment_methods = await stripe_client.list_payment_methods(customer_id)
    except StripeError as e:
        logger.error("api_list_payment_methods_error", user_id=user_id, error=str(e))
        raise from_stripe_error(e) from e

    summaries = []
    for payment_method in payment_methods.data:
        card = getattr(payment_method, "card", None)
        summaries.append(
            {
                "id": payment_method.id,
                "brand": getattr(card, "brand", None),
                "last4": getattr(card, "last4", None),
                "exp_month": getattr(card, "exp_month", None),
                "exp_year": getattr(card, "exp_year", None),
            }
        )
    return {"payment_methods": summaries}


@payment_router.delete(
    "/payment-methods/{payment_method_id}",
    response_model=DeletePaymentMethodResponse,
    summary="Remove a saved card",
)
async def delete_payment_method(
    payment_method_id: str,
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> Dict[str, Any]:
    """Detach a payment method; 404 when it does not exist."""
    try:
        payment_method = await stripe_client.detach_payment_method(payment_method_id)
    except StripeError as e:
        logger.warning(
            "api_delete_payment_method_error",
            payment_method_id=payment_method_id,
            error=str(e),
        )
        raise from_stripe_error(e) from e

    return {"id": payment_method.id, "deleted": True}


@transfer_router.post(
    "/create-transfer",
    response_model=TransferResponse,
    summary="Transfer platform funds to a connected account",
)
async def create_transfer(
    request: Optional[TransferRequest] = None,
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> Dict[str, Any]:
    """
    Transfer funds to a connected account.

    When the platform balance is too low the response is 400 with code
    ``balance_insufficient``; the caller should retry later.
    """
    request = request or TransferRequest()
    amount = _require_amount(request.amount)
    destination = _require(request.destination, "destination is required")
    currency = request.currency or get_settings().default_currency

    try:
        transfer = await stripe_client.create_transfer(
            amount=amount, currency=currency, destination=destination
        )
    except StripeError as e:
        logger.error(
            "api_create_transfer_error",
            destination=destination,
            error=str(e),
            error_kind=e.kind.value,
        )
        raise from_stripe_error(e, operation="transfer") from e

    return {"transfer_id": transfer.id}


@transfer_router.post(
    "/create-payout",
    response_model=PayoutResponse,
    summary="Pay out a connected account",
)
async def create_payout(
    request: Optional[PayoutRequest] = None,
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> Dict[str, Any]:
    request = request or PayoutRequest()
    amount = _require_amount(request.amount)
    account_id = _require(request.account_id, "accountId is required")
    currency = request.currency or get_settings().default_currency

    try:
        payout = await stripe_client.create_payout(
            amount=amount, currency=currency, account_id=account_id
        )
    except StripeError as e:
        logger.error(
            "api_create_payout_error",
            account_id=account_id,
            error=str(e),
            error_kind=e.kind.value,
        )
        raise from_stripe_error(e, operation="payout") from e

    return {"payout_id": payout.id, "status": payout.status}


@monitoring_router.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def root() -> str:
    return "✅ Stripe backend is live"


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    response_model_exclude_none=True,
    summary="Liveness check",
)
async def health(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    response_model_exclude_none=True,
    summary="Readiness probe",
    description="Checks Stripe reachability and the identity store",
)
async def readiness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    result = await health_check.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
