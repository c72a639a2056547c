"""
Pydantic schemas for API request/response models.

Wire format is camelCase; fields are snake_case in Python. Request fields
are optional at the schema level so missing values get the static 400
messages from the route handlers instead of a generic validation error.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateAccountRequest(CamelModel):
    """Request schema for creating a connected account."""

    email: Optional[str] = Field(default=None, description="Account email")
    country: Optional[str] = Field(
        default=None, min_length=2, max_length=2, description="Two-letter country code"
    )


class CreateAccountResponse(CamelModel):
    account_id: str = Field(..., description="Stripe connected account ID")


class AccountSessionRequest(CamelModel):
    """Request schema for an embedded onboarding session."""

    account_id: Optional[str] = Field(default=None, description="Connected account ID")


class AccountSessionResponse(CamelModel):
    client_secret: str = Field(..., description="Secret for the embedded onboarding component")


class AccountLinkRequest(CamelModel):
    """Request schema for a hosted onboarding link."""

    account_id: Optional[str] = Field(default=None, description="Connected account ID")
    refresh_url: Optional[str] = Field(default=None, description="URL used when the link expires")
    return_url: Optional[str] = Field(default=None, description="URL used after onboarding")


class AccountLinkResponse(CamelModel):
    url: str = Field(..., description="Onboarding URL")
    expires_at: Optional[int] = Field(default=None, description="Expiry (unix seconds)")


class AccountStatusResponse(CamelModel):
    """Onboarding and capability status of a connected account."""

    account_id: str = Field(..., description="Connected account ID")
    charges_enabled: bool = Field(..., description="Account can accept charges")
    payouts_enabled: bool = Field(..., description="Account can receive payouts")
    details_submitted: bool = Field(..., description="Onboarding form was completed")
    currently_due: List[str] = Field(
        default_factory=list, description="Requirements that must be collected now"
    )


class CustomerRequest(CamelModel):
    user_id: Optional[str] = Field(default=None, description="Application user ID")


class CustomerResponse(CamelModel):
    customer_id: str = Field(..., description="Stripe customer ID")


class PaymentIntentRequest(CamelModel):
    """Request schema for creating a payment intent."""

    amount: Optional[int] = Field(default=None, description="Amount in the smallest currency unit")
    currency: Optional[str] = Field(
        default=None, min_length=3, max_length=3, description="Currency code (e.g., usd)"
    )
    user_id: Optional[str] = Field(
        default=None, description="Application user ID; attaches the matching customer"
    )
    connected_account_id: Optional[str] = Field(
        default=None, description="Connected account receiving the funds"
    )
    application_fee_amount: Optional[int] = Field(
        default=None, ge=0, description="Platform fee kept from a destination charge"
    )
    metadata: Optional[Dict[str, str]] = Field(default=None, description="Optional metadata")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "amount": 2000,
                    "currency": "usd",
                    "userId": "user_123",
                    "connectedAccountId": "acct_1234567890",
                    "applicationFeeAmount": 200,
                }
            ]
        },
    )


class PaymentIntentResponse(CamelModel):
    client_secret: str = Field(..., description="Client secret for confirming the payment")
    payment_intent_id: str = Field(..., description="Stripe PaymentIntent ID")
    customer_id: Optional[str] = Field(default=None, description="Attached customer ID")


class SetupIntentRequest(CamelModel):
    user_id: Optional[str] = Field(default=None, description="Application user ID")


class SetupIntentResponse(CamelModel):
    client_secret: str = Field(..., description="Client secret for confirming the setup")
    setup_intent_id: str = Field(..., description="Stripe SetupIntent ID")
    customer_id: str = Field(..., description="Customer the payment method is saved to")


class PaymentMethodSummary(CamelModel):
    id: str
    brand: Optional[str] = None
    last4: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None


class PaymentMethodsResponse(CamelModel):
    payment_methods: List[PaymentMethodSummary] = Field(default_factory=list)


class DeletePaymentMethodResponse(CamelModel):
    id: str
    deleted: bool = True


class TransferRequest(CamelModel):
    """Request schema for a platform to connected account transfer."""

    amount: Optional[int] = Field(default=None, description="Amount in the smallest currency unit")
    destination: Optional[str] = Field(default=None, description="Connected account ID")
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class TransferResponse(CamelModel):
    transfer_id: str = Field(..., description="Stripe Transfer ID")


class PayoutRequest(CamelModel):
    """Request schema for paying out a connected account."""

    amount: Optional[int] = Field(default=None, description="Amount in the smallest currency unit")
    account_id: Optional[str] = Field(default=None, description="Connected account ID")
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class PayoutResponse(CamelModel):
    payout_id: str = Field(..., description="Stripe Payout ID")
    status: str = Field(..., description="Payout status")


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status")
    service: Optional[str] = Field(default=None, description="Service name")
    timestamp: Optional[str] = Field(default=None, description="Check time (ISO 8601)")
    checks: Optional[Dict[str, Dict[str, Any]]] = Field(
        default=None, description="Individual dependency checks"
    )


class ErrorResponse(BaseModel):
    """Body of every error response."""

    error: str
    code: Optional[str] = None
    type: Optional[str] = None
