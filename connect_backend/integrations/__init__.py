"""Stripe integration."""
from .customer_directory import CustomerDirectory
from .stripe_client import StripeClient, StripeError, StripeErrorKind, StripeErrorType

__all__ = [
    "CustomerDirectory",
    "StripeClient",
    "StripeError",
    "StripeErrorKind",
    "StripeErrorType",
]
