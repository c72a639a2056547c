"""
Error responses.

Every failure leaves the API as ``{"error": ..., "code"?: ..., "type"?: ...}``.
Stripe errors are mapped by kind through STATUS_BY_KIND, which covers
every StripeErrorKind member.
"""
from typing import Any, Dict, Optional

from fastapi import status
from fastapi.responses import JSONResponse

from connect_backend.integrations.stripe_client import StripeError, StripeErrorKind

BALANCE_INSUFFICIENT_MESSAGE = (
    "Insufficient platform balance. Please retry the {operation} later."
)

STATUS_BY_KIND: Dict[StripeErrorKind, int] = {
    StripeErrorKind.RESOURCE_MISSING: status.HTTP_404_NOT_FOUND,
    StripeErrorKind.BALANCE_INSUFFICIENT: status.HTTP_400_BAD_REQUEST,
    StripeErrorKind.CARD_DECLINED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StripeErrorKind.INVALID_REQUEST: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StripeErrorKind.AUTHENTICATION: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StripeErrorKind.PERMISSION: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StripeErrorKind.RATE_LIMITED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StripeErrorKind.IDEMPOTENCY: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StripeErrorKind.CONNECTION: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StripeErrorKind.API: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StripeErrorKind.CIRCUIT_OPEN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ApiError(Exception):
    """An error that is rendered directly as a JSON error response."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: Optional[str] = None,
        error_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.error_type = error_type

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.code:
            body["code"] = self.code
        if self.error_type:
            body["type"] = self.error_type
        return body

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_body())


class BadRequest(ApiError):
    """Input validation failure with a static message."""

    def __init__(self, message: str):
        super().__init__(status.HTTP_400_BAD_REQUEST, message)


def from_stripe_error(error: StripeError, operation: str = "request") -> ApiError:
    """
    Translate a classified Stripe error into its HTTP error response.

    ``operation`` names the failed write in the balance_insufficient message
    ("transfer", "payout").
    """
    status_code = STATUS_BY_KIND[error.kind]
    message = error.message
    if error.kind is StripeErrorKind.BALANCE_INSUFFICIENT:
        message = BALANCE_INSUFFICIENT_MESSAGE.format(operation=operation)
    return ApiError(
        status_code=status_code,
        message=message,
        code=error.code,
        error_type=error.vendor_type,
    )
