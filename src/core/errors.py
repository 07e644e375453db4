"""
Centralized error handling and safe error messages.

Every failure that reaches a client is rendered as
``{"success": false, "error": ..., "message": ...}``. Service code raises the
typed exceptions below; the handlers registered in ``src.main`` translate
them to HTTP responses without leaking stack traces outside debug mode.
"""
import logging
import traceback
from typing import Any

from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.requests import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.core.config import settings

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Standardized error response model."""
    success: bool = False
    error: str
    message: str | None = None
    details: Any | None = None


class SafeException(Exception):
    """Base exception for safe errors that can be shown to users."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, detail: str | None = None):
        """
        Initialize the safe exception.

        Args:
            message: User-friendly error message
            detail: Optional additional details
        """
        self.message = message
        self.detail = detail
        super().__init__(message)


class NotFoundError(SafeException):
    """A requested resource does not exist or is not visible to the caller."""

    status_code = status.HTTP_404_NOT_FOUND


class WalletNotFoundError(NotFoundError):
    """Exception when a wallet is not found."""

    def __init__(self, detail: str | None = None):
        super().__init__("Wallet not found", detail)


class PlanNotFoundError(NotFoundError):
    """Exception when a subscription plan is not found."""

    def __init__(self, plan_id: int):
        self.plan_id = plan_id
        super().__init__(
            "Subscription plan not found",
            f"Subscription plan with ID {plan_id} not found",
        )


class PaymentNotFoundError(NotFoundError):
    """Exception when a payment is not found."""

    def __init__(self, detail: str | None = None):
        super().__init__("Payment not found", detail)


class TransactionNotFoundError(NotFoundError):
    """Exception when a transaction is not found."""

    def __init__(self, detail: str | None = None):
        super().__init__("Transaction not found", detail)


class ExchangeRateMissingError(SafeException):
    """No stored exchange rate exists for the requested chain."""

    def __init__(self, chain: str):
        self.chain = chain
        super().__init__(
            "Exchange rate not available",
            f"Exchange rate for {chain} not found",
        )


class AuthorizationError(SafeException):
    """The caller lacks the permission required for the operation."""

    status_code = status.HTTP_403_FORBIDDEN


class BusinessRuleError(SafeException):
    """A request was well formed but violates a billing rule."""


class PaymentExpiredError(BusinessRuleError):
    """The payment request the transaction would settle has expired."""

    def __init__(self, reference_id: str):
        self.reference_id = reference_id
        super().__init__(
            "Payment request has expired",
            f"Payment {reference_id} expired before the transaction confirmed",
        )


class TransactionNotConfirmedError(BusinessRuleError):
    """The transaction does not have enough confirmations yet."""

    def __init__(self, confirmations: int, required: int):
        self.confirmations = confirmations
        self.required = required
        super().__init__(
            "Transaction not confirmed on blockchain",
            f"Transaction requires {required} confirmations, currently has {confirmations}",
        )


class UpstreamServiceError(SafeException):
    """A block explorer, RPC node or price feed could not be queried."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class WalletProvisioningError(SafeException):
    """A wallet could not be derived or stored."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def create_error_response(
    status_code: int,
    message: str,
    detail: str | None = None,
    details: Any | None = None,
) -> JSONResponse:
    """
    Create a standardized JSON error response.

    Args:
        status_code: HTTP status code
        message: Main error message
        detail: Optional human-readable detail
        details: Optional structured detail (validation errors)

    Returns:
        JSONResponse with error information
    """
    error_response = ErrorResponse(error=message, message=detail, details=details)

    logger.warning(f"Error {status_code}: {message} - {detail}")

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(error_response.model_dump(exclude_none=True)),
    )


async def safe_exception_handler(
    request: Request, exc: SafeException
) -> JSONResponse:
    """Render a typed service error with its own status code."""
    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        detail=exc.detail,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Reject malformed requests with 400 before any service call."""
    return create_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        message="Invalid request data",
        details=exc.errors(),
    )


async def http_exception_handler(
    request: Request, exc: HTTPException
) -> JSONResponse:
    """
    Handle HTTPException globally.

    Args:
        request: The request that caused the exception
        exc: The HTTPException that was raised

    Returns:
        JSONResponse with the exception detail as the error message
    """
    response = create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def general_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Handle all other exceptions globally.

    Args:
        request: The request that caused the exception
        exc: The exception that was raised

    Returns:
        JSONResponse with sanitized error information
    """
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}",
        exc_info=True,
    )

    if settings.debug:
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    else:
        detail = None

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="Internal server error",
        detail=detail,
    )
