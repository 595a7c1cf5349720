"""
Centralized error handling and safe error messages.

This module defines the error taxonomy shared by the payment, protocol and
scheduling layers, plus FastAPI handlers that turn exceptions into sanitized
JSON responses without leaking stack traces or internal details.
"""

import logging
import traceback
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from fastapi import HTTPException
from fastapi.requests import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sentinel.core.config import settings
from sentinel.services.alerting_service import (
    AlertType,
    send_critical_alert,
)

if TYPE_CHECKING:
    from sentinel.schemas.protocol import PaymentChallenge
    from sentinel.services.payment_executor import PaymentReceipt

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str
    code: str | None = None
    detail: str | None = None


class SafeException(Exception):
    """Base exception for safe errors that can be shown to users."""

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


class SentinelError(SafeException):
    """
    Base exception for sentinel check failures.

    A payment receipt is attached when the failure happened after the fee was
    charged, so the caller can still record what was paid.
    """

    error_code = "sentinel_error"
    http_status = 500

    def __init__(
        self,
        message: str,
        detail: str | None = None,
        receipt: "PaymentReceipt | None" = None,
    ):
        self.receipt = receipt
        super().__init__(message, detail)


class NetworkUnavailable(SentinelError):
    """RPC, oracle or protocol endpoint could not be reached. Retry next cycle."""

    error_code = "network_unavailable"
    http_status = 503


class InsufficientFunds(SentinelError):
    """Wallet cannot cover the payment. Terminal for the sentinel."""

    error_code = "insufficient_funds"
    http_status = 400

    def __init__(
        self,
        message: str,
        required: Decimal | None = None,
        available: Decimal | None = None,
        token: str | None = None,
    ):
        self.required = required
        self.available = available
        self.token = token
        super().__init__(message)


class PaymentCeilingExceeded(SentinelError):
    """Payment amount is above the network's single-payment safety cap."""

    error_code = "payment_ceiling_exceeded"
    http_status = 400

    def __init__(self, amount: Decimal, ceiling: Decimal, network: str):
        self.amount = amount
        self.ceiling = ceiling
        self.network = network
        super().__init__(
            f"Payment amount {amount} exceeds maximum allowed {ceiling} on {network}"
        )


class VerificationFailed(SentinelError):
    """Payment proof was rejected. Carries the fresh challenge to pay again."""

    error_code = "verification_failed"
    http_status = 402

    def __init__(
        self,
        message: str,
        challenge: "PaymentChallenge | None" = None,
        receipt: "PaymentReceipt | None" = None,
    ):
        self.challenge = challenge
        super().__init__(message, receipt=receipt)


class NotifierFailed(SentinelError):
    """Notification could not be delivered. Never fails a check cycle."""

    error_code = "notifier_failed"
    http_status = 502


class PersistenceFailed(SentinelError):
    """Storage write or read failed."""

    error_code = "persistence_failed"
    http_status = 500


class InvalidPaymentMethod(SentinelError):
    """Token is not available on the requested network."""

    error_code = "invalid_payment_method"
    http_status = 400


class PaymentFailed(SentinelError):
    """Transfer was submitted but reverted, or rejected by the node."""

    error_code = "payment_failed"
    http_status = 502


class ProtocolError(SentinelError):
    """Price-check endpoint answered with an unexpected or malformed response."""

    error_code = "protocol_error"
    http_status = 502


class SignerUnavailable(SentinelError):
    """Wallet custody holds no signer for the sentinel's wallet."""

    error_code = "signer_unavailable"
    http_status = 500


def create_safe_error_message(
    error: Exception, include_detail: bool = False
) -> str:
    """
    Create a safe error message that doesn't leak sensitive information.

    Args:
        error: The exception that occurred
        include_detail: Whether to include non-sensitive detail

    Returns:
        A safe error message for the user
    """
    if settings.debug:
        return str(error)

    if isinstance(error, SafeException):
        if include_detail and error.detail:
            return f"{error.message}: {error.detail}"
        return error.message

    error_type = type(error).__name__

    safe_messages = {
        "ValueError": "Invalid input provided",
        "ValidationError": "Request validation failed",
        "NotFoundError": "Resource not found",
        "ConnectionError": "Service unavailable",
        "TimeoutError": "Request timed out",
        "HTTPException": "Request processing error",
        "SQLAlchemyError": "Database error occurred",
    }

    return safe_messages.get(error_type, "An error occurred while processing your request")


def create_error_response(
    status_code: int,
    message: str,
    detail: str | None = None,
    code: str | None = None,
) -> JSONResponse:
    """
    Create a standardized JSON error response.

    Args:
        status_code: HTTP status code
        message: Main error message
        detail: Optional additional detail
        code: Optional machine-readable error code

    Returns:
        JSONResponse with error information
    """
    error_response = ErrorResponse(
        error=message, code=code, detail=detail if settings.debug else None
    )

    logger.error(f"Error {status_code}: {message} - {detail}")

    return JSONResponse(
        status_code=status_code, content=error_response.model_dump()
    )


async def sentinel_error_handler(
    request: Request, exc: SentinelError
) -> JSONResponse:
    """Map sentinel errors to their HTTP status and error code."""
    return create_error_response(
        status_code=exc.http_status,
        message=exc.message,
        detail=exc.detail,
        code=exc.error_code,
    )


async def http_exception_handler(
    request: Request, exc: HTTPException
) -> JSONResponse:
    """
    Handle HTTPException globally and sanitize error messages.

    Args:
        request: The request that caused the exception
        exc: The HTTPException that was raised

    Returns:
        JSONResponse with sanitized error information
    """
    message = str(exc.detail) if exc.detail else create_safe_error_message(exc)
    return create_error_response(
        status_code=exc.status_code,
        message=message,
        detail=str(exc.detail) if exc.detail else None,
    )


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
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    if settings.alert_enabled:
        send_critical_alert(
            alert_type=AlertType.EXTERNAL_SERVICE_FAILURE,
            message=f"Unhandled exception: {type(exc).__name__}",
            details={
                "error": str(exc),
                "path": str(request.url.path),
                "method": request.method,
            },
        )

    if settings.debug:
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    else:
        detail = None

    return create_error_response(
        status_code=500,
        message="Internal server error",
        detail=detail,
    )


def describe_error(error: Exception) -> dict[str, Any]:
    """Summarize an error for logs and alert details."""
    summary: dict[str, Any] = {
        "type": type(error).__name__,
        "message": create_safe_error_message(error),
    }
    if isinstance(error, SentinelError):
        summary["code"] = error.error_code
        if error.receipt is not None:
            summary["transaction_reference"] = error.receipt.tx_hash
    return summary
