"""
Payment-gated price-check endpoint.

Unpaid requests receive HTTP 402 with a payment challenge in the body and in
the Payment-Required header. Paid retries carry the transaction hash in
X-Payment-Proof and the token in X-Payment-Token. A rejected proof gets a
fresh 402 challenge; an unreachable chain or price oracle yields 503.
"""

import logging

from fastapi import APIRouter, Depends, Header, status
from fastapi.responses import JSONResponse

from sentinel.api.deps import get_price_check_service
from sentinel.core.errors import VerificationFailed
from sentinel.schemas.protocol import PaymentChallenge, PriceCheckRequest, SettledCheck
from sentinel.services.price_check_service import PriceCheckService
from sentinel.x402.protocol import (
    PAYMENT_PROOF_HEADER,
    PAYMENT_REQUIRED_HEADER,
    PAYMENT_TOKEN_HEADER,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def payment_required_response(
    challenge: PaymentChallenge,
    message: str = "Payment required to access price data",
) -> JSONResponse:
    """Build the HTTP 402 response for a challenge."""
    return JSONResponse(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        content={
            "error": "payment_required",
            "message": message,
            "challenge": challenge.model_dump(mode="json"),
        },
        headers={PAYMENT_REQUIRED_HEADER: challenge.to_header()},
    )


@router.post(
    "/check-price",
    response_model=SettledCheck,
    summary="Paid price check",
    responses={
        402: {"description": "Payment required; body and Payment-Required header carry the challenge"},
        503: {"description": "Blockchain or price oracle unavailable"},
    },
)
async def check_price(
    body: PriceCheckRequest,
    payment_proof: str | None = Header(None, alias=PAYMENT_PROOF_HEADER),
    payment_token: str | None = Header(None, alias=PAYMENT_TOKEN_HEADER),
    service: PriceCheckService = Depends(get_price_check_service),
) -> SettledCheck | JSONResponse:
    """
    Check the current price against the sentinel's threshold.

    The request body carries the sentinel's full configuration.
    """
    if not payment_proof:
        return payment_required_response(service.issue_challenge(body))

    try:
        return await service.settle(body, payment_proof, payment_token)
    except VerificationFailed as e:
        return payment_required_response(
            e.challenge or service.issue_challenge(body),
            message=e.message,
        )
