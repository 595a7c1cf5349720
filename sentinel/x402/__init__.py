"""
x402 payment-gated price-check protocol.
"""

from sentinel.x402.protocol import (
    PAYMENT_PROOF_HEADER,
    PAYMENT_REQUIRED_HEADER,
    PAYMENT_TOKEN_HEADER,
    ProtocolState,
    parse_payment_required_header,
    select_token,
)

__all__ = [
    "PAYMENT_PROOF_HEADER",
    "PAYMENT_REQUIRED_HEADER",
    "PAYMENT_TOKEN_HEADER",
    "ProtocolState",
    "parse_payment_required_header",
    "select_token",
]
