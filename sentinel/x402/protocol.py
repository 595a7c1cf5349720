"""
x402 price-check protocol primitives.

States of the client-side exchange, header names, Payment-Required header
parsing and the token selection rule shared by the client and server.
"""

import logging
from decimal import Decimal, InvalidOperation
from enum import Enum

from sentinel.core.config import settings
from sentinel.core.errors import InvalidPaymentMethod, ProtocolError
from sentinel.core.networks import NetworkName, TokenKind, parse_network_name
from sentinel.schemas.protocol import PaymentChallenge

logger = logging.getLogger(__name__)

PAYMENT_REQUIRED_HEADER = "Payment-Required"
PAYMENT_PROOF_HEADER = "X-Payment-Proof"
PAYMENT_TOKEN_HEADER = "X-Payment-Token"


class ProtocolState(str, Enum):
    """States of one pay-then-retry price-check exchange."""
    INIT = "init"
    REQUEST_SENT = "request_sent"
    CHALLENGED = "challenged"
    PAYING = "paying"
    PAID_RETRY_SENT = "paid_retry_sent"
    SETTLED = "settled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({ProtocolState.SETTLED, ProtocolState.FAILED})

TRANSITIONS: dict[ProtocolState, frozenset[ProtocolState]] = {
    ProtocolState.INIT: frozenset({ProtocolState.REQUEST_SENT, ProtocolState.FAILED}),
    ProtocolState.REQUEST_SENT: frozenset({ProtocolState.CHALLENGED, ProtocolState.FAILED}),
    ProtocolState.CHALLENGED: frozenset({ProtocolState.PAYING, ProtocolState.FAILED}),
    ProtocolState.PAYING: frozenset({ProtocolState.PAID_RETRY_SENT, ProtocolState.FAILED}),
    ProtocolState.PAID_RETRY_SENT: frozenset({ProtocolState.SETTLED, ProtocolState.FAILED}),
    ProtocolState.SETTLED: frozenset(),
    ProtocolState.FAILED: frozenset(),
}


def parse_payment_required_header(header: str) -> dict[str, str]:
    """
    Parse a Payment-Required header.

    Format: ``x402; amount=0.0001; recipient=0x...; tokens=usdc,usdt; network=mainnet``

    Args:
        header: Payment-Required header value

    Returns:
        Dict containing parsed payment information
    """
    result: dict[str, str] = {}
    for part in header.split(";"):
        part = part.strip()
        if "=" in part:
            key, value = part.split("=", 1)
            result[key.strip().lower()] = value.strip()
        elif part:
            result[part.lower()] = ""
    return result


def challenge_from_header(header: str, fallback_network: NetworkName) -> PaymentChallenge:
    """
    Build a payment challenge from a Payment-Required header.

    Raises:
        ProtocolError: If the header is not an x402 challenge or misses fields
    """
    info = parse_payment_required_header(header)
    if "x402" not in info:
        raise ProtocolError("Payment-Required header is not an x402 challenge", detail=header)

    try:
        amount = Decimal(info["amount"])
        recipient = info["recipient"]
        tokens = [TokenKind(token.strip().lower()) for token in info["tokens"].split(",") if token.strip()]
    except (KeyError, InvalidOperation, ValueError) as e:
        raise ProtocolError("Malformed Payment-Required header", detail=str(e)) from e

    network = parse_network_name(info.get("network")) if info.get("network") else fallback_network
    return PaymentChallenge(
        amount=amount,
        recipient=recipient,
        accepted_tokens=tokens,
        network=network,
    )


def select_token(
    accepted: list[TokenKind],
    preference: TokenKind | str | None,
    network: NetworkName | str,
) -> TokenKind:
    """
    Choose the token to pay a challenge with.

    Test networks always use their single accepted token. On mainnet the
    sentinel's stated preference wins when it is accepted; an unset
    preference uses the configured default payment method, or the first
    accepted token when the default is not accepted.

    Raises:
        InvalidPaymentMethod: If nothing is accepted or the stated preference
            is not among the accepted tokens
    """
    if not accepted:
        raise InvalidPaymentMethod("Challenge accepts no payment tokens")

    if isinstance(preference, TokenKind):
        preference = preference.value

    if parse_network_name(network) != NetworkName.MAINNET:
        if preference and preference != accepted[0]:
            logger.info(f"Ignoring payment preference '{preference}' on testnet, using {accepted[0].value}")
        return accepted[0]

    if preference:
        for token in accepted:
            if token == preference:
                return token
        raise InvalidPaymentMethod(
            f"Preferred token '{preference}' is not accepted; accepted: "
            f"{', '.join(token.value for token in accepted)}"
        )

    for token in accepted:
        if token == settings.default_payment_method:
            return token
    return accepted[0]
