"""
Payment-gated price-check protocol schemas.

This module defines the messages exchanged between a sentinel and the
price-check endpoint: the check request carrying the sentinel configuration,
the payment challenge, and the settled response.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from sentinel.core.networks import NetworkName, TokenKind
from sentinel.schemas.sentinel import Condition


class PriceCheckRequest(BaseModel):
    """Check request carrying the sentinel's full configuration."""
    sentinel_id: UUID | None = Field(None, description="Sentinel making the request")
    threshold: Decimal = Field(..., gt=0, description="Price threshold")
    condition: Condition = Field(..., description="Trigger condition")
    network: NetworkName = Field(NetworkName.TESTNET, description="Network the payment is made on")
    payment_method: TokenKind | None = Field(None, description="Preferred stablecoin")
    notification_target: str | None = Field(None, description="Webhook URL notified on trigger")


class PaymentChallenge(BaseModel):
    """HTTP 402 payment requirement. Ephemeral, one per unpaid request."""
    amount: Decimal = Field(..., description="Amount owed, in stablecoin units")
    recipient: str = Field(..., description="Address that must receive the payment")
    accepted_tokens: list[TokenKind] = Field(..., description="Tokens accepted on the requester's network")
    network: NetworkName = Field(..., description="Network the payment must be made on")
    message: str = Field("Payment required to access price data")
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_header(self) -> str:
        """Render the challenge as a Payment-Required header value."""
        tokens = ",".join(token.value for token in self.accepted_tokens)
        return (
            f"x402; amount={self.amount}; recipient={self.recipient}; "
            f"tokens={tokens}; network={self.network.value}"
        )


class SettledCheck(BaseModel):
    """Price data released after a verified payment."""
    price: Decimal = Field(..., description="Current oracle price")
    triggered: bool = Field(..., description="Whether the threshold condition was met")
    threshold: Decimal
    condition: Condition
    cost: Decimal = Field(..., description="Fee that was charged")
    token_used: TokenKind = Field(..., description="Token the fee was paid in")
    transaction_reference: str = Field(..., description="Transaction hash of the payment")
    network: NetworkName
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    notified: bool = Field(False, description="Whether the alert notification was delivered")
