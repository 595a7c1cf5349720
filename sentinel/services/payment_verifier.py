"""
On-chain payment verification.

Checks that a transaction hash presented as payment proof is a confirmed
ERC-20 transfer of the expected stablecoin to the oracle treasury, for at
least the fee, mined recently enough to count as fresh.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from web3.exceptions import TransactionNotFound

from sentinel.blockchain.web3_client import Web3Provider, get_web3
from sentinel.contracts.abis import TRANSFER_EVENT_TOPIC
from sentinel.core.config import settings
from sentinel.core.errors import InvalidPaymentMethod, NetworkUnavailable
from sentinel.core.networks import NetworkName, TokenKind, get_network_profile

logger = logging.getLogger(__name__)

TX_HASH_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class PaymentExpectation:
    """What a valid proof must show."""

    recipient: str
    amount: Decimal
    token: TokenKind
    network: NetworkName


def _hex(value: Any) -> str:
    """Normalize bytes or hex strings to lowercase hex without prefix."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex().lower()
    text = str(value).lower()
    return text[2:] if text.startswith("0x") else text


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class OnChainPaymentVerifier:
    """Verifies payment proofs against the chain."""

    def __init__(
        self,
        web3_provider: Web3Provider = get_web3,
        max_age_seconds: int | None = None,
        timeout: float | None = None,
    ):
        self.web3_provider = web3_provider
        self.max_age_seconds = max_age_seconds if max_age_seconds is not None else settings.proof_max_age_seconds
        self.timeout = timeout if timeout is not None else settings.balance_timeout_seconds

    async def verify(self, reference: str, expected: PaymentExpectation) -> bool:
        """
        Verify a payment proof.

        Args:
            reference: Transaction hash presented as proof
            expected: Recipient, minimum amount, token and network

        Returns:
            True if the transaction proves the payment

        Raises:
            NetworkUnavailable: If the chain could not be queried
        """
        if not TX_HASH_PATTERN.match(reference or ""):
            logger.info(f"Rejecting malformed payment proof: {reference!r}")
            return False

        profile = get_network_profile(expected.network)
        try:
            token = profile.token(expected.token)
        except InvalidPaymentMethod:
            logger.info(f"Rejecting proof in {expected.token} on {profile.display_name}")
            return False

        w3 = self.web3_provider(profile)
        try:
            receipt = await self._call(w3.eth.get_transaction_receipt, reference)
        except TransactionNotFound:
            logger.info(f"Payment proof {reference} not found on {profile.display_name}")
            return False

        if _field(receipt, "status") != 1:
            logger.info(f"Payment proof {reference} is a failed transaction")
            return False

        required = token.to_base_units(expected.amount)
        if not self._has_transfer(receipt, token.address, expected.recipient, required):
            logger.info(
                f"Payment proof {reference} has no transfer of {expected.amount} {token.symbol} "
                f"to {expected.recipient}"
            )
            return False

        block = await self._call(w3.eth.get_block, _field(receipt, "blockNumber"))
        age = time.time() - int(_field(block, "timestamp"))
        if age > self.max_age_seconds:
            logger.info(f"Payment proof {reference} is stale ({int(age)}s old)")
            return False

        logger.info(f"Payment proof {reference} verified")
        return True

    def _has_transfer(self, receipt: Any, token_address: str, recipient: str, required: int) -> bool:
        token_hex = _hex(token_address)
        recipient_hex = _hex(recipient)

        for log in _field(receipt, "logs") or []:
            if _hex(_field(log, "address")) != token_hex:
                continue
            topics = _field(log, "topics") or []
            if len(topics) < 3 or _hex(topics[0]) != _hex(TRANSFER_EVENT_TOPIC):
                continue
            # Indexed address topics are left-padded to 32 bytes
            if _hex(topics[2])[-40:] != recipient_hex:
                continue
            data = _hex(_field(log, "data"))
            if data and int(data, 16) >= required:
                return True
        return False

    async def _call(self, func, *args: Any) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout)
        except TransactionNotFound:
            raise
        except asyncio.TimeoutError as e:
            raise NetworkUnavailable("Payment verification timed out") from e
        except Exception as e:
            logger.warning(f"Payment verification query failed: {e}")
            raise NetworkUnavailable("Payment verification failed", detail=str(e)) from e
