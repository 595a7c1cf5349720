"""
Blockchain Error Handling Module

This module translates web3.py and JSON-RPC failures into the sentinel error
taxonomy so callers can tell a transient outage (retry next cycle) from an
exhausted wallet (pause the sentinel) or a reverted transfer.
"""

import logging
import re

from web3.exceptions import (
    ContractLogicError,
    TimeExhausted,
    TransactionNotFound,
    Web3Exception,
)

from sentinel.core.errors import (
    InsufficientFunds,
    NetworkUnavailable,
    PaymentFailed,
    SentinelError,
)

logger = logging.getLogger(__name__)


REVERT_REASONS = {
    r"transfer amount exceeds balance": "Token balance too low for transfer",
    r"insufficient.*balance": "Insufficient balance to complete the transaction",
    r"allowance.*too.*low": "Token allowance is too low",
    r"contract.*paused": "Token contract is currently paused",
    r"blacklist": "Wallet is blocked by the token contract",
    r"out.*of.*gas": "Transaction ran out of gas",
    r"execution.*reverted": "Transaction execution failed",
}


def parse_revert_reason(reason: str) -> str:
    """Parse revert reason for user-friendly display."""
    if not reason:
        return "Unknown contract error"

    reason_lower = reason.lower()
    for pattern, friendly_message in REVERT_REASONS.items():
        if re.search(pattern, reason_lower):
            return friendly_message

    return reason


def is_insufficient_funds_message(message: str) -> bool:
    """Check whether a node error message reports an unfunded account."""
    text = message.lower()
    return (
        ("insufficient" in text and ("funds" in text or "balance" in text))
        or "exceeds balance" in text
    )


class BlockchainErrorHandler:
    """Centralized handler for blockchain errors."""

    @staticmethod
    def handle_revert_error(error: ContractLogicError, tx_hash: str | None = None) -> SentinelError:
        """
        Handle contract revert errors.

        A revert caused by a short token balance is reported as
        InsufficientFunds so the scheduler can pause the sentinel.
        """
        logger.error(f"Transaction reverted: {error}")

        revert_reason = str(error.args[0]) if error.args else str(error)
        if is_insufficient_funds_message(revert_reason):
            return InsufficientFunds(f"Transfer reverted: {parse_revert_reason(revert_reason)}")

        return PaymentFailed(
            f"Transaction reverted: {parse_revert_reason(revert_reason)}",
            detail=tx_hash,
        )

    @staticmethod
    def handle_timeout_error(error: Exception, tx_hash: str | None = None) -> NetworkUnavailable:
        """Handle confirmation timeouts and lookups of unknown transactions."""
        logger.error(f"Transaction timeout: {tx_hash or 'unknown'} ({error})")
        return NetworkUnavailable(
            "Transaction was not confirmed in time",
            detail=tx_hash,
        )

    @staticmethod
    def parse_web3_error(error: Exception, tx_hash: str | None = None) -> SentinelError:
        """
        Parse web3.py errors into the sentinel error taxonomy.

        Args:
            error: The web3.py or transport error
            tx_hash: Transaction hash, when the transfer was already submitted

        Returns:
            Appropriate SentinelError subclass
        """
        if isinstance(error, SentinelError):
            return error

        if isinstance(error, ContractLogicError):
            return BlockchainErrorHandler.handle_revert_error(error, tx_hash)

        if isinstance(error, (TimeExhausted, TransactionNotFound, TimeoutError)):
            return BlockchainErrorHandler.handle_timeout_error(error, tx_hash)

        if isinstance(error, (ConnectionError, OSError)):
            logger.error(f"RPC connection failed: {error}")
            return NetworkUnavailable("Blockchain RPC is unreachable", detail=str(error))

        message = str(error)
        if is_insufficient_funds_message(message):
            logger.error(f"Node rejected transfer for insufficient funds: {message}")
            return InsufficientFunds("Insufficient funds to cover the transfer and gas")

        if isinstance(error, (Web3Exception, ValueError)):
            # Nodes report rejected transactions as ValueError with an RPC error payload
            logger.error(f"Transaction rejected: {message}")
            return PaymentFailed("Transaction rejected by the network", detail=message)

        logger.error(f"Unexpected blockchain error: {type(error).__name__}: {message}")
        return NetworkUnavailable("Blockchain request failed", detail=message)


# Global error handler instance
blockchain_error_handler = BlockchainErrorHandler()
