"""
Stablecoin payment execution.

This service sends the price-check fee from a sentinel wallet to the oracle
treasury as an ERC-20 transfer and blocks until the transfer is confirmed.
Safety checks run in a fixed order so that nothing reaches the network when
the amount is above the network ceiling or the wallet cannot cover it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from eth_account.signers.local import LocalAccount
from web3 import Web3

from sentinel.blockchain.web3_client import Web3Provider, get_web3
from sentinel.contracts.abis import ERC20_ABI
from sentinel.core.blockchain_errors import blockchain_error_handler
from sentinel.core.config import settings
from sentinel.core.errors import (
    InsufficientFunds,
    NetworkUnavailable,
    PaymentFailed,
    SentinelError,
)
from sentinel.core.networks import (
    NetworkName,
    NetworkProfile,
    TokenInfo,
    TokenKind,
    check_payment_amount,
    get_explorer_url,
    get_network_profile,
)
from sentinel.services.balance_service import BalanceService
from sentinel.services.metrics_service import metrics_collector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentReceipt:
    """Durable reference to a submitted fee payment."""

    tx_hash: str
    amount: Decimal
    token: TokenKind
    network: NetworkName
    from_address: str
    to_address: str
    settlement_ms: int
    explorer_url: str
    block_number: int | None = None
    confirmed: bool = True

    @property
    def charged(self) -> Decimal:
        """Fee actually charged; zero unless the transfer was confirmed."""
        return self.amount if self.confirmed else Decimal("0")


class PaymentExecutor:
    """Executes stablecoin fee payments from sentinel wallets."""

    def __init__(
        self,
        balance_service: BalanceService | None = None,
        web3_provider: Web3Provider = get_web3,
        submit_timeout: float | None = None,
        confirmation_timeout: float | None = None,
    ):
        """
        Initialize the payment executor.

        Args:
            balance_service: Balance oracle used for the pre-flight check
            web3_provider: Returns the web3 client for a network
            submit_timeout: Seconds allowed to build and sign the transfer
            confirmation_timeout: Seconds allowed for the transfer to confirm
        """
        self.web3_provider = web3_provider
        self.balance_service = balance_service or BalanceService(web3_provider=web3_provider)
        self.submit_timeout = submit_timeout if submit_timeout is not None else settings.protocol_timeout_seconds
        self.confirmation_timeout = (
            confirmation_timeout if confirmation_timeout is not None else settings.confirmation_timeout_seconds
        )

    async def pay(
        self,
        signer: LocalAccount,
        to_address: str,
        amount: Decimal,
        token_kind: TokenKind | str,
        network: NetworkName | str,
    ) -> PaymentReceipt:
        """
        Pay a fee and wait for on-chain confirmation.

        Args:
            signer: Signer of the paying sentinel wallet
            to_address: Recipient of the payment
            amount: Amount in token units
            token_kind: Stablecoin to pay with
            network: Network the sentinel lives on

        Returns:
            Receipt of the confirmed transfer

        Raises:
            PaymentCeilingExceeded: Amount is above the network ceiling
            InvalidPaymentMethod: Token is not deployed on the network
            InsufficientFunds: Wallet cannot cover the amount or the gas
            NetworkUnavailable: RPC failure or confirmation timeout
            PaymentFailed: Transfer was rejected or reverted
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise PaymentFailed(f"Payment amount must be positive, got {amount}")

        profile = get_network_profile(network)

        warning = check_payment_amount(amount, profile)
        if warning:
            logger.warning(warning)

        token = profile.token(token_kind)
        await self._check_funds(signer.address, amount, token, profile)

        logger.info(
            f"Paying {amount} {token.symbol} from {signer.address} to {to_address} on {profile.display_name}"
        )

        w3 = self.web3_provider(profile)
        started = time.perf_counter()
        try:
            signed = await self._run(
                self._sign_transfer, self.submit_timeout, w3, signer, token, to_address, amount, profile
            )
        except SentinelError:
            metrics_collector.record_payment(amount, success=False)
            raise
        except Exception as e:
            metrics_collector.record_payment(amount, success=False)
            raise blockchain_error_handler.parse_web3_error(e) from e

        # Known before sending, so an ambiguous send still leaves a reference
        tx_hash = Web3.to_hex(Web3.keccak(signed.raw_transaction))

        def build_receipt(confirmed: bool, block_number: int | None = None) -> PaymentReceipt:
            return PaymentReceipt(
                tx_hash=tx_hash,
                amount=amount,
                token=token.kind,
                network=profile.name,
                from_address=signer.address,
                to_address=to_address,
                settlement_ms=int((time.perf_counter() - started) * 1000),
                explorer_url=get_explorer_url(tx_hash, profile),
                block_number=block_number,
                confirmed=confirmed,
            )

        try:
            # No timeout here: once the transfer is sent it cannot be called back
            sent = await asyncio.to_thread(w3.eth.send_raw_transaction, signed.raw_transaction)
        except Exception as e:
            metrics_collector.record_payment(amount, success=False)
            error = blockchain_error_handler.parse_web3_error(e, tx_hash=tx_hash)
            if isinstance(error, NetworkUnavailable):
                # The node may have accepted the transfer before the connection failed
                logger.error(f"Payment {tx_hash} sent with unknown outcome: {error.message}")
                error.receipt = build_receipt(confirmed=False)
            if error is e:
                raise
            raise error from e
        tx_hash = Web3.to_hex(sent)

        try:
            receipt = await self._run(
                w3.eth.wait_for_transaction_receipt,
                self.confirmation_timeout + 5,
                tx_hash,
                self.confirmation_timeout,
            )
        except Exception as e:
            metrics_collector.record_payment(amount, success=False)
            error = blockchain_error_handler.parse_web3_error(e, tx_hash=tx_hash)
            error.receipt = build_receipt(confirmed=False)
            if error is e:
                raise
            raise error from e

        if _receipt_field(receipt, "status") != 1:
            metrics_collector.record_payment(amount, success=False)
            logger.error(f"Payment transaction {tx_hash} reverted")
            raise PaymentFailed(
                "Payment transaction reverted",
                detail=tx_hash,
                receipt=build_receipt(confirmed=False),
            )

        result = build_receipt(confirmed=True, block_number=_receipt_field(receipt, "blockNumber"))
        metrics_collector.record_payment(amount, success=True)
        logger.info(f"Payment confirmed: {tx_hash} in {result.settlement_ms}ms")
        return result

    async def _check_funds(
        self,
        address: str,
        amount: Decimal,
        token: TokenInfo,
        profile: NetworkProfile,
    ) -> None:
        """Pre-flight balance check. Submits nothing."""
        balance = await self.balance_service.get_stablecoin_balance(address, token.kind, profile.name)
        if balance < amount:
            logger.warning(
                f"Insufficient {token.symbol} in {address}: have {balance}, need {amount}"
            )
            raise InsufficientFunds(
                f"Insufficient {token.symbol} balance: have {balance}, need {amount}",
                required=amount,
                available=balance,
                token=token.symbol,
            )

        native = await self.balance_service.get_native_balance(address, profile.name)
        if native <= 0:
            logger.warning(f"No native balance in {address} to pay gas")
            raise InsufficientFunds(
                "No native balance to pay transaction fees",
                required=None,
                available=native,
                token="native",
            )

    async def _run(self, func, timeout: float, *args: Any) -> Any:
        """Run a blocking web3 call off the event loop with a timeout."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise NetworkUnavailable(f"Blockchain call timed out after {timeout}s") from e

    @staticmethod
    def _sign_transfer(
        w3: Web3,
        signer: LocalAccount,
        token: TokenInfo,
        to_address: str,
        amount: Decimal,
        profile: NetworkProfile,
    ) -> Any:
        contract = w3.eth.contract(address=Web3.to_checksum_address(token.address), abi=ERC20_ABI)
        transfer = contract.functions.transfer(
            Web3.to_checksum_address(to_address),
            token.to_base_units(amount),
        )
        tx = transfer.build_transaction({
            "from": signer.address,
            "chainId": profile.chain_id,
            "nonce": w3.eth.get_transaction_count(signer.address, "pending"),
        })
        return signer.sign_transaction(tx)


def _receipt_field(receipt: Any, name: str) -> Any:
    if isinstance(receipt, dict):
        return receipt.get(name)
    return getattr(receipt, name, None)
