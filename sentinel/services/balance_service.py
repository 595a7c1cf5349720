"""
Balance oracle for sentinel wallets.

This service reads native coin and stablecoin balances from the chain. An
RPC failure is reported as NetworkUnavailable so callers treat the balance
as unknown rather than zero and never auto-pause on an outage.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any

from web3 import Web3

from sentinel.blockchain.web3_client import Web3Provider, get_web3
from sentinel.contracts.abis import ERC20_ABI
from sentinel.core.config import settings
from sentinel.core.constants import MIN_NATIVE_BALANCE, MIN_TOKEN_BALANCE
from sentinel.core.errors import NetworkUnavailable, SentinelError
from sentinel.core.networks import (
    NetworkName,
    NetworkProfile,
    TokenKind,
    get_network_profile,
    resolve_network,
)

logger = logging.getLogger(__name__)


class BalanceService:
    """Service for on-chain balance queries."""

    def __init__(
        self,
        web3_provider: Web3Provider = get_web3,
        timeout: float | None = None,
    ):
        """
        Initialize the balance service.

        Args:
            web3_provider: Returns the web3 client for a network
            timeout: Seconds allowed per balance query
        """
        self.web3_provider = web3_provider
        self.timeout = timeout if timeout is not None else settings.balance_timeout_seconds

    def _profile(self, network: NetworkName | str | None) -> NetworkProfile:
        return get_network_profile(network) if network else resolve_network()

    async def _query(self, description: str, func, *args: Any) -> Any:
        """Run a blocking web3 call off the event loop with a timeout."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Balance query timed out after {self.timeout}s: {description}")
            raise NetworkUnavailable(f"Balance query timed out: {description}") from e
        except SentinelError:
            raise
        except Exception as e:
            logger.warning(f"Balance query failed ({description}): {e}")
            raise NetworkUnavailable(f"Balance query failed: {description}", detail=str(e)) from e

    async def get_native_balance(self, address: str, network: NetworkName | str | None = None) -> Decimal:
        """
        Get the native coin balance of a wallet.

        Raises:
            NetworkUnavailable: If the RPC endpoint cannot be queried
        """
        profile = self._profile(network)
        w3 = self.web3_provider(profile)
        checksum = Web3.to_checksum_address(address)

        balance_wei = await self._query(f"native balance of {address}", w3.eth.get_balance, checksum)
        return Decimal(str(Web3.from_wei(balance_wei, "ether")))

    async def get_stablecoin_balance(
        self,
        address: str,
        token_kind: TokenKind | str,
        network: NetworkName | str | None = None,
    ) -> Decimal:
        """
        Get a wallet's balance of a stablecoin.

        Raises:
            InvalidPaymentMethod: If the token is not deployed on the network
            NetworkUnavailable: If the RPC endpoint cannot be queried
        """
        profile = self._profile(network)
        token = profile.token(token_kind)
        w3 = self.web3_provider(profile)

        contract = w3.eth.contract(address=Web3.to_checksum_address(token.address), abi=ERC20_ABI)
        call = contract.functions.balanceOf(Web3.to_checksum_address(address))

        raw_balance = await self._query(f"{token.symbol} balance of {address}", call.call)
        return token.from_base_units(int(raw_balance))

    async def get_wallet_balances(
        self,
        address: str,
        payment_method: TokenKind | str | None = None,
        network: NetworkName | str | None = None,
    ) -> dict[str, Any]:
        """
        Get native and stablecoin balances with a funding assessment.

        Args:
            address: Wallet address
            payment_method: Stablecoin to report; defaults to the configured method
            network: Network to query; defaults to the active network

        Returns:
            Dict with balances, whether the wallet is funded, and how many
            price checks the stablecoin balance can pay for
        """
        profile = self._profile(network)
        token = profile.token(payment_method or settings.default_payment_method)

        native, stablecoin = await asyncio.gather(
            self.get_native_balance(address, profile.name),
            self.get_stablecoin_balance(address, token.kind, profile.name),
        )

        fee = settings.price_check_cost
        checks_remaining = int(stablecoin / fee) if fee > 0 else 0
        funded = native >= Decimal(MIN_NATIVE_BALANCE) and stablecoin >= Decimal(MIN_TOKEN_BALANCE)

        logger.info(
            f"Balances for {address} on {profile.display_name}: "
            f"native={native}, {token.symbol}={stablecoin}"
        )

        return {
            "wallet_address": address,
            "network": profile.name.value,
            "native_balance": native,
            "token": token.kind.value,
            "token_balance": stablecoin,
            "funded": funded,
            "checks_remaining": checks_remaining,
        }
