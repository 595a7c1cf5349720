"""
Network configuration for testnet and mainnet.

This module resolves which blockchain network is active and returns its
parameters: RPC endpoint, stablecoin contracts, payment ceilings and
explorer URLs. Profiles are built from settings and never change after
process start.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from enum import Enum

from sentinel.core.config import Settings, settings as default_settings
from sentinel.core.constants import STABLECOIN_DECIMALS
from sentinel.core.errors import InvalidPaymentMethod, PaymentCeilingExceeded

logger = logging.getLogger(__name__)


class NetworkName(str, Enum):
    """Supported networks."""
    TESTNET = "testnet"
    MAINNET = "mainnet"


class TokenKind(str, Enum):
    """Stablecoins a sentinel can pay with."""
    USDC = "usdc"
    USDT = "usdt"


@dataclass(frozen=True)
class TokenInfo:
    """ERC-20 token deployed on a network."""

    kind: TokenKind
    symbol: str
    address: str
    decimals: int = STABLECOIN_DECIMALS

    def to_base_units(self, amount: Decimal) -> int:
        """Convert a token amount to integer base units, rounding down."""
        return int(Decimal(amount).scaleb(self.decimals).to_integral_value(rounding=ROUND_DOWN))

    def from_base_units(self, value: int) -> Decimal:
        """Convert integer base units to a token amount."""
        return Decimal(value).scaleb(-self.decimals)


@dataclass(frozen=True)
class NetworkProfile:
    """Static parameters of one network."""

    name: NetworkName
    display_name: str
    rpc_url: str
    chain_id: int
    explorer_url: str
    tokens: tuple[TokenInfo, ...]
    max_single_payment: Decimal
    warning_threshold: Decimal
    warning_enabled: bool

    @property
    def is_mainnet(self) -> bool:
        return self.name == NetworkName.MAINNET

    @property
    def accepted_tokens(self) -> list[TokenKind]:
        """Tokens accepted for payment, in order of preference."""
        return [token.kind for token in self.tokens]

    def supports(self, kind: TokenKind | str) -> bool:
        return any(token.kind == kind for token in self.tokens)

    def token(self, kind: TokenKind | str) -> TokenInfo:
        """
        Get the token deployment for a payment method.

        Raises:
            InvalidPaymentMethod: If the token is not available on this network
        """
        for token in self.tokens:
            if token.kind == kind:
                return token

        label = kind.value if isinstance(kind, TokenKind) else str(kind)
        raise InvalidPaymentMethod(
            f"{label.upper()} is not available on {self.display_name}"
        )


def build_profile(name: NetworkName, config: Settings | None = None) -> NetworkProfile:
    """Build the profile for a network from settings."""
    config = config or default_settings

    if name == NetworkName.MAINNET:
        return NetworkProfile(
            name=NetworkName.MAINNET,
            display_name="Mainnet",
            rpc_url=config.mainnet_rpc_url,
            chain_id=config.mainnet_chain_id,
            explorer_url=config.mainnet_explorer_url,
            tokens=(
                TokenInfo(TokenKind.USDC, "USDC", config.mainnet_usdc_address),
                TokenInfo(TokenKind.USDT, "USDT", config.mainnet_usdt_address),
            ),
            max_single_payment=config.mainnet_max_single_payment,
            warning_threshold=config.mainnet_warning_threshold,
            warning_enabled=True,
        )

    # USDT is mainnet only
    return NetworkProfile(
        name=NetworkName.TESTNET,
        display_name="Testnet",
        rpc_url=config.testnet_rpc_url,
        chain_id=config.testnet_chain_id,
        explorer_url=config.testnet_explorer_url,
        tokens=(
            TokenInfo(TokenKind.USDC, "USDC", config.testnet_usdc_address),
        ),
        max_single_payment=config.testnet_max_single_payment,
        warning_threshold=config.testnet_warning_threshold,
        warning_enabled=False,
    )


def parse_network_name(value: NetworkName | str | None) -> NetworkName:
    """Parse a network name, defaulting to testnet when unset or unknown."""
    if isinstance(value, NetworkName):
        return value
    if not value:
        return NetworkName.TESTNET
    try:
        return NetworkName(value.strip().lower())
    except ValueError:
        logger.warning(f"Unknown network '{value}', falling back to testnet")
        return NetworkName.TESTNET


def get_network_profile(
    network: NetworkName | str | None,
    config: Settings | None = None,
) -> NetworkProfile:
    """Get the profile for a specific network."""
    return build_profile(parse_network_name(network), config)


def resolve_network(config: Settings | None = None) -> NetworkProfile:
    """
    Resolve the process's active network profile.

    Defaults to testnet for safety when no network is configured.
    """
    config = config or default_settings
    return get_network_profile(config.sentinel_network, config)


def check_payment_amount(amount: Decimal, profile: NetworkProfile) -> str | None:
    """
    Validate a payment amount against the network's safety limits.

    Args:
        amount: Payment amount in token units
        profile: Network the payment would be made on

    Returns:
        A warning message when the amount is above the warning threshold on a
        network that warns, otherwise None

    Raises:
        PaymentCeilingExceeded: If the amount is above the single-payment ceiling
    """
    amount = Decimal(amount)
    if amount > profile.max_single_payment:
        raise PaymentCeilingExceeded(
            amount=amount,
            ceiling=profile.max_single_payment,
            network=profile.display_name,
        )

    if profile.warning_enabled and amount > profile.warning_threshold:
        return f"About to spend {amount} on {profile.display_name} (real funds)"

    return None


def get_explorer_url(reference: str, profile: NetworkProfile, kind: str = "tx") -> str:
    """Get the block explorer URL for a transaction or address."""
    segment = "tx" if kind == "tx" else "address"
    return f"{profile.explorer_url.rstrip('/')}/{segment}/{reference}"
