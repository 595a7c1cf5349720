"""Contract ABIs."""

from sentinel.contracts.abis import ERC20_ABI, TRANSFER_EVENT_TOPIC

__all__ = ["ERC20_ABI", "TRANSFER_EVENT_TOPIC"]
