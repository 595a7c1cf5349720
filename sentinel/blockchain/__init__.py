"""
Blockchain integration module.

This module provides the web3 connection used for balance queries,
stablecoin transfers and payment verification.
"""

from sentinel.blockchain.web3_client import Web3Provider, get_web3

__all__ = ["Web3Provider", "get_web3"]
