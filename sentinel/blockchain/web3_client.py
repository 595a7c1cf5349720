"""
Web3 connections per network.

Connections are created lazily and cached per RPC endpoint. Services take a
``web3_provider`` callable so tests can hand in a mocked client.
"""

import logging
from collections.abc import Callable
from functools import lru_cache

from web3 import Web3

from sentinel.core.constants import BALANCE_TIMEOUT_SECONDS
from sentinel.core.networks import NetworkProfile

logger = logging.getLogger(__name__)

Web3Provider = Callable[[NetworkProfile], Web3]


@lru_cache(maxsize=8)
def _connect(rpc_url: str) -> Web3:
    logger.info(f"Connecting to RPC endpoint {rpc_url}")
    return Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": BALANCE_TIMEOUT_SECONDS}))


def get_web3(profile: NetworkProfile) -> Web3:
    """Get the cached web3 client for a network."""
    return _connect(profile.rpc_url)
