"""
Wallet custody for sentinel signers.

The payment executor treats the signer as opaque. The shipped keyring holds
development keys loaded from settings; production deployments plug in their
own custody implementing the same protocol.
"""

import logging
from typing import Protocol

from eth_account import Account
from eth_account.signers.local import LocalAccount

from sentinel.core.config import settings
from sentinel.core.errors import SignerUnavailable

logger = logging.getLogger(__name__)


class WalletCustody(Protocol):
    """Supplies the signer for a sentinel's wallet."""

    def get_signer(self, address: str) -> LocalAccount: ...


class KeyringCustody:
    """In-process keyring of sentinel wallets (development only)."""

    def __init__(self, private_keys: list[str] | None = None):
        keys = private_keys if private_keys is not None else settings.private_keys
        self._accounts: dict[str, LocalAccount] = {}
        for key in keys:
            self.add_key(key)

    def add_key(self, private_key: str) -> str:
        """
        Register a private key.

        Returns:
            The checksummed address of the key
        """
        account = Account.from_key(private_key)
        self._accounts[account.address.lower()] = account
        logger.info(f"Registered signer for {account.address}")
        return account.address

    def has_signer(self, address: str) -> bool:
        return address.lower() in self._accounts

    def get_signer(self, address: str) -> LocalAccount:
        """
        Get the signer for a wallet.

        Raises:
            SignerUnavailable: If no key is held for the address
        """
        account = self._accounts.get(address.lower())
        if account is None:
            raise SignerUnavailable(f"No signer available for wallet {address}")
        return account

    @property
    def addresses(self) -> list[str]:
        return [account.address for account in self._accounts.values()]
