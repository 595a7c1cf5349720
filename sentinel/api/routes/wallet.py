"""
Wallet API routes.

Balance lookups for sentinel wallets, including how many price checks the
wallet can still pay for.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from sentinel.api.deps import get_balance_service
from sentinel.core.networks import NetworkName, TokenKind
from sentinel.schemas.sentinel import ADDRESS_PATTERN
from sentinel.services.balance_service import BalanceService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{address}/balances", summary="Wallet balances")
async def get_wallet_balances(
    address: str,
    network: NetworkName | None = Query(default=None, description="Defaults to the active network"),
    payment_method: TokenKind | None = Query(default=None, description="Stablecoin to report"),
    balances: BalanceService = Depends(get_balance_service),
) -> dict[str, Any]:
    """Get native and stablecoin balances of a wallet."""
    if not ADDRESS_PATTERN.match(address):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Address must be a 0x-prefixed 20-byte hex address",
        )

    result = await balances.get_wallet_balances(address, payment_method, network)
    return {
        **result,
        "native_balance": str(result["native_balance"]),
        "token_balance": str(result["token_balance"]),
    }
