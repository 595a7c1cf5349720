"""
API module containing FastAPI routes and endpoints.

This module provides the main API router that includes all sub-routers
for the price-check protocol, sentinels, wallets and metrics.
"""

from fastapi import APIRouter

from sentinel.api.routes import check_price, metrics, sentinels, wallet

router = APIRouter()

router.include_router(check_price.router, prefix="", tags=["Price Check"])
router.include_router(sentinels.router, prefix="/sentinels", tags=["Sentinels"])
router.include_router(wallet.router, prefix="/wallet", tags=["Wallet"])
router.include_router(metrics.router, prefix="", tags=["Monitoring"])

__all__ = ["router"]
