"""
Market price oracle.

Fetches the monitored asset's USD price from CoinMarketCap when an API key is
configured, falling back to CoinGecko. Prices are cached briefly so a burst of
paid checks does not hammer the upstream APIs. When every source fails the
oracle raises NetworkUnavailable; it never invents a price.
"""

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from sentinel.core.config import settings
from sentinel.core.errors import NetworkUnavailable

logger = logging.getLogger(__name__)


class MarketPriceOracle:
    """Price oracle backed by public market data APIs."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        cache_ttl: float | None = None,
    ):
        """
        Initialize the oracle.

        Args:
            client: HTTP client; one is created when not given
            cache_ttl: Seconds a fetched price stays fresh
        """
        self.client = client or httpx.AsyncClient(timeout=settings.price_feed_timeout_seconds)
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.price_cache_ttl_seconds
        self.symbol = settings.price_asset_symbol
        self._cached_price: Decimal | None = None
        self._cached_at = 0.0

    async def get_current_price(self) -> Decimal:
        """
        Get the current USD price of the monitored asset.

        Raises:
            NetworkUnavailable: If no price source answered
        """
        if self._cached_price is not None and time.monotonic() - self._cached_at < self.cache_ttl:
            return self._cached_price

        sources = []
        if settings.coinmarketcap_api_key:
            sources.append(("CoinMarketCap", self._fetch_coinmarketcap))
        sources.append(("CoinGecko", self._fetch_coingecko))

        errors: list[str] = []
        for name, fetch in sources:
            try:
                price = await fetch()
            except (httpx.HTTPError, KeyError, TypeError, ValueError, InvalidOperation) as e:
                logger.warning(f"{name} price fetch failed: {e}")
                errors.append(f"{name}: {e}")
                continue

            if price <= 0:
                logger.warning(f"{name} returned a non-positive price: {price}")
                errors.append(f"{name}: non-positive price")
                continue

            logger.info(f"{self.symbol} price from {name}: {price}")
            self._cached_price = price
            self._cached_at = time.monotonic()
            return price

        raise NetworkUnavailable("Price oracle unavailable", detail="; ".join(errors))

    async def _fetch_coinmarketcap(self) -> Decimal:
        response = await self.client.get(
            settings.coinmarketcap_url,
            params={"symbol": self.symbol, "convert": "USD"},
            headers={
                "Accept": "application/json",
                "X-CMC_PRO_API_KEY": settings.coinmarketcap_api_key or "",
            },
        )
        response.raise_for_status()
        data: dict[str, Any] = response.json()
        return Decimal(str(data["data"][self.symbol]["quote"]["USD"]["price"]))

    async def _fetch_coingecko(self) -> Decimal:
        asset_id = settings.price_asset_coingecko_id
        response = await self.client.get(
            settings.coingecko_url,
            params={"ids": asset_id, "vs_currencies": "usd"},
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        data: dict[str, Any] = response.json()
        return Decimal(str(data[asset_id]["usd"]))

    def clear_cache(self) -> None:
        self._cached_price = None
        self._cached_at = 0.0

    async def close(self) -> None:
        await self.client.aclose()
