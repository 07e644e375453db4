"""
USD pricing for supported crypto assets.

Prices come from the CoinGecko simple price API and are cached for a short
TTL. When CoinGecko is unreachable the last prices this service saw are
served, and failing that a fixed table of approximate prices.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import httpx

from src.blockchain.chains import CHAIN_CONFIGS, Chain, get_chain_config
from src.core.config import settings
from src.core.constants import FALLBACK_USD_PRICES
from src.core.errors import UpstreamServiceError
from src.services.cache import CacheService

logger = logging.getLogger(__name__)

PRICE_CACHE_KEY = "crypto_prices:usd"

# Decimal places shown in quotes per asset
QUOTE_PRECISION = {
    "bitcoin": 8,
    "solana": 6,
    "tether": 2,
}


class PriceService:
    """Fetches and caches USD prices for the assets the chains settle in."""

    def __init__(self, cache: CacheService, client: httpx.AsyncClient | None = None):
        """
        Initialize the price service.

        Args:
            cache: Cache used for fresh prices; its TTL bounds staleness
            client: HTTP client for CoinGecko
        """
        self.cache = cache
        self.session = client or httpx.AsyncClient(timeout=settings.explorer_timeout_seconds)
        self._last_prices: dict[str, Decimal] = {}

    @property
    def asset_ids(self) -> list[str]:
        return sorted({config.price_id for config in CHAIN_CONFIGS.values()})

    async def close(self) -> None:
        await self.session.aclose()

    async def get_current_prices(self, allow_fallback: bool = True) -> dict[str, Decimal]:
        """
        Current USD price per asset id (``bitcoin``, ``solana``, ``tether``).

        Args:
            allow_fallback: Fill assets CoinGecko did not return with the last
                known or fixed fallback prices

        Returns:
            Mapping of asset id to USD price; only freshly fetched assets when
            ``allow_fallback`` is False

        Raises:
            UpstreamServiceError: If no price could be fetched and fallbacks
                are not allowed
        """
        cached = await self.cache.get(PRICE_CACHE_KEY)
        if cached:
            return {asset: Decimal(str(price)) for asset, price in cached.items()}

        try:
            prices = await self._fetch_prices()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching crypto prices: {e}")
            prices = {}

        if prices:
            self._last_prices.update(prices)
            logger.info(f"Updated prices: {prices}")
        if len(prices) == len(self.asset_ids):
            await self.cache.set(
                PRICE_CACHE_KEY,
                {asset: str(price) for asset, price in prices.items()},
                expiration=settings.exchange_rate_cache_ttl_seconds,
            )

        if not allow_fallback:
            if not prices:
                raise UpstreamServiceError("Failed to fetch crypto prices")
            return prices

        if len(prices) < len(self.asset_ids):
            logger.info("Using last known or fallback prices for missing assets")
        return {**FALLBACK_USD_PRICES, **self._last_prices, **prices}

    async def _fetch_prices(self) -> dict[str, Decimal]:
        response = await self.session.get(
            f"{settings.coingecko_api_url}/simple/price",
            params={"ids": ",".join(self.asset_ids), "vs_currencies": "usd"},
        )
        response.raise_for_status()
        data = response.json()

        prices = {}
        for asset in self.asset_ids:
            usd = (data.get(asset) or {}).get("usd")
            if usd is None:
                logger.warning(f"CoinGecko returned no price for {asset}")
                continue
            price = Decimal(str(usd))
            if price > 0:
                prices[asset] = price
        return prices

    async def get_exchange_rate(self, chain: Chain | str) -> Decimal:
        """USD price of the asset ``chain`` settles in."""
        prices = await self.get_current_prices()
        return prices[get_chain_config(chain).price_id]

    async def get_quote_for_usd(self, usd_amount: Decimal) -> dict[str, dict[str, Any]]:
        """
        Quote ``usd_amount`` in every supported asset.

        Args:
            usd_amount: Positive USD amount

        Returns:
            Mapping of asset id to amount, symbol, price and display string
        """
        prices = await self.get_current_prices()
        symbols = {config.price_id: config.symbol for config in CHAIN_CONFIGS.values()}

        quotes = {}
        for asset in self.asset_ids:
            price = prices[asset]
            quantum = Decimal(1).scaleb(-QUOTE_PRECISION[asset])
            amount = (usd_amount / price).quantize(quantum, rounding=ROUND_HALF_UP)
            quotes[asset] = {
                "amount": str(amount),
                "symbol": symbols[asset],
                "usdValue": str(usd_amount),
                "price": str(price),
                "formattedAmount": f"{amount} {symbols[asset]}",
            }
        return quotes


_price_service: PriceService | None = None


def get_price_service() -> PriceService:
    """Dependency returning the shared PriceService instance."""
    global _price_service
    if _price_service is None:
        _price_service = PriceService(
            CacheService(default_ttl=settings.exchange_rate_cache_ttl_seconds)
        )
    return _price_service


async def close_price_service() -> None:
    """Close the shared service's HTTP session."""
    global _price_service
    if _price_service is not None:
        await _price_service.close()
        _price_service = None
