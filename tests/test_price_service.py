"""
Tests for CoinGecko pricing, price caching and USD quotes.
"""

from decimal import Decimal

import httpx
import pytest

from src.blockchain.chains import Chain
from src.core.cache import CacheClient
from src.core.constants import FALLBACK_USD_PRICES
from src.core.errors import UpstreamServiceError
from src.services.cache import CacheService
from src.services.price_service import PRICE_CACHE_KEY, PriceService


class CountingHandler:
    """Mock CoinGecko handler that records how often it was called."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        assert request.url.params["vs_currencies"] == "usd"
        response = self.responses[min(self.calls, len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


def make_price_service(cache: CacheService, handler) -> PriceService:
    return PriceService(cache, httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def full_response() -> httpx.Response:
    return httpx.Response(200, json={"bitcoin": {"usd": 60000}, "solana": {"usd": 150}, "tether": {"usd": 1}})


class TestCurrentPrices:
    """Fetching and caching prices."""

    @pytest.mark.asyncio
    async def test_prices_fetched(self, cache_service):
        service = make_price_service(cache_service, CountingHandler([full_response()]))
        prices = await service.get_current_prices()

        assert prices == {
            "bitcoin": Decimal("60000"),
            "solana": Decimal("150"),
            "tether": Decimal("1"),
        }

    @pytest.mark.asyncio
    async def test_complete_prices_are_cached(self, cache_service):
        handler = CountingHandler([full_response()])
        service = make_price_service(cache_service, handler)

        await service.get_current_prices()
        prices = await service.get_current_prices()

        assert handler.calls == 1
        assert prices["bitcoin"] == Decimal("60000")
        assert await cache_service.get(PRICE_CACHE_KEY) == {
            "bitcoin": "60000",
            "solana": "150",
            "tether": "1",
        }

    @pytest.mark.asyncio
    async def test_partial_prices_not_cached(self, cache_service):
        partial = httpx.Response(200, json={"bitcoin": {"usd": 61000}})
        service = make_price_service(cache_service, CountingHandler([partial]))

        prices = await service.get_current_prices()

        assert prices["bitcoin"] == Decimal("61000")
        assert prices["solana"] == FALLBACK_USD_PRICES["solana"]
        assert await cache_service.get(PRICE_CACHE_KEY) is None

    @pytest.mark.asyncio
    async def test_feed_down_uses_fallback_prices(self, cache_service):
        service = make_price_service(cache_service, CountingHandler([httpx.Response(429)]))
        prices = await service.get_current_prices()
        assert prices == FALLBACK_USD_PRICES

    @pytest.mark.asyncio
    async def test_feed_down_prefers_last_known_prices(self):
        # No Redis: every call goes to the feed
        cache = CacheService(CacheClient())
        handler = CountingHandler([full_response(), httpx.ConnectError("unreachable")])
        service = make_price_service(cache, handler)

        await service.get_current_prices()
        prices = await service.get_current_prices()

        assert handler.calls == 2
        assert prices["bitcoin"] == Decimal("60000")

    @pytest.mark.asyncio
    async def test_no_fallback_raises_when_feed_down(self, cache_service):
        service = make_price_service(cache_service, CountingHandler([httpx.Response(500)]))
        with pytest.raises(UpstreamServiceError):
            await service.get_current_prices(allow_fallback=False)

    @pytest.mark.asyncio
    async def test_no_fallback_returns_only_fetched(self, cache_service):
        partial = httpx.Response(200, json={"tether": {"usd": 1.001}})
        service = make_price_service(cache_service, CountingHandler([partial]))

        prices = await service.get_current_prices(allow_fallback=False)
        assert prices == {"tether": Decimal("1.001")}

    @pytest.mark.asyncio
    async def test_exchange_rate_for_chain(self, price_service):
        assert await price_service.get_exchange_rate(Chain.BITCOIN) == Decimal("60000")
        assert await price_service.get_exchange_rate("usdt_trc20") == Decimal("1")


class TestQuotes:
    """USD quotes in every asset."""

    @pytest.mark.asyncio
    async def test_quote_for_usd(self, price_service):
        quotes = await price_service.get_quote_for_usd(Decimal("100"))

        assert quotes["bitcoin"]["amount"] == "0.00166667"
        assert quotes["bitcoin"]["formattedAmount"] == "0.00166667 BTC"
        assert quotes["solana"]["amount"] == "0.666667"
        assert quotes["solana"]["symbol"] == "SOL"
        assert quotes["tether"]["amount"] == "100.00"
        assert quotes["tether"]["symbol"] == "USDT"
        assert quotes["tether"]["usdValue"] == "100"


class TestCacheService:
    """JSON cache wrapper."""

    @pytest.mark.asyncio
    async def test_set_get_delete(self, cache_service):
        assert await cache_service.set("rates", {"bitcoin": Decimal("1.5")})
        assert await cache_service.get("rates") == {"bitcoin": "1.5"}
        assert await cache_service.delete("rates")
        assert await cache_service.get("rates") is None

    @pytest.mark.asyncio
    async def test_default_ttl_applied(self, cache_service):
        await cache_service.set("key", {"a": 1})
        ttl = await cache_service.client._client.ttl("key")
        assert 0 < ttl <= 60

    @pytest.mark.asyncio
    async def test_unavailable_cache_degrades_to_miss(self):
        cache = CacheService(CacheClient())
        assert await cache.set("key", "value") is False
        assert await cache.get("key") is None
        assert await cache.delete("key") is False
