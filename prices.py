import logging
import time
from dataclasses import dataclass
from datetime import date as date_type
from typing import Callable, Dict, Optional

from cachetools import TTLCache

from clients import CoinGeckoClient
from errors import DataValidationError, UpstreamUnavailable

logger = logging.getLogger(__name__)

COINGECKO_IDS = {
    'ETH': 'ethereum',
    'USDC': 'usd-coin',
    'SOL': 'solana',
}

PRICE_LOOKUP_ERRORS = (UpstreamUnavailable, KeyError, TypeError, ValueError, AttributeError)


@dataclass(frozen=True)
class CachedPrice:
    value: float
    fetched_at: float


class PriceCache:
    """Last fetched USD price per symbol; entries expire ttl seconds after fetched_at"""

    def __init__(self, ttl: int = 60, maxsize: int = 32, timer: Callable[[], float] = time.time):
        self.ttl = ttl
        self.timer = timer
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)

    def get(self, symbol: str) -> Optional[float]:
        entry = self._entries.get(symbol.upper())
        return entry.value if entry is not None else None

    def put(self, symbol: str, value: float) -> None:
        self._entries[symbol.upper()] = CachedPrice(value=value, fetched_at=self.timer())


class PriceOracle:
    def __init__(
        self,
        client: CoinGeckoClient,
        cache: Optional[PriceCache] = None,
        default_prices: Optional[Dict[str, float]] = None
    ):
        self.client = client
        self.cache = cache if cache is not None else PriceCache()
        self.default_prices = {k.upper(): v for k, v in (default_prices or {}).items()}

    def default_price(self, symbol: str) -> float:
        return self.default_prices.get(symbol.upper(), 0.0)

    async def get_price(self, symbol: str) -> float:
        """Current USD price, served from cache when fresh, default on failure"""
        symbol = symbol.upper()
        if (cached := self.cache.get(symbol)) is not None:
            return cached

        coin_id = COINGECKO_IDS.get(symbol)
        if coin_id is None:
            logger.warning(f"No price feed for {symbol}, using default")
            return self.default_price(symbol)

        try:
            data = await self.client.get_simple_price([coin_id])
            price = data.get(coin_id, {}).get('usd')
            if price is None:
                raise DataValidationError(f"Price feed returned no USD price for {coin_id}")
            price = float(price)
        except PRICE_LOOKUP_ERRORS as e:
            fallback = self.default_price(symbol)
            logger.warning(f"Error getting {symbol} price, using fallback ${fallback}: {e}")
            return fallback

        self.cache.put(symbol, price)
        logger.info(f"{symbol} price: ${price}")
        return price

    async def get_historical_price(self, symbol: str, on: date_type) -> float:
        """USD price of symbol on a given day"""
        coin_id = COINGECKO_IDS.get(symbol.upper())
        if coin_id is None:
            return self.default_price(symbol)

        try:
            data = await self.client.get_coin_history(coin_id, on.strftime('%d-%m-%Y'))
            price = data['market_data']['current_price']['usd']
            return float(price)
        except PRICE_LOOKUP_ERRORS as e:
            fallback = self.default_price(symbol)
            logger.warning(f"Error getting historical {symbol} price for {on}, using fallback ${fallback}: {e}")
            return fallback
