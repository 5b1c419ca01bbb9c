"""
CoinGecko client (secondary aggregator).

Prices are cached for five minutes to stay inside the free-tier rate limit.
"""
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .base import MarketDataClient
from ..agents.schemas import Candle

logger = logging.getLogger("signal_swarm.services.coingecko")

PRICE_CACHE_TTL_SECONDS = 300

_INTERVAL_DAYS = {"1h": 1, "4h": 7, "1d": 30}


class CoinGeckoClient(MarketDataClient):
    name = "coingecko"
    base_url = "https://api.coingecko.com/api/v3"

    def __init__(self, api_key: str = "", id_map: Optional[Dict[str, str]] = None, **kwargs):
        headers = {"x-cg-demo-api-key": api_key} if api_key else None
        super().__init__(headers=headers, **kwargs)
        self.id_map = {k.upper(): v for k, v in (id_map or {}).items()}
        self._price_cache: Dict[str, Tuple[float, float]] = {}

    def coin_id(self, symbol: str) -> str:
        return self.id_map.get(symbol.upper(), symbol.lower())

    async def get_price(self, symbol: str) -> Optional[float]:
        coin_id = self.coin_id(symbol)
        cached = self._price_cache.get(coin_id)
        if cached and time.time() - cached[1] < PRICE_CACHE_TTL_SECONDS:
            return cached[0]

        data = await self._get_json(
            "/simple/price",
            params={"ids": coin_id, "vs_currencies": "usd", "include_24hr_change": "true"},
        )
        try:
            price = float(data[coin_id]["usd"])
        except (KeyError, TypeError, ValueError):
            return None
        if price <= 0:
            return None

        self._price_cache[coin_id] = (price, time.time())
        return price

    async def get_trending(self) -> List[Dict[str, Any]]:
        data = await self._get_json("/search/trending")
        if not isinstance(data, dict):
            return []

        trending = []
        for entry in data.get("coins", []):
            item = entry.get("item", {})
            trending.append({
                "id": item.get("id"),
                "symbol": (item.get("symbol") or "").upper(),
                "name": item.get("name"),
                "market_cap_rank": item.get("market_cap_rank"),
                "score": item.get("score"),
            })
        return trending

    async def get_top_movers(self, limit: int = 15) -> List[Dict[str, Any]]:
        rows = await self._get_json(
            "/coins/markets",
            params={
                "vs_currency": "usd",
                "order": "volume_desc",
                "per_page": 250,
                "page": 1,
                "price_change_percentage": "24h",
            },
        )
        if not isinstance(rows, list):
            return []

        movers = [
            {
                "id": r.get("id"),
                "symbol": (r.get("symbol") or "").upper(),
                "name": r.get("name"),
                "price": r.get("current_price"),
                "change_24h": r.get("price_change_percentage_24h"),
            }
            for r in rows
            if r.get("price_change_percentage_24h") is not None
        ]
        movers.sort(key=lambda m: m["change_24h"], reverse=True)
        return movers[:limit]

    async def get_ohlcv(self, symbol: str, interval: str = "1h", lookback: int = 100) -> List[Candle]:
        """CoinGecko OHLC has no volume and picks granularity from the day range."""
        rows = await self._get_json(
            f"/coins/{self.coin_id(symbol)}/ohlc",
            params={"vs_currency": "usd", "days": _INTERVAL_DAYS.get(interval, 1)},
        )
        if not isinstance(rows, list):
            return []

        candles = []
        for row in rows[-lookback:]:
            try:
                candles.append(Candle(
                    timestamp=datetime.utcfromtimestamp(row[0] / 1000),
                    open=float(row[1]),
                    high=float(row[2]),
                    low=float(row[3]),
                    close=float(row[4]),
                ))
            except (IndexError, TypeError, ValueError):
                continue
        return candles
