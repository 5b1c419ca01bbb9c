"""
Binance public market data client (primary exchange feed).
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .base import MarketDataClient
from ..agents.schemas import Candle

logger = logging.getLogger("signal_swarm.services.binance")

MAX_KLINES = 1000


def to_pair(symbol: str) -> str:
    symbol = symbol.upper()
    if symbol.endswith("USDT"):
        return symbol
    return f"{symbol}USDT"


class BinanceClient(MarketDataClient):
    name = "binance"
    base_url = "https://api.binance.com/api/v3"

    async def get_price(self, symbol: str) -> Optional[float]:
        data = await self._get_json("/ticker/price", params={"symbol": to_pair(symbol)})
        if not data:
            return None
        try:
            price = float(data["price"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Unexpected ticker payload for {symbol}: {data}")
            return None
        return price if price > 0 else None

    async def get_ohlcv(self, symbol: str, interval: str = "1h", lookback: int = 100) -> List[Candle]:
        """Klines rows are [openTime, open, high, low, close, volume, ...]."""
        rows = await self._get_json(
            "/klines",
            params={
                "symbol": to_pair(symbol),
                "interval": interval,
                "limit": min(max(lookback, 1), MAX_KLINES),
            },
        )
        if not isinstance(rows, list):
            return []

        candles = []
        for row in rows:
            try:
                candles.append(Candle(
                    timestamp=datetime.utcfromtimestamp(row[0] / 1000),
                    open=float(row[1]),
                    high=float(row[2]),
                    low=float(row[3]),
                    close=float(row[4]),
                    volume=float(row[5]),
                ))
            except (IndexError, TypeError, ValueError):
                continue
        return candles

    async def get_top_movers(self, limit: int = 15) -> List[Dict[str, Any]]:
        tickers = await self._get_json("/ticker/24hr")
        if not isinstance(tickers, list):
            return []

        movers = []
        for t in tickers:
            pair = t.get("symbol", "")
            if not pair.endswith("USDT"):
                continue
            try:
                movers.append({
                    "symbol": pair[:-4],
                    "price": float(t["lastPrice"]),
                    "change_24h": float(t["priceChangePercent"]),
                    "quote_volume": float(t.get("quoteVolume", 0)),
                })
            except (KeyError, TypeError, ValueError):
                continue

        movers.sort(key=lambda m: m["change_24h"], reverse=True)
        return movers[:limit]
