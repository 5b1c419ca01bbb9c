"""
CoinMarketCap client (tertiary aggregator, price lookups only).
"""
import logging
from typing import Any, Dict, Optional

from .base import MarketDataClient

logger = logging.getLogger("signal_swarm.services.coinmarketcap")


class CoinMarketCapClient(MarketDataClient):
    name = "coinmarketcap"
    base_url = "https://pro-api.coinmarketcap.com"

    def __init__(self, api_key: str = "", **kwargs):
        headers = {"X-CMC_PRO_API_KEY": api_key, "Accept": "application/json"}
        super().__init__(headers=headers, **kwargs)
        self.enabled = bool(api_key)

    async def get_quote(self, symbol: str) -> Optional[Dict[str, Any]]:
        if not self.enabled:
            return None

        symbol = symbol.upper()
        data = await self._get_json(
            "/v1/cryptocurrency/quotes/latest",
            params={"symbol": symbol, "convert": "USD"},
        )
        try:
            return data["data"][symbol]["quote"]["USD"]
        except (KeyError, TypeError):
            return None

    async def get_price(self, symbol: str) -> Optional[float]:
        quote = await self.get_quote(symbol)
        if not quote:
            return None
        try:
            price = float(quote["price"])
        except (KeyError, TypeError, ValueError):
            return None
        return price if price > 0 else None
