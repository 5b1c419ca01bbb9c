"""
Base class for market data clients.

Every method returns a neutral value ([] or None) when the provider does not
support the call or the request fails. Callers never see provider exceptions.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..agents.schemas import Candle

logger = logging.getLogger("signal_swarm.services")


class MarketDataClient:
    """Shared httpx plumbing for provider clients."""

    name = "base"
    base_url = ""

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.timeout = timeout
        self._transport = transport
        self._headers = headers or {}

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """GET base_url + path; returns decoded JSON or None on any failure."""
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers=self._headers,
            ) as client:
                response = await client.get(f"{self.base_url}{path}", params=params)

                if response.status_code != 200:
                    logger.warning(f"{self.name}: HTTP {response.status_code} for {path}")
                    return None

                return response.json()

        except httpx.TimeoutException:
            logger.warning(f"{self.name}: timeout fetching {path}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"{self.name}: error fetching {path}: {e}")
            return None

    async def get_trending(self) -> List[Dict[str, Any]]:
        return []

    async def get_top_movers(self, limit: int = 15) -> List[Dict[str, Any]]:
        return []

    async def get_ohlcv(self, symbol: str, interval: str = "1h", lookback: int = 100) -> List[Candle]:
        return []

    async def get_price(self, symbol: str) -> Optional[float]:
        return None
