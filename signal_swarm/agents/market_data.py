"""
MarketDataAggregator - concurrent fan-out to market data providers.

Purpose: build one MarketSnapshot per run. Every provider call is bounded and
guarded on its own; a failing provider leaves an empty slot and an entry in
snapshot.errors instead of aborting the run. No retries: stale or partial data
is preferred over blocking the pipeline.
"""
import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Tuple

from .schemas import Candidate, Candle, IndicatorBundle, MarketSnapshot
from ..config import SwarmConfig
from ..services.base import MarketDataClient
from ..strategy.indicators import build_indicator_bundle

logger = logging.getLogger("signal_swarm.agents.market_data")

OHLCV_LOOKBACK = 100
TOP_MOVERS_LIMIT = 15


class MarketDataAggregator:
    """Collects trending lists, movers and reference-asset context."""

    def __init__(self, providers: Dict[str, MarketDataClient], config: Optional[SwarmConfig] = None):
        self.providers = providers
        self.config = config or SwarmConfig()

    async def _safe(self, label: str, call: Awaitable[Any], default: Any, errors: List[str]) -> Any:
        try:
            result = await asyncio.wait_for(call, timeout=self.config.provider_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"{label}: timed out")
            errors.append(f"{label}: timeout")
            return default
        except Exception as e:
            logger.warning(f"{label}: {e}")
            errors.append(f"{label}: {e}")
            return default
        return default if result is None else result

    async def _reference_price(self, symbol: str, errors: List[str]) -> Tuple[Optional[float], Optional[str]]:
        for name, provider in self.providers.items():
            price = await self._safe(f"{name}.price", provider.get_price(symbol), None, errors)
            if price:
                return float(price), name
        return None, None

    async def _candles(self, symbol: str, interval: str, errors: List[str]) -> List[Candle]:
        for name, provider in self.providers.items():
            candles = await self._safe(
                f"{name}.ohlcv[{symbol} {interval}]",
                provider.get_ohlcv(symbol, interval, OHLCV_LOOKBACK),
                [],
                errors,
            )
            if candles:
                return candles
        return []

    async def collect(self) -> MarketSnapshot:
        errors: List[str] = []
        symbol = self.config.reference_symbol

        labels = []
        calls = []
        for name, provider in self.providers.items():
            labels.append((name, "trending"))
            calls.append(self._safe(f"{name}.trending", provider.get_trending(), [], errors))
            labels.append((name, "top_movers"))
            calls.append(self._safe(f"{name}.top_movers", provider.get_top_movers(TOP_MOVERS_LIMIT), [], errors))

        results = await asyncio.gather(
            self._reference_price(symbol, errors),
            self._candles(symbol, self.config.reference_interval, errors),
            *calls,
        )
        (reference_price, price_source), candles = results[0], results[1]

        payloads: Dict[str, Any] = {}
        for (name, key), value in zip(labels, results[2:]):
            payloads.setdefault(name, {})[key] = value

        payloads["global"] = {
            "reference_symbol": symbol,
            "price": reference_price,
            "source": price_source,
        }

        indicators = build_indicator_bundle(symbol, self.config.reference_interval, candles)

        snapshot = MarketSnapshot(
            providers=payloads,
            reference_price=reference_price,
            indicators=indicators,
            errors=errors,
        )
        if not snapshot.data_available:
            logger.error(f"No market data available ({len(errors)} provider errors)")
        elif errors:
            logger.warning(f"Market snapshot collected with {len(errors)} provider errors")
        else:
            logger.info("Market snapshot collected from all providers")
        return snapshot

    async def collect_timeframes(
        self,
        symbol: str,
        intervals: Sequence[str],
    ) -> Dict[str, Optional[IndicatorBundle]]:
        errors: List[str] = []
        candle_sets = await asyncio.gather(*(self._candles(symbol, i, errors) for i in intervals))
        return {
            interval: build_indicator_bundle(symbol, interval, candles)
            for interval, candles in zip(intervals, candle_sets)
        }

    async def collect_candidate_context(
        self,
        candidates: List[Candidate],
    ) -> Dict[str, Dict[str, Optional[IndicatorBundle]]]:
        """Per-timeframe indicators for every candidate, fetched concurrently."""
        intervals = self.config.candidate_intervals
        contexts = await asyncio.gather(*(self.collect_timeframes(c.symbol, intervals) for c in candidates))
        return {c.symbol: ctx for c, ctx in zip(candidates, contexts)}
