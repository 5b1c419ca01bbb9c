"""
PriceOracleGuard - cross-checks agent-proposed prices against live quotes.

Providers are queried in a fixed fallback order and the first positive quote
wins. No quote at all means the check fails closed.
"""
import asyncio
import logging
from typing import List, Optional, Protocol, Tuple

from .schemas import OrderKind, PriceCheck
from ..config import SwarmConfig

logger = logging.getLogger("signal_swarm.agents.price_oracle")


class PriceProvider(Protocol):
    name: str

    async def get_price(self, symbol: str) -> Optional[float]: ...


class PriceOracleGuard:
    """Detects hallucinated prices before they reach the quality gate."""

    def __init__(self, providers: List[PriceProvider], config: Optional[SwarmConfig] = None):
        self.providers = providers
        self.config = config or SwarmConfig()

    def threshold_for(self, order_kind: str) -> float:
        if order_kind == OrderKind.LIMIT:
            return self.config.limit_deviation_pct
        return self.config.market_deviation_pct

    async def get_reference_price(self, symbol: str) -> Tuple[Optional[float], Optional[str]]:
        """Walk the fallback chain; returns (price, provider name)."""
        for provider in self.providers:
            name = getattr(provider, "name", type(provider).__name__)
            try:
                price = await asyncio.wait_for(
                    provider.get_price(symbol),
                    timeout=self.config.provider_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(f"{name} timed out quoting {symbol}")
                continue
            except Exception as e:
                logger.warning(f"{name} failed quoting {symbol}: {e}")
                continue

            if price is not None and price > 0:
                return float(price), name

        return None, None

    async def validate_price(self, symbol: str, proposed_price: Optional[float], order_kind: str) -> PriceCheck:
        if proposed_price is None or proposed_price <= 0:
            return PriceCheck(valid=False, reason=f"No proposed price for {symbol}")

        reference, source = await self.get_reference_price(symbol)
        if reference is None:
            logger.warning(f"PRICE ORACLE: no reference price for {symbol}, failing closed")
            return PriceCheck(valid=False, reason="no reference price available")

        deviation = abs(proposed_price - reference) * 100 / reference
        threshold = self.threshold_for(order_kind)
        kind = OrderKind(order_kind).value

        if deviation > threshold:
            reason = (
                f"Proposed {kind} price {proposed_price:g} deviates {deviation:.2f}% from "
                f"{source} reference {reference:g} (max {threshold:g}%)"
            )
            logger.warning(f"PRICE ORACLE BLOCKED {symbol}: {reason}")
            return PriceCheck(
                valid=False,
                reference_price=reference,
                deviation_percent=deviation,
                source=source,
                reason=reason,
            )

        return PriceCheck(
            valid=True,
            reference_price=reference,
            deviation_percent=deviation,
            source=source,
        )
