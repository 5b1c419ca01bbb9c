"""
Shared fixtures for signal swarm tests.

Provides scripted decision agents, stub market data providers and a
recording distribution service so pipeline tests never touch the network.
"""

import sys
from pathlib import Path

root_dir = Path(__file__).parent.parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest
from unittest.mock import AsyncMock

from signal_swarm.config import SwarmConfig
from signal_swarm.agents.adapter import AgentHandle, AgentRole
from signal_swarm.agents.event_log import EventLog
from signal_swarm.agents.market_data import MarketDataAggregator
from signal_swarm.agents.orchestrator import PipelineCoordinator
from signal_swarm.agents.price_oracle import PriceOracleGuard
from signal_swarm.agents.schemas import Candle, ProposedSignal, ScheduledPost, SelectedToken
from signal_swarm.services.base import MarketDataClient
from signal_swarm.storage.run_store import JsonlRunStore

pytest_plugins = ('pytest_asyncio',)

MONDAY = datetime(2026, 10, 12, 12, 0)
SUNDAY = datetime(2026, 10, 18, 12, 0)


class ScriptedAgent:
    """Decision agent that replays a fixed list of answers (or raises them)."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.prompts: List[str] = []

    async def ask(self, prompt: str) -> Any:
        self.prompts.append(prompt)
        if not self.responses:
            raise AssertionError("ScriptedAgent ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def calls(self) -> int:
        return len(self.prompts)


class StubProvider(MarketDataClient):
    """Market data provider with canned answers."""

    def __init__(
        self,
        name: str = "stub",
        prices: Optional[Dict[str, float]] = None,
        trending: Optional[List[dict]] = None,
        candles: Optional[List[Candle]] = None,
        fail: bool = False,
    ):
        super().__init__()
        self.name = name
        self.prices = prices or {}
        self.trending = trending or []
        self.candles = candles or []
        self.fail = fail

    async def get_trending(self):
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        return self.trending

    async def get_top_movers(self, limit: int = 15):
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        return []

    async def get_ohlcv(self, symbol, interval="1h", lookback=100):
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        return self.candles

    async def get_price(self, symbol):
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        return self.prices.get(symbol.upper())


class RecordingDistribution:
    """DistributionService that records every handoff."""

    def __init__(self, fail_immediate: bool = False):
        self.fail_immediate = fail_immediate
        self.immediate: List[tuple] = []
        self.scheduled: List[tuple] = []

    async def deliver_immediate(self, content, tiers):
        if self.fail_immediate:
            raise ConnectionError("telegram unreachable")
        self.immediate.append((content, list(tiers)))
        return list(tiers)

    async def schedule_delayed(self, run_id, tier, content, delay_minutes):
        self.scheduled.append((run_id, tier, content, delay_minutes))
        return ScheduledPost(
            run_id=run_id,
            tier=tier,
            content=content,
            scheduled_for=datetime.utcnow() + timedelta(minutes=delay_minutes),
        )


def make_candles(closes: List[float]) -> List[Candle]:
    start = datetime(2026, 1, 1)
    return [
        Candle(timestamp=start + timedelta(hours=i), open=c, high=c * 1.01, low=c * 0.99, close=c, volume=1000.0)
        for i, c in enumerate(closes)
    ]


def make_signal(**overrides) -> ProposedSignal:
    fields = {
        "token": SelectedToken(symbol="SOL", name="Solana", coingecko_id="solana"),
        "direction": "LONG",
        "order_type": "market",
        "trading_style": "day_trade",
        "entry_price": 100.0,
        "target_price": 106.0,
        "stop_loss": 97.0,
        "confidence": 90,
        "analysis": "Breakout above range high with rising volume",
    }
    fields.update(overrides)
    return ProposedSignal(**fields)


SCANNER_LONG = {
    "market_bias": "LONG",
    "summary": "Risk-on rotation into L1s",
    "candidates": [{"symbol": "SOL", "name": "Solana", "direction": "LONG", "reason": "Range breakout"}],
}

SCANNER_EMPTY = {"market_bias": "LONG", "summary": "Nothing clean", "candidates": []}

ANALYZER_SIGNAL = {
    "action": "signal",
    "analysis_summary": "SOL reclaimed the 4h range high",
    "selected_token": {"symbol": "SOL", "name": "Solana", "coingecko_id": "solana"},
    "signal_details": {
        "direction": "LONG",
        "order_type": "market",
        "trading_style": "day_trade",
        "entry_price": 100.0,
        "target_price": 106.0,
        "stop_loss": 97.0,
        "confidence": 90,
        "analysis": "Breakout with volume",
        "trigger_event": {"type": "breakout", "description": "4h range high reclaimed"},
    },
}

GENERATED_SIGNAL = {
    "formatted_content": "SOL LONG @ 100 | TP 106 | SL 97",
    "tweet_text": "SOL breaking out",
    "log_message": "signal generated",
}

INTEL_HIGH = {
    "topic": "ETF inflows accelerate",
    "insight": "Spot ETF inflows hit a monthly high",
    "sentiment": "Bullish",
    "related_tokens": ["BTC"],
    "importance_score": 8,
}

GENERATED_INTEL = {
    "tweet_text": "ETF inflows at a monthly high",
    "blog_post": "Long-form breakdown of ETF flows",
}


@pytest.fixture
def config(tmp_path):
    return SwarmConfig(data_dir=str(tmp_path), provider_timeout_seconds=1.0, agent_timeout_seconds=1.0)


@pytest.fixture
def event_log():
    return EventLog(capacity=100)


@pytest.fixture
def store(config):
    return JsonlRunStore(config.data_dir)


@pytest.fixture
def distribution():
    return RecordingDistribution()


@pytest.fixture
def make_coordinator(config, store, distribution):
    """Factory building a coordinator around scripted agents."""

    def _make(
        scanner: List[Any] = (),
        analyzer: List[Any] = (),
        generator: List[Any] = (),
        intel: List[Any] = (),
        prices: Optional[Dict[str, float]] = None,
        now: datetime = MONDAY,
        **kwargs,
    ) -> PipelineCoordinator:
        agents = {
            AgentRole.SCANNER: AgentHandle("scanner", AgentRole.SCANNER, ScriptedAgent(list(scanner))),
            AgentRole.ANALYZER: AgentHandle("analyzer", AgentRole.ANALYZER, ScriptedAgent(list(analyzer))),
            AgentRole.GENERATOR: AgentHandle("generator", AgentRole.GENERATOR, ScriptedAgent(list(generator))),
            AgentRole.INTEL: AgentHandle("intel", AgentRole.INTEL, ScriptedAgent(list(intel))),
        }
        provider = StubProvider(prices={"BTC": 60000.0, "SOL": 100.0, **(prices or {})})
        return PipelineCoordinator(
            config=config,
            aggregator=MarketDataAggregator({"stub": provider}, config),
            oracle=PriceOracleGuard([provider], config),
            agents=agents,
            store=kwargs.pop("store", store),
            distribution=kwargs.pop("distribution", distribution),
            sleep=AsyncMock(),
            now=lambda: now,
            **kwargs,
        )

    return _make
