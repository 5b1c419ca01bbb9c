"""
Signal swarm agents (in handoff order):
1. MarketDataAggregator - Fan-out to market data providers
2. Scanner agent - Candidates and market bias
3. Analyzer agent - At most one proposed signal
4. PriceOracleGuard + QualityGate - Validation
5. Generator agent - Distribution content
6. TieredPublisher - Immediate and delayed tier delivery
7. SignalMonitor - Fills, target and stop hits for published signals

The PipelineCoordinator runs the pass; the intel agent covers runs without a trade.
"""

from .schemas import (
    Direction,
    OrderKind,
    TradingStyle,
    RunType,
    Tier,
    ProposedSignal,
    ValidationVerdict,
    PriceCheck,
    RunRecord,
    PipelineEvent,
)
from .errors import (
    AgentError,
    TransportError,
    AgentTimeoutError,
    SchemaError,
    ExhaustedRetriesError,
)

__all__ = [
    "Direction",
    "OrderKind",
    "TradingStyle",
    "RunType",
    "Tier",
    "ProposedSignal",
    "ValidationVerdict",
    "PriceCheck",
    "RunRecord",
    "PipelineEvent",
    "AgentError",
    "TransportError",
    "AgentTimeoutError",
    "SchemaError",
    "ExhaustedRetriesError",
]
