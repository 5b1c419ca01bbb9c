"""
Pydantic schemas for the signal swarm pipeline.

Agent outputs (scanner, analyzer, generator, intel) are validated into these
models at the adapter boundary so the coordinator never branches on raw JSON.
"""
from enum import Enum
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime
from pydantic import BaseModel, Field, model_validator
import uuid


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class MarketBias(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"


class OrderKind(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


class TradingStyle(str, Enum):
    DAY_TRADE = "day_trade"
    SWING_TRADE = "swing_trade"


class AnalyzerAction(str, Enum):
    SIGNAL = "signal"
    SKIP = "skip"
    NO_SIGNAL = "no_signal"


class RunType(str, Enum):
    SIGNAL = "signal"
    INTEL = "intel"
    SKIP = "skip"
    DEEP_DIVE = "deep_dive"


class Tier(str, Enum):
    SILVER = "SILVER"
    GOLD = "GOLD"
    DIAMOND = "DIAMOND"
    PUBLIC = "PUBLIC"


class EventSeverity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class RejectionKind(str, Enum):
    """Negative outcomes recorded as verdicts, never raised."""
    QUALITY_REJECTION = "quality_rejection"
    PRICE_HALLUCINATION = "price_hallucination"


class Candle(BaseModel):
    """Single OHLCV candle."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class IndicatorBundle(BaseModel):
    """Technical indicator composite for one symbol and interval."""
    symbol: str
    interval: str
    last_close: float
    sma_20: Optional[float] = None
    ema_12: Optional[float] = None
    ema_26: Optional[float] = None
    rsi_14: Optional[float] = None
    macd: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_histogram: Optional[float] = None
    trend: str = Field(default="neutral", description="bullish, bearish or neutral")


class MarketSnapshot(BaseModel):
    """Consolidated market view, built once per pipeline run."""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    providers: Dict[str, Any] = Field(default_factory=dict, description="Provider name -> payload")
    reference_price: Optional[float] = None
    indicators: Optional[IndicatorBundle] = None
    errors: List[str] = Field(default_factory=list)

    class Config:
        frozen = True

    @property
    def data_available(self) -> bool:
        if self.reference_price is not None:
            return True
        return any(
            any(payload.values())
            for name, payload in self.providers.items()
            if name != "global" and isinstance(payload, dict)
        )


class Candidate(BaseModel):
    """Token surfaced by the scanner for deeper analysis."""
    symbol: str
    name: str = ""
    coingecko_id: Optional[str] = None
    chain: Optional[str] = None
    address: Optional[str] = None
    direction: Optional[Direction] = None
    reason: str = ""

    class Config:
        use_enum_values = True


class ScannerOutput(BaseModel):
    market_bias: MarketBias = MarketBias.NEUTRAL
    candidates: List[Candidate] = Field(default_factory=list)
    summary: str = ""

    class Config:
        use_enum_values = True


class SelectedToken(BaseModel):
    symbol: str
    name: str = ""
    coingecko_id: Optional[str] = None
    chain: Optional[str] = None
    address: Optional[str] = None


class TriggerEvent(BaseModel):
    type: str
    description: str = ""


class SignalDetails(BaseModel):
    """Trade parameters as emitted by the analyzer agent."""
    direction: Optional[Direction] = None
    order_type: OrderKind = OrderKind.MARKET
    trading_style: TradingStyle = TradingStyle.DAY_TRADE
    entry_price: Optional[float] = None
    target_price: Optional[float] = None
    stop_loss: Optional[float] = None
    current_price: Optional[float] = Field(default=None, description="Price the agent observed")
    confidence: float = Field(ge=0, le=100)
    analysis: str = ""
    trigger_event: Optional[TriggerEvent] = None
    confluence_score: Optional[float] = None
    timeframe_alignment: Optional[float] = None
    expected_duration: Optional[str] = None

    class Config:
        use_enum_values = True


class ProposedSignal(SignalDetails):
    """Analyzer decision flattened with its token; the value the quality gate judges."""
    token: SelectedToken


class AnalyzerOutput(BaseModel):
    action: AnalyzerAction
    selected_token: Optional[SelectedToken] = None
    signal_details: Optional[SignalDetails] = None
    analysis_summary: str = ""

    class Config:
        use_enum_values = True

    @model_validator(mode="after")
    def _signal_requires_details(self):
        if self.action == AnalyzerAction.SIGNAL:
            if self.selected_token is None:
                raise ValueError("selected_token is required when action is 'signal'")
            if self.signal_details is None:
                raise ValueError("signal_details is required when action is 'signal'")
        return self

    def proposed_signal(self) -> Optional[ProposedSignal]:
        if self.selected_token is None or self.signal_details is None:
            return None
        return ProposedSignal(token=self.selected_token, **self.signal_details.model_dump())


class GeneratorOutput(BaseModel):
    topic: Optional[str] = None
    formatted_content: Optional[str] = None
    tweet_text: Optional[str] = Field(default=None, max_length=280)
    blog_post: Optional[str] = None
    image_prompt: Optional[str] = None
    log_message: Optional[str] = None

    @model_validator(mode="after")
    def _has_content(self):
        if not (self.formatted_content or self.tweet_text or self.blog_post):
            raise ValueError("one of formatted_content, tweet_text or blog_post must be non-empty")
        return self

    @property
    def primary_content(self) -> str:
        return self.formatted_content or self.tweet_text or self.blog_post or ""


class IntelOutput(BaseModel):
    topic: str
    insight: str = ""
    sentiment: Literal["Bullish", "Bearish", "Neutral"] = "Neutral"
    related_tokens: List[str] = Field(default_factory=list)
    importance_score: int = Field(default=0, ge=0, le=10)


class ValidationVerdict(BaseModel):
    """Result of the quality gate. Never persisted."""
    valid: bool
    reasons: List[str] = Field(default_factory=list)
    risk_reward_ratio: Optional[float] = None
    stop_loss_percent: Optional[float] = None
    target_percent: Optional[float] = None
    direction: Optional[Direction] = None
    direction_inferred: bool = False
    trading_style: TradingStyle = TradingStyle.DAY_TRADE

    class Config:
        use_enum_values = True


class PriceCheck(BaseModel):
    """Result of cross-checking a proposed price against reference data."""
    valid: bool
    reference_price: Optional[float] = None
    deviation_percent: Optional[float] = None
    source: Optional[str] = None
    reason: Optional[str] = None


class RunRecord(BaseModel):
    """One persisted record per pipeline execution."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: RunType
    content: Dict[str, Any] = Field(default_factory=dict)
    cycle_started_at: datetime
    cycle_completed_at: datetime
    execution_time_ms: int = 0
    confidence_score: Optional[float] = None
    error_message: Optional[str] = None
    tier_delivered_at: Dict[str, datetime] = Field(
        default_factory=dict,
        description="Tier -> delivery time, backfilled as distribution completes",
    )

    class Config:
        use_enum_values = True

    @property
    def telegram_delivered_at(self) -> Optional[datetime]:
        stamps = [self.tier_delivered_at[t] for t in ("GOLD", "DIAMOND") if t in self.tier_delivered_at]
        return min(stamps) if stamps else None

    @property
    def public_posted_at(self) -> Optional[datetime]:
        return self.tier_delivered_at.get("PUBLIC")


class PipelineEvent(BaseModel):
    id: int
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    message: str
    severity: EventSeverity = EventSeverity.INFO
    data: Optional[Dict[str, Any]] = None
    run_id: Optional[str] = None

    class Config:
        use_enum_values = True


class ScheduledPost(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    run_id: str
    tier: Tier
    content: str
    scheduled_for: datetime
    status: Literal["pending", "posted", "failed"] = "pending"
    posted_at: Optional[datetime] = None
    error: Optional[str] = None

    class Config:
        use_enum_values = True
