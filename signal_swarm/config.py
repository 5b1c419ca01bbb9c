"""
Configuration for the signal swarm pipeline.

Every safety threshold the quality gate and price oracle enforce lives here,
so a deployment can tighten them without touching validation code.
"""
import os
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class SwarmConfig:
    openai_api_key: str = ""
    scanner_model: str = "gpt-4o"
    analyzer_model: str = "gpt-4o"
    generator_model: str = "gpt-4o-mini"
    intel_model: str = "gpt-4o-mini"

    coingecko_api_key: str = ""
    cmc_api_key: str = ""
    telegram_bot_token: str = ""
    telegram_chat_ids: Dict[str, str] = field(default_factory=dict)

    min_confidence: float = 85.0
    min_risk_reward: float = 2.0
    min_stop_loss_pct: float = 3.0
    max_stop_loss_pct_day: float = 15.0
    max_stop_loss_pct_swing: float = 20.0
    max_target_pct_day: float = 50.0
    max_target_pct_swing: float = 100.0
    inferred_direction_tolerance_pct: float = 2.0

    market_deviation_pct: float = 5.0
    limit_deviation_pct: float = 15.0
    auto_correct_market_entry: bool = True

    max_attempts: int = 10
    backoff_base_ms: int = 1000
    backoff_cap_ms: int = 5000
    agent_timeout_seconds: float = 120.0
    provider_timeout_seconds: float = 10.0

    max_signals_per_window: int = 3
    signal_window_hours: int = 24
    active_signal_days: int = 7

    event_log_capacity: int = 100
    silver_delay_minutes: int = 15
    public_delay_minutes: int = 30
    intel_min_importance: int = 7
    recent_intel_topics: int = 5
    recent_posts_in_prompt: int = 10

    reference_symbol: str = "BTC"
    reference_interval: str = "1h"
    candidate_intervals: tuple = ("1h", "4h", "1d")
    coingecko_ids: Dict[str, str] = field(default_factory=lambda: {
        "BTC": "bitcoin",
        "ETH": "ethereum",
        "SOL": "solana",
    })

    loop_seconds: int = 3600
    data_dir: str = "signal_swarm/data"
    log_level: str = "INFO"

    def __post_init__(self):
        self._validate_thresholds()

    def _validate_thresholds(self):
        """Reject threshold combinations that would make the gate incoherent."""
        if not 0 <= self.min_confidence <= 100:
            raise ValueError(f"CONFIG: min_confidence must be within 0-100, got {self.min_confidence}")
        if self.min_risk_reward <= 0:
            raise ValueError("CONFIG: min_risk_reward must be positive")
        if self.min_stop_loss_pct <= 0:
            raise ValueError("CONFIG: min_stop_loss_pct must be positive")
        for name in ("max_stop_loss_pct_day", "max_stop_loss_pct_swing"):
            if getattr(self, name) < self.min_stop_loss_pct:
                raise ValueError(f"CONFIG: {name} is below min_stop_loss_pct ({self.min_stop_loss_pct})")
        if self.market_deviation_pct <= 0 or self.limit_deviation_pct <= 0:
            raise ValueError("CONFIG: price deviation thresholds must be positive")
        if self.max_attempts < 1:
            raise ValueError("CONFIG: max_attempts must be at least 1")
        if self.backoff_cap_ms < self.backoff_base_ms:
            raise ValueError("CONFIG: backoff_cap_ms must not be below backoff_base_ms")
        if self.event_log_capacity < 1:
            raise ValueError("CONFIG: event_log_capacity must be at least 1")

    def max_stop_loss_pct(self, trading_style: str) -> float:
        if trading_style == "swing_trade":
            return self.max_stop_loss_pct_swing
        return self.max_stop_loss_pct_day

    def max_target_pct(self, trading_style: str) -> float:
        if trading_style == "swing_trade":
            return self.max_target_pct_swing
        return self.max_target_pct_day


def _load_chat_ids() -> Dict[str, str]:
    chat_ids = {}
    for tier in ("SILVER", "GOLD", "DIAMOND", "PUBLIC"):
        chat_id = os.getenv(f"TELEGRAM_CHAT_{tier}", "")
        if chat_id:
            chat_ids[tier] = chat_id
    return chat_ids


def load_config() -> SwarmConfig:
    """Load configuration from environment variables."""
    intervals_str = os.getenv("CANDIDATE_INTERVALS", "1h,4h,1d")
    candidate_intervals = tuple(s.strip() for s in intervals_str.split(",") if s.strip())

    return SwarmConfig(
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        scanner_model=os.getenv("SCANNER_MODEL", "gpt-4o"),
        analyzer_model=os.getenv("ANALYZER_MODEL", "gpt-4o"),
        generator_model=os.getenv("GENERATOR_MODEL", "gpt-4o-mini"),
        intel_model=os.getenv("INTEL_MODEL", "gpt-4o-mini"),
        coingecko_api_key=os.getenv("COINGECKO_API_KEY", ""),
        cmc_api_key=os.getenv("CMC_API_KEY", ""),
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        telegram_chat_ids=_load_chat_ids(),
        min_confidence=float(os.getenv("MIN_CONFIDENCE", "85")),
        min_risk_reward=float(os.getenv("MIN_RISK_REWARD", "2.0")),
        min_stop_loss_pct=float(os.getenv("MIN_STOP_LOSS_PCT", "3")),
        max_stop_loss_pct_day=float(os.getenv("MAX_STOP_LOSS_PCT_DAY", "15")),
        max_stop_loss_pct_swing=float(os.getenv("MAX_STOP_LOSS_PCT_SWING", "20")),
        max_target_pct_day=float(os.getenv("MAX_TARGET_PCT_DAY", "50")),
        max_target_pct_swing=float(os.getenv("MAX_TARGET_PCT_SWING", "100")),
        market_deviation_pct=float(os.getenv("MARKET_DEVIATION_PCT", "5")),
        limit_deviation_pct=float(os.getenv("LIMIT_DEVIATION_PCT", "15")),
        auto_correct_market_entry=os.getenv("AUTO_CORRECT_MARKET_ENTRY", "true").lower() == "true",
        max_attempts=int(os.getenv("AGENT_MAX_ATTEMPTS", "10")),
        agent_timeout_seconds=float(os.getenv("AGENT_TIMEOUT_SECONDS", "120")),
        provider_timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10")),
        max_signals_per_window=int(os.getenv("MAX_SIGNALS_PER_WINDOW", "3")),
        signal_window_hours=int(os.getenv("SIGNAL_WINDOW_HOURS", "24")),
        silver_delay_minutes=int(os.getenv("SILVER_DELAY_MINUTES", "15")),
        public_delay_minutes=int(os.getenv("PUBLIC_DELAY_MINUTES", "30")),
        intel_min_importance=int(os.getenv("INTEL_MIN_IMPORTANCE", "7")),
        reference_symbol=os.getenv("REFERENCE_SYMBOL", "BTC").upper(),
        candidate_intervals=candidate_intervals,
        loop_seconds=int(os.getenv("LOOP_SECONDS", "3600")),
        data_dir=os.getenv("DATA_DIR", "signal_swarm/data"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
