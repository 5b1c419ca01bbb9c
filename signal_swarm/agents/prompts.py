"""
Role instructions and prompt builders for the decision agents.
"""
import json
from typing import Any, Dict, List, Optional

from .schemas import (
    Candidate,
    IndicatorBundle,
    IntelOutput,
    MarketSnapshot,
    ProposedSignal,
    ValidationVerdict,
)

SCANNER_SYSTEM_PROMPT = """You scan crypto market data for short-term trade candidates.
Respond with JSON only:
{"market_bias": "LONG|SHORT|NEUTRAL", "summary": "...",
 "candidates": [{"symbol": "...", "name": "...", "coingecko_id": "...", "chain": null,
                 "address": null, "direction": "LONG|SHORT", "reason": "..."}]}
Return an empty candidates list when nothing qualifies."""

ANALYZER_SYSTEM_PROMPT = """You analyze trade candidates and choose at most ONE signal.
Only market or limit orders are allowed, never stop orders.
Respond with JSON only:
{"action": "signal|skip|no_signal", "analysis_summary": "...",
 "selected_token": {"symbol": "...", "name": "...", "coingecko_id": "...", "chain": null, "address": null},
 "signal_details": {"direction": "LONG|SHORT", "order_type": "market|limit",
                    "trading_style": "day_trade|swing_trade", "entry_price": 0, "target_price": 0,
                    "stop_loss": 0, "current_price": 0, "confidence": 0, "analysis": "...",
                    "trigger_event": {"type": "...", "description": "..."}}}
Default to no_signal when uncertain."""

GENERATOR_SYSTEM_PROMPT = """You write distribution content for a trading signal or market intel.
Respond with JSON only:
{"topic": "...", "formatted_content": "...", "tweet_text": "<= 280 chars",
 "blog_post": "...", "image_prompt": "...", "log_message": "..."}"""

INTEL_SYSTEM_PROMPT = """You find the single most important crypto market insight right now.
Respond with JSON only:
{"topic": "... or SKIP", "insight": "...", "sentiment": "Bullish|Bearish|Neutral",
 "related_tokens": ["..."], "importance_score": 0}
importance_score is 0-10; use SKIP when nothing is noteworthy."""

SYSTEM_PROMPTS = {
    "scanner": SCANNER_SYSTEM_PROMPT,
    "analyzer": ANALYZER_SYSTEM_PROMPT,
    "generator": GENERATOR_SYSTEM_PROMPT,
    "intel": INTEL_SYSTEM_PROMPT,
}


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def build_scanner_prompt(
    snapshot: MarketSnapshot,
    active_symbols: List[str],
    recent_posts: Optional[List[str]] = None,
) -> str:
    lines = [
        "MARKET DATA:",
        _dump(snapshot.providers),
    ]
    if snapshot.indicators:
        lines += ["", "REFERENCE INDICATORS:", _dump(snapshot.indicators.model_dump())]
    if active_symbols:
        lines += ["", f"ALREADY ACTIVE (do not propose): {', '.join(sorted(active_symbols))}"]
    if recent_posts:
        lines += ["", "RECENTLY POSTED (avoid repeating):"]
        lines += [f"- {post[:200]}" for post in recent_posts]
    return "\n".join(lines)


def build_analyzer_prompt(
    candidates: List[Candidate],
    market_bias: str,
    timeframes: Dict[str, Dict[str, Optional[IndicatorBundle]]],
) -> str:
    lines = [f"MARKET BIAS: {market_bias}", "", "CANDIDATES:"]
    for c in candidates:
        lines.append(_dump(c.model_dump()))
        frames = timeframes.get(c.symbol, {})
        for interval, bundle in frames.items():
            if bundle is not None:
                lines.append(f"  [{interval}] {_dump(bundle.model_dump())}")
    return "\n".join(lines)


def build_signal_content_prompt(signal: ProposedSignal, verdict: ValidationVerdict) -> str:
    return "\n".join([
        "Write the announcement for this validated signal.",
        _dump(signal.model_dump()),
        f"Risk:reward 1:{verdict.risk_reward_ratio:.2f}, stop {verdict.stop_loss_percent:.2f}%",
    ])


def build_intel_prompt(snapshot: MarketSnapshot, recent_topics: List[str], deep_dive: bool) -> str:
    lines = [
        "MARKET DATA:",
        _dump(snapshot.providers),
    ]
    if recent_topics:
        lines += ["", f"RECENTLY COVERED (pick something else): {', '.join(recent_topics)}"]
    if deep_dive:
        lines += ["", "This is the weekly deep dive: choose a broader theme."]
    return "\n".join(lines)


def build_intel_content_prompt(intel: IntelOutput, deep_dive: bool) -> str:
    kind = "weekly deep dive" if deep_dive else "market intel update"
    return "\n".join([
        f"Write a {kind} tweet and blog post for this insight.",
        _dump(intel.model_dump()),
    ])
