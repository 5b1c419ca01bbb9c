"""
QualityGate - Deterministic signal validator.

Purpose: the hard wall between analyzer output and distribution. Pure
function of the proposed signal, the thresholds and an optional reference
price; it never calls out and never raises on bad input.

Rules enforced:
- entry, target and stop present and positive
- minimum confidence
- minimum risk:reward
- stop-loss distance within [min, style max]
- target distance within style max
- stop on the protective side of entry
- no stop-order entries (LONG above / SHORT below the live price)
"""
import logging
from typing import Optional

from .schemas import (
    Direction,
    ProposedSignal,
    TradingStyle,
    ValidationVerdict,
)
from ..config import SwarmConfig

logger = logging.getLogger("signal_swarm.agents.quality_gate")

EPSILON = 1e-9


def _is_price(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


class QualityGate:
    """Validates ProposedSignals against the configured safety thresholds."""

    def __init__(self, config: Optional[SwarmConfig] = None):
        self.config = config or SwarmConfig()

    def evaluate(self, signal: ProposedSignal, reference_price: Optional[float] = None) -> ValidationVerdict:
        cfg = self.config
        reasons = []
        style = TradingStyle(signal.trading_style or TradingStyle.DAY_TRADE)

        if signal.confidence + EPSILON < cfg.min_confidence:
            reasons.append(f"Confidence {signal.confidence:g}% is below minimum {cfg.min_confidence:g}%")

        entry, target, stop = signal.entry_price, signal.target_price, signal.stop_loss
        if not (_is_price(entry) and _is_price(target) and _is_price(stop)):
            reasons.append("Missing required price levels")
            return ValidationVerdict(valid=False, reasons=reasons, trading_style=style)

        inferred = Direction.LONG if target > entry else Direction.SHORT
        direction_inferred = signal.direction is None
        direction = inferred if direction_inferred else Direction(signal.direction)

        if direction != inferred:
            side = "above" if direction == Direction.LONG else "below"
            reasons.append(f"{direction.value}: Target price must be {side} entry price")

        risk = abs(entry - stop)
        reward = abs(target - entry)
        risk_reward = reward / risk if risk > 0 else 0.0
        stop_pct = risk / entry * 100
        target_pct = reward / entry * 100

        if risk_reward + EPSILON < cfg.min_risk_reward:
            reasons.append(f"R:R ratio 1:{risk_reward:.2f} is below minimum 1:{cfg.min_risk_reward:g}")

        max_stop = cfg.max_stop_loss_pct(style)
        if stop_pct + EPSILON < cfg.min_stop_loss_pct:
            reasons.append(f"Stop loss {stop_pct:.2f}% is below minimum {cfg.min_stop_loss_pct:g}% (too tight)")
        elif stop_pct - EPSILON > max_stop:
            reasons.append(f"Stop loss {stop_pct:.2f}% exceeds maximum {max_stop:g}% for {style.value}")

        max_target = cfg.max_target_pct(style)
        if target_pct - EPSILON > max_target:
            reasons.append(f"Target {target_pct:.2f}% exceeds maximum {max_target:g}% for {style.value}")

        if direction == Direction.LONG and stop >= entry:
            reasons.append("LONG: Stop loss must be below entry price")
        elif direction == Direction.SHORT and stop <= entry:
            reasons.append("SHORT: Stop loss must be above entry price")

        reference = reference_price if _is_price(reference_price) else signal.current_price
        if _is_price(reference):
            tolerance = cfg.inferred_direction_tolerance_pct / 100 if direction_inferred else 0.0
            if direction == Direction.LONG and entry > reference * (1 + tolerance) + EPSILON:
                reasons.append(
                    f"LONG entry {entry:g} is above current price {reference:g}; "
                    "stop orders are not supported, use market or a limit below price"
                )
            elif direction == Direction.SHORT and entry < reference * (1 - tolerance) - EPSILON:
                reasons.append(
                    f"SHORT entry {entry:g} is below current price {reference:g}; "
                    "stop orders are not supported, use market or a limit above price"
                )

        verdict = ValidationVerdict(
            valid=len(reasons) == 0,
            reasons=reasons,
            risk_reward_ratio=risk_reward,
            stop_loss_percent=stop_pct,
            target_percent=target_pct,
            direction=direction,
            direction_inferred=direction_inferred,
            trading_style=style,
        )

        if not verdict.valid:
            logger.warning(f"QUALITY GATE BLOCKED {signal.token.symbol}: {reasons}")
        else:
            logger.info(
                f"Quality gate passed {signal.token.symbol}: "
                f"{direction.value} R:R 1:{risk_reward:.2f}, stop {stop_pct:.2f}%"
            )
        return verdict
