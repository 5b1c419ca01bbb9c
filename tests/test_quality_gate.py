"""
Tests for the quality gate.

Every signal that reaches distribution passes through QualityGate.evaluate,
so these cover each rule, the documented boundaries and the ordering
guarantees for LONG and SHORT signals.
"""

import pytest

from conftest import make_signal

from signal_swarm.config import SwarmConfig
from signal_swarm.agents.quality_gate import QualityGate


@pytest.fixture
def gate():
    return QualityGate(SwarmConfig())


class TestBoundaries:
    """The documented boundary scenarios."""

    def test_rr_exactly_two_is_valid(self, gate):
        """entry=100, target=106, stop=97, confidence=90 -> R:R 2.0 passes."""
        verdict = gate.evaluate(make_signal())

        assert verdict.valid, verdict.reasons
        assert verdict.risk_reward_ratio == pytest.approx(2.0)
        assert verdict.stop_loss_percent == pytest.approx(3.0)
        assert verdict.direction == "LONG"

    def test_two_percent_stop_is_too_tight(self, gate):
        verdict = gate.evaluate(make_signal(stop_loss=98.0))

        assert not verdict.valid
        assert verdict.stop_loss_percent == pytest.approx(2.0)
        assert any("Stop loss" in r and "below minimum" in r for r in verdict.reasons)


class TestConfidence:
    """Confidence below the minimum always rejects."""

    @pytest.mark.parametrize("confidence", [0, 50, 84, 84.99])
    def test_low_confidence_rejected(self, gate, confidence):
        verdict = gate.evaluate(make_signal(confidence=confidence))

        assert not verdict.valid
        assert any("Confidence" in r for r in verdict.reasons)

    def test_low_confidence_reported_even_without_prices(self, gate):
        verdict = gate.evaluate(make_signal(confidence=40, entry_price=None, target_price=None, stop_loss=None))

        assert not verdict.valid
        assert verdict.reasons[0] == "Confidence 40% is below minimum 85%"
        assert "Missing required price levels" in verdict.reasons

    def test_threshold_is_configurable(self):
        strict = QualityGate(SwarmConfig(min_confidence=92))
        verdict = strict.evaluate(make_signal(confidence=90))

        assert not verdict.valid
        assert verdict.reasons == ["Confidence 90% is below minimum 92%"]


class TestPriceLevels:
    """Entry, target and stop must all be present."""

    @pytest.mark.parametrize("missing", ["entry_price", "target_price", "stop_loss"])
    def test_missing_level_rejected(self, gate, missing):
        verdict = gate.evaluate(make_signal(**{missing: None}))

        assert not verdict.valid
        assert verdict.reasons == ["Missing required price levels"]
        assert verdict.risk_reward_ratio is None


class TestRiskReward:
    """Risk:reward and distance ceilings."""

    def test_low_risk_reward_rejected(self, gate):
        verdict = gate.evaluate(make_signal(target_price=105.0))

        assert not verdict.valid
        assert verdict.risk_reward_ratio == pytest.approx(5 / 3)
        assert any(r.startswith("R:R ratio 1:1.67") for r in verdict.reasons)

    @pytest.mark.parametrize("scale", [0.0001, 0.1, 3.7, 1000.0, 250000.0])
    def test_ratio_invariant_under_scaling(self, gate, scale):
        base = gate.evaluate(make_signal(entry_price=100.0, target_price=109.0, stop_loss=96.0))
        scaled = gate.evaluate(make_signal(
            entry_price=100.0 * scale,
            target_price=109.0 * scale,
            stop_loss=96.0 * scale,
        ))

        assert scaled.risk_reward_ratio == pytest.approx(base.risk_reward_ratio)
        assert scaled.stop_loss_percent == pytest.approx(base.stop_loss_percent)
        assert scaled.valid == base.valid

    def test_wide_stop_depends_on_style(self, gate):
        day = gate.evaluate(make_signal(target_price=140.0, stop_loss=84.0))
        swing = gate.evaluate(make_signal(target_price=140.0, stop_loss=84.0, trading_style="swing_trade"))

        assert not day.valid
        assert any("exceeds maximum 15% for day_trade" in r for r in day.reasons)
        assert swing.valid, swing.reasons

    def test_distant_target_depends_on_style(self, gate):
        day = gate.evaluate(make_signal(target_price=160.0, stop_loss=90.0))
        swing = gate.evaluate(make_signal(target_price=160.0, stop_loss=90.0, trading_style="swing_trade"))

        assert not day.valid
        assert any(r.startswith("Target 60.00%") for r in day.reasons)
        assert swing.valid, swing.reasons


class TestDirectionalOrdering:
    """Valid LONGs satisfy stop < entry < target; valid SHORTs target < entry < stop."""

    def test_valid_short(self, gate):
        signal = make_signal(direction="SHORT", entry_price=100.0, target_price=94.0, stop_loss=103.0)
        verdict = gate.evaluate(signal)

        assert verdict.valid, verdict.reasons
        assert signal.target_price < signal.entry_price < signal.stop_loss

    def test_long_with_target_below_entry_rejected(self, gate):
        verdict = gate.evaluate(make_signal(direction="LONG", target_price=94.0, stop_loss=103.0))

        assert not verdict.valid
        assert "LONG: Target price must be above entry price" in verdict.reasons
        assert "LONG: Stop loss must be below entry price" in verdict.reasons

    def test_short_with_stop_below_entry_rejected(self, gate):
        verdict = gate.evaluate(make_signal(direction="SHORT", target_price=90.0, stop_loss=97.0))

        assert not verdict.valid
        assert "SHORT: Stop loss must be above entry price" in verdict.reasons

    def test_direction_inferred_from_target(self, gate):
        verdict = gate.evaluate(make_signal(direction=None, target_price=94.0, stop_loss=103.0))

        assert verdict.valid, verdict.reasons
        assert verdict.direction == "SHORT"
        assert verdict.direction_inferred

    @pytest.mark.parametrize("entry,target,stop", [
        (100.0, 110.0, 95.0),
        (100.0, 90.0, 105.0),
        (2.5, 2.8, 2.38),
        (0.004, 0.0036, 0.0042),
    ])
    def test_every_valid_signal_is_ordered(self, gate, entry, target, stop):
        verdict = gate.evaluate(make_signal(direction=None, entry_price=entry, target_price=target, stop_loss=stop))

        assert verdict.valid, verdict.reasons
        if verdict.direction == "LONG":
            assert stop < entry < target
        else:
            assert target < entry < stop


class TestOrderTypeConsistency:
    """Entries that would need stop-order semantics are rejected."""

    def test_long_entry_above_reference_rejected(self, gate):
        verdict = gate.evaluate(make_signal(order_type="limit"), reference_price=95.0)

        assert not verdict.valid
        assert any("stop orders are not supported" in r for r in verdict.reasons)

    def test_long_limit_below_reference_allowed(self, gate):
        verdict = gate.evaluate(make_signal(order_type="limit"), reference_price=104.0)

        assert verdict.valid, verdict.reasons

    def test_short_entry_below_reference_rejected(self, gate):
        signal = make_signal(direction="SHORT", target_price=94.0, stop_loss=103.0)
        verdict = gate.evaluate(signal, reference_price=105.0)

        assert not verdict.valid
        assert any(r.startswith("SHORT entry") for r in verdict.reasons)

    def test_tolerance_applies_only_to_inferred_direction(self, gate):
        explicit = gate.evaluate(make_signal(direction="LONG"), reference_price=98.5)
        inferred = gate.evaluate(make_signal(direction=None), reference_price=98.5)
        too_far = gate.evaluate(make_signal(direction=None), reference_price=97.0)

        assert not explicit.valid
        assert inferred.valid, inferred.reasons
        assert not too_far.valid

    def test_falls_back_to_agent_observed_price(self, gate):
        verdict = gate.evaluate(make_signal(current_price=95.0))

        assert not verdict.valid
        assert any("above current price 95" in r for r in verdict.reasons)
