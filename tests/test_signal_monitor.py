"""
Tests for the signal lifecycle monitor.
"""

from datetime import timedelta

import pytest

from conftest import MONDAY, StubProvider

from signal_swarm.agents.price_oracle import PriceOracleGuard
from signal_swarm.agents.schemas import RunRecord
from signal_swarm.agents.signal_monitor import SignalMonitor, r_multiple
from signal_swarm.storage.run_store import JsonlRunStore


async def seed_signal(store, status="active", direction="LONG", at=MONDAY, symbol="SOL"):
    record = RunRecord(
        type="signal",
        content={
            "token": {"symbol": symbol},
            "signal": {"direction": direction, "entry_price": 100.0, "target_price": 106.0, "stop_loss": 97.0}
            if direction == "LONG"
            else {"direction": direction, "entry_price": 100.0, "target_price": 94.0, "stop_loss": 103.0},
            "status": status,
        },
        cycle_started_at=at,
        cycle_completed_at=at,
    )
    await store.create_run(record)
    return record


def make_monitor(store, config, event_log=None, now=MONDAY + timedelta(hours=1), **prices):
    provider = StubProvider(prices=prices)
    return SignalMonitor(store, PriceOracleGuard([provider], config), event_log, now=lambda: now)


class TestRMultiple:
    """Open PnL in units of initial risk."""

    def test_long_and_short(self):
        assert r_multiple("LONG", 100.0, 97.0, 103.0) == 1.0
        assert r_multiple("SHORT", 100.0, 103.0, 101.5) == -0.5

    def test_zero_risk(self):
        assert r_multiple("LONG", 100.0, 100.0, 105.0) is None


class TestSignalMonitor:
    """Pending fills, target and stop hits, expiry."""

    @pytest.mark.asyncio
    async def test_pending_limit_fills_near_entry(self, store, config, event_log):
        record = await seed_signal(store, status="pending")
        monitor = make_monitor(store, config, event_log, SOL=100.4)

        changed = await monitor.check_active_signals()

        assert changed == 1
        content = store.get_run(record.id).content
        assert content["status"] == "active"
        assert content["fill_price"] == 100.4
        assert content["current_price"] == 100.4
        events = [e for e in event_log.get_events() if e.data and e.data.get("kind") == "signal_status"]
        assert (events[0].data["from"], events[0].data["to"]) == ("pending", "active")

    @pytest.mark.asyncio
    async def test_pending_limit_waits_above_entry(self, store, config):
        record = await seed_signal(store, status="pending")
        monitor = make_monitor(store, config, SOL=102.0)

        assert await monitor.check_active_signals() == 0
        assert store.get_run(record.id).content["status"] == "pending"
        assert await store.get_active_symbols(MONDAY) == {"SOL"}

    @pytest.mark.asyncio
    async def test_target_hit_closes_signal(self, store, config, event_log):
        record = await seed_signal(store)
        monitor = make_monitor(store, config, event_log, SOL=106.5)

        assert await monitor.check_active_signals() == 1

        content = store.get_run(record.id).content
        assert content["status"] == "tp_hit"
        assert content["pnl_r"] == 2.0
        assert "closed_at" in content
        assert await store.get_active_symbols(MONDAY) == set()
        assert event_log.get_events()[-1].severity == "success"

    @pytest.mark.asyncio
    async def test_stop_hit_closes_short(self, store, config):
        record = await seed_signal(store, direction="SHORT")
        monitor = make_monitor(store, config, SOL=103.2)

        assert await monitor.check_active_signals() == 1

        content = store.get_run(record.id).content
        assert content["status"] == "sl_hit"
        assert content["pnl_r"] == -1.0

    @pytest.mark.asyncio
    async def test_open_signal_tracks_current_r(self, store, config):
        record = await seed_signal(store)
        monitor = make_monitor(store, config, SOL=101.5)

        assert await monitor.check_active_signals() == 0

        content = store.get_run(record.id).content
        assert content["status"] == "active"
        assert content["pnl_r"] == 0.5

    @pytest.mark.asyncio
    async def test_unfilled_limit_expires_after_active_window(self, store, config):
        record = await seed_signal(store, status="pending")
        monitor = make_monitor(store, config, now=MONDAY + timedelta(days=7, hours=2), SOL=104.0)

        assert await monitor.check_active_signals() == 1
        assert store.get_run(record.id).content["status"] == "expired"

    @pytest.mark.asyncio
    async def test_missing_price_leaves_signal_untouched(self, store, config):
        record = await seed_signal(store)
        monitor = make_monitor(store, config)

        assert await monitor.check_active_signals() == 0
        assert "current_price" not in store.get_run(record.id).content

    @pytest.mark.asyncio
    async def test_status_changes_survive_restart(self, store, config):
        record = await seed_signal(store)
        monitor = make_monitor(store, config, SOL=96.0)

        await monitor.check_active_signals()

        reloaded = JsonlRunStore(config.data_dir)
        assert reloaded.get_run(record.id).content["status"] == "sl_hit"
        assert await reloaded.get_open_signals(MONDAY) == []
