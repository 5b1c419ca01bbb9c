"""
SignalMonitor - moves published signals through their lifecycle.

pending -> active   when price reaches the limit entry
active  -> tp_hit   when price reaches the target
active  -> sl_hit   when price reaches the stop
pending -> expired  when the entry never fills inside the active window
active  -> expired  when neither level is reached inside the active window

Every change is journaled through RunStore.update_content, so closed signals
stop blocking their symbol and stop counting as open.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from .event_log import EventLog
from .schemas import Direction, EventSeverity, RunRecord
from .price_oracle import PriceOracleGuard
from ..storage.run_store import RunStore

logger = logging.getLogger("signal_swarm.agents.signal_monitor")

DEFAULT_FILL_TOLERANCE_PCT = 0.5


def r_multiple(direction: str, entry: float, stop: float, price: float) -> Optional[float]:
    """Move from entry in units of initial risk."""
    risk = abs(entry - stop)
    if risk == 0:
        return None
    move = price - entry if direction == Direction.LONG else entry - price
    return round(move / risk, 2)


class SignalMonitor:
    """Checks open signals against live reference prices."""

    def __init__(
        self,
        store: RunStore,
        oracle: PriceOracleGuard,
        event_log: Optional[EventLog] = None,
        active_days: int = 7,
        fill_tolerance_pct: float = DEFAULT_FILL_TOLERANCE_PCT,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.oracle = oracle
        self.event_log = event_log
        self.active_days = active_days
        self.fill_tolerance_pct = fill_tolerance_pct
        self.now = now

    def _emit(self, message: str, severity: EventSeverity, run_id: str, data: Dict[str, Any]) -> None:
        if self.event_log is not None:
            self.event_log.append(message, severity, data=data, run_id=run_id)

    async def check_active_signals(self) -> int:
        """Price every open signal once; returns the number of status changes."""
        now = self.now()
        # one day past the active window so stale signals get expired
        signals = await self.store.get_open_signals(now, days=self.active_days + 1)
        if not signals:
            return 0

        logger.info(f"Checking {len(signals)} open signals")
        changed = 0
        for record in signals:
            symbol = (record.content.get("token") or {}).get("symbol")
            if not symbol:
                continue
            price, source = await self.oracle.get_reference_price(symbol.upper())
            if price is None:
                logger.warning(f"No price for open signal {record.id} ({symbol}), will retry next tick")
                continue

            updates = self.evaluate(record, price, now)
            previous = record.content.get("status")
            await self.store.update_content(record.id, updates)

            status = updates.get("status", previous)
            if status != previous:
                changed += 1
                self._announce(record, symbol.upper(), previous, status, price, source, updates)
        return changed

    def evaluate(self, record: RunRecord, price: float, now: datetime) -> Dict[str, Any]:
        """Content changes for one signal at the given price."""
        signal = record.content.get("signal") or {}
        direction = signal.get("direction") or Direction.LONG
        entry = signal.get("entry_price")
        target = signal.get("target_price")
        stop = signal.get("stop_loss")
        updates: Dict[str, Any] = {"current_price": price, "last_checked_at": now.isoformat()}

        if entry is None or target is None or stop is None:
            return updates

        is_long = direction == Direction.LONG
        aged_out = now - record.cycle_completed_at >= timedelta(days=self.active_days)

        if record.content.get("status") == "pending":
            tolerance = self.fill_tolerance_pct / 100
            filled = price <= entry * (1 + tolerance) if is_long else price >= entry * (1 - tolerance)
            if not filled:
                if aged_out:
                    updates.update(status="expired", closed_at=now.isoformat())
                return updates
            updates.update(status="active", filled_at=now.isoformat(), fill_price=price)

        hit_target = price >= target if is_long else price <= target
        hit_stop = price <= stop if is_long else price >= stop

        if hit_target:
            reward = abs(target - entry)
            risk = abs(entry - stop)
            updates.update(
                status="tp_hit",
                closed_at=now.isoformat(),
                pnl_r=round(reward / risk, 2) if risk else None,
            )
        elif hit_stop:
            updates.update(status="sl_hit", closed_at=now.isoformat(), pnl_r=-1.0)
        else:
            updates["pnl_r"] = r_multiple(direction, entry, stop, price)
            if aged_out:
                updates.update(status="expired", closed_at=now.isoformat())
        return updates

    def _announce(
        self,
        record: RunRecord,
        symbol: str,
        previous: Optional[str],
        status: str,
        price: float,
        source: Optional[str],
        updates: Dict[str, Any],
    ) -> None:
        if status == "tp_hit":
            logger.info(f"TARGET HIT: {symbol} at {price:g} ({updates.get('pnl_r')}R)")
            severity = EventSeverity.SUCCESS
        elif status == "sl_hit":
            logger.info(f"STOP LOSS: {symbol} at {price:g}")
            severity = EventSeverity.WARNING
        else:
            logger.info(f"Signal {record.id} ({symbol}) {previous} -> {status} at {price:g}")
            severity = EventSeverity.INFO

        self._emit(
            f"{symbol} signal {previous} -> {status} at {price:g}",
            severity,
            record.id,
            {"kind": "signal_status", "from": previous, "to": status, "price": price, "source": source},
        )
