"""
Run persistence.

JsonlRunStore keeps an append-only JSONL journal: one "create" line per run,
one "delivered" line per tier delivery backfill and one "update" line per
signal lifecycle change. Replaying the journal on startup rebuilds the
in-memory index used for quota and dedupe queries.
"""
import asyncio
import json
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Set

from ..agents.schemas import RunRecord, RunType

logger = logging.getLogger("signal_swarm.storage")

CLOSED_STATUSES = {"tp_hit", "sl_hit", "closed", "expired"}
PREMIUM_TIERS = ("GOLD", "DIAMOND")


class RunStore(Protocol):
    async def create_run(self, record: RunRecord) -> None: ...

    async def mark_delivered(self, run_id: str, tier: str, at: Optional[datetime] = None) -> None: ...

    async def update_content(self, run_id: str, changes: Dict[str, Any]) -> None: ...

    async def get_recent_signal_count(self, window_hours: int, now: Optional[datetime] = None) -> int: ...

    async def get_active_symbols(self, now: Optional[datetime] = None) -> Set[str]: ...

    async def get_open_signals(self, now: Optional[datetime] = None, days: Optional[int] = None) -> List[RunRecord]: ...

    async def get_recent_intel_topics(self, limit: int = 5) -> List[str]: ...

    async def get_recent_posts(self, limit: int = 10) -> List[str]: ...

    async def has_deep_dive_today(self, now: Optional[datetime] = None) -> bool: ...


def is_open_signal(record: RunRecord) -> bool:
    return record.type == RunType.SIGNAL and record.content.get("status") not in CLOSED_STATUSES


class JsonlRunStore:
    """Thread-safe JSONL-backed RunStore."""

    def __init__(self, data_dir: str = "signal_swarm/data", filename: str = "runs.jsonl", active_days: int = 7):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.path = self.data_dir / filename
        self.active_days = active_days

        self._lock = threading.Lock()
        self._runs: Dict[str, RunRecord] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return

        with open(self.path, "r") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    self._apply(json.loads(line))
                except (ValueError, KeyError) as e:
                    logger.warning(f"Skipping unreadable journal line {line_no} in {self.path}: {e}")

        logger.info(f"Loaded {len(self._runs)} runs from {self.path}")

    def _apply(self, entry: dict) -> None:
        op = entry.get("op")
        if op == "create":
            record = RunRecord.model_validate(entry["run"])
            self._runs[record.id] = record
            return

        record = self._runs.get(entry["run_id"])
        if record is None:
            return
        if op == "delivered":
            record.tier_delivered_at[entry["tier"]] = datetime.fromisoformat(entry["at"])
        elif op == "update":
            record.content.update(entry["content"])

    def _write(self, entry: dict) -> None:
        with open(self.path, "a") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def _create_sync(self, record: RunRecord) -> None:
        with self._lock:
            if record.id in self._runs:
                raise ValueError(f"Run {record.id} already exists")
            self._write({"op": "create", "run": record.model_dump(mode="json")})
            self._runs[record.id] = record.model_copy(deep=True)

    def _mark_delivered_sync(self, run_id: str, tier: str, at: datetime) -> None:
        with self._lock:
            record = self._runs.get(run_id)
            if record is None:
                logger.warning(f"Delivery backfill for unknown run {run_id} ({tier})")
                return
            self._write({"op": "delivered", "run_id": run_id, "tier": tier, "at": at.isoformat()})
            record.tier_delivered_at[tier] = at

    def _update_content_sync(self, run_id: str, changes: Dict[str, Any]) -> None:
        with self._lock:
            record = self._runs.get(run_id)
            if record is None:
                logger.warning(f"Content update for unknown run {run_id}")
                return
            entry = {"op": "update", "run_id": run_id, "content": changes}
            self._write(entry)
            record.content.update(json.loads(json.dumps(changes, default=str)))

    async def create_run(self, record: RunRecord) -> None:
        await asyncio.to_thread(self._create_sync, record)
        logger.info(f"Saved {record.type} run {record.id}")

    async def mark_delivered(self, run_id: str, tier: str, at: Optional[datetime] = None) -> None:
        await asyncio.to_thread(self._mark_delivered_sync, run_id, tier, at or datetime.utcnow())

    async def update_content(self, run_id: str, changes: Dict[str, Any]) -> None:
        """Merge top-level content fields (signal status, live price, PnL)."""
        await asyncio.to_thread(self._update_content_sync, run_id, changes)

    def get_run(self, run_id: str) -> Optional[RunRecord]:
        with self._lock:
            record = self._runs.get(run_id)
            return record.model_copy(deep=True) if record else None

    def list_runs(self) -> List[RunRecord]:
        """All runs, oldest first."""
        with self._lock:
            runs = [r.model_copy(deep=True) for r in self._runs.values()]
        return sorted(runs, key=lambda r: r.cycle_completed_at)

    async def get_recent_signal_count(self, window_hours: int, now: Optional[datetime] = None) -> int:
        """Signals published to a premium tier within the window."""
        cutoff = (now or datetime.utcnow()) - timedelta(hours=window_hours)
        with self._lock:
            return sum(
                1 for r in self._runs.values()
                if r.type == RunType.SIGNAL
                and r.cycle_completed_at >= cutoff
                and any(t in r.tier_delivered_at for t in PREMIUM_TIERS)
            )

    async def get_open_signals(self, now: Optional[datetime] = None, days: Optional[int] = None) -> List[RunRecord]:
        """Pending or active signals from the last `days` (default: the active window), oldest first."""
        cutoff = (now or datetime.utcnow()) - timedelta(days=self.active_days if days is None else days)
        return [r for r in self.list_runs() if is_open_signal(r) and r.cycle_completed_at >= cutoff]

    async def get_active_symbols(self, now: Optional[datetime] = None) -> Set[str]:
        """Symbols with an open signal in the active window."""
        symbols = set()
        for r in await self.get_open_signals(now):
            symbol = (r.content.get("token") or {}).get("symbol")
            if symbol:
                symbols.add(symbol.upper())
        return symbols

    async def get_recent_intel_topics(self, limit: int = 5) -> List[str]:
        with self._lock:
            intel = [
                r for r in self._runs.values()
                if r.type in (RunType.INTEL, RunType.DEEP_DIVE) and r.content.get("topic")
            ]
        intel.sort(key=lambda r: r.cycle_completed_at, reverse=True)
        return [r.content["topic"] for r in intel[:limit]]

    async def get_recent_posts(self, limit: int = 10) -> List[str]:
        """Most recent published text (signal content or intel insight), newest first."""
        posts = []
        for r in reversed(self.list_runs()):
            if r.type not in (RunType.SIGNAL, RunType.INTEL, RunType.DEEP_DIVE):
                continue
            text = r.content.get("formatted_content") or r.content.get("insight")
            if text:
                posts.append(text)
            if len(posts) >= limit:
                break
        return posts

    async def has_deep_dive_today(self, now: Optional[datetime] = None) -> bool:
        today = (now or datetime.utcnow()).date()
        with self._lock:
            return any(
                r.type == RunType.DEEP_DIVE and r.cycle_completed_at.date() == today
                for r in self._runs.values()
            )
