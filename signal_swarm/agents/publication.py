"""
TieredPublisher - hands finished content to distribution without blocking.

The coordinator decides WHAT goes out and WHEN relative to generation
(immediate vs delayed per tier); the DistributionService owns transport.
Every handoff runs as a tracked asyncio.Task whose outcome is logged and, on
success, backfilled into the run's delivery timestamps.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Set

from .event_log import EventLog
from .schemas import EventSeverity, ScheduledPost, Tier
from ..config import SwarmConfig
from ..storage.run_store import RunStore

logger = logging.getLogger("signal_swarm.agents.publication")

PREMIUM_TIERS = [Tier.GOLD, Tier.DIAMOND]


class DistributionService(Protocol):
    async def deliver_immediate(self, content: str, tiers: Sequence[str]) -> Optional[List[str]]: ...

    async def schedule_delayed(self, run_id: str, tier: str, content: str, delay_minutes: int) -> ScheduledPost: ...


@dataclass
class DelayedDelivery:
    tier: Tier
    content: str
    delay_minutes: int


@dataclass
class DeliveryPlan:
    immediate_content: Optional[str] = None
    immediate_tiers: List[Tier] = field(default_factory=list)
    delayed: List[DelayedDelivery] = field(default_factory=list)


def plan_signal_delivery(content: str, config: SwarmConfig) -> DeliveryPlan:
    """Premium tiers now, SILVER and PUBLIC after their delays."""
    return DeliveryPlan(
        immediate_content=content,
        immediate_tiers=list(PREMIUM_TIERS),
        delayed=[
            DelayedDelivery(Tier.SILVER, content, config.silver_delay_minutes),
            DelayedDelivery(Tier.PUBLIC, content, config.public_delay_minutes),
        ],
    )


def plan_intel_delivery(tweet: Optional[str], blog: Optional[str], deep_dive: bool, config: SwarmConfig) -> DeliveryPlan:
    """Blog to premium tiers now; ordinary intel also trickles down to SILVER and PUBLIC."""
    long_form = blog or tweet
    plan = DeliveryPlan(immediate_content=long_form, immediate_tiers=list(PREMIUM_TIERS))
    if deep_dive:
        return plan
    if long_form:
        plan.delayed.append(DelayedDelivery(Tier.SILVER, long_form, config.silver_delay_minutes))
    if tweet:
        plan.delayed.append(DelayedDelivery(Tier.PUBLIC, tweet, config.public_delay_minutes))
    return plan


class TieredPublisher:
    """Fire-and-forget distribution with observed completion."""

    def __init__(self, distribution: DistributionService, store: RunStore, event_log: Optional[EventLog] = None):
        self.distribution = distribution
        self.store = store
        self.event_log = event_log
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _emit(self, message: str, severity: EventSeverity, run_id: str, data: Optional[dict] = None) -> None:
        if self.event_log is not None:
            self.event_log.append(message, severity, data=data, run_id=run_id)

    def publish(self, run_id: str, plan: DeliveryPlan) -> List[asyncio.Task]:
        """Start every delivery in the plan; returns the tasks without awaiting them."""
        tasks = []
        if plan.immediate_content and plan.immediate_tiers:
            tasks.append(self._spawn(
                self._deliver_immediate(run_id, plan.immediate_content, plan.immediate_tiers),
                f"deliver:{run_id}",
                run_id,
            ))
        for item in plan.delayed:
            tasks.append(self._spawn(
                self._schedule(run_id, item),
                f"schedule:{item.tier.value}:{run_id}",
                run_id,
            ))
        return tasks

    def _spawn(self, coro, name: str, run_id: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, run_id))
        return task

    def _on_done(self, task: asyncio.Task, run_id: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Distribution task {task.get_name()} was cancelled")
            return

        exc = task.exception()
        if exc is not None:
            logger.error(f"Distribution task {task.get_name()} failed: {exc}", exc_info=exc)
            self._emit(
                f"Distribution failed ({task.get_name()}): {exc}",
                EventSeverity.ERROR,
                run_id,
                {"kind": "distribution_failed", "task": task.get_name()},
            )
        else:
            logger.info(f"Distribution task {task.get_name()} completed")

    async def _deliver_immediate(self, run_id: str, content: str, tiers: List[Tier]) -> None:
        tier_names = [t.value for t in tiers]
        delivered = await self.distribution.deliver_immediate(content, tier_names)
        if delivered is None:
            delivered = tier_names

        delivered_at = datetime.utcnow()
        for tier in delivered:
            await self.store.mark_delivered(run_id, tier, delivered_at)

        missed = [t for t in tier_names if t not in delivered]
        self._emit(
            f"Delivered to {', '.join(delivered) or 'no tiers'}"
            + (f" (not delivered: {', '.join(missed)})" if missed else ""),
            EventSeverity.WARNING if missed else EventSeverity.SUCCESS,
            run_id,
            {"kind": "delivered", "tiers": list(delivered), "missed": missed},
        )

    async def _schedule(self, run_id: str, item: DelayedDelivery) -> None:
        post = await self.distribution.schedule_delayed(run_id, item.tier.value, item.content, item.delay_minutes)
        self._emit(
            f"Scheduled {item.tier.value} delivery in {item.delay_minutes}m",
            EventSeverity.INFO,
            run_id,
            {"kind": "scheduled", "tier": item.tier.value, "post_id": post.id if post else None},
        )

    async def drain(self) -> None:
        """Wait for outstanding distribution tasks (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
