"""
Tests for tiered publication and the scheduled post queue.
"""

from datetime import datetime, timedelta

import httpx
import pytest

from conftest import RecordingDistribution

from signal_swarm.config import SwarmConfig
from signal_swarm.agents.publication import (
    TieredPublisher,
    plan_intel_delivery,
    plan_signal_delivery,
)
from signal_swarm.agents.schemas import RunRecord, Tier
from signal_swarm.services.scheduled_posts import ScheduledPostService


class FakeTransport:
    def __init__(self, fail=False, configured=("SILVER", "GOLD", "DIAMOND", "PUBLIC")):
        self.fail = fail
        self.configured = set(configured)
        self.sent = []

    async def send_to_tiers(self, text, tiers):
        if self.fail:
            raise httpx.ConnectError("telegram down")
        delivered = [t for t in tiers if t in self.configured]
        self.sent.append((text, delivered))
        return delivered


async def seeded_run(store):
    now = datetime.utcnow()
    record = RunRecord(type="signal", cycle_started_at=now, cycle_completed_at=now)
    await store.create_run(record)
    return record


class TestDeliveryPlans:
    """Which tiers get content now and which later."""

    def test_signal_plan(self):
        plan = plan_signal_delivery("SOL LONG", SwarmConfig())

        assert plan.immediate_tiers == [Tier.GOLD, Tier.DIAMOND]
        assert [(d.tier, d.delay_minutes) for d in plan.delayed] == [(Tier.SILVER, 15), (Tier.PUBLIC, 30)]

    def test_intel_plan(self):
        plan = plan_intel_delivery("tweet", "blog", deep_dive=False, config=SwarmConfig())

        assert plan.immediate_content == "blog"
        assert [(d.tier, d.content) for d in plan.delayed] == [(Tier.SILVER, "blog"), (Tier.PUBLIC, "tweet")]

    def test_deep_dive_stays_premium(self):
        plan = plan_intel_delivery("tweet", "blog", deep_dive=True, config=SwarmConfig())

        assert plan.immediate_tiers == [Tier.GOLD, Tier.DIAMOND]
        assert plan.delayed == []


class TestTieredPublisher:
    """Handoffs run as tracked tasks and never block the run."""

    @pytest.mark.asyncio
    async def test_publish_does_not_block(self, store, event_log):
        distribution = RecordingDistribution()
        publisher = TieredPublisher(distribution, store, event_log)
        record = await seeded_run(store)

        tasks = publisher.publish(record.id, plan_signal_delivery("SOL LONG", SwarmConfig()))

        assert len(tasks) == 3
        assert publisher.pending == 3
        assert distribution.immediate == []

        await publisher.drain()

        assert publisher.pending == 0
        assert distribution.immediate == [("SOL LONG", ["GOLD", "DIAMOND"])]
        assert [(s[1], s[3]) for s in distribution.scheduled] == [("SILVER", 15), ("PUBLIC", 30)]
        assert set(store.get_run(record.id).tier_delivered_at) == {"GOLD", "DIAMOND"}

    @pytest.mark.asyncio
    async def test_failed_delivery_is_reported_not_raised(self, store, event_log):
        publisher = TieredPublisher(RecordingDistribution(fail_immediate=True), store, event_log)
        record = await seeded_run(store)

        publisher.publish(record.id, plan_signal_delivery("SOL LONG", SwarmConfig()))
        await publisher.drain()

        failures = [e for e in event_log.get_events() if e.data and e.data.get("kind") == "distribution_failed"]
        assert len(failures) == 1
        assert failures[0].run_id == record.id
        assert store.get_run(record.id).tier_delivered_at == {}

    @pytest.mark.asyncio
    async def test_partial_delivery_backfills_only_delivered_tiers(self, store, event_log, tmp_path):
        service = ScheduledPostService(FakeTransport(configured=("GOLD",)), store, str(tmp_path))
        publisher = TieredPublisher(service, store, event_log)
        record = await seeded_run(store)

        publisher.publish(record.id, plan_intel_delivery(None, "blog", deep_dive=True, config=SwarmConfig()))
        await publisher.drain()

        assert set(store.get_run(record.id).tier_delivered_at) == {"GOLD"}
        delivered = [e for e in event_log.get_events() if e.data and e.data.get("kind") == "delivered"]
        assert delivered[0].severity == "warning"
        assert delivered[0].data["missed"] == ["DIAMOND"]


class TestScheduledPostService:
    """Delayed posts are queued, persisted and delivered when due."""

    @pytest.mark.asyncio
    async def test_due_posts_are_delivered_and_backfilled(self, store, tmp_path):
        transport = FakeTransport()
        service = ScheduledPostService(transport, store, str(tmp_path))
        record = await seeded_run(store)

        await service.schedule_delayed(record.id, "SILVER", "SOL LONG", 15)
        await service.schedule_delayed(record.id, "PUBLIC", "SOL LONG", 30)

        posted = await service.process_pending(now=datetime.utcnow() + timedelta(minutes=20))

        assert posted == 1
        assert transport.sent == [("SOL LONG", ["SILVER"])]
        assert [p.tier for p in service.get_pending()] == ["PUBLIC"]
        assert "SILVER" in store.get_run(record.id).tier_delivered_at

    @pytest.mark.asyncio
    async def test_transport_failure_marks_post_failed(self, store, tmp_path):
        service = ScheduledPostService(FakeTransport(fail=True), store, str(tmp_path))

        await service.schedule_delayed("run-1", "SILVER", "text", 0)
        posted = await service.process_pending(now=datetime.utcnow() + timedelta(minutes=1))

        assert posted == 0
        assert service.get_pending() == []

    @pytest.mark.asyncio
    async def test_unconfigured_tier_marks_post_failed(self, store, tmp_path):
        service = ScheduledPostService(FakeTransport(configured=()), store, str(tmp_path))

        await service.schedule_delayed("run-1", "PUBLIC", "text", 0)
        posted = await service.process_pending(now=datetime.utcnow() + timedelta(minutes=1))

        assert posted == 0
        assert service.get_pending() == []

    @pytest.mark.asyncio
    async def test_queue_survives_restart(self, store, tmp_path):
        service = ScheduledPostService(FakeTransport(), store, str(tmp_path))
        post = await service.schedule_delayed("run-1", "SILVER", "text", 15)

        restarted = ScheduledPostService(FakeTransport(), store, str(tmp_path))

        assert [p.id for p in restarted.get_pending()] == [post.id]

    @pytest.mark.asyncio
    async def test_immediate_delivery_passes_through(self, store, tmp_path):
        transport = FakeTransport(configured=("GOLD",))
        service = ScheduledPostService(transport, store, str(tmp_path))

        delivered = await service.deliver_immediate("text", ["GOLD", "DIAMOND"])

        assert delivered == ["GOLD"]
