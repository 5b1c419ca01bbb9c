"""
Scheduled post queue - delayed tier delivery.

Implements the DistributionService contract: immediate sends go straight to
the transport; delayed sends are queued with a due time and delivered by
process_pending(), which also backfills the run's tier delivery timestamp.
The queue is persisted as JSON so pending posts survive restarts.
"""
import json
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import httpx

from ..agents.schemas import ScheduledPost
from ..storage.run_store import RunStore

logger = logging.getLogger("signal_swarm.services.scheduled_posts")


class TierTransport(Protocol):
    async def send_to_tiers(self, text: str, tiers: Iterable[str]) -> List[str]: ...


class ScheduledPostService:
    def __init__(self, transport: TierTransport, store: RunStore, data_dir: str = "signal_swarm/data"):
        self.transport = transport
        self.store = store
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.queue_file = self.data_dir / "scheduled_posts.json"

        self._lock = threading.Lock()
        self._posts: Dict[str, ScheduledPost] = self._load()

    def _load(self) -> Dict[str, ScheduledPost]:
        if not self.queue_file.exists():
            return {}
        try:
            with open(self.queue_file, "r") as f:
                raw = json.load(f)
            return {p["id"]: ScheduledPost.model_validate(p) for p in raw}
        except (ValueError, KeyError) as e:
            logger.error(f"Error loading scheduled posts from {self.queue_file}: {e}")
            return {}

    def _save(self) -> None:
        with open(self.queue_file, "w") as f:
            json.dump([p.model_dump(mode="json") for p in self._posts.values()], f, indent=2)

    async def deliver_immediate(self, content: str, tiers: Sequence[str]) -> List[str]:
        delivered = await self.transport.send_to_tiers(content, tiers)
        logger.info(f"Immediate delivery to {delivered}")
        return delivered

    async def schedule_delayed(self, run_id: str, tier: str, content: str, delay_minutes: int) -> ScheduledPost:
        post = ScheduledPost(
            run_id=run_id,
            tier=tier,
            content=content,
            scheduled_for=datetime.utcnow() + timedelta(minutes=delay_minutes),
        )
        with self._lock:
            self._posts[post.id] = post
            self._save()
        logger.info(f"Scheduled {tier} post for run {run_id} at {post.scheduled_for.isoformat()}")
        return post

    def get_pending(self) -> List[ScheduledPost]:
        with self._lock:
            pending = [p.model_copy() for p in self._posts.values() if p.status == "pending"]
        return sorted(pending, key=lambda p: p.scheduled_for)

    async def process_pending(self, now: Optional[datetime] = None) -> int:
        """Deliver every due post; returns how many were posted."""
        now = now or datetime.utcnow()
        due = [p for p in self.get_pending() if p.scheduled_for <= now]
        posted = 0

        for post in due:
            try:
                delivered = await self.transport.send_to_tiers(post.content, [post.tier])
            except httpx.HTTPError as e:
                logger.error(f"Scheduled post {post.id} ({post.tier}) failed: {e}")
                self._update(post.id, status="failed", error=str(e))
                continue

            if not delivered:
                self._update(post.id, status="failed", error=f"Delivery to {post.tier} failed")
                continue

            delivered_at = datetime.utcnow()
            self._update(post.id, status="posted", posted_at=delivered_at)
            await self.store.mark_delivered(post.run_id, post.tier, delivered_at)
            posted += 1

        if due:
            logger.info(f"Processed {len(due)} scheduled posts ({posted} posted)")
        return posted

    def _update(self, post_id: str, **changes) -> None:
        with self._lock:
            post = self._posts.get(post_id)
            if post is None:
                return
            self._posts[post_id] = post.model_copy(update=changes)
            self._save()
