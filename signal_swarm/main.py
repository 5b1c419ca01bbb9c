"""
Main pipeline loop - the entry point for the signal swarm.
"""
import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from .config import load_config, SwarmConfig
from .agents.orchestrator import PipelineCoordinator
from .agents.schemas import RunRecord

logger = logging.getLogger("signal_swarm.main")

SCHEDULED_POST_POLL_SECONDS = 60


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


class PipelineLoop:
    """Runs the coordinator on a fixed cadence, flushes scheduled posts and tracks open signals."""

    def __init__(self, cfg: SwarmConfig, coordinator: Optional[PipelineCoordinator] = None):
        self.cfg = cfg
        self.coordinator = coordinator or PipelineCoordinator.from_config(cfg)
        self.running = False
        self._stop = asyncio.Event()

    async def run_once(self) -> RunRecord:
        record = await self.coordinator.run_pipeline()
        logger.info(
            f"Run {record.id}: {record.type} in {record.execution_time_ms}ms"
            + (f" (error: {record.error_message})" if record.error_message else "")
        )
        return record

    async def process_scheduled_posts(self) -> int:
        distribution = self.coordinator.publisher.distribution
        process_pending = getattr(distribution, "process_pending", None)
        if process_pending is None:
            return 0
        return await process_pending()

    async def check_signals(self) -> int:
        return await self.coordinator.monitor.check_active_signals()

    async def run(self) -> None:
        self.running = True
        logger.info("=" * 60)
        logger.info("SIGNAL SWARM STARTING")
        logger.info(f"Loop interval: {self.cfg.loop_seconds}s")
        logger.info(f"Quality gate: confidence >= {self.cfg.min_confidence:g}, R:R >= {self.cfg.min_risk_reward:g}")
        logger.info("=" * 60)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop, sig)
            except NotImplementedError:
                logger.warning(f"Signal handler for {sig} not supported on this platform")

        next_run = loop.time()
        while self.running and not self._stop.is_set():
            if loop.time() >= next_run:
                try:
                    await self.run_once()
                except Exception as e:
                    logger.error(f"ERROR in pipeline loop: {e}", exc_info=True)
                next_run = loop.time() + self.cfg.loop_seconds

            try:
                await self.process_scheduled_posts()
            except Exception as e:
                logger.error(f"ERROR processing scheduled posts: {e}", exc_info=True)

            try:
                await self.check_signals()
            except Exception as e:
                logger.error(f"ERROR checking open signals: {e}", exc_info=True)

            wait = min(SCHEDULED_POST_POLL_SECONDS, max(next_run - loop.time(), 0))
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=wait)
            except asyncio.TimeoutError:
                pass

        self.running = False
        await self.shutdown()

    def stop(self, signum=None) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        self.running = False
        self._stop.set()

    async def shutdown(self) -> None:
        logger.info(f"Waiting for {self.coordinator.publisher.pending} distribution tasks...")
        await self.coordinator.publisher.drain()
        logger.info("Signal swarm stopped")


async def _amain(args: argparse.Namespace, cfg: SwarmConfig) -> None:
    pipeline_loop = PipelineLoop(cfg)
    if args.once:
        await pipeline_loop.run_once()
        await pipeline_loop.coordinator.publisher.drain()
        return
    await pipeline_loop.run()


def main(argv=None):
    """Entry point."""
    parser = argparse.ArgumentParser(description="Signal swarm pipeline runner")
    parser.add_argument("--once", action="store_true", help="Run a single pipeline pass and exit")
    args = parser.parse_args(argv)

    try:
        cfg = load_config()
    except ValueError as e:
        print(f"CONFIGURATION ERROR: {e}")
        sys.exit(1)

    setup_logging(cfg.log_level)

    if not cfg.openai_api_key:
        logger.warning("OPENAI_API_KEY not set. Agent calls will fail and runs will be recorded as skips.")

    asyncio.run(_amain(args, cfg))


if __name__ == "__main__":
    main()
