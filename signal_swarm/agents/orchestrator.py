"""
PipelineCoordinator - Top-level conductor.

Purpose: run one pipeline pass and always end with exactly one RunRecord.

Stages (strict order):
  Collecting -> Scanning -> (NeutralStop | Analyzing) -> Validating
  -> (Rejected | Generating) -> Publishing -> Done

IntelFallback is entered when the signal quota is used up, the scanner
yields no usable candidates, the analyzer declines, or validation rejects.
Anything unexpected is caught at the top level and persisted as a skip.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .adapter import AgentHandle, AgentRole, DecisionAgentAdapter, OpenAIDecisionAgent
from .event_log import EventCallback, EventLog
from .market_data import MarketDataAggregator
from .price_oracle import PriceOracleGuard
from .prompts import (
    build_analyzer_prompt,
    build_intel_content_prompt,
    build_intel_prompt,
    build_scanner_prompt,
    build_signal_content_prompt,
)
from .publication import (
    DeliveryPlan,
    DistributionService,
    TieredPublisher,
    plan_intel_delivery,
    plan_signal_delivery,
)
from .quality_gate import QualityGate
from .signal_monitor import SignalMonitor
from .schemas import (
    AnalyzerAction,
    EventSeverity,
    MarketBias,
    MarketSnapshot,
    OrderKind,
    PipelineEvent,
    PriceCheck,
    ProposedSignal,
    RejectionKind,
    RunRecord,
    RunType,
    ValidationVerdict,
)
from ..config import SwarmConfig
from ..resilience.retry import RetryRepairController
from ..storage.run_store import RunStore

logger = logging.getLogger("signal_swarm.agents.orchestrator")


class PipelineState(str, Enum):
    COLLECTING = "collecting"
    SCANNING = "scanning"
    NEUTRAL_STOP = "neutral_stop"
    ANALYZING = "analyzing"
    VALIDATING = "validating"
    REJECTED = "rejected"
    GENERATING = "generating"
    PUBLISHING = "publishing"
    INTEL_FALLBACK = "intel_fallback"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunContext:
    """Mutable per-run bookkeeping; never shared between runs."""
    run_id: str
    started_at: datetime
    start_time: float
    state: PipelineState = PipelineState.COLLECTING
    rejection: Optional[Dict[str, Any]] = None
    record: Optional[RunRecord] = None
    persist_attempted: bool = False
    history: List[str] = field(default_factory=list)


def clamp_confidence(confidence: Optional[float]) -> Optional[float]:
    if confidence is None:
        return None
    return float(max(1, min(100, round(confidence))))


class PipelineCoordinator:
    """
    Sequences market data, decision agents, validation and distribution.

    Owns its EventLog; concurrent runs share only that log.
    """

    def __init__(
        self,
        config: SwarmConfig,
        aggregator: MarketDataAggregator,
        oracle: PriceOracleGuard,
        agents: Dict[AgentRole, AgentHandle],
        store: RunStore,
        distribution: DistributionService,
        gate: Optional[QualityGate] = None,
        event_log: Optional[EventLog] = None,
        adapter: Optional[DecisionAgentAdapter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.config = config
        self.aggregator = aggregator
        self.oracle = oracle
        self.agents = agents
        self.store = store
        self.gate = gate or QualityGate(config)
        self.event_log = event_log or EventLog(config.event_log_capacity)
        self.retry = RetryRepairController(
            adapter or DecisionAgentAdapter(config.agent_timeout_seconds),
            event_log=self.event_log,
            max_attempts=config.max_attempts,
            base_delay_ms=config.backoff_base_ms,
            max_delay_ms=config.backoff_cap_ms,
            sleep=sleep,
        )
        self.publisher = TieredPublisher(distribution, store, self.event_log)
        self.monitor = SignalMonitor(store, oracle, self.event_log, active_days=config.active_signal_days, now=now)
        self.now = now

        missing = [role.value for role in AgentRole if role not in agents]
        if missing:
            raise ValueError(f"Missing agents for roles: {missing}")

        logger.info(
            f"Coordinator initialized - min confidence {config.min_confidence:g}, "
            f"min R:R {config.min_risk_reward:g}, max attempts {config.max_attempts}"
        )

    @classmethod
    def from_config(cls, config: SwarmConfig) -> "PipelineCoordinator":
        """Wire production collaborators from configuration."""
        from ..services.binance_client import BinanceClient
        from ..services.coingecko_client import CoinGeckoClient
        from ..services.coinmarketcap_client import CoinMarketCapClient
        from ..services.scheduled_posts import ScheduledPostService
        from ..services.telegram_client import TelegramClient
        from ..storage.run_store import JsonlRunStore

        timeout = config.provider_timeout_seconds
        providers = {
            "binance": BinanceClient(timeout=timeout),
            "coingecko": CoinGeckoClient(api_key=config.coingecko_api_key, id_map=config.coingecko_ids, timeout=timeout),
            "coinmarketcap": CoinMarketCapClient(api_key=config.cmc_api_key, timeout=timeout),
        }

        models = {
            AgentRole.SCANNER: config.scanner_model,
            AgentRole.ANALYZER: config.analyzer_model,
            AgentRole.GENERATOR: config.generator_model,
            AgentRole.INTEL: config.intel_model,
        }
        agents = {
            role: AgentHandle(
                name=role.value,
                role=role,
                agent=OpenAIDecisionAgent(role, model=model, api_key=config.openai_api_key),
            )
            for role, model in models.items()
        }

        store = JsonlRunStore(config.data_dir, active_days=config.active_signal_days)
        telegram = TelegramClient(config.telegram_bot_token, config.telegram_chat_ids, timeout=timeout)
        if not telegram.enabled:
            logger.warning("Telegram is not configured. Content will be recorded but not delivered.")
        distribution = ScheduledPostService(telegram, store, config.data_dir)

        return cls(
            config=config,
            aggregator=MarketDataAggregator(providers, config),
            oracle=PriceOracleGuard(list(providers.values()), config),
            agents=agents,
            store=store,
            distribution=distribution,
        )

    def get_events(self, after_id: Optional[int] = None) -> List[PipelineEvent]:
        return self.event_log.get_events(after_id)

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        return self.event_log.subscribe(callback)

    def _transition(
        self,
        ctx: RunContext,
        state: PipelineState,
        message: str,
        severity: EventSeverity = EventSeverity.INFO,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        ctx.state = state
        ctx.history.append(state.value)
        payload = {"state": state.value}
        if data:
            payload.update(data)
        self.event_log.append(message, severity, data=payload, run_id=ctx.run_id)

    async def run_pipeline(self) -> RunRecord:
        """Run one complete pipeline pass."""
        started_at = self.now()
        ctx = RunContext(
            run_id=str(uuid.uuid4()),
            started_at=started_at,
            start_time=time.time(),
        )
        logger.info(f"=== PIPELINE START ({ctx.run_id}) ===")

        try:
            record = await self._run_stages(ctx)
        except Exception as e:
            failed_stage = ctx.state.value
            logger.error(f"Pipeline error in {failed_stage}: {e}", exc_info=True)
            self._transition(
                ctx,
                PipelineState.FAILED,
                f"Pipeline failed during {failed_stage}: {e}",
                EventSeverity.ERROR,
                {"error_type": type(e).__name__, "stage": failed_stage},
            )
            if ctx.record is not None:
                return ctx.record

            # a failed first write may still have reached the journal, so never reuse its id
            record = self._build_record(
                ctx,
                RunType.SKIP,
                {"reason": "error", "stage": failed_stage, "rejection": ctx.rejection},
                error_message=str(e),
                run_id=str(uuid.uuid4()) if ctx.persist_attempted else None,
            )
            try:
                await self.store.create_run(record)
            except Exception as store_error:
                logger.error(f"Could not persist skip record {record.id}: {store_error}", exc_info=True)
                self.event_log.append(
                    f"Failed to persist skip record: {store_error}",
                    EventSeverity.ERROR,
                    run_id=ctx.run_id,
                )

        logger.info(f"=== PIPELINE COMPLETE ({record.type}, {record.execution_time_ms}ms) ===")
        return record

    async def _run_stages(self, ctx: RunContext) -> RunRecord:
        cfg = self.config

        self._transition(ctx, PipelineState.COLLECTING, "[1/6] Collecting market data...")
        snapshot = await self.aggregator.collect()
        if snapshot.errors:
            self.event_log.append(
                f"Market data collected with {len(snapshot.errors)} provider errors",
                EventSeverity.WARNING,
                data={"errors": snapshot.errors[:10]},
                run_id=ctx.run_id,
            )
        if not snapshot.data_available:
            self.event_log.append(
                "No market data available from any provider",
                EventSeverity.WARNING,
                run_id=ctx.run_id,
            )

        now = self.now()
        recent_signals = await self.store.get_recent_signal_count(cfg.signal_window_hours, now)
        active_symbols = await self.store.get_active_symbols(now)

        if recent_signals >= cfg.max_signals_per_window:
            return await self._intel_fallback(
                ctx,
                snapshot,
                f"Signal quota reached ({recent_signals}/{cfg.max_signals_per_window} "
                f"in {cfg.signal_window_hours}h)",
            )

        self._transition(ctx, PipelineState.SCANNING, "[2/6] Scanning for candidates...")
        recent_posts = await self.store.get_recent_posts(cfg.recent_posts_in_prompt)
        scan = await self.retry.run_with_retry(
            self.agents[AgentRole.SCANNER],
            build_scanner_prompt(snapshot, sorted(active_symbols), recent_posts),
            run_id=ctx.run_id,
        )

        if scan.market_bias == MarketBias.NEUTRAL:
            self._transition(
                ctx,
                PipelineState.NEUTRAL_STOP,
                "Market bias is NEUTRAL, no directional trade this run",
                data={"summary": scan.summary},
            )
            return await self._intel_fallback(ctx, snapshot, "Neutral market bias")

        candidates = [c for c in scan.candidates if c.symbol.upper() not in active_symbols]
        dropped = len(scan.candidates) - len(candidates)
        if dropped:
            logger.info(f"Dropped {dropped} candidates with active signals")
        if not candidates:
            return await self._intel_fallback(ctx, snapshot, "Scanner returned no usable candidates")

        self._transition(
            ctx,
            PipelineState.ANALYZING,
            f"[3/6] Analyzing {len(candidates)} candidates...",
            data={"candidates": [c.symbol for c in candidates], "market_bias": scan.market_bias},
        )
        timeframes = await self.aggregator.collect_candidate_context(candidates)
        analysis = await self.retry.run_with_retry(
            self.agents[AgentRole.ANALYZER],
            build_analyzer_prompt(candidates, scan.market_bias, timeframes),
            run_id=ctx.run_id,
        )

        proposed = analysis.proposed_signal() if analysis.action == AnalyzerAction.SIGNAL else None
        if proposed is None or proposed.entry_price is None:
            return await self._intel_fallback(ctx, snapshot, f"Analyzer declined to signal ({analysis.action})")

        symbol = proposed.token.symbol.upper()
        if symbol in active_symbols:
            return await self._intel_fallback(ctx, snapshot, f"{symbol} already has an active signal")

        self._transition(ctx, PipelineState.VALIDATING, f"[4/6] Validating {symbol} signal...")
        proposed, verdict, price_check = await self._validate(ctx, proposed)
        if verdict is None or not verdict.valid:
            return await self._intel_fallback(ctx, snapshot, f"{symbol} signal rejected")

        self._transition(ctx, PipelineState.GENERATING, "[5/6] Generating signal content...")
        generated = await self.retry.run_with_retry(
            self.agents[AgentRole.GENERATOR],
            build_signal_content_prompt(proposed, verdict),
            run_id=ctx.run_id,
        )

        content = {
            "token": proposed.token.model_dump(),
            "signal": proposed.model_dump(mode="json", exclude={"token"}),
            "verdict": verdict.model_dump(mode="json"),
            "price_check": price_check.model_dump(),
            "status": "pending" if proposed.order_type == OrderKind.LIMIT else "active",
            "formatted_content": generated.primary_content,
            "tweet_text": generated.tweet_text,
            "image_prompt": generated.image_prompt,
            "log_message": generated.log_message,
        }

        self._transition(ctx, PipelineState.PUBLISHING, f"[6/6] Publishing {symbol} signal...")
        return await self._finish(
            ctx,
            RunType.SIGNAL,
            content,
            confidence=proposed.confidence,
            plan=plan_signal_delivery(generated.primary_content, cfg),
        )

    async def _validate(self, ctx: RunContext, proposed: ProposedSignal):
        """Oracle first, then the quality gate. Returns (signal, verdict or None, price check)."""
        symbol = proposed.token.symbol.upper()
        check: PriceCheck = await self.oracle.validate_price(symbol, proposed.entry_price, proposed.order_type)

        if not check.valid:
            ctx.rejection = {
                "kind": RejectionKind.PRICE_HALLUCINATION.value,
                "symbol": symbol,
                "reasons": [check.reason],
                "price_check": check.model_dump(),
            }
            self._transition(
                ctx,
                PipelineState.REJECTED,
                f"Price check rejected {symbol}: {check.reason}",
                EventSeverity.WARNING,
                ctx.rejection,
            )
            return proposed, None, check

        if (
            proposed.order_type == OrderKind.MARKET
            and self.config.auto_correct_market_entry
            and check.reference_price
            and proposed.entry_price != check.reference_price
        ):
            self.event_log.append(
                f"Market entry for {symbol} corrected from {proposed.entry_price:g} "
                f"to {check.source} price {check.reference_price:g}",
                EventSeverity.INFO,
                data={"deviation_percent": check.deviation_percent},
                run_id=ctx.run_id,
            )
            proposed = proposed.model_copy(update={"entry_price": check.reference_price})

        verdict: ValidationVerdict = self.gate.evaluate(proposed, reference_price=check.reference_price)
        if not verdict.valid:
            ctx.rejection = {
                "kind": RejectionKind.QUALITY_REJECTION.value,
                "symbol": symbol,
                "reasons": verdict.reasons,
                "verdict": verdict.model_dump(mode="json"),
            }
            self._transition(
                ctx,
                PipelineState.REJECTED,
                f"Quality gate rejected {symbol}: {'; '.join(verdict.reasons)}",
                EventSeverity.WARNING,
                ctx.rejection,
            )
        return proposed, verdict, check

    async def _intel_fallback(self, ctx: RunContext, snapshot: MarketSnapshot, reason: str) -> RunRecord:
        cfg = self.config
        self._transition(ctx, PipelineState.INTEL_FALLBACK, f"Intel fallback: {reason}", data={"reason": reason})

        now = self.now()
        deep_dive = now.weekday() == 6 and not await self.store.has_deep_dive_today(now)
        recent_topics = await self.store.get_recent_intel_topics(cfg.recent_intel_topics)

        intel = await self.retry.run_with_retry(
            self.agents[AgentRole.INTEL],
            build_intel_prompt(snapshot, recent_topics, deep_dive),
            run_id=ctx.run_id,
        )

        base_content = {
            "fallback_reason": reason,
            "rejection": ctx.rejection,
            "topic": intel.topic,
            "importance_score": intel.importance_score,
        }

        repeated = intel.topic.strip().lower() in {t.strip().lower() for t in recent_topics}
        if intel.topic.strip().upper() == "SKIP" or intel.importance_score < cfg.intel_min_importance or repeated:
            skip_reason = "repeated intel topic" if repeated else "intel below importance threshold"
            logger.info(f"Skipping intel '{intel.topic}' (importance {intel.importance_score}): {skip_reason}")
            return await self._finish(ctx, RunType.SKIP, {**base_content, "reason": skip_reason})

        self._transition(ctx, PipelineState.GENERATING, f"Generating {'deep dive' if deep_dive else 'intel'} content...")
        generated = await self.retry.run_with_retry(
            self.agents[AgentRole.GENERATOR],
            build_intel_content_prompt(intel, deep_dive),
            run_id=ctx.run_id,
        )

        content = {
            **base_content,
            "insight": intel.insight,
            "sentiment": intel.sentiment,
            "related_tokens": intel.related_tokens,
            "tweet_text": generated.tweet_text,
            "blog_post": generated.blog_post,
            "image_prompt": generated.image_prompt,
            "formatted_content": generated.primary_content,
        }

        self._transition(ctx, PipelineState.PUBLISHING, "Publishing intel...")
        return await self._finish(
            ctx,
            RunType.DEEP_DIVE if deep_dive else RunType.INTEL,
            content,
            plan=plan_intel_delivery(generated.tweet_text, generated.blog_post, deep_dive, cfg),
        )

    def _build_record(
        self,
        ctx: RunContext,
        run_type: RunType,
        content: Dict[str, Any],
        confidence: Optional[float] = None,
        error_message: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> RunRecord:
        return RunRecord(
            id=run_id or ctx.run_id,
            type=run_type,
            content=content,
            cycle_started_at=ctx.started_at,
            cycle_completed_at=self.now(),
            execution_time_ms=int((time.time() - ctx.start_time) * 1000),
            confidence_score=clamp_confidence(confidence),
            error_message=error_message,
        )

    async def _finish(
        self,
        ctx: RunContext,
        run_type: RunType,
        content: Dict[str, Any],
        confidence: Optional[float] = None,
        plan: Optional[DeliveryPlan] = None,
    ) -> RunRecord:
        record = self._build_record(ctx, run_type, content, confidence)
        ctx.persist_attempted = True
        await self.store.create_run(record)
        ctx.record = record

        if plan is not None:
            self.publisher.publish(record.id, plan)

        self._transition(
            ctx,
            PipelineState.DONE,
            f"Run complete: {record.type}",
            EventSeverity.SUCCESS,
            {"run_type": record.type},
        )
        return record
