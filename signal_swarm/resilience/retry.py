"""
Retry/repair controller for decision agent calls.

Every agent invocation walks a small phase machine:

    ATTEMPTING -> FAILED -> REPAIRING -> ATTEMPTING ... -> SUCCEEDED | EXHAUSTED

Schema failures are repaired by appending a description of exactly which
constraints failed; other agent failures get a generic retry notice. Backoff
between attempts is exponential and capped.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from pydantic import BaseModel

from ..agents.adapter import AgentHandle, DecisionAgentAdapter
from ..agents.errors import AgentError, ExhaustedRetriesError, SchemaError
from ..agents.event_log import EventLog
from ..agents.schemas import EventSeverity

logger = logging.getLogger(__name__)

MAX_CORRECTIONS = 3


class RetryPhase(str, Enum):
    ATTEMPTING = "attempting"
    FAILED = "failed"
    REPAIRING = "repairing"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


def backoff_delay_ms(attempt: int, base_ms: int = 1000, cap_ms: int = 5000) -> int:
    """Delay after the given (1-indexed) failed attempt: min(base * 2^(attempt-1), cap)."""
    return min(base_ms * (2 ** (max(attempt, 1) - 1)), cap_ms)


def build_correction(error: AgentError, attempt: int) -> str:
    """Corrective block appended to the next attempt's input."""
    if isinstance(error, SchemaError):
        violations = error.violations or [str(error)]
        lines = [f"PREVIOUS ATTEMPT {attempt} FAILED DUE TO SCHEMA VALIDATION ERROR:"]
        lines += [f"- {v}" for v in violations]
        lines.append("Fix exactly these problems and respond with JSON matching the required schema.")
        return "\n".join(lines)
    return f"PREVIOUS ATTEMPT {attempt} FAILED. Error: {error}. Please try again and respond with valid JSON only."


@dataclass
class RetryContext:
    """State of one agent invocation across attempts. Discarded afterwards."""
    agent_name: str
    original_input: str
    max_attempts: int
    attempt: int = 0
    phase: RetryPhase = RetryPhase.ATTEMPTING
    last_error: Optional[AgentError] = None
    corrections: List[str] = field(default_factory=list)

    def begin_attempt(self) -> str:
        self.attempt += 1
        self.phase = RetryPhase.ATTEMPTING
        return self.current_input()

    def current_input(self) -> str:
        if not self.corrections:
            return self.original_input
        return "\n\n".join([self.original_input] + self.corrections)

    def record_failure(self, error: AgentError) -> None:
        self.last_error = error
        self.phase = RetryPhase.EXHAUSTED if self.attempt >= self.max_attempts else RetryPhase.FAILED

    def repair(self) -> str:
        if self.phase != RetryPhase.FAILED or self.last_error is None:
            raise RuntimeError(f"Cannot repair from phase {self.phase.value}")
        self.phase = RetryPhase.REPAIRING
        correction = build_correction(self.last_error, self.attempt)
        self.corrections.append(correction)
        self.corrections = self.corrections[-MAX_CORRECTIONS:]
        return correction

    def succeed(self) -> None:
        self.phase = RetryPhase.SUCCEEDED


class RetryRepairController:
    """Wraps DecisionAgentAdapter.invoke with bounded, self-correcting retries."""

    def __init__(
        self,
        adapter: DecisionAgentAdapter,
        event_log: Optional[EventLog] = None,
        max_attempts: int = 10,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 5000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.adapter = adapter
        self.event_log = event_log
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.sleep = sleep

    def _emit(self, message: str, severity: EventSeverity, data: dict, run_id: Optional[str]) -> None:
        if self.event_log is not None:
            self.event_log.append(message, severity, data=data, run_id=run_id)

    async def run_with_retry(
        self,
        handle: AgentHandle,
        prompt: str,
        max_attempts: Optional[int] = None,
        run_id: Optional[str] = None,
    ) -> BaseModel:
        ctx = RetryContext(
            agent_name=handle.name,
            original_input=prompt,
            max_attempts=max_attempts or self.max_attempts,
        )

        while True:
            attempt_input = ctx.begin_attempt()
            try:
                result = await self.adapter.invoke(handle, attempt_input)
            except AgentError as e:
                ctx.record_failure(e)
                error_type = type(e).__name__

                if ctx.phase == RetryPhase.EXHAUSTED:
                    logger.error(
                        f"All {ctx.max_attempts} attempts failed for {handle.name}. Final error: {e}"
                    )
                    self._emit(
                        f"{handle.name} failed after {ctx.attempt} attempts: {e}",
                        EventSeverity.ERROR,
                        {"kind": "retries_exhausted", "agent": handle.name,
                         "attempts": ctx.attempt, "error_type": error_type},
                        run_id,
                    )
                    raise ExhaustedRetriesError(handle.name, ctx.attempt, e) from e

                ctx.repair()
                delay_ms = backoff_delay_ms(ctx.attempt, self.base_delay_ms, self.max_delay_ms)
                logger.warning(
                    f"Retry {ctx.attempt}/{ctx.max_attempts} for {handle.name} "
                    f"after {delay_ms}ms. Error: {e}"
                )
                self._emit(
                    f"{handle.name} attempt {ctx.attempt} failed ({error_type}), retrying in {delay_ms}ms",
                    EventSeverity.WARNING,
                    {
                        "kind": "retry_notice",
                        "agent": handle.name,
                        "attempt": ctx.attempt,
                        "error_type": error_type,
                        "violations": getattr(e, "violations", []),
                        "delay_ms": delay_ms,
                    },
                    run_id,
                )
                await self.sleep(delay_ms / 1000)
                continue

            ctx.succeed()
            if ctx.attempt > 1:
                logger.info(f"{handle.name} succeeded on attempt {ctx.attempt}")
            return result
