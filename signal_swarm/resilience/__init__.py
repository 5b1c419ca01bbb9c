"""
Resilience patterns for decision agent calls.
"""
from .retry import (
    RetryRepairController,
    RetryContext,
    RetryPhase,
    backoff_delay_ms,
    build_correction,
)

__all__ = [
    "RetryRepairController",
    "RetryContext",
    "RetryPhase",
    "backoff_delay_ms",
    "build_correction",
]
