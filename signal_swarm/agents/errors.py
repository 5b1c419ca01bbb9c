"""
Typed failures raised across the decision agent boundary.

Transport and schema failures are retryable; the retry controller absorbs
them until its attempt ceiling and then raises ExhaustedRetriesError.
"""
from typing import List, Optional

from pydantic import ValidationError


class AgentError(Exception):
    """Base class for decision agent failures."""

    def __init__(self, message: str, agent_name: str = ""):
        super().__init__(message)
        self.agent_name = agent_name


class TransportError(AgentError):
    """Network or upstream failure talking to an agent."""


class AgentTimeoutError(TransportError):
    """Agent did not answer within the adapter deadline."""


class SchemaError(AgentError):
    """Agent answered, but the payload does not match the role's schema."""

    def __init__(self, message: str, agent_name: str = "", violations: Optional[List[str]] = None):
        super().__init__(message, agent_name)
        self.violations = violations or []


class ExhaustedRetriesError(Exception):
    def __init__(self, agent_name: str, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(f"{agent_name} failed after {attempts} attempts: {last_error}")
        self.agent_name = agent_name
        self.attempts = attempts
        self.last_error = last_error


_MISSING = {"missing"}
_ENUM = {"enum", "literal_error"}
_LENGTH = {"string_too_long", "string_too_short", "too_long", "too_short"}
_RANGE = {"greater_than", "greater_than_equal", "less_than", "less_than_equal"}


def describe_validation_error(exc: ValidationError) -> List[str]:
    """Turn a pydantic ValidationError into one line per violated constraint."""
    violations = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
        kind = err.get("type", "")
        msg = err.get("msg", "")
        if kind in _MISSING:
            violations.append(f"field missing: '{loc}' is required")
        elif kind in _ENUM:
            violations.append(f"enum mismatch: '{loc}' {msg.lower()}")
        elif kind in _LENGTH:
            violations.append(f"length violation: '{loc}' {msg.lower()}")
        elif kind in _RANGE:
            violations.append(f"range violation: '{loc}' {msg.lower()}")
        elif kind == "value_error":
            violations.append(f"constraint violation: {msg}")
        else:
            violations.append(f"type mismatch: '{loc}' {msg.lower()}")
    return violations
