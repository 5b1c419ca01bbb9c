"""
DecisionAgentAdapter - uniform async contract over external decision agents.

Each agent is opaque: it takes a prompt and answers with JSON-shaped data.
The adapter enforces the per-call deadline, validates the answer against the
role's schema, and surfaces failures as TransportError / AgentTimeoutError /
SchemaError so the retry controller can tell them apart.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Type

import httpx
import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from .errors import (
    AgentError,
    AgentTimeoutError,
    SchemaError,
    TransportError,
    describe_validation_error,
)
from .prompts import SYSTEM_PROMPTS
from .schemas import AnalyzerOutput, GeneratorOutput, IntelOutput, ScannerOutput

logger = logging.getLogger("signal_swarm.agents.adapter")


class AgentRole(str, Enum):
    SCANNER = "scanner"
    ANALYZER = "analyzer"
    GENERATOR = "generator"
    INTEL = "intel"


ROLE_SCHEMAS: Dict[AgentRole, Type[BaseModel]] = {
    AgentRole.SCANNER: ScannerOutput,
    AgentRole.ANALYZER: AnalyzerOutput,
    AgentRole.GENERATOR: GeneratorOutput,
    AgentRole.INTEL: IntelOutput,
}


class DecisionAgent(Protocol):
    async def ask(self, prompt: str) -> Any: ...


@dataclass
class AgentHandle:
    """An agent bound to the role whose schema its answers must satisfy."""
    name: str
    role: AgentRole
    agent: DecisionAgent

    @property
    def output_model(self) -> Type[BaseModel]:
        return ROLE_SCHEMAS[self.role]


def strip_json_fence(content: str) -> str:
    content = content.strip()
    if content.startswith("```"):
        content = content.split("```")[1]
        if content.startswith("json"):
            content = content[4:]
    return content.strip()


class OpenAIDecisionAgent:
    """Chat-completions agent answering in JSON mode."""

    def __init__(
        self,
        role: AgentRole,
        model: str = "gpt-4o",
        api_key: Optional[str] = None,
        temperature: float = 0.3,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.role = role
        self.model = model
        self.temperature = temperature
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.system_prompt = SYSTEM_PROMPTS[role.value]

    async def ask(self, prompt: str) -> Any:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except (openai.APIConnectionError, openai.APIStatusError) as e:
            raise TransportError(f"OpenAI request failed: {e}", agent_name=self.role.value) from e

        raw_content = response.choices[0].message.content
        if not raw_content:
            raise SchemaError("Empty response", agent_name=self.role.value, violations=["response body is empty"])
        return raw_content


class DecisionAgentAdapter:
    """Invokes agents under a deadline and validates their answers."""

    def __init__(self, timeout_seconds: float = 120.0):
        self.timeout_seconds = timeout_seconds

    async def invoke(self, handle: AgentHandle, prompt: str) -> BaseModel:
        try:
            raw = await asyncio.wait_for(handle.agent.ask(prompt), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise AgentTimeoutError(
                f"{handle.name} did not answer within {self.timeout_seconds:g}s",
                agent_name=handle.name,
            ) from e
        except AgentError as e:
            if not e.agent_name:
                e.agent_name = handle.name
            raise
        except httpx.HTTPError as e:
            raise TransportError(f"{handle.name} transport failure: {e}", agent_name=handle.name) from e

        return self.parse(handle, raw)

    def parse(self, handle: AgentHandle, raw: Any) -> BaseModel:
        if isinstance(raw, BaseModel):
            raw = raw.model_dump()

        if isinstance(raw, (str, bytes)):
            text = raw.decode() if isinstance(raw, bytes) else raw
            try:
                raw = json.loads(strip_json_fence(text))
            except json.JSONDecodeError as e:
                raise SchemaError(
                    f"{handle.name} returned invalid JSON: {e}",
                    agent_name=handle.name,
                    violations=[f"invalid JSON at line {e.lineno} column {e.colno}: {e.msg}"],
                ) from e

        if not isinstance(raw, dict):
            raise SchemaError(
                f"{handle.name} returned {type(raw).__name__}, expected a JSON object",
                agent_name=handle.name,
                violations=[f"type mismatch: top-level value must be an object, got {type(raw).__name__}"],
            )

        try:
            return handle.output_model.model_validate(raw)
        except ValidationError as e:
            violations = describe_validation_error(e)
            logger.warning(f"{handle.name} schema violations: {violations}")
            raise SchemaError(
                f"{handle.name} output failed schema validation",
                agent_name=handle.name,
                violations=violations,
            ) from e
