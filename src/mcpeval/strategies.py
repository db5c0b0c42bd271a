"""Decision strategies for the orchestration loop.

A strategy only decides what to do next and keeps its own running
context; executing, recording and budgeting live in :mod:`mcpeval.loop`.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from mcpeval import prompts
from mcpeval.errors import GatewayTimeoutError
from mcpeval.models import EvalMode, EvalPrompt, ScriptedStep, TokenUsage, ToolCallRecord
from mcpeval.parser import ParsedObject, ParseFailure, parse_response
from mcpeval.providers import ModelGateway
from mcpeval.toolhost import Capability, ToolHost


@dataclass
class Action:
    """Invoke ``tool`` with ``parameters``."""
    tool: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    thought: Optional[str] = None
    plan: Optional[str] = None
    reasoning: Optional[str] = None


@dataclass
class Complete:
    """The strategy considers the task finished."""
    summary: Optional[str] = None
    thought: Optional[str] = None
    plan: Optional[str] = None
    reasoning: Optional[str] = None


Decision = Union[Action, Complete, ParseFailure]


@dataclass
class Turn:
    """One decision plus the tokens spent reaching it."""
    decision: Decision
    usage: TokenUsage = field(default_factory=TokenUsage)
    raw_text: str = ""


class DecisionStrategy(ABC):
    """Chooses the next action of an evaluation."""

    default_max_steps: int = 5

    async def prepare(self, capabilities: List[Capability]) -> None:
        """Called once before the first decision."""

    @abstractmethod
    async def decide(self, step: int) -> Turn: ...

    def on_parse_failure(self, step: int, failure: ParseFailure) -> None:
        """Feed a decode diagnostic back into the running context."""

    def on_record(self, record: ToolCallRecord) -> None:
        """Feed the outcome of an executed step back into the running context."""


class ScriptedStrategy(DecisionStrategy):
    """Replays a fixed list of steps, regardless of earlier outcomes."""

    def __init__(self, steps: List[ScriptedStep]) -> None:
        self._steps = list(steps)
        self._position = 0
        # One iteration per scripted step plus the completing one.
        self.default_max_steps = len(self._steps) + 1

    async def decide(self, step: int) -> Turn:
        if self._position >= len(self._steps):
            return Turn(Complete())
        scripted = self._steps[self._position]
        self._position += 1
        return Turn(Action(tool=scripted.tool, parameters=dict(scripted.parameters)))


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, default=str)


class ModelDrivenStrategy(DecisionStrategy):
    """Base for strategies that ask a model gateway for each decision."""

    def __init__(
        self,
        prompt: EvalPrompt,
        gateway: ModelGateway,
        model: str,
        call_timeout: Optional[float] = None,
    ) -> None:
        self.prompt = prompt
        self.gateway = gateway
        self.model = model
        self.call_timeout = call_timeout
        self.context = ""

    async def decide(self, step: int) -> Turn:
        call = self.gateway.run(self.context, self.model, system=prompts.ACTING_SYSTEM_PROMPT)
        if self.call_timeout is not None:
            try:
                completion = await asyncio.wait_for(call, timeout=self.call_timeout)
            except asyncio.TimeoutError:
                raise GatewayTimeoutError(
                    f"{self.gateway.name}/{self.model} did not answer within {self.call_timeout:g}s"
                ) from None
        else:
            completion = await call

        parsed = parse_response(completion.text)
        if isinstance(parsed, ParsedObject):
            decision = self.interpret(parsed.value)
        else:
            decision = parsed
        return Turn(decision, completion.usage.as_tool_usage(), completion.text)

    @abstractmethod
    def interpret(self, obj: Dict[str, Any]) -> Decision:
        """Map a decoded object onto this strategy's schema."""

    def on_parse_failure(self, step: int, failure: ParseFailure) -> None:
        self.context += prompts.PARSE_GUIDANCE.format(step=step, diagnostic=failure.diagnostic)


class ConversationStrategy(ModelDrivenStrategy):
    """``{tool, parameters, reasoning}`` decisions finished by ``{"done": true}``."""

    default_max_steps = 5

    async def prepare(self, capabilities: List[Capability]) -> None:
        self.context = prompts.build_conversation_context(
            self.prompt.goal, capabilities, self.prompt.environment
        )

    def interpret(self, obj: Dict[str, Any]) -> Decision:
        if obj.get("done") is True:
            return Complete(
                summary=_text(obj.get("explanation")) or "Task completed",
                reasoning=_text(obj.get("reasoning")),
            )
        tool = obj.get("tool")
        if not isinstance(tool, str) or not tool:
            return ParseFailure(message='Response is missing a "tool" name (or "done": true)')
        parameters = obj.get("parameters") or {}
        if not isinstance(parameters, dict):
            return ParseFailure(message='"parameters" must be a JSON object')
        return Action(tool=tool, parameters=parameters, reasoning=_text(obj.get("reasoning")))

    def on_record(self, record: ToolCallRecord) -> None:
        self.context += prompts.CONVERSATION_STEP_UPDATE.format(
            step=record.step,
            tool=record.tool,
            reasoning=record.reasoning or "No reasoning provided",
            parameters=prompts.format_parameters(record.parameters),
            outcome=prompts.describe_outcome(record.response, record.error),
        )


class AgentStrategy(ModelDrivenStrategy):
    """Structured thought/plan/action/reasoning decisions finished by ``"complete": true``."""

    default_max_steps = 8

    async def prepare(self, capabilities: List[Capability]) -> None:
        self.context = prompts.build_agent_context(
            self.prompt.goal, capabilities, self.prompt.environment, self.prompt.context
        )

    def interpret(self, obj: Dict[str, Any]) -> Decision:
        thought = _text(obj.get("thought"))
        plan = _text(obj.get("plan"))
        reasoning = _text(obj.get("reasoning"))
        if obj.get("complete") is True:
            return Complete(
                summary=_text(obj.get("summary")),
                thought=thought,
                plan=plan,
                reasoning=reasoning,
            )
        action = obj.get("action")
        if not isinstance(action, dict):
            return ParseFailure(message='Response is missing an "action" object (or "complete": true)')
        tool = action.get("tool")
        if not isinstance(tool, str) or not tool:
            return ParseFailure(message='"action" is missing a "tool" name')
        parameters = action.get("parameters") or {}
        if not isinstance(parameters, dict):
            return ParseFailure(message='"action.parameters" must be a JSON object')
        return Action(tool=tool, parameters=parameters, thought=thought, plan=plan, reasoning=reasoning)

    def on_record(self, record: ToolCallRecord) -> None:
        self.context += prompts.AGENT_STEP_UPDATE.format(
            step=record.step,
            thought=record.thought,
            plan=record.plan,
            reasoning=record.reasoning,
            tool=record.tool,
            parameters=prompts.format_parameters(record.parameters),
            outcome=prompts.describe_outcome(record.response, record.error),
        )


def strategy_for(
    prompt: EvalPrompt,
    gateway: ModelGateway,
    model: str,
    call_timeout: Optional[float] = None,
) -> DecisionStrategy:
    """Pick the strategy matching the prompt's mode."""
    if prompt.mode == EvalMode.SCRIPTED:
        return ScriptedStrategy(prompt.steps)
    if prompt.mode == EvalMode.CONVERSATION:
        return ConversationStrategy(prompt, gateway, model, call_timeout)
    return AgentStrategy(prompt, gateway, model, call_timeout)
