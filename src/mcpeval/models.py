"""Core data models for mcpeval."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional


class EvalMode(str, Enum):
    """How the next action of an evaluation is decided."""
    SCRIPTED = "scripted"
    CONVERSATION = "conversation"
    AGENT = "agent"


class LoopState(str, Enum):
    """States of the orchestration loop."""
    ACTING = "acting"
    PARSE_OK = "parse_ok"
    PARSE_FAIL = "parse_fail"
    EXECUTING_TOOL = "executing_tool"
    DONE = "done"
    STEP_LIMIT_REACHED = "step_limit_reached"
    FAILED = "failed"


class RecordKind(str, Enum):
    """Kinds of entries in a transcript."""
    TOOL = "tool"
    COMPLETE = "complete"
    STEP_LIMIT = "step_limit"


@dataclass(frozen=True)
class ScriptedStep:
    """One predetermined tool call of a scripted prompt."""
    tool: str
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Rubric:
    """What the judge scores a transcript against."""
    criteria: str
    expected_success: Optional[bool] = None
    expectations: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class EvalPrompt:
    """An immutable goal descriptor loaded from storage."""
    id: str
    goal: str
    rubric: Rubric
    mode: EvalMode = EvalMode.AGENT
    name: str = ""
    description: str = ""
    context: Optional[str] = None
    steps: List[ScriptedStep] = field(default_factory=list)
    allowed_tools: Optional[List[str]] = None
    max_steps: Optional[int] = None
    environment: Optional[str] = None


@dataclass
class TokenUsage:
    """Token counts for one or more gateway calls.

    Acting calls are counted under the ``tool_*`` fields, judge calls
    under the plain ones. Instances are folded with ``+``.
    """
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    tool_prompt_tokens: int = 0
    tool_completion_tokens: int = 0
    tool_total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(**{
            f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)
        })

    def as_tool_usage(self) -> "TokenUsage":
        """Re-label plain prompt/completion counts as tool-usage counts."""
        return TokenUsage(
            tool_prompt_tokens=self.prompt_tokens + self.tool_prompt_tokens,
            tool_completion_tokens=self.completion_tokens + self.tool_completion_tokens,
            tool_total_tokens=self.total_tokens + self.tool_total_tokens,
        )


@dataclass
class ToolCallRecord:
    """Evidence for one step of an evaluation. ``index`` is the array position."""
    index: int
    kind: RecordKind
    step: int
    tool: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    response: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    thought: Optional[str] = None
    plan: Optional[str] = None
    reasoning: Optional[str] = None
    summary: Optional[str] = None
    started_at: str = ""
    ended_at: str = ""
    latency_ms: int = 0


@dataclass
class ParseDiagnostic:
    """A model reply that could not be decoded into an action."""
    step: int
    message: str
    raw_text: str


@dataclass
class Transcript:
    """Ordered records plus terminal state for one evaluation."""
    records: List[ToolCallRecord] = field(default_factory=list)
    diagnostics: List[ParseDiagnostic] = field(default_factory=list)
    state: LoopState = LoopState.ACTING
    summary: Optional[str] = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    steps_taken: int = 0

    @property
    def tool_records(self) -> List[ToolCallRecord]:
        return [r for r in self.records if r.kind == RecordKind.TOOL]


@dataclass
class AgentScores:
    """Per-dimension judge scores for agent-mode evaluations."""
    goal_achievement: float = 0.0
    reasoning_quality: float = 0.0
    path_efficiency: float = 0.0


@dataclass
class Verdict:
    """The judge's decision on a transcript."""
    passed: bool
    score: float
    reasoning: str
    agent_scores: Optional[AgentScores] = None


@dataclass
class EvalMetrics:
    """Timing and token metrics for one evaluation."""
    start_time: float
    end_time: float
    latency_ms: int
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    tool_call_count: int = 0
    step_count: int = 0


@dataclass(frozen=True)
class EvalResult:
    """One full evaluation of a prompt by a provider/model pair."""
    id: str
    timestamp: str
    prompt: EvalPrompt
    provider: str
    model: str
    records: List[ToolCallRecord]
    validation: Verdict
    metrics: EvalMetrics
    state: LoopState = LoopState.DONE
    diagnostics: List[ParseDiagnostic] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class EvalSummary:
    """Aggregate over all results of a run."""
    timestamp: str
    total: int
    passed: int
    failed: int
    pass_rate: float
    avg_latency_ms: float
    avg_tool_calls: float
    avg_step_count: float
    avg_tool_tokens: float
    results: List[EvalResult] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def prompt_from_dict(data: Dict[str, Any]) -> EvalPrompt:
    """Rebuild an EvalPrompt from its ``to_dict`` form."""
    rubric = data.get("rubric") or {}
    return EvalPrompt(
        id=data["id"],
        goal=data.get("goal", ""),
        rubric=Rubric(
            criteria=rubric.get("criteria", ""),
            expected_success=rubric.get("expected_success"),
            expectations=list(rubric.get("expectations") or []),
        ),
        mode=EvalMode(data.get("mode", EvalMode.AGENT.value)),
        name=data.get("name", ""),
        description=data.get("description", ""),
        context=data.get("context"),
        steps=[ScriptedStep(s["tool"], s.get("parameters") or {}) for s in data.get("steps") or []],
        allowed_tools=data.get("allowed_tools"),
        max_steps=data.get("max_steps"),
        environment=data.get("environment"),
    )


def result_from_dict(data: Dict[str, Any]) -> EvalResult:
    """Rebuild an EvalResult from its ``to_dict`` form."""
    validation = data["validation"]
    scores = validation.get("agent_scores")
    metrics = dict(data["metrics"])
    metrics["token_usage"] = TokenUsage(**(metrics.get("token_usage") or {}))
    return EvalResult(
        id=data["id"],
        timestamp=data["timestamp"],
        prompt=prompt_from_dict(data["prompt"]),
        provider=data["provider"],
        model=data["model"],
        records=[
            ToolCallRecord(**{**r, "kind": RecordKind(r["kind"])})
            for r in data.get("records", [])
        ],
        validation=Verdict(
            passed=validation["passed"],
            score=validation["score"],
            reasoning=validation["reasoning"],
            agent_scores=AgentScores(**scores) if scores else None,
        ),
        metrics=EvalMetrics(**metrics),
        state=LoopState(data.get("state", LoopState.DONE.value)),
        diagnostics=[ParseDiagnostic(**d) for d in data.get("diagnostics", [])],
        error=data.get("error"),
    )


def summary_from_dict(data: Dict[str, Any]) -> EvalSummary:
    """Rebuild an EvalSummary from its ``to_dict`` form."""
    return EvalSummary(
        timestamp=data["timestamp"],
        total=data["total"],
        passed=data["passed"],
        failed=data["failed"],
        pass_rate=data["pass_rate"],
        avg_latency_ms=data["avg_latency_ms"],
        avg_tool_calls=data.get("avg_tool_calls", 0.0),
        avg_step_count=data.get("avg_step_count", 0.0),
        avg_tool_tokens=data.get("avg_tool_tokens", 0.0),
        results=[result_from_dict(r) for r in data.get("results", [])],
        metadata=data.get("metadata", {}),
    )
