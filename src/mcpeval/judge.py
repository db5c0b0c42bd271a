"""Judge — scores a finished transcript with a model gateway."""

from __future__ import annotations

import asyncio
import json
import re
from typing import List, Optional, Tuple

from mcpeval import prompts
from mcpeval.errors import GatewayTimeoutError
from mcpeval.models import (
    AgentScores,
    EvalMode,
    EvalPrompt,
    RecordKind,
    TokenUsage,
    ToolCallRecord,
    Transcript,
    Verdict,
)
from mcpeval.providers import ModelGateway

_NUMBER = r"\**:\s*\**\s*([0-9]*\.?[0-9]+)"

_GOAL_RE = re.compile(r"\bGOAL_ACHIEVEMENT" + _NUMBER, re.IGNORECASE)
_REASONING_QUALITY_RE = re.compile(r"\bREASONING_QUALITY" + _NUMBER, re.IGNORECASE)
_PATH_RE = re.compile(r"\bPATH_EFFICIENCY" + _NUMBER, re.IGNORECASE)
_OVERALL_RE = re.compile(r"\b(?:OVERALL_SCORE|SCORE)" + _NUMBER, re.IGNORECASE)
_PASSED_RE = re.compile(r"\bPASSED\**:\s*\**\s*(true|false)", re.IGNORECASE)
_REASONING_RE = re.compile(r"\bREASONING\**:\s*\**\s*([\s\S]+)", re.IGNORECASE)


def _json(value) -> str:
    return json.dumps(value, indent=2, default=str)


def _clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


def _float(match: Optional["re.Match"]) -> Optional[float]:
    return float(match.group(1)) if match else None


def parse_verdict(text: str) -> Verdict:
    """Extract tagged fields from a judge reply, ignoring surrounding prose.

    Without an overall score the mean of the three sub-scores is used.
    A reply with no recognizable tags yields a failing zero score with
    the raw text as reasoning.
    """
    goal = _float(_GOAL_RE.search(text))
    quality = _float(_REASONING_QUALITY_RE.search(text))
    path = _float(_PATH_RE.search(text))
    overall = _float(_OVERALL_RE.search(text))
    passed_match = _PASSED_RE.search(text)
    reasoning_match = _REASONING_RE.search(text)

    subs = [goal, quality, path]
    has_subs = any(s is not None for s in subs)
    if not has_subs and overall is None and passed_match is None and reasoning_match is None:
        return Verdict(passed=False, score=0.0, reasoning=text)

    if overall is None:
        overall = sum(s or 0.0 for s in subs) / 3 if has_subs else 0.0

    agent_scores = None
    if has_subs:
        agent_scores = AgentScores(
            goal_achievement=_clamp(goal or 0.0),
            reasoning_quality=_clamp(quality or 0.0),
            path_efficiency=_clamp(path or 0.0),
        )

    return Verdict(
        passed=bool(passed_match) and passed_match.group(1).lower() == "true",
        score=_clamp(overall),
        reasoning=reasoning_match.group(1).strip() if reasoning_match else text,
        agent_scores=agent_scores,
    )


def _render_record(record: ToolCallRecord, position: int) -> str:
    lines = [f"--- Step {position} ---"]
    if record.thought:
        lines.append(f"THOUGHT: {record.thought}")
    if record.plan:
        lines.append(f"PLAN: {record.plan}")
    if record.reasoning:
        lines.append(f"REASONING: {record.reasoning}")
    if record.tool:
        lines.append(f"TOOL: {record.tool}")
    if record.parameters is not None:
        lines.append(f"PARAMETERS: {_json(record.parameters)}")
    if record.response is not None:
        lines.append(f"RESPONSE: {_json(record.response)}")
    if record.summary:
        lines.append(f"SUMMARY: {record.summary}")
    if record.kind == RecordKind.COMPLETE:
        lines.append("TASK COMPLETED")
    if record.kind == RecordKind.STEP_LIMIT:
        lines.append("STEP LIMIT REACHED")
    elif record.error:
        lines.append(f"ERROR: {record.error}")
    return "\n".join(lines)


def build_judge_prompt(prompt: EvalPrompt, transcript: Transcript) -> str:
    """Embed the full transcript and the rubric into one judge prompt."""
    rendered: List[str] = [
        _render_record(r, i + 1) for i, r in enumerate(transcript.records)
    ]
    if transcript.diagnostics:
        rendered.append(
            f"(The model also produced {len(transcript.diagnostics)} response(s) "
            "that could not be parsed as actions.)"
        )
    steps = "\n\n".join(rendered)

    expectations = ""
    rubric = prompt.rubric
    if rubric.expectations:
        expectations = "Expected outcomes:\n" + "\n".join(f"- {e}" for e in rubric.expectations) + "\n"
    if rubric.expected_success is not None:
        expected = "succeed" if rubric.expected_success else "fail"
        expectations += f"The task is expected to {expected}.\n"

    if prompt.mode == EvalMode.AGENT:
        return prompts.AGENT_JUDGE_TEMPLATE.format(
            goal=prompt.goal,
            step_count=len(transcript.tool_records),
            steps=steps,
            criteria=rubric.criteria,
            expectations=expectations,
        )
    count = len(transcript.tool_records)
    return prompts.STANDARD_JUDGE_TEMPLATE.format(
        step_count=count,
        plural="" if count == 1 else "s",
        goal=prompt.goal,
        steps=steps,
        criteria=rubric.criteria,
        expectations=expectations,
    )


class Judge:
    """Scores transcripts with a dedicated gateway/model pair."""

    def __init__(
        self,
        gateway: ModelGateway,
        model: str,
        call_timeout: Optional[float] = None,
    ) -> None:
        self.gateway = gateway
        self.model = model
        self.call_timeout = call_timeout

    @property
    def label(self) -> str:
        return f"{self.gateway.name}/{self.model}"

    async def evaluate(self, prompt: EvalPrompt, transcript: Transcript) -> Tuple[Verdict, TokenUsage]:
        """Return the verdict and the tokens the judge call consumed."""
        text = build_judge_prompt(prompt, transcript)
        call = self.gateway.run(text, self.model, system=prompts.JUDGE_SYSTEM_PROMPT)
        if self.call_timeout is not None:
            try:
                completion = await asyncio.wait_for(call, timeout=self.call_timeout)
            except asyncio.TimeoutError:
                raise GatewayTimeoutError(
                    f"Judge {self.label} did not answer within {self.call_timeout:g}s"
                ) from None
        else:
            completion = await call
        return parse_verdict(completion.text), completion.usage
