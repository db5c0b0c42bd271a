"""Tests for data models."""

from mcpeval.models import (
    AgentScores,
    EvalMetrics,
    EvalMode,
    EvalPrompt,
    EvalResult,
    LoopState,
    RecordKind,
    Rubric,
    ScriptedStep,
    TokenUsage,
    ToolCallRecord,
    Transcript,
    Verdict,
    result_from_dict,
)


class TestTokenUsage:
    def test_add(self):
        total = TokenUsage(prompt_tokens=1, total_tokens=1) + TokenUsage(tool_total_tokens=5)
        assert total == TokenUsage(prompt_tokens=1, total_tokens=1, tool_total_tokens=5)

    def test_as_tool_usage(self):
        usage = TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15).as_tool_usage()
        assert usage.tool_prompt_tokens == 10
        assert usage.tool_total_tokens == 15
        assert usage.total_tokens == 0


class TestTranscript:
    def test_tool_records(self):
        transcript = Transcript(records=[
            ToolCallRecord(index=0, kind=RecordKind.TOOL, step=1, tool="a"),
            ToolCallRecord(index=1, kind=RecordKind.COMPLETE, step=2),
        ])
        assert [r.tool for r in transcript.tool_records] == ["a"]


class TestEvalResult:
    def test_to_dict_and_back(self):
        result = EvalResult(
            id="p",
            timestamp="t",
            prompt=EvalPrompt(
                id="p", goal="g", rubric=Rubric(criteria="c", expectations=["e"]),
                mode=EvalMode.SCRIPTED, steps=[ScriptedStep("echo", {"a": 1})],
            ),
            provider="openai",
            model="gpt-4o",
            records=[ToolCallRecord(index=0, kind=RecordKind.TOOL, step=1, tool="echo", response={"a": 1})],
            validation=Verdict(passed=True, score=0.9, reasoning="ok", agent_scores=AgentScores(1.0, 0.8, 0.9)),
            metrics=EvalMetrics(start_time=1.0, end_time=2.0, latency_ms=1000,
                                token_usage=TokenUsage(tool_total_tokens=3)),
            state=LoopState.STEP_LIMIT_REACHED,
        )
        data = result.to_dict()
        assert data["state"] == "step_limit_reached"
        assert data["prompt"]["mode"] == "scripted"
        assert data["records"][0]["kind"] == "tool"

        restored = result_from_dict(data)
        assert restored == result
