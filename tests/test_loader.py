"""Tests for the prompt loader."""

import json
import textwrap

import pytest

from mcpeval.loader import LoadError, load_prompt, load_prompts, prompt_from_data
from mcpeval.models import EvalMode


@pytest.fixture
def prompt_dir(tmp_path):
    (tmp_path / "b_agent.yaml").write_text(textwrap.dedent("""\
        id: slow-services
        goal: Find the slowest service in the 'production' environment
        max_steps: 6
        rubric:
          criteria: Names the slowest service
          expected_success: true
          expectations:
            - mentions a service name
    """))
    (tmp_path / "a_scripted.json").write_text(json.dumps({
        "id": "columns-then-avg",
        "steps": [
            {"tool": "get_columns", "parameters": {"dataset": "frontend"}},
            {"tool": "run_query", "parameters": {"calculations": [
                {"op": "AVG", "column": "${{step:0.columns[0].name}}"}]}},
        ],
        "rubric": {"criteria": "Average is computed"},
    }, indent="\t"))
    (tmp_path / "notes.txt").write_text("ignored")
    return tmp_path


class TestLoadPrompts:
    def test_loads_sorted(self, prompt_dir):
        prompts = load_prompts(str(prompt_dir))
        assert [p.id for p in prompts] == ["columns-then-avg", "slow-services"]

    def test_scripted_prompt(self, prompt_dir):
        prompt = load_prompt(str(prompt_dir / "a_scripted.json"))
        assert prompt.mode == EvalMode.SCRIPTED
        assert prompt.steps[1].tool == "run_query"
        assert prompt.goal == ""

    def test_agent_prompt(self, prompt_dir):
        prompt = load_prompt(str(prompt_dir / "b_agent.yaml"))
        assert prompt.mode == EvalMode.AGENT
        assert prompt.max_steps == 6
        assert prompt.environment == "production"
        assert prompt.rubric.expected_success is True
        assert prompt.rubric.expectations == ["mentions a service name"]

    def test_single_file(self, prompt_dir):
        assert len(load_prompts(str(prompt_dir / "b_agent.yaml"))) == 1

    def test_missing_path(self, tmp_path):
        with pytest.raises(LoadError, match="not found"):
            load_prompts(str(tmp_path / "nope"))

    def test_empty_dir(self, tmp_path):
        with pytest.raises(LoadError, match="No prompt files"):
            load_prompts(str(tmp_path))

    def test_duplicate_ids(self, prompt_dir):
        (prompt_dir / "c.yaml").write_text("id: slow-services\ngoal: again\nrubric: {criteria: x}\n")
        with pytest.raises(LoadError, match="Duplicate prompt id"):
            load_prompts(str(prompt_dir))

    def test_invalid_yaml(self, tmp_path):
        p = tmp_path / "bad.yaml"
        p.write_text("id: [unclosed\n")
        with pytest.raises(LoadError, match="Invalid YAML"):
            load_prompt(str(p))

    def test_invalid_json(self, tmp_path):
        p = tmp_path / "bad.json"
        p.write_text("{nope")
        with pytest.raises(LoadError, match="Invalid JSON"):
            load_prompt(str(p))


class TestPromptFromData:
    def test_legacy_fields(self):
        prompt = prompt_from_data({
            "id": "legacy",
            "prompt": "Count errors",
            "conversationMode": True,
            "maxSteps": 4,
            "validation": {
                "prompt": "Reports an error count",
                "expectedOutcome": {"success": True, "criteria": ["a number"]},
            },
        })
        assert prompt.mode == EvalMode.CONVERSATION
        assert prompt.goal == "Count errors"
        assert prompt.max_steps == 4
        assert prompt.rubric.criteria == "Reports an error count"
        assert prompt.rubric.expectations == ["a number"]

    def test_single_tool_becomes_script(self):
        prompt = prompt_from_data({
            "id": "one",
            "tool": "get_columns",
            "parameters": {"dataset": "frontend"},
            "rubric": {"criteria": "lists columns"},
        })
        assert prompt.mode == EvalMode.SCRIPTED
        assert len(prompt.steps) == 1
        assert prompt.steps[0].parameters == {"dataset": "frontend"}

    def test_agent_mode_flag(self):
        prompt = prompt_from_data({"id": "x", "goal": "g", "agentMode": True, "rubric": {"criteria": "c"}})
        assert prompt.mode == EvalMode.AGENT

    @pytest.mark.parametrize("data,message", [
        ({"goal": "g", "rubric": {"criteria": "c"}}, "'id'"),
        ({"id": "x", "rubric": {"criteria": "c"}}, "'goal'"),
        ({"id": "x", "goal": "g"}, "'rubric'"),
        ({"id": "x", "goal": "g", "rubric": {}}, "'criteria'"),
        ({"id": "x", "goal": "g", "mode": "chat", "rubric": {"criteria": "c"}}, "invalid mode"),
        ({"id": "x", "mode": "scripted", "rubric": {"criteria": "c"}}, "need 'steps'"),
        ({"id": "x", "goal": "g", "max_steps": 0, "rubric": {"criteria": "c"}}, "positive integer"),
        ({"id": "x", "goal": "g", "allowed_tools": "echo", "rubric": {"criteria": "c"}}, "must be a list"),
        ({"id": "x", "steps": [{"parameters": {}}], "rubric": {"criteria": "c"}}, "step 0"),
    ])
    def test_validation_errors(self, data, message):
        with pytest.raises(LoadError, match=message):
            prompt_from_data(data)

    def test_not_a_mapping(self):
        with pytest.raises(LoadError, match="must be a mapping"):
            prompt_from_data(["id"])
