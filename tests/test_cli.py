"""Tests for the CLI module."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from mcpeval.cli import cli
from mcpeval.scheduler import summarize
from mcpeval.store import ResultStore
from mcpeval.toolhost import MCPToolHost
from tests.helpers.fakes import FakeGateway, data_host


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def prompts_dir(tmp_path):
    d = tmp_path / "prompts"
    d.mkdir()
    (d / "echo.json").write_text(json.dumps({
        "id": "echo-tag",
        "steps": [{"tool": "echo", "parameters": {"tag": "x"}}],
        "rubric": {"criteria": "Echo returns the tag"},
    }))
    return d


@pytest.fixture
def clean_env(monkeypatch):
    for var in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "EVAL_MODELS", "MCP_SERVER_COMMAND",
                "MCP_SERVER_URL", "EVAL_CONCURRENCY", "EVAL_CALL_TIMEOUT"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


def _fake_connect(host):
    @asynccontextmanager
    async def connect(command=None, url=None, env=None):
        yield host
    return connect


def _invoke(runner, prompts_dir, results_dir, gateway, *extra):
    with patch.object(MCPToolHost, "connect", _fake_connect(data_host())), \
         patch("mcpeval.cli.build_providers", return_value=[gateway]):
        return runner.invoke(cli, [
            "run", "--prompts", str(prompts_dir), "--results", str(results_dir),
            "--server-command", "node server.js", "--no-progress", *extra,
        ])


class TestRun:
    def test_all_pass(self, runner, prompts_dir, tmp_path, clean_env):
        result = _invoke(runner, prompts_dir, tmp_path / "results", FakeGateway())
        assert result.exit_code == 0, result.output
        assert "PASS" in result.output
        assert "echo-tag" in result.output
        assert "Passed: 1" in result.output
        assert len(ResultStore(tmp_path / "results").list_summaries()) == 1

    def test_failure_exit_code(self, runner, prompts_dir, tmp_path, clean_env):
        gateway = FakeGateway(judge_reply="SCORE: 0.1\nPASSED: false\nREASONING: wrong tag")
        result = _invoke(runner, prompts_dir, tmp_path / "results", gateway, "-v")
        assert result.exit_code == 1
        assert "FAIL" in result.output
        assert "wrong tag" in result.output

    def test_requires_server(self, runner, prompts_dir, clean_env):
        result = runner.invoke(cli, ["run", "--prompts", str(prompts_dir)])
        assert result.exit_code == 1
        assert "MCP_SERVER_COMMAND" in result.output

    def test_requires_api_key(self, runner, prompts_dir, clean_env, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY")
        result = runner.invoke(cli, ["run", "--prompts", str(prompts_dir), "--server-url", "http://x/sse"])
        assert result.exit_code == 1
        assert "No valid API keys" in result.output

    def test_bad_prompts(self, runner, tmp_path, clean_env):
        result = runner.invoke(cli, ["run", "--prompts", str(tmp_path / "none"), "--server-url", "http://x"])
        assert result.exit_code == 1
        assert "Error loading prompts" in result.output

    def test_bad_models(self, runner, prompts_dir, clean_env):
        result = runner.invoke(cli, ["run", "--prompts", str(prompts_dir), "--server-url", "http://x",
                                     "--models", "gpt-4o"])
        assert result.exit_code == 1
        assert "EVAL_MODELS" in result.output

    def test_bad_concurrency(self, runner, prompts_dir, clean_env):
        result = runner.invoke(cli, ["run", "--prompts", str(prompts_dir), "--server-url", "http://x",
                                     "--concurrency", "0"])
        assert result.exit_code == 1

    def test_id_filter(self, runner, prompts_dir, tmp_path, clean_env):
        result = _invoke(runner, prompts_dir, tmp_path / "results", FakeGateway(), "--id", "other")
        assert result.exit_code == 1
        assert "No prompts match" in result.output

    def test_api_keys_from_environment(self, runner, prompts_dir, tmp_path, clean_env, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "ak-test")
        with patch.object(MCPToolHost, "connect", _fake_connect(data_host())), \
             patch("mcpeval.cli.build_providers", return_value=[FakeGateway()]) as build:
            result = runner.invoke(cli, [
                "run", "--prompts", str(prompts_dir), "--results", str(tmp_path / "results"),
                "--server-command", "node server.js", "--no-progress",
            ])
        assert result.exit_code == 0
        build.assert_called_once_with({"openai": "sk-test", "anthropic": "ak-test"})


class TestShowAndList:
    def _summary_file(self, tmp_path):
        return ResultStore(tmp_path).save_summary(summarize([], {"judge": {"provider": "openai", "model": "gpt-4o"}}))

    def test_show(self, runner, tmp_path):
        path = self._summary_file(tmp_path)
        result = runner.invoke(cli, ["show", str(path)])
        assert result.exit_code == 0
        assert "Judge: openai/gpt-4o" in result.output
        assert "Total: 0" in result.output

    def test_list(self, runner, tmp_path):
        path = self._summary_file(tmp_path)
        result = runner.invoke(cli, ["list", "--results", str(tmp_path)])
        assert result.exit_code == 0
        assert path.name in result.output

    @pytest.mark.parametrize("content", ["not json", "{}", "[1, 2]"])
    def test_list_skips_invalid_summary(self, runner, tmp_path, content):
        path = self._summary_file(tmp_path)
        (tmp_path / "summary-0000.json").write_text(content)
        result = runner.invoke(cli, ["list", "--results", str(tmp_path)])
        assert result.exit_code == 0
        assert path.name in result.output
        assert "Skipping summary-0000.json" in result.output

    def test_list_empty(self, runner, tmp_path):
        result = runner.invoke(cli, ["list", "--results", str(tmp_path / "none")])
        assert "No runs found" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert "mcpeval" in result.output
