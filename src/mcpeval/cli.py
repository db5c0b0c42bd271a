"""CLI entry point for mcpeval."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import click

from mcpeval import __version__
from mcpeval.config import (
    API_KEY_ENV,
    DEFAULT_CONCURRENCY,
    DEFAULT_JUDGE_MODEL,
    DEFAULT_JUDGE_PROVIDER,
    RunConfig,
    api_keys_from_env,
    build_providers,
    parse_model_selection,
)
from mcpeval.errors import SchedulerConfigError
from mcpeval.loader import LoadError, load_prompts
from mcpeval.models import EvalPrompt, EvalSummary
from mcpeval.progress import ProgressReporter
from mcpeval.scheduler import EvalScheduler
from mcpeval.store import ResultStore
from mcpeval.toolhost import MCPToolHost


@click.group()
@click.version_option(version=__version__, prog_name="mcpeval")
def cli() -> None:
    """mcpeval — Evaluate LLM agents driving MCP tool servers."""


async def _run(config: RunConfig, prompts: List[EvalPrompt], progress: bool) -> EvalSummary:
    providers = build_providers(config.api_keys)
    store = ResultStore(config.results_dir)
    reporter = ProgressReporter() if progress else None

    async with MCPToolHost.connect(command=config.server_command, url=config.server_url) as host:
        scheduler = EvalScheduler(
            providers,
            host,
            selected_models=config.models,
            judge=config.judge,
            concurrency=config.concurrency,
            store=store,
            on_result=reporter.on_result if reporter else None,
            call_timeout=config.call_timeout,
            strict_references=config.strict_references,
        )
        if reporter:
            reporter.start(len(prompts) * len(scheduler.combinations()))
        try:
            return await scheduler.run_all(prompts)
        finally:
            if reporter:
                reporter.finish()


@cli.command()
@click.option("--prompts", "prompts_dir", default="eval/prompts", show_default=True,
              envvar="EVAL_PROMPTS_DIR", help="Directory (or file) of prompt definitions.")
@click.option("--results", "results_dir", default="eval/results", show_default=True,
              envvar="EVAL_RESULTS_DIR", help="Directory for result files.")
@click.option("--server-command", envvar="MCP_SERVER_COMMAND", default=None,
              help="Command that starts the MCP server (stdio).")
@click.option("--server-url", envvar="MCP_SERVER_URL", default=None,
              help="URL of a running MCP server (SSE).")
@click.option("--models", envvar="EVAL_MODELS", default=None,
              help='JSON map of provider to model(s), e.g. \'{"openai": ["gpt-4o"]}\'.')
@click.option("--concurrency", envvar="EVAL_CONCURRENCY", default=DEFAULT_CONCURRENCY,
              show_default=True, type=int, help="Evaluations run at once per window.")
@click.option("--judge-provider", envvar="EVAL_JUDGE_PROVIDER", default=DEFAULT_JUDGE_PROVIDER,
              show_default=True, help="Provider that scores transcripts.")
@click.option("--judge-model", envvar="EVAL_JUDGE_MODEL", default=DEFAULT_JUDGE_MODEL,
              show_default=True, help="Model that scores transcripts.")
@click.option("--timeout", envvar="EVAL_CALL_TIMEOUT", default=None, type=float,
              help="Per-call deadline in seconds for model and tool calls (default: none).")
@click.option("--strict-references", is_flag=True,
              help="Fail steps with unresolved step references instead of guessing defaults.")
@click.option("--id", "ids", multiple=True, help="Only run prompts with this id (repeatable).")
@click.option("--progress/--no-progress", default=True, show_default=True, help="Show a progress bar.")
@click.option("--verbose", "-v", is_flag=True, help="Log loop progress and show per-result details.")
def run(
    prompts_dir: str,
    results_dir: str,
    server_command: Optional[str],
    server_url: Optional[str],
    models: Optional[str],
    concurrency: int,
    judge_provider: str,
    judge_model: str,
    timeout: Optional[float],
    strict_references: bool,
    ids: tuple,
    progress: bool,
    verbose: bool,
) -> None:
    """Run all evaluations against every configured provider/model."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if concurrency < 1:
        click.echo("Error: --concurrency must be at least 1.", err=True)
        sys.exit(1)
    if timeout is not None and timeout <= 0:
        click.echo("Error: --timeout must be positive.", err=True)
        sys.exit(1)
    if not server_command and not server_url:
        click.echo("Error: Set --server-command (MCP_SERVER_COMMAND) or --server-url (MCP_SERVER_URL).",
                   err=True)
        sys.exit(1)

    try:
        prompts = load_prompts(prompts_dir)
    except LoadError as e:
        click.echo(f"Error loading prompts: {e}", err=True)
        sys.exit(1)

    if ids:
        id_set = set(ids)
        prompts = [p for p in prompts if p.id in id_set]
        if not prompts:
            click.echo(f"No prompts match ids {sorted(id_set)}.", err=True)
            sys.exit(1)

    try:
        selection = parse_model_selection(models)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    api_keys = api_keys_from_env()
    if not any(api_keys.values()):
        click.echo("Error: No valid API keys available. Set at least one of: "
                   + ", ".join(API_KEY_ENV.values()), err=True)
        sys.exit(1)

    config = RunConfig(
        prompts_dir=prompts_dir,
        results_dir=results_dir,
        server_command=server_command,
        server_url=server_url,
        api_keys=api_keys,
        models=selection,
        concurrency=concurrency,
        judge_provider=judge_provider,
        judge_model=judge_model,
        call_timeout=timeout,
        strict_references=strict_references,
    )

    try:
        summary = asyncio.run(_run(config, prompts, progress))
    except SchedulerConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error during run: {e}", err=True)
        sys.exit(1)

    _print_summary(summary, verbose)
    click.echo(f"Results saved to {results_dir}")

    if summary.failed > 0:
        sys.exit(1)


def _print_summary(summary: EvalSummary, verbose: bool) -> None:
    """Print a summary as a formatted table."""
    click.echo(f"\n{'='*72}")
    click.echo(f"Evaluation run  |  {summary.timestamp[:19]}")
    judge = summary.metadata.get("judge")
    if judge:
        click.echo(f"Judge: {judge['provider']}/{judge['model']}")
    click.echo(f"{'='*72}")

    for r in summary.results:
        status = click.style("PASS", fg="green") if r.validation.passed else click.style("FAIL", fg="red")
        click.echo(
            f"  {status}  {r.id:<28} {r.provider}/{r.model:<24} "
            f"score={r.validation.score:.2f}  steps={r.metrics.step_count}  {r.metrics.latency_ms}ms"
        )
        if verbose:
            scores = r.validation.agent_scores
            if scores is not None:
                click.echo(
                    f"         goal={scores.goal_achievement:.2f}  "
                    f"reasoning={scores.reasoning_quality:.2f}  path={scores.path_efficiency:.2f}"
                )
            if not r.validation.passed:
                click.echo(f"         reasoning: {r.validation.reasoning[:300]}")

    click.echo(f"\nTotal: {summary.total}  Passed: {summary.passed}  Failed: {summary.failed}  "
               f"Pass rate: {summary.pass_rate:.0%}")
    click.echo(f"Avg latency: {summary.avg_latency_ms:.0f}ms  Avg tool calls: {summary.avg_tool_calls:.1f}  "
               f"Avg tool tokens: {summary.avg_tool_tokens:.0f}")
    click.echo()


@cli.command()
@click.argument("summary_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--verbose", "-v", is_flag=True, help="Show per-result details.")
def show(summary_file: str, verbose: bool) -> None:
    """Print a stored summary file."""
    try:
        summary = ResultStore(Path(summary_file).parent).load_summary(summary_file)
    except (ValueError, KeyError, TypeError) as e:
        click.echo(f"Error: {summary_file} is not a valid summary file: {e}", err=True)
        sys.exit(1)
    _print_summary(summary, verbose)


@cli.command("list")
@click.option("--results", "results_dir", default="eval/results", show_default=True,
              envvar="EVAL_RESULTS_DIR", help="Directory for result files.")
@click.option("--limit", default=20, show_default=True, help="Max number of runs to show.")
def list_runs(results_dir: str, limit: int) -> None:
    """List past evaluation runs."""
    if limit <= 0:
        click.echo("Error: --limit must be positive.", err=True)
        sys.exit(1)

    store = ResultStore(results_dir)
    paths = store.list_summaries()[:limit]
    if not paths:
        click.echo("No runs found.")
        return

    click.echo(f"\n{'File':<48} {'Total':<7} {'Passed':<8} {'Rate':<7} {'Created'}")
    click.echo("-" * 90)
    for path in paths:
        try:
            s = store.load_summary(path)
        except (ValueError, KeyError, TypeError) as e:
            click.echo(f"Skipping {path.name}: not a valid summary file ({e})", err=True)
            continue
        click.echo(
            f"{path.name:<48} {s.total:<7} {s.passed:<8} {s.pass_rate:<7.0%} {s.timestamp[:19]}"
        )
    click.echo()
