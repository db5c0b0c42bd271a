"""Run every prompt against every provider/model pair in bounded windows."""

from __future__ import annotations

import asyncio
import logging
import time
import warnings
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from mcpeval.errors import SchedulerConfigError
from mcpeval.judge import Judge
from mcpeval.loop import run_loop
from mcpeval.models import (
    EvalMetrics,
    EvalMode,
    EvalPrompt,
    EvalResult,
    EvalSummary,
    LoopState,
    TokenUsage,
    Transcript,
    Verdict,
)
from mcpeval.normalizer import ParameterNormalizer
from mcpeval.providers import ModelGateway
from mcpeval.resolver import StepResolver
from mcpeval.store import ResultStore
from mcpeval.strategies import strategy_for
from mcpeval.toolhost import ToolHost

logger = logging.getLogger(__name__)

ResultCallback = Callable[[EvalResult], None]


@dataclass(frozen=True)
class JudgeConfig:
    """Which provider/model scores transcripts."""
    provider: str
    model: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def summarize(results: List[EvalResult], metadata: Optional[Dict] = None) -> EvalSummary:
    """Aggregate results into an EvalSummary."""
    total = len(results)
    passed = sum(1 for r in results if r.validation.passed)

    def avg(values: Iterable[float]) -> float:
        return sum(values) / total if total else 0.0

    return EvalSummary(
        timestamp=_now(),
        total=total,
        passed=passed,
        failed=total - passed,
        pass_rate=passed / total if total else 0.0,
        avg_latency_ms=avg(r.metrics.latency_ms for r in results),
        avg_tool_calls=avg(r.metrics.tool_call_count for r in results),
        avg_step_count=avg(r.metrics.step_count for r in results),
        avg_tool_tokens=avg(r.metrics.token_usage.tool_total_tokens for r in results),
        results=results,
        metadata=metadata or {},
    )


class EvalScheduler:
    """Evaluates prompts across provider/model combinations.

    Within one combination, prompts run in windows of ``concurrency``
    evaluations; a window must finish before the next one starts. An
    exception inside one evaluation becomes a failed result and never
    aborts the run.
    """

    def __init__(
        self,
        providers: List[ModelGateway],
        host: ToolHost,
        *,
        selected_models: Optional[Dict[str, List[str]]] = None,
        judge: Optional[JudgeConfig] = None,
        concurrency: int = 2,
        store: Optional[ResultStore] = None,
        on_result: Optional[ResultCallback] = None,
        call_timeout: Optional[float] = None,
        strict_references: bool = False,
        normalizer: Optional[ParameterNormalizer] = None,
    ) -> None:
        self.providers = {p.name: p for p in providers}
        self.host = host
        self.selected_models = selected_models or {}
        self.judge = judge
        self.concurrency = concurrency
        self.store = store
        self.on_result = on_result
        self.call_timeout = call_timeout
        self.strict_references = strict_references
        self.normalizer = normalizer or ParameterNormalizer()
        self._judge_gateway: Optional[ModelGateway] = None

    def combinations(self) -> List[Tuple[ModelGateway, str]]:
        """Every runnable (provider, model) pair, in configuration order."""
        combos = []
        for name, provider in self.providers.items():
            models = self.selected_models.get(name) or provider.models[:1]
            for model in models:
                if not model:
                    logger.warning("No model name provided for provider: %s", name)
                    continue
                combos.append((provider, model))
        return combos

    def validate(self) -> List[Tuple[ModelGateway, str]]:
        """Check configuration before anything runs.

        Raises:
            SchedulerConfigError: If no provider/model pair is runnable or
                the concurrency window is invalid.
        """
        if self.concurrency < 1:
            raise SchedulerConfigError(f"concurrency must be >= 1, got {self.concurrency}")
        combos = self.combinations()
        if not combos:
            raise SchedulerConfigError(
                "No provider/model combination configured. "
                "Set an API key (e.g. OPENAI_API_KEY or ANTHROPIC_API_KEY) and select models."
            )

        self._judge_gateway = None
        if self.judge is not None:
            gateway = self.providers.get(self.judge.provider)
            if gateway is None:
                logger.warning(
                    "Configured judge provider %r not found, falling back to the tested provider",
                    self.judge.provider,
                )
            else:
                self._judge_gateway = gateway
                if gateway.models and self.judge.model not in gateway.models:
                    warnings.warn(
                        f"Judge model {self.judge.model!r} not in known models for "
                        f"{self.judge.provider}: {', '.join(gateway.models)}"
                    )
        return combos

    def _judge_for(self, provider: ModelGateway, model: str) -> Judge:
        if self._judge_gateway is not None and self.judge is not None:
            return Judge(self._judge_gateway, self.judge.model, self.call_timeout)
        return Judge(provider, model, self.call_timeout)

    async def run_evaluation(
        self, prompt: EvalPrompt, provider: ModelGateway, model: str
    ) -> EvalResult:
        """Run, judge and record one prompt. Never raises.

        On failure the result keeps whatever records were committed before
        the error and ends in ``LoopState.FAILED``.
        """
        start = time.time()
        transcript = Transcript()
        judge_usage = TokenUsage()
        error: Optional[str] = None
        try:
            strategy = strategy_for(prompt, provider, model, self.call_timeout)
            # Scripted prompts always play their whole script.
            max_steps = None if prompt.mode == EvalMode.SCRIPTED else prompt.max_steps
            await run_loop(
                strategy,
                self.host,
                max_steps=max_steps,
                resolver=StepResolver(strict=self.strict_references),
                normalizer=self.normalizer,
                environment=prompt.environment,
                allowed_tools=prompt.allowed_tools,
                call_timeout=self.call_timeout,
                transcript=transcript,
            )
            verdict, judge_usage = await self._judge_for(provider, model).evaluate(prompt, transcript)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.warning("Evaluation %s with %s/%s failed: %s", prompt.id, provider.name, model, error)
            transcript.state = LoopState.FAILED
            verdict = Verdict(
                passed=False,
                score=0.0,
                reasoning=f"Evaluation failed with error: {error}",
            )

        end = time.time()
        result = EvalResult(
            id=prompt.id,
            timestamp=_now(),
            prompt=prompt,
            provider=provider.name,
            model=model,
            records=transcript.records,
            validation=verdict,
            metrics=EvalMetrics(
                start_time=start,
                end_time=end,
                latency_ms=int((end - start) * 1000),
                token_usage=transcript.usage + judge_usage,
                tool_call_count=len(transcript.tool_records),
                step_count=transcript.steps_taken,
            ),
            state=transcript.state,
            diagnostics=transcript.diagnostics,
            error=error,
        )

        if self.store is not None:
            self.store.save_result(result)
        if self.on_result is not None:
            self.on_result(result)
        return result

    async def run_all(self, prompts: List[EvalPrompt]) -> EvalSummary:
        """Evaluate every prompt with every provider/model pair."""
        combos = self.validate()
        results: List[EvalResult] = []
        for provider, model in combos:
            logger.info("Running evaluations with provider: %s, model: %s", provider.name, model)
            for i in range(0, len(prompts), self.concurrency):
                window = prompts[i:i + self.concurrency]
                results.extend(await asyncio.gather(
                    *(self.run_evaluation(p, provider, model) for p in window)
                ))

        metadata: Dict = {
            "providers": list(dict.fromkeys(p.name for p, _ in combos)),
            "models": {},
            "concurrency": self.concurrency,
            "has_agent_metrics": any(r.prompt.mode == EvalMode.AGENT for r in results),
        }
        for provider, model in combos:
            metadata["models"].setdefault(provider.name, []).append(model)
        if self.judge is not None:
            metadata["judge"] = {"provider": self.judge.provider, "model": self.judge.model}

        summary = summarize(results, metadata)
        if self.store is not None:
            self.store.save_summary(summary)
        return summary
