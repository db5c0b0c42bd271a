"""The execute/record/continue loop shared by all decision strategies."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from mcpeval.errors import (
    ToolInvocationError,
    ToolTimeoutError,
    UnresolvedReferenceError,
)
from mcpeval.models import (
    LoopState,
    ParseDiagnostic,
    RecordKind,
    ToolCallRecord,
    Transcript,
)
from mcpeval.normalizer import ParameterNormalizer
from mcpeval.parser import ParseFailure
from mcpeval.resolver import StepResolver, StepResultTable
from mcpeval.strategies import Action, Complete, DecisionStrategy
from mcpeval.toolhost import ToolHost

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _invoke(
    host: ToolHost, tool: str, parameters: Dict[str, Any], timeout: Optional[float]
) -> Any:
    if timeout is None:
        return await host.invoke(tool, parameters)
    try:
        return await asyncio.wait_for(host.invoke(tool, parameters), timeout=timeout)
    except asyncio.TimeoutError:
        raise ToolTimeoutError(tool, timeout) from None


async def run_loop(
    strategy: DecisionStrategy,
    host: ToolHost,
    *,
    max_steps: Optional[int] = None,
    resolver: Optional[StepResolver] = None,
    normalizer: Optional[ParameterNormalizer] = None,
    environment: Optional[str] = None,
    allowed_tools: Optional[List[str]] = None,
    call_timeout: Optional[float] = None,
    transcript: Optional[Transcript] = None,
) -> Transcript:
    """Drive ``strategy`` against ``host`` until it completes or the budget runs out.

    Each iteration obtains one decision. A parse failure becomes a
    diagnostic plus guidance and costs one step; a completion appends a
    terminal record; an action is resolved, normalized, invoked and
    recorded. Tool errors are recorded, never raised. Gateway errors
    propagate to the caller; pass in ``transcript`` to keep the records
    committed before such an error.
    """
    budget = max_steps if max_steps is not None else strategy.default_max_steps
    resolver = resolver or StepResolver()
    normalizer = normalizer or ParameterNormalizer()
    transcript = transcript if transcript is not None else Transcript()
    table: StepResultTable = {}

    capabilities = await host.list_capabilities()
    if allowed_tools is not None:
        capabilities = [c for c in capabilities if c.name in allowed_tools]
    await strategy.prepare(capabilities)

    step = 0
    while True:
        step += 1
        if step > budget:
            transcript.records.append(ToolCallRecord(
                index=len(transcript.records),
                kind=RecordKind.STEP_LIMIT,
                step=step,
                error=f"Maximum steps reached ({budget})",
                started_at=_now(),
                ended_at=_now(),
            ))
            transcript.state = LoopState.STEP_LIMIT_REACHED
            logger.info("Step limit reached (%d)", budget)
            break

        transcript.steps_taken = step
        transcript.state = LoopState.ACTING
        turn = await strategy.decide(step)
        transcript.usage = transcript.usage + turn.usage
        decision = turn.decision

        if isinstance(decision, ParseFailure):
            transcript.state = LoopState.PARSE_FAIL
            logger.info("[Step %d] Unparseable response: %s", step, decision.message)
            transcript.diagnostics.append(
                ParseDiagnostic(step=step, message=decision.diagnostic, raw_text=turn.raw_text)
            )
            strategy.on_parse_failure(step, decision)
            continue

        transcript.state = LoopState.PARSE_OK
        if isinstance(decision, Complete):
            transcript.records.append(ToolCallRecord(
                index=len(transcript.records),
                kind=RecordKind.COMPLETE,
                step=step,
                thought=decision.thought,
                plan=decision.plan,
                reasoning=decision.reasoning,
                summary=decision.summary,
                started_at=_now(),
                ended_at=_now(),
            ))
            transcript.summary = decision.summary
            transcript.state = LoopState.DONE
            logger.info("[Step %d] Task complete", step)
            break

        transcript.state = LoopState.EXECUTING_TOOL
        record = await _execute(
            decision, step, len(transcript.records), host, table,
            resolver, normalizer, environment, allowed_tools, call_timeout,
        )
        transcript.records.append(record)
        strategy.on_record(record)

    return transcript


async def _execute(
    action: Action,
    step: int,
    index: int,
    host: ToolHost,
    table: StepResultTable,
    resolver: StepResolver,
    normalizer: ParameterNormalizer,
    environment: Optional[str],
    allowed_tools: Optional[List[str]],
    call_timeout: Optional[float],
) -> ToolCallRecord:
    record = ToolCallRecord(
        index=index,
        kind=RecordKind.TOOL,
        step=step,
        tool=action.tool,
        thought=action.thought,
        plan=action.plan,
        reasoning=action.reasoning,
        started_at=_now(),
    )
    start = time.perf_counter()
    try:
        resolved = resolver.resolve(action.parameters, table)
        record.parameters = normalizer.normalize(action.tool, resolved, environment)
        if allowed_tools is not None and action.tool not in allowed_tools:
            raise ToolInvocationError(action.tool, "tool is not in the allowed tool list")
        logger.info("[Step %d] Calling tool %s", step, action.tool)
        logger.debug("[Step %d] Parameters: %s", step, record.parameters)
        record.response = await _invoke(host, action.tool, record.parameters, call_timeout)
        table[index] = record.response
    except UnresolvedReferenceError as e:
        record.parameters = record.parameters or action.parameters
        record.error = str(e)
        record.error_kind = "unresolved_reference"
    except ToolInvocationError as e:
        record.error = e.message
        record.error_kind = e.kind
    except Exception as e:
        record.error = str(e) or type(e).__name__
        record.error_kind = "error"
    if record.error is not None:
        logger.info("[Step %d] Tool %s failed: %s", step, action.tool, record.error)
    record.ended_at = _now()
    record.latency_ms = int((time.perf_counter() - start) * 1000)
    return record
