"""Prompt loader for mcpeval (JSON or YAML files)."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from mcpeval.errors import MCPEvalError
from mcpeval.models import EvalMode, EvalPrompt, Rubric, ScriptedStep

PROMPT_SUFFIXES = {".json", ".yaml", ".yml"}

_ENVIRONMENT_RE = re.compile(r"""['"]([^'"]+?)['"] environment""")


class LoadError(MCPEvalError):
    """Raised when a prompt file cannot be loaded or is invalid."""


def _get(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _parse_steps(raw: Any, where: str) -> List[ScriptedStep]:
    if not isinstance(raw, list):
        raise LoadError(f"{where}: 'steps' must be a list")
    steps = []
    for i, step in enumerate(raw):
        if not isinstance(step, dict) or not step.get("tool"):
            raise LoadError(f"{where}: step {i} must be a mapping with a 'tool'")
        params = step.get("parameters") or {}
        if not isinstance(params, dict):
            raise LoadError(f"{where}: step {i} 'parameters' must be a mapping")
        steps.append(ScriptedStep(tool=step["tool"], parameters=params))
    return steps


def _parse_rubric(data: Dict[str, Any], where: str) -> Rubric:
    rubric = data.get("rubric")
    if isinstance(rubric, dict):
        if "criteria" not in rubric:
            raise LoadError(f"{where}: rubric missing required field: 'criteria'")
        return Rubric(
            criteria=str(rubric["criteria"]),
            expected_success=_get(rubric, "expected_success", "expectedSuccess"),
            expectations=list(rubric.get("expectations") or []),
        )

    # Accept the older {"validation": {"prompt": ..., "expectedOutcome": {...}}} shape.
    validation = data.get("validation")
    if isinstance(validation, dict) and "prompt" in validation:
        outcome = _get(validation, "expectedOutcome", "expected_outcome", default={})
        return Rubric(
            criteria=str(validation["prompt"]),
            expected_success=outcome.get("success"),
            expectations=list(outcome.get("criteria") or []),
        )
    raise LoadError(f"{where}: missing required field: 'rubric'")


def _infer_mode(data: Dict[str, Any], steps: List[ScriptedStep], where: str) -> EvalMode:
    if "mode" in data:
        try:
            return EvalMode(data["mode"])
        except ValueError:
            valid = ", ".join(m.value for m in EvalMode)
            raise LoadError(f"{where}: invalid mode '{data['mode']}'. Valid modes: {valid}") from None
    if _get(data, "agentMode", "agent_mode"):
        return EvalMode.AGENT
    if _get(data, "conversationMode", "conversation_mode"):
        return EvalMode.CONVERSATION
    if steps:
        return EvalMode.SCRIPTED
    return EvalMode.AGENT


def prompt_from_data(data: Any, where: str = "<data>") -> EvalPrompt:
    """Validate one decoded prompt mapping and build an EvalPrompt."""
    if not isinstance(data, dict):
        raise LoadError(f"{where}: prompt must be a mapping, got {type(data).__name__}")
    if "id" not in data:
        raise LoadError(f"{where}: missing required field: 'id'")

    steps: List[ScriptedStep] = []
    if "steps" in data and data["steps"]:
        steps = _parse_steps(data["steps"], where)
    elif data.get("tool"):
        # Single tool call: a one-step script.
        steps = [ScriptedStep(tool=data["tool"], parameters=data.get("parameters") or {})]

    mode = _infer_mode(data, steps, where)
    if mode == EvalMode.SCRIPTED and not steps:
        raise LoadError(f"{where}: scripted prompts need 'steps' or a 'tool'")

    goal = _get(data, "goal", "prompt", default="")
    if mode != EvalMode.SCRIPTED and not goal:
        raise LoadError(f"{where}: missing required field: 'goal'")

    max_steps = _get(data, "max_steps", "maxSteps")
    if max_steps is not None and (not isinstance(max_steps, int) or max_steps < 1):
        raise LoadError(f"{where}: 'max_steps' must be a positive integer")

    allowed = _get(data, "allowed_tools", "allowedTools")
    if allowed is not None and not isinstance(allowed, list):
        raise LoadError(f"{where}: 'allowed_tools' must be a list")

    environment: Optional[str] = data.get("environment")
    if environment is None:
        match = _ENVIRONMENT_RE.search(goal)
        environment = match.group(1) if match else None

    return EvalPrompt(
        id=str(data["id"]),
        goal=goal,
        rubric=_parse_rubric(data, where),
        mode=mode,
        name=data.get("name", ""),
        description=data.get("description", ""),
        context=_get(data, "context", "initialContext", "initial_context"),
        steps=steps,
        allowed_tools=allowed,
        max_steps=max_steps,
        environment=environment,
    )


def load_prompt(path: str) -> EvalPrompt:
    """Load a single EvalPrompt from a JSON or YAML file.

    Raises:
        LoadError: If the file is missing, not decodable, or fails validation.
    """
    filepath = Path(path)
    if not filepath.exists():
        raise LoadError(f"Prompt file not found: {path}")
    try:
        with open(filepath) as f:
            if filepath.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except json.JSONDecodeError as e:
        raise LoadError(f"Invalid JSON in {path}: {e}") from e
    except yaml.YAMLError as e:
        raise LoadError(f"Invalid YAML in {path}: {e}") from e
    return prompt_from_data(data, where=filepath.name)


def load_prompts(path: str) -> List[EvalPrompt]:
    """Load every prompt file in a directory (or a single file), sorted by name."""
    root = Path(path)
    if not root.exists():
        raise LoadError(f"Prompts path not found: {path}")
    if root.is_file():
        files = [root]
    else:
        files = sorted(p for p in root.iterdir() if p.suffix in PROMPT_SUFFIXES)
    if not files:
        raise LoadError(f"No prompt files (.json, .yaml, .yml) found in {path}")

    prompts = [load_prompt(str(f)) for f in files]
    seen: Dict[str, str] = {}
    for prompt, f in zip(prompts, files):
        if prompt.id in seen:
            raise LoadError(f"Duplicate prompt id '{prompt.id}' in {f.name} and {seen[prompt.id]}")
        seen[prompt.id] = f.name
    return prompts
