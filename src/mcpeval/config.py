"""Run configuration for mcpeval, read from CLI options or environment variables."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from mcpeval.providers import BaseProvider, get_provider
from mcpeval.scheduler import JudgeConfig

DEFAULT_MODELS: Dict[str, List[str]] = {
    "openai": ["gpt-4o"],
    "anthropic": ["claude-3-5-haiku-latest"],
}

API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

DEFAULT_JUDGE_PROVIDER = "anthropic"
DEFAULT_JUDGE_MODEL = "claude-3-5-haiku-latest"
DEFAULT_CONCURRENCY = 2


def parse_model_selection(raw: Optional[str]) -> Dict[str, List[str]]:
    """Parse ``EVAL_MODELS``: a JSON object mapping provider to a model or list of models.

    Raises:
        ValueError: If the value is not such a JSON object.
    """
    if not raw:
        return {k: list(v) for k, v in DEFAULT_MODELS.items()}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"EVAL_MODELS is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("EVAL_MODELS must be a JSON object of provider -> model(s)")
    selection = {}
    for provider, models in data.items():
        selection[provider] = [str(m) for m in models] if isinstance(models, list) else [str(models)]
    return selection


def build_providers(api_keys: Mapping[str, Optional[str]]) -> List[BaseProvider]:
    """Instantiate a provider for every non-empty API key."""
    return [get_provider(name, api_key=key) for name, key in api_keys.items() if key]


def api_keys_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Optional[str]]:
    """Read every known provider's API key; missing keys map to ``None``."""
    env = os.environ if environ is None else environ
    return {name: env.get(var) or None for name, var in API_KEY_ENV.items()}


@dataclass
class RunConfig:
    """Everything ``mcpeval run`` needs besides the prompts themselves.

    The CLI is the only builder: click options read the ``EVAL_*`` and
    ``MCP_*`` variables and ``api_keys_from_env`` reads the keys.
    """
    prompts_dir: str = "eval/prompts"
    results_dir: str = "eval/results"
    server_command: Optional[str] = None
    server_url: Optional[str] = None
    api_keys: Dict[str, Optional[str]] = field(default_factory=dict)
    models: Dict[str, List[str]] = field(default_factory=lambda: parse_model_selection(None))
    concurrency: int = DEFAULT_CONCURRENCY
    judge_provider: str = DEFAULT_JUDGE_PROVIDER
    judge_model: str = DEFAULT_JUDGE_MODEL
    call_timeout: Optional[float] = None
    strict_references: bool = False

    @property
    def judge(self) -> JudgeConfig:
        return JudgeConfig(provider=self.judge_provider, model=self.judge_model)
