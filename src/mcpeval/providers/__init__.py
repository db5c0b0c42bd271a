"""Model gateway protocol and provider registry for mcpeval."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from mcpeval.models import TokenUsage


@dataclass
class Completion:
    """One full text result plus the tokens it consumed."""
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)


class ModelGateway(Protocol):
    """Protocol every model gateway must satisfy."""

    name: str
    models: List[str]

    async def run(self, prompt: str, model: str, *, system: Optional[str] = None) -> Completion: ...

    def token_usage(self) -> TokenUsage: ...


class BaseProvider(ABC):
    """Shared bookkeeping for HTTP-backed providers.

    ``run`` returns usage with every completion; the running total kept
    here is only updated on the event loop thread between awaits.
    """

    name: str = ""
    models: List[str] = []

    def __init__(self) -> None:
        self._usage = TokenUsage()

    async def run(self, prompt: str, model: str, *, system: Optional[str] = None) -> Completion:
        completion = await self._complete(prompt, model, system)
        self._usage = self._usage + completion.usage
        return completion

    def token_usage(self) -> TokenUsage:
        return self._usage

    @abstractmethod
    async def _complete(self, prompt: str, model: str, system: Optional[str]) -> Completion: ...


_PROVIDER_REGISTRY: Dict[str, type] = {}


def _ensure_registry() -> None:
    if _PROVIDER_REGISTRY:
        return
    from mcpeval.providers.anthropic_provider import AnthropicProvider
    from mcpeval.providers.openai_provider import OpenAIProvider

    _PROVIDER_REGISTRY.update({
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
    })


def available_providers() -> List[str]:
    _ensure_registry()
    return sorted(_PROVIDER_REGISTRY)


def get_provider(name: str, **config) -> BaseProvider:
    """Get a provider instance by name."""
    _ensure_registry()
    if name not in _PROVIDER_REGISTRY:
        raise ValueError(f"Unknown provider: {name!r}. Available: {sorted(_PROVIDER_REGISTRY)}")
    return _PROVIDER_REGISTRY[name](**config)
