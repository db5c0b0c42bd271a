"""OpenAI chat-completions gateway."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from mcpeval.errors import GatewayError
from mcpeval.models import TokenUsage
from mcpeval.providers import BaseProvider, Completion

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseProvider):
    """Send prompts to an OpenAI-compatible ``/chat/completions`` endpoint."""

    name = "openai"
    models = ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"]

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.1,
        http_timeout: float = 60.0,
    ) -> None:
        super().__init__()
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.http_timeout = http_timeout

    async def _complete(self, prompt: str, model: str, system: Optional[str]) -> Completion:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        logger.debug("OpenAI request: model=%s, %d chars", model, len(prompt))
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "model": model,
                        "messages": messages,
                        "temperature": self.temperature,
                    },
                    timeout=self.http_timeout,
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise GatewayError(f"OpenAI API error: {e}") from e

        try:
            body = resp.json()
            content = body["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GatewayError(f"Unexpected OpenAI response: {e}") from e

        usage = body.get("usage") or {}
        prompt_tokens = usage.get("prompt_tokens", 0)
        completion_tokens = usage.get("completion_tokens", 0)
        return Completion(
            text=content,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )
