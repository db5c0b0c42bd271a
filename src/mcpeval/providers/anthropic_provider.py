"""Anthropic messages-API gateway."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from mcpeval.errors import GatewayError
from mcpeval.models import TokenUsage
from mcpeval.providers import BaseProvider, Completion

logger = logging.getLogger(__name__)

API_VERSION = "2023-06-01"


class AnthropicProvider(BaseProvider):
    """Send prompts to the Anthropic ``/v1/messages`` endpoint."""

    name = "anthropic"
    models = ["claude-3-5-haiku-latest", "claude-3-7-sonnet-latest", "claude-3-opus-latest"]

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.anthropic.com/v1",
        max_tokens: int = 1000,
        temperature: float = 0.1,
        http_timeout: float = 60.0,
    ) -> None:
        super().__init__()
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.http_timeout = http_timeout

    async def _complete(self, prompt: str, model: str, system: Optional[str]) -> Completion:
        payload = {
            "model": model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system

        logger.debug("Anthropic request: model=%s, %d chars", model, len(prompt))
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    f"{self.base_url}/messages",
                    headers={
                        "x-api-key": self.api_key,
                        "anthropic-version": API_VERSION,
                    },
                    json=payload,
                    timeout=self.http_timeout,
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise GatewayError(f"Anthropic API error: {e}") from e

        try:
            body = resp.json()
            text = "\n".join(
                block["text"] for block in body["content"] if block.get("type") == "text"
            )
        except (ValueError, KeyError, TypeError) as e:
            raise GatewayError(f"Unexpected Anthropic response: {e}") from e

        usage = body.get("usage") or {}
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)
        return Completion(
            text=text,
            usage=TokenUsage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
        )
