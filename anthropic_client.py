"""Thin wrapper around the Anthropic Messages API."""

from __future__ import annotations

import logging
from typing import Any

import anthropic

from models import Completion, ModelConfig, TokenUsage

LOGGER = logging.getLogger(__name__)


class AnthropicProvider:
    """`complete` capability backed by Claude models."""

    name = "anthropic"

    def __init__(self, api_key: str, client: Any | None = None) -> None:
        if not api_key:
            raise RuntimeError("ANTHROPIC_API_KEY is required for the Anthropic provider")
        self._client = client or anthropic.Anthropic(api_key=api_key)

    def complete(self, system_prompt: str, user_prompt: str, config: ModelConfig) -> Completion:
        """Send one system+user exchange and return the reply text and usage.

        The system prompt goes through the dedicated system= parameter and is
        omitted entirely when empty.
        """
        kwargs: dict[str, Any] = {
            "model": config.model,
            "max_tokens": config.max_output_tokens,
            "temperature": config.temperature,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        LOGGER.debug("Calling Claude model=%s max_tokens=%s", config.model, config.max_output_tokens)
        response = self._client.messages.create(**kwargs)

        text = ""
        for block in response.content or []:
            if getattr(block, "type", None) == "text":
                text = block.text
                break

        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
        )
        return Completion(text=text, usage=usage)
