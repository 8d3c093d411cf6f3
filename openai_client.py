"""Thin wrapper around the OpenAI Chat Completions API."""

from __future__ import annotations

import logging
from typing import Any

from openai import OpenAI

from models import Completion, ModelConfig, TokenUsage

LOGGER = logging.getLogger(__name__)


class OpenAIProvider:
    """`complete` capability backed by GPT models."""

    name = "openai"

    def __init__(self, api_key: str, client: Any | None = None) -> None:
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY is required for the OpenAI provider")
        self._client = client or OpenAI(api_key=api_key)

    def complete(self, system_prompt: str, user_prompt: str, config: ModelConfig) -> Completion:
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        LOGGER.debug("Calling OpenAI model=%s max_tokens=%s", config.model, config.max_output_tokens)
        response = self._client.chat.completions.create(
            model=config.model,
            temperature=config.temperature,
            max_completion_tokens=config.max_output_tokens,
            messages=messages,
        )

        content = response.choices[0].message.content if response.choices else None
        usage = response.usage
        return Completion(
            text=content or "",
            usage=TokenUsage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            ),
        )
