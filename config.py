"""Environment-driven settings for the enrichment pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MODEL_INTENT = "gpt-4o"
DEFAULT_MODEL_CONTEXT = "gpt-4o"
DEFAULT_MODEL_CATEGORY = "gpt-4o-mini"
DEFAULT_ANTHROPIC_FALLBACK_MODEL = "claude-3-5-sonnet-latest"
DEFAULT_DATA_DIR = "data"


@dataclass(frozen=True, slots=True)
class LLMSettings:
    """Provider credentials and the task -> model mapping.

    Model names are configuration, not code: each task reads its own
    ENRICHMENT_MODEL_* variable and falls back to the documented default.
    """

    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    model_intent: str = DEFAULT_MODEL_INTENT
    model_context: str = DEFAULT_MODEL_CONTEXT
    model_category: str = DEFAULT_MODEL_CATEGORY
    anthropic_fallback_model: str = DEFAULT_ANTHROPIC_FALLBACK_MODEL

    def model_for(self, task: str) -> str:
        if task == "category":
            return self.model_category
        if task == "context":
            return self.model_context
        return self.model_intent

    @property
    def has_credentials(self) -> bool:
        return bool(self.openai_api_key or self.anthropic_api_key)


def load_llm_settings() -> LLMSettings:
    """Read LLM settings from the process environment."""
    return LLMSettings(
        openai_api_key=_env("OPENAI_API_KEY"),
        anthropic_api_key=_env("ANTHROPIC_API_KEY"),
        model_intent=_env("ENRICHMENT_MODEL_INTENT") or DEFAULT_MODEL_INTENT,
        model_context=_env("ENRICHMENT_MODEL_CONTEXT") or DEFAULT_MODEL_CONTEXT,
        model_category=_env("ENRICHMENT_MODEL_CATEGORY") or DEFAULT_MODEL_CATEGORY,
        anthropic_fallback_model=(
            _env("ANTHROPIC_FALLBACK_MODEL") or DEFAULT_ANTHROPIC_FALLBACK_MODEL
        ),
    )


def data_dir() -> str:
    return _env("ENRICHMENT_DATA_DIR") or DEFAULT_DATA_DIR


def _env(name: str) -> str | None:
    value = os.getenv(name)
    return value.strip() if value and value.strip() else None
