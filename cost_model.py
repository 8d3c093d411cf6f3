"""Token pricing and per-run cost accounting."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from models import TokenUsage

LOGGER = logging.getLogger(__name__)

# USD per 1M tokens.
MODEL_PRICING: dict[str, dict[str, float]] = {
    # OpenAI
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4-turbo": {"input": 10.00, "output": 30.00},
    "gpt-3.5-turbo": {"input": 0.50, "output": 1.50},
    # Anthropic
    "claude-sonnet-4": {"input": 3.00, "output": 15.00},
    "claude-sonnet-3.5": {"input": 3.00, "output": 15.00},
    "claude-haiku-3.5": {"input": 0.80, "output": 4.00},
    "claude-opus-3": {"input": 15.00, "output": 75.00},
    # Embeddings
    "text-embedding-3-small": {"input": 0.02, "output": 0.02},
    "text-embedding-3-large": {"input": 0.13, "output": 0.13},
    "text-embedding-ada-002": {"input": 0.10, "output": 0.10},
}

# Blended mid-tier rate for models missing from the table.
FALLBACK_PRICING: dict[str, float] = {"input": 1.00, "output": 3.00}

CHARS_PER_TOKEN = 4

# Per-bookmark estimate: system prompt overhead and typical completion sizes.
BASE_PROMPT_TOKENS = 200
CATEGORY_OUTPUT_TOKENS = 50
DESCRIPTIVE_OUTPUT_TOKENS = 150

_VERSION_SUFFIX_RE = re.compile(r"-(?:\d{4}-\d{2}-\d{2}|\d{8}|latest|preview)$")


def normalize_model_name(model: str) -> str:
    """Map a provider model id onto a stable MODEL_PRICING key.

    Date/version suffixes are stripped first (gpt-4o-2024-08-06 -> gpt-4o),
    then family aliases are applied (claude-3-5-sonnet-20241022 ->
    claude-sonnet-3.5). Unrecognized names are returned stripped.
    """
    name = model.strip().lower()
    while True:
        stripped = _VERSION_SUFFIX_RE.sub("", name)
        if stripped == name:
            break
        name = stripped

    if name in MODEL_PRICING:
        return name

    if "sonnet" in name:
        if "3.5" in name or "3-5" in name:
            return "claude-sonnet-3.5"
        return "claude-sonnet-4"
    if "haiku" in name:
        return "claude-haiku-3.5"
    if "opus" in name:
        return "claude-opus-3"

    if "gpt-4o-mini" in name:
        return "gpt-4o-mini"
    if "gpt-4o" in name:
        return "gpt-4o"
    if "gpt-4-turbo" in name:
        return "gpt-4-turbo"
    if "gpt-3.5-turbo" in name:
        return "gpt-3.5-turbo"

    return name


def get_model_pricing(model: str) -> dict[str, float] | None:
    return MODEL_PRICING.get(normalize_model_name(model))


def calculate_cost(model: str, usage: TokenUsage) -> float:
    """Price one call in USD. Never negative; unknown models use FALLBACK_PRICING."""
    pricing = get_model_pricing(model)
    if pricing is None:
        LOGGER.warning(
            "Unknown model pricing for %s; using fallback rate input=%s output=%s per 1M tokens",
            model,
            FALLBACK_PRICING["input"],
            FALLBACK_PRICING["output"],
        )
        pricing = FALLBACK_PRICING

    prompt_tokens = max(0, usage.prompt_tokens)
    completion_tokens = max(0, usage.completion_tokens)
    return (prompt_tokens * pricing["input"] + completion_tokens * pricing["output"]) / 1_000_000


def estimate_tokens(text: str) -> int:
    """Rough token count at ~4 characters per token."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_enrichment_cost(
    content_length: int,
    tasks: Iterable[str],
    category_model: str = "gpt-4o-mini",
    intent_model: str = "gpt-4o",
) -> float:
    """Rough USD cost of running the given tasks over one bookmark.

    category is priced on category_model with a short completion; intent and
    context both use intent_model with a longer one. Other task names cost
    nothing.
    """
    prompt_tokens = BASE_PROMPT_TOKENS + math.ceil(max(0, content_length) / CHARS_PER_TOKEN)
    total = 0.0
    for task in tasks:
        if task == "category":
            total += calculate_cost(category_model, TokenUsage(prompt_tokens, CATEGORY_OUTPUT_TOKENS))
        elif task in ("intent", "context"):
            total += calculate_cost(intent_model, TokenUsage(prompt_tokens, DESCRIPTIVE_OUTPUT_TOKENS))
    return total


def format_cost(cost: float) -> str:
    if cost < 0.01:
        return f"${cost:.4f}"
    return f"${cost:.2f}"


@dataclass
class CostTracker:
    """Running cost/token totals for one pipeline invocation.

    Build a fresh tracker per run; instances are never shared between runs.
    """

    total_cost: float = 0.0
    total_tokens: int = 0
    call_count: int = 0
    _cost_by_model: dict[str, float] = field(default_factory=dict)
    _tokens_by_model: dict[str, int] = field(default_factory=dict)

    def record(self, model: str, usage: TokenUsage, cost: float) -> None:
        self.total_cost += cost
        self.total_tokens += usage.total_tokens
        self.call_count += 1
        self._cost_by_model[model] = self._cost_by_model.get(model, 0.0) + cost
        self._tokens_by_model[model] = self._tokens_by_model.get(model, 0) + usage.total_tokens

    def cost_by_model(self) -> dict[str, float]:
        return dict(self._cost_by_model)

    def tokens_by_model(self) -> dict[str, int]:
        return dict(self._tokens_by_model)

    def summary(self) -> dict[str, Any]:
        return {
            "total_cost": self.total_cost,
            "total_tokens": self.total_tokens,
            "call_count": self.call_count,
            "average_cost_per_call": self.total_cost / self.call_count if self.call_count else 0.0,
            "cost_by_model": self.cost_by_model(),
            "tokens_by_model": self.tokens_by_model(),
        }
