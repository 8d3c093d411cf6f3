"""Category task: classify a bookmark as Inspo, Leads/Markets or Tutorials."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from config import DEFAULT_MODEL_CATEGORY
from heuristics import FALLBACK_CATEGORY_CONFIDENCE, guess_category
from llm_client import LLMClient
from models import (
    CATEGORIES,
    DEFAULT_CATEGORY,
    BatchItemOutcome,
    Bookmark,
    CategoryResult,
    ContextResult,
    IntentResult,
    TaskResult,
)
from response_parsing import as_confidence, as_text, parse_json_object
from task_support import estimate_task_cost, run_sequential_batch

LOGGER = logging.getLogger(__name__)

BATCH_DELAY_SECONDS = 0.1
PROMPT_OVERHEAD_CHARS = 600
COMPLETION_TOKENS_ESTIMATE = 50
MISSING_CONFIDENCE = 0.7
LOW_CONFIDENCE_THRESHOLD = 0.7

SYSTEM_PROMPT = """You are an expert at categorizing social media bookmarks into three categories:

1. Inspo: creative references, aesthetic signals, design inspiration, innovative ideas
   Examples: design portfolios, creative campaigns, visual inspiration, artistic work

2. Leads/Markets: potential clients, business opportunities, industry insights, prospects
   Examples: agency profiles, company posts, business leaders, market opportunities

3. Tutorials: learning resources, how-to content, skill-building guides, educational material
   Examples: technical guides, courses, explanatory threads, skill development

Assign the bookmark to exactly ONE category and give a confidence score (0-1)
based on how clearly the content fits it.

Respond ONLY with valid JSON following the schema below. No prose, no markdown.
{
  "category": "Inspo" | "Leads/Markets" | "Tutorials",
  "confidence": <float 0-1>,
  "reasoning": "<one sentence explaining the choice>"
}"""


@dataclass(frozen=True, slots=True)
class CategoryInput:
    """A bookmark plus whatever intent/context results exist for it."""

    bookmark: Bookmark
    intent: IntentResult | None = None
    context: ContextResult | None = None


def build_category_prompt(
    bookmark: Bookmark,
    intent: IntentResult | None = None,
    context: ContextResult | None = None,
) -> str:
    prompt = f"Categorize this bookmark:\n\nAuthor: {bookmark.author}\nContent: {bookmark.content}"

    if intent is not None:
        prompt += f"\n\nUser Intent: {intent.intent}"

    if context is not None:
        prompt += f"\n\nTopic: {context.primary_topic}"
        if context.key_themes:
            prompt += f"\nThemes: {', '.join(context.key_themes)}"
        if context.company:
            prompt += f"\nCompany: {context.company}"

    prompt += "\n\nWhich category does this belong to: Inspo, Leads/Markets, or Tutorials?"
    return prompt


def parse_category_response(content: str) -> CategoryResult:
    """Always returns one of CATEGORIES with confidence in [0, 1]."""
    parsed = parse_json_object(content)
    if parsed is None:
        LOGGER.warning("Failed to parse category JSON, falling back to keyword scan")
        return CategoryResult(
            category=guess_category(content),
            confidence=FALLBACK_CATEGORY_CONFIDENCE,
        )

    category = parsed.get("category")
    if category not in CATEGORIES:
        LOGGER.warning("Model returned unknown category %r, using %s", category, DEFAULT_CATEGORY)
        category = DEFAULT_CATEGORY

    return CategoryResult(
        category=category,
        confidence=as_confidence(parsed.get("confidence"), MISSING_CONFIDENCE),
        reasoning=as_text(parsed.get("reasoning")),
    )


def assign_category(
    client: LLMClient,
    bookmark: Bookmark,
    intent: IntentResult | None = None,
    context: ContextResult | None = None,
) -> TaskResult[CategoryResult]:
    return client.call_with_retry(
        "category",
        SYSTEM_PROMPT,
        build_category_prompt(bookmark, intent, context),
        parse_category_response,
    )


def assign_category_batch(
    client: LLMClient,
    items: Sequence[CategoryInput],
    on_progress: Callable[[int, int], object] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[BatchItemOutcome[CategoryResult]]:
    return run_sequential_batch(
        items,
        lambda item: item.bookmark.id,
        lambda item: assign_category(client, item.bookmark, item.intent, item.context),
        task="category",
        delay_seconds=BATCH_DELAY_SECONDS,
        on_progress=on_progress,
        sleep=sleep,
    )


def estimate_category_cost(
    bookmarks: Sequence[Bookmark], model: str = DEFAULT_MODEL_CATEGORY
) -> float:
    return estimate_task_cost(
        bookmarks,
        model,
        prompt_overhead_chars=PROMPT_OVERHEAD_CHARS,
        completion_tokens=COMPLETION_TOKENS_ESTIMATE,
    )


def get_category_distribution(results: Iterable[CategoryResult]) -> dict[str, int]:
    distribution = {category: 0 for category in CATEGORIES}
    for result in results:
        distribution[result.category] = distribution.get(result.category, 0) + 1
    return distribution


def get_low_confidence_bookmarks(
    outcomes: Iterable[BatchItemOutcome[CategoryResult]],
    threshold: float = LOW_CONFIDENCE_THRESHOLD,
) -> list[str]:
    """Bookmark ids whose successful categorization scored below threshold."""
    return [
        outcome.bookmark_id
        for outcome in outcomes
        if outcome.result is not None and outcome.result.data.confidence < threshold
    ]
