"""Intent task: why was this bookmark saved?"""

from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from config import DEFAULT_MODEL_INTENT
from heuristics import FALLBACK_INTENT_CONFIDENCE, fallback_intent
from llm_client import LLMClient
from models import BatchItemOutcome, Bookmark, IntentResult, TaskResult
from response_parsing import as_confidence, as_text, parse_json_object
from task_support import estimate_task_cost, run_sequential_batch, source_label

LOGGER = logging.getLogger(__name__)

BATCH_DELAY_SECONDS = 0.2
PROMPT_OVERHEAD_CHARS = 500
COMPLETION_TOKENS_ESTIMATE = 100

SYSTEM_PROMPT = """You are an expert at analyzing social media bookmarks and understanding user intent.

Your task is to analyze a bookmark and explain WHY the user likely saved it.

Consider:
- The content topic and key insights
- The author's expertise and credibility
- Potential use cases: prospecting/leads, creative inspiration, learning/skill-building
- The actionable value this bookmark provides

Output a concise 1-2 sentence explanation that captures the user's likely motivation.

Respond ONLY with valid JSON following the schema below. No prose, no markdown.
{
  "intent": "<brief explanation of why this was bookmarked>",
  "confidence": <float 0-1>
}

Confidence guide:
- 0.9-1.0: very clear intent based on content
- 0.7-0.9: good understanding of likely intent
- 0.5-0.7: moderate confidence
- below 0.5: unclear intent"""


def build_intent_prompt(bookmark: Bookmark) -> str:
    lines = [
        f"Analyze this {source_label(bookmark)} bookmark:",
        "",
        f"Author: {bookmark.author}",
        f"Content: {bookmark.content}",
        f"URL: {bookmark.url}",
    ]
    if bookmark.author_url:
        lines.append(f"Author Profile: {bookmark.author_url}")
    lines += ["", "Why did the user likely save this bookmark? What value does it provide?"]
    return "\n".join(lines)


def parse_intent_response(content: str) -> IntentResult:
    """Parse the model reply; falls back to the raw text at confidence 0.6."""
    parsed = parse_json_object(content)
    if parsed is not None:
        intent = as_text(parsed.get("intent"))
        confidence = parsed.get("confidence")
        if intent and isinstance(confidence, (int, float)) and not isinstance(confidence, bool):
            return IntentResult(intent=intent, confidence=as_confidence(confidence, 0.0))

    LOGGER.warning("Failed to parse intent JSON, using raw text")
    return IntentResult(intent=fallback_intent(content), confidence=FALLBACK_INTENT_CONFIDENCE)


def generate_intent(client: LLMClient, bookmark: Bookmark) -> TaskResult[IntentResult]:
    return client.call_with_retry(
        "intent",
        SYSTEM_PROMPT,
        build_intent_prompt(bookmark),
        parse_intent_response,
    )


def generate_intent_batch(
    client: LLMClient,
    bookmarks: Sequence[Bookmark],
    on_progress: Callable[[int, int], object] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[BatchItemOutcome[IntentResult]]:
    return run_sequential_batch(
        bookmarks,
        lambda b: b.id,
        lambda b: generate_intent(client, b),
        task="intent",
        delay_seconds=BATCH_DELAY_SECONDS,
        on_progress=on_progress,
        sleep=sleep,
    )


def estimate_intent_cost(bookmarks: Sequence[Bookmark], model: str = DEFAULT_MODEL_INTENT) -> float:
    return estimate_task_cost(
        bookmarks,
        model,
        prompt_overhead_chars=PROMPT_OVERHEAD_CHARS,
        completion_tokens=COMPLETION_TOKENS_ESTIMATE,
    )
