"""Context task: author, company, topic and themes of a bookmark."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Sequence

from config import DEFAULT_MODEL_CONTEXT
from heuristics import FALLBACK_PRIMARY_TOPIC
from llm_client import LLMClient
from models import BatchItemOutcome, Bookmark, ContextResult, TaskResult
from response_parsing import as_text, parse_json_object
from task_support import estimate_task_cost, run_sequential_batch, source_label

LOGGER = logging.getLogger(__name__)

BATCH_DELAY_SECONDS = 0.2
PROMPT_OVERHEAD_CHARS = 500
COMPLETION_TOKENS_ESTIMATE = 150
UNKNOWN_PRIMARY_TOPIC = "Unknown"

SYSTEM_PROMPT = """You are an expert at extracting structured metadata from social media content.

Your task is to analyze a bookmark and extract:
1. Author bio/expertise (if identifiable from the content or profile)
2. Company or affiliation (if mentioned)
3. Primary topic (main subject matter)
4. Key themes (2-5 short tags)

Be concise and accurate. Use null or an empty list when information is not available.

Respond ONLY with valid JSON following the schema below. No prose, no markdown.
{
  "author_bio": "<brief description of the author's expertise>" or null,
  "company": "<company name or affiliation>" or null,
  "primary_topic": "<main subject area>",
  "key_themes": ["<theme>", "<theme>"]
}"""


def build_context_prompt(bookmark: Bookmark) -> str:
    lines = [
        f"Extract metadata from this {source_label(bookmark)} bookmark:",
        "",
        f"Author: {bookmark.author}",
        f"Content: {bookmark.content}",
    ]
    if bookmark.author_url:
        lines.append(f"Author Profile: {bookmark.author_url}")
    lines += [
        "",
        "Please extract:",
        "- Author expertise/bio (if identifiable)",
        "- Company/affiliation (if mentioned)",
        "- Primary topic",
        "- Key themes (2-5 tags)",
    ]
    return "\n".join(lines)


def _themes(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(theme for theme in (as_text(item) for item in value) if theme)


def parse_context_response(content: str) -> ContextResult:
    parsed = parse_json_object(content)
    if parsed is None:
        LOGGER.warning("Failed to parse context JSON, using generic topic")
        return ContextResult(primary_topic=FALLBACK_PRIMARY_TOPIC, key_themes=())

    return ContextResult(
        primary_topic=as_text(parsed.get("primary_topic")) or UNKNOWN_PRIMARY_TOPIC,
        key_themes=_themes(parsed.get("key_themes")),
        author_bio=as_text(parsed.get("author_bio")),
        company=as_text(parsed.get("company")),
    )


def generate_context(client: LLMClient, bookmark: Bookmark) -> TaskResult[ContextResult]:
    return client.call_with_retry(
        "context",
        SYSTEM_PROMPT,
        build_context_prompt(bookmark),
        parse_context_response,
    )


def generate_context_batch(
    client: LLMClient,
    bookmarks: Sequence[Bookmark],
    on_progress: Callable[[int, int], object] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[BatchItemOutcome[ContextResult]]:
    return run_sequential_batch(
        bookmarks,
        lambda b: b.id,
        lambda b: generate_context(client, b),
        task="context",
        delay_seconds=BATCH_DELAY_SECONDS,
        on_progress=on_progress,
        sleep=sleep,
    )


def estimate_context_cost(bookmarks: Sequence[Bookmark], model: str = DEFAULT_MODEL_CONTEXT) -> float:
    return estimate_task_cost(
        bookmarks,
        model,
        prompt_overhead_chars=PROMPT_OVERHEAD_CHARS,
        completion_tokens=COMPLETION_TOKENS_ESTIMATE,
    )
