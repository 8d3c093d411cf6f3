"""Helpers shared by the intent, context and category task modules."""

from __future__ import annotations

import logging
import math
import time
from typing import Callable, Sequence, TypeVar

from cost_model import CHARS_PER_TOKEN, calculate_cost
from errors import ConfigurationError
from models import BatchItemOutcome, Bookmark, TaskResult, TokenUsage

LOGGER = logging.getLogger(__name__)

_SOURCE_LABELS: dict[str, str] = {
    "twitter": "Twitter/X",
    "linkedin": "LinkedIn",
    "eagle": "Eagle",
}

T = TypeVar("T")
ItemT = TypeVar("ItemT")


def source_label(bookmark: Bookmark) -> str:
    return _SOURCE_LABELS.get(bookmark.source, bookmark.source)


def run_sequential_batch(
    items: Sequence[ItemT],
    bookmark_id: Callable[[ItemT], str],
    call: Callable[[ItemT], TaskResult[T]],
    *,
    task: str,
    delay_seconds: float,
    on_progress: Callable[[int, int], object] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[BatchItemOutcome[T]]:
    """Call one task per item, in order, pausing delay_seconds between calls.

    The pause only paces requests under provider rate limits. A failing item
    is recorded as an error outcome and the batch moves on; ConfigurationError
    is fatal and propagates.
    """
    outcomes: list[BatchItemOutcome[T]] = []
    total = len(items)

    for index, item in enumerate(items):
        item_id = bookmark_id(item)
        try:
            outcomes.append(BatchItemOutcome(bookmark_id=item_id, result=call(item)))
        except ConfigurationError:
            raise
        except Exception as exc:
            LOGGER.exception("Failed %s for bookmark_id=%s: %s", task, item_id, exc)
            outcomes.append(BatchItemOutcome(bookmark_id=item_id, error=str(exc)))

        if on_progress is not None:
            on_progress(index + 1, total)

        if index < total - 1:
            sleep(delay_seconds)

    return outcomes


def estimate_task_cost(
    bookmarks: Sequence[Bookmark],
    model: str,
    *,
    prompt_overhead_chars: int,
    completion_tokens: int,
) -> float:
    """Pre-flight cost preview: ceil((avg_len + overhead) / 4) prompt tokens per bookmark."""
    if not bookmarks:
        return 0.0
    avg_content_length = sum(len(b.content) for b in bookmarks) / len(bookmarks)
    prompt_tokens = math.ceil((avg_content_length + prompt_overhead_chars) / CHARS_PER_TOKEN)
    per_bookmark = calculate_cost(
        model, TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
    )
    return len(bookmarks) * per_bookmark
