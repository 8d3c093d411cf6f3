from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from category import (
    CategoryInput,
    assign_category,
    assign_category_batch,
    build_category_prompt,
    estimate_category_cost,
    get_category_distribution,
    get_low_confidence_bookmarks,
    parse_category_response,
)
from models import (
    CATEGORIES,
    BatchItemOutcome,
    Bookmark,
    CategoryResult,
    ContextResult,
    IntentResult,
    TaskResult,
    TokenUsage,
)

_SAMPLE_BOOKMARK = Bookmark(
    id="bm-cat",
    source="twitter",
    source_id="1",
    url="https://x.com/dev/status/1",
    author="Dev Teacher",
    content="How I structure FastAPI projects, a step-by-step thread.",
    bookmarked_at=datetime(2026, 1, 5, tzinfo=UTC),
)


def _result(category: str, confidence: float) -> TaskResult[CategoryResult]:
    return TaskResult(
        data=CategoryResult(category=category, confidence=confidence),
        usage=TokenUsage(prompt_tokens=1, completion_tokens=1),
        model="gpt-4o-mini",
        provider="openai",
        cost=0.0,
    )


# ---------------------------------------------------------------------------
# Prompt composition
# ---------------------------------------------------------------------------

def test_build_category_prompt_without_prior_results() -> None:
    prompt = build_category_prompt(_SAMPLE_BOOKMARK)

    assert "Author: Dev Teacher" in prompt
    assert "User Intent" not in prompt
    assert "Topic:" not in prompt
    assert prompt.endswith("Inspo, Leads/Markets, or Tutorials?")


def test_build_category_prompt_includes_intent_and_context() -> None:
    intent = IntentResult(intent="Learn project layout", confidence=0.9)
    context = ContextResult(
        primary_topic="Python", key_themes=("fastapi", "architecture"), company="Acme"
    )

    prompt = build_category_prompt(_SAMPLE_BOOKMARK, intent, context)

    assert "User Intent: Learn project layout" in prompt
    assert "Topic: Python" in prompt
    assert "Themes: fastapi, architecture" in prompt
    assert "Company: Acme" in prompt


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def test_parse_category_response_valid() -> None:
    result = parse_category_response(
        '{"category": "Tutorials", "confidence": 0.88, "reasoning": "Step-by-step guide"}'
    )

    assert result == CategoryResult(category="Tutorials", confidence=0.88, reasoning="Step-by-step guide")


def test_parse_category_response_rejects_unknown_category() -> None:
    result = parse_category_response('{"category": "Memes", "confidence": 0.9}')

    assert result.category == "Inspo"
    assert result.confidence == 0.9


def test_parse_category_response_missing_confidence_defaults() -> None:
    assert parse_category_response('{"category": "Leads/Markets"}').confidence == 0.7


@pytest.mark.parametrize("raw, expected", [
    (5, 1.0),
    (-1, 0.0),
    ('"high"', 0.7),
])
def test_parse_category_response_clamps_confidence(raw: object, expected: float) -> None:
    result = parse_category_response(f'{{"category": "Inspo", "confidence": {raw}}}')

    assert result.confidence == expected


@pytest.mark.parametrize("content, expected", [
    ("This is clearly a tutorial", "Tutorials"),
    ("Leads/Markets because it is a business profile", "Leads/Markets"),
    ("Mostly creative inspiration", "Inspo"),
    ("", "Inspo"),
])
def test_parse_category_response_keyword_fallback(content: str, expected: str) -> None:
    result = parse_category_response(content)

    assert result.category == expected
    assert result.confidence == 0.5
    assert result.reasoning is None


@pytest.mark.parametrize("content", [
    "\x00\x01garbage",
    "{{{{",
    '{"category": null, "confidence": "NaN"}',
    '{"category": ["Inspo"], "confidence": 1e309}',
    "[]",
    "Tutorials" * 1000,
])
def test_parse_category_response_always_canonical(content: str) -> None:
    result = parse_category_response(content)

    assert result.category in CATEGORIES
    assert 0.0 <= result.confidence <= 1.0


# ---------------------------------------------------------------------------
# Calls, batch and helpers
# ---------------------------------------------------------------------------

def test_assign_category_passes_prior_results() -> None:
    client = MagicMock()
    client.call_with_retry.return_value = _result("Tutorials", 0.9)
    intent = IntentResult(intent="Learn", confidence=0.8)

    result = assign_category(client, _SAMPLE_BOOKMARK, intent=intent)

    assert result.data.category == "Tutorials"
    task, _, user_prompt, _ = client.call_with_retry.call_args.args
    assert task == "category"
    assert "User Intent: Learn" in user_prompt


def test_assign_category_batch_paces_at_100ms() -> None:
    client = MagicMock()
    client.call_with_retry.side_effect = [_result("Inspo", 0.9), RuntimeError("timeout"), _result("Tutorials", 0.4)]
    sleeps: list[float] = []
    items = [CategoryInput(bookmark=_SAMPLE_BOOKMARK) for _ in range(3)]

    outcomes = assign_category_batch(client, items, sleep=sleeps.append)

    assert [o.ok for o in outcomes] == [True, False, True]
    assert sleeps == [0.1, 0.1]


def test_get_category_distribution_counts_all_categories() -> None:
    results = [
        CategoryResult(category="Inspo", confidence=0.9),
        CategoryResult(category="Inspo", confidence=0.8),
        CategoryResult(category="Tutorials", confidence=0.6),
    ]

    assert get_category_distribution(results) == {"Inspo": 2, "Leads/Markets": 0, "Tutorials": 1}


def test_get_low_confidence_bookmarks() -> None:
    outcomes = [
        BatchItemOutcome(bookmark_id="a", result=_result("Inspo", 0.95)),
        BatchItemOutcome(bookmark_id="b", result=_result("Inspo", 0.5)),
        BatchItemOutcome(bookmark_id="c", error="boom"),
        BatchItemOutcome(bookmark_id="d", result=_result("Tutorials", 0.69)),
    ]

    assert get_low_confidence_bookmarks(outcomes) == ["b", "d"]
    assert get_low_confidence_bookmarks(outcomes, threshold=0.5) == []


def test_estimate_category_cost_cheaper_than_default_tasks() -> None:
    assert estimate_category_cost([]) == 0.0
    assert estimate_category_cost([_SAMPLE_BOOKMARK]) > 0.0
    assert estimate_category_cost([_SAMPLE_BOOKMARK]) < estimate_category_cost(
        [_SAMPLE_BOOKMARK], model="gpt-4o"
    )
