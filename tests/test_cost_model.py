import logging

import pytest

from cost_model import (
    FALLBACK_PRICING,
    CostTracker,
    calculate_cost,
    estimate_enrichment_cost,
    estimate_tokens,
    format_cost,
    get_model_pricing,
    normalize_model_name,
)
from models import TokenUsage


@pytest.mark.parametrize("model, expected", [
    ("gpt-4o", "gpt-4o"),
    ("gpt-4o-2024-08-06", "gpt-4o"),
    ("gpt-4o-mini-2024-07-18", "gpt-4o-mini"),
    ("GPT-4-Turbo-Preview", "gpt-4-turbo"),
    ("claude-3-5-sonnet-20241022", "claude-sonnet-3.5"),
    ("claude-3-5-sonnet-latest", "claude-sonnet-3.5"),
    ("claude-3.5-sonnet", "claude-sonnet-3.5"),
    ("claude-sonnet-4-20250514", "claude-sonnet-4"),
    ("claude-3-5-haiku-latest", "claude-haiku-3.5"),
    ("claude-3-opus-20240229", "claude-opus-3"),
])
def test_normalize_model_name_maps_aliases(model: str, expected: str) -> None:
    assert normalize_model_name(model) == expected


def test_normalize_model_name_keeps_unknown_names() -> None:
    assert normalize_model_name("mistral-large") == "mistral-large"


def test_calculate_cost_uses_table_rates() -> None:
    usage = TokenUsage(prompt_tokens=1000, completion_tokens=500)
    # 1000 * 2.50 + 500 * 10.00 per 1M tokens
    assert calculate_cost("gpt-4o", usage) == pytest.approx(0.0075)


def test_calculate_cost_dated_model_matches_base_model() -> None:
    usage = TokenUsage(prompt_tokens=1234, completion_tokens=321)
    assert calculate_cost("gpt-4o-2024-08-06", usage) == calculate_cost("gpt-4o", usage)


def test_calculate_cost_unknown_model_uses_fallback_and_warns(caplog: pytest.LogCaptureFixture) -> None:
    usage = TokenUsage(prompt_tokens=1_000_000, completion_tokens=1_000_000)

    with caplog.at_level(logging.WARNING):
        cost = calculate_cost("some-new-model", usage)

    assert cost == pytest.approx(FALLBACK_PRICING["input"] + FALLBACK_PRICING["output"])
    assert "some-new-model" in caplog.text


def test_calculate_cost_never_negative() -> None:
    assert calculate_cost("gpt-4o", TokenUsage(prompt_tokens=-50, completion_tokens=-1)) == 0.0


@pytest.mark.parametrize("model", ["gpt-4o", "gpt-4o-mini", "claude-sonnet-4", "unknown-model"])
def test_calculate_cost_monotonic_in_both_token_fields(model: str) -> None:
    base = calculate_cost(model, TokenUsage(prompt_tokens=100, completion_tokens=100))
    more_prompt = calculate_cost(model, TokenUsage(prompt_tokens=101, completion_tokens=100))
    more_completion = calculate_cost(model, TokenUsage(prompt_tokens=100, completion_tokens=101))

    assert base >= 0
    assert more_prompt >= base
    assert more_completion >= base


def test_get_model_pricing_none_for_unknown() -> None:
    assert get_model_pricing("gpt-4o-2024-05-13") == {"input": 2.50, "output": 10.00}
    assert get_model_pricing("llama-3") is None


def test_estimate_tokens_and_format_cost() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcde") == 2
    assert format_cost(0.0042) == "$0.0042"
    assert format_cost(1.5) == "$1.50"


def test_estimate_enrichment_cost_prices_each_task() -> None:
    # 400 chars -> 100 content tokens + 200 prompt overhead.
    intent_only = estimate_enrichment_cost(400, ["intent"])
    category_only = estimate_enrichment_cost(400, ["category"])

    assert intent_only == pytest.approx((300 * 2.50 + 150 * 10.00) / 1_000_000)
    assert category_only == pytest.approx((300 * 0.15 + 50 * 0.60) / 1_000_000)
    assert estimate_enrichment_cost(400, ["intent", "context", "category", "connections"]) == pytest.approx(
        2 * intent_only + category_only
    )
    assert estimate_enrichment_cost(400, []) == 0.0
    assert estimate_enrichment_cost(400, ["intent"], intent_model="claude-opus-3") > intent_only


# ---------------------------------------------------------------------------
# CostTracker
# ---------------------------------------------------------------------------

def test_cost_tracker_accumulates_per_model() -> None:
    tracker = CostTracker()
    tracker.record("gpt-4o", TokenUsage(prompt_tokens=100, completion_tokens=50), 0.01)
    tracker.record("gpt-4o", TokenUsage(prompt_tokens=10, completion_tokens=5), 0.002)
    tracker.record("gpt-4o-mini", TokenUsage(prompt_tokens=20, completion_tokens=0), 0.001)

    summary = tracker.summary()

    assert summary["total_cost"] == pytest.approx(0.013)
    assert summary["total_tokens"] == 185
    assert summary["call_count"] == 3
    assert summary["average_cost_per_call"] == pytest.approx(0.013 / 3)
    assert summary["cost_by_model"] == pytest.approx({"gpt-4o": 0.012, "gpt-4o-mini": 0.001})
    assert summary["tokens_by_model"] == {"gpt-4o": 165, "gpt-4o-mini": 20}


def test_cost_tracker_instances_do_not_share_state() -> None:
    first = CostTracker()
    first.record("gpt-4o", TokenUsage(prompt_tokens=1, completion_tokens=1), 0.5)

    second = CostTracker()

    assert second.total_cost == 0.0
    assert second.cost_by_model() == {}
    assert second.summary()["average_cost_per_call"] == 0.0
