"""Keyword fallbacks applied when model output cannot be parsed (no LLM calls)."""

from __future__ import annotations

from models import DEFAULT_CATEGORY

# Checked in order: Leads/Markets wins over Tutorials when both appear.
_LEADS_TOKENS: frozenset[str] = frozenset({
    "leads",
    "markets",
    "business",
    "client",
})

_TUTORIAL_TOKENS: frozenset[str] = frozenset({
    "tutorial",
    "learning",
    "how-to",
    "guide",
})

_INSPO_TOKENS: frozenset[str] = frozenset({
    "inspo",
    "inspiration",
    "creative",
})

FALLBACK_CATEGORY_CONFIDENCE = 0.5
FALLBACK_INTENT_CONFIDENCE = 0.6
FALLBACK_PRIMARY_TOPIC = "General"


def guess_category(text: str) -> str:
    """Map free text onto one of the three categories by keyword scan.

    - Leads/Markets: any lead/market/business/client token.
    - Tutorials    : any tutorial/learning/how-to/guide token.
    - Inspo        : inspiration tokens, or no signal at all.
    """
    lowered = (text or "").lower()

    if any(tok in lowered for tok in _LEADS_TOKENS):
        return "Leads/Markets"
    if any(tok in lowered for tok in _TUTORIAL_TOKENS):
        return "Tutorials"
    if any(tok in lowered for tok in _INSPO_TOKENS):
        return "Inspo"
    return DEFAULT_CATEGORY


def fallback_intent(text: str) -> str:
    """Use the raw reply as the intent statement."""
    return (text or "").strip()
