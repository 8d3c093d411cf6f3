"""Batch enrichment pipeline: intent -> context -> category -> connections."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

import category as category_task
import context as context_task
import intent as intent_task
from config import LLMSettings, load_llm_settings
from connections import (
    DEFAULT_MAX_CONNECTIONS_PER_BOOKMARK,
    detect_connections,
    get_connection_summary,
)
from cost_model import CHARS_PER_TOKEN, CostTracker, format_cost
from errors import ConfigurationError
from llm_client import LLMClient
from models import (
    BatchEnrichmentResult,
    BatchError,
    Bookmark,
    BookmarkMetadata,
    CategoryResult,
    ContextResult,
    EnrichedBookmark,
    EnrichmentLog,
    EnrichmentProgress,
    IntentResult,
    ProgressCallback,
    Step,
    TaskResult,
    TopicSignals,
)
from store import BookmarkStore
from task_support import run_sequential_batch

LOGGER = logging.getLogger(__name__)

ENRICHMENT_VERSION = "1.0"

# Share of one run, in percent, attributed to each step for the ETA heuristic.
STEP_WEIGHT_PERCENT: dict[str, int] = {
    "intent": 35,
    "context": 35,
    "category": 15,
    "connections": 15,
}
AVG_MS_PER_BOOKMARK = 2000
ESTIMATE_BUFFER = 1.2

# Prompt overhead and completions across the three LLM calls of one bookmark.
ESTIMATE_OVERHEAD_CHARS = 1000
ESTIMATE_CALLS_PER_BOOKMARK = 3

# Error rows that are not tied to a single bookmark.
RUN_LEVEL_ERROR_ID = "*"


@dataclass(frozen=True, slots=True)
class EnrichmentOptions:
    skip_intent: bool = False
    skip_context: bool = False
    skip_category: bool = False
    skip_connections: bool = False
    on_progress: ProgressCallback | None = None

    @property
    def llm_steps(self) -> list[str]:
        steps = []
        if not self.skip_intent:
            steps.append("intent")
        if not self.skip_context:
            steps.append("context")
        if not self.skip_category:
            steps.append("category")
        return steps

    @property
    def enabled_steps(self) -> list[str]:
        return self.llm_steps + ([] if self.skip_connections else ["connections"])


@dataclass
class _BookmarkEnrichment:
    """Per-bookmark accumulator for one run."""

    bookmark: Bookmark
    intent: IntentResult | None = None
    context: ContextResult | None = None
    category: CategoryResult | None = None
    total_cost: float = 0.0
    total_tokens: int = 0

    def metadata(self) -> BookmarkMetadata:
        return BookmarkMetadata(
            bookmark_id=self.bookmark.id,
            intent=self.intent.intent if self.intent else None,
            author_bio=self.context.author_bio if self.context else None,
            company=self.context.company if self.context else None,
            primary_topic=self.context.primary_topic if self.context else None,
            key_themes=self.context.key_themes if self.context else None,
            category=self.category.category if self.category else None,
            category_confidence=self.category.confidence if self.category else None,
        )

    def topic_signals(self) -> TopicSignals:
        return TopicSignals(
            primary_topic=self.context.primary_topic if self.context else None,
            key_themes=self.context.key_themes if self.context else (),
            category=self.category.category if self.category else None,
        )


@dataclass
class _RunState:
    bookmarks: list[Bookmark]
    options: EnrichmentOptions
    estimated_cost: float
    tracker: CostTracker = field(default_factory=CostTracker)
    enrichments: dict[str, _BookmarkEnrichment] = field(default_factory=dict)
    errors: list[BatchError] = field(default_factory=list)
    models_used: set[str] = field(default_factory=set)

    def enrichment_for(self, bookmark: Bookmark) -> _BookmarkEnrichment:
        if bookmark.id not in self.enrichments:
            self.enrichments[bookmark.id] = _BookmarkEnrichment(bookmark=bookmark)
        return self.enrichments[bookmark.id]


def estimate_time_remaining_ms(step: str, completed: int, total: int) -> int:
    """Weighted share of the run still ahead, at AVG_MS_PER_BOOKMARK per bookmark."""
    done_percent = 0
    step_percent = 0
    for name, weight in STEP_WEIGHT_PERCENT.items():
        if name == step:
            step_percent = weight
            break
        done_percent += weight
    remaining = (100 - done_percent) * total - step_percent * min(completed, total)
    return max(0, math.ceil(remaining * AVG_MS_PER_BOOKMARK / 100))


def report_progress(
    on_progress: ProgressCallback | None,
    total: int,
    completed: int,
    step: Step,
    current_cost: float,
    estimated_cost: float = 0.0,
) -> None:
    """Send a progress snapshot to the callback; callback failures are only logged."""
    if on_progress is None:
        return

    progress = EnrichmentProgress(
        total_bookmarks=total,
        completed=completed,
        current_step=step,
        estimated_time_remaining_ms=estimate_time_remaining_ms(step, completed, total),
        estimated_cost=estimated_cost or current_cost * ESTIMATE_BUFFER,
        current_cost=current_cost,
    )
    try:
        on_progress(progress)
    except Exception as exc:  # progress is informational only
        LOGGER.warning("Progress callback raised, ignoring: %s", exc)


class BatchPipeline:
    """Runs the enrichment steps over a bookmark set and persists the results.

    The LLM client and the store are injected. client may be None only for
    runs that skip every LLM step (connections only, or cost estimates).
    Estimates price each task with settings, else the client's settings,
    else the environment.
    """

    def __init__(
        self,
        client: LLMClient | None,
        store: BookmarkStore,
        sleep: Callable[[float], None] = time.sleep,
        max_connections_per_bookmark: int = DEFAULT_MAX_CONNECTIONS_PER_BOOKMARK,
        settings: LLMSettings | None = None,
    ) -> None:
        self.client = client
        self.settings = settings
        self.store = store
        self._sleep = sleep
        self.max_connections_per_bookmark = max_connections_per_bookmark

    # --- selection ---

    def _select_bookmarks(self, bookmark_ids: Sequence[str] | None) -> list[Bookmark]:
        if not bookmark_ids:
            return self.store.find_unenriched()

        selected: list[Bookmark] = []
        seen: set[str] = set()
        for bookmark_id in bookmark_ids:
            if bookmark_id in seen:
                continue
            seen.add(bookmark_id)
            bookmark = self.store.find_by_id(bookmark_id)
            if bookmark is None:
                LOGGER.warning("Skipping unknown bookmark_id=%s", bookmark_id)
                continue
            selected.append(bookmark)
        return selected

    def _model_for(self, task: str) -> str:
        if self.settings is not None:
            return self.settings.model_for(task)
        if self.client is not None:
            return self.client.settings.model_for(task)
        return load_llm_settings().model_for(task)

    # --- estimate ---

    def _estimate(self, bookmarks: Sequence[Bookmark]) -> dict[str, Any]:
        if not bookmarks:
            return {"estimated_cost": 0.0, "estimated_tokens": 0, "bookmarks_count": 0}

        estimated_cost = (
            intent_task.estimate_intent_cost(bookmarks, self._model_for("intent"))
            + context_task.estimate_context_cost(bookmarks, self._model_for("context"))
            + category_task.estimate_category_cost(bookmarks, self._model_for("category"))
        )
        avg_content_length = sum(len(b.content) for b in bookmarks) / len(bookmarks)
        tokens_per_bookmark = math.ceil(
            (avg_content_length + ESTIMATE_OVERHEAD_CHARS) / CHARS_PER_TOKEN * ESTIMATE_CALLS_PER_BOOKMARK
        )
        return {
            "estimated_cost": estimated_cost,
            "estimated_tokens": tokens_per_bookmark * len(bookmarks),
            "bookmarks_count": len(bookmarks),
        }

    def estimate_batch_enrichment_cost(
        self, bookmark_ids: Sequence[str] | None = None
    ) -> dict[str, Any]:
        """Side-effect-free preview of the cost of enriching the selected bookmarks."""
        return self._estimate(self._select_bookmarks(bookmark_ids))

    # --- run ---

    def enrich_bookmark_batch(
        self,
        bookmark_ids: Sequence[str] | None = None,
        options: EnrichmentOptions | None = None,
    ) -> BatchEnrichmentResult:
        """Enrich the given bookmarks (or every unenriched one) step by step.

        Per-bookmark failures end up in the result's errors; only
        ConfigurationError propagates.
        """
        options = options or EnrichmentOptions()
        started = time.monotonic()

        if options.llm_steps and self.client is None:
            raise ConfigurationError("An LLM client is required unless all LLM steps are skipped")

        bookmarks = self._select_bookmarks(bookmark_ids)
        if not bookmarks:
            LOGGER.info("No bookmarks to enrich")
            return BatchEnrichmentResult(
                total_bookmarks=0,
                successful=0,
                failed=0,
                total_cost=0.0,
                total_tokens=0,
                execution_time_ms=_elapsed_ms(started),
            )

        state = _RunState(
            bookmarks=bookmarks,
            options=options,
            estimated_cost=self._estimate(bookmarks)["estimated_cost"],
        )
        LOGGER.info(
            "Starting enrichment for %s bookmarks (steps=%s)",
            len(bookmarks),
            ",".join(options.enabled_steps),
        )

        if not options.skip_intent:
            self._run_step(state, "intent", intent_task.BATCH_DELAY_SECONDS, self._intent_call)
        if not options.skip_context:
            self._run_step(state, "context", context_task.BATCH_DELAY_SECONDS, self._context_call)
        if not options.skip_category:
            self._run_step(
                state, "category", category_task.BATCH_DELAY_SECONDS, self._category_call
            )

        successful = self._persist_enrichments(state)

        connections_detected = 0
        if not options.skip_connections:
            connections_detected = self._run_connections(state)

        self._write_enrichment_log(state, successful)

        category_distribution = category_task.get_category_distribution(
            e.category for e in state.enrichments.values() if e.category is not None
        )
        result = BatchEnrichmentResult(
            total_bookmarks=len(bookmarks),
            successful=successful,
            failed=len(bookmarks) - successful if options.llm_steps else 0,
            total_cost=state.tracker.total_cost,
            total_tokens=state.tracker.total_tokens,
            execution_time_ms=_elapsed_ms(started),
            category_distribution=category_distribution,
            connections_detected=connections_detected,
            errors=state.errors,
        )
        LOGGER.info(
            "Enrichment complete. processed=%s/%s cost=%s tokens=%s errors=%s time=%.1fs",
            result.successful,
            result.total_bookmarks,
            format_cost(result.total_cost),
            result.total_tokens,
            len(result.errors),
            result.execution_time_ms / 1000,
        )
        return result

    # --- steps ---

    def _intent_call(self, state: _RunState, bookmark: Bookmark) -> TaskResult[Any]:
        result = intent_task.generate_intent(self.client, bookmark)
        state.enrichment_for(bookmark).intent = result.data
        return result

    def _context_call(self, state: _RunState, bookmark: Bookmark) -> TaskResult[Any]:
        result = context_task.generate_context(self.client, bookmark)
        state.enrichment_for(bookmark).context = result.data
        return result

    def _category_call(self, state: _RunState, bookmark: Bookmark) -> TaskResult[Any]:
        prior = state.enrichments.get(bookmark.id)
        result = category_task.assign_category(
            self.client,
            bookmark,
            intent=prior.intent if prior else None,
            context=prior.context if prior else None,
        )
        state.enrichment_for(bookmark).category = result.data
        return result

    def _run_step(
        self,
        state: _RunState,
        step: Step,
        delay_seconds: float,
        call: Callable[[_RunState, Bookmark], TaskResult[Any]],
    ) -> None:
        total = len(state.bookmarks)
        LOGGER.info("Step %s: running over %s bookmarks", step, total)
        self._report(state, step, 0)

        def tracked(bookmark: Bookmark) -> TaskResult[Any]:
            result = call(state, bookmark)
            state.tracker.record(result.model, result.usage, result.cost)
            state.models_used.add(result.model)
            enrichment = state.enrichments[bookmark.id]
            enrichment.total_cost += result.cost
            enrichment.total_tokens += result.usage.total_tokens
            return result

        outcomes = run_sequential_batch(
            state.bookmarks,
            lambda b: b.id,
            tracked,
            task=step,
            delay_seconds=delay_seconds,
            on_progress=lambda done, _total: self._report(state, step, done),
            sleep=self._sleep,
        )

        failed = [o for o in outcomes if not o.ok]
        for outcome in failed:
            state.errors.append(
                BatchError(bookmark_id=outcome.bookmark_id, error=f"{step}: {outcome.error}")
            )
        LOGGER.info("Step %s done: ok=%s failed=%s", step, len(outcomes) - len(failed), len(failed))

    def _report(self, state: _RunState, step: Step, completed: int) -> None:
        report_progress(
            state.options.on_progress,
            len(state.bookmarks),
            completed,
            step,
            state.tracker.total_cost,
            state.estimated_cost,
        )

    def _run_connections(self, state: _RunState) -> int:
        total = len(state.bookmarks)
        self._report(state, "connections", 0)

        if state.options.llm_steps:
            enriched = [
                EnrichedBookmark(bookmark=e.bookmark, metadata=e.topic_signals())
                for e in state.enrichments.values()
            ]
        else:
            enriched = [EnrichedBookmark(bookmark=b) for b in state.bookmarks]

        try:
            connections = detect_connections(enriched, self.max_connections_per_bookmark)
        except ConfigurationError:
            raise
        except Exception as exc:
            LOGGER.exception("Connection detection failed: %s", exc)
            state.errors.append(BatchError(bookmark_id=RUN_LEVEL_ERROR_ID, error=f"connections: {exc}"))
            self._report(state, "connections", total)
            return 0

        try:
            self.store.delete_connections_among(e.bookmark.id for e in enriched)
        except ConfigurationError:
            raise
        except Exception as exc:
            LOGGER.exception("Failed clearing stale connections: %s", exc)
            state.errors.append(BatchError(bookmark_id=RUN_LEVEL_ERROR_ID, error=f"connections: {exc}"))

        for connection in connections:
            try:
                self.store.create_connection(connection)
            except ConfigurationError:
                raise
            except Exception as exc:
                LOGGER.exception(
                    "Failed saving connection %s-%s (%s): %s",
                    connection.bookmark_id_1,
                    connection.bookmark_id_2,
                    connection.connection_type,
                    exc,
                )
                state.errors.append(
                    BatchError(bookmark_id=connection.bookmark_id_1, error=f"connections: {exc}")
                )

        summary = get_connection_summary(connections)
        LOGGER.info(
            "Detected %s connections (avg %.2f per bookmark)",
            summary["total_connections"],
            summary["avg_connections_per_bookmark"],
        )
        self._report(state, "connections", total)
        return len(connections)

    # --- persistence ---

    def _persist_enrichments(self, state: _RunState) -> int:
        successful = 0
        for enrichment in state.enrichments.values():
            bookmark_id = enrichment.bookmark.id
            try:
                self.store.upsert_metadata(enrichment.metadata())
                self.store.update_enrichment_version(bookmark_id, ENRICHMENT_VERSION)
                successful += 1
            except ConfigurationError:
                raise
            except Exception as exc:
                LOGGER.exception("Failed to save enrichment for bookmark_id=%s: %s", bookmark_id, exc)
                state.errors.append(BatchError(bookmark_id=bookmark_id, error=f"persistence: {exc}"))
        return successful

    def _write_enrichment_log(self, state: _RunState, successful: int) -> None:
        if len(state.models_used) == 1:
            model_used = next(iter(state.models_used))
        elif state.models_used:
            model_used = "multi-model"
        else:
            model_used = "none"

        log = EnrichmentLog(
            bookmarks_processed=successful,
            tokens_used=state.tracker.total_tokens,
            cost=state.tracker.total_cost,
            model_used=model_used,
            enrichment_type="+".join(state.options.enabled_steps),
        )
        try:
            self.store.create_enrichment_log(log)
        except ConfigurationError:
            raise
        except Exception as exc:
            LOGGER.exception("Failed to write enrichment log: %s", exc)
            state.errors.append(BatchError(bookmark_id=RUN_LEVEL_ERROR_ID, error=f"enrichment_log: {exc}"))


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def enrich_bookmark_batch(
    client: LLMClient | None,
    store: BookmarkStore,
    bookmark_ids: Sequence[str] | None = None,
    options: EnrichmentOptions | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchEnrichmentResult:
    """Run one batch with explicitly supplied collaborators."""
    return BatchPipeline(client, store, sleep=sleep).enrich_bookmark_batch(bookmark_ids, options)


def estimate_batch_enrichment_cost(
    store: BookmarkStore,
    bookmark_ids: Sequence[str] | None = None,
    client: LLMClient | None = None,
    settings: LLMSettings | None = None,
) -> dict[str, Any]:
    return BatchPipeline(client, store, settings=settings).estimate_batch_enrichment_cost(bookmark_ids)
