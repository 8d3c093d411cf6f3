"""CLI entrypoint for the bookmark enrichment pipeline."""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from config import data_dir, load_llm_settings
from cost_model import format_cost
from csv_store import CsvBookmarkStore
from errors import ConfigurationError
from llm_client import LLMClient
from models import EnrichmentProgress
from pipeline import BatchPipeline, EnrichmentOptions


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Enrich saved bookmarks with LLM-derived metadata")
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding the CSV store (default: ENRICHMENT_DATA_DIR or ./data)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    enrich = subparsers.add_parser("enrich", help="Run the enrichment pipeline")
    enrich.add_argument(
        "--ids",
        nargs="+",
        default=None,
        help="Bookmark ids to enrich (default: every unenriched bookmark)",
    )
    enrich.add_argument("--skip-intent", action="store_true")
    enrich.add_argument("--skip-context", action="store_true")
    enrich.add_argument("--skip-category", action="store_true")
    enrich.add_argument("--skip-connections", action="store_true")
    enrich.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the cost estimate, without LLM calls or writes",
    )

    estimate = subparsers.add_parser("estimate", help="Preview the cost of an enrichment run")
    estimate.add_argument("--ids", nargs="+", default=None)

    subparsers.add_parser("check-providers", help="Send a minimal prompt to each configured provider")
    return parser.parse_args(argv)


def _log_progress(progress: EnrichmentProgress) -> None:
    logging.info(
        "[%s] %s/%s cost=%s eta=%.0fs",
        progress.current_step,
        progress.completed,
        progress.total_bookmarks,
        format_cost(progress.current_cost),
        progress.estimated_time_remaining_ms / 1000,
    )


def _log_estimate(estimate: dict) -> None:
    logging.info(
        "Estimate: bookmarks=%s tokens=%s cost=%s",
        estimate["bookmarks_count"],
        estimate["estimated_tokens"],
        format_cost(estimate["estimated_cost"]),
    )


def run_enrich(args: argparse.Namespace, store: CsvBookmarkStore) -> int:
    options = EnrichmentOptions(
        skip_intent=args.skip_intent,
        skip_context=args.skip_context,
        skip_category=args.skip_category,
        skip_connections=args.skip_connections,
        on_progress=_log_progress,
    )

    if args.dry_run:
        pipeline = BatchPipeline(None, store, settings=load_llm_settings())
        _log_estimate(pipeline.estimate_batch_enrichment_cost(args.ids))
        logging.info("[dry-run] No LLM calls made and nothing written")
        return 0

    client = LLMClient(load_llm_settings()) if options.llm_steps else None
    result = BatchPipeline(client, store).enrich_bookmark_batch(args.ids, options)

    for error in result.errors:
        logging.warning("bookmark_id=%s: %s", error.bookmark_id, error.error)
    logging.info(
        "Run complete. total=%s successful=%s failed=%s connections=%s categories=%s",
        result.total_bookmarks,
        result.successful,
        result.failed,
        result.connections_detected,
        result.category_distribution,
    )
    return 0 if result.failed == 0 else 1


def run_estimate(args: argparse.Namespace, store: CsvBookmarkStore) -> int:
    settings = load_llm_settings()
    client = LLMClient(settings) if settings.has_credentials else None
    pipeline = BatchPipeline(client, store, settings=settings)
    _log_estimate(pipeline.estimate_batch_enrichment_cost(args.ids))
    return 0


def run_check_providers() -> int:
    client = LLMClient(load_llm_settings())
    status = client.test_connection()
    logging.info("Providers: openai=%s anthropic=%s", status.openai, status.anthropic)
    if status.error:
        logging.error("Connection test errors: %s", status.error)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Initialize config and execute the selected command."""
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = parse_args(argv)

    try:
        if args.command == "check-providers":
            return run_check_providers()

        store = CsvBookmarkStore(args.data_dir or data_dir())
        if args.command == "estimate":
            return run_estimate(args, store)
        return run_enrich(args, store)
    except ConfigurationError as exc:
        logging.error("Configuration error: %s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
