"""Command line entry point: crawl URLs or load sources into a single corpus."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
import logging
from pathlib import Path
import sys

import orjson
from pydantic import ValidationError

from corpus_builder.config import Settings
from corpus_builder.errors import CorpusError
from corpus_builder.loaders import UrlAdapter, load_sources
from corpus_builder.models import LoadedSource
from corpus_builder.observability.logging import configure_logging
from corpus_builder.observability.tracing import init_tracing


logger = logging.getLogger(__name__)

SUMMARY_KEYS = (
    "pages_loaded",
    "pages_skipped",
    "pages_in_queue",
    "subrequests_used",
    "stop_reason",
    "stopped_by_subrequest_limit",
    "stopped_by_page_limit",
    "over_budget",
)


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="corpus-builder",
        description="Assemble a bounded-size text corpus from web pages, files and repositories",
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL (debug, info, warning, error)")
    parser.add_argument("--plain-logs", action="store_true", help="Human-readable logs instead of JSON")
    subparsers = parser.add_subparsers(dest="command", required=True)

    crawl = subparsers.add_parser("crawl", help="Crawl from seed URLs until the token target is reached")
    crawl.add_argument("urls", nargs="+", metavar="URL", help="Seed URLs")
    crawl.add_argument("--target-tokens", type=int, help="Stop once this many tokens are collected")
    crawl.add_argument("--min-tokens-per-page", type=int, help="Discard pages smaller than this")
    crawl.add_argument("--max-pages", type=int, help="Hard cap on accepted pages")
    crawl.add_argument("--max-subrequests", type=int, help="Hard cap on page fetches")
    crawl.add_argument("--delay-ms", type=int, help="Delay between requests in milliseconds")
    crawl.add_argument(
        "--allow-external",
        action="store_true",
        help="Follow links to other origins (default: same origin only)",
    )
    crawl.add_argument("--ignore-robots", action="store_true", help="Do not consult robots.txt")
    _add_output_arguments(crawl)

    load = subparsers.add_parser("load", help="Load URLs, git repositories, directories or files")
    load.add_argument("sources", nargs="+", metavar="SOURCE", help="URL, repository URL, directory or file")
    load.add_argument("--max-tokens", type=int, help="Token ceiling for the combined corpus")
    load.add_argument(
        "--strict",
        action="store_true",
        help="Fail instead of flagging when the combined corpus exceeds --max-tokens",
    )
    _add_output_arguments(load)

    return parser


def _add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-o", "--output", type=Path, help="Write the corpus here instead of stdout")
    parser.add_argument("--summary", action="store_true", help="Print a JSON summary to stderr")


async def _run_crawl(args: argparse.Namespace, settings: Settings) -> LoadedSource:
    adapter = UrlAdapter(settings)
    return await adapter.load(
        args.urls,
        target_tokens=args.target_tokens,
        min_tokens_per_page=args.min_tokens_per_page,
        max_pages=args.max_pages,
        max_subrequests=args.max_subrequests,
        delay_ms=args.delay_ms,
        same_domain_only=False if args.allow_external else None,
        respect_robots_txt=False if args.ignore_robots else None,
    )


async def _run_load(args: argparse.Namespace, settings: Settings) -> LoadedSource:
    return await load_sources(args.sources, settings=settings, max_tokens=args.max_tokens, strict=args.strict)


def summarize(result: LoadedSource) -> dict[str, object]:
    summary: dict[str, object] = {
        "source": result.source,
        "total_tokens": result.total_tokens,
        "file_count": result.file_count,
    }
    for key in SUMMARY_KEYS:
        if key in result.metadata:
            summary[key] = result.metadata[key]
    if "errors" in result.metadata:
        summary["error_count"] = len(result.metadata["errors"])
    return summary


def _write_output(result: LoadedSource, output: Path | None) -> None:
    if output is None:
        sys.stdout.write(result.content)
        if not result.content.endswith("\n"):
            sys.stdout.write("\n")
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(result.content, encoding="utf-8")
    logger.info(f"Wrote {result.total_tokens} tokens from {result.file_count} files to {output}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings()
    except ValidationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    configure_logging(
        level=args.log_level or settings.log_level,
        json_output=settings.log_json and not args.plain_logs,
        logger_levels=settings.log_levels,
    )
    init_tracing()

    runner = _run_crawl if args.command == "crawl" else _run_load
    try:
        result = asyncio.run(runner(args, settings))
    except CorpusError as exc:
        logger.error(f"{exc.code}: {exc}", extra={"details": exc.details})
        return 1

    _write_output(result, args.output)
    if args.summary:
        sys.stderr.write(orjson.dumps(summarize(result), option=orjson.OPT_INDENT_2).decode("utf-8") + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
