"""CLI runner for searching or exporting a knowledge base."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, TextIO

import requests  # type: ignore[import-untyped]

from app.config import get_settings
from app.logging_config import configure_logging
from app.services.kb.client import KnowledgeBaseClient
from app.services.kb.csv_export import ARTICLE_HEADERS, iter_csv_lines, to_csv_row
from app.services.kb.errors import InvalidUrl, KnowledgeBaseError
from app.services.kb.models import ArticlePathInfo, FailedFetch
from app.services.kb.search import (
    iter_article_records,
    iter_search_events,
    iter_search_matches,
    prepare,
)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Search or export a knowledge base.")
    parser.add_argument("--url", required=True, help="Any URL on the knowledge base host.")
    parser.add_argument("--term", default=None, help="Search term (omit to export all articles).")
    parser.add_argument(
        "--format",
        choices=["csv", "ndjson"],
        default="csv",
        help="csv rows, or the raw ndjson event stream (requires --term).",
    )
    parser.add_argument(
        "--include-context",
        action="store_true",
        help="Add the match context column to a search CSV.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=settings.kb_fetch_workers,
        help="Parallel article fetches (1 = sequential).",
    )
    parser.add_argument("--out", default=None, help="Output file (default: stdout).")
    parser.add_argument("--report", default=None, help="Write a JSON failure report here.")
    args = parser.parse_args(argv)
    if args.format == "ndjson" and not args.term:
        parser.error("--format ndjson requires --term")
    if args.workers < 1:
        parser.error("--workers must be at least 1")
    return args


def _lines(
    args: argparse.Namespace,
    client: KnowledgeBaseClient,
    articles: Sequence[ArticlePathInfo],
    failures: List[FailedFetch],
) -> Iterator[str]:
    settings = get_settings()
    if args.format == "ndjson":
        for event in iter_search_events(
            client,
            articles,
            args.term,
            progress_every=settings.kb_progress_every,
            workers=args.workers,
            failures=failures,
        ):
            yield event.to_json() + "\n"
        return

    if args.term:
        matches = iter_search_matches(
            client,
            articles,
            args.term,
            progress_every=settings.kb_progress_every,
            workers=args.workers,
            failures=failures,
        )
        rows = (to_csv_row(match, include_context=args.include_context) for match in matches)
        columns = len(ARTICLE_HEADERS) + (1 if args.include_context else 0)
    else:
        records = iter_article_records(client, articles, workers=args.workers, failures=failures)
        rows = (to_csv_row(record) for record in records)
        columns = len(ARTICLE_HEADERS)
    yield from iter_csv_lines(rows, columns)


def main(argv: Optional[Sequence[str]] = None, session: requests.Session | None = None) -> int:
    settings = get_settings()
    args = parse_args(argv)
    configure_logging(settings.log_level, json_output=settings.log_json)

    failures: List[FailedFetch] = []
    try:
        client, articles = prepare(args.url, settings, session=session, failures=failures)
    except InvalidUrl as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 2
    except KnowledgeBaseError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 1

    print(f"[info] origin={client.origin} articles={len(articles)}", file=sys.stderr)
    out: TextIO = (
        open(args.out, "w", encoding="utf-8", newline="") if args.out else sys.stdout
    )
    try:
        with client:
            for line in _lines(args, client, articles, failures):
                out.write(line)
    finally:
        if args.out:
            out.close()

    print(f"[summary] articles={len(articles)}, failed_fetches={len(failures)}", file=sys.stderr)
    if args.report:
        report = {"origin": client.origin, "articles": len(articles), "failed_urls": failures}
        report_path = Path(args.report)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(json.dumps(report, ensure_ascii=False, indent=2), encoding="utf-8")
    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution
    raise SystemExit(main())
