"""Search orchestration: walk the tree, fetch each article, extract matches."""

from __future__ import annotations

import itertools
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import closing
from typing import Deque, Iterator, List, Optional, Sequence, Tuple

import requests  # type: ignore[import-untyped]
import structlog

from app.config import Settings, get_settings
from app.services.kb.client import KnowledgeBaseClient, build_client
from app.services.kb.errors import UpstreamFetchFailed
from app.services.kb.matcher import find_matches_in_html
from app.services.kb.models import (
    ArticleDetail,
    ArticlePathInfo,
    ArticleRecord,
    CompleteEvent,
    FailedFetch,
    InfoEvent,
    ProgressEvent,
    ResultEvent,
    SearchEvent,
    SearchMatch,
)
from app.services.kb.walker import walk_tree

logger = structlog.get_logger(__name__)

PROGRESS_EVERY = 25

DetailPair = Tuple[ArticlePathInfo, Optional[ArticleDetail]]


def prepare(
    help_center_url: str,
    settings: Settings,
    session: requests.Session | None = None,
    failures: List[FailedFetch] | None = None,
) -> tuple[KnowledgeBaseClient, List[ArticlePathInfo]]:
    """Resolve the origin and walk the tree.

    Every fatal error (bad URL, unreachable home document) surfaces here,
    before a caller starts emitting anything. The caller owns the returned
    client and must close it.
    """
    client = build_client(help_center_url, settings, session=session)
    try:
        articles = walk_tree(client, failures)
    except BaseException:
        client.close()
        raise
    return client, articles


def _fetch_detail(
    client: KnowledgeBaseClient,
    article: ArticlePathInfo,
    failures: List[FailedFetch] | None,
) -> ArticleDetail | None:
    try:
        return client.article(article.article)
    except UpstreamFetchFailed as exc:
        logger.warning(
            "article_fetch_failed",
            article_id=article.id,
            url=exc.url,
            status=exc.status,
            error=str(exc),
        )
        if failures is not None:
            failures.append(
                {
                    "url": exc.url or f"{client.origin}{article.article.json_content_url}",
                    "kind": "article",
                    "error": str(exc),
                    "http_status": exc.status,
                }
            )
        return None


def _fetch_details(
    client: KnowledgeBaseClient,
    articles: Sequence[ArticlePathInfo],
    workers: int,
    failures: List[FailedFetch] | None,
) -> Iterator[DetailPair]:
    """Yield ``(article, detail or None)`` in traversal order.

    With ``workers > 1`` details are fetched by a thread pool with at most
    ``workers`` requests in flight. Closing the iterator early sets the
    client's cancellation token so no further upstream requests start.
    """
    if workers <= 1:
        try:
            for article in articles:
                yield article, _fetch_detail(client, article, failures)
        except GeneratorExit:
            client.cancel.set()
            raise
        return

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="kb-fetch")
    remaining = iter(articles)
    pending: Deque[tuple[ArticlePathInfo, Future]] = deque()
    try:
        for article in itertools.islice(remaining, workers):
            pending.append((article, executor.submit(_fetch_detail, client, article, failures)))
        while pending:
            article, future = pending.popleft()
            next_article = next(remaining, None)
            if next_article is not None:
                pending.append(
                    (next_article, executor.submit(_fetch_detail, client, next_article, failures))
                )
            yield article, future.result()
    except GeneratorExit:
        client.cancel.set()
        raise
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def iter_search_events(
    client: KnowledgeBaseClient,
    articles: Sequence[ArticlePathInfo],
    term: str,
    *,
    progress_every: int = PROGRESS_EVERY,
    workers: int = 1,
    failures: List[FailedFetch] | None = None,
) -> Iterator[SearchEvent]:
    """Yield ``info``, then ``result``/``progress`` events, then ``complete``.

    A failed article counts as processed with no matches. Progress is
    reported every ``progress_every`` articles and always for the last one.
    """
    total = len(articles)
    yield InfoEvent(total_articles=total)

    processed = 0
    found = 0
    with closing(_fetch_details(client, articles, workers, failures)) as details:
        for article, detail in details:
            if detail is not None:
                try:
                    matches = find_matches_in_html(detail.html_content, term)
                except Exception:
                    logger.exception("article_match_failed", article_id=article.id, url=detail.url)
                    matches = []
                if matches:
                    found += 1
                    yield ResultEvent(
                        match=SearchMatch(
                            article_id=article.id,
                            article_title=detail.name,
                            article_url=detail.url,
                            category_hierarchy=article.category_path,
                            matches=tuple(matches),
                        )
                    )
            processed += 1
            if processed % progress_every == 0 or processed == total:
                yield ProgressEvent(processed=processed, found=found, total=total)

    logger.info("search_complete", origin=client.origin, found=found, processed=processed)
    yield CompleteEvent(total_found=found, total_processed=processed)


def iter_search_matches(
    client: KnowledgeBaseClient,
    articles: Sequence[ArticlePathInfo],
    term: str,
    *,
    progress_every: int = PROGRESS_EVERY,
    workers: int = 1,
    failures: List[FailedFetch] | None = None,
) -> Iterator[SearchMatch]:
    """Only the matches of ``iter_search_events``, in traversal order."""
    events = iter_search_events(
        client,
        articles,
        term,
        progress_every=progress_every,
        workers=workers,
        failures=failures,
    )
    with closing(events):
        for event in events:
            if isinstance(event, ResultEvent):
                yield event.match


def iter_article_records(
    client: KnowledgeBaseClient,
    articles: Sequence[ArticlePathInfo],
    *,
    workers: int = 1,
    failures: List[FailedFetch] | None = None,
) -> Iterator[ArticleRecord]:
    """Yield one export record per article, using the canonical name and URL.

    Articles whose detail cannot be fetched are skipped.
    """
    with closing(_fetch_details(client, articles, workers, failures)) as details:
        for article, detail in details:
            if detail is None:
                continue
            yield ArticleRecord(name=detail.name, url=detail.url, category_path=article.category_path)


def search(
    help_center_url: str,
    term: str,
    *,
    settings: Settings | None = None,
    session: requests.Session | None = None,
    failures: List[FailedFetch] | None = None,
) -> List[SearchMatch]:
    """Batch mode: return every article that matched ``term``."""
    settings = settings or get_settings()
    client, articles = prepare(help_center_url, settings, session=session, failures=failures)
    with client:
        return list(
            iter_search_matches(
                client,
                articles,
                term,
                progress_every=settings.kb_progress_every,
                workers=settings.kb_fetch_workers,
                failures=failures,
            )
        )
