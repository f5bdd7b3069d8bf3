"""Routes for streaming knowledge-base search and CSV export."""

from __future__ import annotations

from contextlib import closing
from datetime import datetime, timezone
from typing import Annotated, AsyncIterator, Iterable, Iterator, List, Union

import requests  # type: ignore[import-untyped]
import structlog
from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from fastapi.concurrency import iterate_in_threadpool
from fastapi.responses import StreamingResponse

from app.config import Settings, get_settings
from app.services.kb.client import KnowledgeBaseClient
from app.services.kb.csv_export import ARTICLE_HEADERS, CsvRow, iter_csv_lines, to_csv_row
from app.services.kb.errors import InvalidUrl, KnowledgeBaseError, SearchCancelled
from app.services.kb.models import ArticlePathInfo, ArticleRecord, ErrorEvent, SearchEvent, SearchMatch
from app.services.kb.search import (
    iter_article_records,
    iter_search_events,
    iter_search_matches,
    prepare,
)

logger = structlog.get_logger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"

router = APIRouter(prefix="/api", tags=["search"])


def get_http_session() -> requests.Session | None:
    """Upstream session override hook.

    None lets each request open (and close) its own ``requests.Session``.
    """
    return None


def _prepare_or_raise(
    help_center_url: str, settings: Settings, session: requests.Session | None
) -> tuple[KnowledgeBaseClient, List[ArticlePathInfo]]:
    try:
        return prepare(help_center_url, settings, session=session)
    except InvalidUrl as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except KnowledgeBaseError as exc:
        logger.error("walk_failed", url=help_center_url, error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to search the knowledge base",
        ) from exc


def _ndjson_stream(client: KnowledgeBaseClient, events: Iterator[SearchEvent]) -> Iterator[str]:
    try:
        with closing(events):  # type: ignore[type-var]
            for event in events:
                yield event.to_json() + "\n"
    except SearchCancelled:
        logger.info("stream_cancelled", origin=client.origin)
    except KnowledgeBaseError as exc:
        logger.error("stream_failed", origin=client.origin, error=str(exc))
        yield ErrorEvent(message=str(exc)).to_json() + "\n"
    except Exception as exc:
        logger.exception("stream_crashed", origin=client.origin)
        yield ErrorEvent(message=f"Unexpected error: {exc}").to_json() + "\n"
    finally:
        client.close()


async def _until_disconnect(
    request: Request, client: KnowledgeBaseClient, lines: Iterator[str]
) -> AsyncIterator[str]:
    """Relay ``lines`` from a worker thread, cancelling upstream fetches once the
    client goes away.
    """
    try:
        async for line in iterate_in_threadpool(lines):
            yield line
            if await request.is_disconnected():
                logger.info("client_disconnected", origin=client.origin)
                lines.close()  # type: ignore[attr-defined]
                return
    finally:
        client.cancel.set()


def _csv_stream(
    client: KnowledgeBaseClient,
    records: Iterator[Union[ArticleRecord, SearchMatch]],
    columns: int,
    include_context: bool,
) -> Iterator[str]:
    rows: Iterable[CsvRow] = (to_csv_row(record, include_context=include_context) for record in records)
    try:
        with closing(records):  # type: ignore[type-var]
            yield from iter_csv_lines(rows, columns)
    except SearchCancelled:
        logger.info("export_cancelled", origin=client.origin)
    finally:
        client.close()


@router.post("/search")
def search_stream(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    session: Annotated[requests.Session | None, Depends(get_http_session)],
    help_center_url: Annotated[str | None, Form(alias="helpCenterUrl")] = None,
    search_term: Annotated[str | None, Form(alias="searchTerm")] = None,
) -> StreamingResponse:
    """Stream ``info``/``result``/``progress``/``complete`` events as NDJSON."""
    if not help_center_url or not search_term:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Knowledge Base URL and search term are required",
        )
    client, articles = _prepare_or_raise(help_center_url, settings, session)
    events = iter_search_events(
        client,
        articles,
        search_term,
        progress_every=settings.kb_progress_every,
        workers=settings.kb_fetch_workers,
    )
    return StreamingResponse(
        _until_disconnect(request, client, _ndjson_stream(client, events)),
        media_type=NDJSON_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/export")
def export_csv(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    session: Annotated[requests.Session | None, Depends(get_http_session)],
    help_center_url: Annotated[str | None, Form(alias="helpCenterUrl")] = None,
    search_term: Annotated[str | None, Form(alias="searchTerm")] = None,
    search_html: Annotated[bool, Form(alias="searchHtml")] = False,
) -> StreamingResponse:
    """Export the article list, or the search results when a term is given."""
    if not help_center_url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Knowledge Base URL is required"
        )
    client, articles = _prepare_or_raise(help_center_url, settings, session)

    records: Iterator[Union[ArticleRecord, SearchMatch]]
    if search_term:
        records = iter_search_matches(
            client,
            articles,
            search_term,
            progress_every=settings.kb_progress_every,
            workers=settings.kb_fetch_workers,
        )
        include_context = search_html
        prefix = "kb-search"
    else:
        records = iter_article_records(client, articles, workers=settings.kb_fetch_workers)
        include_context = False
        prefix = "kb-export"

    columns = len(ARTICLE_HEADERS) + (1 if include_context else 0)
    today = datetime.now(timezone.utc).date().isoformat()
    return StreamingResponse(
        _until_disconnect(request, client, _csv_stream(client, records, columns, include_context)),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{prefix}-{today}.csv"',
            "X-Total-Articles": str(len(articles)),
        },
    )
