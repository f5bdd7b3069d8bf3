"""HTTP client for a vendor-hosted knowledge base JSON API."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Sequence
from urllib.parse import urlsplit, urlunsplit

import requests  # type: ignore[import-untyped]
import structlog

from app.config import Settings
from app.services.kb.errors import InvalidUrl, ParseFailure, SearchCancelled, UpstreamFetchFailed
from app.services.kb.models import ArticleDetail, ArticleNode, CategoryNode, ContentDocument

logger = structlog.get_logger(__name__)

HOME_PATH = "/en/home.json"
DEFAULT_RETRIES = 3
BACKOFF_SECONDS = (0.5, 1.0, 2.0)
REQUEST_TIMEOUT = 20.0
RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})
DEFAULT_PORTS = {"http": 80, "https": 443}


def resolve_origin(raw_url: str) -> str:
    """Reduce a knowledge-base URL to ``scheme://host[:port]``.

    Raises InvalidUrl for anything that is not an absolute http(s) URL.
    """
    candidate = (raw_url or "").strip()
    parts = urlsplit(candidate)
    scheme = parts.scheme.lower()
    try:
        hostname = parts.hostname
        port = parts.port
    except ValueError as exc:
        raise InvalidUrl(f"Invalid URL provided: {raw_url!r}") from exc
    if scheme not in DEFAULT_PORTS or not hostname:
        raise InvalidUrl(f"Invalid URL provided: {raw_url!r}")

    host = f"[{hostname}]" if ":" in hostname else hostname
    if port is not None and port != DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"
    return urlunsplit((scheme, host, "", "", ""))


@dataclass
class FetchContext:
    session: requests.Session
    rate_limit_seconds: float
    user_agent: str
    timeout: float = REQUEST_TIMEOUT
    retries: int = DEFAULT_RETRIES
    backoff_seconds: Sequence[float] = BACKOFF_SECONDS
    cancel: threading.Event = field(default_factory=threading.Event)
    last_request_ts: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def raise_if_cancelled(self) -> None:
        if self.cancel.is_set():
            raise SearchCancelled("search was cancelled")

    def wait_for_rate_limit(self) -> None:
        if self.rate_limit_seconds <= 0:
            return
        # Pooled fetches share one clock.
        with self._lock:
            elapsed = time.monotonic() - self.last_request_ts
            if elapsed < self.rate_limit_seconds:
                self.cancel.wait(self.rate_limit_seconds - elapsed)
            self.last_request_ts = time.monotonic()

    def backoff(self, attempt: int) -> None:
        delays = self.backoff_seconds or (0.0,)
        self.cancel.wait(delays[min(attempt, len(delays) - 1)])


def polite_get(ctx: FetchContext, url: str) -> requests.Response:
    """GET with rate limit, retries, and backoff on 429/5xx."""
    headers = {"User-Agent": ctx.user_agent, "Accept": "application/json"}
    for attempt in range(ctx.retries):
        ctx.wait_for_rate_limit()
        ctx.raise_if_cancelled()
        last_attempt = attempt == ctx.retries - 1
        try:
            resp = ctx.session.get(url, headers=headers, timeout=ctx.timeout)
        except requests.RequestException:  # network / timeout
            if last_attempt:
                raise
            ctx.backoff(attempt)
            continue

        if resp.status_code in RETRY_STATUSES and not last_attempt:
            logger.debug("upstream_retry", url=url, status=resp.status_code, attempt=attempt + 1)
            ctx.backoff(attempt)
            continue
        resp.raise_for_status()
        return resp
    return resp  # pragma: no cover - logically unreachable


class KnowledgeBaseClient:
    """Typed access to the home, category and article documents of one origin."""

    def __init__(self, origin: str, ctx: FetchContext, owns_session: bool = False) -> None:
        self.origin = origin
        self.ctx = ctx
        self._owns_session = owns_session

    @property
    def cancel(self) -> threading.Event:
        return self.ctx.cancel

    def get_json(self, path: str, kind: str) -> Any:
        url = f"{self.origin}{path}"
        try:
            resp = polite_get(self.ctx, url)
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise UpstreamFetchFailed(
                f"Failed to fetch {kind}: {status}", status=status, url=url
            ) from exc
        except requests.RequestException as exc:
            raise UpstreamFetchFailed(f"Failed to fetch {kind}: {exc}", url=url) from exc
        try:
            return resp.json()
        except ValueError as exc:
            raise ParseFailure(
                f"Malformed JSON in {kind} response", status=resp.status_code, url=url
            ) from exc

    def home(self) -> ContentDocument:
        return ContentDocument.from_json(self.get_json(HOME_PATH, "home page"))

    def category(self, node: CategoryNode) -> ContentDocument:
        return ContentDocument.from_json(self.get_json(node.json_content_url, "category"))

    def article(self, node: ArticleNode) -> ArticleDetail:
        return ArticleDetail.from_json(self.get_json(node.json_content_url, "article"), self.origin)

    def close(self) -> None:
        if self._owns_session:
            self.ctx.session.close()

    def __enter__(self) -> "KnowledgeBaseClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def build_client(
    help_center_url: str,
    settings: Settings,
    session: requests.Session | None = None,
    cancel: threading.Event | None = None,
) -> KnowledgeBaseClient:
    """Resolve the origin and wire a polite fetch context from settings."""
    origin = resolve_origin(help_center_url)
    ctx = FetchContext(
        session=session or requests.Session(),
        rate_limit_seconds=settings.kb_rate_limit_seconds,
        user_agent=settings.kb_user_agent,
        timeout=settings.kb_request_timeout_seconds,
        retries=settings.kb_request_retries,
        backoff_seconds=tuple(settings.kb_backoff_seconds),
        cancel=cancel or threading.Event(),
    )
    return KnowledgeBaseClient(origin, ctx, owns_session=session is None)
