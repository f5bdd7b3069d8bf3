"""Flatten the knowledge-base tree into articles with their category paths."""

from __future__ import annotations

from typing import List, Sequence, Tuple

import structlog

from app.services.kb.client import KnowledgeBaseClient
from app.services.kb.errors import UpstreamFetchFailed
from app.services.kb.models import (
    ArticleNode,
    ArticlePathInfo,
    CategoryNode,
    ContentNode,
    FailedFetch,
    ResourceLinkNode,
    SectionNode,
)

logger = structlog.get_logger(__name__)


def walk_tree(
    client: KnowledgeBaseClient, failures: List[FailedFetch] | None = None
) -> List[ArticlePathInfo]:
    """Return every reachable article in tree pre-order.

    The home document is required: its failure propagates as
    UpstreamFetchFailed (or ParseFailure). A failed category only prunes its
    own subtree; the failure is logged and appended to ``failures`` if given.
    """
    home = client.home()
    articles: List[ArticlePathInfo] = []
    _walk_content(client, home.content, (home.name,), articles, failures)
    logger.info("walk_complete", origin=client.origin, articles=len(articles))
    return articles


def _walk_content(
    client: KnowledgeBaseClient,
    content: Sequence[ContentNode],
    category_path: Tuple[str, ...],
    articles: List[ArticlePathInfo],
    failures: List[FailedFetch] | None,
) -> None:
    for node in content:
        if isinstance(node, ArticleNode):
            articles.append(ArticlePathInfo(article=node, category_path=category_path))
        elif isinstance(node, CategoryNode):
            try:
                category = client.category(node)
            except UpstreamFetchFailed as exc:
                logger.warning(
                    "category_fetch_failed",
                    category_id=node.id,
                    url=exc.url,
                    status=exc.status,
                    error=str(exc),
                )
                if failures is not None:
                    failures.append(
                        {
                            "url": exc.url or f"{client.origin}{node.json_content_url}",
                            "kind": "category",
                            "error": str(exc),
                            "http_status": exc.status,
                        }
                    )
                continue
            _walk_content(
                client, category.content, category_path + (category.name,), articles, failures
            )
        elif isinstance(node, SectionNode):
            _walk_content(client, node.content, category_path + (node.name,), articles, failures)
        elif isinstance(node, ResourceLinkNode):
            continue  # external link, nothing to traverse
        else:  # pragma: no cover - new node types must be handled above
            raise TypeError(f"unhandled content node: {node!r}")
