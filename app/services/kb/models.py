"""Typed models for the knowledge-base tree, search matches and stream events."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Tuple, TypedDict, Union

import structlog

from app.services.kb.errors import ParseFailure

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ArticleNode:
    id: int
    name: str
    content_url: str
    json_content_url: str


@dataclass(frozen=True)
class CategoryNode:
    id: int
    name: str
    content_url: str
    json_content_url: str


@dataclass(frozen=True)
class SectionNode:
    id: int
    name: str
    content: Tuple["ContentNode", ...]


@dataclass(frozen=True)
class ResourceLinkNode:
    id: int
    name: str
    link: str


ContentNode = Union[ArticleNode, CategoryNode, SectionNode, ResourceLinkNode]


def _require(item: Dict[str, Any], key: str) -> Any:
    try:
        return item[key]
    except (KeyError, TypeError) as exc:
        raise ParseFailure(f"content item is missing '{key}': {item!r}") from exc


def parse_node(item: Dict[str, Any]) -> ContentNode | None:
    """Build a typed node from one entry of a ``content`` array.

    Returns None for node types this service does not know about.
    """
    node_type = _require(item, "type")
    node_id = _require(item, "id")
    name = _require(item, "name")
    if node_type == "article":
        return ArticleNode(
            id=node_id,
            name=name,
            content_url=_require(item, "content_url"),
            json_content_url=_require(item, "json_content_url"),
        )
    if node_type == "category":
        return CategoryNode(
            id=node_id,
            name=name,
            content_url=item.get("content_url", ""),
            json_content_url=_require(item, "json_content_url"),
        )
    if node_type == "section":
        return SectionNode(id=node_id, name=name, content=parse_content(item.get("content") or []))
    if node_type == "resource_link":
        return ResourceLinkNode(id=node_id, name=name, link=item.get("link", ""))
    logger.warning("unknown_content_type", type=node_type, id=node_id)
    return None


def parse_content(items: Any) -> Tuple[ContentNode, ...]:
    if not isinstance(items, list):
        raise ParseFailure(f"expected a content list, got {type(items).__name__}")
    nodes = []
    for item in items:
        node = parse_node(item)
        if node is not None:
            nodes.append(node)
    return tuple(nodes)


@dataclass(frozen=True)
class ContentDocument:
    """A home or category document: a display name plus its content array."""

    name: str
    content: Tuple[ContentNode, ...]

    @classmethod
    def from_json(cls, payload: Any) -> "ContentDocument":
        if not isinstance(payload, dict):
            raise ParseFailure("expected a JSON object")
        return cls(name=_require(payload, "name"), content=parse_content(payload.get("content", [])))


@dataclass(frozen=True)
class ArticlePathInfo:
    article: ArticleNode
    category_path: Tuple[str, ...]

    @property
    def id(self) -> int:
        return self.article.id


@dataclass(frozen=True)
class ArticleDetail:
    id: int
    name: str
    content_url: str
    url: str
    html_content: str
    text_content: str

    @classmethod
    def from_json(cls, payload: Any, origin: str) -> "ArticleDetail":
        if not isinstance(payload, dict):
            raise ParseFailure("expected a JSON object")
        content_url = _require_str(payload, "content_url")
        return cls(
            id=_require(payload, "id"),
            name=_require_str(payload, "name"),
            content_url=content_url,
            url=f"{origin}{content_url}",
            html_content=_optional_str(payload, "html_content"),
            text_content=_optional_str(payload, "text_content"),
        )


def _require_str(item: Dict[str, Any], key: str) -> str:
    value = _require(item, key)
    if not isinstance(value, str):
        raise ParseFailure(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def _optional_str(item: Dict[str, Any], key: str) -> str:
    """Missing or null reads as empty; any other non-string is malformed."""
    value = item.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ParseFailure(f"'{key}' must be a string, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class MatchContext:
    heading: str
    context: str
    highlighted_context: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "heading": self.heading,
            "context": self.context,
            "highlightedContext": self.highlighted_context,
        }


@dataclass(frozen=True)
class SearchMatch:
    article_id: int
    article_title: str
    article_url: str
    category_hierarchy: Tuple[str, ...]
    matches: Tuple[MatchContext, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "articleId": self.article_id,
            "articleTitle": self.article_title,
            "articleUrl": self.article_url,
            "categoryHierarchy": list(self.category_hierarchy),
            "matches": [match.to_dict() for match in self.matches],
        }


@dataclass(frozen=True)
class ArticleRecord:
    """One row of the full article export."""

    name: str
    url: str
    category_path: Tuple[str, ...]


class FailedFetch(TypedDict):
    url: str
    kind: str
    error: str
    http_status: int | None


# Stream events. Each variant carries its wire tag in ``type`` and renders its
# payload with ``data()``; ``to_json`` produces one NDJSON line body.


class _Event(ABC):
    type: ClassVar[str]

    @abstractmethod
    def data(self) -> Dict[str, Any]: ...

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "data": self.data()}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass(frozen=True)
class InfoEvent(_Event):
    type: ClassVar[str] = "info"
    total_articles: int

    def data(self) -> Dict[str, Any]:
        return {"totalArticles": self.total_articles}


@dataclass(frozen=True)
class ResultEvent(_Event):
    type: ClassVar[str] = "result"
    match: SearchMatch

    def data(self) -> Dict[str, Any]:
        return self.match.to_dict()


@dataclass(frozen=True)
class ProgressEvent(_Event):
    type: ClassVar[str] = "progress"
    processed: int
    found: int
    total: int

    def data(self) -> Dict[str, Any]:
        return {"processed": self.processed, "found": self.found, "total": self.total}


@dataclass(frozen=True)
class CompleteEvent(_Event):
    type: ClassVar[str] = "complete"
    total_found: int
    total_processed: int

    def data(self) -> Dict[str, Any]:
        return {"totalFound": self.total_found, "totalProcessed": self.total_processed}


@dataclass(frozen=True)
class ErrorEvent(_Event):
    type: ClassVar[str] = "error"
    message: str

    def data(self) -> Dict[str, Any]:
        return {"message": self.message}


SearchEvent = Union[InfoEvent, ResultEvent, ProgressEvent, CompleteEvent, ErrorEvent]
