"""Exceptions raised while crawling and searching a knowledge base."""

from __future__ import annotations


class KnowledgeBaseError(Exception):
    """Base class for knowledge-base crawl and search failures."""


class InvalidUrl(KnowledgeBaseError, ValueError):
    """Raised when the supplied knowledge-base URL is not an absolute http(s) URL."""


class UpstreamFetchFailed(KnowledgeBaseError):
    """Raised when an upstream document cannot be fetched."""

    def __init__(self, message: str, status: int | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


class ParseFailure(UpstreamFetchFailed):
    """Raised when an upstream document is not the JSON shape we expect."""


class SearchCancelled(KnowledgeBaseError):
    """Raised when a fetch is attempted after the run was cancelled."""
