"""In-memory stand-in for the knowledge-base API, shared by the tests."""

from __future__ import annotations

import json
import threading
from types import SimpleNamespace
from typing import Any, Callable, Dict

import pytest
import requests  # type: ignore[import-untyped]

from app.config import Settings

ORIGIN = "https://help.example.com"


class FakeResponse:
    def __init__(self, url: str, status_code: int = 200, payload: Any = None, text: str | None = None):
        self.url = url
        self.status_code = status_code
        self._payload = payload
        self._text = text

    def json(self) -> Any:
        if self._text is not None:
            return json.loads(self._text)
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}", response=self)


class FakeSession:
    """Serves routes keyed by absolute URL.

    A route value may be a JSON payload, an int status, a FakeResponse, an
    exception to raise, or a list of those consumed one per call.
    """

    def __init__(self, routes: Dict[str, Any]):
        self.routes = routes
        self.calls: list[str] = []
        self.closed = False
        self._lock = threading.Lock()

    def get(self, url: str, headers: Dict[str, str] | None = None, timeout: float | None = None):
        with self._lock:
            self.calls.append(url)
            route = self.routes.get(url, 404)
            if isinstance(route, list):
                route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, Exception):
            raise route
        if isinstance(route, FakeResponse):
            return route
        if isinstance(route, int):
            return FakeResponse(url, status_code=route)
        return FakeResponse(url, payload=route)

    def close(self) -> None:
        self.closed = True


def article_item(article_id: int, name: str) -> Dict[str, Any]:
    return {
        "type": "article",
        "id": article_id,
        "name": name,
        "content_url": f"/en/articles/{article_id}",
        "json_content_url": f"/en/articles/{article_id}.json",
        "slim_content_url": f"/en/articles/{article_id}.slim.json",
    }


def category_item(category_id: int, name: str) -> Dict[str, Any]:
    return {
        "type": "category",
        "id": category_id,
        "name": name,
        "content_url": f"/en/categories/{category_id}",
        "json_content_url": f"/en/categories/{category_id}.json",
    }


def article_detail(article_id: int, name: str, html: str) -> Dict[str, Any]:
    return {
        "id": article_id,
        "name": name,
        "content_url": f"/en/articles/{article_id}",
        "html_content": html,
        "text_content": "",
    }


@pytest.fixture
def kb_routes() -> Dict[str, Any]:
    """Home -> [A, Cat -> [B, Broken(404)], link, Sec -> [C]]."""
    return {
        f"{ORIGIN}/en/home.json": {
            "type": "home",
            "name": "Home",
            "content": [
                article_item(1, "A"),
                category_item(10, "Cat"),
                {"type": "resource_link", "id": 30, "name": "Status", "link": "https://status.example.com"},
                {"type": "section", "id": 20, "name": "Sec", "content": [article_item(3, "C")]},
            ],
        },
        f"{ORIGIN}/en/categories/10.json": {
            "id": 10,
            "name": "Cat",
            "content": [article_item(2, "B"), category_item(11, "Broken")],
        },
        f"{ORIGIN}/en/categories/11.json": 404,
        f"{ORIGIN}/en/articles/1.json": article_detail(
            1,
            "A",
            "<h1>Intro</h1><p>This mentions apple once.</p><h2>Next</h2><p>No fruit here.</p>",
        ),
        f"{ORIGIN}/en/articles/2.json": article_detail(2, "B", "<p>Nothing relevant.</p>"),
        f"{ORIGIN}/en/articles/3.json": article_detail(
            3, "C", "<h2>Apple pie</h2><p>Bake the APPLE. Serve warm!</p>"
        ),
    }


@pytest.fixture
def make_session() -> Callable[[Dict[str, Any]], FakeSession]:
    return FakeSession


@pytest.fixture
def fake_session(kb_routes: Dict[str, Any]) -> FakeSession:
    return FakeSession(kb_routes)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        KB_REQUEST_RETRIES=1,
        KB_BACKOFF_SECONDS=[0.0],
        KB_RATE_LIMIT_SECONDS=0.0,
        KB_PROGRESS_EVERY=25,
        KB_FETCH_WORKERS=1,
        LOG_JSON=False,
    )


@pytest.fixture
def kb() -> SimpleNamespace:
    """Builders for tests that need their own tree."""
    return SimpleNamespace(
        origin=ORIGIN,
        article_item=article_item,
        category_item=category_item,
        article_detail=article_detail,
        response=FakeResponse,
    )
