from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from prerendererest.config import RunConfig
from prerendererest.errors import RenderError
from prerendererest.rendering import PageSnapshot, PlaywrightSession, RenderOutcome

ORIGIN = "http://127.0.0.1:45678"


class StubPage:
    def __init__(self, responses: list[object], html: str = "<html><body>ok</body></html>") -> None:
        self._responses = list(responses)
        self._html = html
        self.listeners: dict[str, list] = {}
        self.gotos: list[tuple[str, str, float]] = []
        self.url = ""
        self.closed = False

    def on(self, event: str, callback) -> None:
        self.listeners.setdefault(event, []).append(callback)

    async def goto(self, url: str, wait_until: str, timeout: float):
        self.gotos.append((url, wait_until, timeout))
        self.url = url
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        for callback in self.listeners.get("request", []):
            callback(SimpleNamespace(url=url))
            callback(SimpleNamespace(url=ORIGIN + "/app.js"))
        return response

    async def wait_for_timeout(self, timeout: float) -> None:
        return None

    async def content(self) -> str:
        return self._html

    async def close(self) -> None:
        self.closed = True


class StubContext:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class StubRoute:
    def __init__(self, url: str) -> None:
        self.request = SimpleNamespace(url=url)
        self.action: str | None = None

    async def continue_(self) -> None:
        self.action = "continue"

    async def abort(self) -> None:
        self.action = "abort"


def _session(tmp_path: Path, page: StubPage, **overrides) -> tuple[PlaywrightSession, StubContext]:
    config = RunConfig.from_args(tmp_path, overrides=overrides)
    context = StubContext()
    return PlaywrightSession(context, page, ORIGIN, config), context  # type: ignore[arg-type]


def test_third_party_filter_blocks_only_foreign_origins(tmp_path: Path) -> None:
    session, _ = _session(tmp_path, StubPage([]), skip_third_party_requests=True)
    handler = session._build_third_party_filter()
    routes = {
        url: StubRoute(url)
        for url in (
            ORIGIN + "/static/app.js",
            "data:image/png;base64,AAAA",
            "blob:http://127.0.0.1:45678/1234",
            "https://jsonplaceholder.typicode.com/posts/1",
            "http://127.0.0.1:9999/api",
        )
    }

    async def scenario() -> None:
        for route in routes.values():
            await handler(route)  # type: ignore[arg-type]

    asyncio.run(scenario())

    actions = {url: route.action for url, route in routes.items()}
    assert actions == {
        ORIGIN + "/static/app.js": "continue",
        "data:image/png;base64,AAAA": "continue",
        "blob:http://127.0.0.1:45678/1234": "continue",
        "https://jsonplaceholder.typicode.com/posts/1": "abort",
        "http://127.0.0.1:9999/api": "abort",
    }
    assert session._blocked == ["https://jsonplaceholder.typicode.com/posts/1", "http://127.0.0.1:9999/api"]


def test_render_returns_snapshot_with_observed_requests(tmp_path: Path) -> None:
    page = StubPage([SimpleNamespace(status=200)], html="<html><body><h1>Home</h1></body></html>")
    session, context = _session(tmp_path, page, wait_until="load")

    snapshot = asyncio.run(session.render(ORIGIN + "/"))

    assert isinstance(snapshot, PageSnapshot)
    assert snapshot.html == "<html><body><h1>Home</h1></body></html>"
    assert snapshot.final_url == ORIGIN + "/"
    assert snapshot.requests == [ORIGIN + "/", ORIGIN + "/app.js"]
    assert snapshot.blocked_requests == []
    assert page.gotos == [(ORIGIN + "/", "load", 30000)]

    asyncio.run(session.close())
    assert page.closed and context.closed


def test_render_retries_timeouts_with_backoff_then_reports_timeout(tmp_path: Path) -> None:
    page = StubPage([PlaywrightTimeoutError("Timeout 1000ms exceeded.")] * 2)
    session, _ = _session(tmp_path, page, render_timeout=1, max_render_attempts=2, timeout_backoff_factor=1.5)

    with pytest.raises(RenderError) as exc:
        asyncio.run(session.render(ORIGIN + "/slow"))

    assert exc.value.outcome is RenderOutcome.TIMEOUT
    assert [timeout for _, _, timeout in page.gotos] == pytest.approx([1000, 1500])


def test_timeout_followed_by_success_is_not_a_failure(tmp_path: Path) -> None:
    page = StubPage([PlaywrightTimeoutError("Timeout exceeded."), SimpleNamespace(status=200)])
    session, _ = _session(tmp_path, page, max_render_attempts=2)

    snapshot = asyncio.run(session.render(ORIGIN + "/flaky"))

    assert snapshot.html
    assert len(page.gotos) == 2


def test_http_error_status_is_a_navigation_error(tmp_path: Path) -> None:
    page = StubPage([SimpleNamespace(status=404)])
    session, _ = _session(tmp_path, page)

    with pytest.raises(RenderError) as exc:
        asyncio.run(session.render(ORIGIN + "/missing"))

    assert exc.value.outcome is RenderOutcome.NAVIGATION_ERROR
    assert "404" in str(exc.value)
    assert len(page.gotos) == 1


def test_playwright_error_is_a_navigation_error(tmp_path: Path) -> None:
    page = StubPage([PlaywrightError("net::ERR_CONNECTION_REFUSED")])
    session, _ = _session(tmp_path, page)

    with pytest.raises(RenderError) as exc:
        asyncio.run(session.render(ORIGIN + "/"))

    assert exc.value.outcome is RenderOutcome.NAVIGATION_ERROR
    assert "ERR_CONNECTION_REFUSED" in str(exc.value)
