"""Playwright を活用してルートをレンダリングするユーティリティ。"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    Request,
    Route as PlaywrightRoute,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .config import RunConfig
from .errors import RenderError
from .frontier import Route
from .routes import same_origin

logger = logging.getLogger(__name__)

_ALWAYS_ALLOWED_SCHEMES = ("data:", "blob:", "about:")


class RenderOutcome(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    NAVIGATION_ERROR = "navigation_error"


@dataclass(slots=True)
class PageSnapshot:
    """レンダリングエンジンが返す最終 DOM とネットワークの観測結果。"""

    html: str
    final_url: str
    requests: list[str] = field(default_factory=list)
    blocked_requests: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RenderResult:
    """1 ルート 1 試行分のレンダリング結果。"""

    route: Route
    url: str
    outcome: RenderOutcome
    elapsed: float
    html: str | None = None
    final_url: str | None = None
    requests: list[str] = field(default_factory=list)
    blocked_requests: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is RenderOutcome.SUCCESS


class RenderSession(Protocol):
    """ワーカー 1 つが専有するレンダリングセッション。"""

    async def render(self, url: str) -> PageSnapshot:
        """URL を開いて安定した DOM を返します。失敗時は ``RenderError`` を送出します。"""
        ...

    async def close(self) -> None:
        ...


class RenderEngine(Protocol):
    async def open_session(self, origin: str) -> RenderSession:
        ...


class PlaywrightSession:
    """1 つのブラウザコンテキストとページを使い回すセッション。"""

    def __init__(self, context: BrowserContext, page: Page, origin: str, config: RunConfig) -> None:
        self._context = context
        self._page = page
        self._origin = origin
        self._config = config
        self._requests: list[str] = []
        self._blocked: list[str] = []
        page.on("request", self._record_request)

    @classmethod
    async def create(cls, browser: Browser, origin: str, config: RunConfig) -> "PlaywrightSession":
        context = await browser.new_context(
            viewport=config.viewport.as_dict(),
            user_agent=config.user_agent,
        )
        try:
            page = await context.new_page()
            session = cls(context, page, origin, config)
            if config.skip_third_party_requests:
                await page.route("**/*", session._build_third_party_filter())
        except BaseException:
            await context.close()
            raise
        return session

    async def render(self, url: str) -> PageSnapshot:
        attempts = max(1, self._config.max_render_attempts)
        timeout = self._config.render_timeout
        for attempt in range(1, attempts + 1):
            self._requests = []
            self._blocked = []
            try:
                return await self._render_once(url, timeout)
            except PlaywrightTimeoutError as error:
                if attempt < attempts:
                    logger.warning(
                        "Playwright タイムアウト (%s, wait_until=%s, timeout=%.1fs)。再試行 (%d/%d)",
                        url,
                        self._config.wait_until,
                        timeout,
                        attempt,
                        attempts,
                    )
                    timeout *= max(1.0, self._config.timeout_backoff_factor)
                    await asyncio.sleep(0.2)
                    continue
                raise RenderError(
                    RenderOutcome.TIMEOUT,
                    f"レンダリングがタイムアウトしました: {url} attempts={attempts}",
                ) from error
            except PlaywrightError as error:
                raise RenderError(
                    RenderOutcome.NAVIGATION_ERROR,
                    f"ナビゲーションに失敗しました: {url} ({error.message})",
                ) from error
        raise RenderError(RenderOutcome.NAVIGATION_ERROR, f"レンダリング結果を取得できませんでした: {url}")

    async def close(self) -> None:
        try:
            await self._page.close()
        finally:
            await self._context.close()

    async def _render_once(self, url: str, timeout: float) -> PageSnapshot:
        response = await self._page.goto(
            url,
            wait_until=self._config.wait_until,  # type: ignore[arg-type]
            timeout=timeout * 1000,
        )
        if response is not None and response.status >= 400:
            raise RenderError(
                RenderOutcome.NAVIGATION_ERROR,
                f"HTTP {response.status} が返されました: {url}",
            )
        if self._config.post_render_delay > 0:
            await self._page.wait_for_timeout(self._config.post_render_delay * 1000)
        html = await self._page.content()
        return PageSnapshot(
            html=html,
            final_url=self._page.url,
            requests=list(self._requests),
            blocked_requests=list(self._blocked),
        )

    def _record_request(self, request: Request) -> None:
        self._requests.append(request.url)

    def _build_third_party_filter(self) -> Callable[[PlaywrightRoute], Awaitable[None]]:
        async def handler(route: PlaywrightRoute) -> None:
            url = route.request.url
            if url.startswith(_ALWAYS_ALLOWED_SCHEMES) or same_origin(url, self._origin):
                await route.continue_()
                return
            self._blocked.append(url)
            logger.debug("サードパーティリクエストを遮断しました: %s", url)
            await route.abort()

        return handler


class PlaywrightEngine:
    """Chromium を起動し、ワーカーごとのセッションを払い出すレンダリングエンジン。"""

    def __init__(self, config: RunConfig) -> None:
        self._config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    async def __aenter__(self) -> "PlaywrightEngine":
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(**self._launch_kwargs())
        except BaseException:
            await self._playwright.stop()
            self._playwright = None
            raise
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        except PlaywrightError:
            logger.debug("ブラウザのクローズ中に例外が発生しました。", exc_info=True)
        finally:
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    async def open_session(self, origin: str) -> PlaywrightSession:
        if self._browser is None:
            raise RuntimeError("ブラウザが起動していません。async with で PlaywrightEngine を開いてください。")
        return await PlaywrightSession.create(self._browser, origin, self._config)

    def _launch_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "headless": self._config.headless,
            "args": list(self._config.browser_args),
        }
        if self._config.launch_options:
            kwargs.update(self._config.launch_options)
        return kwargs
