"""フロンティアからルートを取り出してレンダリングするワーカープール。"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from .config import RunConfig
from .errors import RenderError
from .frontier import Frontier, Route
from .pipeline import transform_html, write_snapshot
from .rendering import RenderEngine, RenderOutcome, RenderResult, RenderSession
from .report import RunReport
from .routes import extract_links

logger = logging.getLogger(__name__)


class RenderWorkerPool:
    """``concurrency`` 個のワーカーで並行にレンダリングします。

    各ワーカーは生存期間中 1 つのセッションを専有し、終了時 (失敗・キャンセル時を含む) に閉じます。
    1 ルートの失敗はそのルートの結果として記録され、他のワーカーへは波及しません。
    """

    def __init__(
        self,
        config: RunConfig,
        frontier: Frontier,
        engine: RenderEngine,
        base_url: str,
        report: RunReport,
    ) -> None:
        self._config = config
        self._frontier = frontier
        self._engine = engine
        self._base_url = base_url.rstrip("/")
        self._report = report
        self._logger = logging.getLogger(self.__class__.__module__ + "." + self.__class__.__name__)
        self._progress_lock = asyncio.Lock()
        self._completed = 0

    async def run(self) -> RunReport:
        workers = [
            asyncio.create_task(self._worker(index), name=f"render-worker-{index}")
            for index in range(self._config.concurrency)
        ]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            await self._frontier.close()
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise
        return self._report

    async def _worker(self, index: int) -> None:
        session = await self._engine.open_session(self._base_url)
        try:
            while True:
                route = await self._frontier.claim_next()
                if route is None:
                    break
                await self._process(session, route)
        finally:
            try:
                await session.close()
            except Exception:
                self._logger.debug("セッションクローズ中に例外が発生しました。", exc_info=True)
            self._logger.debug("ワーカー %d を終了しました。", index)

    async def _process(self, session: RenderSession, route: Route) -> None:
        try:
            result = await self._render(session, route)
        except BaseException:
            await self._frontier.complete(route, ok=False)
            raise
        if not result.ok:
            self._logger.error("レンダリングに失敗しました: %s (%s)", route.path, result.error)
            self._report.record(result)
            await self._frontier.complete(route, ok=False)
            await self._notify_progress(route)
            return

        output: Path | None = None
        error: str | None = None
        page_url = result.final_url or result.url
        try:
            try:
                markup = transform_html(result.html or "", self._config, page_url)
                output = write_snapshot(self._config, route.path, markup)
            except Exception as exc:
                error = f"出力に失敗しました: {exc}"
                self._logger.error("%s の書き出しに失敗しました: %s", route.path, exc, exc_info=exc)
            if error is None and self._config.crawl:
                try:
                    links = extract_links(result.html or "", page_url)
                    await self._frontier.report_discovered(route, links)
                except Exception as exc:
                    error = f"リンクの抽出に失敗しました: {exc}"
                    self._logger.error("%s のリンク抽出に失敗しました: %s", route.path, exc, exc_info=exc)
            self._report.record(result, output=output, error=error)
        finally:
            # 例外やキャンセル時もルートを完了させ、フロンティアの終了判定を止めない
            await self._frontier.complete(route, ok=error is None)
        await self._notify_progress(route)

    async def _render(self, session: RenderSession, route: Route) -> RenderResult:
        url = self._base_url + route.path
        started = time.perf_counter()
        try:
            snapshot = await session.render(url)
        except RenderError as exc:
            outcome = RenderOutcome(exc.outcome)
            return RenderResult(
                route=route,
                url=url,
                outcome=outcome,
                elapsed=time.perf_counter() - started,
                error=str(exc),
            )
        except Exception as exc:
            self._logger.debug("予期しないレンダリング例外: %s", url, exc_info=True)
            return RenderResult(
                route=route,
                url=url,
                outcome=RenderOutcome.NAVIGATION_ERROR,
                elapsed=time.perf_counter() - started,
                error=f"予期しないエラー: {exc}",
            )
        if snapshot.blocked_requests:
            self._logger.info(
                "%s でサードパーティリクエストを %d 件遮断しました。",
                route.path,
                len(snapshot.blocked_requests),
            )
        return RenderResult(
            route=route,
            url=url,
            outcome=RenderOutcome.SUCCESS,
            elapsed=time.perf_counter() - started,
            html=snapshot.html,
            final_url=snapshot.final_url,
            requests=list(snapshot.requests),
            blocked_requests=list(snapshot.blocked_requests),
        )

    async def _notify_progress(self, route: Route) -> None:
        async with self._progress_lock:
            self._completed += 1
            current = self._completed
        known = len(self._frontier.routes)
        self._logger.info("レンダリング中 (%d/%d): %s", current, known, route.path)
