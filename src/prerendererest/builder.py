"""ソースディレクトリを静的スナップショットへ変換する中核オーケストレーター。"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from typing import Callable

from playwright.async_api import Error as PlaywrightError

from .config import RunConfig
from .errors import ConfigurationError, EngineStartError
from .frontier import Frontier
from .rendering import PlaywrightEngine, RenderEngine
from .report import RunReport
from .safety import check_fallback_conflict, write_fallback_page
from .server import SourceServer
from .workers import RenderWorkerPool

EngineFactory = Callable[[RunConfig], AbstractAsyncContextManager[RenderEngine]]


class PrerenderBuilder:
    """安全確認・配信・レンダリング・書き出しを統括する高レベルパイプライン。"""

    def __init__(self, config: RunConfig, engine_factory: EngineFactory | None = None) -> None:
        self.config = config
        self._engine_factory: EngineFactory = engine_factory or PlaywrightEngine
        self._logger = logging.getLogger(self.__class__.__module__ + "." + self.__class__.__name__)

    async def build(self) -> RunReport:
        config = self.config
        # 致命的なエラーはワーカー起動前にすべて同期的に送出する
        check_fallback_conflict(config)
        if config.write_fallback:
            write_fallback_page(config)

        frontier = Frontier(crawl=config.crawl, max_depth=config.max_depth)
        frontier.seed(config.seeds)
        report = RunReport(fail_on_error=config.fail_on_error)

        server = SourceServer(config.source, port=config.port)
        try:
            base_url = server.start()
        except OSError as exc:
            raise ConfigurationError(f"ポート {config.port} で待ち受けできません: {exc}") from exc
        try:
            async with AsyncExitStack() as stack:
                try:
                    engine = await stack.enter_async_context(self._engine_factory(config))
                except PlaywrightError as exc:
                    raise EngineStartError(f"ブラウザを起動できませんでした: {exc}") from exc
                pool = RenderWorkerPool(config, frontier, engine, base_url, report)
                await pool.run()
        finally:
            await asyncio.to_thread(server.stop)

        self._logger.info(
            "レンダリングが完了しました (成功 %d 件 / 失敗 %d 件)。",
            len(report.succeeded),
            len(report.failed),
        )
        if report.failed:
            samples = ", ".join(entry.path for entry in report.failed[:3])
            self._logger.warning(
                "レンダリングに失敗したルートが %d 件あります。サンプル: %s",
                len(report.failed),
                samples,
            )
        return report


def build_snapshots(config: RunConfig, engine_factory: EngineFactory | None = None) -> RunReport:
    builder = PrerenderBuilder(config, engine_factory=engine_factory)
    return asyncio.run(builder.build())
