"""ルートの発見・重複排除・割り当てを担うフロンティア。"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .routes import ROOT_ROUTE, normalize_route

logger = logging.getLogger(__name__)


class RouteState(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class Route:
    """サイト内の正規パス 1 件と、その訪問状態。"""

    path: str
    depth: int = 0
    discovered_from: str | None = None
    state: RouteState = RouteState.PENDING


class Frontier:
    """保留中ルートの FIFO キューと訪問済み集合の組。

    すべての変更は 1 つの ``asyncio.Condition`` の下で行われるため、
    複数ワーカーから呼ばれても重複や更新の取りこぼしは起きません。
    """

    def __init__(self, *, crawl: bool = True, max_depth: int | None = None) -> None:
        self._crawl = crawl
        self._max_depth = max_depth
        self._pending: deque[Route] = deque()
        self._routes: dict[str, Route] = {}
        self._in_progress = 0
        self._closed = False
        self._condition = asyncio.Condition()

    @property
    def routes(self) -> dict[str, Route]:
        return dict(self._routes)

    @property
    def in_progress(self) -> int:
        return self._in_progress

    @property
    def pending(self) -> int:
        return len(self._pending)

    def seed(self, paths: Iterable[str]) -> list[Route]:
        """深さ 0 のシードを登録します。空なら既定のエントリルートを使います。"""

        seeds = [path for path in paths] or [ROOT_ROUTE]
        created: list[Route] = []
        for path in seeds:
            route = self._enqueue(normalize_route(path), depth=0, parent=None)
            if route is not None:
                created.append(route)
        logger.info("シードルートを %d 件登録しました。", len(created))
        return created

    async def claim_next(self) -> Route | None:
        """先頭の保留ルートを取り出し、処理中として返します。

        保留が空でも処理中のルートが残っていれば新しい発見を待ちます。
        保留も処理中もなければ ``None`` を返します。
        """

        async with self._condition:
            while True:
                if self._closed:
                    return None
                if self._pending:
                    route = self._pending.popleft()
                    route.state = RouteState.IN_PROGRESS
                    self._in_progress += 1
                    return route
                if self._in_progress == 0:
                    self._condition.notify_all()
                    return None
                await self._condition.wait()

    async def report_discovered(self, parent: Route, links: Iterable[str]) -> list[Route]:
        """発見したリンクのうち未訪問のものを保留キューへ追加します。"""

        if not self._crawl:
            return []
        depth = parent.depth + 1
        if self._max_depth is not None and depth > self._max_depth:
            return []
        async with self._condition:
            created = [
                route
                for route in (
                    self._enqueue(normalize_route(link), depth=depth, parent=parent.path)
                    for link in links
                )
                if route is not None
            ]
            if created:
                self._condition.notify_all()
        if created:
            logger.debug("%s から %d 件の新規ルートを発見しました。", parent.path, len(created))
        return created

    async def complete(self, route: Route, *, ok: bool) -> None:
        async with self._condition:
            if route.state is not RouteState.IN_PROGRESS:
                raise RuntimeError(f"処理中ではないルートを完了しようとしました: {route.path}")
            route.state = RouteState.DONE if ok else RouteState.FAILED
            self._in_progress -= 1
            self._condition.notify_all()

    async def close(self) -> None:
        """新しいルートの割り当てを止め、待機中のワーカーを起こします。"""

        async with self._condition:
            self._closed = True
            self._condition.notify_all()

    def _enqueue(self, path: str, *, depth: int, parent: str | None) -> Route | None:
        if path in self._routes:
            return None
        route = Route(path=path, depth=depth, discovered_from=parent)
        self._routes[path] = route
        self._pending.append(route)
        return route
