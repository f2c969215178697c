"""ルートごとの結果を集計し、終了コードを決めるレポーター。"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .rendering import RenderOutcome, RenderResult


@dataclass(slots=True)
class RouteOutcome:
    path: str
    outcome: RenderOutcome
    elapsed: float
    output: Path | None = None
    error: str | None = None
    blocked_requests: int = 0


@dataclass(slots=True)
class RunReport:
    """1 回の実行で試行した全ルートの結果。"""

    fail_on_error: bool = False
    outcomes: list[RouteOutcome] = field(default_factory=list)

    def record(self, result: RenderResult, output: Path | None = None, error: str | None = None) -> RouteOutcome:
        outcome = result.outcome
        if error is not None and outcome is RenderOutcome.SUCCESS:
            outcome = RenderOutcome.NAVIGATION_ERROR
        entry = RouteOutcome(
            path=result.route.path,
            outcome=outcome,
            elapsed=result.elapsed,
            output=output,
            error=error or result.error,
            blocked_requests=len(result.blocked_requests),
        )
        self.outcomes.append(entry)
        return entry

    @property
    def succeeded(self) -> list[RouteOutcome]:
        return [entry for entry in self.outcomes if entry.outcome is RenderOutcome.SUCCESS]

    @property
    def failed(self) -> list[RouteOutcome]:
        return [entry for entry in self.outcomes if entry.outcome is not RenderOutcome.SUCCESS]

    @property
    def written(self) -> list[Path]:
        return [entry.output for entry in self.outcomes if entry.output is not None]

    def exit_code(self) -> int:
        if self.fail_on_error and self.failed:
            return 1
        return 0

    def to_summary(self) -> dict[str, Any]:
        summary: dict[str, Any] = {
            "routes": len(self.outcomes),
            "rendered": len(self.succeeded),
            "failed": len(self.failed),
            "blocked_requests": sum(entry.blocked_requests for entry in self.outcomes),
        }
        if self.failed:
            summary["failures"] = [
                {"route": entry.path, "outcome": entry.outcome.value, "error": entry.error}
                for entry in sorted(self.failed, key=lambda item: item.path)
            ]
        return summary

    def to_json(self) -> str:
        return json.dumps(self.to_summary(), ensure_ascii=False)
