"""プリレンダリング実行中に送出される例外群。"""

from __future__ import annotations

from pathlib import Path


class PrerenderError(RuntimeError):
    """prerendererest が送出する例外の基底クラス。"""


class ConfigurationError(PrerenderError):
    """設定値やオプション文字列が不正な場合に送出される例外。"""


class SafetyViolation(PrerenderError):
    """既存のフォールバックファイルを上書きしそうな場合に送出される例外。"""

    def __init__(self, path: Path) -> None:
        self.path = path
        message = (
            f"{path.name} が既に存在します: {path}。"
            " 同じディレクトリで二度実行すると手書きのフォールバックページを上書きする恐れがあります。"
            " 問題がなければ --skipExistingCheck を指定してください。"
        )
        super().__init__(message)


class RenderError(PrerenderError):
    """1 ルートのレンダリングに失敗したことを表す例外。"""

    def __init__(self, outcome: str, message: str) -> None:
        self.outcome = outcome
        super().__init__(message)


class EngineStartError(PrerenderError):
    """ブラウザ (レンダリングエンジン) を起動できなかった場合に送出される例外。"""
