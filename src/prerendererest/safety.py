"""レンダリング開始前の安全確認。"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .config import RunConfig
from .errors import ConfigurationError, SafetyViolation
from .routes import DEFAULT_DOCUMENT

FALLBACK_FILE_NAME = "200.html"

logger = logging.getLogger(__name__)


def check_fallback_conflict(config: RunConfig) -> None:
    """ソース・出力先に既存の ``200.html`` があれば実行全体を中止します。

    ``skip_existing_check`` が有効な場合は何もしません。
    """

    if config.skip_existing_check:
        logger.info("既存フォールバックファイルの確認をスキップします。")
        return
    for directory in _unique_dirs(config.source, config.output_root):
        candidate = directory / FALLBACK_FILE_NAME
        if candidate.exists():
            raise SafetyViolation(candidate)


def write_fallback_page(config: RunConfig) -> Path:
    """ソースの ``index.html`` を SPA 用フォールバックとして出力先へ複製します。"""

    shell = config.source / DEFAULT_DOCUMENT
    if not shell.is_file():
        raise ConfigurationError(f"フォールバックの元になる {DEFAULT_DOCUMENT} がありません: {shell}")
    target = config.output_root / FALLBACK_FILE_NAME
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(shell, target)
    logger.info("フォールバックページを出力しました: %s", target)
    return target


def _unique_dirs(*directories: Path) -> list[Path]:
    seen: set[Path] = set()
    ordered: list[Path] = []
    for directory in directories:
        key = directory.resolve()
        if key in seen:
            continue
        seen.add(key)
        ordered.append(directory)
    return ordered
