"""prerendererest の実行設定モデル群。"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

from .errors import ConfigurationError
from .routes import unique_routes

DEFAULT_SOURCE = Path("./docs")
DEFAULT_PORT = 45678
DEFAULT_CONCURRENCY = 4
DEFAULT_USER_AGENT = "Prerendererest"
DEFAULT_BROWSER_ARGS = ("--no-sandbox", "--disable-setuid-sandbox")

# CLI で受け付ける minify オプション名とデータクラス上のフィールド名の対応
_MINIFY_KEYS = {
    "collapseWhitespace": "collapse_whitespace",
    "removeComments": "remove_comments",
    "minifyCSS": "minify_css",
    "minifyJS": "minify_js",
    "keepClosingTags": "keep_closing_tags",
    "keepHtmlAndHeadOpeningTags": "keep_html_and_head_opening_tags",
}


@dataclass(frozen=True, slots=True)
class Viewport:
    """レンダリング時のブラウザビューポート。"""

    width: int = 480
    height: int = 850

    def as_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True, slots=True)
class MinifyOptions:
    """HTML 縮小化の設定。既定値は空白の圧縮とコメント除去です。"""

    collapse_whitespace: bool = True
    remove_comments: bool = True
    minify_css: bool = False
    minify_js: bool = False
    keep_closing_tags: bool = True
    keep_html_and_head_opening_tags: bool = True


@dataclass(frozen=True, slots=True)
class RunConfig:
    """1 回のプリレンダリング実行を束ねる不変の設定。"""

    source: Path = DEFAULT_SOURCE
    destination: Path | None = None
    port: int = DEFAULT_PORT
    concurrency: int = DEFAULT_CONCURRENCY
    crawl: bool = True
    include: tuple[str, ...] = ()
    max_depth: int | None = None
    headless: bool = True
    viewport: Viewport = field(default_factory=Viewport)
    user_agent: str = DEFAULT_USER_AGENT
    remove_script_tags: bool = False
    async_script_tags: bool = False
    remove_style_tags: bool = False
    inline_css: bool = False
    skip_third_party_requests: bool = False
    minify: MinifyOptions | None = field(default_factory=MinifyOptions)
    skip_existing_check: bool = False
    write_fallback: bool = False
    fail_on_error: bool = False
    wait_until: str = "networkidle"
    render_timeout: float = 30.0
    max_render_attempts: int = 2
    timeout_backoff_factor: float = 1.6
    post_render_delay: float = 0.0
    launch_options: Mapping[str, Any] | None = None
    browser_args: Sequence[str] = DEFAULT_BROWSER_ARGS

    @property
    def output_root(self) -> Path:
        return self.destination if self.destination is not None else self.source

    @property
    def seeds(self) -> tuple[str, ...]:
        return self.include or ("/",)

    @classmethod
    def from_args(
        cls,
        source: Path,
        destination: Optional[Path] = None,
        include: Optional[Iterable[str]] = None,
        viewport: Optional[Viewport] = None,
        minify: MinifyOptions | None | bool = True,
        launch_options: Mapping[str, Any] | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> "RunConfig":
        """既定値の上に CLI 由来の上書き値をマージして検証済み設定を作ります。"""

        if not source.exists():
            raise ConfigurationError(f"ソースディレクトリが見つかりません: {source}")
        if not source.is_dir():
            raise ConfigurationError(f"ソースパスはディレクトリではありません: {source}")
        if destination is not None and destination.exists() and not destination.is_dir():
            raise ConfigurationError(f"出力パスがディレクトリではありません: {destination}")

        kwargs: dict[str, Any] = dict(overrides or {})
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(kwargs) - known)
        if unknown:
            raise ConfigurationError(f"未知の設定項目です: {', '.join(unknown)}")

        if minify is True:
            minify_options: MinifyOptions | None = MinifyOptions()
        elif minify is False or minify is None:
            minify_options = None
        else:
            minify_options = minify

        config = cls(
            source=source,
            destination=destination,
            include=tuple(unique_routes(include or ())),
            viewport=viewport or Viewport(),
            minify=minify_options,
            launch_options=dict(launch_options) if launch_options else None,
            **kwargs,
        )
        config.validate()
        return config

    def validate(self) -> None:
        errors: list[str] = []
        if self.concurrency < 1:
            errors.append("concurrency には 1 以上の整数を指定してください。")
        if not 0 <= self.port <= 65535:
            errors.append("port には 0 から 65535 の整数を指定してください。")
        if self.max_depth is not None and self.max_depth < 0:
            errors.append("max_depth には 0 以上の整数を指定してください。")
        if self.render_timeout <= 0:
            errors.append("render_timeout には 0 より大きい数値を指定してください。")
        if self.max_render_attempts < 1:
            errors.append("max_render_attempts には 1 以上の整数を指定してください。")
        if self.wait_until not in ("load", "domcontentloaded", "networkidle", "commit"):
            errors.append(f"wait_until が不正です: {self.wait_until}")
        if self.viewport.width < 1 or self.viewport.height < 1:
            errors.append("viewport の幅と高さには 1 以上の整数を指定してください。")
        if errors:
            raise ConfigurationError(" ".join(errors))


def parse_include(raw: str | None) -> list[str]:
    """カンマ区切りのルート一覧を分解します。"""

    if not raw:
        return []
    return [chunk.strip() for chunk in raw.split(",") if chunk.strip()]


def parse_viewport(raw: str | None) -> Viewport | None:
    """``1200,800`` または ``{"width":1200,"height":800}`` をビューポートへ変換します。"""

    if raw is None or not raw.strip():
        return None
    text = raw.strip()
    if text.startswith("{"):
        payload = _load_json_object(text, "--viewport")
        width, height = payload.get("width"), payload.get("height")
    else:
        chunks = [chunk.strip() for chunk in text.replace("x", ",").split(",")]
        if len(chunks) != 2:
            raise ConfigurationError(f"--viewport は 幅,高さ の形式で指定してください: {raw}")
        width, height = chunks
    try:
        viewport = Viewport(width=int(width), height=int(height))  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"--viewport の値を整数として解釈できません: {raw}") from exc
    if viewport.width < 1 or viewport.height < 1:
        raise ConfigurationError(f"--viewport には正の整数を指定してください: {raw}")
    return viewport


def parse_minify_options(raw: str | None) -> MinifyOptions | None | bool:
    """``--minifyHtml`` の値を解釈します。

    省略時は ``True`` (既定値で縮小化)、``false`` で無効化、JSON オブジェクトは既定値へマージします。
    """

    if raw is None or not raw.strip():
        return True
    text = raw.strip()
    if text.lower() in ("false", "0", "off", "no"):
        return False
    if text.lower() in ("true", "1", "on", "yes"):
        return True
    payload = _load_json_object(text, "--minifyHtml")
    values: dict[str, bool] = {}
    for key, value in payload.items():
        name = _MINIFY_KEYS.get(key)
        if name is None:
            supported = ", ".join(_MINIFY_KEYS)
            raise ConfigurationError(f"--minifyHtml の未対応オプションです: {key} (対応: {supported})")
        if not isinstance(value, bool):
            raise ConfigurationError(f"--minifyHtml の {key} には true/false を指定してください。")
        values[name] = value
    return MinifyOptions(**values)


def parse_launch_options(raw: str | None) -> dict[str, Any] | None:
    if raw is None or not raw.strip():
        return None
    return _load_json_object(raw, "--launchOptions")


def _load_json_object(raw: str, flag: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{flag}: JSON の解析に失敗しました ({exc.msg})") from exc
    if not isinstance(parsed, dict):
        raise ConfigurationError(f"{flag}: JSON オブジェクトを指定してください。")
    return parsed
