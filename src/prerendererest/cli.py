"""prerendererest のコマンドラインインターフェース。"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Iterable

from .builder import EngineFactory, build_snapshots
from .config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_PORT,
    DEFAULT_SOURCE,
    DEFAULT_USER_AGENT,
    RunConfig,
    parse_include,
    parse_launch_options,
    parse_minify_options,
    parse_viewport,
)
from .errors import ConfigurationError, EngineStartError, SafetyViolation

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIGURATION = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prerendererest",
        description="クライアントレンダリングのページを静的 HTML スナップショットへ変換します",
    )
    parser.add_argument("--source", dest="source", type=Path, default=DEFAULT_SOURCE, help="レンダリング対象のページを含むディレクトリ")
    parser.add_argument("--destination", dest="destination", type=Path, default=None, help="出力先ディレクトリ (省略時はソースと同じ)")
    parser.add_argument(
        "--headless",
        dest="headless",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="ブラウザを画面なしで起動する",
    )
    parser.add_argument(
        "--crawl",
        dest="crawl",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="レンダリング結果のリンクをたどって新しいルートを発見する (--no-crawl で無効化)",
    )
    parser.add_argument("--include", dest="include", type=str, default="", help="シードとするルートをカンマ区切りで指定")
    parser.add_argument("--maxDepth", "--max-depth", dest="max_depth", type=int, default=None, help="クロールする最大のリンク深さ")
    parser.add_argument(
        "--skipExistingCheck",
        "--skip-existing-check",
        dest="skip_existing_check",
        action="store_true",
        help="既存の 200.html の確認を行わない",
    )
    parser.add_argument(
        "--writeFallback",
        "--write-fallback",
        dest="write_fallback",
        action="store_true",
        help="ソースの index.html を SPA 用の 200.html として出力先へ複製する",
    )

    content_group = parser.add_argument_group("HTML 変換設定")
    content_group.add_argument("--removeScriptTags", "--remove-script-tags", dest="remove_script_tags", action="store_true", help="script 要素を取り除く")
    content_group.add_argument("--asyncScriptTags", "--async-script-tags", dest="async_script_tags", action="store_true", help="残した script 要素に async 属性を付ける")
    content_group.add_argument("--removeStyleTags", "--remove-style-tags", dest="remove_style_tags", action="store_true", help="style 要素を取り除く")
    content_group.add_argument("--inlineCss", "--inline-css", dest="inline_css", action="store_true", help="参照しているスタイルシートを style 要素として埋め込む")
    content_group.add_argument(
        "--minifyHtml",
        "--minify-html",
        dest="minify_html",
        type=str,
        default=None,
        help='縮小化オプションを JSON で指定 (例: {"collapseWhitespace":true})。false で無効化',
    )

    render_group = parser.add_argument_group("レンダリング設定")
    render_group.add_argument("--skipThirdPartyRequests", "--skip-third-party-requests", dest="skip_third_party_requests", action="store_true", help="別オリジンへのリクエストを遮断する")
    render_group.add_argument("--userAgent", "--user-agent", dest="user_agent", type=str, default=DEFAULT_USER_AGENT, help="ブラウザのユーザーエージェント")
    render_group.add_argument("--viewport", dest="viewport", type=str, default=None, help='ビューポート (例: 1200,800 または {"width":1200,"height":800})')
    render_group.add_argument("--concurrency", dest="concurrency", type=int, default=DEFAULT_CONCURRENCY, help="同時にレンダリングするワーカー数")
    render_group.add_argument("--port", dest="port", type=int, default=DEFAULT_PORT, help="ソース配信サーバーの待ち受けポート")
    render_group.add_argument("--renderTimeout", "--render-timeout", dest="render_timeout", type=float, default=None, help="1 ルートあたりのタイムアウト秒数")
    render_group.add_argument(
        "--waitUntil",
        "--wait-until",
        dest="wait_until",
        choices=("load", "domcontentloaded", "networkidle", "commit"),
        default=None,
        help="レンダリング完了とみなすイベント",
    )
    render_group.add_argument("--launchOptions", "--launch-options", dest="launch_options", type=str, default=None, help="Playwright ブラウザの起動オプションを JSON で指定")

    parser.add_argument("--failOnError", "--fail-on-error", dest="fail_on_error", action="store_true", help="1 ルートでも失敗したら非ゼロで終了する")
    parser.add_argument("--verbose", dest="verbose", action="store_true", help="進捗ログを表示")
    return parser


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(list(argv) if argv is not None else None)


def main(argv: Iterable[str] | None = None, engine_factory: EngineFactory | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    try:
        config = _build_config(args)
    except ConfigurationError as exc:
        print(f"[エラー] {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION

    try:
        report = build_snapshots(config, engine_factory=engine_factory)
    except SafetyViolation as exc:
        print(f"[エラー] {exc}", file=sys.stderr)
        return EXIT_FAILURE
    except EngineStartError as exc:
        print(f"[エラー] {exc}", file=sys.stderr)
        print("Chromium が未インストールの場合は `playwright install chromium` を実行してください。", file=sys.stderr)
        return EXIT_FAILURE
    except ConfigurationError as exc:
        print(f"[エラー] {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except KeyboardInterrupt:
        print("[中断] レンダリングを中断しました。", file=sys.stderr)
        return EXIT_INTERRUPTED

    print(report.to_json())
    return report.exit_code()


def _build_config(args: argparse.Namespace) -> RunConfig:
    source = args.source.resolve()
    destination = args.destination.resolve() if args.destination is not None else None
    return RunConfig.from_args(
        source,
        destination,
        include=parse_include(args.include),
        viewport=parse_viewport(args.viewport),
        minify=parse_minify_options(args.minify_html),
        launch_options=parse_launch_options(args.launch_options),
        overrides=_collect_overrides(args),
    )


def _collect_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {
        "port": args.port,
        "concurrency": args.concurrency,
        "crawl": args.crawl,
        "headless": args.headless,
        "user_agent": args.user_agent,
    }
    for flag in (
        "skip_existing_check",
        "write_fallback",
        "remove_script_tags",
        "async_script_tags",
        "remove_style_tags",
        "inline_css",
        "skip_third_party_requests",
        "fail_on_error",
    ):
        if getattr(args, flag):
            overrides[flag] = True
    if args.max_depth is not None:
        overrides["max_depth"] = args.max_depth
    if args.render_timeout is not None:
        overrides["render_timeout"] = args.render_timeout
    if args.wait_until is not None:
        overrides["wait_until"] = args.wait_until
    return overrides


def _configure_logging(verbose: bool) -> None:
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


if __name__ == "__main__":
    sys.exit(main())
