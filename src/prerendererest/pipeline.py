"""レンダリング済み HTML の変換と書き出し。"""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urljoin, urlsplit

import minify_html
from bs4 import BeautifulSoup, Comment
from charset_normalizer import from_bytes as detect_charset

from .config import MinifyOptions, RunConfig
from .routes import destination_path, route_segments, same_origin

logger = logging.getLogger(__name__)


def transform_html(html: str, config: RunConfig, page_url: str) -> str:
    """設定に従って HTML を変換します。入力が同じなら出力も常に同じです。"""

    if _needs_dom_pass(config):
        soup = BeautifulSoup(html, "lxml")
        if config.remove_script_tags:
            for script in soup.find_all("script"):
                script.decompose()
        elif config.async_script_tags:
            for script in soup.find_all("script"):
                if not script.has_attr("async"):
                    script["async"] = ""
        if config.remove_style_tags:
            for style in soup.find_all("style"):
                style.decompose()
        if config.inline_css:
            _inline_stylesheets(soup, config.source, page_url)
        html = str(soup)
    if config.minify is not None:
        html = minify_markup(html, config.minify)
    return html


def minify_markup(html: str, options: MinifyOptions) -> str:
    if not options.collapse_whitespace:
        # minify_html は常に空白を詰めるため、コメント除去のみ行う
        if not options.remove_comments:
            return html
        soup = BeautifulSoup(html, "lxml")
        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()
        return str(soup)
    return minify_html.minify(
        html,
        keep_comments=not options.remove_comments,
        minify_css=options.minify_css,
        minify_js=options.minify_js,
        keep_closing_tags=options.keep_closing_tags,
        keep_html_and_head_opening_tags=options.keep_html_and_head_opening_tags,
    )


def write_snapshot(config: RunConfig, route: str, markup: str) -> Path:
    """ルートに対応する出力先へ HTML を書き込みます。"""

    target = destination_path(config.output_root, route)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(markup.encode("utf-8"))
    return target


def _needs_dom_pass(config: RunConfig) -> bool:
    return (
        config.remove_script_tags
        or config.async_script_tags
        or config.remove_style_tags
        or config.inline_css
    )


def _inline_stylesheets(soup: BeautifulSoup, source_root: Path, page_url: str) -> None:
    for link in soup.find_all("link"):
        rel = link.get("rel")
        rels = [rel] if isinstance(rel, str) else rel or []
        if "stylesheet" not in [str(value).strip().lower() for value in rels]:
            continue
        href = link.get("href")
        if not isinstance(href, str) or not href.strip():
            continue
        stylesheet = _resolve_stylesheet(source_root, href, page_url)
        if stylesheet is None:
            logger.warning("スタイルシートを解決できないため残します: %s", href)
            continue
        style = soup.new_tag("style")
        media = link.get("media")
        if isinstance(media, str) and media:
            style["media"] = media
        style.string = _read_text(stylesheet)
        link.replace_with(style)


def _resolve_stylesheet(source_root: Path, href: str, page_url: str) -> Path | None:
    absolute = urljoin(page_url, href.strip())
    if not same_origin(absolute, page_url):
        return None
    segments = route_segments(urlsplit(absolute).path)
    if not segments:
        return None
    candidate = source_root.joinpath(*segments)
    if not candidate.resolve().is_relative_to(source_root.resolve()):
        return None
    if not candidate.is_file():
        return None
    return candidate


def _read_text(path: Path) -> str:
    data = path.read_bytes()
    if not data:
        return ""
    encoding = "utf-8"
    result = detect_charset(data).best()
    if result is not None and result.encoding:
        encoding = result.encoding
    try:
        return data.decode(encoding, errors="replace")
    except LookupError:
        logger.debug("未知のエンコーディング %s のため UTF-8 フォールバックを使用します。", encoding)
    return data.decode("utf-8", errors="replace")
