"""ルートパスの正規化とリンク抽出、出力先パスの解決。"""

from __future__ import annotations

import posixpath
import re
from pathlib import Path, PurePosixPath
from typing import Iterable
from urllib.parse import unquote, urldefrag, urljoin, urlsplit

from bs4 import BeautifulSoup

ROOT_ROUTE = "/"
DEFAULT_DOCUMENT = "index.html"
PAGE_SUFFIXES = (".html", ".htm")

_IGNORED_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")
_UNSAFE_CHARS = re.compile(r"[\\/\x00]")


def normalize_route(path: str) -> str:
    """パス文字列を正規ルートへ変換します。

    フラグメントとクエリ文字列は捨て、重複スラッシュとドットセグメントを解決し、
    末尾の ``index.html`` と末尾スラッシュ (ルートを除く) を取り除きます。
    """

    path, _ = urldefrag(path.strip())
    path = path.split("?", 1)[0]
    if not path.startswith("/"):
        path = "/" + path
    path = re.sub(r"/{2,}", "/", path)
    path = "/" + posixpath.normpath(path).lstrip("/")
    if path.endswith("/" + DEFAULT_DOCUMENT):
        path = path[: -len(DEFAULT_DOCUMENT)]
    if len(path) > 1:
        path = path.rstrip("/")
    return path or ROOT_ROUTE


def same_origin(url: str, base_url: str) -> bool:
    left = urlsplit(url)
    right = urlsplit(base_url)
    return (left.scheme, left.netloc) == (right.scheme, right.netloc)


def resolve_link(href: str, page_url: str) -> str | None:
    """アンカーの href を同一オリジンの正規ルートへ解決します。

    オフオリジン、非 HTTP スキーム、HTML 以外のアセットへのリンクは ``None`` を返します。
    """

    href = href.strip()
    if not href or href.startswith("#") or href.lower().startswith(_IGNORED_SCHEMES):
        return None
    absolute = urljoin(page_url, href)
    parts = urlsplit(absolute)
    if parts.scheme not in ("http", "https"):
        return None
    if not same_origin(absolute, page_url):
        return None
    route = normalize_route(parts.path or ROOT_ROUTE)
    suffix = PurePosixPath(route).suffix.lower()
    if suffix and suffix not in PAGE_SUFFIXES:
        return None
    return route


def extract_links(html: str, page_url: str) -> list[str]:
    """レンダリング済み HTML から同一オリジンのルートを抽出します。"""

    soup = BeautifulSoup(html, "lxml")
    routes: set[str] = set()
    for anchor in soup.find_all("a"):
        href = anchor.get("href")
        if not isinstance(href, str):
            continue
        route = resolve_link(href, page_url)
        if route is not None:
            routes.add(route)
    return sorted(routes)


def route_segments(route: str) -> list[str]:
    segments: list[str] = []
    for raw in route.split("/"):
        # %2F のように分割後に現れる区切り文字も取り除く
        segment = _UNSAFE_CHARS.sub("", unquote(raw)).strip()
        if segment in ("", ".", ".."):
            continue
        segments.append(segment)
    return segments


def destination_path(root: Path, route: str) -> Path:
    """ルートに対応する出力ファイルのパスを返します。"""

    segments = route_segments(route)
    if not segments:
        target = root / DEFAULT_DOCUMENT
    elif PurePosixPath(segments[-1]).suffix.lower() in PAGE_SUFFIXES:
        target = root.joinpath(*segments)
    else:
        target = root.joinpath(*segments, DEFAULT_DOCUMENT)
    resolved_root = root.resolve()
    if not target.resolve().is_relative_to(resolved_root):
        raise ValueError(f"出力先がルート外を指しています: route={route} target={target}")
    return target


def unique_routes(paths: Iterable[str]) -> list[str]:
    """順序を保ったまま正規化済みルートの重複を除きます。"""

    seen: set[str] = set()
    ordered: list[str] = []
    for path in paths:
        route = normalize_route(path)
        if route in seen:
            continue
        seen.add(route)
        ordered.append(route)
    return ordered
