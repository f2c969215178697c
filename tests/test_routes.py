from __future__ import annotations

from pathlib import Path

import pytest

from prerendererest.routes import destination_path, extract_links, normalize_route, resolve_link

BASE = "http://127.0.0.1:45678/docs/guide"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("/", "/"),
        ("", "/"),
        ("/index.html", "/"),
        ("index.html", "/"),
        ("/about/", "/about"),
        ("/about", "/about"),
        ("about.html", "/about.html"),
        ("/docs/index.html", "/docs"),
        ("/docs//nested///page", "/docs/nested/page"),
        ("/about?ref=nav#team", "/about"),
        ("/a/./b/../c", "/a/c"),
        ("/../../etc", "/etc"),
    ],
)
def test_normalize_route_policy(raw: str, expected: str) -> None:
    assert normalize_route(raw) == expected


def test_resolve_link_keeps_same_origin_pages_only() -> None:
    assert resolve_link("/about#team", BASE) == "/about"
    assert resolve_link("intro", BASE) == "/docs/intro"
    assert resolve_link("../index.html", BASE) == "/"
    assert resolve_link("http://127.0.0.1:45678/contact/?x=1", BASE) == "/contact"
    assert resolve_link("https://example.com/about", BASE) is None
    assert resolve_link("http://127.0.0.1:9999/about", BASE) is None
    assert resolve_link("mailto:team@example.com", BASE) is None
    assert resolve_link("javascript:void(0)", BASE) is None
    assert resolve_link("#section", BASE) is None
    assert resolve_link("/assets/logo.png", BASE) is None
    assert resolve_link("/legacy/page.htm", BASE) == "/legacy/page.htm"


def test_extract_links_deduplicates_and_sorts() -> None:
    html = """
    <html><body>
      <a href="/contact">Contact</a>
      <a href="/about/">About</a>
      <a href="/about#top">About again</a>
      <a href="https://cdn.example.com/lib">CDN</a>
      <a>No href</a>
    </body></html>
    """

    assert extract_links(html, "http://127.0.0.1:45678/") == ["/about", "/contact"]


def test_destination_path_layout(tmp_path: Path) -> None:
    assert destination_path(tmp_path, "/") == tmp_path / "index.html"
    assert destination_path(tmp_path, "/about") == tmp_path / "about" / "index.html"
    assert destination_path(tmp_path, "/about.html") == tmp_path / "about.html"
    assert destination_path(tmp_path, "/docs/guide") == tmp_path / "docs" / "guide" / "index.html"


def test_destination_path_cannot_escape_root(tmp_path: Path) -> None:
    root = tmp_path / "out"

    target = destination_path(root, "/../../etc/passwd")

    assert target == root / "etc" / "passwd" / "index.html"
    assert destination_path(root, "/..\\..\\secret.html") == root / "....secret.html"


def test_destination_path_decodes_percent_encoded_segments(tmp_path: Path) -> None:
    assert destination_path(tmp_path, "/caf%C3%A9") == tmp_path / "café" / "index.html"
    assert destination_path(tmp_path, "/docs/hello%20world") == tmp_path / "docs" / "hello world" / "index.html"
    assert destination_path(tmp_path, "/%2e%2e/x") == tmp_path / "x" / "index.html"
    assert destination_path(tmp_path, "/a%2Fb") == tmp_path / "ab" / "index.html"
