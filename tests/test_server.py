from __future__ import annotations

import urllib.error
import urllib.request
from pathlib import Path

import pytest

from prerendererest.server import SourceServer


def _fetch(url: str) -> str:
    with urllib.request.urlopen(url, timeout=5) as response:
        return response.read().decode("utf-8")


def test_server_serves_files_and_spa_shell(tmp_path: Path) -> None:
    (tmp_path / "index.html").write_text("<p>shell</p>", encoding="utf-8")
    (tmp_path / "about.html").write_text("<p>about</p>", encoding="utf-8")
    (tmp_path / "styles.css").write_text("body{}", encoding="utf-8")

    with SourceServer(tmp_path, port=0) as base_url:
        assert _fetch(base_url + "/") == "<p>shell</p>"
        assert _fetch(base_url + "/about.html") == "<p>about</p>"
        assert _fetch(base_url + "/styles.css") == "body{}"
        assert _fetch(base_url + "/products/42") == "<p>shell</p>"
        with pytest.raises(urllib.error.HTTPError) as exc:
            _fetch(base_url + "/missing.css")
        assert exc.value.code == 404


def test_server_prefers_fallback_page_as_shell(tmp_path: Path) -> None:
    (tmp_path / "index.html").write_text("<p>prerendered</p>", encoding="utf-8")
    (tmp_path / "200.html").write_text("<p>shell</p>", encoding="utf-8")

    server = SourceServer(tmp_path, port=0)
    base_url = server.start()
    try:
        assert _fetch(base_url + "/dashboard") == "<p>shell</p>"
    finally:
        server.stop()

    with pytest.raises(RuntimeError):
        server.base_url


def test_server_keeps_original_shell_after_snapshots_are_written(tmp_path: Path) -> None:
    (tmp_path / "index.html").write_text("<p>shell</p>", encoding="utf-8")

    with SourceServer(tmp_path, port=0) as base_url:
        (tmp_path / "index.html").write_text("<p>prerendered home</p>", encoding="utf-8")
        (tmp_path / "products" / "42").mkdir(parents=True)
        (tmp_path / "products" / "42" / "index.html").write_text("<p>prerendered 42</p>", encoding="utf-8")

        assert _fetch(base_url + "/") == "<p>shell</p>"
        assert _fetch(base_url + "/index.html") == "<p>shell</p>"
        assert _fetch(base_url + "/dashboard") == "<p>shell</p>"
        assert _fetch(base_url + "/products") == "<p>shell</p>"
