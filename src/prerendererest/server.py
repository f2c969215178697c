"""ソースディレクトリを一時的なローカルアドレスで配信する HTTP サーバー。"""

from __future__ import annotations

import http.server
import io
import logging
import threading
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path, PurePosixPath
from typing import Mapping
from urllib.parse import unquote, urlsplit

from .routes import DEFAULT_DOCUMENT
from .safety import FALLBACK_FILE_NAME

logger = logging.getLogger(__name__)


class _SourceRequestHandler(http.server.SimpleHTTPRequestHandler):
    """拡張子のない未知のパスには SPA のシェルを返すハンドラー。

    シェルと ``index.html`` は起動時に読み込んだ内容をメモリから返すため、
    同じディレクトリへスナップショットを書き戻しても配信内容は変わりません。
    """

    def __init__(self, *args, shell: bytes | None = None, pinned: Mapping[str, bytes] | None = None, **kwargs) -> None:
        self._shell = shell
        self._pinned = pinned or {}
        super().__init__(*args, **kwargs)

    def send_head(self):  # type: ignore[override]
        path = unquote(urlsplit(self.path).path)
        pinned = self._pinned.get(path)
        if pinned is not None:
            return self._send_memory(pinned)
        resolved = Path(self.translate_path(self.path))
        # 拡張子のないディレクトリは途中で書き出されたスナップショットの可能性がある
        if not resolved.is_file() and not PurePosixPath(path).suffix and self._shell is not None:
            return self._send_memory(self._shell)
        return super().send_head()

    def _send_memory(self, body: bytes) -> io.BytesIO:
        self.send_response(200)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        return io.BytesIO(body)

    def log_message(self, format: str, *args) -> None:  # pragma: no cover - silence default logging
        logger.debug("%s - %s", self.address_string(), format % args)


def read_shell(root: Path) -> bytes | None:
    """SPA のシェル (``200.html``、なければ ``index.html``) を読み込みます。"""

    for name in (FALLBACK_FILE_NAME, DEFAULT_DOCUMENT):
        candidate = root / name
        if candidate.is_file():
            return candidate.read_bytes()
    return None


@dataclass
class SourceServer:
    root: Path
    port: int = 0
    host: str = "127.0.0.1"
    _server: http.server.ThreadingHTTPServer | None = None
    _thread: threading.Thread | None = None
    _pinned: dict[str, bytes] = field(default_factory=dict)

    @property
    def base_url(self) -> str:
        if self._server is None:
            raise RuntimeError("サーバーが起動していません。")
        host, port = self._server.server_address[:2]
        return f"http://{host}:{port}"

    def start(self) -> str:
        if self._server is None:
            index = self.root / DEFAULT_DOCUMENT
            if index.is_file():
                content = index.read_bytes()
                self._pinned = {"/": content, "/" + DEFAULT_DOCUMENT: content}
            handler = partial(
                _SourceRequestHandler,
                directory=str(self.root),
                shell=read_shell(self.root),
                pinned=dict(self._pinned),
            )
            self._server = http.server.ThreadingHTTPServer((self.host, self.port), handler)
            self._server.daemon_threads = True
            self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
            self._thread.start()
            logger.info("ソースを配信しています: %s -> %s", self.root, self.base_url)
        return self.base_url

    def stop(self) -> None:
        if not self._server:
            return
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        if self._thread:
            self._thread.join(timeout=2)
            self._thread = None

    def __enter__(self) -> str:
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
