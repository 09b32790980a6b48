"""システムブラウザを使った既定のポップアップ実装。"""

from __future__ import annotations

from http.server import BaseHTTPRequestHandler, HTTPServer
import logging
import threading
import time
from urllib.parse import parse_qs, urlparse
import webbrowser

from addin_auth.errors import ErrorCode, OAuthException, create_transport_error
from addin_auth.oauth.parser import is_token_url
from addin_auth.oauth.sizing import DialogSize

logger = logging.getLogger(__name__)

REPORT_PATH = "/__addin_auth/report"

# フラグメントはサーバに届かないため、ページ側から location.href を送り返す
_CALLBACK_PAGE = """<html>
<head><meta charset="utf-8"><title>Authentication</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 50px;">
<h2 id="status">認証結果を処理しています...</h2>
<script>
fetch("%s?href=" + encodeURIComponent(window.location.href)).then(function () {
    document.getElementById("status").innerText = "認証が完了しました。このウィンドウを閉じてください。";
    setTimeout(function () { window.close(); }, 2000);
});
</script>
</body>
</html>
""" % REPORT_PATH


class _RedirectServer(HTTPServer):
    def __init__(self, server_address: tuple[str, int], origin: str) -> None:
        super().__init__(server_address, _RedirectHandler)
        self.origin = origin
        self.redirect_url: str | None = None

    def record(self, url: str) -> None:
        if self.redirect_url is None:
            self.redirect_url = url


class _RedirectHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        server = self.server
        if not isinstance(server, _RedirectServer):
            self.send_error(500, "Server configuration error")
            return

        if parsed.path == REPORT_PATH:
            href = parse_qs(parsed.query).get("href", [None])[0]
            if href:
                server.record(href)
            self.send_response(204)
            self.end_headers()
            return

        # クエリ形式の応答はページのスクリプトを待たずに記録する
        if parsed.query and is_token_url(parsed.query):
            server.record(f"{server.origin}{self.path}")

        self.send_response(200)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.end_headers()
        self.wfile.write(_CALLBACK_PAGE.encode("utf-8"))

    def log_message(self, format: str, *args: object) -> None:  # noqa: A003
        return


class BrowserPopup:
    """システムブラウザで認可URLを開き、ループバックでリダイレクトを受け取る。

    ブラウザのウィンドウが閉じられたことは検知できないため、
    ``timeout_seconds`` を過ぎると閉じられたものとして扱う。
    """

    def __init__(self, login_url: str, redirect_url: str, timeout_seconds: float = 300.0) -> None:
        parsed = urlparse(redirect_url)
        host = parsed.hostname or "127.0.0.1"
        port = parsed.port if parsed.port is not None else (443 if parsed.scheme == "https" else 80)
        self._login_url = login_url
        self._server = _RedirectServer((host, port), f"{parsed.scheme or 'http'}://{parsed.netloc}")
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._timeout_seconds = timeout_seconds
        self._deadline = 0.0
        self._closed = False

    def open(self) -> "BrowserPopup":
        self._thread.start()
        self._deadline = time.monotonic() + self._timeout_seconds
        if not webbrowser.open(self._login_url):
            self.close()
            raise OAuthException(
                create_transport_error(
                    ErrorCode.TRANSPORT_POPUP_FAILED,
                    "ブラウザを起動できませんでした。",
                )
            )
        return self

    @property
    def closed(self) -> bool:
        return self._closed or time.monotonic() >= self._deadline

    def current_url(self) -> str | None:
        return self._server.redirect_url

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._thread.is_alive():
            self._server.shutdown()
            self._thread.join(timeout=1)
        self._server.server_close()


def open_browser_popup(
    login_url: str,
    name: str,
    size: DialogSize,
    *,
    redirect_url: str,
    timeout_seconds: float = 300.0,
) -> BrowserPopup:
    """既定のポップアップを開く。

    システムブラウザはウィンドウサイズを指定できないため ``size`` は使用しない。
    """

    logger.info(f"{name} の認証ページをブラウザで開きます")
    return BrowserPopup(login_url, redirect_url, timeout_seconds).open()
