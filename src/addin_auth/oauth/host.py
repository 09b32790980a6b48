"""埋め込みホストが提供するAPIの最小インターフェース。

ホスト（アドインを埋め込むアプリケーション）は、ダイアログAPIやネイティブの
認証チャネルをこれらのプロトコルに沿って提供する。
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Optional, Protocol, runtime_checkable

from addin_auth.oauth.sizing import DialogSize

logger = logging.getLogger(__name__)


class DialogEventType:
    """ダイアログが発火するイベント種別。"""

    DIALOG_MESSAGE_RECEIVED = "dialogMessageReceived"
    DIALOG_EVENT_RECEIVED = "dialogEventReceived"


@dataclass
class DialogMessage:
    """ダイアログから親に送られたメッセージ。"""

    message: str


class Dialog(Protocol):
    """ホストが開いたモーダルダイアログ。"""

    def add_event_handler(self, event_type: str, handler: Callable[[DialogMessage], None]) -> None: ...

    def close(self) -> None: ...


@dataclass
class DialogResult:
    """ダイアログを開いた結果。失敗時は value が None になる。"""

    value: Optional[Dialog] = None
    error_message: Optional[str] = None


@runtime_checkable
class HostEnvironment(Protocol):
    """リッチホスト（アドインの実行環境）のインターフェース。"""

    def is_addin(self) -> bool:
        """ホストのダイアログAPIが利用可能な環境かを返す."""

    def screen_size(self) -> tuple[int, int]:
        """画面の幅と高さ（ピクセル）を返す."""

    def display_dialog_async(
        self,
        url: str,
        options: dict[str, float],
        callback: Callable[[DialogResult], None],
    ) -> None:
        """ダイアログを開き、結果を callback に渡す."""

    def message_parent(self, message: str) -> None:
        """ダイアログ内から親ウィンドウへメッセージを送る."""


class NativeAuthChannel(Protocol):
    """コラボレーションスイート型ホストが提供する認証API。"""

    def authenticate(
        self,
        *,
        url: str,
        width: int,
        height: int,
        success_callback: Callable[[str], None],
        failure_callback: Callable[[object], None],
    ) -> None: ...

    def notify_success(self, result: str) -> None: ...


class PopupWindow(Protocol):
    """ポーリング対象のポップアップウィンドウ。"""

    @property
    def closed(self) -> bool: ...

    def current_url(self) -> Optional[str]:
        """現在のURLを返す。取得できない（別オリジン表示中など）場合はNone."""

    def close(self) -> None: ...


PopupOpener = Callable[[str, str, DialogSize], PopupWindow]


_has_dialog_api: Optional[bool] = None


def has_dialog_api(host: Optional[HostEnvironment]) -> bool:
    """ホストのダイアログAPIが使えるかを返す。

    判定結果はプロセス内でキャッシュされ、以降は再評価しない。
    ホストが渡されない場合はキャッシュせずにFalseを返す。
    """

    global _has_dialog_api
    if _has_dialog_api is not None:
        return _has_dialog_api
    if host is None:
        return False

    try:
        _has_dialog_api = bool(host.is_addin())
    except Exception as exc:
        logger.debug(f"ホスト判定に失敗したためダイアログAPIは無効とみなします: {exc}")
        _has_dialog_api = False
    return _has_dialog_api


def reset_dialog_api_cache() -> None:
    global _has_dialog_api
    _has_dialog_api = None
