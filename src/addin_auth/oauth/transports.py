"""認証画面を開き、リダイレクト結果を1回だけ返すトランスポート群。

- PopupTransport: ブラウザのポップアップを開き、URLをポーリングする
- DialogTransport: ホストのダイアログAPIでモーダルを開き、メッセージを待つ
- NativeAuthTransport: ホスト固有の認証APIに委譲する
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import logging
from typing import Any

from addin_auth.errors import ErrorCode, OAuthException, create_transport_error
from addin_auth.oauth.host import (
    Dialog,
    DialogEventType,
    DialogMessage,
    DialogResult,
    HostEnvironment,
    NativeAuthChannel,
    PopupOpener,
    PopupWindow,
)
from addin_auth.oauth.sizing import DialogSize

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.4


class Transport(ABC):
    """認証画面のトランスポートの抽象基底クラス。"""

    @abstractmethod
    async def open(self, login_url: str, size: DialogSize) -> str:
        """認証画面を開き、リダイレクトURL（またはメッセージ）を返す。"""


class _SingleShot:
    """ホストのコールバックをFutureへ1回だけ橋渡しする。

    コールバックは別スレッドから呼ばれる可能性があるため、結果の反映は
    イベントループ上で行う。2回目以降の結果は破棄される。
    """

    def __init__(self) -> None:
        self._loop = asyncio.get_running_loop()
        self.future: asyncio.Future[str] = self._loop.create_future()

    def resolve(self, value: str) -> None:
        self._loop.call_soon_threadsafe(self._apply, value, None)

    def reject(self, exc: BaseException) -> None:
        self._loop.call_soon_threadsafe(self._apply, None, exc)

    def _apply(self, value: str | None, exc: BaseException | None) -> None:
        if self.future.done():
            return
        if exc is not None:
            self.future.set_exception(exc)
        else:
            self.future.set_result(value or "")


class PopupTransport(Transport):
    """ポップアップウィンドウを開き、リダイレクトURLに到達するまでポーリングする。"""

    def __init__(
        self,
        opener: PopupOpener,
        redirect_url: str,
        name: str = "",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._opener = opener
        self._redirect_url = redirect_url
        self._name = name
        self._poll_interval = poll_interval

    async def open(self, login_url: str, size: DialogSize) -> str:
        try:
            popup = self._opener(login_url, self._name, size)
        except OAuthException:
            raise
        except Exception as exc:
            raise OAuthException(
                create_transport_error(
                    ErrorCode.TRANSPORT_POPUP_FAILED,
                    "ポップアップの作成中に予期しないエラーが発生しました。",
                    details={"reason": str(exc)},
                )
            ) from exc

        try:
            return await self._poll(popup)
        finally:
            self._close(popup)

    async def _poll(self, popup: PopupWindow) -> str:
        while True:
            try:
                url = popup.current_url()
            except Exception as exc:
                # 別オリジンを表示している間はURLを読めない
                logger.debug(f"ポップアップのURLを取得できません: {exc}")
                url = None
            if url and self._redirect_url in url:
                return url
            if self._is_closed(popup):
                raise OAuthException(
                    create_transport_error(
                        ErrorCode.TRANSPORT_POPUP_CLOSED,
                        "ポップアップウィンドウが閉じられました。",
                    )
                )
            await asyncio.sleep(self._poll_interval)

    @staticmethod
    def _is_closed(popup: PopupWindow) -> bool:
        try:
            return bool(popup.closed)
        except Exception as exc:
            logger.debug(f"ポップアップの状態を取得できないため閉じられたものとみなします: {exc}")
            return True

    def _close(self, popup: PopupWindow) -> None:
        try:
            popup.close()
        except Exception as exc:
            logger.warning(f"ポップアップを閉じる際にエラーが発生しました: {exc}")


class DialogTransport(Transport):
    """ホストのダイアログAPIで認証画面を開く。"""

    def __init__(self, host: HostEnvironment) -> None:
        self._host = host

    async def open(self, login_url: str, size: DialogSize) -> str:
        shot = _SingleShot()
        opened: list[Dialog] = []

        def on_opened(result: DialogResult) -> None:
            dialog = result.value
            if dialog is None:
                shot.reject(
                    OAuthException(
                        create_transport_error(
                            ErrorCode.TRANSPORT_DIALOG_FAILED,
                            result.error_message or "ダイアログを開けませんでした。",
                        )
                    )
                )
                return

            opened.append(dialog)
            received = False

            def on_message(args: DialogMessage) -> None:
                nonlocal received
                if received:
                    return
                received = True
                shot.resolve(args.message)
                self._close(opened)

            def on_event(args: Any) -> None:
                nonlocal received
                if received:
                    return
                received = True
                # ユーザーが閉じたダイアログは閉じ直さない
                opened.clear()
                shot.reject(
                    OAuthException(
                        create_transport_error(
                            ErrorCode.TRANSPORT_DIALOG_FAILED,
                            "ダイアログが閉じられました。",
                            details={"error": getattr(args, "error", None)},
                        )
                    )
                )

            dialog.add_event_handler(DialogEventType.DIALOG_MESSAGE_RECEIVED, on_message)
            dialog.add_event_handler(DialogEventType.DIALOG_EVENT_RECEIVED, on_event)

        try:
            try:
                self._host.display_dialog_async(login_url, size.to_dialog_options(), on_opened)
            except Exception as exc:
                raise OAuthException(
                    create_transport_error(
                        ErrorCode.TRANSPORT_DIALOG_FAILED,
                        f"ダイアログを開けませんでした: {exc}",
                        details={"reason": str(exc)},
                    )
                ) from exc
            return await shot.future
        finally:
            self._close(opened)

    @staticmethod
    def _close(opened: list[Dialog]) -> None:
        # 閉じるのは1回だけ
        while opened:
            try:
                dialog = opened.pop()
            except IndexError:
                return
            try:
                dialog.close()
            except Exception as exc:
                logger.warning(f"ダイアログを閉じる際にエラーが発生しました: {exc}")


class NativeAuthTransport(Transport):
    """ホスト固有の認証チャネルに認証画面の表示を委譲する。"""

    def __init__(self, channel: NativeAuthChannel) -> None:
        self._channel = channel

    async def open(self, login_url: str, size: DialogSize) -> str:
        shot = _SingleShot()
        width, height = size.to_pixels()

        def on_failure(reason: object) -> None:
            shot.reject(
                OAuthException(
                    create_transport_error(
                        ErrorCode.TRANSPORT_NATIVE_FAILED,
                        f"ダイアログの起動中にエラーが発生しました: {reason}",
                        details={"reason": repr(reason)},
                    )
                )
            )

        try:
            self._channel.authenticate(
                url=login_url,
                width=width,
                height=height,
                success_callback=shot.resolve,
                failure_callback=on_failure,
            )
        except Exception as exc:
            on_failure(exc)

        return await shot.future
