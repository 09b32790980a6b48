"""
トランスポートのユニットテスト
"""

import asyncio
import threading
import unittest
from typing import Callable, Dict, List, Optional

from addin_auth.errors import ErrorCode, OAuthException
from addin_auth.oauth.host import DialogEventType, DialogMessage, DialogResult
from addin_auth.oauth.sizing import determine_dialog_size
from addin_auth.oauth.transports import DialogTransport, NativeAuthTransport, PopupTransport

REDIRECT = "https://addin.example.com"
SIZE = determine_dialog_size(1920, 1080)


class FakePopup:
    """指定回数のポーリング後にURLを返す（または閉じる）ポップアップ"""

    def __init__(self, urls: List[Optional[str]], close_after: Optional[int] = None):
        self._urls = list(urls)
        self._close_after = close_after
        self.polls = 0
        self.close_calls = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or (self._close_after is not None and self.polls > self._close_after)

    def current_url(self) -> Optional[str]:
        self.polls += 1
        if self._urls:
            return self._urls.pop(0)
        return None

    def close(self) -> None:
        self.close_calls += 1
        self._closed = True


class FakeDialog:
    def __init__(self):
        self.handlers: Dict[str, Callable] = {}
        self.close_calls = 0

    def add_event_handler(self, event_type, handler):
        self.handlers[event_type] = handler

    def close(self):
        self.close_calls += 1


class FakeHost:
    def __init__(self, dialog: Optional[FakeDialog] = None, error_message: Optional[str] = None):
        self.dialog = dialog
        self.error_message = error_message
        self.calls = []

    def is_addin(self):
        return True

    def screen_size(self):
        return (1920, 1080)

    def display_dialog_async(self, url, options, callback):
        self.calls.append((url, options))
        callback(DialogResult(value=self.dialog, error_message=self.error_message))

    def message_parent(self, message):
        pass


class FakeChannel:
    def __init__(self):
        self.kwargs = None

    def authenticate(self, **kwargs):
        self.kwargs = kwargs

    def notify_success(self, result):
        pass


class TestPopupTransport(unittest.IsolatedAsyncioTestCase):
    """PopupTransportのテスト"""

    async def test_returns_redirect_url_and_closes(self):
        """リダイレクトURLに到達したらポーリングを止めて閉じること"""
        popup = FakePopup([None, "https://login.provider.com/consent", f"{REDIRECT}/#access_token=A"])
        opened = []

        def opener(url, name, size):
            opened.append((url, name, size))
            return popup

        transport = PopupTransport(opener, REDIRECT, name="GOOGLE", poll_interval=0.001)
        url = await transport.open("https://login/authorize", SIZE)

        self.assertEqual(url, f"{REDIRECT}/#access_token=A")
        self.assertEqual(popup.polls, 3)
        self.assertEqual(popup.close_calls, 1)
        self.assertEqual(opened, [("https://login/authorize", "GOOGLE", SIZE)])

    async def test_closed_popup_rejects(self):
        """ユーザーがポップアップを閉じた場合は拒否されること"""
        popup = FakePopup([], close_after=2)
        transport = PopupTransport(lambda *_: popup, REDIRECT, poll_interval=0.001)

        with self.assertRaises(OAuthException) as ctx:
            await transport.open("https://login", SIZE)

        self.assertEqual(ctx.exception.code, ErrorCode.TRANSPORT_POPUP_CLOSED)
        self.assertEqual(popup.close_calls, 1)

    async def test_unreadable_url_keeps_polling(self):
        """URLを読めない間もポーリングを続け、リダイレクト後に解決すること"""

        class CrossOriginPopup(FakePopup):
            def current_url(self):
                self.polls += 1
                if self.polls < 3:
                    raise PermissionError("cross-origin access denied")
                return f"{REDIRECT}/#access_token=A"

        popup = CrossOriginPopup([])
        transport = PopupTransport(lambda *_: popup, REDIRECT, poll_interval=0.001)

        self.assertEqual(await transport.open("https://login", SIZE), f"{REDIRECT}/#access_token=A")
        self.assertEqual(popup.polls, 3)

    async def test_unreadable_url_then_closed(self):
        """URLを読めないまま閉じられた場合はクローズとして拒否されること"""

        class DeniedPopup(FakePopup):
            def current_url(self):
                self.polls += 1
                raise PermissionError("cross-origin access denied")

        popup = DeniedPopup([], close_after=2)
        transport = PopupTransport(lambda *_: popup, REDIRECT, poll_interval=0.001)

        with self.assertRaises(OAuthException) as ctx:
            await transport.open("https://login", SIZE)
        self.assertEqual(ctx.exception.code, ErrorCode.TRANSPORT_POPUP_CLOSED)

    async def test_unreadable_closed_flag(self):
        class BrokenPopup(FakePopup):
            @property
            def closed(self):
                raise RuntimeError("window gone")

        transport = PopupTransport(lambda *_: BrokenPopup([]), REDIRECT, poll_interval=0.001)
        with self.assertRaises(OAuthException) as ctx:
            await transport.open("https://login", SIZE)
        self.assertEqual(ctx.exception.code, ErrorCode.TRANSPORT_POPUP_CLOSED)

    async def test_opener_failure(self):
        def opener(*_):
            raise OSError("address in use")

        transport = PopupTransport(opener, REDIRECT)
        with self.assertRaises(OAuthException) as ctx:
            await transport.open("https://login", SIZE)
        self.assertEqual(ctx.exception.code, ErrorCode.TRANSPORT_POPUP_FAILED)

    async def test_cancel_closes_popup(self):
        """キャンセルされた場合もポップアップが閉じられること"""
        popup = FakePopup([])
        transport = PopupTransport(lambda *_: popup, REDIRECT, poll_interval=0.001)
        task = asyncio.create_task(transport.open("https://login", SIZE))
        await asyncio.sleep(0.01)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertEqual(popup.close_calls, 1)


class TestDialogTransport(unittest.IsolatedAsyncioTestCase):
    """DialogTransportのテスト"""

    async def test_first_message_wins(self):
        """最初のメッセージで解決し、ダイアログを閉じること"""
        dialog = FakeDialog()
        host = FakeHost(dialog)
        task = asyncio.create_task(DialogTransport(host).open("https://login", SIZE))
        await asyncio.sleep(0)

        handler = dialog.handlers[DialogEventType.DIALOG_MESSAGE_RECEIVED]
        handler(DialogMessage(message="first"))
        handler(DialogMessage(message="second"))

        self.assertEqual(await task, "first")
        self.assertEqual(dialog.close_calls, 1)
        self.assertEqual(host.calls, [("https://login", SIZE.to_dialog_options())])

    async def test_open_failure(self):
        host = FakeHost(None, error_message="Dialog blocked")
        with self.assertRaises(OAuthException) as ctx:
            await DialogTransport(host).open("https://login", SIZE)
        self.assertEqual(ctx.exception.code, ErrorCode.TRANSPORT_DIALOG_FAILED)
        self.assertIn("Dialog blocked", str(ctx.exception))

    async def test_closed_by_user(self):
        dialog = FakeDialog()
        task = asyncio.create_task(DialogTransport(FakeHost(dialog)).open("https://login", SIZE))
        await asyncio.sleep(0)

        dialog.handlers[DialogEventType.DIALOG_EVENT_RECEIVED](DialogMessage(message="", ))
        with self.assertRaises(OAuthException) as ctx:
            await task
        self.assertEqual(ctx.exception.code, ErrorCode.TRANSPORT_DIALOG_FAILED)

    async def test_close_failure_still_resolves(self):
        """ダイアログを閉じる処理が失敗しても結果が返ること"""

        class StubbornDialog(FakeDialog):
            def close(self):
                self.close_calls += 1
                raise RuntimeError("already closed")

        dialog = StubbornDialog()
        task = asyncio.create_task(DialogTransport(FakeHost(dialog)).open("https://login", SIZE))
        await asyncio.sleep(0)

        with self.assertLogs("addin_auth.oauth.transports", level="WARNING"):
            dialog.handlers[DialogEventType.DIALOG_MESSAGE_RECEIVED](DialogMessage(message="done"))

        self.assertEqual(await asyncio.wait_for(task, 1), "done")
        self.assertEqual(dialog.close_calls, 1)

    async def test_display_raises(self):
        """ダイアログAPIが例外を送出した場合は拒否に変換されること"""

        class NotReadyHost(FakeHost):
            def display_dialog_async(self, url, options, callback):
                raise RuntimeError("dialog API not ready")

        with self.assertRaises(OAuthException) as ctx:
            await DialogTransport(NotReadyHost()).open("https://login", SIZE)
        self.assertEqual(ctx.exception.code, ErrorCode.TRANSPORT_DIALOG_FAILED)
        self.assertIn("dialog API not ready", ctx.exception.message)

    async def test_cancel_closes_dialog(self):
        """待機中にキャンセルされた場合はダイアログを閉じること"""
        dialog = FakeDialog()
        task = asyncio.create_task(DialogTransport(FakeHost(dialog)).open("https://login", SIZE))
        await asyncio.sleep(0)

        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertEqual(dialog.close_calls, 1)

    async def test_user_closed_dialog_is_not_closed_again(self):
        dialog = FakeDialog()
        task = asyncio.create_task(DialogTransport(FakeHost(dialog)).open("https://login", SIZE))
        await asyncio.sleep(0)

        dialog.handlers[DialogEventType.DIALOG_EVENT_RECEIVED](DialogMessage(message=""))
        with self.assertRaises(OAuthException):
            await task
        self.assertEqual(dialog.close_calls, 0)

    async def test_message_from_other_thread(self):
        """別スレッドから届いたメッセージも受け取れること"""
        dialog = FakeDialog()
        task = asyncio.create_task(DialogTransport(FakeHost(dialog)).open("https://login", SIZE))
        await asyncio.sleep(0)

        handler = dialog.handlers[DialogEventType.DIALOG_MESSAGE_RECEIVED]
        thread = threading.Thread(target=handler, args=(DialogMessage(message="threaded"),))
        thread.start()
        thread.join()

        self.assertEqual(await asyncio.wait_for(task, 1), "threaded")


class TestNativeAuthTransport(unittest.IsolatedAsyncioTestCase):
    """NativeAuthTransportのテスト"""

    async def test_success_callback(self):
        channel = FakeChannel()
        task = asyncio.create_task(NativeAuthTransport(channel).open("https://login", SIZE))
        await asyncio.sleep(0)

        self.assertEqual(channel.kwargs["url"], "https://login")
        self.assertEqual((channel.kwargs["width"], channel.kwargs["height"]), SIZE.to_pixels())
        channel.kwargs["success_callback"]("https://cb#access_token=A")

        self.assertEqual(await task, "https://cb#access_token=A")

    async def test_failure_callback(self):
        """失敗コールバックは拒否に変換されること"""
        channel = FakeChannel()
        task = asyncio.create_task(NativeAuthTransport(channel).open("https://login", SIZE))
        await asyncio.sleep(0)

        channel.kwargs["failure_callback"]("CancelledByUser")
        channel.kwargs["success_callback"]("ignored")

        with self.assertRaises(OAuthException) as ctx:
            await task
        self.assertEqual(ctx.exception.code, ErrorCode.TRANSPORT_NATIVE_FAILED)
        self.assertIn("CancelledByUser", ctx.exception.message)

    async def test_channel_raises(self):
        class BrokenChannel(FakeChannel):
            def authenticate(self, **kwargs):
                raise RuntimeError("not initialized")

        with self.assertRaises(OAuthException) as ctx:
            await NativeAuthTransport(BrokenChannel()).open("https://login", SIZE)
        self.assertEqual(ctx.exception.code, ErrorCode.TRANSPORT_NATIVE_FAILED)


if __name__ == "__main__":
    unittest.main()
