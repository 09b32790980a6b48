"""登録済みエンドポイントを使ったOAuth認証。"""

from __future__ import annotations

from functools import partial
import logging
from typing import Any, Mapping
import warnings

import httpx

from addin_auth.config.settings import AuthSettings, get_settings
from addin_auth.errors import (
    ErrorCode,
    OAuthException,
    create_config_error,
    create_network_error,
    create_protocol_error,
)
from addin_auth.oauth import parser
from addin_auth.oauth.endpoints import Endpoint, EndpointManager, LoginParams
from addin_auth.oauth.host import (
    HostEnvironment,
    NativeAuthChannel,
    PopupOpener,
    has_dialog_api,
)
from addin_auth.oauth.popup import open_browser_popup
from addin_auth.oauth.sizing import DialogSize, determine_dialog_size
from addin_auth.oauth.tokens import TokenManager
from addin_auth.oauth.transports import (
    DialogTransport,
    NativeAuthTransport,
    PopupTransport,
    Transport,
)

logger = logging.getLogger(__name__)

_RESERVED_HEADERS = ("accept", "content-type")


class Authenticator:
    """登録済みエンドポイントに対してインプリシット/コードフローの認証を行う。

    アドイン内ではホストのダイアログAPI、それ以外ではポップアップを使う。
    キャッシュ済みのトークンが有効な間は認証画面を開かずにそれを返す。
    """

    def __init__(
        self,
        endpoints: EndpointManager | None = None,
        tokens: TokenManager | None = None,
        *,
        host: HostEnvironment | None = None,
        popup_opener: PopupOpener | None = None,
        native_channel: NativeAuthChannel | None = None,
        http_client: httpx.AsyncClient | None = None,
        settings: AuthSettings | None = None,
    ) -> None:
        """Authenticatorを初期化する。

        Args:
            endpoints: エンドポイントの登録先。
            tokens: トークンのキャッシュ。
            host: アドインを埋め込むホスト。ダイアログAPIの提供元。
            popup_opener: ポップアップを開く関数。省略時はシステムブラウザ。
            native_channel: ホスト固有の認証チャネル。
            http_client: コード交換に使うHTTPクライアント。
            settings: 設定。省略時はプロセス共通の設定。
        """

        self._settings = settings or get_settings()
        self.endpoints = endpoints if endpoints is not None else EndpointManager(settings=self._settings)
        self.tokens = tokens if tokens is not None else TokenManager()
        self.host = host
        self.native_channel = native_channel
        self._popup_opener = popup_opener
        self._http_client = http_client

    async def authenticate(self, provider: str, force: bool = False) -> dict[str, Any]:
        """指定したプロバイダで認証する。

        キャッシュ済みのトークンが期限内であればそれを返す。期限切れ、未取得、
        または ``force`` 指定時は認証画面を開く。

        Args:
            provider: 登録済みのプロバイダ名。
            force: キャッシュを無視して再認証するかどうか。

        Returns:
            トークン（コードフローで token_url が無い場合はコード）。

        Raises:
            OAuthException: 認証に失敗した場合。
        """

        cached = self._get_cached_token(provider, force)
        if cached is not None:
            return cached

        endpoint = self._require_endpoint(provider)
        return await self._run(endpoint, self._select_transport(endpoint))

    async def use_native_auth_channel(self, provider: str, force: bool = False) -> dict[str, Any]:
        """ホスト固有の認証チャネルを使って認証する。契約は authenticate と同じ。"""

        cached = self._get_cached_token(provider, force)
        if cached is not None:
            return cached

        endpoint = self._require_endpoint(provider)
        if self.native_channel is None:
            raise OAuthException(
                create_config_error(
                    ErrorCode.CONFIG_INVALID_VALUE,
                    "ネイティブ認証チャネルが設定されていません。",
                )
            )
        return await self._run(endpoint, NativeAuthTransport(self.native_channel))

    async def exchange_code_for_token(
        self,
        endpoint: Endpoint,
        data: Mapping[str, Any],
        headers: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        """認可コードを token_url に送り、トークンと交換する。

        token_url はJSONの入力を受け付け、JSONで access_token を返す必要がある。

        Args:
            endpoint: エンドポイント設定。
            data: token_url に送るデータ（通常は code と state）。
            headers: 追加のリクエストヘッダー。Accept と Content-Type は無視される。

        Returns:
            トークン。token_url が無い場合は data をそのまま返す。

        Raises:
            OAuthException: 通信または応答の検証に失敗した場合。
        """

        if endpoint.token_url is None:
            warnings.warn(
                "token_url が未設定のため、受け取ったコードを access_token と交換できません。"
                "返される値は access_token ではありません。",
                RuntimeWarning,
                stacklevel=2,
            )
            return dict(data)

        request_headers = {"Accept": "application/json", "Content-Type": "application/json"}
        for name, value in (headers or {}).items():
            if name.lower() in _RESERVED_HEADERS:
                continue
            request_headers[name] = value

        try:
            response = await self._post(endpoint.token_url, dict(data), request_headers)
        except httpx.HTTPError as exc:
            raise OAuthException(
                create_network_error(
                    ErrorCode.NETWORK_ERROR,
                    "ネットワークエラーのためリクエストを送信できませんでした。",
                    details={"reason": str(exc)},
                )
            ) from exc

        if response.status_code != 200:
            raise OAuthException(
                create_network_error(
                    ErrorCode.NETWORK_BAD_STATUS,
                    f"リクエストに失敗しました。 status={response.status_code} {response.text}",
                    details={"status_code": response.status_code},
                )
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise OAuthException(
                create_network_error(
                    ErrorCode.NETWORK_BAD_RESPONSE,
                    "応答の解析中にエラーが発生しました。",
                )
            ) from exc

        if payload is None:
            raise self._unparseable()
        if not isinstance(payload, dict):
            raise OAuthException(
                create_network_error(
                    ErrorCode.NETWORK_BAD_RESPONSE,
                    "応答の解析中にエラーが発生しました。",
                    details={"type": type(payload).__name__},
                )
            )
        if "access_token" in payload:
            return self.tokens.add(endpoint.provider or "", payload)
        if "error" in payload:
            raise self._provider_error(payload)
        raise self._unparseable()

    @staticmethod
    def is_auth_dialog(url: str, host: HostEnvironment | None = None) -> bool:
        """現在のページが応答を受け取った認証ダイアログかどうかを判定する。

        ダイアログ内で access_token / code / error を含むURLが表示されていれば、
        そのURLを親に送ってTrueを返す。呼び出し側はTrueの場合アプリケーション本体の
        初期化を行わない。

        Args:
            url: 現在のページのURL。
            host: アドインを埋め込むホスト。

        Returns:
            ダイアログ内の最終リダイレクトページであればTrue。
        """

        if host is None or not has_dialog_api(host):
            return False
        if not parser.is_token_url(url):
            return False

        host.message_parent(url)
        return True

    @staticmethod
    def is_native_auth_dialog(url: str, channel: NativeAuthChannel) -> bool:
        """ネイティブ認証チャネルの画面で応答を受け取った場合に成功を通知する。"""

        if not parser.is_token_url(url):
            return False

        channel.notify_success(url)
        return True

    get_token = staticmethod(parser.get_token)
    is_token_url = staticmethod(parser.is_token_url)

    def _get_cached_token(self, provider: str, force: bool) -> dict[str, Any] | None:
        if force:
            return None
        token = self.tokens.get(provider)
        if TokenManager.has_expired(token):
            return None
        logger.debug(f"{provider} のキャッシュ済みトークンを使用します")
        return token

    def _require_endpoint(self, provider: str) -> Endpoint:
        endpoint = self.endpoints.get(provider)
        if endpoint is None:
            raise OAuthException(
                create_config_error(
                    ErrorCode.CONFIG_UNKNOWN_ENDPOINT,
                    f"登録されたエンドポイントが見つかりません: {provider}",
                    details={"provider": provider},
                )
            )
        return endpoint

    def _select_transport(self, endpoint: Endpoint) -> Transport:
        if has_dialog_api(self.host) and self.host is not None:
            return DialogTransport(self.host)

        redirect_url = endpoint.redirect_url or self._settings.redirect_origin
        opener = self._popup_opener or partial(
            open_browser_popup,
            redirect_url=redirect_url,
            timeout_seconds=self._settings.popup_timeout,
        )
        return PopupTransport(
            opener,
            redirect_url,
            name=(endpoint.provider or "").upper(),
            poll_interval=self._settings.poll_interval,
        )

    def _determine_dialog_size(self) -> DialogSize:
        if self.host is not None:
            width, height = self.host.screen_size()
        else:
            width, height = self._settings.screen_width, self._settings.screen_height
        return determine_dialog_size(width, height)

    async def _run(self, endpoint: Endpoint, transport: Transport) -> dict[str, Any]:
        params = EndpointManager.get_login_params(endpoint)
        logger.info(f"{endpoint.provider} の認証を開始します ({type(transport).__name__})")
        try:
            message = await transport.open(params.url, self._determine_dialog_size())
            return await self._process_redirect(endpoint, params, message)
        except OAuthException as exc:
            logger.log(exc.log_level, f"{endpoint.provider} の認証に失敗しました: {exc}")
            raise

    async def _process_redirect(
        self,
        endpoint: Endpoint,
        params: LoginParams,
        message: str,
    ) -> dict[str, Any]:
        try:
            result = parser.get_token(message, endpoint.redirect_url) or parser.get_token(
                message, endpoint.redirect_url, "?"
            )
        except Exception as exc:
            raise OAuthException(
                create_protocol_error(
                    ErrorCode.PROTOCOL_UNPARSEABLE,
                    f"応答の解析中にエラーが発生しました: {exc}",
                )
            ) from exc

        if not result:
            raise self._unparseable()

        if endpoint.state and not self._state_matches(result.get("state"), params.state):
            raise OAuthException(
                create_protocol_error(
                    ErrorCode.PROTOCOL_STATE_MISMATCH,
                    "stateを検証できませんでした。",
                    state=result.get("state"),
                )
            )

        kind = parser.classify(result)
        if kind == "token":
            return self.tokens.add(endpoint.provider or "", result)
        if kind == "code":
            return await self.exchange_code_for_token(endpoint, result)
        raise self._provider_error(result)

    async def _post(self, url: str, data: dict[str, Any], headers: dict[str, str]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(url, json=data, headers=headers)

        async with httpx.AsyncClient(timeout=self._settings.exchange_timeout) as client:
            return await client.post(url, json=data, headers=headers)

    @staticmethod
    def _state_matches(received: str | None, expected: int | None) -> bool:
        if received is None or expected is None:
            return False
        try:
            return int(received) == expected
        except (TypeError, ValueError):
            return False

    @staticmethod
    def _unparseable() -> OAuthException:
        return OAuthException(
            create_protocol_error(
                ErrorCode.PROTOCOL_UNPARSEABLE,
                "access_token または code を解析できませんでした。",
            )
        )

    @staticmethod
    def _provider_error(payload: Mapping[str, Any]) -> OAuthException:
        error = payload.get("error") or "プロバイダがエラーを返しました。"
        return OAuthException(
            create_protocol_error(
                ErrorCode.PROTOCOL_PROVIDER_ERROR,
                str(error),
                state=payload.get("state"),
                details={"error_description": payload.get("error_description")},
            )
        )
