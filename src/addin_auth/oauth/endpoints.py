"""OAuthエンドポイントの登録と認可URLの生成。"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
import logging
import secrets
from typing import Any, Mapping, NamedTuple
from urllib.parse import quote

from addin_auth.config.settings import AuthSettings, get_settings
from addin_auth.errors import ErrorCode, OAuthException, create_config_error
from addin_auth.oauth.storage import Storage, StorageType

logger = logging.getLogger(__name__)

ENDPOINTS_NAMESPACE = "OAuth2Endpoints"

# encodeURIComponent と同じ非エスケープ文字
_URI_COMPONENT_SAFE = "-_.!~*'()"

_CAMEL_CASE_KEYS = {
    "clientId": "client_id",
    "baseUrl": "base_url",
    "authorizeUrl": "authorize_url",
    "redirectUrl": "redirect_url",
    "tokenUrl": "token_url",
    "responseType": "response_type",
    "extraQueryParameters": "extra_query_parameters",
}


class DefaultEndpoints:
    """組み込みプリセットのプロバイダ名。"""

    GOOGLE = "Google"
    MICROSOFT = "Microsoft"
    FACEBOOK = "Facebook"
    AZURE_AD = "AzureAD"


@dataclass
class Endpoint:
    """OAuthプロバイダ1件分の設定。

    Attributes:
        provider: レジストリ内で一意なプロバイダ名
        client_id: 登録済みのクライアントID
        base_url: 認可サーバのベースURL
        authorize_url: 認可エンドポイントのパス（base_url に連結される）
        redirect_url: 登録済みのリダイレクトURL（省略時は設定の redirect_origin）
        token_url: コード交換先。未設定ならインプリシットフローとして扱う
        scope: 要求するスコープ
        resource: resource パラメータ
        state: state を自動生成するかどうか
        nonce: nonce を自動生成するかどうか
        response_type: OAuth の response_type
        extra_query_parameters: クエリ末尾にそのまま付与する文字列
    """

    provider: str | None = None
    client_id: str | None = None
    base_url: str | None = None
    authorize_url: str | None = None
    redirect_url: str | None = None
    token_url: str | None = None
    scope: str | None = None
    resource: str | None = None
    state: bool = False
    nonce: bool = False
    response_type: str = "token"
    extra_query_parameters: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Endpoint":
        """camelCase / snake_case のどちらのキーでも受け付けて生成する。"""

        known = {item.name for item in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_CASE_KEYS.get(key, key)
            if name not in known:
                raise OAuthException(
                    create_config_error(
                        ErrorCode.CONFIG_INVALID_VALUE,
                        f"未知のエンドポイント設定項目です: {key}",
                        details={"key": key},
                    )
                )
            values[name] = value
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class LoginParams(NamedTuple):
    """1回の認証試行で使う認可URLと、検証用のstate。"""

    url: str
    state: int | None


def generate_crypto_safe_random() -> int:
    """暗号論的に安全な0以外の32bit符号なし整数を返す。

    Raises:
        OAuthException: 安全な乱数源が利用できない場合。
    """

    try:
        value = 0
        while value == 0:
            value = secrets.randbits(32)
    except NotImplementedError as exc:
        raise OAuthException(
            create_config_error(
                ErrorCode.CONFIG_INSECURE_RANDOM,
                "このプラットフォームでは暗号論的に安全な乱数を生成できません。"
                "state を無効にして再試行してください。",
            )
        ) from exc
    return value


def _encode(value: str) -> str:
    return quote(str(value), safe=_URI_COMPONENT_SAFE)


class EndpointManager:
    """OAuthエンドポイントの作成と登録を管理する。"""

    def __init__(
        self,
        storage: Storage | None = None,
        settings: AuthSettings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._storage = storage if storage is not None else Storage(ENDPOINTS_NAMESPACE, StorageType.LOCAL)

    def add(self, provider: str, config: Endpoint | Mapping[str, Any]) -> Endpoint:
        """エンドポイントを登録する。同名の登録は上書きされる。

        Args:
            provider: エンドポイントの一意な名前。
            config: エンドポイント設定。

        Returns:
            登録したエンドポイント。
        """

        endpoint = config if isinstance(config, Endpoint) else Endpoint.from_dict(config)
        endpoint = replace(endpoint, provider=provider)
        if endpoint.redirect_url is None:
            endpoint.redirect_url = self._settings.redirect_origin

        self._storage.insert(provider, endpoint.to_dict())
        logger.debug(f"エンドポイントを登録しました: {provider}")
        return endpoint

    def get(self, provider: str) -> Endpoint | None:
        data = self._storage.get(provider)
        if data is None:
            return None
        return Endpoint.from_dict(data)

    def remove(self, provider: str) -> bool:
        return self._storage.remove(provider)

    def clear(self) -> None:
        self._storage.clear()

    def providers(self) -> list[str]:
        return self._storage.keys()

    def register_google_auth(
        self,
        client_id: str,
        overrides: Mapping[str, Any] | None = None,
    ) -> Endpoint:
        """Googleのインプリシットフローを登録する。

        overridesを省略した場合、スコープは基本的なプロフィール情報に限定される。

        Args:
            client_id: GoogleアプリのクライアントID。
            overrides: 既定値を上書きするエンドポイント設定。

        Returns:
            登録したエンドポイント。
        """

        defaults = {
            "client_id": client_id,
            "base_url": "https://accounts.google.com",
            "authorize_url": "/o/oauth2/v2/auth",
            "resource": "https://www.googleapis.com",
            "response_type": "token",
            "scope": "https://www.googleapis.com/auth/plus.me",
            "state": True,
        }
        return self._register(DefaultEndpoints.GOOGLE, defaults, overrides)

    def register_microsoft_auth(
        self,
        client_id: str,
        overrides: Mapping[str, Any] | None = None,
    ) -> Endpoint:
        """Microsoftのインプリシットフローを登録する。

        Args:
            client_id: MicrosoftアプリのクライアントID。
            overrides: 既定値を上書きするエンドポイント設定。

        Returns:
            登録したエンドポイント。
        """

        defaults = {
            "client_id": client_id,
            "base_url": "https://login.microsoftonline.com/common/oauth2/v2.0",
            "authorize_url": "/authorize",
            "response_type": "token",
            "scope": "https://graph.microsoft.com/user.read",
            "extra_query_parameters": "response_mode=fragment",
            "nonce": True,
            "state": True,
        }
        return self._register(DefaultEndpoints.MICROSOFT, defaults, overrides)

    def register_facebook_auth(
        self,
        client_id: str,
        overrides: Mapping[str, Any] | None = None,
    ) -> Endpoint:
        """Facebookのインプリシットフローを登録する。

        Args:
            client_id: FacebookアプリのクライアントID。
            overrides: 既定値を上書きするエンドポイント設定。

        Returns:
            登録したエンドポイント。
        """

        defaults = {
            "client_id": client_id,
            "base_url": "https://www.facebook.com",
            "authorize_url": "/dialog/oauth",
            "resource": "https://graph.facebook.com",
            "response_type": "token",
            "scope": "public_profile",
            "nonce": True,
            "state": True,
        }
        return self._register(DefaultEndpoints.FACEBOOK, defaults, overrides)

    def register_azure_ad_auth(
        self,
        client_id: str,
        tenant: str,
        overrides: Mapping[str, Any] | None = None,
    ) -> Endpoint:
        """AzureADのインプリシットフローを登録する。

        Args:
            client_id: AzureADアプリのクライアントID。
            tenant: AzureADのテナント。
            overrides: 既定値を上書きするエンドポイント設定。

        Returns:
            登録したエンドポイント。
        """

        defaults = {
            "client_id": client_id,
            "base_url": f"https://login.windows.net/{tenant}",
            "authorize_url": "/oauth2/authorize",
            "resource": "https://graph.microsoft.com",
            "response_type": "token",
            "nonce": True,
            "state": True,
        }
        return self._register(DefaultEndpoints.AZURE_AD, defaults, overrides)

    def _register(
        self,
        provider: str,
        defaults: dict[str, Any],
        overrides: Mapping[str, Any] | None,
    ) -> Endpoint:
        config = dict(defaults)
        if overrides:
            # 未知のキーはここで弾き、明示されたキーだけを上書きする
            Endpoint.from_dict(overrides)
            config.update({_CAMEL_CASE_KEYS.get(key, key): value for key, value in overrides.items()})
        return self.add(provider, config)

    @staticmethod
    def get_login_params(endpoint: Endpoint) -> LoginParams:
        """認可URLを生成する。

        クエリは response_type, client_id, redirect_uri, scope, resource,
        state, nonce の順に並び、最後に extra_query_parameters をそのまま付与する。

        Args:
            endpoint: エンドポイント設定。

        Returns:
            LoginParams: 認可URLと、応答の検証に使うstate。
        """

        state = generate_crypto_safe_random() if endpoint.state else None
        nonce = generate_crypto_safe_random() if endpoint.nonce else None

        segments = [
            f"response_type={endpoint.response_type}",
            f"client_id={_encode(endpoint.client_id or '')}",
            f"redirect_uri={_encode(endpoint.redirect_url or '')}",
        ]
        if endpoint.scope:
            segments.append(f"scope={_encode(endpoint.scope)}")
        if endpoint.resource:
            segments.append(f"resource={_encode(endpoint.resource)}")
        if state:
            segments.append(f"state={state}")
        if nonce:
            segments.append(f"nonce={nonce}")
        if endpoint.extra_query_parameters:
            segments.append(endpoint.extra_query_parameters.lstrip("&"))

        url = f"{endpoint.base_url or ''}{endpoint.authorize_url or ''}?{'&'.join(segments)}"
        return LoginParams(url=url, state=state)
