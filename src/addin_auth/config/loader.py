"""
エンドポイント設定ファイルの読み込み

YAMLに記述したエンドポイント定義を EndpointManager に登録する。

    endpoints:
      Google:
        preset: google
        client_id: "xxxx.apps.googleusercontent.com"
      MyApi:
        clientId: "my-client"
        baseUrl: "https://auth.example.com"
        authorizeUrl: "/authorize"
        tokenUrl: "https://api.example.com/token"
        responseType: code
        state: true
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from addin_auth.config.settings import AuthSettings, get_settings
from addin_auth.errors import ErrorCode, OAuthException, create_config_error
from addin_auth.oauth.endpoints import DefaultEndpoints, Endpoint, EndpointManager

logger = logging.getLogger(__name__)

PRESET_PROVIDERS = {
    "google": DefaultEndpoints.GOOGLE,
    "microsoft": DefaultEndpoints.MICROSOFT,
    "facebook": DefaultEndpoints.FACEBOOK,
    "azuread": DefaultEndpoints.AZURE_AD,
}


def mask_secret(value: Optional[str]) -> str:
    """クライアントIDなどをマスクしてログ出力を避ける"""
    if not value:
        return "***"
    if len(value) <= 4:
        return "*" * len(value)
    return f"***{value[-4:]}"


class EndpointConfigLoader:
    """エンドポイント設定ローダー(yaml → EndpointManager)"""

    def __init__(self, settings: Optional[AuthSettings] = None) -> None:
        self._settings = settings or get_settings()

    def load(self, manager: EndpointManager, config_path: Optional[Path] = None) -> List[Endpoint]:
        """設定ファイルのエンドポイントを登録する

        Args:
            manager: 登録先
            config_path: 設定ファイルのパス（省略時は設定の endpoints_file）

        Returns:
            登録したエンドポイントのリスト

        Raises:
            OAuthException: 設定ファイルの形式が不正な場合
        """
        resolved_path = config_path or self._settings.endpoints_file
        if resolved_path is None or not resolved_path.exists():
            logger.debug(f"エンドポイント設定ファイルがありません: {resolved_path}")
            return []

        data = self._read(resolved_path)
        raw_endpoints = data.get("endpoints") or {}
        if not isinstance(raw_endpoints, dict):
            raise self._invalid(f"endpoints はマッピングである必要があります: {resolved_path}")

        registered: List[Endpoint] = []
        for provider, cfg in raw_endpoints.items():
            if not isinstance(cfg, dict):
                raise self._invalid(f"{provider} の設定はマッピングである必要があります")
            registered.append(self._register(manager, str(provider), dict(cfg)))

        logger.info(f"{len(registered)} 件のエンドポイントを登録しました: {resolved_path}")
        return registered

    def _read(self, path: Path) -> Dict[str, Any]:
        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            raise self._invalid(f"エンドポイント設定ファイルを読み込めません: {path}: {e}") from e

        if not isinstance(data, dict):
            raise self._invalid(
                f"エンドポイント設定の形式が不正です: mapping が必要ですが {type(data).__name__} でした"
            )
        return data

    def _register(self, manager: EndpointManager, provider: str, cfg: Dict[str, Any]) -> Endpoint:
        preset = cfg.pop("preset", None)
        if preset is None:
            return manager.add(provider, cfg)

        preset_key = str(preset).lower()
        if preset_key not in PRESET_PROVIDERS:
            raise self._invalid(f"未対応のプリセットです: {preset}")
        if PRESET_PROVIDERS[preset_key] != provider:
            raise self._invalid(
                f"プリセット {preset} は {PRESET_PROVIDERS[preset_key]} という名前で登録してください"
            )

        client_id = cfg.pop("client_id", None) or cfg.pop("clientId", None)
        if not client_id:
            raise self._invalid(f"{provider} の client_id が未設定です")
        logger.debug(f"{provider} をプリセットから登録します (client_id={mask_secret(client_id)})")

        if preset_key == "google":
            return manager.register_google_auth(client_id, cfg)
        if preset_key == "microsoft":
            return manager.register_microsoft_auth(client_id, cfg)
        if preset_key == "facebook":
            return manager.register_facebook_auth(client_id, cfg)

        tenant = cfg.pop("tenant", None)
        if not tenant:
            raise self._invalid(f"{provider} の tenant が未設定です")
        return manager.register_azure_ad_auth(client_id, tenant, cfg)

    @staticmethod
    def _invalid(message: str) -> OAuthException:
        return OAuthException(create_config_error(ErrorCode.CONFIG_INVALID_VALUE, message))
