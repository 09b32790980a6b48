"""設定管理 - 設定の読み込みと管理

EndpointConfigLoader は AuthSettings.endpoints_file (または指定したパス) の
YAML を読み込み、EndpointManager にエンドポイントを登録する。
"""

from addin_auth.config.loader import PRESET_PROVIDERS, EndpointConfigLoader, mask_secret
from addin_auth.config.settings import AuthSettings, get_settings, reset_settings

__all__ = [
    "AuthSettings",
    "EndpointConfigLoader",
    "PRESET_PROVIDERS",
    "get_settings",
    "mask_secret",
    "reset_settings",
]
