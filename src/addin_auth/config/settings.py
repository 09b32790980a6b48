"""Pydantic V2 ベースの認証設定モデル"""

import logging
from pathlib import Path
from typing import Any, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class AuthSettings(BaseSettings):
    """addin-auth の統合設定"""

    model_config = SettingsConfigDict(
        env_prefix="ADDIN_AUTH_",
        env_file=".env",
        extra="forbid",
    )

    # リダイレクト設定
    redirect_origin: str = Field(default="http://localhost:8765")

    # ポップアップ設定
    poll_interval: float = Field(default=0.4, gt=0)
    popup_timeout: float = Field(default=300.0, gt=0)

    # コード交換設定
    exchange_timeout: float = Field(default=30.0, gt=0)

    # ダイアログサイズ算出に使う既定の画面サイズ
    screen_width: int = Field(default=1920, ge=1)
    screen_height: int = Field(default=1080, ge=1)

    # 永続化設定
    keyring_service: str = Field(default="addin_auth", min_length=1)
    storage_dir: Optional[Path] = None
    endpoints_file: Optional[Path] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[Any, ...]:
        """設定ソースの優先順位をカスタマイズ（init > env > dotenv）"""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @field_validator("redirect_origin")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """origin と同じ形式に揃えるため末尾のスラッシュを除去する"""
        if not value.strip():
            raise ValueError("redirect_origin は空にできません")
        return value.rstrip("/")

    @property
    def resolved_storage_dir(self) -> Path:
        return self.storage_dir or Path.home() / ".addin_auth"


_settings: Optional[AuthSettings] = None


def get_settings() -> AuthSettings:
    """プロセス共通の設定を返す（初回呼び出し時に生成）"""
    global _settings
    if _settings is None:
        _settings = AuthSettings()
        logger.debug(f"設定を読み込みました: {_settings.model_dump()}")
    return _settings


def reset_settings() -> None:
    """キャッシュされた設定を破棄する"""
    global _settings
    _settings = None
