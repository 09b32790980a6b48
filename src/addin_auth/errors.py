"""
エラー定義

OAuth認証フローで使用されるエラーコードと例外クラス
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """エラーコード

    カテゴリ別にエラーコードを定義:
    - CONFIG_xxx: 設定エラー
    - TRANSPORT_xxx: 認証画面（ポップアップ/ダイアログ）のエラー
    - PROTOCOL_xxx: リダイレクト応答のエラー
    - NETWORK_xxx: コード交換時の通信エラー
    """
    # 設定エラー
    CONFIG_UNKNOWN_ENDPOINT = "CONFIG_001"
    CONFIG_INSECURE_RANDOM = "CONFIG_002"
    CONFIG_INVALID_VALUE = "CONFIG_003"

    # トランスポートエラー
    TRANSPORT_POPUP_CLOSED = "TRANSPORT_001"
    TRANSPORT_POPUP_FAILED = "TRANSPORT_002"
    TRANSPORT_DIALOG_FAILED = "TRANSPORT_003"
    TRANSPORT_NATIVE_FAILED = "TRANSPORT_004"

    # プロトコルエラー
    PROTOCOL_UNPARSEABLE = "PROTOCOL_001"
    PROTOCOL_STATE_MISMATCH = "PROTOCOL_002"
    PROTOCOL_PROVIDER_ERROR = "PROTOCOL_003"

    # ネットワークエラー
    NETWORK_ERROR = "NETWORK_001"
    NETWORK_BAD_STATUS = "NETWORK_002"
    NETWORK_BAD_RESPONSE = "NETWORK_003"

    @property
    def category(self) -> str:
        """エラーカテゴリ（config / transport / protocol / network）"""
        return self.name.split("_", 1)[0].lower()


@dataclass
class OAuthError:
    """OAuthエラー情報

    Attributes:
        code: エラーコード文字列
        message: エラーメッセージ
        state: プロバイダから返されたstate（存在する場合）
        details: 追加のエラー詳細情報
        log_level: ログ出力時のレベル
    """
    code: str
    message: str
    state: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    log_level: int = logging.ERROR


class OAuthException(Exception):
    """OAuth例外クラス

    OAuthErrorをラップする例外クラス。認証フローの失敗はすべてこの型で通知される。
    """

    def __init__(self, error: OAuthError):
        """OAuthExceptionを初期化

        Args:
            error: OAuthErrorインスタンス
        """
        self.error = error
        self.log_level = error.log_level
        super().__init__(f"[{error.code}] {error.message}")

    @property
    def code(self) -> ErrorCode:
        return ErrorCode(self.error.code)

    @property
    def category(self) -> str:
        return self.code.category

    @property
    def state(self) -> Optional[str]:
        return self.error.state

    @property
    def message(self) -> str:
        return self.error.message


ERROR_CODE_LOG_LEVEL: Dict[ErrorCode, int] = {
    ErrorCode.CONFIG_INSECURE_RANDOM: logging.CRITICAL,
    ErrorCode.PROTOCOL_STATE_MISMATCH: logging.WARNING,
    ErrorCode.TRANSPORT_POPUP_CLOSED: logging.INFO,
    ErrorCode.TRANSPORT_NATIVE_FAILED: logging.INFO,
}


def _create_error(
    code: ErrorCode,
    message: str,
    state: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    log_level: Optional[int] = None,
) -> OAuthError:
    return OAuthError(
        code=code.value,
        message=message,
        state=state,
        details=details,
        log_level=log_level or ERROR_CODE_LOG_LEVEL.get(code, logging.ERROR),
    )


# よく使用されるエラーのファクトリ関数
def create_config_error(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> OAuthError:
    """設定エラーを作成

    Args:
        code: エラーコード（CONFIG_xxx）
        message: エラーメッセージ
        details: 追加詳細

    Returns:
        OAuthError: 設定エラー
    """
    return _create_error(code, message, details=details)


def create_transport_error(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> OAuthError:
    """トランスポートエラーを作成

    Args:
        code: エラーコード（TRANSPORT_xxx）
        message: エラーメッセージ
        details: 追加詳細

    Returns:
        OAuthError: トランスポートエラー
    """
    return _create_error(code, message, details=details)


def create_protocol_error(
    code: ErrorCode,
    message: str,
    state: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> OAuthError:
    """プロトコルエラーを作成

    Args:
        code: エラーコード（PROTOCOL_xxx）
        message: エラーメッセージ
        state: プロバイダが返したstate
        details: 追加詳細

    Returns:
        OAuthError: プロトコルエラー
    """
    return _create_error(code, message, state=state, details=details)


def create_network_error(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> OAuthError:
    """ネットワークエラーを作成

    Args:
        code: エラーコード（NETWORK_xxx）
        message: エラーメッセージ
        details: 追加詳細（ステータスコードなど）

    Returns:
        OAuthError: ネットワークエラー
    """
    return _create_error(code, message, details=details)
