"""発行済みトークンのキャッシュ。"""

from __future__ import annotations

import logging
import time
from typing import Any

from addin_auth.oauth.storage import Storage, StorageType

logger = logging.getLogger(__name__)

TOKENS_NAMESPACE = "OAuth2Tokens"


class TokenManager:
    """プロバイダ名をキーにトークンを保存する。

    同じプロバイダに対しては常に最後に追加されたトークンが有効となる。
    期限切れのトークンは削除せず、読み出し側が ``has_expired`` で判定する。
    """

    def __init__(self, storage: Storage | None = None) -> None:
        self._storage = storage if storage is not None else Storage(TOKENS_NAMESPACE, StorageType.LOCAL)

    def get(self, provider: str) -> dict[str, Any] | None:
        return self._storage.get(provider)

    def add(self, provider: str, token: dict[str, Any]) -> dict[str, Any]:
        """トークンを保存する。

        ``expires_in`` があれば保存時刻から ``expires_at``（エポック秒）を算出する。

        Args:
            provider: プロバイダ名。
            token: プロバイダから受け取ったトークン。

        Returns:
            保存したトークン。
        """

        stored = dict(token)
        stored["provider"] = provider
        expires_in = stored.get("expires_in")
        if "expires_at" not in stored and expires_in is not None:
            try:
                stored["expires_at"] = time.time() + float(expires_in)
            except (TypeError, ValueError):
                logger.warning(f"{provider} の expires_in を解釈できません: {expires_in!r}")

        self._storage.insert(provider, stored)
        return stored

    def remove(self, provider: str) -> bool:
        return self._storage.remove(provider)

    def clear(self) -> None:
        self._storage.clear()

    def providers(self) -> list[str]:
        return self._storage.keys()

    @staticmethod
    def has_expired(token: dict[str, Any] | None) -> bool:
        """トークンが期限切れかどうかを判定する。

        トークンが無い場合は期限切れとみなす。期限情報を持たないトークンは
        期限切れにならない。
        """

        if token is None:
            return True

        expires_at = token.get("expires_at")
        if expires_at is None:
            return False

        try:
            return time.time() >= float(expires_at)
        except (TypeError, ValueError):
            return True
