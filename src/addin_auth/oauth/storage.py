"""名前空間付きのキー・バリューストレージを提供する。"""

from __future__ import annotations

import copy
from enum import Enum
import json
import os
from pathlib import Path
from typing import Any, Iterator
import warnings

import keyring
from keyring.errors import KeyringError

from addin_auth.config.settings import get_settings


class StorageType(Enum):
    """保存先の種別。"""

    LOCAL = "local"
    SESSION = "session"


class Storage:
    """名前空間単位でJSON値を保存するストレージ。

    LOCALはkeyringに名前空間全体を1つのJSON文書として保存し、keyringが
    使えない環境ではローカルファイルに切り替える。SESSIONはプロセス内の
    メモリにのみ保持する。
    """

    def __init__(
        self,
        namespace: str,
        storage_type: StorageType = StorageType.LOCAL,
        keyring_service: str | None = None,
        fallback_dir: Path | None = None,
    ) -> None:
        """Storageを初期化する。

        Args:
            namespace: 保存領域の名前（例: OAuth2Endpoints）。
            storage_type: 保存先の種別。
            keyring_service: keyringに保存する際のサービス名。
            fallback_dir: keyringが使えない場合の保存ディレクトリ。
        """

        settings = get_settings()
        self.namespace = namespace
        self.storage_type = storage_type
        self._keyring_service = keyring_service or settings.keyring_service
        self._fallback_path = (fallback_dir or settings.resolved_storage_dir) / f"{namespace}.json"
        self._use_keyring = True
        self._memory: dict[str, dict[str, Any]] = {}

    def insert(self, key: str, value: dict[str, Any]) -> dict[str, Any]:
        """値を保存する。既存の値は丸ごと置き換える。

        Args:
            key: キー。
            value: JSONに変換可能な辞書。

        Returns:
            保存した値。
        """

        items = self._load()
        items[key] = value
        self._save(items)
        return value

    def get(self, key: str) -> dict[str, Any] | None:
        return self._load().get(key)

    def remove(self, key: str) -> bool:
        items = self._load()
        if key not in items:
            return False
        items.pop(key)
        self._save(items)
        return True

    def clear(self) -> None:
        self._save({})

    def keys(self) -> list[str]:
        return list(self._load().keys())

    def values(self) -> list[dict[str, Any]]:
        return list(self._load().values())

    def items(self) -> list[tuple[str, dict[str, Any]]]:
        return list(self._load().items())

    def __contains__(self, key: object) -> bool:
        return key in self._load()

    def __len__(self) -> int:
        return len(self._load())

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def _load(self) -> dict[str, dict[str, Any]]:
        if self.storage_type is StorageType.SESSION:
            return copy.deepcopy(self._memory)

        if self._use_keyring:
            try:
                raw = keyring.get_password(self._keyring_service, self.namespace)
            except KeyringError as exc:
                self._switch_to_fallback(exc)
            else:
                return self._decode(raw)

        return self._read_fallback()

    def _save(self, items: dict[str, dict[str, Any]]) -> None:
        if self.storage_type is StorageType.SESSION:
            self._memory = copy.deepcopy(items)
            return

        if self._use_keyring:
            try:
                keyring.set_password(
                    self._keyring_service,
                    self.namespace,
                    json.dumps(items, ensure_ascii=False),
                )
                return
            except KeyringError as exc:
                self._switch_to_fallback(exc)

        self._write_fallback(items)

    def _decode(self, raw: str | None) -> dict[str, dict[str, Any]]:
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            warnings.warn(
                f"{self.namespace} の保存データの形式が不正です。空として扱います。",
                RuntimeWarning,
                stacklevel=3,
            )
            return {}

        if not isinstance(data, dict):
            return {}

        return {str(key): value for key, value in data.items() if isinstance(value, dict)}

    def _switch_to_fallback(self, exc: Exception) -> None:
        if self._use_keyring:
            warnings.warn(
                f"keyringが利用できないため、ローカルファイルに保存します: {exc}",
                RuntimeWarning,
                stacklevel=3,
            )
            self._use_keyring = False

    def _read_fallback(self) -> dict[str, dict[str, Any]]:
        if not self._fallback_path.exists():
            return {}

        self._ensure_fallback_permissions(self._fallback_path)
        with self._fallback_path.open("r", encoding="utf-8") as file:
            return self._decode(file.read())

    def _write_fallback(self, items: dict[str, dict[str, Any]]) -> None:
        self._fallback_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        with self._fallback_path.open("w", encoding="utf-8") as file:
            json.dump(items, file, ensure_ascii=False, indent=2)
        self._ensure_fallback_permissions(self._fallback_path)

    def _ensure_fallback_permissions(self, path: Path) -> None:
        if path.exists():
            os.chmod(path, 0o600)
