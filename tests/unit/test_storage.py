"""
名前空間付きストレージのユニットテスト
"""

import json
import os
import tempfile
import unittest
import warnings
from pathlib import Path
from unittest.mock import patch

from keyring.errors import KeyringError

from addin_auth.oauth.storage import Storage, StorageType


class TestSessionStorage(unittest.TestCase):
    """SESSIONストレージ（メモリ）のテスト"""

    def setUp(self):
        self.storage = Storage("Test", StorageType.SESSION)

    def test_insert_and_get(self):
        value = {"a": 1}
        self.assertEqual(self.storage.insert("k", value), value)
        self.assertEqual(self.storage.get("k"), {"a": 1})
        self.assertIsNone(self.storage.get("missing"))

    def test_insert_replaces_whole_value(self):
        """同じキーへの書き込みは値全体を置き換えること"""
        self.storage.insert("k", {"a": 1, "b": 2})
        self.storage.insert("k", {"c": 3})
        self.assertEqual(self.storage.get("k"), {"c": 3})

    def test_values_are_copied(self):
        """保存した値と取得した値は呼び出し側の変更の影響を受けないこと"""
        value = {"a": {"nested": 1}}
        self.storage.insert("k", value)
        value["a"]["nested"] = 2
        fetched = self.storage.get("k")
        fetched["b"] = 3

        self.assertEqual(self.storage.get("k"), {"a": {"nested": 1}})

    def test_empty_storage_accepts_writes(self):
        self.assertEqual(len(self.storage), 0)
        self.storage.insert("k", {"v": 1})
        self.assertIn("k", self.storage)

    def test_enumeration_and_remove(self):
        self.storage.insert("x", {"v": 1})
        self.storage.insert("y", {"v": 2})

        self.assertEqual(sorted(self.storage.keys()), ["x", "y"])
        self.assertEqual(len(self.storage), 2)
        self.assertIn("x", self.storage)
        self.assertTrue(self.storage.remove("x"))
        self.assertFalse(self.storage.remove("x"))
        self.assertEqual(self.storage.items(), [("y", {"v": 2})])

        self.storage.clear()
        self.assertEqual(len(self.storage), 0)


class TestLocalStorage(unittest.TestCase):
    """LOCALストレージ（keyring + ファイル）のテスト"""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.fallback_dir = Path(self.tmpdir.name) / "store"
        self.keyring_data = {}

    def tearDown(self):
        self.tmpdir.cleanup()

    def _fake_get(self, service, name):
        return self.keyring_data.get((service, name))

    def _fake_set(self, service, name, value):
        self.keyring_data[(service, name)] = value

    def test_keyring_round_trip(self):
        """名前空間全体が1つのJSON文書としてkeyringに保存されること"""
        with patch("addin_auth.oauth.storage.keyring.get_password", side_effect=self._fake_get), patch(
            "addin_auth.oauth.storage.keyring.set_password", side_effect=self._fake_set
        ):
            storage = Storage("OAuth2Endpoints", keyring_service="svc", fallback_dir=self.fallback_dir)
            storage.insert("Google", {"client_id": "abc"})
            storage.insert("Facebook", {"client_id": "def"})

            raw = self.keyring_data[("svc", "OAuth2Endpoints")]
            self.assertEqual(
                json.loads(raw),
                {"Google": {"client_id": "abc"}, "Facebook": {"client_id": "def"}},
            )
            self.assertEqual(storage.get("Google"), {"client_id": "abc"})

        self.assertFalse(self.fallback_dir.exists())

    def test_fallback_to_file_when_keyring_fails(self):
        """keyringが使えない場合はファイルに保存し、警告を出すこと"""
        with patch(
            "addin_auth.oauth.storage.keyring.get_password", side_effect=KeyringError("no backend")
        ), patch("addin_auth.oauth.storage.keyring.set_password", side_effect=KeyringError("no backend")):
            storage = Storage("OAuth2Tokens", keyring_service="svc", fallback_dir=self.fallback_dir)
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always")
                storage.insert("Google", {"access_token": "t"})

            self.assertTrue(any(issubclass(w.category, RuntimeWarning) for w in caught))
            self.assertEqual(storage.get("Google"), {"access_token": "t"})

        path = self.fallback_dir / "OAuth2Tokens.json"
        self.assertTrue(path.exists())
        self.assertEqual(os.stat(path).st_mode & 0o777, 0o600)

    def test_corrupt_data_is_treated_as_empty(self):
        """壊れた保存データは空として扱うこと"""
        self.keyring_data[("svc", "Broken")] = "{not json"
        with patch("addin_auth.oauth.storage.keyring.get_password", side_effect=self._fake_get):
            storage = Storage("Broken", keyring_service="svc", fallback_dir=self.fallback_dir)
            with warnings.catch_warnings(record=True):
                warnings.simplefilter("always")
                self.assertEqual(storage.keys(), [])


if __name__ == "__main__":
    unittest.main()
