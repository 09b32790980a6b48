"""リダイレクトURLからトークン・コード・エラーを取り出す。"""

from __future__ import annotations

import re
from typing import Any, Literal
from urllib.parse import unquote

from addin_auth.errors import ErrorCode, OAuthException, create_config_error

_PARAM_PATTERN = re.compile(r"([^&=]+)=([^&]*)")
_TOKEN_URL_PATTERN = re.compile(r"(access_token|code|error)", re.IGNORECASE)

ResultKind = Literal["token", "code", "error"]


def get_token(url: str, exclude: str | None = None, delimiter: str = "#") -> dict[str, str] | None:
    """URLから応答パラメータを抽出する。

    ``exclude`` を取り除いた後、``delimiter`` 以降をパラメータ部として扱う。
    パラメータ部に ``?`` が含まれていれば、その後ろだけを対象にする。
    同じキーが複数ある場合は最後の値が採用される。

    Args:
        url: 抽出元のURL（または認証画面から届いたメッセージ）。
        exclude: 取り除く文字列。通常はリダイレクトURL。
        delimiter: 応答の開始を示す区切り文字。既定は ``#``。

    Returns:
        抽出したパラメータ。区切り文字が見つからない場合はNone。

    Raises:
        OAuthException: 区切り文字が空の場合。
    """

    if not delimiter:
        raise OAuthException(
            create_config_error(ErrorCode.CONFIG_INVALID_VALUE, "区切り文字は空にできません。")
        )

    if exclude:
        url = url.replace(exclude, "", 1)

    if delimiter not in url:
        return None

    payload = url.split(delimiter)[1]
    if payload.startswith("/"):
        payload = payload[1:]

    if "?" in payload:
        payload = payload.split("?", 1)[1]

    return extract_params(payload)


def extract_params(segment: str) -> dict[str, str]:
    params: dict[str, str] = {}
    for key, value in _PARAM_PATTERN.findall(segment):
        params[unquote(key)] = unquote(value)
    return params


def is_token_url(url: str) -> bool:
    """URLに access_token / code / error のいずれかが含まれるかを返す。"""
    return _TOKEN_URL_PATTERN.search(url) is not None


def classify(result: dict[str, Any]) -> ResultKind:
    if "access_token" in result:
        return "token"
    if "code" in result:
        return "code"
    return "error"
