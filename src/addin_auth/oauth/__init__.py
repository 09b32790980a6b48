"""OAuth認証の公開API。"""

from __future__ import annotations

from addin_auth.oauth.authenticator import Authenticator
from addin_auth.oauth.endpoints import (
    DefaultEndpoints,
    Endpoint,
    EndpointManager,
    LoginParams,
    generate_crypto_safe_random,
)
from addin_auth.oauth.host import (
    Dialog,
    DialogEventType,
    DialogMessage,
    DialogResult,
    HostEnvironment,
    NativeAuthChannel,
    PopupWindow,
    has_dialog_api,
    reset_dialog_api_cache,
)
from addin_auth.oauth.parser import classify, get_token, is_token_url
from addin_auth.oauth.popup import BrowserPopup, open_browser_popup
from addin_auth.oauth.sizing import DialogSize, determine_dialog_size
from addin_auth.oauth.storage import Storage, StorageType
from addin_auth.oauth.tokens import TokenManager
from addin_auth.oauth.transports import (
    DialogTransport,
    NativeAuthTransport,
    PopupTransport,
    Transport,
)

__all__ = [
    "Authenticator",
    "BrowserPopup",
    "DefaultEndpoints",
    "Dialog",
    "DialogEventType",
    "DialogMessage",
    "DialogResult",
    "DialogSize",
    "DialogTransport",
    "Endpoint",
    "EndpointManager",
    "HostEnvironment",
    "LoginParams",
    "NativeAuthChannel",
    "NativeAuthTransport",
    "PopupTransport",
    "PopupWindow",
    "Storage",
    "StorageType",
    "TokenManager",
    "Transport",
    "classify",
    "determine_dialog_size",
    "generate_crypto_safe_random",
    "get_token",
    "has_dialog_api",
    "is_token_url",
    "open_browser_popup",
    "reset_dialog_api_cache",
]
