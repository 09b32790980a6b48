"""addin-auth - アドイン/ブラウザ向けOAuth認証ヘルパー"""

from addin_auth.errors import ErrorCode, OAuthError, OAuthException
from addin_auth.oauth import (
    Authenticator,
    DefaultEndpoints,
    Endpoint,
    EndpointManager,
    TokenManager,
)

__version__ = "0.1.0"

__all__ = [
    "Authenticator",
    "DefaultEndpoints",
    "Endpoint",
    "EndpointManager",
    "ErrorCode",
    "OAuthError",
    "OAuthException",
    "TokenManager",
    "__version__",
]
