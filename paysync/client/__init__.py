"""Provider HTTP client components."""

from paysync.client.http import (
    HttpConfig,
    HttpResponse,
    HttpTransport,
    decode_item,
    default_error_classifier,
)
from paysync.client.oauth import OAuthConfig, TokenSource

__all__ = [
    "HttpConfig",
    "HttpResponse",
    "HttpTransport",
    "OAuthConfig",
    "TokenSource",
    "decode_item",
    "default_error_classifier",
]
