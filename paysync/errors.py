"""
paysync Errors

Exception hierarchy shared by the transport, the sync primitives,
the webhook subsystem and the plugin registry.

    PaysyncError
    ├── HttpError
    │   ├── NetworkFailureError      (no response, status 0)
    │   ├── ClientError              (4xx)
    │   │   └── RateLimitedError     (429)
    │   └── ServerError              (5xx)
    ├── DecodeError
    ├── OAuthError
    ├── CursorDecodeError
    ├── WebhookVerificationError
    ├── WebhookConfigError
    ├── UnsupportedEventError
    ├── UnsupportedOperationError
    ├── InvalidRequestError
    │   └── MissingFromPayloadError
    ├── PluginNotFoundError
    └── RegistryFrozenError
"""

from typing import Any


class PaysyncError(Exception):
    """Base class for all paysync errors."""


# ========== HTTP ==========


class HttpError(PaysyncError):
    """A provider call failed at the HTTP level."""

    def __init__(
        self,
        message: str,
        status_code: int,
        endpoint: str,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint
        self.body = body


class NetworkFailureError(HttpError):
    """The request never produced a response (DNS, connect, timeout)."""

    def __init__(self, message: str, endpoint: str) -> None:
        super().__init__(message, status_code=0, endpoint=endpoint)


class ClientError(HttpError):
    """The provider rejected the request (4xx)."""


class RateLimitedError(ClientError):
    """The provider throttled the request (429)."""


class ServerError(HttpError):
    """The provider failed to handle the request (5xx)."""


class DecodeError(PaysyncError):
    """A successful response body did not match the expected shape."""


class OAuthError(PaysyncError):
    """Obtaining an access token failed."""


# ========== Sync ==========


class CursorDecodeError(PaysyncError):
    """A stored cursor could not be decoded."""


class InvalidRequestError(PaysyncError):
    """A fetch or registration request is malformed."""


class MissingFromPayloadError(InvalidRequestError):
    """A child-stream fetch was called without its parent payload."""


class UnsupportedOperationError(PaysyncError):
    """The plugin does not implement the requested operation."""


# ========== Webhooks ==========


class WebhookVerificationError(PaysyncError):
    """The webhook signature does not match its body."""


class WebhookConfigError(PaysyncError):
    """The webhook cannot be verified because secret or signature is absent."""


class UnsupportedEventError(PaysyncError):
    """No handler is registered for the webhook's event type."""


# ========== Registry ==========


class PluginNotFoundError(PaysyncError):
    """No plugin is registered under the requested name."""


class RegistryFrozenError(PaysyncError):
    """A plugin was registered after the registry was frozen."""
