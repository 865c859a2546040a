"""
Webhook Dispatch

Maps provider event types to the URL path they are delivered on and to
the handler that translates them into normalized records.
"""

from collections.abc import Callable, Iterator
from dataclasses import dataclass

from paysync.errors import UnsupportedEventError
from paysync_models import PSPWebhook, WebhookConfig, WebhookResponse

WebhookHandler = Callable[[WebhookConfig, PSPWebhook], list[WebhookResponse]]


@dataclass(frozen=True)
class SupportedWebhook:
    """One event type a plugin can receive."""

    event_type: str
    url_path: str
    handler: WebhookHandler


class WebhookRouter:
    """Event type -> handler registry of one plugin."""

    def __init__(self) -> None:
        self._routes: dict[str, SupportedWebhook] = {}

    def add(self, event_type: str, url_path: str, handler: WebhookHandler) -> None:
        """Register the handler of an event type."""
        if not url_path.startswith("/"):
            url_path = f"/{url_path}"
        self._routes[event_type] = SupportedWebhook(event_type, url_path, handler)

    def __iter__(self) -> Iterator[SupportedWebhook]:
        return iter(self._routes.values())

    def __len__(self) -> int:
        return len(self._routes)

    def event_types(self) -> list[str]:
        return list(self._routes)

    def resolve(self, event_type: str) -> SupportedWebhook:
        """
        Look up an event type.

        Raises:
            UnsupportedEventError: If no handler is registered for it
        """
        try:
            return self._routes[event_type]
        except KeyError:
            raise UnsupportedEventError(f"unsupported webhook event: {event_type}") from None

    def dispatch(self, config: WebhookConfig, webhook: PSPWebhook) -> list[WebhookResponse]:
        """Translate a webhook with the handler of config.name."""
        return self.resolve(config.name).handler(config, webhook)
