"""
Webhook Registration

Keeps the provider's webhook subscriptions in line with the event types
a plugin supports: one URL per event type under a common base URL.
Missing subscriptions are created, subscriptions pointing at a stale URL
are updated, correct ones are left alone.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from paysync.errors import InvalidRequestError
from paysync.webhooks.router import WebhookRouter
from paysync_models import WebhookConfig

logger = logging.getLogger(__name__)


@dataclass
class HookSubscription:
    """Subscription as registered at the provider."""

    id: str
    event_type: str
    url: str
    secret: str | None = None


CreateHook = Callable[[str, str], HookSubscription]
UpdateHook = Callable[[HookSubscription, str], HookSubscription]


def build_webhook_url(base_url: str, url_path: str) -> str:
    """Join the public base URL and an event's path."""
    if not base_url:
        raise InvalidRequestError("webhook base URL is required")
    return f"{base_url.rstrip('/')}/{url_path.lstrip('/')}"


def reconcile_subscriptions(
    base_url: str,
    router: WebhookRouter,
    existing: list[HookSubscription],
    create: CreateHook,
    update: UpdateHook,
    secret: str | None = None,
) -> list[WebhookConfig]:
    """
    Register one webhook per supported event type.

    Args:
        base_url: Public URL prefix the provider should post to
        router: Supported event types and their paths
        existing: Subscriptions currently registered at the provider
        create: Provider call creating a subscription (event_type, url)
        update: Provider call moving a subscription to a new URL
        secret: Shared signing secret, for providers without per-hook secrets

    Returns:
        One WebhookConfig per supported event type
    """
    if not base_url:
        raise InvalidRequestError("webhook base URL is required")

    by_event = {hook.event_type: hook for hook in existing}
    configs: list[WebhookConfig] = []

    for supported in router:
        url = build_webhook_url(base_url, supported.url_path)
        hook = by_event.get(supported.event_type)

        if hook is None:
            hook = create(supported.event_type, url)
            logger.info("Created webhook for %s", supported.event_type)
        elif hook.url != url:
            hook = update(hook, url)
            logger.info("Updated webhook for %s", supported.event_type)

        metadata: dict[str, str] = {}
        signing_secret = hook.secret or secret
        if signing_secret:
            metadata["secret"] = signing_secret
        configs.append(
            WebhookConfig(
                name=supported.event_type,
                url_path=supported.url_path,
                metadata=metadata,
            )
        )

    return configs
