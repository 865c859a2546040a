"""Webhook subsystem: registration, verification, dispatch."""

from paysync.webhooks.router import SupportedWebhook, WebhookHandler, WebhookRouter
from paysync.webhooks.subscriptions import (
    HookSubscription,
    build_webhook_url,
    reconcile_subscriptions,
)
from paysync.webhooks.verify import (
    compute_signature,
    verify_signature,
    verify_webhook_signature,
)

__all__ = [
    "HookSubscription",
    "SupportedWebhook",
    "WebhookHandler",
    "WebhookRouter",
    "build_webhook_url",
    "compute_signature",
    "reconcile_subscriptions",
    "verify_signature",
    "verify_webhook_signature",
]
