"""
Webhook Signature Verification

HMAC-SHA256 over the raw request body, hex encoded, compared in constant
time against a signature header. Providers that prefix the digest with
"sha256=" are accepted as well.
"""

import hashlib
import hmac

from paysync.errors import WebhookConfigError, WebhookVerificationError
from paysync_models import PSPWebhook, WebhookConfig

SIGNATURE_PREFIX = "sha256="


def compute_signature(payload: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of payload under secret."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: str | None, secret: str | None) -> None:
    """
    Check a webhook signature.

    Args:
        payload: Raw request body, exactly as received
        signature: Value of the signature header
        secret: Per-endpoint signing secret

    Raises:
        WebhookConfigError: If the secret or the signature is missing
        WebhookVerificationError: If the signature does not match
    """
    if not secret:
        raise WebhookConfigError("webhook signing secret is not configured")
    if not signature:
        raise WebhookConfigError("webhook signature header is missing")

    if signature.startswith(SIGNATURE_PREFIX):
        signature = signature[len(SIGNATURE_PREFIX):]

    expected = compute_signature(payload, secret).encode("ascii")
    candidate = signature.strip().lower().encode("utf-8")
    if not hmac.compare_digest(expected, candidate):
        raise WebhookVerificationError("webhook signature mismatch")


def verify_webhook_signature(
    config: WebhookConfig,
    webhook: PSPWebhook,
    header: str,
) -> None:
    """Verify a webhook against the secret stored in its config metadata."""
    verify_signature(webhook.body, webhook.header(header), config.metadata.get("secret"))
