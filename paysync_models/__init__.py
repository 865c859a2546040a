"""
paysync-models: Shared payment record types for paysync.

Single source of truth for the normalized record schemas used by
connector plugins, storage and the webhook API.
"""

from .base import PSPRecord
from .entities import (
    BankAccount,
    CreatePaymentResponse,
    PSPAccount,
    PSPBalance,
    PSPOther,
    PSPPayment,
    PSPPaymentInitiation,
    PSPWebhook,
    WebhookConfig,
    WebhookResponse,
)
from .enums import (
    STREAM_CAPABILITIES,
    Capability,
    PaymentScheme,
    PaymentStatus,
    PaymentType,
)
from .utils import format_datetime, idempotency_key, parse_datetime

__all__ = [
    # Enums
    "Capability",
    "PaymentScheme",
    "PaymentStatus",
    "PaymentType",
    "STREAM_CAPABILITIES",
    # Base
    "PSPRecord",
    # Records
    "PSPAccount",
    "PSPBalance",
    "PSPOther",
    "PSPPayment",
    # Payment initiation
    "BankAccount",
    "CreatePaymentResponse",
    "PSPPaymentInitiation",
    # Webhooks
    "PSPWebhook",
    "WebhookConfig",
    "WebhookResponse",
    # Utils
    "format_datetime",
    "idempotency_key",
    "parse_datetime",
]
