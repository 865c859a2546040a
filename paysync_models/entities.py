"""
Normalized Provider Records

Provider-agnostic projections of accounts, balances, payments and
webhook payloads. Plugins map provider responses into these types.
"""

from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, Field

from .base import PSPRecord
from .enums import PaymentScheme, PaymentStatus, PaymentType


class PSPAccount(PSPRecord):
    """Account held at the provider (internal or external)."""

    name: str | None = None
    default_asset: str | None = None


class PSPBalance(BaseModel):
    """Point-in-time balance of one asset on an account."""

    account_reference: str
    created_at: dt.datetime
    amount: int
    asset: str
    raw: dict[str, Any] = Field(default_factory=dict)


class PSPPayment(PSPRecord):
    """Payment in minor units of its asset."""

    parent_reference: str | None = None
    type: PaymentType = PaymentType.UNKNOWN
    amount: int
    asset: str
    scheme: PaymentScheme = PaymentScheme.OTHER
    status: PaymentStatus = PaymentStatus.UNKNOWN
    source_account_reference: str | None = None
    destination_account_reference: str | None = None


class PSPOther(BaseModel):
    """Provider object with no normalized shape."""

    id: str
    other: dict[str, Any] = Field(default_factory=dict)


# ========== Payment initiation ==========


class PSPPaymentInitiation(BaseModel):
    """Transfer or payout to be created at the provider."""

    reference: str
    created_at: dt.datetime
    description: str | None = None
    amount: int
    asset: str
    source_account_reference: str | None = None
    destination_account_reference: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class BankAccount(BaseModel):
    """Bank account to be forwarded to the provider as an external account."""

    name: str
    account_number: str | None = None
    iban: str | None = None
    swift_bic_code: str | None = None
    country: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class CreatePaymentResponse(BaseModel):
    """
    Result of creating or polling a transfer or payout.

    polling_id is set while the payment is not final; pass it to the
    matching poll operation until it comes back empty.
    """

    payment: PSPPayment
    polling_id: str | None = None


# ========== Webhooks ==========


class WebhookConfig(BaseModel):
    """Registered webhook endpoint of one event type."""

    name: str
    url_path: str
    metadata: dict[str, str] = Field(default_factory=dict)


class PSPWebhook(BaseModel):
    """Raw inbound webhook request."""

    headers: dict[str, list[str]] = Field(default_factory=dict)
    query_values: dict[str, list[str]] = Field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        """Return the first value of a header, matched case-insensitively."""
        wanted = name.lower()
        for key, values in self.headers.items():
            if key.lower() == wanted and values:
                return values[0]
        return None


class WebhookResponse(BaseModel):
    """One normalized record produced by translating a webhook."""

    idempotency_key: str
    account: PSPAccount | None = None
    external_account: PSPAccount | None = None
    payment: PSPPayment | None = None
