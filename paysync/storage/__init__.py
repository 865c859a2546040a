"""Persistence of cursors, records and webhook deliveries."""

from paysync.storage.database import StateStorage
from paysync.storage.models import (
    Base,
    SyncedRecord,
    SyncState,
    WebhookDelivery,
    WebhookEndpoint,
)

__all__ = [
    "Base",
    "StateStorage",
    "SyncState",
    "SyncedRecord",
    "WebhookDelivery",
    "WebhookEndpoint",
]
