"""
Connector Plugin Contract

Every provider connector subclasses Plugin, declares the capabilities it
implements and overrides the matching operations. Operations a plugin
does not implement raise UnsupportedOperationError, so callers can both
inspect capabilities up front and degrade gracefully at call time.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from paysync.errors import UnsupportedOperationError
from paysync.sync.fetch import (
    FetchNextAccountsResponse,
    FetchNextBalancesResponse,
    FetchNextExternalAccountsResponse,
    FetchNextOthersResponse,
    FetchNextPaymentsResponse,
    FetchNextRequest,
)
from paysync_models import (
    STREAM_CAPABILITIES,
    BankAccount,
    Capability,
    CreatePaymentResponse,
    PSPAccount,
    PSPPaymentInitiation,
    PSPWebhook,
    WebhookConfig,
    WebhookResponse,
)

logger = logging.getLogger(__name__)


@dataclass
class InstallResponse:
    """What a freshly installed connector should run."""

    streams: list[str] = field(default_factory=list)
    webhook_events: list[str] = field(default_factory=list)


class Plugin:
    """Base class of all connector plugins."""

    provider: str = "base"
    capabilities: frozenset[Capability] = frozenset()
    # Streams listed once per account, with the account as from_payload
    account_streams: tuple[str, ...] = ("balances",)

    def __init__(self, connector_name: str, config: Any) -> None:
        self.connector_name = connector_name
        self.config = config

    def supports(self, capability: Capability) -> bool:
        """Whether the plugin implements a capability."""
        return capability in self.capabilities

    def _unsupported(self, operation: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            f"{self.provider} plugin does not support {operation}"
        )

    def close(self) -> None:
        """Release provider connections."""

    def install(self) -> InstallResponse:
        """Describe the streams and webhook events to set up for a new connector."""
        streams = [
            stream
            for stream, capability in STREAM_CAPABILITIES.items()
            if capability in self.capabilities
        ]
        logger.info("Installing %s connector %s", self.provider, self.connector_name)
        return InstallResponse(streams=streams)

    # ========== Polling ==========

    def fetch_next_accounts(self, request: FetchNextRequest) -> FetchNextAccountsResponse:
        raise self._unsupported("fetch_next_accounts")

    def fetch_next_balances(self, request: FetchNextRequest) -> FetchNextBalancesResponse:
        raise self._unsupported("fetch_next_balances")

    def fetch_next_external_accounts(
        self, request: FetchNextRequest
    ) -> FetchNextExternalAccountsResponse:
        raise self._unsupported("fetch_next_external_accounts")

    def fetch_next_payments(self, request: FetchNextRequest) -> FetchNextPaymentsResponse:
        raise self._unsupported("fetch_next_payments")

    def fetch_next_others(self, request: FetchNextRequest) -> FetchNextOthersResponse:
        raise self._unsupported("fetch_next_others")

    # ========== Webhooks ==========

    def create_webhooks(self, base_url: str) -> list[WebhookConfig]:
        raise self._unsupported("create_webhooks")

    def verify_webhook(self, config: WebhookConfig, webhook: PSPWebhook) -> None:
        raise self._unsupported("verify_webhook")

    def translate_webhook(
        self, config: WebhookConfig, webhook: PSPWebhook
    ) -> list[WebhookResponse]:
        raise self._unsupported("translate_webhook")

    # ========== Payment initiation ==========

    def create_transfer(self, initiation: PSPPaymentInitiation) -> CreatePaymentResponse:
        raise self._unsupported("create_transfer")

    def poll_transfer_status(self, transfer_id: str) -> CreatePaymentResponse:
        raise self._unsupported("poll_transfer_status")

    def create_payout(self, initiation: PSPPaymentInitiation) -> CreatePaymentResponse:
        raise self._unsupported("create_payout")

    def poll_payout_status(self, payout_id: str) -> CreatePaymentResponse:
        raise self._unsupported("poll_payout_status")

    def create_bank_account(self, bank_account: BankAccount) -> PSPAccount:
        raise self._unsupported("create_bank_account")
