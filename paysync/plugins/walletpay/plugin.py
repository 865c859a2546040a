"""
WalletPay Connector Plugin

Reference plugin for a provider whose transfer listing only supports
skip/count, newest first. Payments are synchronized per account with
the timeline scanner; accounts follow a forward ID cursor. Requests are
authenticated with OAuth2 client credentials. Webhooks carry only the
transfer ID, so translation fetches the transfer.
"""

import json
import logging
from datetime import datetime
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from paysync.client import HttpConfig, HttpTransport, OAuthConfig
from paysync.errors import InvalidRequestError
from paysync.metrics import MetricsCollector
from paysync.plugins.base import InstallResponse, Plugin
from paysync.plugins.walletpay.client import Account, Transfer, WalletPayClient
from paysync.sync import (
    FetchNextAccountsResponse,
    FetchNextBalancesResponse,
    FetchNextPaymentsResponse,
    FetchNextRequest,
    LastIDState,
    TimelineScanner,
    TimelineState,
    decode_state,
    encode_state,
    should_fetch_more,
    trim,
)
from paysync.webhooks import WebhookRouter, reconcile_subscriptions, verify_webhook_signature
from paysync_models import (
    Capability,
    PaymentScheme,
    PaymentStatus,
    PaymentType,
    PSPAccount,
    PSPBalance,
    PSPPayment,
    PSPWebhook,
    WebhookConfig,
    WebhookResponse,
    idempotency_key,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-WalletPay-Signature"

TRANSFER_STATUSES: dict[str, PaymentStatus] = {
    "created": PaymentStatus.PENDING,
    "queued": PaymentStatus.PENDING,
    "pending": PaymentStatus.PENDING,
    "completed": PaymentStatus.SUCCEEDED,
    "failed": PaymentStatus.FAILED,
    "canceled": PaymentStatus.CANCELLED,
    "reversed": PaymentStatus.REFUNDED,
}

TRANSFER_KINDS: dict[str, PaymentType] = {
    "payin": PaymentType.PAYIN,
    "payout": PaymentType.PAYOUT,
    "transfer": PaymentType.TRANSFER,
}

Listed = tuple[Transfer, dict[str, Any]]


class WalletPayConfig(BaseModel):
    """Connector config of the WalletPay plugin."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    endpoint: str = Field(min_length=1)
    token_url: str = "/oauth/token"
    webhook_secret: str | None = None


class WebhookNotification(BaseModel):
    """WalletPay webhook body: a reference to the changed resource."""

    event_id: str = Field(alias="eventID")
    event_type: str = Field(alias="eventType")
    resource_id: str = Field(alias="resourceID")
    created_on: datetime = Field(alias="createdOn")


class WalletPayPlugin(Plugin):
    """Connector for the WalletPay API."""

    provider = "walletpay"
    capabilities = frozenset(
        {
            Capability.FETCH_ACCOUNTS,
            Capability.FETCH_BALANCES,
            Capability.FETCH_PAYMENTS,
            Capability.CREATE_WEBHOOKS,
            Capability.TRANSLATE_WEBHOOKS,
        }
    )
    account_streams = ("balances", "payments")

    def __init__(
        self,
        connector_name: str,
        config: WalletPayConfig,
        transport: httpx.BaseTransport | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        super().__init__(connector_name, config)
        self.http = HttpTransport(
            HttpConfig(
                connector_name=connector_name,
                base_url=config.endpoint,
                transport=transport,
                oauth=OAuthConfig(
                    token_url=config.token_url,
                    client_id=config.client_id,
                    client_secret=config.client_secret,
                ),
            ),
            metrics=metrics,
        )
        self.client = WalletPayClient(self.http)

        self.webhooks = WebhookRouter()
        self.webhooks.add("transfer.created", "/transfer-created", self._translate_transfer)
        self.webhooks.add("transfer.updated", "/transfer-updated", self._translate_transfer)

    def close(self) -> None:
        self.http.close()

    def install(self) -> InstallResponse:
        response = super().install()
        response.webhook_events = self.webhooks.event_types()
        return response

    # ========== Accounts ==========

    def fetch_next_accounts(self, request: FetchNextRequest) -> FetchNextAccountsResponse:
        request.validate()
        state = decode_state(request.state, LastIDState)

        accounts: list[PSPAccount] = []
        need_more = True
        has_more = False
        starting_after = state.last_id
        while True:
            batch = self.client.get_accounts(request.page_size, starting_after)
            accounts.extend(_to_account(account, raw) for account, raw in batch)
            need_more, has_more = should_fetch_more(accounts, batch, request.page_size)
            if not need_more or len(batch) < request.page_size:
                break
            starting_after = batch[-1][0].account_id

        accounts = trim(accounts, request.page_size, need_more)

        new_state = state.model_copy()
        if accounts:
            new_state.last_id = accounts[-1].reference

        return FetchNextAccountsResponse(
            accounts=accounts,
            new_state=encode_state(new_state),
            has_more=has_more,
        )

    # ========== Balances ==========

    def fetch_next_balances(self, request: FetchNextRequest) -> FetchNextBalancesResponse:
        request.validate()
        account_id = _account_reference(request)

        balance, raw = self.client.get_balance(account_id)
        return FetchNextBalancesResponse(
            balances=[
                PSPBalance(
                    account_reference=account_id,
                    created_at=balance.updated_on,
                    amount=balance.available.value,
                    asset=balance.available.currency.upper(),
                    raw=raw,
                )
            ],
            has_more=False,
        )

    # ========== Payments ==========

    def fetch_next_payments(self, request: FetchNextRequest) -> FetchNextPaymentsResponse:
        request.validate()
        account_id = _account_reference(request)
        state = decode_state(request.state, TimelineState)

        scanner: TimelineScanner[Listed] = TimelineScanner(
            fetch=lambda skip, count, since: self.client.get_transfers(
                account_id, skip, count, since
            ),
            item_id=lambda item: item[0].transfer_id,
            created_on=lambda item: item[0].created_on,
        )
        result = scanner.scan(state, request.page_size)

        payments = [_to_payment(transfer, raw) for transfer, raw in result.items]
        return FetchNextPaymentsResponse(
            payments=payments,
            new_state=encode_state(result.state),
            has_more=result.has_more,
        )

    # ========== Webhooks ==========

    def create_webhooks(self, base_url: str) -> list[WebhookConfig]:
        return reconcile_subscriptions(
            base_url,
            self.webhooks,
            self.client.list_webhooks(),
            create=self.client.create_webhook,
            update=self.client.update_webhook,
            secret=self.config.webhook_secret,
        )

    def verify_webhook(self, config: WebhookConfig, webhook: PSPWebhook) -> None:
        verify_webhook_signature(config, webhook, SIGNATURE_HEADER)

    def translate_webhook(
        self, config: WebhookConfig, webhook: PSPWebhook
    ) -> list[WebhookResponse]:
        return self.webhooks.dispatch(config, webhook)

    def _translate_transfer(
        self, config: WebhookConfig, webhook: PSPWebhook
    ) -> list[WebhookResponse]:
        try:
            notification = WebhookNotification.model_validate(json.loads(webhook.body))
        except (ValueError, ValidationError) as exc:
            raise InvalidRequestError("malformed webhook body") from exc

        transfer, raw = self.client.get_transfer(notification.resource_id)
        return [
            WebhookResponse(
                idempotency_key=idempotency_key(
                    notification.resource_id, config.name, notification.created_on
                ),
                payment=_to_payment(transfer, raw),
            )
        ]


# ========== Mapping ==========


def _account_reference(request: FetchNextRequest) -> str:
    reference = request.parent().get("reference")
    if not reference:
        raise InvalidRequestError("from_payload has no account reference")
    return reference


def _to_account(account: Account, raw: dict[str, Any]) -> PSPAccount:
    return PSPAccount(
        reference=account.account_id,
        created_at=account.created_on,
        name=account.display_name,
        default_asset=account.currency.upper() if account.currency else None,
        raw=raw,
    )


def _to_payment(transfer: Transfer, raw: dict[str, Any]) -> PSPPayment:
    # The provider kind is kept as is, whichever account listed the transfer
    return PSPPayment(
        reference=transfer.transfer_id,
        created_at=transfer.created_on,
        type=TRANSFER_KINDS.get(transfer.kind.lower(), PaymentType.OTHER),
        amount=transfer.amount.value,
        asset=transfer.amount.currency.upper(),
        scheme=PaymentScheme.OTHER,
        status=TRANSFER_STATUSES.get(transfer.status.lower(), PaymentStatus.OTHER),
        source_account_reference=transfer.source.account_id,
        destination_account_reference=transfer.destination.account_id,
        raw=raw,
    )
