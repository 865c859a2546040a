"""
Generic Connector Plugin

Reference plugin for page-numbered REST providers. Accounts and payments
use a creation-time watermark that the provider filters on, plus the IDs
delivered at that exact time; beneficiaries (external accounts) resume
from the last page and filter locally. Webhooks embed the full object and
are signed with a per-subscription secret returned when the subscription
is created. Transfers and payouts are created at the provider and polled
by ID while pending.
"""

import itertools
import json
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from paysync.client import HttpConfig, HttpTransport
from paysync.errors import InvalidRequestError
from paysync.metrics import MetricsCollector
from paysync.plugins.base import InstallResponse, Plugin
from paysync.plugins.generic.client import (
    Account,
    Balance,
    BankAccountRequest,
    Beneficiary,
    GenericClient,
    InitiatedPayment,
    PaymentRequest,
    Transaction,
)
from paysync.sync import (
    CreatedAtState,
    FetchNextAccountsResponse,
    FetchNextBalancesResponse,
    FetchNextExternalAccountsResponse,
    FetchNextOthersResponse,
    FetchNextPaymentsResponse,
    FetchNextRequest,
    PageState,
    advance_watermark,
    decode_state,
    encode_state,
    is_after_watermark,
    should_fetch_more,
    trim,
)
from paysync.webhooks import WebhookRouter, reconcile_subscriptions, verify_webhook_signature
from paysync_models import (
    BankAccount,
    Capability,
    CreatePaymentResponse,
    PaymentScheme,
    PaymentStatus,
    PaymentType,
    PSPAccount,
    PSPBalance,
    PSPOther,
    PSPPayment,
    PSPPaymentInitiation,
    PSPWebhook,
    WebhookConfig,
    WebhookResponse,
    idempotency_key,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

SIGNATURE_HEADER = "X-Signature"

PAYMENT_TYPES: dict[str, PaymentType] = {
    "payin": PaymentType.PAYIN,
    "payout": PaymentType.PAYOUT,
    "transfer": PaymentType.TRANSFER,
}

PAYMENT_STATUSES: dict[str, PaymentStatus] = {
    "pending": PaymentStatus.PENDING,
    "processing": PaymentStatus.PENDING,
    "succeeded": PaymentStatus.SUCCEEDED,
    "completed": PaymentStatus.SUCCEEDED,
    "failed": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.CANCELLED,
    "expired": PaymentStatus.EXPIRED,
    "refunded": PaymentStatus.REFUNDED,
}

PAYMENT_SCHEMES: dict[str, PaymentScheme] = {
    "sepa": PaymentScheme.SEPA,
    "sepa_credit": PaymentScheme.SEPA_CREDIT,
    "sepa_debit": PaymentScheme.SEPA_DEBIT,
    "ach": PaymentScheme.ACH,
    "rtp": PaymentScheme.RTP,
    "wire": PaymentScheme.WIRE,
    "visa": PaymentScheme.CARD_VISA,
    "mastercard": PaymentScheme.CARD_MASTERCARD,
}


class GenericConfig(BaseModel):
    """Connector config of the generic plugin."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    api_key: str = Field(min_length=1)
    endpoint: str = Field(min_length=1)


class WebhookEvent(BaseModel):
    """Envelope of a generic provider webhook."""

    id: str
    type: str
    created_at: datetime = Field(alias="createdAt")
    data: dict[str, Any]


def _page_loop(
    fetch: Callable[[int], list[T]],
    start_page: int,
    page_size: int,
    fill: Callable[[list[T], list[Any]], None],
) -> tuple[list[Any], bool, int]:
    """
    Request pages until the window is full or the provider runs dry.

    Returns:
        (items, has_more, last page requested)
    """
    items: list[Any] = []
    need_more = True
    has_more = False
    page = start_page
    for page in itertools.count(start_page):
        batch = fetch(page)
        fill(batch, items)
        need_more, has_more = should_fetch_more(items, batch, page_size)
        if not need_more or len(batch) < page_size:
            break
    return trim(items, page_size, need_more), has_more, page


def _advance(
    state: CreatedAtState, records: list[PSPAccount] | list[PSPPayment]
) -> CreatedAtState:
    last_created_at, last_ids = advance_watermark(
        [(record.created_at, record.reference) for record in records],
        state.last_created_at,
        state.last_ids,
    )
    return CreatedAtState(last_created_at=last_created_at, last_ids=last_ids)


class GenericPlugin(Plugin):
    """Connector for the generic page-numbered REST API."""

    provider = "generic"
    capabilities = frozenset(
        {
            Capability.FETCH_ACCOUNTS,
            Capability.FETCH_BALANCES,
            Capability.FETCH_EXTERNAL_ACCOUNTS,
            Capability.FETCH_PAYMENTS,
            Capability.FETCH_OTHERS,
            Capability.CREATE_WEBHOOKS,
            Capability.TRANSLATE_WEBHOOKS,
            Capability.CREATE_TRANSFER,
            Capability.CREATE_PAYOUT,
            Capability.CREATE_BANK_ACCOUNT,
        }
    )

    def __init__(
        self,
        connector_name: str,
        config: GenericConfig,
        transport: httpx.BaseTransport | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        super().__init__(connector_name, config)
        self.http = HttpTransport(
            HttpConfig(
                connector_name=connector_name,
                base_url=config.endpoint,
                transport=transport,
                base_headers={"Authorization": f"Bearer {config.api_key}"},
            ),
            metrics=metrics,
        )
        self.client = GenericClient(self.http)

        self.webhooks = WebhookRouter()
        self.webhooks.add("transaction.created", "/transaction-created", self._translate_payment)
        self.webhooks.add("transaction.updated", "/transaction-updated", self._translate_payment)
        self.webhooks.add("account.created", "/account-created", self._translate_account)

    def close(self) -> None:
        self.http.close()

    def install(self) -> InstallResponse:
        response = super().install()
        response.webhook_events = self.webhooks.event_types()
        return response

    # ========== Accounts ==========

    def fetch_next_accounts(self, request: FetchNextRequest) -> FetchNextAccountsResponse:
        request.validate()
        state = decode_state(request.state, CreatedAtState)

        def fill(batch: list[tuple[Account, dict]], out: list[PSPAccount]) -> None:
            for account, raw in batch:
                if len(out) >= request.page_size:
                    break
                if is_after_watermark(
                    account.created_at, account.id, state.last_created_at, state.last_ids
                ):
                    out.append(_to_account(account, raw))

        accounts, has_more, _ = _page_loop(
            lambda page: self.client.get_accounts(page, request.page_size, state.last_created_at),
            0,
            request.page_size,
            fill,
        )

        new_state = _advance(state, accounts)

        return FetchNextAccountsResponse(
            accounts=accounts,
            new_state=encode_state(new_state),
            has_more=has_more,
        )

    # ========== Balances ==========

    def fetch_next_balances(self, request: FetchNextRequest) -> FetchNextBalancesResponse:
        request.validate()
        account = request.parent()
        reference = account.get("reference")
        if not reference:
            raise InvalidRequestError("from_payload has no account reference")

        balances = [
            PSPBalance(
                account_reference=reference,
                created_at=balance.at,
                amount=balance.amount,
                asset=balance.currency.upper(),
                raw=raw,
            )
            for balance, raw in self.client.get_balances(reference)
        ]
        return FetchNextBalancesResponse(balances=balances, has_more=False)

    # ========== External accounts ==========

    def fetch_next_external_accounts(
        self, request: FetchNextRequest
    ) -> FetchNextExternalAccountsResponse:
        request.validate()
        state = decode_state(request.state, PageState)

        def fill(batch: list[tuple[Beneficiary, dict]], out: list[PSPAccount]) -> None:
            for beneficiary, raw in batch:
                if len(out) >= request.page_size:
                    break
                if is_after_watermark(
                    beneficiary.created_at, beneficiary.id, state.last_created_at, state.last_ids
                ):
                    out.append(_beneficiary_to_account(beneficiary, raw))

        accounts, has_more, page = _page_loop(
            lambda page: self.client.get_beneficiaries(page, request.page_size),
            state.last_page,
            request.page_size,
            fill,
        )

        last_created_at, last_ids = advance_watermark(
            [(account.created_at, account.reference) for account in accounts],
            state.last_created_at,
            state.last_ids,
        )
        new_state = PageState(last_page=page, last_created_at=last_created_at, last_ids=last_ids)

        return FetchNextExternalAccountsResponse(
            external_accounts=accounts,
            new_state=encode_state(new_state),
            has_more=has_more,
        )

    # ========== Payments ==========

    def fetch_next_payments(self, request: FetchNextRequest) -> FetchNextPaymentsResponse:
        request.validate()
        state = decode_state(request.state, CreatedAtState)

        def fill(batch: list[tuple[Transaction, dict]], out: list[PSPPayment]) -> None:
            for transaction, raw in batch:
                if len(out) >= request.page_size:
                    break
                if is_after_watermark(
                    transaction.created_at, transaction.id, state.last_created_at, state.last_ids
                ):
                    out.append(_to_payment(transaction, raw))

        payments, has_more, _ = _page_loop(
            lambda page: self.client.get_transactions(
                page, request.page_size, state.last_created_at
            ),
            0,
            request.page_size,
            fill,
        )

        new_state = _advance(state, payments)

        return FetchNextPaymentsResponse(
            payments=payments,
            new_state=encode_state(new_state),
            has_more=has_more,
        )

    # ========== Others ==========

    def fetch_next_others(self, request: FetchNextRequest) -> FetchNextOthersResponse:
        request.validate()
        if not request.name:
            raise InvalidRequestError("name is required to fetch other resources")
        state = decode_state(request.state, PageState)

        # Items of the current page delivered so far, earlier runs included
        skip = state.page_offset or 0
        consumed = 0

        def fill(batch: list[dict[str, Any]], out: list[PSPOther]) -> None:
            nonlocal skip, consumed
            consumed = skip
            for raw in batch[skip:]:
                if len(out) >= request.page_size:
                    break
                out.append(PSPOther(id=str(raw.get("id", "")), other=raw))
                consumed += 1
            skip = 0

        others, has_more, page = _page_loop(
            lambda page: self.client.get_others(request.name, page, request.page_size),
            state.last_page,
            request.page_size,
            fill,
        )

        if consumed >= request.page_size:
            new_state = PageState(last_page=page + 1)
        else:
            new_state = PageState(last_page=page, page_offset=consumed or None)
        return FetchNextOthersResponse(
            others=others,
            new_state=encode_state(new_state),
            has_more=has_more,
        )

    # ========== Payment initiation ==========

    def create_transfer(self, initiation: PSPPaymentInitiation) -> CreatePaymentResponse:
        _validate_initiation(initiation, require_source=True)
        payment, raw = self.client.create_transfer(_payment_request(initiation))
        return _initiated(payment, raw, PaymentType.TRANSFER)

    def poll_transfer_status(self, transfer_id: str) -> CreatePaymentResponse:
        payment, raw = self.client.get_transfer_status(transfer_id)
        return _initiated(payment, raw, PaymentType.TRANSFER)

    def create_payout(self, initiation: PSPPaymentInitiation) -> CreatePaymentResponse:
        _validate_initiation(initiation, require_source=False)
        payment, raw = self.client.create_payout(_payment_request(initiation))
        return _initiated(payment, raw, PaymentType.PAYOUT)

    def poll_payout_status(self, payout_id: str) -> CreatePaymentResponse:
        payment, raw = self.client.get_payout_status(payout_id)
        return _initiated(payment, raw, PaymentType.PAYOUT)

    def create_bank_account(self, bank_account: BankAccount) -> PSPAccount:
        """Forward a bank account to the provider and return it as an external account."""
        if not bank_account.name:
            raise InvalidRequestError("bank account name is required")
        if not bank_account.account_number and not bank_account.iban:
            raise InvalidRequestError("either account number or IBAN is required")

        created, raw = self.client.create_bank_account(
            BankAccountRequest.model_validate(bank_account.model_dump())
        )
        metadata = dict(created.metadata)
        for key in ("account_number", "iban", "swift_bic_code", "country"):
            value = getattr(created, key)
            if value:
                metadata[key] = value
        return PSPAccount(
            reference=created.id,
            created_at=created.created_at,
            name=created.name,
            metadata=metadata,
            raw=raw,
        )

    # ========== Webhooks ==========

    def create_webhooks(self, base_url: str) -> list[WebhookConfig]:
        return reconcile_subscriptions(
            base_url,
            self.webhooks,
            self.client.list_webhooks(),
            create=self.client.create_webhook,
            update=self.client.update_webhook,
        )

    def verify_webhook(self, config: WebhookConfig, webhook: PSPWebhook) -> None:
        verify_webhook_signature(config, webhook, SIGNATURE_HEADER)

    def translate_webhook(
        self, config: WebhookConfig, webhook: PSPWebhook
    ) -> list[WebhookResponse]:
        return self.webhooks.dispatch(config, webhook)

    def _event(self, webhook: PSPWebhook) -> WebhookEvent:
        try:
            return WebhookEvent.model_validate(json.loads(webhook.body))
        except (ValueError, ValidationError) as exc:
            raise InvalidRequestError("malformed webhook body") from exc

    def _event_data(self, event: WebhookEvent, model: type[ModelT]) -> ModelT:
        try:
            return model.model_validate(event.data)
        except ValidationError as exc:
            raise InvalidRequestError(f"malformed {event.type} payload") from exc

    def _translate_payment(
        self, config: WebhookConfig, webhook: PSPWebhook
    ) -> list[WebhookResponse]:
        event = self._event(webhook)
        transaction = self._event_data(event, Transaction)
        return [
            WebhookResponse(
                idempotency_key=idempotency_key(transaction.id, config.name, event.created_at),
                payment=_to_payment(transaction, event.data),
            )
        ]

    def _translate_account(
        self, config: WebhookConfig, webhook: PSPWebhook
    ) -> list[WebhookResponse]:
        event = self._event(webhook)
        account = self._event_data(event, Account)
        return [
            WebhookResponse(
                idempotency_key=idempotency_key(account.id, config.name, event.created_at),
                account=_to_account(account, event.data),
            )
        ]


# ========== Mapping ==========


def _to_account(account: Account, raw: dict[str, Any]) -> PSPAccount:
    return PSPAccount(
        reference=account.id,
        created_at=account.created_at,
        name=account.name,
        default_asset=account.default_currency.upper() if account.default_currency else None,
        metadata=account.metadata,
        raw=raw,
    )


def _beneficiary_to_account(beneficiary: Beneficiary, raw: dict[str, Any]) -> PSPAccount:
    return PSPAccount(
        reference=beneficiary.id,
        created_at=beneficiary.created_at,
        name=beneficiary.owner_name,
        default_asset=beneficiary.currency.upper() if beneficiary.currency else None,
        metadata=beneficiary.metadata,
        raw=raw,
    )


def _to_payment(transaction: Transaction, raw: dict[str, Any]) -> PSPPayment:
    return PSPPayment(
        reference=transaction.id,
        parent_reference=transaction.related_transaction_id,
        created_at=transaction.created_at,
        type=PAYMENT_TYPES.get(transaction.type.lower(), PaymentType.OTHER),
        amount=transaction.amount,
        asset=transaction.currency.upper(),
        scheme=PAYMENT_SCHEMES.get((transaction.scheme or "").lower(), PaymentScheme.OTHER),
        status=PAYMENT_STATUSES.get(transaction.status.lower(), PaymentStatus.OTHER),
        source_account_reference=transaction.source_account_id,
        destination_account_reference=transaction.destination_account_id,
        metadata=transaction.metadata,
        raw=raw,
    )


def _validate_initiation(initiation: PSPPaymentInitiation, require_source: bool) -> None:
    if not initiation.reference:
        raise InvalidRequestError("reference is required")
    if initiation.amount <= 0:
        raise InvalidRequestError("amount must be positive")
    if require_source and not initiation.source_account_reference:
        raise InvalidRequestError("source account is required")
    if not initiation.destination_account_reference:
        raise InvalidRequestError("destination account is required")


def _payment_request(initiation: PSPPaymentInitiation) -> PaymentRequest:
    return PaymentRequest(
        idempotency_key=initiation.reference,
        amount=initiation.amount,
        currency=initiation.asset.lower(),
        source_account_id=initiation.source_account_reference,
        destination_account_id=initiation.destination_account_reference,
        description=initiation.description,
        metadata=initiation.metadata,
    )


def _initiated(
    payment: InitiatedPayment, raw: dict[str, Any], payment_type: PaymentType
) -> CreatePaymentResponse:
    status = PAYMENT_STATUSES.get(payment.status.lower(), PaymentStatus.OTHER)
    return CreatePaymentResponse(
        payment=PSPPayment(
            reference=payment.id,
            created_at=payment.created_at,
            type=payment_type,
            amount=payment.amount,
            asset=payment.currency.upper(),
            status=status,
            source_account_reference=payment.source_account_id,
            destination_account_reference=payment.destination_account_id,
            metadata=payment.metadata,
            raw=raw,
        ),
        # Pending and processing payments are polled until final
        polling_id=payment.id if status == PaymentStatus.PENDING else None,
    )
