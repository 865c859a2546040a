"""
Generic Provider API Client

Client for a plain page-numbered REST API:

    GET   /accounts?page=&pageSize=&createdAtFrom=
    GET   /accounts/{id}/balances
    GET   /beneficiaries?page=&pageSize=&createdAtFrom=
    GET   /transactions?page=&pageSize=&createdAtFrom=
    GET   /transactions/{id}
    GET   /others/{name}?page=&pageSize=
    GET   /webhooks
    POST  /webhooks
    PATCH /webhooks/{id}
    POST  /transfers
    GET   /transfers/{id}
    POST  /payouts
    GET   /payouts/{id}
    POST  /bank-accounts

Listings are sorted by creation time, oldest first. createdAtFrom is
inclusive.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from paysync.client import HttpTransport, decode_item
from paysync.webhooks import HookSubscription
from paysync_models import format_datetime


class GenericModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Account(GenericModel):
    id: str
    name: str | None = None
    created_at: datetime
    default_currency: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class Balance(GenericModel):
    account_id: str = Field(alias="accountID")
    amount: int
    currency: str
    at: datetime


class Beneficiary(GenericModel):
    id: str
    owner_name: str | None = None
    created_at: datetime
    currency: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class Transaction(GenericModel):
    id: str
    related_transaction_id: str | None = Field(default=None, alias="relatedTransactionID")
    created_at: datetime
    updated_at: datetime | None = None
    currency: str
    type: str
    status: str
    amount: int
    scheme: str | None = None
    source_account_id: str | None = Field(default=None, alias="sourceAccountID")
    destination_account_id: str | None = Field(default=None, alias="destinationAccountID")
    metadata: dict[str, str] = Field(default_factory=dict)


class PaymentRequest(GenericModel):
    """Body of a transfer or payout creation."""

    idempotency_key: str
    amount: int
    currency: str
    source_account_id: str | None = Field(default=None, alias="sourceAccountID")
    destination_account_id: str | None = Field(default=None, alias="destinationAccountID")
    description: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class InitiatedPayment(GenericModel):
    """Transfer or payout as returned by the provider."""

    id: str
    idempotency_key: str | None = None
    created_at: datetime
    amount: int
    currency: str
    status: str
    source_account_id: str | None = Field(default=None, alias="sourceAccountID")
    destination_account_id: str | None = Field(default=None, alias="destinationAccountID")
    metadata: dict[str, str] = Field(default_factory=dict)


class BankAccountRequest(GenericModel):
    name: str
    account_number: str | None = None
    iban: str | None = None
    swift_bic_code: str | None = None
    country: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class CreatedBankAccount(BankAccountRequest):
    id: str
    created_at: datetime


class Subscription(GenericModel):
    id: str
    event_type: str
    url: str
    secret: str | None = None


class ErrorBody(GenericModel):
    code: str | None = None
    message: str | None = None


# Listing results keep the provider payload next to the parsed model
Listed = list[tuple[Any, dict[str, Any]]]


class GenericClient:
    """Typed calls against the generic provider API."""

    def __init__(self, http: HttpTransport) -> None:
        self.http = http

    def _list(
        self,
        path: str,
        model: type[GenericModel],
        operation: str,
        params: dict[str, Any] | None = None,
    ) -> Listed:
        result = self.http.request(
            "GET",
            path,
            params=params,
            expected_body=list[dict[str, Any]],
            error_body=ErrorBody,
            operation=operation,
        )
        return [(decode_item(model, raw, operation), raw) for raw in result.data]

    @staticmethod
    def _page_params(page: int, page_size: int, created_at_from: datetime | None) -> dict[str, Any]:
        params: dict[str, Any] = {"page": page, "pageSize": page_size}
        if created_at_from is not None:
            params["createdAtFrom"] = format_datetime(created_at_from)
        return params

    # ========== Listings ==========

    def get_accounts(
        self, page: int, page_size: int, created_at_from: datetime | None = None
    ) -> Listed:
        params = self._page_params(page, page_size, created_at_from)
        return self._list("/accounts", Account, "list_accounts", params)

    def get_balances(self, account_id: str) -> Listed:
        return self._list(f"/accounts/{account_id}/balances", Balance, "list_balances")

    def get_beneficiaries(
        self, page: int, page_size: int, created_at_from: datetime | None = None
    ) -> Listed:
        params = self._page_params(page, page_size, created_at_from)
        return self._list("/beneficiaries", Beneficiary, "list_beneficiaries", params)

    def get_transactions(
        self, page: int, page_size: int, created_at_from: datetime | None = None
    ) -> Listed:
        params = self._page_params(page, page_size, created_at_from)
        return self._list("/transactions", Transaction, "list_transactions", params)

    def get_transaction(self, transaction_id: str) -> tuple[Transaction, dict[str, Any]]:
        result = self.http.request(
            "GET",
            f"/transactions/{transaction_id}",
            expected_body=dict[str, Any],
            error_body=ErrorBody,
            operation="get_transaction",
        )
        return decode_item(Transaction, result.data, "get_transaction"), result.data

    def get_others(self, name: str, page: int, page_size: int) -> list[dict[str, Any]]:
        result = self.http.request(
            "GET",
            f"/others/{name}",
            params={"page": page, "pageSize": page_size},
            expected_body=list[dict[str, Any]],
            error_body=ErrorBody,
            operation="list_others",
        )
        return result.data

    # ========== Webhooks ==========

    def list_webhooks(self) -> list[HookSubscription]:
        result = self.http.request(
            "GET",
            "/webhooks",
            expected_body=list[Subscription],
            error_body=ErrorBody,
            operation="list_webhooks",
        )
        return [_subscription(sub) for sub in result.data]

    def create_webhook(self, event_type: str, url: str) -> HookSubscription:
        result = self.http.request(
            "POST",
            "/webhooks",
            json={"eventType": event_type, "url": url},
            expected_body=Subscription,
            error_body=ErrorBody,
            operation="create_webhook",
        )
        return _subscription(result.data)

    def update_webhook(self, hook: HookSubscription, url: str) -> HookSubscription:
        result = self.http.request(
            "PATCH",
            f"/webhooks/{hook.id}",
            json={"url": url},
            expected_body=Subscription,
            error_body=ErrorBody,
            operation="update_webhook",
        )
        return _subscription(result.data)

    # ========== Payment initiation ==========

    def _initiate(
        self, path: str, body: PaymentRequest, operation: str
    ) -> tuple[InitiatedPayment, dict[str, Any]]:
        result = self.http.request(
            "POST",
            path,
            json=body.model_dump(mode="json", by_alias=True, exclude_none=True),
            expected_body=dict[str, Any],
            error_body=ErrorBody,
            operation=operation,
        )
        return decode_item(InitiatedPayment, result.data, operation), result.data

    def _status(self, path: str, operation: str) -> tuple[InitiatedPayment, dict[str, Any]]:
        result = self.http.request(
            "GET",
            path,
            expected_body=dict[str, Any],
            error_body=ErrorBody,
            operation=operation,
        )
        return decode_item(InitiatedPayment, result.data, operation), result.data

    def create_transfer(self, body: PaymentRequest) -> tuple[InitiatedPayment, dict[str, Any]]:
        return self._initiate("/transfers", body, "create_transfer")

    def get_transfer_status(self, transfer_id: str) -> tuple[InitiatedPayment, dict[str, Any]]:
        return self._status(f"/transfers/{transfer_id}", "get_transfer_status")

    def create_payout(self, body: PaymentRequest) -> tuple[InitiatedPayment, dict[str, Any]]:
        return self._initiate("/payouts", body, "create_payout")

    def get_payout_status(self, payout_id: str) -> tuple[InitiatedPayment, dict[str, Any]]:
        return self._status(f"/payouts/{payout_id}", "get_payout_status")

    def create_bank_account(
        self, body: BankAccountRequest
    ) -> tuple[CreatedBankAccount, dict[str, Any]]:
        result = self.http.request(
            "POST",
            "/bank-accounts",
            json=body.model_dump(mode="json", by_alias=True, exclude_none=True),
            expected_body=dict[str, Any],
            error_body=ErrorBody,
            operation="create_bank_account",
        )
        return decode_item(CreatedBankAccount, result.data, "create_bank_account"), result.data


def _subscription(sub: Subscription) -> HookSubscription:
    return HookSubscription(id=sub.id, event_type=sub.event_type, url=sub.url, secret=sub.secret)
