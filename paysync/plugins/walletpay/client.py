"""
WalletPay API Client

WalletPay lists accounts with a forward cursor (startingAfter) and lists
transfers newest first with skip/count only. The startDateTime filter on
transfers is inclusive.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from paysync.client import HttpTransport, decode_item
from paysync.webhooks import HookSubscription
from paysync_models import format_datetime


class WalletPayModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Money(WalletPayModel):
    currency: str
    value: int


class Account(WalletPayModel):
    account_id: str = Field(alias="accountID")
    display_name: str | None = Field(default=None, alias="displayName")
    created_on: datetime = Field(alias="createdOn")
    currency: str | None = None


class AccountBalance(WalletPayModel):
    account_id: str = Field(alias="accountID")
    available: Money
    updated_on: datetime = Field(alias="updatedOn")


class Endpoint(WalletPayModel):
    account_id: str | None = Field(default=None, alias="accountID")


class Transfer(WalletPayModel):
    transfer_id: str = Field(alias="transferID")
    created_on: datetime = Field(alias="createdOn")
    status: str
    kind: str = "transfer"
    amount: Money
    source: Endpoint = Field(default_factory=Endpoint)
    destination: Endpoint = Field(default_factory=Endpoint)


class Hook(WalletPayModel):
    hook_id: str = Field(alias="hookID")
    event_type: str = Field(alias="eventType")
    url: str


class ErrorBody(WalletPayModel):
    error: str | None = None
    error_description: str | None = None


class WalletPayClient:
    """Typed calls against the WalletPay API."""

    def __init__(self, http: HttpTransport) -> None:
        self.http = http

    def get_accounts(
        self, count: int, starting_after: str | None = None
    ) -> list[tuple[Account, dict[str, Any]]]:
        params: dict[str, Any] = {"count": count}
        if starting_after:
            params["startingAfter"] = starting_after
        result = self.http.request(
            "GET",
            "/accounts",
            params=params,
            expected_body=list[dict[str, Any]],
            error_body=ErrorBody,
            operation="list_accounts",
        )
        return [(decode_item(Account, raw, "list_accounts"), raw) for raw in result.data]

    def get_balance(self, account_id: str) -> tuple[AccountBalance, dict[str, Any]]:
        result = self.http.request(
            "GET",
            f"/accounts/{account_id}/balance",
            expected_body=dict[str, Any],
            error_body=ErrorBody,
            operation="get_balance",
        )
        return decode_item(AccountBalance, result.data, "get_balance"), result.data

    def get_transfers(
        self,
        account_id: str,
        skip: int,
        count: int,
        since: datetime | None = None,
    ) -> list[tuple[Transfer, dict[str, Any]]]:
        """List an account's transfers, newest first."""
        params: dict[str, Any] = {"skip": skip, "count": count}
        if since is not None:
            params["startDateTime"] = format_datetime(since)
        result = self.http.request(
            "GET",
            f"/accounts/{account_id}/transfers",
            params=params,
            expected_body=list[dict[str, Any]],
            error_body=ErrorBody,
            operation="list_transfers",
        )
        return [(decode_item(Transfer, raw, "list_transfers"), raw) for raw in result.data]

    def get_transfer(self, transfer_id: str) -> tuple[Transfer, dict[str, Any]]:
        result = self.http.request(
            "GET",
            f"/transfers/{transfer_id}",
            expected_body=dict[str, Any],
            error_body=ErrorBody,
            operation="get_transfer",
        )
        return decode_item(Transfer, result.data, "get_transfer"), result.data

    # ========== Webhooks ==========

    def list_webhooks(self) -> list[HookSubscription]:
        result = self.http.request(
            "GET",
            "/webhooks",
            expected_body=list[Hook],
            error_body=ErrorBody,
            operation="list_webhooks",
        )
        return [_subscription(hook) for hook in result.data]

    def create_webhook(self, event_type: str, url: str) -> HookSubscription:
        result = self.http.request(
            "POST",
            "/webhooks",
            json={"eventType": event_type, "url": url},
            expected_body=Hook,
            error_body=ErrorBody,
            operation="create_webhook",
        )
        return _subscription(result.data)

    def update_webhook(self, hook: HookSubscription, url: str) -> HookSubscription:
        result = self.http.request(
            "PUT",
            f"/webhooks/{hook.id}",
            json={"eventType": hook.event_type, "url": url},
            expected_body=Hook,
            error_body=ErrorBody,
            operation="update_webhook",
        )
        return _subscription(result.data)


def _subscription(hook: Hook) -> HookSubscription:
    return HookSubscription(id=hook.hook_id, event_type=hook.event_type, url=hook.url)
