"""
Pytest configuration and fixtures.

Fake providers are plain httpx.MockTransport handlers serving in-memory
data, so plugins run against real HTTP request/response objects.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest

from paysync.metrics import MetricsCollector
from paysync.storage import StateStorage
from paysync_models import format_datetime, parse_datetime

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "integration: marks tests that wire several components together"
    )


@pytest.fixture
def metrics() -> MetricsCollector:
    """Isolated metrics collector."""
    return MetricsCollector(enabled=True)


@pytest.fixture
def storage() -> StateStorage:
    """In-memory SQLite storage with tables created."""
    storage = StateStorage("sqlite://")
    storage.initialize()
    yield storage
    storage.close()


def json_response(data: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=data)


# ========== Generic provider ==========


class FakeGenericProvider:
    """In-memory generic provider API."""

    def __init__(self) -> None:
        self.accounts: list[dict[str, Any]] = []
        self.balances: dict[str, list[dict[str, Any]]] = {}
        self.beneficiaries: list[dict[str, Any]] = []
        self.transactions: list[dict[str, Any]] = []
        self.others: dict[str, list[dict[str, Any]]] = {}
        self.hooks: list[dict[str, Any]] = []
        self.initiated: dict[str, dict[str, Any]] = {}
        self.initiation_status = "pending"
        self.bank_accounts: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    def add_accounts(self, count: int) -> None:
        for i in range(len(self.accounts), len(self.accounts) + count):
            self.accounts.append({
                "id": f"acc_{i:03d}",
                "name": f"Account {i}",
                "createdAt": format_datetime(BASE_TIME + timedelta(minutes=i)),
                "defaultCurrency": "eur",
            })

    def add_transactions(self, count: int) -> None:
        for i in range(len(self.transactions), len(self.transactions) + count):
            self.transactions.append(make_transaction(i))

    def _page(self, items: list[dict[str, Any]], request: httpx.Request) -> list[dict[str, Any]]:
        params = request.url.params
        created_from = parse_datetime(params.get("createdAtFrom"))
        if created_from is not None:
            items = [i for i in items if parse_datetime(i["createdAt"]) >= created_from]
        page = int(params.get("page", 0))
        size = int(params.get("pageSize", 100))
        return items[page * size:(page + 1) * size]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return json_response({"code": "boom", "message": "failure"}, self.fail_with)

        path = request.url.path
        if path == "/accounts":
            return json_response(self._page(self.accounts, request))
        if path.startswith("/accounts/") and path.endswith("/balances"):
            account_id = path.split("/")[2]
            return json_response(self.balances.get(account_id, []))
        if path == "/beneficiaries":
            return json_response(self._page(self.beneficiaries, request))
        if path == "/transactions":
            return json_response(self._page(self.transactions, request))
        if path.startswith("/transactions/"):
            transaction_id = path.rsplit("/", 1)[1]
            for transaction in self.transactions:
                if transaction["id"] == transaction_id:
                    return json_response(transaction)
            return json_response({"code": "not_found"}, 404)
        if path.startswith("/others/"):
            name = path.rsplit("/", 1)[1]
            return json_response(self._page(self.others.get(name, []), request))
        if path == "/webhooks" and request.method == "GET":
            return json_response(self.hooks)
        if path == "/webhooks" and request.method == "POST":
            body = json.loads(request.content)
            hook = {
                "id": f"hook_{len(self.hooks)}",
                "eventType": body["eventType"],
                "url": body["url"],
                "secret": f"whsec_{len(self.hooks)}",
            }
            self.hooks.append(hook)
            return json_response(hook, 201)
        if path in ("/transfers", "/payouts") and request.method == "POST":
            body = json.loads(request.content)
            kind = path.strip("/").rstrip("s")
            payment = {
                "id": f"{kind}_{body['idempotencyKey']}",
                "idempotencyKey": body["idempotencyKey"],
                "createdAt": format_datetime(BASE_TIME),
                "amount": body["amount"],
                "currency": body["currency"],
                "status": self.initiation_status,
                "sourceAccountID": body.get("sourceAccountID"),
                "destinationAccountID": body.get("destinationAccountID"),
                "metadata": body.get("metadata", {}),
            }
            self.initiated[payment["id"]] = payment
            return json_response(payment, 201)
        if path.startswith(("/transfers/", "/payouts/")) and request.method == "GET":
            payment_id = path.rsplit("/", 1)[1]
            if payment_id in self.initiated:
                return json_response(self.initiated[payment_id])
            return json_response({"code": "not_found"}, 404)
        if path == "/bank-accounts" and request.method == "POST":
            body = json.loads(request.content)
            account = {
                "id": f"ba_{len(self.bank_accounts)}",
                "createdAt": format_datetime(BASE_TIME),
                **body,
            }
            self.bank_accounts.append(account)
            return json_response(account, 201)
        if path.startswith("/webhooks/") and request.method == "PATCH":
            hook_id = path.rsplit("/", 1)[1]
            for hook in self.hooks:
                if hook["id"] == hook_id:
                    hook["url"] = json.loads(request.content)["url"]
                    return json_response(hook)
        return json_response({"code": "not_found"}, 404)


def make_transaction(i: int, **overrides: Any) -> dict[str, Any]:
    transaction = {
        "id": f"tx_{i:03d}",
        "createdAt": format_datetime(BASE_TIME + timedelta(minutes=i)),
        "currency": "eur",
        "type": "payin",
        "status": "succeeded",
        "amount": 100 + i,
        "scheme": "sepa",
        "destinationAccountID": "acc_000",
    }
    transaction.update(overrides)
    return transaction


@pytest.fixture
def generic_provider() -> FakeGenericProvider:
    return FakeGenericProvider()


@pytest.fixture
def generic_plugin(generic_provider: FakeGenericProvider, metrics: MetricsCollector):
    from paysync.plugins.generic import GenericConfig, GenericPlugin

    plugin = GenericPlugin(
        "acme",
        GenericConfig(api_key="key_123", endpoint="https://api.generic.test"),
        transport=httpx.MockTransport(generic_provider),
        metrics=metrics,
    )
    yield plugin
    plugin.close()


# ========== WalletPay provider ==========


class FakeWalletPay:
    """In-memory WalletPay API with an OAuth token endpoint."""

    def __init__(self) -> None:
        self.accounts: list[dict[str, Any]] = []
        self.transfers: dict[str, list[dict[str, Any]]] = {}
        self.hooks: list[dict[str, Any]] = []
        self.token_requests = 0
        self.token_status = 200
        self.expires_in = 3600
        self.requests: list[httpx.Request] = []

    def add_transfer(self, account_id: str, minute: int) -> dict[str, Any]:
        transfers = self.transfers.setdefault(account_id, [])
        transfer = {
            "transferID": f"tr_{account_id}_{minute:04d}",
            "createdOn": format_datetime(BASE_TIME + timedelta(minutes=minute)),
            "status": "completed",
            "kind": "transfer",
            "amount": {"currency": "usd", "value": 1000 + minute},
            "source": {"accountID": "ext_1"},
            "destination": {"accountID": account_id},
        }
        transfers.append(transfer)
        return transfer

    def _all_transfers(self) -> list[dict[str, Any]]:
        return [t for transfers in self.transfers.values() for t in transfers]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/oauth/token":
            self.token_requests += 1
            form = parse_qs(request.content.decode())
            assert form["grant_type"] == ["client_credentials"]
            if self.token_status != 200:
                return json_response({"error": "invalid_client"}, self.token_status)
            return json_response({
                "access_token": f"token_{self.token_requests}",
                "token_type": "Bearer",
                "expires_in": self.expires_in,
            })

        self.requests.append(request)
        if not request.headers.get("Authorization", "").startswith("Bearer token_"):
            return json_response({"error": "unauthorized"}, 401)

        params = request.url.params
        if path == "/accounts":
            count = int(params["count"])
            accounts = self.accounts
            after = params.get("startingAfter")
            if after:
                ids = [a["accountID"] for a in accounts]
                accounts = accounts[ids.index(after) + 1:]
            return json_response(accounts[:count])
        if path.startswith("/accounts/") and path.endswith("/transfers"):
            account_id = path.split("/")[2]
            # Newest first
            transfers = sorted(
                self.transfers.get(account_id, []),
                key=lambda t: t["createdOn"],
                reverse=True,
            )
            since = parse_datetime(params.get("startDateTime"))
            if since is not None:
                transfers = [t for t in transfers if parse_datetime(t["createdOn"]) >= since]
            skip = int(params["skip"])
            count = int(params["count"])
            return json_response(transfers[skip:skip + count])
        if path.startswith("/accounts/") and path.endswith("/balance"):
            account_id = path.split("/")[2]
            return json_response({
                "accountID": account_id,
                "available": {"currency": "usd", "value": 12345},
                "updatedOn": format_datetime(BASE_TIME),
            })
        if path.startswith("/transfers/"):
            transfer_id = path.rsplit("/", 1)[1]
            for transfer in self._all_transfers():
                if transfer["transferID"] == transfer_id:
                    return json_response(transfer)
            return json_response({"error": "not_found"}, 404)
        if path == "/webhooks" and request.method == "GET":
            return json_response(self.hooks)
        if path == "/webhooks" and request.method == "POST":
            body = json.loads(request.content)
            hook = {"hookID": f"hook_{len(self.hooks)}", **body}
            self.hooks.append(hook)
            return json_response(hook, 201)
        if path.startswith("/webhooks/") and request.method == "PUT":
            hook_id = path.rsplit("/", 1)[1]
            for hook in self.hooks:
                if hook["hookID"] == hook_id:
                    hook.update(json.loads(request.content))
                    return json_response(hook)
        return json_response({"error": "not_found"}, 404)


@pytest.fixture
def walletpay() -> FakeWalletPay:
    return FakeWalletPay()


@pytest.fixture
def walletpay_plugin(walletpay: FakeWalletPay, metrics: MetricsCollector):
    from paysync.plugins.walletpay import WalletPayConfig, WalletPayPlugin

    plugin = WalletPayPlugin(
        "wallet",
        WalletPayConfig(
            client_id="client",
            client_secret="secret",
            endpoint="https://api.walletpay.test",
            webhook_secret="shared_secret",
        ),
        transport=httpx.MockTransport(walletpay),
        metrics=metrics,
    )
    yield plugin
    plugin.close()
