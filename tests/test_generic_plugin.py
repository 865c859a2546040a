"""
Tests for the generic connector plugin against a fake provider.
"""

import json
from datetime import timedelta

import pytest

from paysync.errors import (
    ClientError,
    CursorDecodeError,
    DecodeError,
    InvalidRequestError,
    MissingFromPayloadError,
    RateLimitedError,
    ServerError,
    UnsupportedEventError,
    UnsupportedOperationError,
    WebhookVerificationError,
)
from paysync.sync import CreatedAtState, FetchNextRequest, PageState, decode_state
from paysync.webhooks import compute_signature
from paysync_models import (
    BankAccount,
    Capability,
    PaymentScheme,
    PaymentStatus,
    PaymentType,
    PSPPaymentInitiation,
    PSPWebhook,
    format_datetime,
    idempotency_key,
)

from conftest import BASE_TIME, make_transaction


class TestPayments:
    """Tests for fetch_next_payments()."""

    def test_two_call_sync(self, generic_plugin, generic_provider) -> None:
        """50 items at page size 40: a full page, then the remaining 10."""
        generic_provider.add_transactions(50)

        first = generic_plugin.fetch_next_payments(FetchNextRequest(page_size=40))

        assert [p.reference for p in first.payments] == [f"tx_{i:03d}" for i in range(40)]
        assert first.has_more is True
        state = decode_state(first.new_state, CreatedAtState)
        assert state.last_created_at == BASE_TIME + timedelta(minutes=39)

        second = generic_plugin.fetch_next_payments(
            FetchNextRequest(page_size=40, state=first.new_state)
        )

        assert [p.reference for p in second.payments] == [f"tx_{i:03d}" for i in range(40, 50)]
        assert second.has_more is False

    def test_created_at_filter_is_sent(self, generic_plugin, generic_provider) -> None:
        generic_provider.add_transactions(3)
        first = generic_plugin.fetch_next_payments(FetchNextRequest(page_size=10))

        generic_plugin.fetch_next_payments(FetchNextRequest(page_size=10, state=first.new_state))

        params = generic_provider.requests[-1].url.params
        assert params["createdAtFrom"] == format_datetime(BASE_TIME + timedelta(minutes=2))
        assert params["pageSize"] == "10"

    def test_caught_up_keeps_state(self, generic_plugin, generic_provider) -> None:
        generic_provider.add_transactions(5)
        first = generic_plugin.fetch_next_payments(FetchNextRequest(page_size=10))

        again = generic_plugin.fetch_next_payments(
            FetchNextRequest(page_size=10, state=first.new_state)
        )

        assert again.payments == []
        assert again.has_more is False
        assert decode_state(again.new_state, CreatedAtState) == decode_state(
            first.new_state, CreatedAtState
        )

    def test_empty_provider(self, generic_plugin) -> None:
        response = generic_plugin.fetch_next_payments(FetchNextRequest(page_size=10))

        assert response.payments == []
        assert response.has_more is False
        assert decode_state(response.new_state, CreatedAtState).last_created_at is None

    def test_mapping(self, generic_plugin, generic_provider) -> None:
        generic_provider.transactions.append(
            make_transaction(
                0,
                type="payout",
                status="failed",
                scheme="visa",
                sourceAccountID="acc_001",
                relatedTransactionID="tx_parent",
            )
        )

        payment = generic_plugin.fetch_next_payments(FetchNextRequest(page_size=10)).payments[0]

        assert payment.type == PaymentType.PAYOUT
        assert payment.status == PaymentStatus.FAILED
        assert payment.scheme == PaymentScheme.CARD_VISA
        assert payment.asset == "EUR"
        assert payment.amount == 100
        assert payment.parent_reference == "tx_parent"
        assert payment.source_account_reference == "acc_001"
        assert payment.raw["id"] == "tx_000"

    def test_unknown_status_maps_to_other(self, generic_plugin, generic_provider) -> None:
        generic_provider.transactions.append(make_transaction(0, status="weird", type="weird"))

        payment = generic_plugin.fetch_next_payments(FetchNextRequest(page_size=10)).payments[0]

        assert payment.status == PaymentStatus.OTHER
        assert payment.type == PaymentType.OTHER

    def test_malformed_cursor(self, generic_plugin, generic_provider) -> None:
        with pytest.raises(CursorDecodeError):
            generic_plugin.fetch_next_payments(FetchNextRequest(page_size=10, state=b"garbage"))

        assert generic_provider.requests == []

    def test_invalid_page_size(self, generic_plugin, generic_provider) -> None:
        with pytest.raises(InvalidRequestError):
            generic_plugin.fetch_next_payments(FetchNextRequest(page_size=0))

        assert generic_provider.requests == []

    @pytest.mark.parametrize(
        "status, error", [(500, ServerError), (503, ServerError), (429, RateLimitedError)]
    )
    def test_upstream_errors_propagate(
        self, generic_plugin, generic_provider, status, error
    ) -> None:
        generic_provider.fail_with = status

        with pytest.raises(error) as exc_info:
            generic_plugin.fetch_next_payments(FetchNextRequest(page_size=10))

        assert exc_info.value.status_code == status
        assert len(generic_provider.requests) == 1

    def test_authorization_header(self, generic_plugin, generic_provider) -> None:
        generic_plugin.fetch_next_payments(FetchNextRequest(page_size=10))

        assert generic_provider.requests[0].headers["Authorization"] == "Bearer key_123"

    def test_same_created_at_across_pages(self, generic_plugin, generic_provider) -> None:
        """Items sharing the watermark timestamp are delivered exactly once."""
        generic_provider.add_transactions(2)
        generic_provider.transactions.append(
            make_transaction(2, createdAt=generic_provider.transactions[1]["createdAt"])
        )

        first = generic_plugin.fetch_next_payments(FetchNextRequest(page_size=2))
        second = generic_plugin.fetch_next_payments(
            FetchNextRequest(page_size=2, state=first.new_state)
        )
        third = generic_plugin.fetch_next_payments(
            FetchNextRequest(page_size=2, state=second.new_state)
        )

        assert [p.reference for p in first.payments] == ["tx_000", "tx_001"]
        assert [p.reference for p in second.payments] == ["tx_002"]
        assert third.payments == []
        state = decode_state(second.new_state, CreatedAtState)
        assert state.last_created_at == BASE_TIME + timedelta(minutes=1)
        assert state.last_ids == ["tx_001", "tx_002"]

    def test_malformed_item_is_decode_error(self, generic_plugin, generic_provider) -> None:
        generic_provider.add_transactions(2)
        del generic_provider.transactions[1]["amount"]

        with pytest.raises(DecodeError, match="tx_001"):
            generic_plugin.fetch_next_payments(FetchNextRequest(page_size=10))


class TestAccounts:
    """Tests for fetch_next_accounts()."""

    def test_accounts(self, generic_plugin, generic_provider) -> None:
        generic_provider.add_accounts(3)

        response = generic_plugin.fetch_next_accounts(FetchNextRequest(page_size=2))

        assert [a.reference for a in response.accounts] == ["acc_000", "acc_001"]
        assert response.accounts[0].default_asset == "EUR"
        assert response.has_more is True

        rest = generic_plugin.fetch_next_accounts(
            FetchNextRequest(page_size=2, state=response.new_state)
        )

        assert [a.reference for a in rest.accounts] == ["acc_002"]
        assert rest.has_more is False


class TestBalances:
    """Tests for fetch_next_balances()."""

    def test_requires_from_payload(self, generic_plugin) -> None:
        with pytest.raises(MissingFromPayloadError):
            generic_plugin.fetch_next_balances(FetchNextRequest(page_size=10))

    def test_requires_reference(self, generic_plugin) -> None:
        with pytest.raises(InvalidRequestError):
            generic_plugin.fetch_next_balances(
                FetchNextRequest(page_size=10, from_payload=b'{"name": "x"}')
            )

    def test_balances(self, generic_plugin, generic_provider) -> None:
        generic_provider.balances["acc_000"] = [
            {"accountID": "acc_000", "amount": 500, "currency": "eur", "at": "2024-02-01T00:00:00Z"},
            {"accountID": "acc_000", "amount": 70, "currency": "usd", "at": "2024-02-01T00:00:00Z"},
        ]
        payload = json.dumps({"reference": "acc_000"}).encode()

        response = generic_plugin.fetch_next_balances(
            FetchNextRequest(page_size=10, from_payload=payload)
        )

        assert [(b.asset, b.amount) for b in response.balances] == [("EUR", 500), ("USD", 70)]
        assert all(b.account_reference == "acc_000" for b in response.balances)
        assert response.has_more is False


class TestExternalAccounts:
    """Tests for fetch_next_external_accounts()."""

    def test_resumes_from_last_page(self, generic_plugin, generic_provider) -> None:
        for i in range(5):
            generic_provider.beneficiaries.append({
                "id": f"ben_{i}",
                "ownerName": f"Owner {i}",
                "createdAt": format_datetime(BASE_TIME + timedelta(minutes=i)),
                "currency": "gbp",
            })

        seen: list[str] = []
        state = None
        for _ in range(3):
            response = generic_plugin.fetch_next_external_accounts(
                FetchNextRequest(page_size=2, state=state)
            )
            seen.extend(a.reference for a in response.external_accounts)
            state = response.new_state

        assert seen == [f"ben_{i}" for i in range(5)]
        assert response.has_more is False
        assert decode_state(state, PageState).last_page == 2


class TestOthers:
    """Tests for fetch_next_others()."""

    def test_requires_name(self, generic_plugin) -> None:
        with pytest.raises(InvalidRequestError):
            generic_plugin.fetch_next_others(FetchNextRequest(page_size=10))

    def test_pages_through(self, generic_plugin, generic_provider) -> None:
        generic_provider.others["cards"] = [{"id": f"card_{i}"} for i in range(3)]

        first = generic_plugin.fetch_next_others(FetchNextRequest(page_size=2, name="cards"))
        second = generic_plugin.fetch_next_others(
            FetchNextRequest(page_size=2, name="cards", state=first.new_state)
        )

        assert [o.id for o in first.others] == ["card_0", "card_1"]
        assert first.has_more is True
        assert [o.id for o in second.others] == ["card_2"]
        assert second.has_more is False

    def test_short_last_page_is_not_redelivered(self, generic_plugin, generic_provider) -> None:
        generic_provider.others["cards"] = [{"id": f"card_{i}"} for i in range(3)]

        def fetch(state):
            return generic_plugin.fetch_next_others(
                FetchNextRequest(page_size=2, name="cards", state=state)
            )

        first = fetch(None)
        second = fetch(first.new_state)
        third = fetch(second.new_state)

        assert [o.id for o in second.others] == ["card_2"]
        assert third.others == []
        assert decode_state(third.new_state, PageState) == PageState(last_page=1, page_offset=1)

        generic_provider.others["cards"] += [{"id": "card_3"}, {"id": "card_4"}]
        fourth = fetch(third.new_state)

        assert [o.id for o in fourth.others] == ["card_3", "card_4"]
        assert fourth.has_more is False


class TestWebhooks:
    """Tests for webhook registration, verification and translation."""

    BASE_URL = "https://hooks.test/webhooks/acme"

    def test_install(self, generic_plugin) -> None:
        response = generic_plugin.install()

        assert set(response.streams) == {
            "accounts", "balances", "external_accounts", "payments", "others"
        }
        assert "transaction.created" in response.webhook_events
        assert generic_plugin.supports(Capability.CREATE_WEBHOOKS)

    def test_create_webhooks(self, generic_plugin, generic_provider) -> None:
        configs = generic_plugin.create_webhooks(self.BASE_URL)

        assert [c.name for c in configs] == [
            "transaction.created", "transaction.updated", "account.created"
        ]
        assert [h["url"] for h in generic_provider.hooks] == [
            f"{self.BASE_URL}/transaction-created",
            f"{self.BASE_URL}/transaction-updated",
            f"{self.BASE_URL}/account-created",
        ]
        assert configs[0].metadata == {"secret": "whsec_0"}

    def test_create_webhooks_is_idempotent(self, generic_plugin, generic_provider) -> None:
        generic_plugin.create_webhooks(self.BASE_URL)
        generic_plugin.create_webhooks(self.BASE_URL)

        assert len(generic_provider.hooks) == 3

    def test_create_webhooks_moves_stale_urls(self, generic_plugin, generic_provider) -> None:
        generic_plugin.create_webhooks("https://old.test")

        configs = generic_plugin.create_webhooks(self.BASE_URL)

        assert len(generic_provider.hooks) == 3
        assert generic_provider.hooks[1]["url"] == f"{self.BASE_URL}/transaction-updated"
        assert configs[1].metadata == {"secret": "whsec_1"}

    def _signed(self, body: dict, secret: str = "whsec_0") -> PSPWebhook:
        raw = json.dumps(body).encode()
        return PSPWebhook(headers={"X-Signature": [compute_signature(raw, secret)]}, body=raw)

    def test_verify_and_translate_payment(self, generic_plugin) -> None:
        config = generic_plugin.create_webhooks(self.BASE_URL)[0]
        event = {
            "id": "evt_1",
            "type": "transaction.created",
            "createdAt": "2024-03-01T12:00:00Z",
            "data": make_transaction(7),
        }
        webhook = self._signed(event)

        generic_plugin.verify_webhook(config, webhook)
        responses = generic_plugin.translate_webhook(config, webhook)

        assert len(responses) == 1
        assert responses[0].payment.reference == "tx_007"
        assert responses[0].idempotency_key == idempotency_key(
            "tx_007", "transaction.created", BASE_TIME.replace(month=3, hour=12)
        )

    def test_translate_account(self, generic_plugin) -> None:
        config = generic_plugin.create_webhooks(self.BASE_URL)[2]
        event = {
            "id": "evt_2",
            "type": "account.created",
            "createdAt": "2024-03-01T12:00:00Z",
            "data": {"id": "acc_9", "createdAt": "2024-03-01T11:00:00Z", "name": "Ops"},
        }

        responses = generic_plugin.translate_webhook(config, self._signed(event, "whsec_2"))

        assert responses[0].account.reference == "acc_9"
        assert responses[0].payment is None

    def test_redelivery_has_same_key(self, generic_plugin) -> None:
        config = generic_plugin.create_webhooks(self.BASE_URL)[0]
        event = {
            "id": "evt_1",
            "type": "transaction.created",
            "createdAt": "2024-03-01T12:00:00Z",
            "data": make_transaction(1),
        }

        first = generic_plugin.translate_webhook(config, self._signed(event))
        second = generic_plugin.translate_webhook(config, self._signed(event))

        assert first[0].idempotency_key == second[0].idempotency_key

    def test_tampered_body(self, generic_plugin) -> None:
        config = generic_plugin.create_webhooks(self.BASE_URL)[0]
        webhook = self._signed({"id": "evt_1"})
        webhook.body = webhook.body.replace(b"evt_1", b"evt_2")

        with pytest.raises(WebhookVerificationError):
            generic_plugin.verify_webhook(config, webhook)

    def test_malformed_body(self, generic_plugin) -> None:
        config = generic_plugin.create_webhooks(self.BASE_URL)[0]

        with pytest.raises(InvalidRequestError):
            generic_plugin.translate_webhook(config, PSPWebhook(body=b"not json"))

    @pytest.mark.parametrize("index", [0, 2])
    def test_malformed_event_data(self, generic_plugin, index) -> None:
        """A well-formed envelope around an incomplete object is an invalid request."""
        config = generic_plugin.create_webhooks(self.BASE_URL)[index]
        event = {
            "id": "evt_3",
            "type": config.name,
            "createdAt": "2024-03-01T12:00:00Z",
            "data": {"id": "x"},
        }

        with pytest.raises(InvalidRequestError):
            generic_plugin.translate_webhook(config, self._signed(event))

    def test_unknown_event(self, generic_plugin) -> None:
        from paysync_models import WebhookConfig

        with pytest.raises(UnsupportedEventError):
            generic_plugin.translate_webhook(
                WebhookConfig(name="refund.created", url_path="/refund-created"),
                PSPWebhook(body=b"{}"),
            )


def initiation(**overrides) -> PSPPaymentInitiation:
    values = {
        "reference": "ref_1",
        "created_at": BASE_TIME,
        "description": "Supplier invoice",
        "amount": 1000,
        "asset": "EUR",
        "source_account_reference": "acc_000",
        "destination_account_reference": "acc_001",
        "metadata": {"invoice": "inv_42"},
    }
    values.update(overrides)
    return PSPPaymentInitiation(**values)


class TestPaymentInitiation:
    """Tests for transfers, payouts and bank account forwarding."""

    def test_pending_transfer_returns_polling_id(self, generic_plugin, generic_provider) -> None:
        response = generic_plugin.create_transfer(initiation())

        assert response.payment.reference == "transfer_ref_1"
        assert response.payment.type == PaymentType.TRANSFER
        assert response.payment.status == PaymentStatus.PENDING
        assert response.payment.asset == "EUR"
        assert response.payment.metadata == {"invoice": "inv_42"}
        assert response.polling_id == "transfer_ref_1"
        body = json.loads(generic_provider.requests[-1].content)
        assert body["idempotencyKey"] == "ref_1"
        assert body["currency"] == "eur"
        assert body["sourceAccountID"] == "acc_000"

    @pytest.mark.parametrize("status", ["succeeded", "failed"])
    def test_final_transfer_has_no_polling_id(
        self, generic_plugin, generic_provider, status
    ) -> None:
        generic_provider.initiation_status = status

        response = generic_plugin.create_transfer(initiation())

        assert response.polling_id is None
        assert response.payment.status == PaymentStatus(status.upper())

    def test_poll_transfer_until_final(self, generic_plugin, generic_provider) -> None:
        created = generic_plugin.create_transfer(initiation())

        pending = generic_plugin.poll_transfer_status(created.polling_id)
        generic_provider.initiated[created.polling_id]["status"] = "succeeded"
        final = generic_plugin.poll_transfer_status(created.polling_id)

        assert pending.polling_id == created.polling_id
        assert final.payment.status == PaymentStatus.SUCCEEDED
        assert final.polling_id is None

    def test_poll_unknown_transfer(self, generic_plugin) -> None:
        with pytest.raises(ClientError) as exc_info:
            generic_plugin.poll_transfer_status("transfer_missing")

        assert exc_info.value.status_code == 404

    def test_payout_without_source(self, generic_plugin, generic_provider) -> None:
        response = generic_plugin.create_payout(initiation(source_account_reference=None))

        assert response.payment.reference == "payout_ref_1"
        assert response.payment.type == PaymentType.PAYOUT
        assert response.payment.source_account_reference is None
        assert generic_plugin.poll_payout_status("payout_ref_1").payment.reference == "payout_ref_1"
        assert generic_provider.requests[-1].url.path == "/payouts/payout_ref_1"

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"reference": ""}, "reference is required"),
            ({"amount": 0}, "amount must be positive"),
            ({"amount": -100}, "amount must be positive"),
            ({"source_account_reference": None}, "source account is required"),
            ({"destination_account_reference": None}, "destination account is required"),
        ],
    )
    def test_invalid_transfer(self, generic_plugin, generic_provider, overrides, message) -> None:
        with pytest.raises(InvalidRequestError, match=message):
            generic_plugin.create_transfer(initiation(**overrides))

        assert generic_provider.requests == []

    def test_payout_requires_destination(self, generic_plugin, generic_provider) -> None:
        with pytest.raises(InvalidRequestError, match="destination account is required"):
            generic_plugin.create_payout(initiation(destination_account_reference=None))

        assert generic_provider.requests == []

    def test_create_bank_account(self, generic_plugin, generic_provider) -> None:
        account = generic_plugin.create_bank_account(
            BankAccount(
                name="Supplier GmbH",
                iban="DE89370400440532013000",
                swift_bic_code="COBADEFFXXX",
                country="DE",
                metadata={"forwarded": "true"},
            )
        )

        assert account.reference == "ba_0"
        assert account.name == "Supplier GmbH"
        assert account.metadata == {
            "forwarded": "true",
            "iban": "DE89370400440532013000",
            "swift_bic_code": "COBADEFFXXX",
            "country": "DE",
        }
        assert account.raw["id"] == "ba_0"
        assert json.loads(generic_provider.requests[-1].content)["swiftBicCode"] == "COBADEFFXXX"

    @pytest.mark.parametrize(
        "bank_account, message",
        [
            (BankAccount(name="", account_number="123"), "name is required"),
            (BankAccount(name="Supplier"), "account number or IBAN"),
            (BankAccount(name="Supplier", account_number="", iban=""), "account number or IBAN"),
        ],
    )
    def test_invalid_bank_account(
        self, generic_plugin, generic_provider, bank_account, message
    ) -> None:
        with pytest.raises(InvalidRequestError, match=message):
            generic_plugin.create_bank_account(bank_account)

        assert generic_provider.requests == []

    def test_capabilities(self, generic_plugin) -> None:
        assert generic_plugin.supports(Capability.CREATE_TRANSFER)
        assert generic_plugin.supports(Capability.CREATE_PAYOUT)
        assert generic_plugin.supports(Capability.CREATE_BANK_ACCOUNT)
        assert "transfers" not in generic_plugin.install().streams

    def test_unsupported_elsewhere(self, walletpay_plugin) -> None:
        assert not walletpay_plugin.supports(Capability.CREATE_TRANSFER)
        with pytest.raises(UnsupportedOperationError):
            walletpay_plugin.create_transfer(initiation())
        with pytest.raises(UnsupportedOperationError):
            walletpay_plugin.poll_payout_status("payout_1")
