"""
Fetch-Next Protocol Types

Request and response shapes shared by every plugin fetch operation:

    fetch_next(state, from_payload, page_size) -> (items, new_state, has_more)

state is the last persisted cursor (empty means start of history) and
from_payload is the raw JSON of the parent resource for child streams,
e.g. the account whose payments are listed.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from paysync.errors import InvalidRequestError, MissingFromPayloadError
from paysync_models import PSPAccount, PSPBalance, PSPOther, PSPPayment


@dataclass
class FetchNextRequest:
    """Input of one fetch-next call."""

    page_size: int
    state: bytes | None = None
    from_payload: bytes | None = None
    name: str | None = None  # Resource name for fetch_next_others

    def validate(self) -> None:
        """Reject malformed requests before any provider call."""
        if self.page_size <= 0:
            raise InvalidRequestError(f"page size must be positive, got {self.page_size}")

    def parent(self) -> dict[str, Any]:
        """
        Decode from_payload as a JSON object.

        Raises:
            MissingFromPayloadError: If the request has no parent payload
            InvalidRequestError: If the payload is not a JSON object
        """
        if not self.from_payload:
            raise MissingFromPayloadError("from_payload is required for this stream")
        try:
            payload = json.loads(self.from_payload)
        except ValueError as exc:
            raise InvalidRequestError("from_payload is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise InvalidRequestError("from_payload must be a JSON object")
        return payload


@dataclass
class FetchNextResponse:
    """Common part of every fetch-next response."""

    new_state: bytes = b""
    has_more: bool = False


@dataclass
class FetchNextAccountsResponse(FetchNextResponse):
    accounts: list[PSPAccount] = field(default_factory=list)


@dataclass
class FetchNextBalancesResponse(FetchNextResponse):
    balances: list[PSPBalance] = field(default_factory=list)


@dataclass
class FetchNextExternalAccountsResponse(FetchNextResponse):
    external_accounts: list[PSPAccount] = field(default_factory=list)


@dataclass
class FetchNextPaymentsResponse(FetchNextResponse):
    payments: list[PSPPayment] = field(default_factory=list)


@dataclass
class FetchNextOthersResponse(FetchNextResponse):
    others: list[PSPOther] = field(default_factory=list)
