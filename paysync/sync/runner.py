"""
Stream Runner

Drives the fetch-next operations of one connector against storage:

- loads the stored cursor of a (connector, stream) pair
- calls the plugin until has_more is false or the page budget is spent
- persists records and the new cursor after every completed page
- fans per-account streams out over stored accounts

A failing call aborts the stream without touching its cursor, so the
stored cursor always describes a completed page.
"""

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from paysync.config import settings
from paysync.errors import PaysyncError
from paysync.metrics import MetricsCollector, metrics as default_metrics
from paysync.plugins.base import Plugin
from paysync.storage import StateStorage
from paysync.sync.fetch import FetchNextRequest, FetchNextResponse
from paysync_models import STREAM_CAPABILITIES, PSPBalance, PSPOther

logger = logging.getLogger(__name__)

# stream -> (plugin method, response attribute)
STREAM_OPERATIONS: dict[str, tuple[str, str]] = {
    "accounts": ("fetch_next_accounts", "accounts"),
    "balances": ("fetch_next_balances", "balances"),
    "external_accounts": ("fetch_next_external_accounts", "external_accounts"),
    "payments": ("fetch_next_payments", "payments"),
    "others": ("fetch_next_others", "others"),
}


@dataclass
class RunResult:
    """Result of one stream run."""

    connector: str
    stream: str
    success: bool = True
    pages: int = 0
    records: int = 0
    has_more: bool = False
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


def stream_key(stream: str, parent_reference: str | None = None, name: str | None = None) -> str:
    """Storage key of a stream's cursor, e.g. "payments:acc_1"."""
    suffix = parent_reference or name
    return f"{stream}:{suffix}" if suffix else stream


def record_reference(record: BaseModel) -> str:
    """Stable storage reference of a normalized record."""
    if isinstance(record, PSPBalance):
        return f"{record.account_reference}/{record.asset}"
    if isinstance(record, PSPOther):
        return record.id
    return record.reference  # type: ignore[attr-defined]


class StreamRunner:
    """
    Runs fetch-next loops of one connector.

    Usage:
        runner = StreamRunner("acme", plugin, storage)
        results = runner.sync_connector()
    """

    def __init__(
        self,
        connector_name: str,
        plugin: Plugin,
        storage: StateStorage,
        page_size: int | None = None,
        max_pages: int | None = None,
        metrics: MetricsCollector | None = None,
        sink: Callable[[str, list[BaseModel]], None] | None = None,
    ) -> None:
        """
        Initialize the runner.

        Args:
            connector_name: Name the connector's state is stored under
            plugin: Plugin instance serving the connector
            storage: Cursor and record storage
            page_size: Page size per fetch call (default from config)
            max_pages: Page budget per stream run (default from config)
            metrics: Metrics collector (default global collector)
            sink: Optional callback receiving (stream, records) per page
        """
        self.connector_name = connector_name
        self.plugin = plugin
        self.storage = storage
        self.page_size = page_size or settings.default_page_size
        self.max_pages = max_pages or settings.max_pages_per_run
        self.metrics = metrics or default_metrics
        self.sink = sink

    def run(
        self,
        stream: str,
        from_payload: dict[str, Any] | None = None,
        parent_reference: str | None = None,
        name: str | None = None,
    ) -> RunResult:
        """
        Fetch one stream until the provider has nothing more.

        Args:
            stream: Stream name (accounts, payments, ...)
            from_payload: Parent record for child streams
            parent_reference: Parent reference, keys the child cursor
            name: Resource name for the others stream

        Returns:
            RunResult with page and record counts

        Raises:
            PaysyncError: Any provider or cursor error, after the last
                completed page has been persisted
        """
        method_name, attribute = STREAM_OPERATIONS[stream]
        fetch: Callable[[FetchNextRequest], FetchNextResponse] = getattr(self.plugin, method_name)
        key = stream_key(stream, parent_reference, name)
        payload = json.dumps(from_payload).encode("utf-8") if from_payload else None

        result = RunResult(connector=self.connector_name, stream=key)
        start = time.time()

        with self.metrics.track_run(self.connector_name, stream):
            state = self.storage.get_state(self.connector_name, key)
            while result.pages < self.max_pages:
                response = fetch(
                    FetchNextRequest(
                        page_size=self.page_size,
                        state=state,
                        from_payload=payload,
                        name=name,
                    )
                )
                records: list[BaseModel] = getattr(response, attribute)

                self.storage.upsert_records(
                    self.connector_name,
                    stream,
                    [(record_reference(record), record) for record in records],
                )
                self.storage.save_state(
                    self.connector_name, key, response.new_state, response.has_more
                )
                if self.sink is not None:
                    self.sink(stream, records)

                state = response.new_state
                result.pages += 1
                result.records += len(records)
                result.has_more = response.has_more
                self.metrics.record_records_fetched(self.connector_name, stream, len(records))

                if not response.has_more:
                    break
            else:
                logger.info(
                    "%s/%s stopped after %d pages, resuming next run",
                    self.connector_name,
                    key,
                    self.max_pages,
                )

        result.duration_seconds = time.time() - start
        logger.info(
            "%s/%s: %d records in %d pages (%.1fs)",
            self.connector_name,
            key,
            result.records,
            result.pages,
            result.duration_seconds,
        )
        return result

    def _safe_run(self, stream: str, **kwargs: Any) -> RunResult:
        """Run a stream, turning provider errors into a failed result."""
        try:
            return self.run(stream, **kwargs)
        except PaysyncError as exc:
            key = stream_key(stream, kwargs.get("parent_reference"), kwargs.get("name"))
            logger.error("%s/%s failed: %s", self.connector_name, key, exc)
            return RunResult(
                connector=self.connector_name,
                stream=key,
                success=False,
                errors=[f"{type(exc).__name__}: {exc}"],
            )

    def sync_connector(
        self,
        streams: list[str] | None = None,
        others: list[str] | None = None,
    ) -> list[RunResult]:
        """
        Run every supported stream of the connector once.

        Accounts run first. The plugin's per-account streams then run once
        per stored account, with the account record as from_payload. A
        failing stream does not stop the others.

        Args:
            streams: Restrict to these streams (default: all supported)
            others: Resource names to fetch through the others stream
        """
        wanted = [
            stream
            for stream in streams or list(STREAM_OPERATIONS)
            if self.plugin.supports(STREAM_CAPABILITIES[stream])
        ]
        results: list[RunResult] = []

        if "accounts" in wanted:
            results.append(self._safe_run("accounts"))

        child_streams = [stream for stream in self.plugin.account_streams if stream in wanted]
        if child_streams:
            for account in self.storage.list_records(self.connector_name, "accounts"):
                for stream in child_streams:
                    results.append(
                        self._safe_run(
                            stream,
                            from_payload=account,
                            parent_reference=account["reference"],
                        )
                    )

        for stream in ("external_accounts", "payments"):
            if stream in wanted and stream not in child_streams:
                results.append(self._safe_run(stream))

        if "others" in wanted:
            for name in others or []:
                results.append(self._safe_run("others", name=name))

        return results
