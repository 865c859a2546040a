"""
Provider HTTP Transport

Synchronous httpx wrapper shared by all connector plugins.

Features:
- Status classification into typed errors (pluggable per provider)
- Typed decoding of success and error bodies with pydantic
- OAuth2 client credentials with a lock-guarded token cache
- Prometheus metrics per call (connector, endpoint, operation, status)

Failures surface to the caller, which keeps its cursor and tries again
on the next scheduled run. The only retry is a single re-authentication
when an OAuth connector gets a 401.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from paysync.client.oauth import OAuthConfig, TokenSource
from paysync.config import settings
from paysync.errors import (
    ClientError,
    DecodeError,
    HttpError,
    NetworkFailureError,
    RateLimitedError,
    ServerError,
)
from paysync.metrics import MetricsCollector, metrics as default_metrics

logger = logging.getLogger(__name__)

ErrorClassifier = Callable[[int], type[HttpError] | None]
ModelT = TypeVar("ModelT", bound=BaseModel)


def default_error_classifier(status_code: int) -> type[HttpError] | None:
    """
    Map a response status to the error it should raise.

    Returns:
        The HttpError subclass to raise, or None for success
    """
    if status_code == 429:
        return RateLimitedError
    if 400 <= status_code < 500:
        return ClientError
    if status_code >= 500:
        return ServerError
    return None


def decode_item(model: type[ModelT], raw: Any, operation: str) -> ModelT:
    """
    Validate one provider object kept as raw JSON.

    Raises:
        DecodeError: If the object does not match the model
    """
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        item_id = raw.get("id") if isinstance(raw, dict) else None
        raise DecodeError(
            f"{operation}: malformed {model.__name__} {item_id or ''}".rstrip()
        ) from exc


@dataclass
class HttpConfig:
    """Transport settings of one connector instance."""

    connector_name: str = "unknown"
    base_url: str = ""
    timeout: float = field(default_factory=lambda: settings.http_timeout)
    transport: httpx.BaseTransport | None = None
    oauth: OAuthConfig | None = None
    error_classifier: ErrorClassifier | None = None
    base_headers: dict[str, str] = field(default_factory=dict)


@dataclass
class HttpResponse:
    """Result of a successful provider call."""

    status_code: int
    data: Any
    headers: httpx.Headers
    duration: float = 0.0


class HttpTransport:
    """
    Blocking HTTP transport for provider APIs.

    Usage:
        with HttpTransport(HttpConfig(connector_name="acme", base_url=url)) as http:
            result = http.request("GET", "/payments", expected_body=Page,
                                  operation="list_payments")
    """

    def __init__(
        self,
        config: HttpConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.config = config or HttpConfig()
        self.metrics = metrics or default_metrics
        self._classify = self.config.error_classifier or default_error_classifier
        self._client = httpx.Client(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(self.config.timeout),
            transport=self.config.transport,
            headers={
                "Accept": "application/json",
                "User-Agent": "paysync/0.1",
                **self.config.base_headers,
            },
        )
        self._token_source = (
            TokenSource(self.config.oauth, self._client) if self.config.oauth else None
        )

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying connection pool."""
        self._client.close()

    def build_request(self, method: str, url: str, **kwargs: Any) -> httpx.Request:
        """Build a request against the configured base URL."""
        return self._client.build_request(method, url, **kwargs)

    def request(
        self,
        method: str,
        url: str,
        *,
        expected_body: Any = None,
        error_body: Any = None,
        operation: str = "unknown",
        **kwargs: Any,
    ) -> HttpResponse:
        """Build a request and execute it with do()."""
        request = self.build_request(method, url, **kwargs)
        return self.do(
            request,
            expected_body=expected_body,
            error_body=error_body,
            operation=operation,
        )

    def do(
        self,
        request: httpx.Request,
        expected_body: Any = None,
        error_body: Any = None,
        operation: str = "unknown",
    ) -> HttpResponse:
        """
        Execute a request and decode its response.

        Args:
            request: Request to send
            expected_body: Type to decode a success body into (None skips decoding)
            error_body: Type to decode an error body into, attached to the error
            operation: Metrics label naming the provider operation

        Returns:
            HttpResponse with the decoded body

        Raises:
            OAuthError: If a token was needed and could not be obtained
            NetworkFailureError: If no response was received
            ClientError / RateLimitedError / ServerError: On error statuses
            DecodeError: If a success body does not match expected_body
        """
        if self._token_source is not None:
            request.headers["Authorization"] = f"Bearer {self._token_source.token()}"

        endpoint = request.url.path
        response, duration = self._send(request, endpoint, operation)
        if response.status_code == 401 and self._token_source is not None:
            # Token revoked before its expiry; one retry with a fresh token
            logger.info("%s %s rejected the access token, refreshing", request.method, endpoint)
            self._token_source.invalidate()
            request.headers["Authorization"] = f"Bearer {self._token_source.token()}"
            response, duration = self._send(request, endpoint, operation)
        status = response.status_code

        error_cls = self._classify(status)
        if error_cls is not None:
            body = self._decode_error_body(response, error_body)
            raise error_cls(
                f"{request.method} {endpoint} returned {status}",
                status_code=status,
                endpoint=endpoint,
                body=body,
            )

        data = None
        if expected_body is not None:
            try:
                data = TypeAdapter(expected_body).validate_json(response.content)
            except ValidationError as exc:
                raise DecodeError(
                    f"{request.method} {endpoint}: unexpected response body"
                ) from exc

        return HttpResponse(
            status_code=status,
            data=data,
            headers=response.headers,
            duration=duration,
        )

    def _send(
        self, request: httpx.Request, endpoint: str, operation: str
    ) -> tuple[httpx.Response, float]:
        start = time.perf_counter()
        try:
            response = self._client.send(request)
        except httpx.TransportError as exc:
            self._record(endpoint, operation, 0, time.perf_counter() - start)
            logger.warning("%s %s failed: %s", request.method, endpoint, exc)
            raise NetworkFailureError(
                f"{request.method} {endpoint}: {exc}", endpoint=endpoint
            ) from exc

        duration = time.perf_counter() - start
        self._record(endpoint, operation, response.status_code, duration)
        logger.debug(
            "%s %s -> %d (%.3fs)", request.method, endpoint, response.status_code, duration
        )
        return response, duration

    def _decode_error_body(self, response: httpx.Response, error_body: Any) -> Any:
        """Decode an error body, falling back to raw text when it does not fit."""
        if not response.content:
            return None
        if error_body is not None:
            try:
                return TypeAdapter(error_body).validate_json(response.content)
            except ValidationError:
                logger.debug("Error body did not match %r", error_body)
        return response.text

    def _record(self, endpoint: str, operation: str, status: int, duration: float) -> None:
        self.metrics.record_http_request(
            connector=self.config.connector_name,
            endpoint=endpoint,
            operation=operation,
            status=status,
            duration=duration,
        )
