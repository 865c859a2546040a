"""
paysync Webhook API

FastAPI application receiving provider webhooks:

    POST /webhooks/{connector}/{path}

The path selects the connector's webhook config; the plugin verifies the
signature and translates the body; every resulting record is stored once
per idempotency key.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass

from fastapi import APIRouter, FastAPI, HTTPException, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from paysync.connectors import Connector
from paysync.errors import (
    HttpError,
    InvalidRequestError,
    UnsupportedEventError,
    UnsupportedOperationError,
    WebhookConfigError,
    WebhookVerificationError,
)
from paysync.metrics import MetricsCollector, metrics as default_metrics
from paysync.storage import StateStorage
from paysync_models import PSPWebhook, WebhookConfig

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


class WebhookAck(BaseModel):
    """Response body of an accepted webhook."""

    accepted: int
    duplicates: int


@dataclass
class IngestResult:
    accepted: int = 0
    duplicates: int = 0


def ingest_webhook(
    connector: Connector,
    storage: StateStorage,
    config: WebhookConfig,
    webhook: PSPWebhook,
) -> IngestResult:
    """
    Verify, translate and store one webhook.

    Records whose idempotency key was already seen are counted as
    duplicates and not written again. Each key is recorded in the same
    transaction as the records it carries.
    """
    plugin = connector.plugin
    plugin.verify_webhook(config, webhook)
    responses = plugin.translate_webhook(config, webhook)

    result = IngestResult()
    for response in responses:
        records: dict[str, list[tuple[str, BaseModel]]] = {}
        if response.payment is not None:
            records["payments"] = [(response.payment.reference, response.payment)]
        if response.account is not None:
            records["accounts"] = [(response.account.reference, response.account)]
        if response.external_account is not None:
            records["external_accounts"] = [
                (response.external_account.reference, response.external_account)
            ]
        if storage.store_delivery(connector.name, response.idempotency_key, config.name, records):
            result.accepted += 1
        else:
            result.duplicates += 1
    return result


def create_app(
    connectors: dict[str, Connector],
    storage: StateStorage,
    metrics: MetricsCollector | None = None,
) -> FastAPI:
    """
    Build the webhook application.

    Args:
        connectors: Connectors accepting webhooks, by name
        storage: Storage holding webhook configs, deliveries and records
        metrics: Metrics collector (default global collector)
    """
    metrics = metrics or default_metrics

    app = FastAPI(
        title="paysync webhooks",
        description="Webhook ingestion for payment provider connectors",
        version=VERSION,
        docs_url="/docs",
        redoc_url=None,
    )

    router = APIRouter(tags=["webhooks"])

    @router.post("/webhooks/{connector_name}/{url_path:path}", response_model=WebhookAck)
    async def receive_webhook(connector_name: str, url_path: str, request: Request) -> WebhookAck:
        """Receive a provider webhook."""
        connector = connectors.get(connector_name)
        if connector is None:
            raise HTTPException(status_code=404, detail="Connector not found")

        config = await run_in_threadpool(storage.get_webhook_config, connector_name, url_path)
        if config is None:
            raise HTTPException(status_code=404, detail="Webhook path not found")

        headers: dict[str, list[str]] = defaultdict(list)
        for raw_key, raw_value in request.headers.raw:
            headers[raw_key.decode("latin-1").lower()].append(raw_value.decode("latin-1"))
        query: dict[str, list[str]] = defaultdict(list)
        for key, value in request.query_params.multi_items():
            query[key].append(value)

        webhook = PSPWebhook(headers=dict(headers), query_values=dict(query), body=await request.body())

        try:
            result = await run_in_threadpool(ingest_webhook, connector, storage, config, webhook)
        except WebhookVerificationError as exc:
            metrics.record_webhook(connector_name, config.name, "rejected")
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        except WebhookConfigError as exc:
            metrics.record_webhook(connector_name, config.name, "misconfigured")
            logger.error("Webhook config error on %s%s: %s", connector_name, config.url_path, exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except (UnsupportedEventError, UnsupportedOperationError) as exc:
            metrics.record_webhook(connector_name, config.name, "unsupported")
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except InvalidRequestError as exc:
            metrics.record_webhook(connector_name, config.name, "invalid")
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except HttpError as exc:
            metrics.record_webhook(connector_name, config.name, "upstream_error")
            logger.error("Webhook translation of %s failed upstream: %s", connector_name, exc)
            raise HTTPException(status_code=502, detail="Provider request failed") from exc

        if result.accepted:
            metrics.record_webhook(connector_name, config.name, "accepted")
        if result.duplicates:
            metrics.record_webhook(connector_name, config.name, "duplicate")
        return WebhookAck(accepted=result.accepted, duplicates=result.duplicates)

    app.include_router(router)

    # Health Check
    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "version": VERSION}

    @app.get("/metrics", tags=["system"])
    async def export_metrics() -> Response:
        """Prometheus metrics."""
        return Response(content=metrics.export(), media_type=CONTENT_TYPE_LATEST)

    return app
