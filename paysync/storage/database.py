"""
SQL Storage for paysync

Cursor persistence, record upserts and webhook deduplication on top of a
synchronous SQLAlchemy engine. SQLite is the default backend.
"""

import logging
from typing import Any

from pydantic import BaseModel
from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from paysync.config import settings
from paysync.storage.models import (
    Base,
    SyncedRecord,
    SyncState,
    WebhookDelivery,
    WebhookEndpoint,
)
from paysync_models import WebhookConfig

logger = logging.getLogger(__name__)


class StateStorage:
    """
    SQL storage for sync state and ingested records.

    Features:
    - One cursor row per (connector, stream), overwritten in place
    - Record upsert keyed by (connector, kind, reference)
    - Idempotency-key deduplication of webhook deliveries
    """

    def __init__(self, database_url: str | None = None) -> None:
        """
        Initialize database storage.

        Args:
            database_url: Database connection URL. Defaults to settings.
        """
        self.database_url = database_url or settings.database_url

        engine_options: dict[str, Any] = {"echo": False}
        if self.database_url.startswith("sqlite"):
            # Webhook requests are served from a thread pool
            engine_options["connect_args"] = {"check_same_thread": False}
            if self.database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_options["poolclass"] = StaticPool
        else:
            engine_options["pool_pre_ping"] = True

        self._engine = create_engine(self.database_url, **engine_options)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False)

    def initialize(self) -> None:
        """Create missing tables."""
        Base.metadata.create_all(self._engine)

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def __enter__(self) -> "StateStorage":
        self.initialize()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def get_session(self) -> Session:
        """Get a new database session."""
        return self._session_factory()

    # ========== Sync State ==========

    def get_state(self, connector: str, stream: str) -> bytes | None:
        """Return the stored cursor of a stream, None before its first sync."""
        with self.get_session() as session:
            stmt = select(SyncState.state).where(
                SyncState.connector == connector,
                SyncState.stream == stream,
            )
            return session.execute(stmt).scalar_one_or_none()

    def save_state(
        self,
        connector: str,
        stream: str,
        state: bytes,
        has_more: bool = False,
    ) -> None:
        """Overwrite the cursor of a stream."""
        with self.get_session() as session:
            stmt = select(SyncState).where(
                SyncState.connector == connector,
                SyncState.stream == stream,
            )
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                row = SyncState(connector=connector, stream=stream, state=state)
                session.add(row)
            row.state = state
            row.has_more = has_more
            session.commit()

    def list_states(self, connector: str | None = None) -> list[SyncState]:
        """List stored cursors, optionally for one connector."""
        with self.get_session() as session:
            stmt = select(SyncState).order_by(SyncState.connector, SyncState.stream)
            if connector:
                stmt = stmt.where(SyncState.connector == connector)
            return list(session.execute(stmt).scalars().all())

    # ========== Records ==========

    def upsert_records(
        self,
        connector: str,
        kind: str,
        records: list[tuple[str, BaseModel]],
    ) -> int:
        """
        Insert or update normalized records.

        Args:
            connector: Connector name
            kind: Record kind (accounts, payments, ...)
            records: (reference, record) pairs

        Returns:
            Number of records written
        """
        if not records:
            return 0

        with self.get_session() as session:
            self._upsert(session, connector, kind, records)
            session.commit()
        return len(records)

    @staticmethod
    def _upsert(
        session: Session,
        connector: str,
        kind: str,
        records: list[tuple[str, BaseModel]],
    ) -> None:
        for reference, record in records:
            payload = record.model_dump(mode="json")
            stmt = select(SyncedRecord).where(
                SyncedRecord.connector == connector,
                SyncedRecord.kind == kind,
                SyncedRecord.reference == reference,
            )
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                session.add(
                    SyncedRecord(
                        connector=connector,
                        kind=kind,
                        reference=reference,
                        payload=payload,
                    )
                )
            else:
                row.payload = payload

    def list_records(self, connector: str, kind: str) -> list[dict[str, Any]]:
        """Return the stored payloads of one record kind."""
        with self.get_session() as session:
            stmt = (
                select(SyncedRecord.payload)
                .where(SyncedRecord.connector == connector, SyncedRecord.kind == kind)
                .order_by(SyncedRecord.id)
            )
            return list(session.execute(stmt).scalars().all())

    # ========== Webhooks ==========

    def save_webhook_configs(self, connector: str, configs: list[WebhookConfig]) -> None:
        """Replace the webhook endpoints registered for a connector."""
        with self.get_session() as session:
            existing = session.execute(
                select(WebhookEndpoint).where(WebhookEndpoint.connector == connector)
            ).scalars().all()
            for row in existing:
                session.delete(row)
            session.flush()
            for config in configs:
                session.add(
                    WebhookEndpoint(
                        connector=connector,
                        name=config.name,
                        url_path=config.url_path,
                        config_metadata=dict(config.metadata),
                    )
                )
            session.commit()

    def get_webhook_config(self, connector: str, url_path: str) -> WebhookConfig | None:
        """Find the webhook endpoint of a connector by its URL path."""
        if not url_path.startswith("/"):
            url_path = f"/{url_path}"
        with self.get_session() as session:
            stmt = select(WebhookEndpoint).where(
                WebhookEndpoint.connector == connector,
                WebhookEndpoint.url_path == url_path,
            )
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                return None
            return WebhookConfig(
                name=row.name,
                url_path=row.url_path,
                metadata=dict(row.config_metadata or {}),
            )

    def list_webhook_configs(self, connector: str) -> list[WebhookConfig]:
        with self.get_session() as session:
            stmt = (
                select(WebhookEndpoint)
                .where(WebhookEndpoint.connector == connector)
                .order_by(WebhookEndpoint.id)
            )
            return [
                WebhookConfig(
                    name=row.name,
                    url_path=row.url_path,
                    metadata=dict(row.config_metadata or {}),
                )
                for row in session.execute(stmt).scalars()
            ]

    def store_delivery(
        self,
        connector: str,
        idempotency_key: str,
        event: str | None,
        records: dict[str, list[tuple[str, BaseModel]]],
    ) -> bool:
        """
        Record a webhook delivery together with the records it carries.

        The delivery row and the record upserts share one transaction, so a
        failed upsert leaves the key unrecorded and a redelivery is processed
        again.

        Args:
            connector: Connector name
            idempotency_key: Key of the translated webhook record
            event: Webhook config name
            records: (reference, record) pairs by record kind

        Returns:
            True if written, False if the key was already recorded
        """
        with self.get_session() as session:
            session.add(
                WebhookDelivery(
                    idempotency_key=idempotency_key,
                    connector=connector,
                    event=event,
                )
            )
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                logger.debug("Duplicate webhook delivery %s", idempotency_key)
                return False
            for kind, pairs in records.items():
                self._upsert(session, connector, kind, pairs)
            try:
                session.commit()
            except IntegrityError:
                # Concurrent delivery of the same key won the race
                session.rollback()
                logger.debug("Duplicate webhook delivery %s", idempotency_key)
                return False
        return True
