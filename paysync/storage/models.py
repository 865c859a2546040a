"""
paysync Database Models

SQLAlchemy models for cursors, synchronized records, webhook endpoints
and webhook deliveries. Types are kept portable so the same schema runs
on SQLite and PostgreSQL.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all paysync models."""

    pass


class SyncState(Base):
    """Last persisted cursor of one (connector, stream) pair."""

    __tablename__ = "sync_states"
    __table_args__ = (UniqueConstraint("connector", "stream", name="uq_sync_state_stream"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    connector: Mapped[str] = mapped_column(String(255), index=True)
    # Child streams are keyed per parent, e.g. "payments:acc_123"
    stream: Mapped[str] = mapped_column(String(512))
    state: Mapped[bytes] = mapped_column(LargeBinary)
    has_more: Mapped[bool] = mapped_column(default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class SyncedRecord(Base):
    """Normalized record as last seen from polling or webhooks."""

    __tablename__ = "synced_records"
    __table_args__ = (
        UniqueConstraint("connector", "kind", "reference", name="uq_synced_record"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    connector: Mapped[str] = mapped_column(String(255), index=True)
    kind: Mapped[str] = mapped_column(String(64))
    reference: Mapped[str] = mapped_column(String(512))
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class WebhookEndpoint(Base):
    """Webhook config registered for a connector."""

    __tablename__ = "webhook_endpoints"
    __table_args__ = (
        UniqueConstraint("connector", "url_path", name="uq_webhook_endpoint_path"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    connector: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(255))
    url_path: Mapped[str] = mapped_column(Text)
    # "metadata" is reserved on declarative classes
    config_metadata: Mapped[dict[str, str]] = mapped_column("metadata", JSON, default=dict)


class WebhookDelivery(Base):
    """Processed webhook record, keyed for deduplication."""

    __tablename__ = "webhook_deliveries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    idempotency_key: Mapped[str] = mapped_column(String(64), unique=True)
    connector: Mapped[str] = mapped_column(String(255), index=True)
    event: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
