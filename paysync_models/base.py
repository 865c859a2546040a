"""
Base Record Model

Pydantic base class for all normalized provider records.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class PSPRecord(BaseModel):
    """Base class for normalized records fetched from a payment provider."""

    reference: str
    created_at: datetime

    # Free-form provider attributes worth keeping next to the record
    metadata: dict[str, str] = Field(default_factory=dict)

    # Provider payload, preserved verbatim
    raw: dict[str, Any] = Field(default_factory=dict)
