"""
Cursor Codec

Fetch-next cursors are opaque bytes to the caller. Inside, they are a
versioned JSON envelope around a pydantic state model:

    {"v": 1, "state": {"lastCreatedAt": "2024-01-01T00:00:00Z"}}

Cursors written before the envelope existed (a bare JSON object) are
still accepted on decode. Anything else is a CursorDecodeError; a broken
cursor is never silently reset to the start of history.
"""

import json
from datetime import datetime
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from paysync.errors import CursorDecodeError

CURSOR_VERSION = 1

StateT = TypeVar("StateT", bound="CursorState")


class CursorState(BaseModel):
    """Base class for cursor state models (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


# ========== Simple watermark states ==========


class PageState(CursorState):
    """
    Resume from a page number, skipping what the watermark covers.

    page_offset counts the items of last_page already delivered;
    last_ids lists the IDs delivered at exactly last_created_at.
    """

    last_page: int = 0
    last_created_at: datetime | None = None
    last_ids: list[str] | None = Field(default=None, alias="lastIDs")
    page_offset: int | None = None


class CreatedAtState(CursorState):
    """Resume after the newest creation time seen so far."""

    last_created_at: datetime | None = None
    # Delivered IDs sharing last_created_at
    last_ids: list[str] | None = Field(default=None, alias="lastIDs")


class LastIDState(CursorState):
    """Resume after the last object ID seen (cursor-paginated APIs)."""

    last_id: str | None = Field(default=None, alias="lastID")


# ========== Watermark helpers ==========


def is_after_watermark(
    created_at: datetime,
    item_id: str,
    watermark: datetime | None,
    seen_ids: list[str] | None,
) -> bool:
    """
    Whether an item was not yet delivered under a creation-time watermark.

    Items created at exactly the watermark are new unless their ID was
    delivered with it.
    """
    if watermark is None or created_at > watermark:
        return True
    return created_at == watermark and item_id not in (seen_ids or ())


def advance_watermark(
    delivered: list[tuple[datetime, str]],
    watermark: datetime | None,
    seen_ids: list[str] | None,
) -> tuple[datetime | None, list[str] | None]:
    """
    Move a watermark past delivered (created_at, id) pairs, oldest first.

    Returns:
        (new watermark, IDs delivered at the new watermark)
    """
    if not delivered:
        return watermark, seen_ids
    newest = delivered[-1][0]
    ids = [item_id for created_at, item_id in delivered if created_at == newest]
    if newest == watermark:
        ids = [*(seen_ids or []), *ids]
    return newest, ids


# ========== Codec ==========


def encode_state(state: CursorState) -> bytes:
    """Serialize a state model into cursor bytes."""
    envelope = {
        "v": CURSOR_VERSION,
        "state": state.model_dump(mode="json", by_alias=True, exclude_none=True),
    }
    return json.dumps(envelope, separators=(",", ":"), sort_keys=True).encode("utf-8")


def decode_state(raw: bytes | str | None, model: type[StateT]) -> StateT:
    """
    Deserialize cursor bytes into a state model.

    Empty input means "start of history" and yields a fresh state.

    Raises:
        CursorDecodeError: If the cursor is not valid JSON, carries an
            unknown version or does not match the state model
    """
    if not raw:
        return model()

    try:
        payload = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise CursorDecodeError(f"cursor is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise CursorDecodeError("cursor must be a JSON object")

    if "v" in payload:
        version = payload["v"]
        if version != CURSOR_VERSION:
            raise CursorDecodeError(f"unsupported cursor version: {version!r}")
        payload = payload.get("state")
        if not isinstance(payload, dict):
            raise CursorDecodeError("cursor envelope has no state object")

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise CursorDecodeError(f"cursor does not match {model.__name__}") from exc
