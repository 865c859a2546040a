"""Incremental sync primitives: cursors, page completion, timeline scanning."""

from paysync.sync.cursor import (
    CURSOR_VERSION,
    CreatedAtState,
    CursorState,
    LastIDState,
    PageState,
    advance_watermark,
    decode_state,
    encode_state,
    is_after_watermark,
)
from paysync.sync.fetch import (
    FetchNextAccountsResponse,
    FetchNextBalancesResponse,
    FetchNextExternalAccountsResponse,
    FetchNextOthersResponse,
    FetchNextPaymentsResponse,
    FetchNextRequest,
    FetchNextResponse,
)
from paysync.sync.pagination import should_fetch_more, trim
from paysync.sync.timeline import Timeline, TimelineResult, TimelineScanner, TimelineState

__all__ = [
    "CURSOR_VERSION",
    "CreatedAtState",
    "CursorState",
    "FetchNextAccountsResponse",
    "FetchNextBalancesResponse",
    "FetchNextExternalAccountsResponse",
    "FetchNextOthersResponse",
    "FetchNextPaymentsResponse",
    "FetchNextRequest",
    "FetchNextResponse",
    "LastIDState",
    "PageState",
    "Timeline",
    "TimelineResult",
    "TimelineScanner",
    "TimelineState",
    "advance_watermark",
    "decode_state",
    "encode_state",
    "is_after_watermark",
    "should_fetch_more",
    "trim",
]
