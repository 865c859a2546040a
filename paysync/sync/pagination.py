"""
Page-Completion Oracle

Decides, inside one fetch-next call, whether the plugin must ask the
provider for another page and whether more data probably exists beyond
the returned window.

When the window is exactly full and the batch that filled it was a full
page, has_more is reported even if the provider is in fact exhausted.
The next call then costs one empty page check. Avoiding it would take
a look-ahead request.
"""

from collections.abc import Sized
from typing import TypeVar

from paysync.errors import InvalidRequestError

T = TypeVar("T")


def should_fetch_more(total: Sized, last_batch: Sized, page_size: int) -> tuple[bool, bool]:
    """
    Evaluate the page-completion rule.

    Args:
        total: Items accumulated so far in this fetch-next call
        last_batch: Items returned by the most recent provider call
        page_size: Requested page size

    Returns:
        (need_more, has_more)
    """
    if page_size <= 0:
        raise InvalidRequestError(f"page size must be positive, got {page_size}")

    need_more = len(total) < page_size
    has_more = len(total) >= page_size and len(last_batch) == page_size
    return need_more, has_more


def trim(items: list[T], page_size: int, need_more: bool) -> list[T]:
    """Cut the accumulated window to page_size once it is full."""
    if need_more:
        return items
    return items[:page_size]
