"""Pagination contract tests for the query service."""

from __future__ import annotations

import pytest

from services.state.entity_audit.config import EntityAuditSettings
from services.state.entity_audit.data import InMemoryEntityAuditStore
from services.state.entity_audit.domain import (
    NEWEST_FIRST,
    FeedFilter,
    FeedOrder,
    FeedSortKey,
    PageWindow,
    RecordPage,
)
from services.state.entity_audit.errors import InvalidPaginationRequestError
from services.state.entity_audit.query import QueryService


class _RecordingStore(InMemoryEntityAuditStore):
    """In-memory store remembering every page window it was asked for."""

    def __init__(self) -> None:
        super().__init__()
        self.windows: list[PageWindow] = []
        self.orders: list[FeedOrder] = []

    def global_feed(
        self,
        *,
        filters: FeedFilter,
        window: PageWindow,
        order: FeedOrder = NEWEST_FIRST,
    ) -> RecordPage:
        self.windows.append(window)
        self.orders.append(order)
        return super().global_feed(filters=filters, window=window, order=order)


def _service(**settings: object) -> tuple[QueryService, _RecordingStore]:
    store = _RecordingStore()
    return QueryService(store=store, settings=EntityAuditSettings(**settings)), store


def test_missing_page_size_uses_configured_default() -> None:
    """Omitting page_size should fall back to the configured default."""
    service, store = _service(default_page_size=7)

    page = service.global_feed(filters=FeedFilter())

    assert page.page == 1
    assert page.page_size == 7
    assert page.total_count == 0
    assert store.windows == [PageWindow(page=1, page_size=7, snapshot=None)]
    assert store.orders == [NEWEST_FIRST]


def test_oversized_page_is_clamped_by_default() -> None:
    """A page_size above the maximum should be clamped."""
    service, _ = _service(max_page_size=50)

    assert service.global_feed(filters=FeedFilter(), page_size=500).page_size == 50


def test_oversized_page_is_rejected_when_configured() -> None:
    """The reject policy should fail oversized requests instead."""
    service, store = _service(max_page_size=50, oversized_page_policy="reject")

    with pytest.raises(InvalidPaginationRequestError) as caught:
        service.global_feed(filters=FeedFilter(), page_size=51)
    assert caught.value.field == "page_size"
    assert store.windows == []


@pytest.mark.parametrize(
    ("page", "page_size", "snapshot", "field"),
    [
        (0, 10, None, "page"),
        (-1, 10, None, "page"),
        (1, 0, None, "page_size"),
        (1, -5, None, "page_size"),
        (1, 10, -1, "snapshot"),
    ],
)
def test_invalid_windows_never_reach_the_store(
    page: int, page_size: int, snapshot: int | None, field: str
) -> None:
    """Bad page positions should be rejected before any store read."""
    service, store = _service()

    with pytest.raises(InvalidPaginationRequestError) as caught:
        service.global_feed(
            filters=FeedFilter(), page=page, page_size=page_size, snapshot=snapshot
        )
    assert caught.value.field == field
    assert store.windows == []


def test_page_beyond_last_is_empty_with_total() -> None:
    """Pages past the end should be empty but still report the total."""
    service, _ = _service()

    page = service.entity_history(
        entity_type="Account", entity_id="ACC-001", page=3, page_size=10
    )

    assert page.items == []
    assert page.total_count == 0
    assert page.snapshot == 0


def test_default_page_size_must_fit_maximum() -> None:
    """Settings should reject a default above the maximum page size."""
    with pytest.raises(ValueError):
        EntityAuditSettings(default_page_size=300, max_page_size=200)


def test_feed_order_reaches_the_store() -> None:
    """A requested sort should be handed to the store unchanged."""
    service, store = _service()
    order = FeedOrder(key=FeedSortKey.LABEL, descending=False)

    service.global_feed(filters=FeedFilter(), order=order)

    assert store.orders == [order]
