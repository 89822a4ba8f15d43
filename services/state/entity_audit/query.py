"""Paginated read API over the audit store."""

from __future__ import annotations

from services.state.entity_audit.config import EntityAuditSettings
from services.state.entity_audit.domain import (
    ChangeRecordPage,
    ChangeRecordView,
    NEWEST_FIRST,
    FeedFilter,
    FeedOrder,
    PageWindow,
    RecordPage,
)
from services.state.entity_audit.errors import InvalidPaginationRequestError
from services.state.entity_audit.interfaces import EntityAuditStore


class QueryService:
    """Validate page requests, read through the store, shape the results.

    Invalid requests fail with ``InvalidPaginationRequestError`` before the
    store is touched.
    """

    def __init__(self, *, store: EntityAuditStore, settings: EntityAuditSettings) -> None:
        self._store = store
        self._settings = settings

    def entity_history(
        self,
        *,
        entity_type: str,
        entity_id: str,
        page: int = 1,
        page_size: int | None = None,
        snapshot: int | None = None,
    ) -> ChangeRecordPage:
        window = self.window(page=page, page_size=page_size, snapshot=snapshot)
        result = self._store.by_entity(
            entity_type=entity_type, entity_id=entity_id, window=window
        )
        return _to_page(result, window)

    def global_feed(
        self,
        *,
        filters: FeedFilter,
        order: FeedOrder = NEWEST_FIRST,
        page: int = 1,
        page_size: int | None = None,
        snapshot: int | None = None,
    ) -> ChangeRecordPage:
        window = self.window(page=page, page_size=page_size, snapshot=snapshot)
        result = self._store.global_feed(filters=filters, window=window, order=order)
        return _to_page(result, window)

    def window(
        self,
        *,
        page: int,
        page_size: int | None,
        snapshot: int | None = None,
    ) -> PageWindow:
        """Return the validated page window for one request.

        ``page`` must be at least 1. A missing ``page_size`` takes the
        configured default; one above the maximum is clamped or rejected as
        configured.
        """
        if page < 1:
            raise InvalidPaginationRequestError("page must be >= 1", field="page")
        size = self._settings.default_page_size if page_size is None else page_size
        if size < 1:
            raise InvalidPaginationRequestError(
                "page_size must be >= 1", field="page_size"
            )
        if size > self._settings.max_page_size:
            if self._settings.oversized_page_policy == "reject":
                raise InvalidPaginationRequestError(
                    f"page_size must be <= {self._settings.max_page_size}",
                    field="page_size",
                )
            size = self._settings.max_page_size
        if snapshot is not None and snapshot < 0:
            raise InvalidPaginationRequestError(
                "snapshot must be >= 0", field="snapshot"
            )
        return PageWindow(page=page, page_size=size, snapshot=snapshot)


def _to_page(result: RecordPage, window: PageWindow) -> ChangeRecordPage:
    return ChangeRecordPage(
        items=[ChangeRecordView.from_record(record) for record in result.records],
        page=window.page,
        page_size=window.page_size,
        total_count=result.total_count,
        snapshot=result.snapshot,
    )
