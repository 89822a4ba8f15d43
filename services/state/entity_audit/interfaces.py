"""Transport-neutral protocol interfaces used by the Entity Audit Service."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Protocol

from services.state.entity_audit.domain import (
    NEWEST_FIRST,
    ChangeRecord,
    FeedFilter,
    FeedOrder,
    PageWindow,
    RecordPage,
    VersionToken,
)


class AuditTransaction(Protocol):
    """Write scope spanning the version check, token advance, and append.

    Everything done through one transaction commits or rolls back together.
    ``session`` is the underlying store session handed to entity mutation
    callbacks so business writes join the same transaction.
    """

    @property
    def session(self) -> Any:
        """Return the store session backing this transaction."""

    def lock_version(self, *, entity_type: str, entity_id: str) -> VersionToken | None:
        """Read the current token while holding the entity's write lock."""

    def insert_version(
        self,
        *,
        entity_type: str,
        entity_id: str,
        token: VersionToken,
        display_label: str | None,
    ) -> None:
        """Start tracking a new entity at ``token``."""

    def swap_version(
        self,
        *,
        entity_type: str,
        entity_id: str,
        expected: VersionToken,
        token: VersionToken,
        display_label: str | None,
    ) -> bool:
        """Advance the token only if it still equals ``expected``."""

    def delete_version(
        self, *, entity_type: str, entity_id: str, expected: VersionToken
    ) -> bool:
        """Stop tracking an entity only if its token still equals ``expected``."""

    def append(self, record: ChangeRecord) -> None:
        """Append one change record."""


class EntityAuditStore(Protocol):
    """Append-only change record store plus the authoritative token table."""

    def transaction(self) -> AbstractContextManager[AuditTransaction]:
        """Open one atomic write scope."""

    def current_version(
        self, *, entity_type: str, entity_id: str
    ) -> VersionToken | None:
        """Read the current token of one entity without locking."""

    def by_entity(
        self, *, entity_type: str, entity_id: str, window: PageWindow
    ) -> RecordPage:
        """Return one page of a single entity's history, newest first."""

    def global_feed(
        self,
        *,
        filters: FeedFilter,
        window: PageWindow,
        order: FeedOrder = NEWEST_FIRST,
    ) -> RecordPage:
        """Return one page of the cross-entity feed in the requested order."""

    def ping(self) -> bool:
        """Return ``True`` when the store can serve requests."""
