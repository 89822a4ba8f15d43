"""Authoritative in-process Python API for the Entity Audit Service."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from packages.backoffice_shared.config import BackofficeSettings
from packages.backoffice_shared.envelope import Envelope, EnvelopeMeta
from services.state.entity_audit.domain import (
    ChangeRecordPage,
    ChangeType,
    CommitResult,
    FeedSortKey,
    HealthStatus,
    RelatedEntityChange,
)
from services.state.entity_audit.interfaces import EntityAuditStore
from services.state.entity_audit.recorder import EntityMutation
from services.state.entity_audit.schema_registry import EntitySchemaRegistry


class EntityAuditService(ABC):
    """Public API for audited entity mutations and change history reads."""

    @abstractmethod
    def commit(
        self,
        *,
        meta: EnvelopeMeta,
        entity_type: str,
        entity_id: str,
        change_type: ChangeType | str,
        before: Any | None,
        after: Any | None,
        version_token: str | None = None,
        actor_id: str | None = None,
        actor_name: str | None = None,
        display_label: str | None = None,
        apply: EntityMutation | None = None,
        related: Sequence[RelatedEntityChange] = (),
    ) -> Envelope[CommitResult]:
        """Commit one mutation with its change record and return the new token."""

    @abstractmethod
    def entity_history(
        self,
        *,
        meta: EnvelopeMeta,
        entity_type: str,
        entity_id: str,
        page: int = 1,
        page_size: int | None = None,
        snapshot: int | None = None,
    ) -> Envelope[ChangeRecordPage]:
        """Read one entity's change records, newest first."""

    @abstractmethod
    def global_feed(
        self,
        *,
        meta: EnvelopeMeta,
        entity_type: str | None = None,
        actor_ids: Sequence[str] = (),
        change_type: ChangeType | str | None = None,
        label_query: str | None = None,
        from_utc: datetime | None = None,
        to_utc: datetime | None = None,
        sort_by: FeedSortKey | str = FeedSortKey.TIMESTAMP,
        descending: bool = True,
        page: int = 1,
        page_size: int | None = None,
        snapshot: int | None = None,
    ) -> Envelope[ChangeRecordPage]:
        """Read change records across entities with optional filters.

        Records are ordered by ``sort_by``, descending unless told otherwise;
        the default is newest first.
        """

    @abstractmethod
    def health(self, *, meta: EnvelopeMeta) -> Envelope[HealthStatus]:
        """Return service and owned store readiness."""


def build_entity_audit_service(
    *,
    settings: BackofficeSettings,
    registry: EntitySchemaRegistry | None = None,
    store: EntityAuditStore | None = None,
) -> EntityAuditService:
    """Build the default Entity Audit implementation from typed settings.

    Without an explicit ``registry`` the back-office catalog schemas are
    registered; without an explicit ``store`` the SQL store is used.
    """
    from services.state.entity_audit.implementation import DefaultEntityAuditService

    return DefaultEntityAuditService.from_settings(
        settings, registry=registry, store=store
    )
