"""Optimistic concurrency check against the stored version token."""

from __future__ import annotations

from services.state.entity_audit.domain import VersionToken
from services.state.entity_audit.errors import (
    EntityNotFoundError,
    MissingVersionTokenError,
    VersionConflictError,
)
from services.state.entity_audit.interfaces import AuditTransaction


class ConcurrencyGuard:
    """Compare a caller-supplied token with the authoritative one.

    The read happens through ``AuditTransaction.lock_version`` so the entity
    row stays locked until the surrounding transaction ends. Stores that
    cannot lock still fail the later compare-and-swap write when another
    writer got in between.
    """

    def check(
        self,
        tx: AuditTransaction,
        *,
        entity_type: str,
        entity_id: str,
        supplied: VersionToken | None,
    ) -> VersionToken:
        """Return the current token when it equals ``supplied``."""
        if supplied is None:
            raise MissingVersionTokenError(
                f"{entity_type} '{entity_id}' requires a version token",
                entity_type=entity_type,
                entity_id=entity_id,
            )
        current = tx.lock_version(entity_type=entity_type, entity_id=entity_id)
        if current is None:
            raise EntityNotFoundError(
                f"{entity_type} '{entity_id}' is not tracked",
                entity_type=entity_type,
                entity_id=entity_id,
            )
        if current != supplied:
            raise conflict(
                entity_type=entity_type,
                entity_id=entity_id,
                supplied=supplied,
                current=current,
            )
        return current


def conflict(
    *,
    entity_type: str,
    entity_id: str,
    supplied: VersionToken | None,
    current: VersionToken | None,
) -> VersionConflictError:
    """Build the conflict signal for one entity."""
    return VersionConflictError(
        f"{entity_type} '{entity_id}' was changed by someone else",
        entity_type=entity_type,
        entity_id=entity_id,
        supplied_token=supplied,
        current_token=current,
    )
