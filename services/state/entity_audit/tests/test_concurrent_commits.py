"""Interleaved writer tests for the check-then-write race.

The first writer's ``apply`` callback runs a complete competing commit, so
the second writer always lands between the first writer's token check and
its token write.
"""

from __future__ import annotations

from collections.abc import Callable
from itertools import count
from typing import Any

import pytest
from sqlalchemy import Engine

from services.state.entity_audit.data import InMemoryEntityAuditStore
from services.state.entity_audit.domain import ChangeType, PageWindow, VersionToken
from services.state.entity_audit.errors import VersionConflictError
from services.state.entity_audit.interfaces import EntityAuditStore
from services.state.entity_audit.recorder import ChangeRecorder
from services.state.entity_audit.schema_registry import EntitySchemaRegistry


def _registry() -> EntitySchemaRegistry:
    registry = EntitySchemaRegistry()
    registry.register("Account", ["status"])
    return registry


def _modify(
    recorder: ChangeRecorder,
    token: VersionToken,
    *,
    status: str,
    actor_id: str,
    apply: Callable[[Any], None] | None = None,
) -> VersionToken:
    return recorder.commit(
        entity_type="Account",
        entity_id="ACC-001",
        change_type=ChangeType.MODIFIED,
        before={"status": "Active"},
        after={"status": status},
        supplied_token=token,
        actor_id=actor_id,
        apply=apply,
    ).version_token


def _race(first_store: EntityAuditStore, second_store: EntityAuditStore) -> None:
    ticks = count(1_760_000_000_000)
    first = ChangeRecorder(
        registry=_registry(), store=first_store, clock=lambda: next(ticks)
    )
    second = ChangeRecorder(
        registry=_registry(), store=second_store, clock=lambda: next(ticks)
    )
    token = first.commit(
        entity_type="Account",
        entity_id="ACC-001",
        change_type=ChangeType.CREATED,
        before=None,
        after={"status": "Active"},
        supplied_token=None,
        actor_id="u0",
    ).version_token
    winner: list[VersionToken] = []

    def _interleave(session: Any) -> None:
        del session
        winner.append(_modify(second, token, status="Closed", actor_id="u2"))

    with pytest.raises(VersionConflictError) as caught:
        _modify(first, token, status="Blocked", actor_id="u1", apply=_interleave)

    assert caught.value.current_token == winner[0]
    assert (
        second_store.current_version(entity_type="Account", entity_id="ACC-001")
        == winner[0]
    )
    history = second_store.by_entity(
        entity_type="Account",
        entity_id="ACC-001",
        window=PageWindow(page=1, page_size=10),
    )
    assert history.total_count == 2
    assert [record.actor_id for record in history.records] == ["u2", "u0"]


def test_writer_between_check_and_write_loses_on_sql_store(
    file_engine: Engine,
    store_factory: Callable[[Engine], EntityAuditStore],
) -> None:
    """Two SQL sessions racing on one token should let exactly one win."""
    _race(store_factory(file_engine), store_factory(file_engine))


def test_writer_between_check_and_write_loses_in_memory() -> None:
    """The in-memory store should apply the same compare-and-swap rule."""
    store = InMemoryEntityAuditStore()
    _race(store, store)
