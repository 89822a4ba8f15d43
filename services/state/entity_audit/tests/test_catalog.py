"""Back-office entity catalog registration tests."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from services.state.entity_audit.catalog import (
    ACCOUNT,
    ACCOUNT_HOLDER,
    CLIENT,
    EXCLUDED_FIELDS,
    INSTRUMENT,
    ORDER,
    ROLE,
    TRANSACTION,
    USER,
    client_label,
    register_backoffice_schemas,
    tracked_fields,
)
from services.state.entity_audit.schema_registry import EntitySchemaRegistry


class _ClientType(Enum):
    Individual = 0
    Corporate = 1


@dataclass
class _Client:
    client_type: _ClientType
    first_name: str | None = None
    last_name: str | None = None
    company_name: str | None = None


def test_catalog_registers_every_backoffice_type() -> None:
    """Every back-office entity type should be registered."""
    registry = register_backoffice_schemas(EntitySchemaRegistry())

    assert set(registry.entity_types()) == {
        ACCOUNT,
        ACCOUNT_HOLDER,
        CLIENT,
        INSTRUMENT,
        USER,
        ROLE,
        ORDER,
        TRANSACTION,
    }


def test_catalog_registration_is_repeatable() -> None:
    """Registering the catalog twice should not count as drift."""
    registry = register_backoffice_schemas(EntitySchemaRegistry())

    register_backoffice_schemas(registry)

    assert len(registry.entity_types()) == 8


def test_bookkeeping_fields_never_participate() -> None:
    """Excluded bookkeeping fields should be dropped from any field list."""
    registry = register_backoffice_schemas(EntitySchemaRegistry())

    for entity_type in registry.entity_types():
        assert not EXCLUDED_FIELDS & set(registry.require(entity_type).field_names)
    assert tracked_fields(["status", "row_version", "password_hash", "email"]) == (
        "status",
        "email",
    )


def test_display_labels_follow_entity_type() -> None:
    """Each entity type should resolve its own human-readable label."""
    registry = register_backoffice_schemas(EntitySchemaRegistry())

    assert registry.require(ACCOUNT).display_label({"number": "ACC-9"}) == "ACC-9"
    assert registry.require(INSTRUMENT).display_label({"symbol": "AAPL"}) == "AAPL"
    assert registry.require(USER).display_label({"username": "jdoe"}) == "jdoe"
    assert registry.require(ROLE).display_label({"name": "Admin"}) == "Admin"
    assert registry.require(ORDER).display_label({"order_number": "O-1"}) == "O-1"
    assert (
        registry.require(TRANSACTION).display_label({"transaction_number": "T-1"})
        == "T-1"
    )
    assert registry.require(ACCOUNT_HOLDER).display_label({"client_id": "c-1"}) == "c-1"
    assert registry.require(ACCOUNT).display_label({}) is None


def test_client_label_uses_company_or_person_name() -> None:
    """Corporate clients show the company; individuals show first and last."""
    assert client_label(_Client(_ClientType.Corporate, company_name="Acme")) == "Acme"
    assert (
        client_label(_Client(_ClientType.Individual, first_name="Ada", last_name="Byron"))
        == "Ada Byron"
    )
    assert client_label(_Client(_ClientType.Individual, last_name="Byron")) == "Byron"
    assert client_label(_Client(_ClientType.Individual)) is None
