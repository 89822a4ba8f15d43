"""Ready-made schemas for the back-office entity types.

Bookkeeping columns (concurrency tokens, created/updated stamps, secrets)
never participate in diffing. ``tracked_fields`` applies that exclusion to
any candidate field list so callers deriving fields from their own models
get the same treatment.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from services.state.entity_audit.domain import ABSENT
from services.state.entity_audit.schema_registry import (
    EntitySchemaRegistry,
    LabelResolver,
)

EXCLUDED_FIELDS = frozenset(
    {
        "row_version",
        "version_token",
        "created_at",
        "created_by",
        "updated_at",
        "updated_by",
        "password_hash",
    }
)

ACCOUNT = "Account"
ACCOUNT_HOLDER = "AccountHolder"
CLIENT = "Client"
INSTRUMENT = "Instrument"
USER = "User"
ROLE = "Role"
ORDER = "Order"
TRANSACTION = "Transaction"

_CATALOG_FIELDS: dict[str, tuple[str, ...]] = {
    ACCOUNT: (
        "number",
        "clearer_id",
        "trade_platform_id",
        "status",
        "account_type",
        "margin_type",
        "option_level",
        "tariff",
        "opened_at",
        "closed_at",
        "delivery_type",
        "comment",
        "external_id",
    ),
    ACCOUNT_HOLDER: ("role", "is_primary"),
    CLIENT: (
        "client_type",
        "external_id",
        "status",
        "email",
        "phone",
        "preferred_language",
        "time_zone",
        "residence_country_id",
        "citizenship_country_id",
        "pep_status",
        "risk_level",
        "kyc_status",
        "kyc_reviewed_at_utc",
        "first_name",
        "last_name",
        "middle_name",
        "date_of_birth",
        "gender",
        "marital_status",
        "education",
        "ssn",
        "passport_number",
        "driver_license_number",
        "company_name",
        "registration_number",
        "tax_id",
    ),
    INSTRUMENT: (
        "symbol",
        "name",
        "isin",
        "cusip",
        "type",
        "status",
        "exchange_id",
        "currency_id",
        "country_id",
        "sector",
        "lot_size",
        "tick_size",
        "margin_requirement",
        "is_margin_eligible",
        "listing_date",
        "delisting_date",
        "expiration_date",
        "issuer_name",
        "description",
        "external_id",
    ),
    USER: ("username", "email", "full_name", "is_active"),
    ROLE: ("name", "description", "is_system"),
    ORDER: (
        "account_id",
        "order_number",
        "category",
        "status",
        "order_date",
        "comment",
        "external_id",
    ),
    TRANSACTION: (
        "order_id",
        "transaction_number",
        "category",
        "status",
        "transaction_date",
        "comment",
        "external_id",
    ),
}


def tracked_fields(candidates: Iterable[str]) -> tuple[str, ...]:
    """Drop bookkeeping fields from a candidate list, keeping order."""
    return tuple(name for name in candidates if name not in EXCLUDED_FIELDS)


def read_field(entity: Any, name: str) -> Any:
    """Read one field by key or attribute, ``None`` when missing."""
    if isinstance(entity, Mapping):
        value = entity.get(name)
    else:
        value = getattr(entity, name, None)
    return None if value is ABSENT else value


def _field_label(name: str) -> LabelResolver:
    def resolve(entity: Any) -> str | None:
        value = read_field(entity, name)
        return None if value is None else str(value)

    return resolve


def client_label(entity: Any) -> str | None:
    """Company name for corporate clients, otherwise ``"first last"``."""
    client_type = read_field(entity, "client_type")
    if getattr(client_type, "name", client_type) in ("Corporate", "CORPORATE"):
        company = read_field(entity, "company_name")
        return None if company is None else str(company)
    parts = [read_field(entity, "first_name"), read_field(entity, "last_name")]
    name = " ".join(str(part) for part in parts if part).strip()
    return name or None


_CATALOG_LABELS: dict[str, LabelResolver] = {
    ACCOUNT: _field_label("number"),
    ACCOUNT_HOLDER: _field_label("client_id"),
    CLIENT: client_label,
    INSTRUMENT: _field_label("symbol"),
    USER: _field_label("username"),
    ROLE: _field_label("name"),
    ORDER: _field_label("order_number"),
    TRANSACTION: _field_label("transaction_number"),
}


def register_backoffice_schemas(registry: EntitySchemaRegistry) -> EntitySchemaRegistry:
    """Register every back-office entity type on ``registry``."""
    for entity_type, fields in _CATALOG_FIELDS.items():
        registry.register(
            entity_type,
            tracked_fields(fields),
            label_resolver=_CATALOG_LABELS[entity_type],
        )
    return registry
