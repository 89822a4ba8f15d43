"""Typed failures raised by the entity audit core.

Recoverable failures are converted into envelope errors at the service
boundary. ``UnknownEntitySchemaError`` and ``SchemaDriftError`` are programmer
errors and always propagate.
"""

from __future__ import annotations

from dataclasses import dataclass

from services.state.entity_audit.domain import VersionToken

VERSION_CONFLICT = "VERSION_CONFLICT"
MISSING_VERSION_TOKEN = "MISSING_VERSION_TOKEN"
INVALID_VERSION_TOKEN = "INVALID_VERSION_TOKEN"
ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
ENTITY_ALREADY_EXISTS = "ENTITY_ALREADY_EXISTS"
INVALID_PAGINATION = "INVALID_PAGINATION"
STORE_TIMEOUT = "STORE_TIMEOUT"
STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


@dataclass(eq=False)
class EntityAuditError(Exception):
    """Base error type for entity audit core failures."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class VersionConflictError(EntityAuditError):
    """Supplied token no longer matches the stored one."""

    entity_type: str = ""
    entity_id: str = ""
    supplied_token: VersionToken | None = None
    current_token: VersionToken | None = None


@dataclass(eq=False)
class MissingVersionTokenError(EntityAuditError):
    """Update or delete attempted without a version token."""

    entity_type: str = ""
    entity_id: str = ""


@dataclass(eq=False)
class EntityNotFoundError(EntityAuditError):
    """No tracked version exists for the entity being updated or deleted."""

    entity_type: str = ""
    entity_id: str = ""


@dataclass(eq=False)
class EntityAlreadyExistsError(EntityAuditError):
    """Creation attempted for an entity that is already tracked."""

    entity_type: str = ""
    entity_id: str = ""


@dataclass(eq=False)
class UnknownEntitySchemaError(EntityAuditError):
    """A mutation path used an entity type that never registered a schema."""

    entity_type: str = ""


@dataclass(eq=False)
class SchemaDriftError(EntityAuditError):
    """An entity type was registered twice with different field descriptors."""

    entity_type: str = ""


@dataclass(eq=False)
class InvalidPaginationRequestError(EntityAuditError):
    """Page position or size outside the accepted range."""

    field: str = ""


@dataclass(eq=False)
class StoreTimeoutError(EntityAuditError):
    """A bounded wait on the store ran out before the operation finished."""


@dataclass(eq=False)
class StoreUnavailableError(EntityAuditError):
    """The store could not be reached or failed the operation.

    ``retryable`` is false when repeating the same call cannot succeed, as
    with driver interface or SQL programming errors. ``code`` carries the
    normalized driver error code.
    """

    retryable: bool = True
    code: str = ""
