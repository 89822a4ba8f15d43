"""Concrete Entity Audit Service implementation."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ValidationError

from packages.backoffice_shared.config import BackofficeSettings
from packages.backoffice_shared.envelope import (
    Envelope,
    EnvelopeMeta,
    failure,
    success,
    validate_meta,
)
from packages.backoffice_shared.errors import (
    ErrorDetail,
    codes,
    conflict_error,
    dependency_error,
    not_found_error,
    validation_error,
)
from packages.backoffice_shared.logging import get_logger, public_api_instrumented
from services.state.entity_audit import errors as audit_errors
from services.state.entity_audit.catalog import register_backoffice_schemas
from services.state.entity_audit.component import SERVICE_COMPONENT_ID
from services.state.entity_audit.config import (
    EntityAuditSettings,
    resolve_entity_audit_settings,
)
from services.state.entity_audit.domain import (
    ChangeRecordPage,
    ChangeType,
    CommitResult,
    FeedFilter,
    FeedOrder,
    FeedSortKey,
    HealthStatus,
    InvalidVersionTokenError,
    RelatedEntityChange,
    VersionToken,
)
from services.state.entity_audit.errors import (
    EntityAlreadyExistsError,
    EntityNotFoundError,
    InvalidPaginationRequestError,
    MissingVersionTokenError,
    StoreTimeoutError,
    StoreUnavailableError,
    VersionConflictError,
)
from services.state.entity_audit.interfaces import EntityAuditStore
from services.state.entity_audit.query import QueryService
from services.state.entity_audit.recorder import ChangeRecorder, EntityMutation
from services.state.entity_audit.schema_registry import EntitySchemaRegistry
from services.state.entity_audit.service import EntityAuditService
from services.state.entity_audit.validation import (
    CommitRequest,
    EntityKeyRequest,
    FeedRequest,
)

_LOGGER = get_logger(__name__)

_RECOVERABLE_ERRORS = (
    VersionConflictError,
    MissingVersionTokenError,
    EntityNotFoundError,
    EntityAlreadyExistsError,
    InvalidPaginationRequestError,
    StoreTimeoutError,
    StoreUnavailableError,
)


class DefaultEntityAuditService(EntityAuditService):
    """Default implementation over a schema registry and an audit store."""

    def __init__(
        self,
        *,
        settings: EntityAuditSettings,
        registry: EntitySchemaRegistry,
        store: EntityAuditStore,
    ) -> None:
        self._settings = settings
        self._store = store
        self._recorder = ChangeRecorder(
            registry=registry,
            store=store,
            max_value_length=settings.max_value_length,
            max_label_length=settings.max_label_length,
        )
        self._queries = QueryService(store=store, settings=settings)

    @classmethod
    def from_settings(
        cls,
        settings: BackofficeSettings,
        *,
        registry: EntitySchemaRegistry | None = None,
        store: EntityAuditStore | None = None,
    ) -> "DefaultEntityAuditService":
        """Build the service from typed settings and owned resources."""
        from services.state.entity_audit.data import (
            EntityAuditPostgresRuntime,
            SqlEntityAuditStore,
        )

        service_settings = resolve_entity_audit_settings(settings)
        if store is None:
            runtime = EntityAuditPostgresRuntime.from_settings(
                settings, service_settings=service_settings
            )
            store = SqlEntityAuditStore(runtime.schema_sessions)
        return cls(
            settings=service_settings,
            registry=registry or register_backoffice_schemas(EntitySchemaRegistry()),
            store=store,
        )

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
    )
    def health(self, *, meta: EnvelopeMeta) -> Envelope[HealthStatus]:
        """Return readiness based on audit store reachability."""
        meta_errors = _meta_errors(meta)
        if meta_errors:
            return failure(meta=meta, errors=meta_errors)
        try:
            self._store.ping()
        except _RECOVERABLE_ERRORS as exc:
            return self._core_failure(meta=meta, operation="health", exc=exc)
        return success(
            meta=meta,
            payload=HealthStatus(service_ready=True, substrate_ready=True, detail="ok"),
        )

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
        id_fields=("entity_type", "entity_id", "change_type", "actor_id"),
    )
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
        """Commit one mutation and return the token for the next write."""
        request, errors = self._validate_request(
            meta=meta,
            model=CommitRequest,
            payload={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "change_type": change_type,
                "version_token": version_token,
                "actor_id": actor_id,
                "actor_name": actor_name,
                "display_label": display_label,
            },
        )
        if errors:
            return failure(meta=meta, errors=errors)
        assert isinstance(request, CommitRequest)

        try:
            supplied = (
                None
                if request.version_token is None
                else VersionToken.decode(request.version_token)
            )
        except InvalidVersionTokenError as exc:
            return failure(
                meta=meta,
                errors=[
                    validation_error(
                        str(exc),
                        code=audit_errors.INVALID_VERSION_TOKEN,
                        metadata={"field": "version_token"},
                    )
                ],
            )

        try:
            outcome = self._recorder.commit(
                entity_type=request.entity_type,
                entity_id=request.entity_id,
                change_type=request.change_type,
                before=before,
                after=after,
                supplied_token=supplied,
                actor_id=request.actor_id,
                actor_name=request.actor_name,
                display_label=request.display_label,
                apply=apply,
                related=related,
            )
        except _RECOVERABLE_ERRORS as exc:
            return self._core_failure(meta=meta, operation="commit", exc=exc)
        return success(
            meta=meta,
            payload=CommitResult(
                version_token=outcome.version_token.encode(),
                operation_id=outcome.operation_id,
                recorded=outcome.recorded,
            ),
        )

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
        id_fields=("entity_type", "entity_id"),
    )
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
        request, errors = self._validate_request(
            meta=meta,
            model=EntityKeyRequest,
            payload={"entity_type": entity_type, "entity_id": entity_id},
        )
        if errors:
            return failure(meta=meta, errors=errors)
        assert isinstance(request, EntityKeyRequest)

        try:
            result = self._queries.entity_history(
                entity_type=request.entity_type,
                entity_id=request.entity_id,
                page=page,
                page_size=page_size,
                snapshot=snapshot,
            )
        except _RECOVERABLE_ERRORS as exc:
            return self._core_failure(meta=meta, operation="entity_history", exc=exc)
        return success(meta=meta, payload=result)

    @public_api_instrumented(
        logger=_LOGGER,
        component_id=str(SERVICE_COMPONENT_ID),
        id_fields=("entity_type", "change_type"),
    )
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
        """Read change records across all tracked entities in the requested order."""
        request, errors = self._validate_request(
            meta=meta,
            model=FeedRequest,
            payload={
                "entity_type": entity_type,
                "actor_ids": tuple(actor_ids),
                "change_type": change_type,
                "label_query": label_query,
                "from_utc": from_utc,
                "to_utc": to_utc,
                "sort_by": sort_by,
                "descending": descending,
            },
        )
        if errors:
            return failure(meta=meta, errors=errors)
        assert isinstance(request, FeedRequest)

        filters = FeedFilter(
            entity_type=request.entity_type,
            actor_ids=request.actor_ids,
            change_type=request.change_type,
            label_query=request.label_query,
            from_utc=request.from_utc,
            to_utc=request.to_utc,
        )
        try:
            result = self._queries.global_feed(
                filters=filters,
                order=FeedOrder(key=request.sort_by, descending=request.descending),
                page=page,
                page_size=page_size,
                snapshot=snapshot,
            )
        except _RECOVERABLE_ERRORS as exc:
            return self._core_failure(meta=meta, operation="global_feed", exc=exc)
        return success(meta=meta, payload=result)

    def _validate_request(
        self,
        *,
        meta: EnvelopeMeta,
        model: type[BaseModel],
        payload: dict[str, Any],
    ) -> tuple[BaseModel | None, list[ErrorDetail]]:
        """Validate envelope metadata and request payload model."""
        errors = _meta_errors(meta)
        if errors:
            return None, errors
        try:
            request = model.model_validate(payload)
        except ValidationError as exc:
            return None, [
                validation_error(
                    f"request validation failed: {err['msg']}",
                    code=codes.INVALID_ARGUMENT,
                    metadata={"field": ".".join(str(p) for p in err["loc"])},
                )
                for err in exc.errors()
            ]
        return request, []

    def _core_failure(
        self,
        *,
        meta: EnvelopeMeta,
        operation: str,
        exc: Exception,
    ) -> Envelope[Any]:
        """Map one recoverable core exception into structured envelope errors."""
        if isinstance(exc, (StoreTimeoutError, StoreUnavailableError)):
            _LOGGER.warning(
                "%s failed due to store error: exception_type=%s",
                operation,
                type(exc).__name__,
                exc_info=exc,
            )
        return failure(meta=meta, errors=[_error_for(exc)])


def _meta_errors(meta: EnvelopeMeta) -> list[ErrorDetail]:
    try:
        validate_meta(meta)
    except ValueError as exc:
        return [validation_error(str(exc), code=codes.MISSING_REQUIRED_FIELD)]
    return []


def _entity_metadata(exc: Exception) -> dict[str, str]:
    return {
        "entity_type": str(getattr(exc, "entity_type", "")),
        "entity_id": str(getattr(exc, "entity_id", "")),
    }


def _error_for(exc: Exception) -> ErrorDetail:
    """Return the envelope error for one recoverable core exception."""
    message = str(exc)
    if isinstance(exc, VersionConflictError):
        metadata = _entity_metadata(exc)
        if exc.supplied_token is not None:
            metadata["supplied_token"] = exc.supplied_token.encode()
        if exc.current_token is not None:
            metadata["current_token"] = exc.current_token.encode()
        return conflict_error(
            message, code=audit_errors.VERSION_CONFLICT, metadata=metadata
        )
    if isinstance(exc, EntityAlreadyExistsError):
        return conflict_error(
            message,
            code=audit_errors.ENTITY_ALREADY_EXISTS,
            metadata=_entity_metadata(exc),
        )
    if isinstance(exc, MissingVersionTokenError):
        return validation_error(
            message,
            code=audit_errors.MISSING_VERSION_TOKEN,
            metadata={**_entity_metadata(exc), "field": "version_token"},
        )
    if isinstance(exc, EntityNotFoundError):
        return not_found_error(
            message,
            code=audit_errors.ENTITY_NOT_FOUND,
            metadata=_entity_metadata(exc),
        )
    if isinstance(exc, InvalidPaginationRequestError):
        return validation_error(
            message,
            code=audit_errors.INVALID_PAGINATION,
            metadata={"field": exc.field},
        )
    if isinstance(exc, StoreTimeoutError):
        return dependency_error(message, code=audit_errors.STORE_TIMEOUT)
    if isinstance(exc, StoreUnavailableError):
        return dependency_error(
            message,
            code=audit_errors.STORE_UNAVAILABLE,
            retryable=exc.retryable,
            metadata={"driver_code": exc.code} if exc.code else None,
        )
    return dependency_error(message, code=audit_errors.STORE_UNAVAILABLE)
