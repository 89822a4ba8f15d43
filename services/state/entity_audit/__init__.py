"""Entity Audit Service native package exports."""

from packages.backoffice_shared.envelope import Envelope, EnvelopeKind, EnvelopeMeta
from packages.backoffice_shared.errors import ErrorCategory, ErrorDetail
from services.state.entity_audit.component import (
    SERVICE_COMPONENT_ID,
    SERVICE_SCHEMA_NAME,
)
from services.state.entity_audit.config import EntityAuditSettings
from services.state.entity_audit.domain import (
    ABSENT,
    SYSTEM_ACTOR,
    ChangeRecord,
    ChangeRecordPage,
    ChangeRecordView,
    ChangeType,
    CommitResult,
    FeedOrder,
    FeedSortKey,
    FieldChange,
    FieldChangeView,
    HealthStatus,
    RelatedChangeGroupView,
    RelatedEntity,
    RelatedEntityChange,
    VersionToken,
)
from services.state.entity_audit.implementation import DefaultEntityAuditService
from services.state.entity_audit.recorder import ChangeRecorder
from services.state.entity_audit.schema_registry import (
    EntitySchema,
    EntitySchemaRegistry,
    FieldDescriptor,
)
from services.state.entity_audit.service import (
    EntityAuditService,
    build_entity_audit_service,
)

__all__ = [
    "ABSENT",
    "SERVICE_COMPONENT_ID",
    "SERVICE_SCHEMA_NAME",
    "SYSTEM_ACTOR",
    "ChangeRecord",
    "ChangeRecordPage",
    "ChangeRecordView",
    "ChangeRecorder",
    "ChangeType",
    "CommitResult",
    "DefaultEntityAuditService",
    "EntityAuditService",
    "EntityAuditSettings",
    "EntitySchema",
    "EntitySchemaRegistry",
    "FeedOrder",
    "FeedSortKey",
    "FieldChange",
    "FieldChangeView",
    "FieldDescriptor",
    "HealthStatus",
    "RelatedChangeGroupView",
    "RelatedEntity",
    "RelatedEntityChange",
    "VersionToken",
    "build_entity_audit_service",
    "Envelope",
    "EnvelopeKind",
    "EnvelopeMeta",
    "ErrorCategory",
    "ErrorDetail",
]
