"""Data-layer exports for the Entity Audit Service."""

from services.state.entity_audit.data.memory import InMemoryEntityAuditStore
from services.state.entity_audit.data.repository import (
    SqlAuditTransaction,
    SqlEntityAuditStore,
)
from services.state.entity_audit.data.runtime import EntityAuditPostgresRuntime

__all__ = [
    "EntityAuditPostgresRuntime",
    "InMemoryEntityAuditStore",
    "SqlAuditTransaction",
    "SqlEntityAuditStore",
]
