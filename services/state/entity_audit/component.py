"""Component identity for the Entity Audit Service."""

from __future__ import annotations

SERVICE_COMPONENT_ID = "service_entity_audit"
SERVICE_SCHEMA_NAME = "entity_audit"
