"""Persistence layer for n8n-hub."""

from n8n_hub.persistence.store import KeyValueStore

# Versioned blob keys. Bump the suffix when a blob's shape changes.
INSTANCES_KEY = "n8n_hub.instances.v1"
STATUS_KEY = "n8n_hub.status.v1"
WORKFLOWS_KEY = "n8n_hub.workflows.v1"
MIGRATION_KEY = "n8n_hub.migration.v1"

__all__ = ["INSTANCES_KEY", "KeyValueStore", "MIGRATION_KEY", "STATUS_KEY", "WORKFLOWS_KEY"]
