"""n8n HTTP client."""

from n8n_hub.client.config import HubSettings, Settings
from n8n_hub.client.n8n_client import N8nClient, WorkflowPage

__all__ = ["HubSettings", "N8nClient", "Settings", "WorkflowPage"]
