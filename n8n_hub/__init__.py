"""n8n-hub: aggregate, cache, search and toggle workflows across n8n instances."""

from n8n_hub.hub import WorkflowHub

__all__ = ["WorkflowHub"]
