"""Error taxonomy shared by every n8n-hub component.

Multi-instance operations (probing, aggregation, remote search) collect these
per instance and keep going. Single-item operations (activation, registry
edits) raise them straight to the caller.
"""

from __future__ import annotations


class HubError(Exception):
    """Base class for all n8n-hub errors."""


class Unauthorized(HubError):
    """The instance rejected the configured credential (HTTP 401)."""


class Unreachable(HubError):
    """Network-level failure: DNS, connection refused or timeout."""


class NotFound(HubError):
    """Missing instance or workflow."""


class DuplicateInstance(HubError):
    """An instance with the same normalized base URL is already registered."""


class NoTriggerNode(HubError):
    """The workflow has no trigger-capable node and cannot be activated."""


class FetchFailed(HubError):
    """Generic non-2xx response from an instance."""

    def __init__(self, message: str, status_code: int | None = None, detail: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class ParseFailure(HubError):
    """A payload (remote JSON or a cached blob) could not be decoded."""
