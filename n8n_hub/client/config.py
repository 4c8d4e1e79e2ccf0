"""Configuration for the n8n HTTP client and the hub process."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

_AUTHORIZATION_PREFIXES = ("bearer ", "token ")


@dataclass(frozen=True)
class Settings:
    """Immutable per-instance client settings."""

    api_key: str = field(repr=False)
    api_endpoint: str = "http://localhost:5678"
    timeout: float = 30.0

    @property
    def base_url(self) -> str:
        return f"{self.api_endpoint}/api/v1"

    @property
    def headers(self) -> dict[str, str]:
        h: dict[str, str] = {"Accept": "application/json"}
        if not self.api_key:
            return h
        if self.api_key.lower().startswith(_AUTHORIZATION_PREFIXES):
            h["Authorization"] = self.api_key
        else:
            h["X-N8N-API-KEY"] = self.api_key
        return h


@dataclass(frozen=True)
class HubSettings:
    """Process-wide settings loaded from environment variables."""

    db_path: str = "n8n_hub.db"
    request_timeout: float = 30.0
    probe_timeout: float = 5.0
    probe_retries: int = 0
    batch_size: int = 50
    status_refresh_interval: float = 300.0
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> HubSettings:
        return cls(
            db_path=os.getenv("N8N_HUB_DB_PATH", "n8n_hub.db"),
            request_timeout=float(os.getenv("N8N_HUB_TIMEOUT", "30")),
            probe_timeout=float(os.getenv("N8N_HUB_PROBE_TIMEOUT", "5")),
            probe_retries=int(os.getenv("N8N_HUB_PROBE_RETRIES", "0")),
            batch_size=int(os.getenv("N8N_HUB_BATCH_SIZE", "50")),
            status_refresh_interval=float(os.getenv("N8N_HUB_STATUS_INTERVAL", "300")),
            log_level=os.getenv("N8N_HUB_LOG_LEVEL", "WARNING").upper(),
        )
