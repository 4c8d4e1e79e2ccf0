"""Per-instance n8n client pool.

One ``N8nClient`` (and therefore one httpx connection pool) per registered
instance, created lazily on first use and rebuilt whenever the instance's
endpoint or credential changes.

Usage:
    pool = N8nClientPool(timeout=30)
    client = pool.get(instance)
    ...
    await pool.close_all()
"""

from __future__ import annotations

import asyncio
import logging

from n8n_hub.client import N8nClient, Settings
from n8n_hub.models import Instance

logger = logging.getLogger("n8n_hub.instance_pool")


class N8nClientPool:
    """Pool of N8nClient instances keyed by instance ID."""

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout
        self._clients: dict[str, N8nClient] = {}
        # Last replaced client per instance; it may still serve an in-flight request.
        self._retired: dict[str, N8nClient] = {}
        self._closing: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get(self, instance: Instance) -> N8nClient:
        """Return the client for ``instance``, creating or rebuilding it as needed."""
        settings = Settings(
            api_key=instance.credential,
            api_endpoint=instance.base_url,
            timeout=self._timeout,
        )
        client = self._clients.get(instance.id)
        if client is not None and client.settings == settings:
            return client
        if client is not None:
            logger.info("N8nClientPool: settings changed for %r, rebuilding client", instance.id)
            self._retire(instance.id, client)
        client = N8nClient(settings)
        self._clients[instance.id] = client
        logger.info("N8nClientPool: registered instance %r → %s", instance.id, instance.base_url)
        return client

    async def discard(self, instance_id: str) -> None:
        for client in (self._clients.pop(instance_id, None), self._retired.pop(instance_id, None)):
            if client is not None:
                await client.close()

    @property
    def instance_ids(self) -> list[str]:
        return list(self._clients.keys())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _retire(self, instance_id: str, client: N8nClient) -> None:
        """Park ``client``; the client it supersedes in the parking slot is closed."""
        self._clients.pop(instance_id, None)
        stale = self._retired.pop(instance_id, None)
        self._retired[instance_id] = client
        if stale is not None:
            task = asyncio.get_running_loop().create_task(stale.close())
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)

    async def close_all(self) -> None:
        """Close all client connections in the pool."""
        clients = list(self._clients.items()) + [(f"{i} (retired)", c) for i, c in self._retired.items()]
        self._clients.clear()
        self._retired.clear()
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)
        for instance_id, client in clients:
            try:
                await client.close()
            except Exception as e:
                logger.warning("Error closing client %r: %s", instance_id, e)
