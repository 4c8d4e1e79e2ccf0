"""Cursor-paginated workflow retrieval from one instance.

Each page is formatted into WorkflowItems and handed to ``on_batch`` right
away; the fetcher itself never holds more than one page.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from n8n_hub.instance_pool import N8nClientPool
from n8n_hub.models import Instance, WorkflowItem, format_workflow

logger = logging.getLogger("n8n_hub.fetcher")

# Tuning knobs
DEFAULT_BATCH_SIZE = 50
_THROTTLE_AFTER = 500  # records fetched before inter-page delays kick in
_THROTTLE_DELAY = 0.1  # seconds

BatchCallback = Callable[[list[WorkflowItem]], Union[None, Awaitable[None]]]


class PaginatedFetcher:
    def __init__(
        self,
        pool: N8nClientPool,
        throttle_after: int = _THROTTLE_AFTER,
        throttle_delay: float = _THROTTLE_DELAY,
    ) -> None:
        self._pool = pool
        self._throttle_after = throttle_after
        self._throttle_delay = throttle_delay

    async def fetch_batched(
        self,
        instance: Instance,
        on_batch: BatchCallback,
        batch_size: int = DEFAULT_BATCH_SIZE,
        name: str | None = None,
    ) -> int:
        """Stream every workflow of ``instance`` through ``on_batch``.

        Returns the number of records delivered. Raises ``Unauthorized``,
        ``FetchFailed`` or ``Unreachable``; there are no retries.
        ``name`` passes through to the server-side name filter.
        """
        client = self._pool.get(instance)
        total = 0
        cursor: str | None = None
        pages = 0

        while True:
            if total >= self._throttle_after and pages > 0:
                await asyncio.sleep(self._throttle_delay)

            page = await client.list_workflows(limit=batch_size, cursor=cursor, name=name)
            pages += 1
            batch = [format_workflow(w, instance) for w in page.workflows]
            if batch:
                result: Any = on_batch(batch)
                if inspect.isawaitable(result):
                    await result
            total += len(batch)

            if len(page.workflows) < batch_size or not page.next_cursor:
                break
            cursor = page.next_cursor

        logger.debug("[PaginatedFetcher] %s: %d workflow(s) in %d page(s)", instance.id, total, pages)
        return total
