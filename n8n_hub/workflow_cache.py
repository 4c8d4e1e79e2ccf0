"""Persisted unified workflow list.

The only state read at start-up before any network activity. A missing or
corrupt blob is treated as "no cache" and never raises.
"""

from __future__ import annotations

import json
import logging

from n8n_hub.errors import ParseFailure
from n8n_hub.models import WorkflowItem, dedupe, sort_by_title
from n8n_hub.persistence import WORKFLOWS_KEY, KeyValueStore

logger = logging.getLogger("n8n_hub.workflow_cache")


class WorkflowCache:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def load(self) -> list[WorkflowItem] | None:
        raw = await self._store.get(WORKFLOWS_KEY)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ParseFailure("cached workflow blob is not a list")
            return [WorkflowItem.from_dict(d) for d in data]
        except (json.JSONDecodeError, ParseFailure, AttributeError) as exc:
            logger.warning("[WorkflowCache] Discarding unreadable cache: %s", exc)
            return None

    async def save(self, items: list[WorkflowItem]) -> list[WorkflowItem]:
        """Deduplicate, sort and persist. Returns what was written."""
        ordered = sort_by_title(dedupe(items))
        await self._store.set(WORKFLOWS_KEY, json.dumps([i.to_dict() for i in ordered]))
        return ordered

    async def clear(self) -> None:
        await self._store.delete(WORKFLOWS_KEY)

    async def merge(self, items: list[WorkflowItem]) -> list[WorkflowItem]:
        """Add or update ``items`` by unique_key without pruning anything."""
        existing = await self.load() or []
        return await self.save(existing + items)

    async def upsert(self, item: WorkflowItem) -> list[WorkflowItem]:
        return await self.merge([item])

    async def purge_instance(self, instance_id: str) -> None:
        existing = await self.load()
        if not existing:
            return
        kept = [i for i in existing if i.instance_id != instance_id]
        if len(kept) != len(existing):
            await self.save(kept)
            logger.info(
                "[WorkflowCache] Purged %d workflow(s) of %r", len(existing) - len(kept), instance_id
            )
