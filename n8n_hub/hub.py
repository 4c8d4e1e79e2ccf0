"""WorkflowHub: the surface UIs, the HTTP API and the CLI call into.

Constructed once per process around a single KeyValueStore and client pool;
every component receives those by reference.

Lifecycle:
    hub = await WorkflowHub.open(HubSettings.from_env())
    cached = await hub.initial_view()
    result = await hub.refresh_workflows(force_fresh=True)
    ...
    await hub.close()

Callers serialize refresh/search calls; nothing here is reentrant.
"""

from __future__ import annotations

import logging
from typing import Callable

from n8n_hub.activation import ActivationController
from n8n_hub.aggregator import AggregateResult, Aggregator
from n8n_hub.client import HubSettings
from n8n_hub.errors import NotFound
from n8n_hub.fetcher import PaginatedFetcher
from n8n_hub.instance_pool import N8nClientPool
from n8n_hub.models import (
    Instance,
    InstanceStatus,
    WorkflowItem,
    default_instance_color,
    format_workflow,
)
from n8n_hub.persistence import KeyValueStore
from n8n_hub.prober import ConnectionProber, ProbeResult
from n8n_hub.registry import InstanceRegistry
from n8n_hub.search import SearchEngine, SearchResult
from n8n_hub.status_cache import StatusCache
from n8n_hub.workflow_cache import WorkflowCache

logger = logging.getLogger("n8n_hub.hub")


class WorkflowHub:
    def __init__(self, store: KeyValueStore, settings: HubSettings | None = None) -> None:
        self.settings = settings or HubSettings()
        self.store = store
        self.pool = N8nClientPool(timeout=self.settings.request_timeout)

        self.registry = InstanceRegistry(store)
        self.prober = ConnectionProber(
            self.pool,
            timeout=self.settings.probe_timeout,
            retries=self.settings.probe_retries,
        )
        self.status_cache = StatusCache(store, self.prober)
        self.workflow_cache = WorkflowCache(store)
        self.fetcher = PaginatedFetcher(self.pool)
        self.aggregator = Aggregator(
            self.registry, self.status_cache, self.fetcher, self.workflow_cache,
            batch_size=self.settings.batch_size,
        )
        self.search_engine = SearchEngine(
            self.workflow_cache, self.registry, self.status_cache, self.fetcher,
            batch_size=self.settings.batch_size,
        )
        self.activation = ActivationController(self.registry, self.pool, self.workflow_cache)

        self.registry.on_remove(self.workflow_cache.purge_instance)
        self.registry.on_remove(self.status_cache.forget)
        self.registry.on_remove(self.pool.discard)

    @classmethod
    async def open(cls, settings: HubSettings) -> "WorkflowHub":
        store = await KeyValueStore.open(settings.db_path)
        return cls(store, settings)

    async def close(self) -> None:
        await self.pool.close_all()
        await self.store.close()

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    async def list_instances(self) -> list[Instance]:
        return await self.registry.list()

    async def add_instance(
        self,
        name: str,
        base_url: str,
        credential: str,
        color_tag: str | None = None,
    ) -> tuple[Instance, InstanceStatus]:
        """Register an instance and probe it once.

        The instance is kept even when the probe fails; the status tells the
        caller whether to warn.
        """
        if color_tag is None:
            color_tag = default_instance_color(len(await self.registry.list()))
        instance = await self.registry.add(Instance.create(name, base_url, credential, color_tag))
        status = await self.status_cache.refresh_status(instance)
        return instance, status

    async def edit_instance(self, instance_id: str, **fields) -> Instance:
        return await self.registry.update(instance_id, **fields)

    async def remove_instance(self, instance_id: str) -> Instance:
        return await self.registry.remove(instance_id)

    async def test_connection(self, instance_id: str) -> ProbeResult:
        return await self.prober.probe(await self.registry.get(instance_id))

    async def get_instance_status(self, instance_id: str) -> InstanceStatus | None:
        return await self.status_cache.get_status(instance_id)

    async def refresh_instance_status(self, instance_id: str) -> InstanceStatus:
        return await self.status_cache.refresh_status(await self.registry.get(instance_id))

    def start_auto_refresh(self, interval: float | None = None) -> Callable[[], None]:
        return self.status_cache.start_auto_refresh(
            self.registry.list,
            interval if interval is not None else self.settings.status_refresh_interval,
        )

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def initial_view(self) -> list[WorkflowItem] | None:
        """Cached workflows, or None when the first refresh has to block."""
        return await self.workflow_cache.load()

    async def refresh_workflows(self, force_fresh: bool = False) -> AggregateResult:
        return await self.aggregator.refresh(force_fresh)

    async def search(
        self,
        query: str,
        tag_filter: str | None = None,
        instance_filter: str | None = None,
        escalate: bool = False,
    ) -> SearchResult:
        return await self.search_engine.search(query, tag_filter, instance_filter, escalate)

    async def find_item(self, unique_key: str) -> WorkflowItem:
        for item in await self.workflow_cache.load() or []:
            if item.unique_key == unique_key:
                return item
        raise NotFound(f"Unknown workflow: {unique_key!r}")

    async def toggle_activation(self, item: WorkflowItem) -> WorkflowItem:
        return await self.activation.toggle(item)

    async def available_tags(self) -> list[str]:
        items = await self.workflow_cache.load() or []
        return sorted({tag for item in items for tag in item.tag_list}, key=str.lower)

    async def create_workflow(self, instance_id: str, name: str) -> tuple[WorkflowItem, str]:
        """Create an empty workflow; returns the cached item and its editor URL."""
        instance = await self.registry.get(instance_id)
        remote = await self.pool.get(instance).create_workflow(name)
        item = format_workflow(remote, instance)
        await self.workflow_cache.upsert(item)
        logger.info("[WorkflowHub] Created workflow %s on %s", item.unique_key, instance.id)
        return item, instance.workflow_url(remote.id)
