"""Multi-instance workflow aggregation.

Drives the PaginatedFetcher across every online instance, one instance at a
time, and commits the merged set to the WorkflowCache in a single write.

- An instance that is offline or fails mid-fetch is reported in ``errors``
  (keyed by instance name) and never aborts the others.
- Its previously cached workflows are carried over untouched; the workflows
  of every instance that *was* fetched are replaced wholesale, so upstream
  deletions disappear.
- The running list is compacted every ``_COMPACT_EVERY`` items to bound
  memory on very large aggregations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from n8n_hub.errors import HubError
from n8n_hub.fetcher import DEFAULT_BATCH_SIZE, PaginatedFetcher
from n8n_hub.models import WorkflowItem, dedupe
from n8n_hub.registry import InstanceRegistry
from n8n_hub.status_cache import StatusCache
from n8n_hub.workflow_cache import WorkflowCache

logger = logging.getLogger("n8n_hub.aggregator")

# Tuning knobs
_COMPACT_EVERY = 100


@dataclass
class AggregateResult:
    items: list[WorkflowItem]
    errors: dict[str, str] = field(default_factory=dict)
    reachable: int = 0
    attempted: int = 0


def format_refresh_report(result: AggregateResult) -> str:
    """Human-readable summary distinguishing total failure from an empty result."""
    if result.attempted == 0:
        return "No n8n instances configured."
    if result.reachable == 0:
        lines = ["Could not reach any n8n instance."]
        lines.extend(f"{name}: {msg}" for name, msg in result.errors.items())
        return "\n".join(lines)
    if not result.items:
        head = "No workflows found."
    else:
        head = f"Loaded {len(result.items)} workflow(s) from {result.reachable} instance(s)."
    if not result.errors:
        return head
    failures = "\n".join(f"{name}: {msg}" for name, msg in result.errors.items())
    return f"{head}\nFailed instances:\n{failures}"


class Aggregator:
    def __init__(
        self,
        registry: InstanceRegistry,
        status_cache: StatusCache,
        fetcher: PaginatedFetcher,
        cache: WorkflowCache,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._registry = registry
        self._status = status_cache
        self._fetcher = fetcher
        self._cache = cache
        self._batch_size = batch_size

    async def refresh(self, force_fresh: bool = False) -> AggregateResult:
        """Re-aggregate every instance. ``force_fresh`` re-probes all statuses first."""
        instances = await self._registry.list()
        if force_fresh and instances:
            await self._status.refresh_all(instances)

        previous = await self._cache.load() or []
        combined: list[WorkflowItem] = []
        since_compact = 0
        errors: dict[str, str] = {}
        fetched_ids: set[str] = set()

        def _on_batch(batch: list[WorkflowItem]) -> None:
            nonlocal combined, since_compact
            combined.extend(batch)
            since_compact += len(batch)
            if since_compact >= _COMPACT_EVERY:
                combined = dedupe(combined)
                since_compact = 0

        for instance in instances:
            status = await self._status.ensure_status(instance)
            if not status.is_active:
                errors[instance.name] = status.error or "Instance is offline"
                logger.warning("[Aggregator] Skipping offline instance %s: %s", instance.id, status.error)
                continue

            try:
                count = await self._fetcher.fetch_batched(instance, _on_batch, self._batch_size)
            except HubError as exc:
                # Drop this instance's partial pages; its cached items are carried over below.
                combined = [i for i in combined if i.instance_id != instance.id]
                errors[instance.name] = str(exc) or type(exc).__name__
                logger.warning("[Aggregator] %s failed: %s", instance.id, exc)
                continue
            fetched_ids.add(instance.id)
            logger.info("[Aggregator] %s: %d workflow(s)", instance.id, count)

        registered = {i.id for i in instances}
        carried = [
            item for item in previous
            if item.instance_id in registered and item.instance_id not in fetched_ids
        ]
        known_triggers = {i.unique_key: i.has_trigger for i in previous if i.has_trigger is not None}
        for item in combined:
            if item.has_trigger is None and item.unique_key in known_triggers:
                item.has_trigger = known_triggers[item.unique_key]
        items = await self._cache.save(carried + combined)

        logger.info(
            "[Aggregator] Refresh complete: %d workflow(s), %d/%d instance(s) reachable",
            len(items), len(fetched_ids), len(instances),
        )
        return AggregateResult(
            items=items,
            errors=errors,
            reachable=len(fetched_ids),
            attempted=len(instances),
        )
