"""Activate / deactivate a single workflow.

Activation requires at least one trigger-capable node. The local check is a
cheap precondition; the server's own validation stays authoritative, so a
400 that complains about triggers is normalized to ``NoTriggerNode`` too.
The cached WorkflowItem only changes after the server acknowledges.
"""

from __future__ import annotations

import logging

from n8n_hub.errors import FetchFailed, NoTriggerNode
from n8n_hub.instance_pool import N8nClientPool
from n8n_hub.models import WorkflowDetail, WorkflowItem, make_subtitle
from n8n_hub.registry import InstanceRegistry
from n8n_hub.workflow_cache import WorkflowCache

logger = logging.getLogger("n8n_hub.activation")

_TRIGGER_MARKERS = ("trigger", "webhook", "cron", "schedule")


def has_trigger_node(detail: WorkflowDetail) -> bool:
    return any(
        marker in node.type.lower() for node in detail.nodes for marker in _TRIGGER_MARKERS
    )


def _mentions_trigger(exc: FetchFailed) -> bool:
    return "trigger" in f"{exc} {exc.detail}".lower()


class ActivationController:
    def __init__(
        self,
        registry: InstanceRegistry,
        pool: N8nClientPool,
        cache: WorkflowCache,
    ) -> None:
        self._registry = registry
        self._pool = pool
        self._cache = cache

    async def toggle(self, item: WorkflowItem) -> WorkflowItem:
        """Flip ``item.active`` on the server and persist the acknowledged state."""
        instance = await self._registry.get(item.instance_id)
        client = self._pool.get(instance)
        target = not item.active

        if target:
            detail = await client.get_workflow(item.workflow_id)
            if not has_trigger_node(detail):
                item.has_trigger = False
                await self._cache.upsert(item)
                logger.info("[ActivationController] %s has no trigger node", item.unique_key)
                raise NoTriggerNode(
                    f"Workflow {item.title!r} has no trigger node and cannot be activated"
                )

        try:
            if target:
                await client.activate_workflow(item.workflow_id)
            else:
                await client.deactivate_workflow(item.workflow_id)
        except FetchFailed as exc:
            if target and exc.status_code == 400 and _mentions_trigger(exc):
                item.has_trigger = False
                await self._cache.upsert(item)
                raise NoTriggerNode(
                    f"n8n refused to activate {item.title!r}: {exc.detail or exc}"
                ) from exc
            raise

        item.active = target
        item.subtitle = make_subtitle(item.instance_name, target)
        if target:
            item.has_trigger = True
        await self._cache.upsert(item)
        logger.info(
            "[ActivationController] %s %s",
            item.unique_key, "activated" if target else "deactivated",
        )
        return item
