"""Durable registry of configured n8n instances.

Instances are persisted as a single JSON list (insertion order) and every
mutation rewrites the full snapshot. Removing an instance awaits the
registered cascade hooks so cached workflows and statuses for that id go too.

Seeding via environment (first run only):

    N8N_INSTANCES='[
        {"name": "Dev",  "base_url": "http://localhost:5678", "api_key": "key1"},
        {"name": "Prod", "base_url": "https://n8n.example.com", "api_key": "key2"}
    ]'

or the legacy single-instance pair N8N_BASE_URL + N8N_API_KEY.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from n8n_hub.errors import DuplicateInstance, NotFound
from n8n_hub.models import Instance, default_instance_color
from n8n_hub.persistence import INSTANCES_KEY, MIGRATION_KEY, KeyValueStore

logger = logging.getLogger("n8n_hub.registry")

CascadeHook = Callable[[str], Awaitable[None]]

_EDITABLE_FIELDS = frozenset({"name", "credential", "color_tag"})


class InstanceRegistry:
    """CRUD over configured instances, backed by the shared KeyValueStore."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._cascade: list[CascadeHook] = []

    def on_remove(self, hook: CascadeHook) -> None:
        """Register a coroutine called with the instance id after removal."""
        self._cascade.append(hook)

    # ------------------------------------------------------------------
    # Snapshot I/O
    # ------------------------------------------------------------------

    async def _load(self) -> list[Instance]:
        raw = await self._store.get(INSTANCES_KEY)
        if not raw:
            return []
        try:
            data = json.loads(raw)
            return [Instance.from_dict(d) for d in data]
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError) as exc:
            logger.warning("[InstanceRegistry] Stored instance list unreadable, starting empty: %s", exc)
            return []

    async def _save(self, instances: list[Instance]) -> None:
        await self._store.set(INSTANCES_KEY, json.dumps([i.to_dict() for i in instances]))

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def list(self) -> list[Instance]:
        return await self._load()

    async def get(self, instance_id: str) -> Instance:
        for instance in await self._load():
            if instance.id == instance_id:
                return instance
        raise NotFound(f"Unknown n8n instance: {instance_id!r}")

    async def add(self, instance: Instance) -> Instance:
        instances = await self._load()
        if any(i.id == instance.id for i in instances):
            raise DuplicateInstance(f"An instance with URL {instance.base_url} already exists")
        instances.append(instance)
        await self._save(instances)
        logger.info("[InstanceRegistry] Added %r (%s)", instance.name, instance.id)
        return instance

    async def update(self, instance_id: str, **fields: Any) -> Instance:
        """Update name, credential and/or color_tag. The id never changes."""
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(
                f"Cannot update {sorted(unknown)}; remove and re-add the instance to change its URL"
            )
        instances = await self._load()
        for idx, instance in enumerate(instances):
            if instance.id == instance_id:
                changes = {k: v.strip() if isinstance(v, str) else v for k, v in fields.items() if v is not None}
                updated = replace(instance, **changes)
                instances[idx] = updated
                await self._save(instances)
                logger.info("[InstanceRegistry] Updated %r: %s", instance_id, sorted(changes))
                return updated
        raise NotFound(f"Unknown n8n instance: {instance_id!r}")

    async def remove(self, instance_id: str) -> Instance:
        instances = await self._load()
        remaining = [i for i in instances if i.id != instance_id]
        if len(remaining) == len(instances):
            raise NotFound(f"Unknown n8n instance: {instance_id!r}")
        removed = next(i for i in instances if i.id == instance_id)
        await self._save(remaining)
        for hook in self._cascade:
            await hook(instance_id)
        logger.info("[InstanceRegistry] Removed %r", instance_id)
        return removed

    # ------------------------------------------------------------------
    # Seeding / legacy migration
    # ------------------------------------------------------------------

    async def seed_from_env(self) -> list[Instance]:
        """Populate an empty registry from N8N_INSTANCES or the legacy env pair.

        Runs at most once per store; the migration marker keeps seeded
        instances from reappearing after the user deletes them.
        """
        if await self._store.get(MIGRATION_KEY):
            return []
        if await self._load():
            await self._mark_migrated(None)
            return []

        specs = _specs_from_env()
        if not specs:
            return []

        added: list[Instance] = []
        for idx, spec in enumerate(specs):
            instance = Instance.create(
                name=spec.get("name") or spec["base_url"],
                base_url=spec["base_url"],
                credential=spec.get("api_key", ""),
                color_tag=spec.get("color") or default_instance_color(idx),
            )
            try:
                added.append(await self.add(instance))
            except DuplicateInstance:
                logger.warning("[InstanceRegistry] Skipping duplicate seed entry %s", instance.base_url)
        await self._mark_migrated(specs[0]["base_url"] if len(specs) == 1 else None)
        return added

    async def _mark_migrated(self, legacy_base_url: str | None) -> None:
        state: dict[str, Any] = {
            "migrated": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if legacy_base_url:
            state["legacy_base_url"] = legacy_base_url
        await self._store.set(MIGRATION_KEY, json.dumps(state))


def _specs_from_env() -> list[dict[str, Any]]:
    raw = os.getenv("N8N_INSTANCES", "").strip()
    if raw:
        try:
            specs = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"N8N_INSTANCES must be a valid JSON array: {e}") from e
        if not isinstance(specs, list):
            raise ValueError("N8N_INSTANCES must be a valid JSON array")
        for spec in specs:
            if not isinstance(spec, dict) or not spec.get("base_url"):
                raise ValueError(f"Each N8N_INSTANCES entry must have a 'base_url': {spec!r}")
        return specs

    base_url = os.getenv("N8N_BASE_URL", "").strip()
    api_key = os.getenv("N8N_API_KEY", "").strip()
    if base_url and api_key:
        return [{"name": "Default", "base_url": base_url, "api_key": api_key}]
    return []
