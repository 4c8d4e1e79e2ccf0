"""Persisted per-instance liveness, with an optional background refresher.

Statuses live in one blob: ``{instance_id: InstanceStatus}``. ``get_status``
never probes; ``refresh_status`` and ``refresh_all`` do, then persist.
``start_auto_refresh`` is the hub's only long-lived background task.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from n8n_hub.models import Instance, InstanceStatus
from n8n_hub.persistence import STATUS_KEY, KeyValueStore
from n8n_hub.prober import ConnectionProber

logger = logging.getLogger("n8n_hub.status_cache")

STATUS_REFRESH_INTERVAL = 300.0  # seconds


class StatusCache:
    def __init__(self, store: KeyValueStore, prober: ConnectionProber) -> None:
        self._store = store
        self._prober = prober
        self._refresh_in_flight = False

    # ------------------------------------------------------------------
    # Blob I/O
    # ------------------------------------------------------------------

    async def _load_all(self) -> dict[str, InstanceStatus]:
        raw = await self._store.get(STATUS_KEY)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
            return {k: InstanceStatus.from_dict(v) for k, v in data.items()}
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError) as exc:
            logger.warning("[StatusCache] Stored status map unreadable, treating as empty: %s", exc)
            return {}

    async def _save_all(self, statuses: dict[str, InstanceStatus]) -> None:
        await self._store.set(
            STATUS_KEY, json.dumps({k: v.to_dict() for k, v in statuses.items()})
        )

    async def _probe(self, instance: Instance) -> InstanceStatus:
        result = await self._prober.probe(instance)
        return InstanceStatus(
            instance_id=instance.id,
            is_active=result.success,
            last_checked=datetime.now(timezone.utc).isoformat(),
            error=None if result.success else result.message,
        )

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def get_status(self, instance_id: str) -> InstanceStatus | None:
        return (await self._load_all()).get(instance_id)

    async def get_all(self) -> dict[str, InstanceStatus]:
        return await self._load_all()

    async def refresh_status(self, instance: Instance) -> InstanceStatus:
        status = await self._probe(instance)
        statuses = await self._load_all()
        statuses[instance.id] = status
        await self._save_all(statuses)
        return status

    async def ensure_status(self, instance: Instance) -> InstanceStatus:
        """Cached status, probing only when the instance has never been checked."""
        status = await self.get_status(instance.id)
        if status is None:
            status = await self.refresh_status(instance)
        return status

    async def refresh_all(self, instances: list[Instance]) -> dict[str, InstanceStatus]:
        """Probe every instance one after another, then persist in one write."""
        self._refresh_in_flight = True
        try:
            fresh: dict[str, InstanceStatus] = {}
            for instance in instances:
                fresh[instance.id] = await self._probe(instance)
            statuses = await self._load_all()
            statuses.update(fresh)
            await self._save_all(statuses)
        finally:
            self._refresh_in_flight = False
        online = sum(1 for s in fresh.values() if s.is_active)
        logger.info("[StatusCache] Refreshed %d instance(s): %d online", len(fresh), online)
        return fresh

    async def forget(self, instance_id: str) -> None:
        statuses = await self._load_all()
        if statuses.pop(instance_id, None) is not None:
            await self._save_all(statuses)

    # ------------------------------------------------------------------
    # Background refresh
    # ------------------------------------------------------------------

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_in_flight

    def start_auto_refresh(
        self,
        instances: list[Instance] | Callable[[], Awaitable[list[Instance]]],
        interval: float = STATUS_REFRESH_INTERVAL,
    ) -> Callable[[], None]:
        """Schedule refresh_all every ``interval`` seconds.

        ``instances`` is either a fixed list or an async callable returning
        the current list (so registry edits are picked up between ticks).
        A tick is skipped while another refresh_all is still running.
        Returns a disposer that cancels the timer; calling it twice is fine.
        """

        async def _current() -> list[Instance]:
            if callable(instances):
                return await instances()
            return instances

        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval)
                if self._refresh_in_flight:
                    logger.debug("[StatusCache] Previous refresh still running; skipping tick")
                    continue
                try:
                    await self.refresh_all(await _current())
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.warning("[StatusCache] Auto-refresh tick failed: %s", exc)

        task = asyncio.create_task(_loop(), name="n8n-hub-status-refresh")

        def cancel() -> None:
            if not task.done():
                task.cancel()

        return cancel
