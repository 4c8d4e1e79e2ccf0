"""Shared fixtures: a temp-file KeyValueStore, a wired WorkflowHub, and an
in-memory stand-in for one n8n server's API.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from n8n_hub.client import HubSettings, WorkflowPage
from n8n_hub.errors import FetchFailed, NotFound
from n8n_hub.hub import WorkflowHub
from n8n_hub.models import Instance, RemoteWorkflow, WorkflowDetail
from n8n_hub.persistence import KeyValueStore


class FakeN8nClient:
    """Serves workflows from a list with offset cursors, like /api/v1/workflows."""

    def __init__(
        self,
        workflows: list[dict] | None = None,
        *,
        ping_status: int = 200,
        ping_error: Exception | None = None,
        list_error: Exception | None = None,
        details: dict[str, dict] | None = None,
        native_search: bool = True,
    ) -> None:
        self.workflows = list(workflows or [])
        self.ping_status = ping_status
        self.ping_error = ping_error
        self.list_error = list_error
        self.details = details or {}
        self.native_search = native_search
        self.ping = AsyncMock(side_effect=self._ping)
        self.list_workflows = AsyncMock(side_effect=self._list)
        self.get_workflow = AsyncMock(side_effect=self._get)
        self.activate_workflow = AsyncMock(return_value={"active": True})
        self.deactivate_workflow = AsyncMock(return_value={"active": False})
        self.create_workflow = AsyncMock(side_effect=self._create)
        self.close = AsyncMock()

    async def _ping(self, timeout: float) -> httpx.Response:
        if self.ping_error is not None:
            raise self.ping_error
        return httpx.Response(
            self.ping_status,
            request=httpx.Request("GET", "http://n8n.test/api/v1/workflows"),
        )

    async def _list(self, limit: int = 50, cursor: str | None = None, name: str | None = None) -> WorkflowPage:
        if self.list_error is not None:
            raise self.list_error
        source = self.workflows
        if name is not None:
            if not self.native_search:
                raise FetchFailed("HTTP 400: Bad Request", status_code=400, detail="unknown query param 'name'")
            source = [w for w in source if name.lower() in w["name"].lower()]
        start = int(cursor or 0)
        end = start + limit
        page = [RemoteWorkflow.from_api(w) for w in source[start:end]]
        return WorkflowPage(page, next_cursor=str(end) if end < len(source) else None)

    async def _get(self, workflow_id: str) -> WorkflowDetail:
        if workflow_id not in self.details:
            raise NotFound(f"/workflows/{workflow_id} not found")
        return WorkflowDetail.from_api(self.details[workflow_id])

    async def _create(self, name: str) -> RemoteWorkflow:
        raw = {"id": str(len(self.workflows) + 1000), "name": name, "active": False, "tags": []}
        self.workflows.append(raw)
        return RemoteWorkflow.from_api(raw)


def make_workflows(count: int, prefix: str = "Workflow") -> list[dict[str, Any]]:
    return [
        {"id": str(i), "name": f"{prefix} {i:03d}", "active": i % 2 == 0, "tags": []}
        for i in range(count)
    ]


def make_instance(instance_id: str, name: str | None = None, base_url: str | None = None) -> Instance:
    return Instance(
        id=instance_id,
        name=name or instance_id.upper(),
        base_url=base_url or f"https://{instance_id}.co",
        credential="test-key",
        color_tag="#FF6B6B",
    )


@pytest_asyncio.fixture
async def store(tmp_path):
    kv = await KeyValueStore.open(str(tmp_path / "hub.db"))
    yield kv
    await kv.close()


@pytest_asyncio.fixture
async def hub(store):
    h = WorkflowHub(store, HubSettings(db_path=":unused:"))
    yield h
    await h.pool.close_all()


@pytest.fixture
def fake_clients(hub) -> dict[str, FakeN8nClient]:
    """Route hub.pool.get(instance) to FakeN8nClient objects keyed by instance id."""
    clients: dict[str, FakeN8nClient] = {}
    hub.pool.get = lambda instance: clients[instance.id]
    return clients
