"""Async n8n public REST API client using httpx."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from n8n_hub.client.config import Settings
from n8n_hub.errors import FetchFailed, NotFound, ParseFailure, Unauthorized, Unreachable
from n8n_hub.models import RemoteWorkflow, WorkflowDetail

logger = logging.getLogger("n8n_hub.client")

# Settings applied to workflows created through the hub.
_NEW_WORKFLOW_SETTINGS: dict[str, Any] = {
    "saveExecutionProgress": True,
    "saveManualExecutions": True,
    "saveDataErrorExecution": "all",
    "saveDataSuccessExecution": "all",
    "executionTimeout": 3600,
}


@dataclass(frozen=True)
class WorkflowPage:
    workflows: list[RemoteWorkflow]
    next_cursor: str | None = None


class N8nClient:
    """Thin async wrapper around the n8n workflow endpoints.

    Every failure is raised as a typed ``HubError``: ``Unauthorized`` for a
    rejected credential, ``Unreachable`` for transport errors and
    ``FetchFailed`` for other non-2xx answers.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            headers=settings.headers,
            timeout=httpx.Timeout(settings.timeout, connect=10.0),
            proxy=None,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        payload: dict | None = None,
        missing_is_not_found: bool = True,
    ) -> Any:
        """Issue one call. A 404 maps to ``NotFound`` only for single-resource paths."""
        try:
            if method == "GET":
                r = await self._client.get(path, params=params)
            else:
                r = await self._client.post(path, json=payload or {})
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("%s %s -> %s", method, path, status)
            if status == 401:
                raise Unauthorized("API key is invalid.") from e
            if status == 404 and missing_is_not_found:
                raise NotFound(f"{path} not found") from e
            raise FetchFailed(
                f"HTTP {status}: {e.response.reason_phrase}",
                status_code=status,
                detail=e.response.text,
            ) from e
        except httpx.TransportError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise Unreachable(str(e) or type(e).__name__) from e

        if not r.text.strip():
            return {"success": True}
        try:
            return r.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ParseFailure(f"{method} {path} returned non-JSON body") from e

    # ==================================================================
    # SYSTEM
    # ==================================================================

    async def ping(self, timeout: float) -> httpx.Response:
        """Cheapest authenticated call; returns the raw response, never raises on status."""
        return await self._client.get(
            "/workflows", params={"limit": 1}, timeout=timeout
        )

    # ==================================================================
    # WORKFLOWS
    # ==================================================================

    async def list_workflows(
        self,
        limit: int = 50,
        cursor: str | None = None,
        name: str | None = None,
    ) -> WorkflowPage:
        params: dict[str, Any] = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        if name:
            params["name"] = name
        body = await self._request(
            "GET", "/workflows", params=params, missing_is_not_found=False
        )
        if not isinstance(body, dict) or not isinstance(body.get("data", []), list):
            raise ParseFailure("Workflow listing is missing a 'data' array")
        workflows = [RemoteWorkflow.from_api(w) for w in body.get("data", [])]
        return WorkflowPage(workflows=workflows, next_cursor=body.get("nextCursor") or None)

    async def get_workflow(self, workflow_id: str) -> WorkflowDetail:
        body = await self._request("GET", f"/workflows/{workflow_id}")
        return WorkflowDetail.from_api(body)

    async def activate_workflow(self, workflow_id: str) -> Any:
        return await self._request("POST", f"/workflows/{workflow_id}/activate")

    async def deactivate_workflow(self, workflow_id: str) -> Any:
        return await self._request("POST", f"/workflows/{workflow_id}/deactivate")

    async def create_workflow(self, name: str) -> RemoteWorkflow:
        payload: dict[str, Any] = {
            "name": name,
            "nodes": [],
            "connections": {},
            "settings": dict(_NEW_WORKFLOW_SETTINGS),
            "staticData": {},
        }
        body = await self._request(
            "POST", "/workflows", payload=payload, missing_is_not_found=False
        )
        return RemoteWorkflow.from_api(body)
