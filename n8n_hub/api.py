"""FastAPI service exposing the WorkflowHub.

  GET    /instances                       list configured instances + status
  POST   /instances                       add an instance (probed once)
  PATCH  /instances/{id}                  rename / rotate credential / recolor
  DELETE /instances/{id}                  remove (cascades cached workflows)
  GET    /instances/{id}/status           last known status (no probe)
  POST   /instances/{id}/status           probe now
  POST   /instances/{id}/workflows        create an empty workflow
  GET    /workflows                       cached unified list
  POST   /workflows/refresh               re-aggregate all instances
  GET    /workflows/search                layered search
  POST   /workflows/{unique_key}/toggle   activate / deactivate
  GET    /tags                            tag catalogue from the cache
  GET    /health

Requests are serialized through one asyncio.Lock because the hub is not
reentrant.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field, field_validator

from n8n_hub.errors import (
    DuplicateInstance,
    FetchFailed,
    HubError,
    NoTriggerNode,
    NotFound,
    Unauthorized,
    Unreachable,
)
from n8n_hub.models import generate_instance_id

logger = logging.getLogger("n8n_hub.api")

# ---------------------------------------------------------------------------
# API key authentication (optional, enabled when N8N_HUB_API_KEY is set)
# ---------------------------------------------------------------------------

_bearer = HTTPBearer(auto_error=False)


def _verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> None:
    """If N8N_HUB_API_KEY is set, every request must carry it as a Bearer token."""
    api_key = os.getenv("N8N_HUB_API_KEY")
    if not api_key:
        return
    if not credentials or credentials.credentials != api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# ---------------------------------------------------------------------------
# Lifespan: build the hub once at startup, close it on shutdown
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        from dotenv import load_dotenv
        load_dotenv()
    except ImportError:
        pass

    from n8n_hub.client import HubSettings
    from n8n_hub.hub import WorkflowHub

    settings = HubSettings.from_env()
    hub = await WorkflowHub.open(settings)
    seeded = await hub.registry.seed_from_env()
    if seeded:
        logger.info("Seeded %d instance(s) from environment", len(seeded))

    cancel_refresh = hub.start_auto_refresh()
    app.state.hub = hub
    app.state.lock = asyncio.Lock()
    logger.info("Starting n8n-hub | db=%s", settings.db_path)

    yield

    cancel_refresh()
    await hub.close()
    logger.info("Shutting down n8n-hub")


app = FastAPI(
    title="n8n Hub API",
    description="Unified, cached and searchable view of workflows across n8n instances.",
    version="0.1.0",
    lifespan=lifespan,
)


_ERROR_STATUS: list[tuple[type[HubError], int]] = [
    (NotFound, 404),
    (DuplicateInstance, 409),
    (NoTriggerNode, 422),
    (Unauthorized, 502),
    (Unreachable, 502),
    (FetchFailed, 502),
]


@app.exception_handler(HubError)
async def _hub_error_handler(request: Request, exc: HubError) -> JSONResponse:
    status = next((code for kind, code in _ERROR_STATUS if isinstance(exc, kind)), 500)
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class AddInstanceRequest(BaseModel):
    name: str = Field(..., min_length=1, examples=["Production"])
    base_url: str = Field(..., min_length=1, examples=["https://n8n.example.com"])
    api_key: str = Field(..., description="n8n API key, or a 'Bearer …' / 'token …' header value.")
    color: str | None = Field(None, description="Hex color tag; defaults to the palette.")

    @field_validator("base_url")
    @classmethod
    def base_url_not_blank(cls, value: str) -> str:
        if not generate_instance_id(value):
            raise ValueError("base_url must contain a host")
        return value


class EditInstanceRequest(BaseModel):
    name: str | None = None
    api_key: str | None = None
    color: str | None = None


class CreateWorkflowRequest(BaseModel):
    name: str = Field(..., min_length=1)


def _instance_view(instance, status) -> dict:
    return {
        "id": instance.id,
        "name": instance.name,
        "base_url": instance.base_url,
        "color": instance.color_tag,
        "status": status.to_dict() if status else None,
    }


def _item_view(item) -> dict:
    return {**item.to_dict(), "accessory": item.accessory, "keywords": item.keywords}


def _hub(request: Request):
    return request.app.state.hub


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health", tags=["system"])
async def health() -> dict:
    return {"api": "ok"}


@app.get("/instances", tags=["instances"], dependencies=[Depends(_verify_api_key)])
async def list_instances(request: Request) -> dict:
    hub = _hub(request)
    statuses = await hub.status_cache.get_all()
    instances = await hub.list_instances()
    return {"instances": [_instance_view(i, statuses.get(i.id)) for i in instances]}


@app.post("/instances", status_code=201, tags=["instances"], dependencies=[Depends(_verify_api_key)])
async def add_instance(request: Request, body: AddInstanceRequest) -> dict:
    hub = _hub(request)
    async with request.app.state.lock:
        instance, status = await hub.add_instance(body.name, body.base_url, body.api_key, body.color)
    return _instance_view(instance, status)


@app.patch("/instances/{instance_id}", tags=["instances"], dependencies=[Depends(_verify_api_key)])
async def edit_instance(instance_id: str, request: Request, body: EditInstanceRequest) -> dict:
    hub = _hub(request)
    async with request.app.state.lock:
        instance = await hub.edit_instance(
            instance_id, name=body.name, credential=body.api_key, color_tag=body.color
        )
    return _instance_view(instance, await hub.get_instance_status(instance_id))


@app.delete("/instances/{instance_id}", tags=["instances"], dependencies=[Depends(_verify_api_key)])
async def remove_instance(instance_id: str, request: Request) -> dict:
    async with request.app.state.lock:
        removed = await _hub(request).remove_instance(instance_id)
    return {"removed": removed.id}


@app.get("/instances/{instance_id}/status", tags=["instances"], dependencies=[Depends(_verify_api_key)])
async def get_status(instance_id: str, request: Request) -> dict:
    hub = _hub(request)
    await hub.registry.get(instance_id)
    status = await hub.get_instance_status(instance_id)
    return {"status": status.to_dict() if status else None}


@app.post("/instances/{instance_id}/status", tags=["instances"], dependencies=[Depends(_verify_api_key)])
async def probe_status(instance_id: str, request: Request) -> dict:
    status = await _hub(request).refresh_instance_status(instance_id)
    return {"status": status.to_dict()}


@app.post(
    "/instances/{instance_id}/workflows",
    status_code=201,
    tags=["workflows"],
    dependencies=[Depends(_verify_api_key)],
)
async def create_workflow(instance_id: str, request: Request, body: CreateWorkflowRequest) -> dict:
    async with request.app.state.lock:
        item, url = await _hub(request).create_workflow(instance_id, body.name)
    return {"workflow": _item_view(item), "url": url}


@app.get("/workflows", tags=["workflows"], dependencies=[Depends(_verify_api_key)])
async def list_workflows(request: Request) -> dict:
    items = await _hub(request).initial_view()
    return {"cached": items is not None, "workflows": [_item_view(i) for i in items or []]}


@app.post("/workflows/refresh", tags=["workflows"], dependencies=[Depends(_verify_api_key)])
async def refresh_workflows(request: Request, force: bool = False) -> dict:
    from n8n_hub.aggregator import format_refresh_report

    async with request.app.state.lock:
        result = await _hub(request).refresh_workflows(force_fresh=force)
    return {
        "workflows": [_item_view(i) for i in result.items],
        "errors": result.errors,
        "reachable": result.reachable,
        "report": format_refresh_report(result),
    }


@app.get("/workflows/search", tags=["workflows"], dependencies=[Depends(_verify_api_key)])
async def search_workflows(
    request: Request,
    q: str = "",
    tag: str | None = None,
    instance: str | None = None,
    escalate: bool = False,
) -> dict:
    async with request.app.state.lock:
        result = await _hub(request).search(q, tag, instance, escalate)
    return {
        "tier": result.tier,
        "workflows": [_item_view(i) for i in result.items],
        "errors": result.errors,
    }


@app.post("/workflows/{unique_key}/toggle", tags=["workflows"], dependencies=[Depends(_verify_api_key)])
async def toggle_workflow(unique_key: str, request: Request) -> dict:
    hub = _hub(request)
    async with request.app.state.lock:
        item = await hub.toggle_activation(await hub.find_item(unique_key))
    return {"workflow": _item_view(item)}


@app.get("/tags", tags=["workflows"], dependencies=[Depends(_verify_api_key)])
async def list_tags(request: Request) -> dict:
    return {"tags": await _hub(request).available_tags()}
