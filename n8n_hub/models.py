"""Data model for instances, remote workflows and the unified WorkflowItem.

Remote JSON is coerced into explicit dataclasses at the API boundary
(``RemoteWorkflow.from_api``, ``WorkflowDetail.from_api``) so business logic
never inspects loose dicts.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any

from n8n_hub.errors import ParseFailure

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

DEFAULT_INSTANCE_COLORS: tuple[str, ...] = (
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#96CEB4",
    "#FFEEAD",
    "#D4A5A5",
    "#9B59B6",
    "#3498DB",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_base_url(base_url: str) -> str:
    """Trim whitespace and trailing slashes."""
    return base_url.strip().rstrip("/")


def generate_instance_id(base_url: str) -> str:
    """Derive a stable instance id from a base URL.

    ``https://n8n.example.com/`` and ``HTTPS://N8N.example.com`` both map to
    ``https_n8n_example_com``.
    """
    cleaned = normalize_base_url(base_url).lower()
    return _NON_ALNUM_RE.sub("_", cleaned).strip("_")


def default_instance_color(index: int) -> str:
    """Pick a palette color by position, wrapping in both directions."""
    return DEFAULT_INSTANCE_COLORS[index % len(DEFAULT_INSTANCE_COLORS)]


def sort_by_title(items: list["WorkflowItem"]) -> list["WorkflowItem"]:
    return sorted(items, key=lambda item: item.title.lower())


def dedupe(items: list["WorkflowItem"]) -> list["WorkflowItem"]:
    """Collapse items sharing a unique_key; the last occurrence wins."""
    by_key: dict[str, WorkflowItem] = {}
    for item in items:
        by_key.pop(item.unique_key, None)
        by_key[item.unique_key] = item
    return list(by_key.values())


# ---------------------------------------------------------------------------
# Instances
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Instance:
    """One configured n8n server."""

    id: str
    name: str
    base_url: str
    credential: str = field(repr=False)
    color_tag: str = DEFAULT_INSTANCE_COLORS[0]

    @classmethod
    def create(
        cls, name: str, base_url: str, credential: str, color_tag: str | None = None
    ) -> Instance:
        base = normalize_base_url(base_url)
        instance_id = generate_instance_id(base)
        if not instance_id:
            raise ValueError(f"base_url must not be empty: {base_url!r}")
        return cls(
            id=instance_id,
            name=name.strip(),
            base_url=base,
            credential=credential.strip(),
            color_tag=color_tag or DEFAULT_INSTANCE_COLORS[0],
        )

    @property
    def api_url(self) -> str:
        return f"{self.base_url}/api/v1"

    def workflow_url(self, workflow_id: str) -> str:
        return f"{self.base_url}/workflow/{workflow_id}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Instance:
        base = normalize_base_url(data["base_url"])
        return cls(
            id=data.get("id") or generate_instance_id(base),
            name=data["name"],
            base_url=base,
            credential=data.get("credential", ""),
            color_tag=data.get("color_tag") or DEFAULT_INSTANCE_COLORS[0],
        )


@dataclass(frozen=True)
class InstanceStatus:
    instance_id: str
    is_active: bool
    last_checked: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstanceStatus:
        return cls(
            instance_id=data["instance_id"],
            is_active=bool(data["is_active"]),
            last_checked=data["last_checked"],
            error=data.get("error"),
        )


def status_icon(status: InstanceStatus | None) -> str:
    if status is None:
        return "❓"
    return "🟢" if status.is_active else "🔴"


# ---------------------------------------------------------------------------
# Remote payloads
# ---------------------------------------------------------------------------


def _tag_names(raw_tags: Any) -> list[str]:
    names: list[str] = []
    for tag in raw_tags or []:
        if isinstance(tag, dict):
            name = tag.get("name")
        else:
            name = tag
        if name:
            names.append(str(name))
    return names


@dataclass(frozen=True)
class RemoteWorkflow:
    """A workflow summary as listed by one instance."""

    id: str
    name: str
    active: bool = False
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, raw: Any) -> RemoteWorkflow:
        if not isinstance(raw, dict) or raw.get("id") is None:
            raise ParseFailure(f"Unexpected workflow payload: {raw!r:.200}")
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name") or ""),
            active=bool(raw.get("active", False)),
            tags=_tag_names(raw.get("tags")),
        )


@dataclass(frozen=True)
class WorkflowNode:
    name: str
    type: str


@dataclass(frozen=True)
class WorkflowDetail:
    """Full workflow definition, including its node list."""

    id: str
    name: str
    active: bool
    nodes: list[WorkflowNode] = field(default_factory=list)

    @classmethod
    def from_api(cls, raw: Any) -> WorkflowDetail:
        if not isinstance(raw, dict) or raw.get("id") is None:
            raise ParseFailure(f"Unexpected workflow detail payload: {raw!r:.200}")
        raw_nodes = raw.get("nodes") or []
        if not isinstance(raw_nodes, list):
            raise ParseFailure("Workflow 'nodes' is not a list")
        nodes = [
            WorkflowNode(name=str(n.get("name") or ""), type=str(n.get("type") or ""))
            for n in raw_nodes
            if isinstance(n, dict)
        ]
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name") or ""),
            active=bool(raw.get("active", False)),
            nodes=nodes,
        )


# ---------------------------------------------------------------------------
# Unified record
# ---------------------------------------------------------------------------


def make_subtitle(instance_name: str, active: bool) -> str:
    return f"{instance_name} • {'Active' if active else 'Inactive'}"


@dataclass
class WorkflowItem:
    """Cache-resident view of one workflow scoped to one instance."""

    unique_key: str
    workflow_id: str
    instance_id: str
    instance_name: str
    instance_color: str
    title: str
    subtitle: str
    tag_list: list[str] = field(default_factory=list)
    active: bool = False
    has_trigger: bool | None = None

    @property
    def keywords(self) -> list[str]:
        return [self.instance_name, *self.tag_list]

    @property
    def accessory(self) -> str:
        return ", ".join(self.tag_list) if self.tag_list else "No Tags"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowItem:
        try:
            return cls(
                unique_key=data["unique_key"],
                workflow_id=data["workflow_id"],
                instance_id=data["instance_id"],
                instance_name=data["instance_name"],
                instance_color=data.get("instance_color", DEFAULT_INSTANCE_COLORS[0]),
                title=data["title"],
                subtitle=data["subtitle"],
                tag_list=list(data.get("tag_list") or []),
                active=bool(data.get("active", False)),
                has_trigger=data.get("has_trigger"),
            )
        except (KeyError, TypeError) as exc:
            raise ParseFailure(f"Malformed cached workflow: {exc}") from exc


def format_workflow(workflow: RemoteWorkflow, instance: Instance) -> WorkflowItem:
    return WorkflowItem(
        unique_key=f"{instance.id}:{workflow.id}",
        workflow_id=workflow.id,
        instance_id=instance.id,
        instance_name=instance.name,
        instance_color=instance.color_tag,
        title=workflow.name,
        subtitle=make_subtitle(instance.name, workflow.active),
        tag_list=list(workflow.tags),
        active=workflow.active,
    )
