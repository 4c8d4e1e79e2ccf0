"""Data model: instance ids, palette, remote payload coercion, WorkflowItem."""

from __future__ import annotations

import pytest

from n8n_hub.errors import ParseFailure
from n8n_hub.models import (
    DEFAULT_INSTANCE_COLORS,
    Instance,
    RemoteWorkflow,
    WorkflowDetail,
    WorkflowItem,
    dedupe,
    default_instance_color,
    format_workflow,
    generate_instance_id,
    sort_by_title,
    status_icon,
    InstanceStatus,
)


# ---------------------------------------------------------------------------
# generate_instance_id
# ---------------------------------------------------------------------------


class TestGenerateInstanceId:
    def test_known_values(self):
        assert generate_instance_id("https://n8n.example.com") == "https_n8n_example_com"
        assert generate_instance_id("http://localhost:5678") == "http_localhost_5678"

    @pytest.mark.parametrize(
        "variant",
        [
            "https://n8n.example.com/",
            "https://n8n.example.com////",
            "HTTPS://N8N.Example.com",
            "  https://n8n.example.com/  ",
        ],
    )
    def test_idempotent_across_slashes_and_case(self, variant):
        assert generate_instance_id(variant) == generate_instance_id("https://n8n.example.com")

    def test_rederiving_is_stable(self):
        once = generate_instance_id("https://example.com/n8n/")
        assert generate_instance_id(once) == once

    def test_no_leading_or_trailing_separator(self):
        assert generate_instance_id("--https://x.io--") == "https_x_io"

    def test_path_is_part_of_identity(self):
        assert generate_instance_id("https://example.com/a") != generate_instance_id("https://example.com/b")


class TestInstance:
    def test_create_normalizes(self):
        inst = Instance.create(" Prod ", "https://n8n.example.com/", " key ")
        assert inst.id == "https_n8n_example_com"
        assert inst.base_url == "https://n8n.example.com"
        assert inst.name == "Prod"
        assert inst.credential == "key"

    def test_urls(self):
        inst = Instance.create("P", "https://example.com/n8n/", "k")
        assert inst.api_url == "https://example.com/n8n/api/v1"
        assert inst.workflow_url("workflow@123") == "https://example.com/n8n/workflow/workflow@123"

    def test_credential_hidden_from_repr(self):
        inst = Instance.create("P", "https://x.io", "super-secret")
        assert "super-secret" not in repr(inst)

    def test_dict_round_trip(self):
        inst = Instance.create("P", "https://x.io", "k", "#000000")
        assert Instance.from_dict(inst.to_dict()) == inst

    @pytest.mark.parametrize("base_url", ["   ", "///", " / "])
    def test_create_rejects_blank_base_url(self, base_url):
        with pytest.raises(ValueError, match="base_url must not be empty"):
            Instance.create("P", base_url, "k")


class TestDefaultColors:
    def test_sequence(self):
        assert default_instance_color(0) == DEFAULT_INSTANCE_COLORS[0]
        assert default_instance_color(1) == DEFAULT_INSTANCE_COLORS[1]

    def test_wraps(self):
        n = len(DEFAULT_INSTANCE_COLORS)
        assert default_instance_color(n) == DEFAULT_INSTANCE_COLORS[0]
        assert default_instance_color(n + 1) == DEFAULT_INSTANCE_COLORS[1]

    def test_negative(self):
        n = len(DEFAULT_INSTANCE_COLORS)
        assert default_instance_color(-1) == DEFAULT_INSTANCE_COLORS[-1]
        assert default_instance_color(-n) == DEFAULT_INSTANCE_COLORS[0]

    def test_large(self):
        assert default_instance_color(2**53 - 1) in DEFAULT_INSTANCE_COLORS


# ---------------------------------------------------------------------------
# Remote payloads
# ---------------------------------------------------------------------------


class TestRemoteWorkflow:
    def test_tag_objects_flattened(self):
        wf = RemoteWorkflow.from_api(
            {"id": 7, "name": "X", "active": True, "tags": [{"id": "1", "name": "ops"}, {"name": "crm"}]}
        )
        assert wf.id == "7"
        assert wf.tags == ["ops", "crm"]

    def test_missing_tags_and_active(self):
        wf = RemoteWorkflow.from_api({"id": "1", "name": "X"})
        assert wf.tags == []
        assert wf.active is False

    @pytest.mark.parametrize("raw", [None, "text", {"name": "no id"}])
    def test_malformed(self, raw):
        with pytest.raises(ParseFailure):
            RemoteWorkflow.from_api(raw)


class TestWorkflowDetail:
    def test_nodes(self):
        detail = WorkflowDetail.from_api(
            {"id": "1", "name": "X", "active": False,
             "nodes": [{"name": "Hook", "type": "n8n-nodes-base.webhook"}, "junk"]}
        )
        assert [n.type for n in detail.nodes] == ["n8n-nodes-base.webhook"]

    def test_nodes_not_list(self):
        with pytest.raises(ParseFailure):
            WorkflowDetail.from_api({"id": "1", "nodes": {"a": 1}})


# ---------------------------------------------------------------------------
# WorkflowItem
# ---------------------------------------------------------------------------


def _instance():
    return Instance(id="a", name="Test Instance", base_url="https://a.co", credential="k", color_tag="#FF0000")


class TestFormatWorkflow:
    def test_scenario_inactive(self):
        item = format_workflow(
            RemoteWorkflow.from_api({"id": "1", "name": "Invoice Sync", "active": False, "tags": []}),
            _instance(),
        )
        assert item.unique_key == "a:1"
        assert "Inactive" in item.subtitle
        assert item.accessory == "No Tags"
        assert item.has_trigger is None

    def test_full_shape(self):
        item = format_workflow(
            RemoteWorkflow.from_api(
                {"id": "123", "name": "Test Workflow", "active": True,
                 "tags": [{"name": "tag1"}, {"name": "tag2"}]}
            ),
            _instance(),
        )
        assert item.subtitle == "Test Instance • Active"
        assert item.accessory == "tag1, tag2"
        assert item.keywords == ["Test Instance", "tag1", "tag2"]
        assert item.instance_color == "#FF0000"

    def test_to_from_dict(self):
        item = format_workflow(RemoteWorkflow("9", "Nine", True, ["x"]), _instance())
        assert WorkflowItem.from_dict(item.to_dict()) == item

    def test_from_dict_malformed(self):
        with pytest.raises(ParseFailure):
            WorkflowItem.from_dict({"title": "missing keys"})


class TestListHelpers:
    def test_sort_case_insensitive(self):
        inst = _instance()
        items = [format_workflow(RemoteWorkflow(str(i), n), inst) for i, n in enumerate(["beta", "Alpha", "gamma"])]
        assert [i.title for i in sort_by_title(items)] == ["Alpha", "beta", "gamma"]

    def test_dedupe_last_wins(self):
        inst = _instance()
        first = format_workflow(RemoteWorkflow("1", "Old"), inst)
        second = format_workflow(RemoteWorkflow("1", "New"), inst)
        result = dedupe([first, second])
        assert len(result) == 1
        assert result[0].title == "New"

    def test_status_icon(self):
        assert status_icon(None) == "❓"
        assert status_icon(InstanceStatus("a", True, "t")) == "🟢"
        assert status_icon(InstanceStatus("a", False, "t", "down")) == "🔴"
