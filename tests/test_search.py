"""Layered search: local substring, fuzzy ranking, remote fallback."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from n8n_hub.errors import Unreachable
from n8n_hub.models import RemoteWorkflow, format_workflow
from n8n_hub.search import (
    TIER_FUZZY,
    TIER_LOCAL,
    TIER_NONE,
    TIER_REMOTE,
    fuzzy_rank,
    fuzzy_threshold,
    local_filter,
    score_item,
    secondary_cutoff,
)

from conftest import FakeN8nClient, make_instance

_SERVER_A = [
    {"id": "1", "name": "Invoice Sync", "active": True, "tags": [{"name": "finance"}]},
    {"id": "2", "name": "Payroll Export", "active": False, "tags": [{"name": "hr"}]},
    {"id": "3", "name": "Invoice Archive", "active": False, "tags": []},
    {"id": "4", "name": "zzz nightly cleanup", "active": False, "tags": []},
]


def _items(instance_id: str = "a", rows=None):
    inst = make_instance(instance_id)
    return [format_workflow(RemoteWorkflow.from_api(r), inst) for r in rows or _SERVER_A[:2]]


async def _seed(hub, fake_clients, **client_kwargs):
    """Register instance 'a' serving _SERVER_A; cache only holds its first two workflows."""
    await hub.registry.add(make_instance("a"))
    fake_clients["a"] = FakeN8nClient(_SERVER_A, **client_kwargs)
    await hub.workflow_cache.save(_items())


# ---------------------------------------------------------------------------
# Pure ranking helpers
# ---------------------------------------------------------------------------


class TestThresholds:
    def test_threshold_never_decreases_with_length(self):
        values = [fuzzy_threshold(n) for n in range(0, 40)]
        assert values == sorted(values)
        assert max(values) == 0.6

    def test_short_queries_are_strict(self):
        assert fuzzy_threshold(1) == pytest.approx(0.35)
        assert secondary_cutoff(1) == 0.4
        assert secondary_cutoff(2) == 0.4
        assert secondary_cutoff(3) == 0.8


class TestScoring:
    def test_exact_title_is_perfect(self):
        (item,) = _items(rows=[_SERVER_A[0]])
        assert score_item(item, "Invoice Sync") == 0.0

    def test_tag_match_weighted_below_title(self):
        (item,) = _items(rows=[{"id": "9", "name": "Unrelated", "tags": [{"name": "billing"}]}])
        assert score_item(item, "billing") == pytest.approx(1 - 0.7)

    def test_typo_ranks_target_first(self):
        items = _items()
        ranked = fuzzy_rank(items, "invoce")
        assert [i.title for i, _ in ranked] == ["Invoice Sync"]

    def test_rank_is_best_first(self):
        items = _items(rows=[
            {"id": "1", "name": "Daily report"},
            {"id": "2", "name": "report"},
        ])
        ranked = fuzzy_rank(items, "report")
        scores = [s for _, s in ranked]
        assert scores == sorted(scores)


class TestLocalFilter:
    def test_case_insensitive_over_title_tags_instance(self):
        items = _items()
        assert [i.title for i in local_filter(items, "INVOICE")] == ["Invoice Sync"]
        assert [i.title for i in local_filter(items, "hr")] == ["Payroll Export"]
        assert len(local_filter(items, "A")) == 2

    def test_selectors(self):
        items = _items() + _items("b")
        assert {i.instance_id for i in local_filter(items, "", instance_filter="b")} == {"b"}
        assert [i.unique_key for i in local_filter(items, "", tag_filter="finance")] == ["a:1", "b:1"]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TestSearchEngine:
    @pytest.mark.asyncio
    async def test_empty_query_returns_scope(self, hub, fake_clients):
        await _seed(hub, fake_clients)
        result = await hub.search("  ")
        assert result.tier == TIER_LOCAL
        assert [i.title for i in result.items] == ["Invoice Sync", "Payroll Export"]

    @pytest.mark.asyncio
    async def test_empty_query_without_cache(self, hub):
        result = await hub.search("")
        assert result.tier == TIER_NONE
        assert result.items == []

    @pytest.mark.asyncio
    async def test_local_tier_wins(self, hub, fake_clients):
        await _seed(hub, fake_clients)
        result = await hub.search("invoice")
        assert result.tier == TIER_LOCAL
        assert [i.title for i in result.items] == ["Invoice Sync"]
        fake_clients["a"].list_workflows.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fuzzy_tier_on_typo(self, hub, fake_clients):
        await _seed(hub, fake_clients)
        result = await hub.search("invoce")
        assert result.tier == TIER_FUZZY
        assert [i.title for i in result.items] == ["Invoice Sync"]
        fake_clients["a"].list_workflows.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fuzzy_failure_falls_back_to_substring(self, hub):
        items = _items()
        with patch("n8n_hub.search.fuzzy_rank", side_effect=RuntimeError("index blew up")):
            found = hub.search_engine._fuzzy(items, "payroll")
        assert [i.title for i in found] == ["Payroll Export"]

    @pytest.mark.asyncio
    async def test_remote_tier_merges_into_cache(self, hub, fake_clients):
        await _seed(hub, fake_clients)
        result = await hub.search("zzz")
        assert result.tier == TIER_REMOTE
        assert [i.unique_key for i in result.items] == ["a:4"]
        cached = {i.unique_key for i in await hub.workflow_cache.load()}
        assert cached == {"a:1", "a:2", "a:4"}

    @pytest.mark.asyncio
    async def test_remote_without_server_name_filter(self, hub, fake_clients):
        await _seed(hub, fake_clients, native_search=False)
        result = await hub.search("zzz")
        assert result.tier == TIER_REMOTE
        assert [i.unique_key for i in result.items] == ["a:4"]
        assert result.errors == {}

    @pytest.mark.asyncio
    async def test_remote_matches_any_query_part(self, hub, fake_clients):
        await _seed(hub, fake_clients, native_search=False)
        result = await hub.search("qqq cleanup")
        assert [i.unique_key for i in result.items] == ["a:4"]

    @pytest.mark.asyncio
    async def test_nothing_anywhere(self, hub, fake_clients):
        await _seed(hub, fake_clients)
        result = await hub.search("qqqqqq")
        assert result.tier == TIER_NONE
        assert result.items == []

    @pytest.mark.asyncio
    async def test_remote_failure_reported_per_instance(self, hub, fake_clients):
        await _seed(hub, fake_clients)
        await hub.registry.add(make_instance("b"))
        fake_clients["b"] = FakeN8nClient(list_error=Unreachable("connection reset"))
        result = await hub.search("zzz")
        assert [i.unique_key for i in result.items] == ["a:4"]
        assert result.errors == {"B": "connection reset"}

    @pytest.mark.asyncio
    async def test_remote_respects_instance_filter(self, hub, fake_clients):
        await _seed(hub, fake_clients)
        await hub.registry.add(make_instance("b"))
        fake_clients["b"] = FakeN8nClient([{"id": "7", "name": "zzz other"}])
        result = await hub.search("zzz", instance_filter="b")
        assert [i.unique_key for i in result.items] == ["b:7"]
        fake_clients["a"].list_workflows.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_offline_instance_skipped_remotely(self, hub, fake_clients):
        import httpx

        await _seed(hub, fake_clients, ping_error=httpx.ConnectError("Connection refused"))
        result = await hub.search("zzz")
        assert result.items == []
        fake_clients["a"].list_workflows.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_escalate_unions_every_tier(self, hub, fake_clients):
        await _seed(hub, fake_clients)
        result = await hub.search("invoice", escalate=True)
        assert result.tier == TIER_LOCAL
        assert [i.title for i in result.items] == ["Invoice Archive", "Invoice Sync"]

    @pytest.mark.asyncio
    async def test_tag_filter_applies_to_remote(self, hub, fake_clients):
        await _seed(hub, fake_clients)
        result = await hub.search("zzz", tag_filter="finance")
        assert result.items == []
