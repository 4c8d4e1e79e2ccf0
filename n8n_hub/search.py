"""Layered workflow search.

Tiers, tried in order; the first non-empty tier wins unless ``escalate`` is
set, in which case every tier runs and the results are unioned:

  1. local:  case-insensitive substring over title, tags and instance name.
  2. fuzzy:  weighted multi-field ranking (difflib partial ratios) with a
             threshold that tightens for short queries. Never raises; any
             failure falls back to the substring match.
  3. remote: for every online instance: the server-side name filter, then a
             full streamed scan accepting an item when *any* whitespace part
             of the query matches. Hits are merged into the WorkflowCache.

Every tier honors the tag/instance selectors, deduplicates by unique_key and
returns items sorted by title.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from difflib import SequenceMatcher

from n8n_hub.errors import FetchFailed, HubError
from n8n_hub.fetcher import DEFAULT_BATCH_SIZE, PaginatedFetcher
from n8n_hub.models import WorkflowItem, dedupe, sort_by_title
from n8n_hub.registry import InstanceRegistry
from n8n_hub.status_cache import StatusCache
from n8n_hub.workflow_cache import WorkflowCache

logger = logging.getLogger("n8n_hub.search")

# Relative importance of each searchable field; title matches count most.
FIELD_WEIGHTS: dict[str, float] = {
    "title": 1.0,
    "instance_name": 0.8,
    "tags": 0.7,
    "subtitle": 0.5,
}

TIER_LOCAL = "local"
TIER_FUZZY = "fuzzy"
TIER_REMOTE = "remote"
TIER_NONE = "none"


@dataclass
class SearchResult:
    items: list[WorkflowItem]
    tier: str = TIER_NONE
    errors: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Tier 1: substring
# ---------------------------------------------------------------------------


def apply_selectors(
    items: list[WorkflowItem],
    tag_filter: str | None = None,
    instance_filter: str | None = None,
) -> list[WorkflowItem]:
    return [
        item for item in items
        if (not tag_filter or tag_filter in item.tag_list)
        and (not instance_filter or item.instance_id == instance_filter)
    ]


def _substring_match(item: WorkflowItem, needle: str) -> bool:
    return (
        needle in item.title.lower()
        or needle in item.instance_name.lower()
        or any(needle in tag.lower() for tag in item.tag_list)
    )


def local_filter(
    items: list[WorkflowItem],
    query: str,
    tag_filter: str | None = None,
    instance_filter: str | None = None,
) -> list[WorkflowItem]:
    scoped = apply_selectors(items, tag_filter, instance_filter)
    needle = query.strip().lower()
    if not needle:
        return sort_by_title(dedupe(scoped))
    return sort_by_title(dedupe([i for i in scoped if _substring_match(i, needle)]))


# ---------------------------------------------------------------------------
# Tier 2: fuzzy ranking
# ---------------------------------------------------------------------------


def fuzzy_threshold(query_length: int) -> float:
    """Maximum accepted score (0 = perfect). Short queries must match tighter."""
    return min(0.6, 0.3 + 0.05 * query_length)


def secondary_cutoff(query_length: int) -> float:
    return 0.4 if query_length <= 2 else 0.8


def _partial_ratio(matcher: SequenceMatcher, query: str, text: str) -> float:
    """Best similarity between ``query`` and any same-length window of ``text``."""
    text = text.lower()
    if not text:
        return 0.0
    if query in text:
        return 1.0
    n = len(query)
    if len(text) <= n:
        matcher.set_seq1(text)
        return matcher.ratio()
    best = 0.0
    for start in range(len(text) - n + 1):
        matcher.set_seq1(text[start:start + n])
        best = max(best, matcher.ratio())
        if best == 1.0:
            break
    return best


def score_item(item: WorkflowItem, query: str) -> float:
    """Fuse-style score in [0, 1]; lower is better."""
    q = query.strip().lower()
    matcher = SequenceMatcher(None)
    matcher.set_seq2(q)
    fields = {
        "title": [item.title],
        "instance_name": [item.instance_name],
        "tags": item.tag_list,
        "subtitle": [item.subtitle],
    }
    best = 1.0
    for name, values in fields.items():
        quality = max((_partial_ratio(matcher, q, v) for v in values), default=0.0)
        best = min(best, 1.0 - quality * FIELD_WEIGHTS[name])
    return best


def fuzzy_rank(items: list[WorkflowItem], query: str) -> list[tuple[WorkflowItem, float]]:
    """Items passing both cutoffs, best score first."""
    length = len(query.strip())
    threshold = fuzzy_threshold(length)
    cutoff = secondary_cutoff(length)
    ranked = []
    for item in items:
        score = score_item(item, query)
        if score <= threshold and score <= cutoff:
            ranked.append((item, score))
    ranked.sort(key=lambda pair: pair[1])
    return ranked


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _parts_match(item: WorkflowItem, parts: list[str]) -> bool:
    return any(_substring_match(item, part) for part in parts)


class SearchEngine:
    def __init__(
        self,
        cache: WorkflowCache,
        registry: InstanceRegistry,
        status_cache: StatusCache,
        fetcher: PaginatedFetcher,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._cache = cache
        self._registry = registry
        self._status = status_cache
        self._fetcher = fetcher
        self._batch_size = batch_size

    def _fuzzy(self, scoped: list[WorkflowItem], query: str) -> list[WorkflowItem]:
        try:
            return [item for item, _ in fuzzy_rank(scoped, query)]
        except Exception as exc:
            logger.warning("[SearchEngine] Fuzzy ranking failed, using substring match: %s", exc)
            return local_filter(scoped, query)

    async def _remote(
        self,
        query: str,
        tag_filter: str | None,
        instance_filter: str | None,
    ) -> tuple[list[WorkflowItem], dict[str, str]]:
        parts = query.lower().split()
        found: list[WorkflowItem] = []
        errors: dict[str, str] = {}

        threshold = fuzzy_threshold(len(query))

        def _collect_native(batch: list[WorkflowItem]) -> None:
            # Servers without name filtering return everything; keep only plausible hits.
            found.extend(
                i for i in batch
                if _parts_match(i, parts) or score_item(i, query) <= threshold
            )

        def _collect_matching(batch: list[WorkflowItem]) -> None:
            found.extend(i for i in batch if _parts_match(i, parts))

        for instance in await self._registry.list():
            if instance_filter and instance.id != instance_filter:
                continue
            status = await self._status.ensure_status(instance)
            if not status.is_active:
                continue
            try:
                try:
                    await self._fetcher.fetch_batched(
                        instance, _collect_native, self._batch_size, name=query
                    )
                except FetchFailed as exc:
                    logger.debug("[SearchEngine] %s: no server-side name filter (%s)", instance.id, exc)
                await self._fetcher.fetch_batched(instance, _collect_matching, self._batch_size)
            except HubError as exc:
                errors[instance.name] = str(exc) or type(exc).__name__
                logger.warning("[SearchEngine] Remote search on %s failed: %s", instance.id, exc)

        found = dedupe(found)
        if found:
            await self._cache.merge(found)
            logger.info("[SearchEngine] Remote search for %r merged %d workflow(s)", query, len(found))
        return apply_selectors(found, tag_filter, instance_filter), errors

    async def search(
        self,
        query: str,
        tag_filter: str | None = None,
        instance_filter: str | None = None,
        escalate: bool = False,
    ) -> SearchResult:
        items = await self._cache.load() or []
        scoped = apply_selectors(items, tag_filter, instance_filter)
        q = query.strip()
        if not q:
            return SearchResult(sort_by_title(dedupe(scoped)), TIER_LOCAL if scoped else TIER_NONE)

        collected: list[WorkflowItem] = []
        tier = TIER_NONE

        local = local_filter(scoped, q)
        if local:
            collected.extend(local)
            tier = TIER_LOCAL
            if not escalate:
                return SearchResult(local, tier)

        fuzzy = self._fuzzy(scoped, q)
        if fuzzy:
            collected.extend(fuzzy)
            tier = tier if tier != TIER_NONE else TIER_FUZZY
            if not escalate:
                return SearchResult(sort_by_title(dedupe(fuzzy)), tier)

        remote, errors = await self._remote(q, tag_filter, instance_filter)
        if remote:
            collected.extend(remote)
            tier = tier if tier != TIER_NONE else TIER_REMOTE
        return SearchResult(sort_by_title(dedupe(collected)), tier, errors)
